# Copyright 2024 Wolfgang Hoschek AT mac DOT com
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
"""Unit tests for the helper functions in zfs_snapback.utils and for the messages of zfs_snapback.errors."""

from __future__ import (
    annotations,
)
import os
import subprocess
import unittest
from unittest.mock import (
    patch,
)

from zfs_snapback.errors import (
    CreationFailedError,
    DivergedHistoryError,
    NotFoundError,
    ProcessFailureError,
    SizeProbeFailedError,
    ZfsSnapbackError,
)
from zfs_snapback.utils import (
    DIE_STATUS,
    die,
    exit_status_to_str,
    getenv_any,
    getenv_int,
    human_readable_bytes,
    human_readable_float,
    list_formatter,
    percent,
    stderr_to_str,
    subprocess_run,
    xfinally,
)


#############################################################################
def suite() -> unittest.TestSuite:
    test_cases = [
        TestHelperFunctions,
        TestSubprocessRun,
        TestXFinally,
        TestErrors,
    ]
    return unittest.TestSuite(unittest.TestLoader().loadTestsFromTestCase(test_case) for test_case in test_cases)


#############################################################################
class TestHelperFunctions(unittest.TestCase):

    def test_getenv_any(self) -> None:
        with patch.dict(os.environ, {"zfs_snapback_foo": "bar"}):
            self.assertEqual("bar", getenv_any("foo"))
            self.assertEqual("dflt", getenv_any("missing", "dflt"))
            self.assertIsNone(getenv_any("missing"))

    def test_getenv_int(self) -> None:
        with patch.dict(os.environ, {"zfs_snapback_num": "42"}):
            self.assertEqual(42, getenv_int("num", 7))
            self.assertEqual(7, getenv_int("missing", 7))
        with patch.dict(os.environ, {"zfs_snapback_num": "xx"}):
            with self.assertRaises(ValueError):
                getenv_int("num", 7)

    def test_human_readable_bytes(self) -> None:
        self.assertEqual("0 B", human_readable_bytes(0))
        self.assertEqual("1 KiB", human_readable_bytes(1024))
        self.assertEqual("1.5 MiB", human_readable_bytes(1.5 * 1024 * 1024))
        self.assertEqual("-2 GiB", human_readable_bytes(-2 * 1024**3))

    def test_human_readable_float(self) -> None:
        self.assertEqual("3.15", human_readable_float(3.14559))
        self.assertEqual("12.4", human_readable_float(12.36))
        self.assertEqual("124", human_readable_float(123.556))
        self.assertEqual("1.5", human_readable_float(1.500))
        self.assertEqual("1", human_readable_float(1.00))
        self.assertEqual("0", human_readable_float(-0.001))

    def test_percent(self) -> None:
        self.assertEqual("40%", percent(2, 5))
        self.assertEqual("100%", percent(5, 5))
        self.assertEqual("inf%", percent(1, 0))

    def test_list_formatter(self) -> None:
        self.assertEqual("a b c", str(list_formatter(["a", "b", "c"])))
        self.assertEqual("a 1", str(list_formatter(["a", 1])))

    def test_stderr_to_str(self) -> None:
        self.assertEqual("hello", stderr_to_str(b"hello"))
        self.assertEqual("hello", stderr_to_str("hello"))
        self.assertEqual("�", stderr_to_str(b"\xff"))

    def test_exit_status_to_str(self) -> None:
        self.assertEqual("exit status 1", exit_status_to_str(1))
        self.assertEqual("signal 13", exit_status_to_str(-13))

    def test_die(self) -> None:
        with self.assertRaises(SystemExit) as context:
            die("boom")
        self.assertEqual(DIE_STATUS, context.exception.code)

        with self.assertRaises(SystemExit) as context:
            die("boom", exit_code=5)
        self.assertEqual(5, context.exception.code)


#############################################################################
class TestSubprocessRun(unittest.TestCase):

    def test_captures_stdout(self) -> None:
        result = subprocess_run(["sh", "-c", "echo hello"], stdout=subprocess.PIPE, text=True)
        self.assertEqual(0, result.returncode)
        self.assertEqual("hello\n", result.stdout)

    def test_check_raises_called_process_error(self) -> None:
        with self.assertRaises(subprocess.CalledProcessError) as context:
            subprocess_run(["sh", "-c", "echo err >&2; exit 4"], stderr=subprocess.PIPE, text=True, check=True)
        self.assertEqual(4, context.exception.returncode)
        self.assertEqual("err\n", context.exception.stderr)

    def test_kills_child_on_exception(self) -> None:
        with patch.object(subprocess.Popen, "communicate", side_effect=KeyboardInterrupt), patch.object(
            subprocess.Popen, "kill"
        ) as mock_kill:
            with self.assertRaises(KeyboardInterrupt):
                subprocess_run(["sleep", "0"], stdout=subprocess.PIPE)
        mock_kill.assert_called_once()


#############################################################################
class TestXFinally(unittest.TestCase):

    def test_cleanup_runs_on_success(self) -> None:
        calls: list[str] = []
        with xfinally(lambda: calls.append("cleanup")):
            calls.append("body")
        self.assertEqual(["body", "cleanup"], calls)

    def test_body_error_wins_over_cleanup_error(self) -> None:
        def cleanup() -> None:
            raise RuntimeError("cleanup")

        with self.assertRaises(ValueError) as context:
            with xfinally(cleanup):
                raise ValueError("body")
        self.assertIsInstance(context.exception.__context__, RuntimeError)

    def test_cleanup_error_propagates_if_body_succeeds(self) -> None:
        def cleanup() -> None:
            raise RuntimeError("cleanup")

        with self.assertRaises(RuntimeError):
            with xfinally(cleanup):
                pass


#############################################################################
class TestErrors(unittest.TestCase):

    def test_not_found_messages(self) -> None:
        self.assertEqual("Unable to find xx", str(NotFoundError("xx", "")))
        self.assertEqual("Unable to find doesnotexist in zroot", str(NotFoundError("doesnotexist", "zroot")))

    def test_process_failure_message_includes_command_and_stderr(self) -> None:
        e = ProcessFailureError("receive", ["zfs", "receive", "tank/a b"], "exit status 1", "cannot receive\n")
        self.assertEqual("receive failed: zfs receive 'tank/a b': exit status 1: cannot receive", str(e))
        self.assertEqual("receive", e.side)
        self.assertEqual("cannot receive\n", e.stderr)

    def test_process_failure_message_without_stderr(self) -> None:
        e = ProcessFailureError("send", ["zfs", "send", "tank@s1"], "signal 13", "  \n")
        self.assertEqual("send failed: zfs send tank@s1: signal 13", str(e))

    def test_other_messages(self) -> None:
        cause = ProcessFailureError("create", ["zfs", "create", "tank/a"], "exit status 1")
        self.assertTrue(str(CreationFailedError("tank/a", cause)).startswith("Cannot create filesystem tank/a: create failed"))
        self.assertEqual("pool/a and backup/a don't have a common snapshot", str(DivergedHistoryError("pool/a", "backup/a")))
        self.assertEqual("Cannot estimate send size of tank@s1: oops", str(SizeProbeFailedError("tank@s1", "oops")))

    def test_all_errors_share_a_base_class(self) -> None:
        for error in [
            NotFoundError("a", ""),
            DivergedHistoryError("a", "b"),
            SizeProbeFailedError("a", "b"),
            ProcessFailureError("send", [], "c"),
        ]:
            self.assertIsInstance(error, ZfsSnapbackError)
