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
"""Unit tests for progress accounting of 'zfs send | zfs receive' byte streams."""

from __future__ import (
    annotations,
)
import os
import unittest
from unittest.mock import (
    MagicMock,
    patch,
)

from zfs_snapback import (
    progress,
)
from zfs_snapback.progress import (
    ProgressReader,
    ProgressReporter,
)


#############################################################################
def suite() -> unittest.TestSuite:
    test_cases = [
        TestProgressReporter,
        TestProgressReader,
    ]
    return unittest.TestSuite(unittest.TestLoader().loadTestsFromTestCase(test_case) for test_case in test_cases)


#############################################################################
class TestProgressReporter(unittest.TestCase):

    def test_update_logs_at_most_once_per_interval(self) -> None:
        log = MagicMock()
        with patch.object(progress.time, "monotonic_ns", return_value=0) as mock_clock:
            reporter = ProgressReporter(log, total_bytes=1000, interval_secs=10)
            reporter.update(100)  # before the first interval has elapsed
            log.info.assert_not_called()
            self.assertEqual(100, reporter.bytes_done)

            mock_clock.return_value = 10 * 1_000_000_000
            reporter.update(400)
            self.assertEqual(1, log.info.call_count)
            self.assertIn("400 B of 1000 B [40%] [40 B/s]", log.info.call_args[0][1])

            mock_clock.return_value = 15 * 1_000_000_000
            reporter.update(500)  # within the next interval
            self.assertEqual(1, log.info.call_count)

            mock_clock.return_value = 20 * 1_000_000_000
            reporter.update(600)
            self.assertEqual(2, log.info.call_count)

    def test_finish_reports_completion(self) -> None:
        log = MagicMock()
        with patch.object(progress.time, "monotonic_ns", return_value=0) as mock_clock:
            reporter = ProgressReporter(log, total_bytes=2048, label="pool/a@s1 ", interval_secs=10)
            reporter.update(1024)
            mock_clock.return_value = 2 * 1_000_000_000
            reporter.finish()
        self.assertEqual(2048, reporter.bytes_done)
        msg = log.info.call_args[0][1]
        self.assertEqual("zfs sent pool/a@s1 2 KiB of 2 KiB [100%] [1 KiB/s]", msg)

    def test_finish_keeps_count_above_estimate(self) -> None:
        log = MagicMock()
        reporter = ProgressReporter(log, total_bytes=10)
        reporter.update(15)
        reporter.finish()
        self.assertEqual(15, reporter.bytes_done)

    def test_zero_estimate(self) -> None:
        log = MagicMock()
        reporter = ProgressReporter(log, total_bytes=0)
        reporter.finish()
        self.assertIn("[inf%]", log.info.call_args[0][1])


#############################################################################
class TestProgressReader(unittest.TestCase):

    def test_read_counts_bytes_and_reports(self) -> None:
        reporter = MagicMock(spec=ProgressReporter)
        read_fd, write_fd = os.pipe()
        try:
            os.write(write_fd, b"x" * 100)
            os.close(write_fd)
            write_fd = -1
            reader = ProgressReader(read_fd, reporter)
            chunks: list[bytes] = []
            while True:
                data = reader.read(30)
                if not data:
                    break
                chunks.append(data)
        finally:
            os.close(read_fd)
            if write_fd >= 0:
                os.close(write_fd)
        self.assertEqual(b"x" * 100, b"".join(chunks))
        self.assertEqual(100, reader.bytes_read)
        self.assertEqual(100, reporter.update.call_args[0][0])
        self.assertEqual([30, 60, 90, 100, 100], [call[0][0] for call in reporter.update.call_args_list])
