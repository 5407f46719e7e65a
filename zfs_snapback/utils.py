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
"""Collection of helper functions used across zfs_snapback; includes environment variable parsing, human readable
formatting and process management.

Everything in this module relies only on the standard library so other modules remain dependency free.
"""

from __future__ import (
    annotations,
)
import contextlib
import logging
import os
import subprocess
import types
from typing import (
    Any,
    Callable,
    Final,
    Iterable,
    NoReturn,
    cast,
)

# constants:
PROG_NAME: Final[str] = "zfs-snapback"
ENV_VAR_PREFIX: Final[str] = "zfs_snapback_"
DIE_STATUS: Final[int] = 3
LOG_DEBUG: Final[int] = logging.DEBUG
LOG_TRACE: Final[int] = logging.DEBUG // 2  # custom log level is halfway in between


def getenv_any(key: str, default: str | None = None) -> str | None:
    """All shell environment variable names used for configuration start with this prefix."""
    return os.getenv(ENV_VAR_PREFIX + key, default)


def getenv_int(key: str, default: int) -> int:
    """Returns environment variable ``key`` as int with ``default`` fallback."""
    return int(cast(str, getenv_any(key, str(default))))


def human_readable_bytes(num_bytes: float) -> str:
    """Formats 'num_bytes' as a human-readable size; for example "567 MiB"."""
    sign = "-" if num_bytes < 0 else ""
    s = abs(num_bytes)
    units = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB", "RiB", "QiB")
    n = len(units) - 1
    i = 0
    while s >= 1024 and i < n:
        s /= 1024
        i += 1
    return f"{sign}{human_readable_float(s)} {units[i]}"


def human_readable_float(number: float) -> str:
    """Formats ``number`` with a variable precision depending on magnitude.

    One digit before the decimal point rounds to two decimals (3.14559 --> "3.15"), two digits round to one decimal
    (12.36 --> "12.4"), three or more digits round to zero decimals (123.556 --> "124"). Trailing zeroes are dropped:
    1.500 --> "1.5", 1.00 --> "1"
    """
    abs_number = abs(number)
    precision = 2 if abs_number < 10 else 1 if abs_number < 100 else 0
    if precision == 0:
        return str(round(number))
    result = f"{number:.{precision}f}"
    assert "." in result
    result = result.rstrip("0").rstrip(".")  # Remove trailing zeros and trailing decimal point if empty
    return "0" if result == "-0" else result


def percent(number: int, total: int) -> str:
    """Returns percentage string of ``number`` relative to ``total``."""
    return f"{'inf' if total == 0 else human_readable_float(100 * number / total)}%"


def list_formatter(iterable: Iterable[Any]) -> Any:
    """Lazy formatter joining items with spaces, used to avoid overhead in disabled log levels."""

    class CustomListFormatter:
        """Formatter object that joins items when converted to ``str``."""

        def __str__(self) -> str:
            return " ".join(map(str, iterable))

    return CustomListFormatter()


def stderr_to_str(stderr: Any) -> str:
    """Workaround for https://github.com/python/cpython/issues/87597."""
    return str(stderr) if not isinstance(stderr, bytes) else stderr.decode("utf-8", errors="replace")


def exit_status_to_str(returncode: int) -> str:
    """Describes how a child process terminated, e.g. 'exit status 1' or 'signal 13'."""
    return f"signal {-returncode}" if returncode < 0 else f"exit status {returncode}"


def die(msg: str, exit_code: int = DIE_STATUS) -> NoReturn:
    """Exits the program with ``exit_code`` after logging ``msg``."""
    ex = SystemExit(msg)
    ex.code = exit_code
    raise ex


def subprocess_run(*args: Any, **kwargs: Any) -> subprocess.CompletedProcess:
    """Drop-in replacement for subprocess.run() that mimics its behavior except it kills the child on any exception."""
    check = kwargs.pop("check", False)

    with subprocess.Popen(*args, **kwargs) as proc:
        try:
            stdout, stderr = proc.communicate()
        except BaseException:
            proc.kill()
            raise
        else:
            exitcode: int | None = proc.poll()
            assert exitcode is not None
            if check and exitcode:
                raise subprocess.CalledProcessError(exitcode, proc.args, output=stdout, stderr=stderr)
    return subprocess.CompletedProcess(proc.args, exitcode, stdout, stderr)


#############################################################################
class _XFinally(contextlib.AbstractContextManager):
    """Context manager ensuring cleanup code executes after ``with`` blocks."""

    def __init__(self, cleanup: Callable[[], None]) -> None:
        self._cleanup = cleanup  # Zero-argument callable executed after the `with` block exits.

    def __exit__(  # type: ignore[exit-return]
        self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: types.TracebackType | None
    ) -> bool:
        """Runs cleanup and propagate any exceptions appropriately."""
        try:
            self._cleanup()
        except BaseException as cleanup_exc:
            if exc is None:
                raise  # No main error --> propagate cleanup error normally
            exc.__context__ = cleanup_exc  # attach so it shows up in traceback but doesn't mask
            return False  # reraise original exception
        return False  # propagate main exception if any


def xfinally(cleanup: Callable[[], None]) -> _XFinally:
    """Usage: with xfinally(lambda: cleanup()): ...

    Returns a context manager that guarantees that cleanup() runs on exit and that any error in cleanup() never masks an
    exception raised earlier inside the body of the `with` block:

    * Body raises, cleanup succeeds --> original body exception is re-raised.
    * Body raises, cleanup also raises --> re-raises body exception; cleanup exception is linked via ``__context__``.
    * Body succeeds, cleanup raises --> cleanup exception propagates normally.
    """
    return _XFinally(cleanup)
