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
"""Progress accounting for `zfs send/recv` data transfers.

The ProgressReader counts the bytes that flow from 'zfs send' to 'zfs receive' and hands the running total to a
ProgressReporter, which compares it against the size estimated up front and periodically logs a status line, e.g.:
2025-01-17 01:23:04 [I] zfs sent 41.7 GiB of 52.1 GiB [80%] [907 MiB/s]
"""

from __future__ import (
    annotations,
)
import os
import threading
import time
from logging import (
    Logger,
)
from typing import (
    Final,
)

from zfs_snapback.utils import (
    human_readable_bytes,
    percent,
)


#############################################################################
class ProgressReporter:
    """Logs the number of bytes transferred so far relative to the expected total, at most once per interval; thread-safe."""

    def __init__(self, log: Logger, total_bytes: int, label: str = "", interval_secs: float = 10) -> None:
        # immutable variables:
        self._log: Final[Logger] = log
        self._label: Final[str] = label
        self._interval_nanos: Final[int] = int(interval_secs * 1_000_000_000)
        self._start_nanos: Final[int] = time.monotonic_ns()
        self.total_bytes: Final[int] = total_bytes

        # mutable variables:
        self._lock: Final[threading.Lock] = threading.Lock()
        self._bytes_done: int = 0
        self._next_report_nanos: int = self._start_nanos + self._interval_nanos

    @property
    def bytes_done(self) -> int:
        with self._lock:
            return self._bytes_done

    def update(self, bytes_done: int) -> None:
        """Records the running byte count and logs a status line if the reporting interval has elapsed."""
        now: int = time.monotonic_ns()
        with self._lock:
            self._bytes_done = bytes_done
            if now < self._next_report_nanos:
                return
            self._next_report_nanos = now + self._interval_nanos
        self._report(bytes_done, now)

    def finish(self) -> None:
        """Marks the transfer as complete (100%) and logs the final status line."""
        with self._lock:
            self._bytes_done = max(self._bytes_done, self.total_bytes)
            bytes_done = self._bytes_done
        self._report(bytes_done, time.monotonic_ns())

    def _report(self, bytes_done: int, now_nanos: int) -> None:
        elapsed_secs: float = max(now_nanos - self._start_nanos, 1) / 1_000_000_000
        self._log.info(
            "%s",
            f"zfs sent {self._label}{human_readable_bytes(bytes_done)} of {human_readable_bytes(self.total_bytes)} "
            f"[{percent(bytes_done, self.total_bytes)}] [{human_readable_bytes(bytes_done / elapsed_secs)}/s]",
        )


#############################################################################
class ProgressReader:
    """Wraps the raw file descriptor of a byte stream and reports the number of bytes read so far to a ProgressReporter."""

    def __init__(self, fd: int, reporter: ProgressReporter) -> None:
        self._fd: Final[int] = fd
        self._reporter: Final[ProgressReporter] = reporter
        self.bytes_read: int = 0

    def read(self, size: int) -> bytes:
        data: bytes = os.read(self._fd, size)
        self.bytes_read += len(data)
        self._reporter.update(self.bytes_read)
        return data
