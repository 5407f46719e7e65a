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
"""Moves a single snapshot from a source dataset to a destination dataset via 'zfs send | zfs receive', where either
command may run locally or via ssh.

The two commands run as separate child processes and this process copies the bytes between them, which lets it measure
progress and capture the stderr of each side separately. Startup order matters: 'zfs send' is started first, then the
copy thread and 'zfs receive' are started concurrently, so that a full OS pipe buffer on one side can never prevent the
other side from starting. Whichever side fails first determines the error that Transfer.run() raises; any later failure
is logged as a warning instead.
"""

from __future__ import (
    annotations,
)
import contextlib
import logging
import os
import shlex
import subprocess
import tempfile
import threading
from dataclasses import (
    dataclass,
)
from logging import (
    Logger,
)
from subprocess import (
    DEVNULL,
    PIPE,
)
from typing import (
    IO,
    TYPE_CHECKING,
    Final,
)

from zfs_snapback.configuration import (
    Flags,
)
from zfs_snapback.errors import (
    ProcessFailureError,
)
from zfs_snapback.progress import (
    ProgressReader,
    ProgressReporter,
)
from zfs_snapback.utils import (
    LOG_TRACE,
    exit_status_to_str,
    stderr_to_str,
)

if TYPE_CHECKING:  # pragma: no cover - for type hints only
    from zfs_snapback.dataset_tree import (
        Fs,
    )

# constants:
SEND: Final[str] = "send"
RECEIVE: Final[str] = "receive"
COPY: Final[str] = "copy"
COPY_BUFFER_SIZE: Final[int] = 128 * 1024


#############################################################################
class TransferListener:
    """Observes the external commands of each Transfer; the default implementation ignores all events."""

    def commands(self, transfer: Transfer, send_cmd: list[str], recv_cmd: list[str]) -> None:
        """Called with the composed command lines right before they are started."""

    def process_started(self, transfer: Transfer, side: str, process: subprocess.Popen) -> None:
        """Called right after the process of the given side (SEND or RECEIVE) has been started."""

    def secondary_error(self, transfer: Transfer, error: ProcessFailureError) -> None:
        """Called for each failure that happened after the first one and therefore is not raised."""


#############################################################################
class LoggingTransferListener(TransferListener):
    """Logs the pipeline of each Transfer."""

    def __init__(self, log: Logger) -> None:
        self._log: Final[Logger] = log

    def commands(self, transfer: Transfer, send_cmd: list[str], recv_cmd: list[str]) -> None:
        self._log.info("Running %s", f"{shlex.join(send_cmd)} | {shlex.join(recv_cmd)}")

    def process_started(self, transfer: Transfer, side: str, process: subprocess.Popen) -> None:
        self._log.log(LOG_TRACE, "Started %s process with pid %s", side, process.pid)


#############################################################################
@dataclass(frozen=True)
class Transfer:
    """The arguments for transferring a single snapshot; an empty previous_snapshot means full send."""

    source: Fs
    destination: Fs
    previous_snapshot: str
    current_snapshot: str
    flags: Flags

    def send_cmd(self, estimate: bool = False) -> list[str]:
        return self.source.zfs.send_cmd(self.source.full_path, self.previous_snapshot, self.current_snapshot, estimate)

    def recv_cmd(self) -> list[str]:
        return self.destination.zfs.recv_cmd(self.destination.full_path, self.flags.force)

    def estimate_send_size(self) -> int:
        """Returns the number of bytes 'zfs send' is going to produce; raises SizeProbeFailedError."""
        return self.source.zfs.estimate_send_size(self.source.full_path, self.previous_snapshot, self.current_snapshot)

    def run(
        self, listener: TransferListener | None = None, log: Logger | None = None, progress_interval_secs: float = 10
    ) -> None:
        """Runs 'zfs send | zfs receive' to completion; raises the first ProcessFailureError of either side, if any.

        Does not return before both processes have exited and the copy thread has finished.
        """
        log = log if log is not None else logging.getLogger(__name__)
        listener = listener if listener is not None else LoggingTransferListener(log)
        reporter: ProgressReporter | None = None
        if self.flags.progress:
            size_estimate_bytes: int = self.estimate_send_size()
            label: str = f"{self.source.full_path}@{self.current_snapshot} "
            reporter = ProgressReporter(log, size_estimate_bytes, label=label, interval_secs=progress_interval_secs)
        recv_cmd: list[str] = self.recv_cmd()
        send_cmd: list[str] = self.send_cmd()
        listener.commands(self, send_cmd, recv_cmd)
        _SendReceivePipe(self, send_cmd, recv_cmd, listener, log, reporter).run()


#############################################################################
class _SendReceivePipe:
    """Runs one send process and one receive process connected by an in-process byte copy; single use."""

    def __init__(
        self,
        transfer: Transfer,
        send_cmd: list[str],
        recv_cmd: list[str],
        listener: TransferListener,
        log: Logger,
        reporter: ProgressReporter | None,
    ) -> None:
        # immutable variables:
        self._transfer: Final[Transfer] = transfer
        self._send_cmd: Final[list[str]] = send_cmd
        self._recv_cmd: Final[list[str]] = recv_cmd
        self._listener: Final[TransferListener] = listener
        self._log: Final[Logger] = log
        self._reporter: Final[ProgressReporter | None] = reporter

        # mutable variables:
        self._lock: Final[threading.Lock] = threading.Lock()
        self._first_error: ProcessFailureError | None = None  # guarded by _lock; first writer wins

    def run(self) -> None:
        with tempfile.TemporaryFile() as send_stderr, tempfile.TemporaryFile() as recv_stderr:
            try:
                send_proc = subprocess.Popen(self._send_cmd, stdin=DEVNULL, stdout=PIPE, stderr=send_stderr)
            except OSError as e:
                raise ProcessFailureError(SEND, self._send_cmd, e) from e
            self._listener.process_started(self._transfer, SEND, send_proc)
            procs: list[subprocess.Popen] = [send_proc]
            threads: list[threading.Thread] = []
            is_done: bool = False
            try:
                read_fd, write_fd = os.pipe()
                assert send_proc.stdout is not None
                copier = threading.Thread(
                    target=self._copy, args=(send_proc.stdout, write_fd), name="zfs_send_recv_copy", daemon=True
                )
                try:
                    copier.start()
                except BaseException:
                    os.close(write_fd)
                    os.close(read_fd)
                    raise
                threads.append(copier)
                try:
                    recv_proc = subprocess.Popen(self._recv_cmd, stdin=read_fd, stdout=DEVNULL, stderr=recv_stderr)
                except OSError as e:
                    self._record_error(ProcessFailureError(RECEIVE, self._recv_cmd, e))
                else:
                    procs.append(recv_proc)
                    self._listener.process_started(self._transfer, RECEIVE, recv_proc)
                    recv_waiter = threading.Thread(
                        target=self._wait,
                        args=(RECEIVE, recv_proc, self._recv_cmd, recv_stderr),
                        name="zfs_recv_wait",
                        daemon=True,
                    )
                    recv_waiter.start()
                    threads.append(recv_waiter)
                finally:
                    os.close(read_fd)  # only the receive process may hold the read end, else EOF never arrives

                self._wait(SEND, send_proc, self._send_cmd, send_stderr)
                is_done = True
            finally:
                if not is_done:  # e.g. KeyboardInterrupt; don't leave orphan processes behind
                    for proc in procs:
                        with contextlib.suppress(OSError):
                            proc.kill()
                for thread in threads:
                    thread.join()
                for proc in procs:
                    proc.wait()

        if self._first_error is not None:
            raise self._first_error

    def _copy(self, src: IO[bytes], write_fd: int) -> None:
        """Copies the output of the send process into the pipe that feeds the receive process."""
        src_fd: int = src.fileno()
        reader: ProgressReader | None = None if self._reporter is None else ProgressReader(src_fd, self._reporter)
        try:
            while True:
                data: bytes = os.read(src_fd, COPY_BUFFER_SIZE) if reader is None else reader.read(COPY_BUFFER_SIZE)
                if not data:
                    break
                view = memoryview(data)
                while len(view) > 0:
                    view = view[os.write(write_fd, view) :]
            if self._reporter is not None:
                self._reporter.finish()
        except BrokenPipeError:
            # the receive process exited before consuming all data; its exit status tells why
            self._log.log(LOG_TRACE, "%s", "Receive side closed its input before the end of the send stream")
        except OSError as e:
            self._record_error(ProcessFailureError(COPY, self._send_cmd, e))
        finally:
            os.close(write_fd)  # EOF for the receiver, also if the sender failed
            src.close()  # SIGPIPE for the sender if the receiver is gone

    def _wait(self, side: str, proc: subprocess.Popen, cmd: list[str], stderr_file: IO[bytes]) -> None:
        """Waits for the given process to exit and records its failure, including its captured stderr."""
        returncode: int = proc.wait()
        if returncode != 0:
            stderr_file.seek(0)
            stderr: str = stderr_to_str(stderr_file.read())
            self._record_error(ProcessFailureError(side, cmd, exit_status_to_str(returncode), stderr))

    def _record_error(self, error: ProcessFailureError) -> None:
        with self._lock:
            if self._first_error is None:
                self._first_error = error
                return
        self._log.warning("Suppressed secondary failure: %s", error)
        self._listener.secondary_error(self._transfer, error)
