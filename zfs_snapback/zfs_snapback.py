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
"""
* Overview of the zfs_snapback codebase:
* Control flow starts in main(), which parses the CLI arguments and kicks off a "Job".
* A Job lists the datasets of the source host and of the destination host, each into a tree of Fs objects
  (dataset_tree.py), and then calls sync() (sync.py) on the source and destination dataset.
* The snapshots to transfer are computed in snapshot_diff.py; each snapshot is moved by a Transfer (transfer.py), which
  runs 'zfs send' and 'zfs receive' as two processes connected by an in-process byte copy.
* Executing a CLI command on a local or remote host is in transport.py and zfs.py.
"""

from __future__ import (
    annotations,
)
import argparse
import sys
import time
from logging import (
    Logger,
)

from zfs_snapback.argparse_cli import (
    __version__,
    argument_parser,
)
from zfs_snapback.configuration import (
    Flags,
    LogParams,
)
from zfs_snapback.dataset_tree import (
    Fs,
)
from zfs_snapback.errors import (
    ZfsSnapbackError,
)
from zfs_snapback.loggers import (
    get_logger,
    get_simple_logger,
    reset_logger,
)
from zfs_snapback.sync import (
    sync,
)
from zfs_snapback.transfer import (
    LoggingTransferListener,
    TransferListener,
)
from zfs_snapback.utils import (
    PROG_NAME,
    die,
    xfinally,
)
from zfs_snapback.zfs import (
    get_filesystem,
)


def main() -> None:
    """API for command line clients."""
    run_main(argument_parser().parse_args(), sys.argv)


def run_main(args: argparse.Namespace, sys_argv: list[str] | None = None, log: Logger | None = None) -> int:
    """API for Python clients; visible for testing; Returns the number of snapshots transferred."""
    return Job().run_main(args, sys_argv, log)


#############################################################################
class Job:
    """Executes one zfs-snapback run."""

    def __init__(self) -> None:
        self.listener: TransferListener | None = None  # for testing only
        self.num_snapshots_transferred: int = 0

    def run_main(self, args: argparse.Namespace, sys_argv: list[str] | None = None, log: Logger | None = None) -> int:
        """Sets up logging, then lists both hosts and syncs the source dataset to the destination dataset."""
        is_own_logger: bool = log is None
        try:
            log_params = LogParams(args)
            log = get_logger(log_params, log=log)
        except BaseException as e:
            get_simple_logger(PROG_NAME).error("Log init: %s", e, exc_info=False if isinstance(e, SystemExit) else True)
            raise

        with xfinally(lambda: reset_logger(log) if is_own_logger else None):
            log.debug("%s", f"Starting {PROG_NAME}-{__version__} with args: {sys_argv or []}")
            flags = Flags.from_args(args)
            start_time_nanos: int = time.monotonic_ns()
            try:
                src: Fs = get_filesystem(args.src, flags, args.zfs_program, args.ssh_program, log)
                dst: Fs = get_filesystem(args.dst, flags, args.zfs_program, args.ssh_program, log)
                listener: TransferListener = self.listener if self.listener is not None else LoggingTransferListener(log)
                self.num_snapshots_transferred = sync(
                    src, dst, flags, listener=listener, log=log, progress_interval_secs=log_params.progress_interval_secs
                )
            except ZfsSnapbackError as e:
                log.error("%s", e)
                die(f"Exiting {PROG_NAME} with error: {e}")
            elapsed_secs: float = (time.monotonic_ns() - start_time_nanos) / 1_000_000_000
            log.info("%s", f"Transferred {self.num_snapshots_transferred} snapshots in {elapsed_secs:.1f}s")
            return self.num_snapshots_transferred


if __name__ == "__main__":
    main()
