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
"""Access to the 'zfs' CLI of one host; Builds the 'zfs list/create/send/receive' command lines and runs the short-lived
ones.

A single Zfs object is shared by all datasets of the tree that was listed through it, so any dataset can issue send or
receive commands against the host it came from.
"""

from __future__ import (
    annotations,
)
import dataclasses
import logging
import subprocess
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
    TYPE_CHECKING,
    Final,
)

from zfs_snapback.configuration import (
    Flags,
)
from zfs_snapback.errors import (
    ProcessFailureError,
    SizeProbeFailedError,
)
from zfs_snapback.transport import (
    Transport,
    parse_location,
)
from zfs_snapback.utils import (
    LOG_DEBUG,
    LOG_TRACE,
    exit_status_to_str,
    list_formatter,
    stderr_to_str,
    subprocess_run,
)

if TYPE_CHECKING:  # pragma: no cover - for type hints only
    from zfs_snapback.dataset_tree import (
        Fs,
    )

# constants:
SIZE_PREFIX: Final[str] = "size\t"


#############################################################################
@dataclass(frozen=True)
class Zfs:
    """Wrapper for local or remote ZFS commands; immutable."""

    transport: Transport
    zfs_program: str = "zfs"
    log: Logger = dataclasses.field(default_factory=lambda: logging.getLogger(__name__), repr=False, compare=False)

    def list_cmd(self) -> list[str]:
        return self.transport.command(self.zfs_program, "list", "-t", "filesystem,volume,snapshot", "-H", "-r", "-o", "name")

    def list_datasets(self) -> Fs:
        """Returns the forest of all ZFS datasets and snapshots on the host."""
        from zfs_snapback.dataset_tree import parse_list  # lazy import to break the import cycle

        return parse_list(self, self.run("list", self.list_cmd()).splitlines())

    def create(self, dataset: str) -> None:
        """Creates a new filesystem by its full path."""
        self.run("create", self.transport.command(self.zfs_program, "create", dataset), level=LOG_DEBUG)

    def send_cmd(self, dataset: str, previous_snapshot: str, current_snapshot: str, estimate: bool = False) -> list[str]:
        """Returns a full 'zfs send' if previous_snapshot is empty, else an incremental one; with estimate=True the dry run
        prints the parsable size estimate instead of a data stream."""
        args: list[str] = ["send"]
        if estimate:
            args += ["-n", "-v", "-P"]
        if previous_snapshot:
            args += ["-i", f"@{previous_snapshot}"]
        args.append(f"{dataset}@{current_snapshot}")
        return self.transport.command(self.zfs_program, *args)

    def recv_cmd(self, dataset: str, force: bool) -> list[str]:
        args: list[str] = ["receive"]
        if force:
            args.append("-F")  # -F must be passed before the filesystem argument
        args.append(dataset)
        return self.transport.command(self.zfs_program, *args)

    def estimate_send_size(self, dataset: str, previous_snapshot: str, current_snapshot: str) -> int:
        """Estimates num bytes to transfer via 'zfs send'."""
        cmd: list[str] = self.send_cmd(dataset, previous_snapshot, current_snapshot, estimate=True)
        try:
            output: str = self.run("send", cmd)
        except ProcessFailureError as e:
            raise SizeProbeFailedError(f"{dataset}@{current_snapshot}", e) from e
        return parse_send_size(output, f"{dataset}@{current_snapshot}")

    def run(self, side: str, cmd: list[str], level: int = LOG_TRACE) -> str:
        """Runs the given short-lived command to completion and returns its stdout."""
        self.log.log(level, "Executing: %s", list_formatter(cmd))
        try:
            process = subprocess_run(cmd, stdin=DEVNULL, stdout=PIPE, stderr=PIPE, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise ProcessFailureError(side, cmd, exit_status_to_str(e.returncode), stderr_to_str(e.stderr)) from e
        except OSError as e:
            raise ProcessFailureError(side, cmd, e) from e
        return process.stdout


def parse_send_size(output: str, dataset: str) -> int:
    """Extracts the byte count from the 'size\\t<bytes>' line of 'zfs send -n -v -P' output."""
    for line in output.splitlines():
        if line.startswith(SIZE_PREFIX):
            value: str = line[len(SIZE_PREFIX) :].strip()
            if not (value.isascii() and value.isdigit()):
                raise SizeProbeFailedError(dataset, f"size is not an integer: {value!r}")
            return int(value)
    raise SizeProbeFailedError(dataset, "no size field found")


def get_filesystem(
    location: str, flags: Flags, zfs_program: str = "zfs", ssh_program: str = "ssh", log: Logger | None = None
) -> Fs:
    """Lists the host of the given [[user@]host:]dataset location and returns the dataset."""
    transport, dataset = parse_location(location, flags, ssh_program=ssh_program)
    zfs = Zfs(transport, zfs_program, log) if log is not None else Zfs(transport, zfs_program)
    zfs.log.info("Listing datasets on %s host: %s", transport, dataset)
    return zfs.list_datasets().get_child(dataset)
