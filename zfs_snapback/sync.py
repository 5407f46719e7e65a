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
"""The core replication algorithm is in sync(), which transfers all snapshots that the destination dataset is missing and
then optionally recurses into the child datasets, creating them on the destination as needed.

Transfers run strictly one at a time, in a deterministic order. The first error aborts the whole sync and is raised
unchanged; running sync() again later resumes from the most recent snapshot that made it to the destination.
"""

from __future__ import (
    annotations,
)
import logging
from logging import (
    Logger,
)
from typing import (
    TYPE_CHECKING,
)

from zfs_snapback.configuration import (
    Flags,
)
from zfs_snapback.snapshot_diff import (
    missing_snapshots,
)
from zfs_snapback.transfer import (
    Transfer,
    TransferListener,
)

if TYPE_CHECKING:  # pragma: no cover - for type hints only
    from zfs_snapback.dataset_tree import (
        Fs,
    )


def sync(
    source: Fs,
    destination: Fs,
    flags: Flags,
    listener: TransferListener | None = None,
    log: Logger | None = None,
    progress_interval_secs: float = 10,
) -> int:
    """Replicates the missing snapshots of source to destination, and with flags.recursive also all descendants; Returns
    the number of snapshots transferred."""
    log = log if log is not None else logging.getLogger(__name__)
    log.info("Synchronizing: %s", f"{source.full_path} --> {destination.full_path} ...")
    num_transferred: int = 0

    if len(source.snapshots()) > 0:
        previous, missing = missing_snapshots(
            source.snapshots(), destination.snapshots(), source.full_path, destination.full_path
        )
        if len(missing) == 0:
            log.info("Nothing to do: %s", f"{destination.full_path} is up to date at @{previous}")
        for current in missing:
            transfer = Transfer(source, destination, previous, current, flags)
            transfer.run(listener=listener, log=log, progress_interval_secs=progress_interval_secs)
            num_transferred += 1
            previous = current

    if flags.recursive:
        for src_child in source.children():
            dst_child: Fs = destination.create_if_missing(src_child.name)
            num_transferred += sync(src_child, dst_child, flags, listener, log, progress_interval_secs)

    return num_transferred
