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
"""Computes which source snapshots the destination is missing, relative to the most recent common snapshot."""

from __future__ import (
    annotations,
)
from typing import (
    Sequence,
)

from zfs_snapback.errors import (
    DivergedHistoryError,
)


def last_common_snapshot_index(src_snapshots: Sequence[str], dst_snapshots: Sequence[str]) -> int:
    """Returns the index in src_snapshots of the most recent snapshot that also exists in dst_snapshots, or -1 if there is
    none.

    Snapshot lists are sorted by creation time, so the last match is the correct incremental base. Taking the last rather
    than the first match also guards against diverged histories where an older snapshot name happens to reappear.
    """
    dst_set: frozenset[str] = frozenset(dst_snapshots)
    result: int = -1
    for i, snapshot in enumerate(src_snapshots):
        if snapshot in dst_set:
            result = i
    return result


def missing_snapshots(
    src_snapshots: Sequence[str], dst_snapshots: Sequence[str], src_dataset: str = "", dst_dataset: str = ""
) -> tuple[str, list[str]]:
    """Returns (previous_snapshot, missing) where missing lists the src snapshots to send, oldest first, and
    previous_snapshot is the incremental base of the first of them; an empty previous_snapshot means that the first one
    must be a full send.

    Raises DivergedHistoryError if dst already has snapshots but none of them is in src; resending from scratch would
    destroy the dst history, so that decision is left to a human.
    """
    if len(dst_snapshots) == 0:
        return "", list(src_snapshots)
    common: int = last_common_snapshot_index(src_snapshots, dst_snapshots)
    if common < 0:
        raise DivergedHistoryError(src_dataset, dst_dataset)
    return src_snapshots[common], list(src_snapshots[common + 1 :])
