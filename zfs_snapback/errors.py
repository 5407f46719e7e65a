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
"""Exceptions raised by zfs_snapback; all of them derive from ZfsSnapbackError so that the CLI can report any failure of a
sync run uniformly while library callers can still react to the specific kind."""

from __future__ import (
    annotations,
)
import shlex
from typing import (
    Sequence,
)


#############################################################################
class ZfsSnapbackError(Exception):
    """Base class of all errors raised by zfs_snapback."""


#############################################################################
class NotFoundError(ZfsSnapbackError):
    """A dataset path could not be resolved; names the segment that failed and the dataset that was searched."""

    def __init__(self, missing_segment: str, searched_within: str) -> None:
        self.missing_segment: str = missing_segment
        self.searched_within: str = searched_within  # empty if the forest root was searched
        if searched_within:
            super().__init__(f"Unable to find {missing_segment} in {searched_within}")
        else:
            super().__init__(f"Unable to find {missing_segment}")


#############################################################################
class MalformedInputError(ZfsSnapbackError):
    """A 'zfs list' listing or a 'zfs send' size estimate violates the expected text format."""


#############################################################################
class CreationFailedError(ZfsSnapbackError):
    """The storage backend refused to create a filesystem."""

    def __init__(self, dataset: str, cause: BaseException) -> None:
        super().__init__(f"Cannot create filesystem {dataset}: {cause}")
        self.dataset: str = dataset
        self.cause: BaseException = cause


#############################################################################
class DivergedHistoryError(ZfsSnapbackError):
    """Source and destination both have snapshots but none in common, so there is no safe incremental base."""

    def __init__(self, src_dataset: str, dst_dataset: str) -> None:
        super().__init__(f"{src_dataset} and {dst_dataset} don't have a common snapshot")
        self.src_dataset: str = src_dataset
        self.dst_dataset: str = dst_dataset


#############################################################################
class ProcessFailureError(ZfsSnapbackError):
    """An external command failed to start or exited non-zero; carries the captured stderr of that command."""

    def __init__(self, side: str, cmd: Sequence[str], cause: object, stderr: str = "") -> None:
        self.side: str = side  # e.g. "send", "receive", "list", "create"
        self.cmd: list[str] = list(cmd)
        self.cause: object = cause  # e.g. "exit status 1" or the OSError raised on startup
        self.stderr: str = stderr
        msg = f"{side} failed: {shlex.join(self.cmd)}: {cause}"
        if stderr.strip():
            msg += f": {stderr.strip()}"
        super().__init__(msg)


#############################################################################
class SizeProbeFailedError(ZfsSnapbackError):
    """The 'zfs send' dry run that estimates the transfer size failed or its output could not be parsed."""

    def __init__(self, dataset: str, cause: object) -> None:
        super().__init__(f"Cannot estimate send size of {dataset}: {cause}")
        self.dataset: str = dataset
        self.cause: object = cause
