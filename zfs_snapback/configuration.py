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
"""Immutable configuration objects derived from the parsed CLI arguments; the replication code only ever sees these, never
the argparse.Namespace itself."""

from __future__ import (
    annotations,
)
import argparse
from dataclasses import (
    dataclass,
)

from zfs_snapback.utils import (
    getenv_int,
)


#############################################################################
@dataclass(frozen=True)
class Flags:
    """Options that control a sync run and each of its snapshot transfers."""

    recursive: bool = False  # also sync descendant filesystems
    force: bool = False  # pass -F to 'zfs receive'
    progress: bool = False  # estimate the send size up front and report bytes transferred
    compression: str = ""  # opaque ssh compression setting; empty means the ssh default

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> Flags:
        """Reads from ArgumentParser via args."""
        return cls(
            recursive=args.recursive,
            force=args.force,
            progress=args.progress,
            compression=args.compression or "",
        )


#############################################################################
class LogParams:
    """Option values for logging."""

    def __init__(self, args: argparse.Namespace) -> None:
        """Reads from ArgumentParser via args."""
        # immutable variables:
        if args.quiet:
            self.log_level: str = "ERROR"
        elif args.verbose >= 2:
            self.log_level = "TRACE"
        elif args.verbose >= 1:
            self.log_level = "DEBUG"
        else:
            self.log_level = "INFO"
        self.log_file: str = args.log_file or ""
        self.progress_interval_secs: int = getenv_int("progress_interval_secs", 10)

    def __repr__(self) -> str:
        return str(self.__dict__)
