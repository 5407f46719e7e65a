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
"""In-memory model of the ZFS datasets of one host; parse_list() builds a forest of Fs nodes from 'zfs list -H -o name'
output, where each Fs knows its children and the ordered names of its snapshots.

The forest root is synthetic: its full_path and name are empty and its children are the pools. The tree is built once per
host and is not mutated afterwards, except that create_if_missing() adds the filesystems it creates.
"""

from __future__ import (
    annotations,
)
from typing import (
    TYPE_CHECKING,
    Iterable,
)

from zfs_snapback.errors import (
    CreationFailedError,
    MalformedInputError,
    NotFoundError,
    ProcessFailureError,
)

if TYPE_CHECKING:  # pragma: no cover - for type hints only
    from zfs_snapback.zfs import (
        Zfs,
    )


#############################################################################
class Fs:
    """A ZFS filesystem (or volume) plus its snapshots, in the order in which 'zfs list' reported them."""

    def __init__(self, zfs: Zfs, full_path: str) -> None:
        # immutable variables:
        self.zfs: Zfs = zfs  # shared by all nodes of the same tree
        self.full_path: str = full_path
        self.name: str = full_path[full_path.rfind("/") + 1 :]

        # mutable variables:
        self._children: dict[str, Fs] = {}
        self._snapshots: list[str] = []

    def children(self) -> list[Fs]:
        """Returns the direct children, sorted by name so that recursive syncs visit them in a reproducible order."""
        return sorted(self._children.values(), key=lambda child: child.name)

    def snapshots(self) -> list[str]:
        """Returns the snapshot names, oldest first."""
        return self._snapshots

    def get(self, path: str) -> Fs:
        """Resolves a path whose first component is the name of this dataset itself, e.g. pool.get('pool/a/b')."""
        first, _, rest = path.partition("/")
        if first != self.name:
            raise NotFoundError(first, self.full_path)
        return self.get_child(rest) if rest else self

    def get_child(self, path: str) -> Fs:
        """Searches the dataset with the given relative path recursively and returns it."""
        node: Fs = self
        for component in path.split("/"):
            child: Fs | None = node._children.get(component)
            if child is None:
                raise NotFoundError(component, node.full_path)
            node = child
        return node

    def create_if_missing(self, name: str) -> Fs:
        """Returns the direct child with the given name, first creating it via 'zfs create' if it does not exist yet."""
        if "/" in name:
            raise ValueError(f"Slashes not allowed in names: {name}")
        child: Fs | None = self._children.get(name)
        if child is not None:
            return child
        full_path: str = f"{self.full_path}/{name}"
        try:
            self.zfs.create(full_path)
        except ProcessFailureError as e:
            raise CreationFailedError(full_path, e) from e
        return self._add(name, full_path)

    def _add(self, name: str, full_path: str) -> Fs:
        child = Fs(self.zfs, full_path)
        self._children[name] = child
        return child

    def _add_snapshot(self, line: str) -> None:
        fs_path, _, snapshot = line.rpartition("@")
        try:
            fs = self.get_child(fs_path)
        except NotFoundError as e:
            raise MalformedInputError(f"Snapshot {line} belongs to an unlisted dataset: {e}") from e
        fs._snapshots.append(snapshot)

    def _add_dataset(self, line: str) -> None:
        components: list[str] = line.split("/")
        node: Fs = self
        for i, component in enumerate(components):
            child: Fs | None = node._children.get(component)
            if child is None:
                if i != len(components) - 1:
                    raise MalformedInputError(f"Dataset {line} is listed before its parent {'/'.join(components[0:i + 1])}")
                child = node._add(component, line)
            node = child

    def __repr__(self) -> str:
        return f"Fs({self.full_path!r}, snapshots={self._snapshots!r}, children={sorted(self._children)!r})"


def parse_list(zfs: Zfs, lines: Iterable[str]) -> Fs:
    """Builds the forest from 'zfs list -H -o name' output lines such as 'pool/a' and 'pool/a@snap1', without line
    terminators; parents must be listed before their children and datasets before their snapshots."""
    root = Fs(zfs, "")
    for line in lines:
        if not line:
            continue  # names may contain spaces, so only entirely empty lines are skipped
        if "@" in line:
            root._add_snapshot(line)
        else:
            root._add_dataset(line)
    return root
