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
"""Turns a program name plus arguments into the argv to execute, either directly on the localhost or on a remote host via
the OpenSSH client CLI (`ssh`).

A Transport is a single concrete value holding its command construction function, so callers never need to know (or
check) whether a host is local or remote.
"""

from __future__ import (
    annotations,
)
import shlex
from dataclasses import (
    dataclass,
)
from typing import (
    Callable,
    Final,
    Sequence,
)

from zfs_snapback.configuration import (
    Flags,
)

# constants:
LOCAL: Final[str] = "local"
# disable interactive password prompts and X11 forwarding and pseudo-terminal allocation:
SSH_EXTRA_OPTS: Final[tuple[str, ...]] = ("-oBatchMode=yes", "-oServerAliveInterval=0", "-x", "-T")


#############################################################################
@dataclass(frozen=True)
class Transport:
    """Builds the argv that runs a given program on a given host; immutable."""

    name: str  # "local" or the ssh user@host, for logging
    build: Callable[[str, Sequence[str]], list[str]]

    def command(self, program: str, *args: str) -> list[str]:
        """Returns the full argv that executes ``program`` with ``args`` on the host of this Transport."""
        return self.build(program, args)

    def __str__(self) -> str:
        return self.name


def local_transport() -> Transport:
    """Returns a Transport that executes commands on the localhost without an intermediate shell."""
    return Transport(LOCAL, lambda program, args: [program, *args])


def remote_transport(user_host: str, ssh_program: str = "ssh", compression: str = "") -> Transport:
    """Returns a Transport that executes commands on ``user_host`` via ssh.

    ssh concatenates argv into a single remote shell string, so the remote part is pre-quoted with shlex.quote to safely
    traverse the ssh "remote shell" boundary. ``compression`` is passed through opaquely as the ssh Compression option.
    """
    assert user_host
    ssh_cmd: list[str] = [ssh_program, *SSH_EXTRA_OPTS]
    if compression:
        ssh_cmd.append(f"-oCompression={compression}")
    ssh_cmd.append(user_host)
    prefix: tuple[str, ...] = tuple(ssh_cmd)

    def build(program: str, args: Sequence[str]) -> list[str]:
        return [*prefix, *(shlex.quote(arg) for arg in (program, *args))]

    return Transport(user_host, build)


def parse_location(location: str, flags: Flags, ssh_program: str = "ssh") -> tuple[Transport, str]:
    """Splits a location of the form [[user@]host:]dataset into a Transport and the dataset name.

    The split happens at the last colon, so IPv6 hosts work when written in brackets: user@[2001::dead:beef]:pool/ds
    """
    colon: int = location.rfind(":")
    if colon < 0:
        return local_transport(), location
    user_host: str = location[0:colon]
    dataset: str = location[colon + 1 :]
    user, at, host = user_host.rpartition("@")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]  # ssh expects IPv6 addresses without brackets
    return remote_transport(f"{user}{at}{host}", ssh_program=ssh_program, compression=flags.compression), dataset
