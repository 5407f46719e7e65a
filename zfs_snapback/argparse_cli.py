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
"""Documentation, definition of input data and ArgumentParser used by the 'zfs-snapback' CLI."""

from __future__ import (
    annotations,
)
import argparse

from zfs_snapback.utils import (
    ENV_VAR_PREFIX,
    PROG_NAME,
    getenv_any,
)

# constants:
__version__: str = "0.1.0"


def argument_parser() -> argparse.ArgumentParser:
    """Returns the CLI parser used by zfs-snapback."""
    # fmt: off
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog=PROG_NAME,
        allow_abbrev=False,
        formatter_class=argparse.RawTextHelpFormatter,
        description=f"""
*{PROG_NAME} replicates ZFS snapshots from a (local or remote) source ZFS dataset to a (local or remote)
destination ZFS dataset, using 'zfs send' and 'zfs receive' and an ssh tunnel as directed.*

On each run, {PROG_NAME} determines the most recent snapshot that source and destination have in common, and
then incrementally transfers each source snapshot that is more recent than that, one at a time, oldest first.
If the destination dataset has no snapshots yet, the first source snapshot is transferred as a full send.
If the destination has snapshots but none of them exists on the source, {PROG_NAME} refuses to guess and fails.
With --recursive, descendant datasets are replicated too, and missing destination datasets are created.

A failed run leaves the destination at the last snapshot that was transferred successfully. Simply run
{PROG_NAME} again to resume; a run that finds nothing missing transfers nothing.

# Examples

* Replicate pool/src from the remote host 'alice@example.com' to the local dataset backup/src:

` {PROG_NAME} alice@example.com:pool/src backup/src`

* Push the local dataset tree pool/src to a remote host, with ssh compression and progress reporting:

` {PROG_NAME} --recursive --compression=yes --progress pool/src root@backup.example.com:backup/src`

* IPv6 hosts are written in brackets:

` {PROG_NAME} pool/src root@[2001:db8::1]:backup/src`
""")

    parser.add_argument(
        "src", metavar="SRC_DATASET",
        help="Source ZFS dataset in the form [[user@]host:]dataset, e.g. 'pool/src' or 'alice@example.com:pool/src'.\n\n")
    parser.add_argument(
        "dst", metavar="DST_DATASET",
        help="Destination ZFS dataset in the form [[user@]host:]dataset. The dataset must exist already.\n\n")
    parser.add_argument(
        "--recursive", "-r", action="store_true",
        help="During replication, also consider descendant datasets, i.e. datasets within the dataset tree, "
             "including children, and children of children, etc. Missing destination datasets are created via "
             "'zfs create'.\n\n")
    parser.add_argument(
        "--force", "-F", action="store_true",
        help="Pass the -F flag to 'zfs receive', i.e. roll back the destination to its most recent snapshot before "
             "receiving, discarding any changes made since then.\n\n")
    parser.add_argument(
        "--progress", "-p", action="store_true",
        help="Estimate the size of each 'zfs send' via a dry run, and periodically log the number of bytes "
             "transferred so far relative to that estimate. The interval in seconds can be changed via the environment "
             f"variable {ENV_VAR_PREFIX}progress_interval_secs (default: 10).\n\n")
    parser.add_argument(
        "--compression", default="", metavar="STRING",
        help="Value of the ssh 'Compression' option for remote hosts, e.g. 'yes' or 'no'. Default is to use the "
             "ssh client configuration.\n\n")
    parser.add_argument(
        "--zfs-program", default=getenv_any("zfs_program", "zfs"), metavar="STRING",
        help=f"The 'zfs' CLI on the source and destination host (default: {getenv_any('zfs_program', 'zfs')}). "
             f"The default can be changed via the environment variable {ENV_VAR_PREFIX}zfs_program.\n\n")
    parser.add_argument(
        "--ssh-program", default=getenv_any("ssh_program", "ssh"), metavar="STRING",
        help=f"The 'ssh' CLI on the local host (default: {getenv_any('ssh_program', 'ssh')}). "
             f"The default can be changed via the environment variable {ENV_VAR_PREFIX}ssh_program.\n\n")
    parser.add_argument(
        "--log-file", default="", metavar="FILE",
        help="Also append log messages to the given file.\n\n")
    parser.add_argument(
        "--verbose", "-v", action="count", default=0,
        help="Print verbose information. This option can be specified multiple times to increase the level of "
             "verbosity. To print what ZFS/SSH operation exactly is happening (or would happen), use -v -v "
             "(or -vv).\n\n")
    parser.add_argument(
        "--quiet", "-q", action="store_true",
        help="Suppress non-error, info, debug, and trace output.\n\n")
    parser.add_argument(
        "--version", action="version", version=f"{PROG_NAME}-{__version__}",
        help="Display version information and exit.\n\n")
    # fmt: on
    return parser
