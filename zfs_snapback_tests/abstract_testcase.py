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
"""Test case base class used by most unit tests; Provides shared helpers for consistent CLI argument parsing."""

from __future__ import (
    annotations,
)
import argparse
import unittest

from zfs_snapback import (
    utils,
)
from zfs_snapback.argparse_cli import (
    argument_parser,
)
from zfs_snapback.configuration import (
    Flags,
)


#############################################################################
class AbstractTestCase(unittest.TestCase):

    def __init__(self, methodName: str = "runTest") -> None:  # noqa: N803
        super().__init__(methodName)
        # immutable variables:
        self.test_mode: str = utils.getenv_any("test_mode", "") or ""  # Consider toggling this when testing
        self.is_unit_test: bool = self.test_mode == "unit"  # run only unit tests, i.e. skip tests that spawn processes

    @staticmethod
    def argparser_parse_args(args: list[str]) -> argparse.Namespace:
        return argument_parser().parse_args(args)

    @staticmethod
    def make_flags(args: list[str] | None = None) -> Flags:
        return Flags.from_args(argument_parser().parse_args((args or []) + ["src", "dst"]))
