"""Test runners and their output parsing."""

from seer.runners.go_test import GoTestRunner, PackageResolutionError, RunError, RunnerConfig
from seer.runners.parser import ParseError, TestEventParser, parse_output

__all__ = [
    "GoTestRunner",
    "PackageResolutionError",
    "ParseError",
    "RunError",
    "RunnerConfig",
    "TestEventParser",
    "parse_output",
]
