"""Reporters that present run results."""

from seer.reporters.terminal import TerminalReporter, reporter

__all__ = ["TerminalReporter", "reporter"]
