"""seer: continuous test runner for Go source trees."""

__version__ = "0.1.0"
