"""flowharness: a test harness for long-running process engines."""

__version__ = "0.1.0"
