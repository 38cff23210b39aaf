"""Result sinks for check results."""

from .base import ResultSink
from .memory import MemoryResultSink
from .sqlite import SqliteResultSink

__all__ = ["MemoryResultSink", "ResultSink", "SqliteResultSink"]
