"""
logsink

A durable, queryable logging sink: context-tagged, leveled messages with
optional structured data, stored in SQLite or Postgres, queried by level,
context and time range, and expired by a background retention task.
"""

__version__ = "0.1.0"

from .config import StoreConfig
from .errors import InvalidLevelError, LogsinkError, SerializationError, StorageError
from .handle import LoggerHandle
from .levels import Level, parse_level
from .logging_setup import StoreHandler, setup_logging
from .models import LogRecord, MessageFilter
from .store import LogStore

__all__ = [
  "InvalidLevelError",
  "Level",
  "LogRecord",
  "LogStore",
  "LoggerHandle",
  "LogsinkError",
  "MessageFilter",
  "SerializationError",
  "StorageError",
  "StoreConfig",
  "StoreHandler",
  "parse_level",
  "setup_logging",
]
