"""
Exception types raised by logsink.

Driver-specific errors never escape the storage adapters; they are wrapped
in `StorageError` so callers only have to know about this module.
"""


class LogsinkError(Exception):
  """Base class for all logsink errors."""


class StorageError(LogsinkError):
  """
  Raised when the storage engine fails to connect, insert, select, delete
  or compact.
  """


class SerializationError(LogsinkError):
  """
  Raised when a structured payload cannot be encoded on write, or a stored
  payload cannot be decoded on read.
  """


class InvalidLevelError(LogsinkError, ValueError):
  """Raised for a severity name or number outside DEBUG..ERROR."""

  def __init__(self, value: object) -> None:
    self.value = value
    super().__init__(
      f"Invalid level {value!r}. Valid levels: debug, info, warn, error (0-3)"
    )
