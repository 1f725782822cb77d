from __future__ import annotations

import logging
import traceback
from logging import Handler, LogRecord
from typing import Any, Dict, Optional

from .levels import Level
from .store import LogStore


def level_for(levelno: int) -> Level:
  """Map a stdlib logging level number onto the four stored severities."""
  if levelno >= logging.ERROR:
    return Level.ERROR
  if levelno >= logging.WARNING:
    return Level.WARN
  if levelno >= logging.INFO:
    return Level.INFO
  return Level.DEBUG


class StoreHandler(Handler):
  """
  Logging handler that writes stdlib log records into a `LogStore`.

  The logger name becomes the record's ctx. Structured data can be passed
  with `extra={"data": ...}`; when the record carries exception info the
  exception type and formatted stacktrace are added to it.
  """

  def __init__(self, store: LogStore, level: int = logging.NOTSET) -> None:
    super().__init__(level)
    self._store = store

  @property
  def store(self) -> LogStore:
    return self._store

  def emit(self, record: LogRecord) -> None:
    if self._store.closed:
      return
    try:
      data = getattr(record, "data", None)

      # Enriched error context for exception-logging cases.
      if record.exc_info:
        _type, _value, _tb = record.exc_info
        if _type is not None:
          payload: Dict[str, Any]
          if data is None:
            payload = {}
          elif isinstance(data, dict):
            payload = dict(data)
          else:
            payload = {"data": data}
          payload["exception_type"] = _type.__name__
          payload["stacktrace"] = "".join(traceback.format_exception(_type, _value, _tb))
          data = payload

      self._store.write(record.name, level_for(record.levelno), record.getMessage(), data)
    except Exception:
      # Never break application logging.
      self.handleError(record)


def setup_logging(
  store: LogStore,
  logger: Optional[logging.Logger] = None,
  level: int = logging.NOTSET,
) -> StoreHandler:
  """
  Attach a `StoreHandler` for `store` to `logger` (the root logger by
  default).

  Existing handlers are left alone. If a handler for the same store is
  already attached it is returned instead of adding a duplicate.
  """
  target_logger = logger or logging.getLogger()

  for existing in target_logger.handlers:
    if isinstance(existing, StoreHandler) and existing.store is store:
      return existing

  handler = StoreHandler(store, level=level)
  target_logger.addHandler(handler)
  return handler
