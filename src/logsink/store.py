from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional, TextIO, Union

from .config import StoreConfig
from .handle import LoggerHandle, make_logger_handle
from .levels import LevelLike
from .models import LogRecord, MessageFilter
from .query import decode_row
from .retention import RetentionLoop
from .storage import LogStorage, open_storage
from .writer import LogWriter

logger = logging.getLogger(__name__)

FilterLike = Union[MessageFilter, Dict[str, Any], None]


class LogStore:
  """
  A durable, queryable log sink.

  The store owns the storage connection and the retention worker. Logger
  handles obtained from `get_logger` write through it; `get_messages` reads
  from it. Call `close()` (or use the store as a context manager) when done;
  handles and the store must not be used afterwards.

    store = LogStore.open(path="app.db", max_age_ms=7 * 24 * 3600 * 1000)
    log = store.get_logger("req-42", "debug")
    log.info("handled", {"status": 200})
    store.get_messages(ctxs=["req-42"])
  """

  def __init__(
    self,
    config: Optional[StoreConfig] = None,
    storage: Optional[LogStorage] = None,
    tee_stream: Optional[TextIO] = None,
  ) -> None:
    self._config = config or StoreConfig()
    self._storage = storage if storage is not None else open_storage(self._config.path)
    self._closed = False

    try:
      self._storage.ensure_schema()
    except Exception:
      self._storage.close()
      raise

    if tee_stream is None and self._config.tee_stderr:
      tee_stream = sys.stderr
    self._writer = LogWriter(self._storage, tee=tee_stream)

    self._retention: Optional[RetentionLoop] = None
    if self._config.retention.enabled:
      self._retention = RetentionLoop(self._storage, self._config.retention)
      self._retention.start()

  @classmethod
  def open(cls, config: Optional[StoreConfig] = None, **options: Any) -> "LogStore":
    """
    Open a store from a config object or from keyword options
    (`path`, `max_age_ms`, `max_age_interval_ms`, `tee_stderr`).
    """
    if config is None:
      config = StoreConfig(**options)
    elif options:
      raise TypeError("Pass either a StoreConfig or keyword options, not both")
    return cls(config)

  @property
  def config(self) -> StoreConfig:
    return self._config

  @property
  def closed(self) -> bool:
    return self._closed

  @property
  def retention_running(self) -> bool:
    return self._retention is not None and self._retention.running

  def get_logger(self, ctx: str, max_level: LevelLike = None) -> LoggerHandle:
    """
    Return a handle bound to `ctx` that persists calls at or above
    `max_level` (default INFO). Raises `InvalidLevelError` for unknown
    level names or numbers.
    """
    return make_logger_handle(self._writer, ctx, max_level)

  def write(self, ctx: str, level: LevelLike, msg: str, data: Any = None) -> None:
    """Write a single record without going through a handle."""
    self._writer.write(ctx, level, msg, data)

  def get_messages(self, flt: FilterLike = None, **options: Any) -> List[LogRecord]:
    """
    Return stored records matching the filter, most recent first.

    Accepts a `MessageFilter`, a dict of options, or the options as keyword
    arguments (`levels`, `ctxs`, `after`, `before`, `limit`).
    """
    if flt is None:
      flt = MessageFilter(**options)
    elif isinstance(flt, dict):
      flt = MessageFilter(**{**flt, **options})
    elif options:
      flt = MessageFilter(**{**flt.model_dump(exclude_unset=True), **options})

    rows = self._storage.select(flt)
    return [decode_row(row) for row in rows]

  def purge(self) -> int:
    """
    Run a retention pass now. Returns the number of records deleted, or 0
    when retention is disabled.
    """
    if self._retention is None:
      return 0
    return self._retention.purge()

  def close(self) -> None:
    if self._closed:
      return
    logger.debug("Closing log store at %s", self._config.path)
    self._closed = True

    if self._retention is not None:
      self._retention.stop()
    self._storage.close()

  def __enter__(self) -> "LogStore":
    return self

  def __exit__(self, exc_type, exc, tb) -> None:
    self.close()


_store: LogStore | None = None


def get_store() -> LogStore:
  """
  Return the process-wide store, created from environment configuration on
  first use.

  In tests this can be monkeypatched to avoid touching real storage.
  """
  global _store
  if _store is None:
    _store = LogStore(StoreConfig.from_env())
  return _store


def close_store() -> None:
  global _store
  if _store is not None:
    _store.close()
    _store = None
