from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .storage import LogStorage

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_MS = 30 * 24 * 60 * 60 * 1000
DEFAULT_INTERVAL_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class RetentionConfig:
  max_age_ms: int = DEFAULT_MAX_AGE_MS
  interval_ms: int = DEFAULT_INTERVAL_MS

  @property
  def enabled(self) -> bool:
    return self.max_age_ms > 0


class RetentionLoop:
  """
  Background deletion of expired records.

  `start()` purges once right away, then a single daemon worker thread
  sleeps `interval_ms`, purges, and sleeps again. The next sleep only
  begins once the previous purge has returned, so purges never overlap and
  a slow vacuum pushes the schedule back instead of piling up.

  A failing purge is logged and the schedule carries on.
  """

  def __init__(self, storage: LogStorage, config: RetentionConfig) -> None:
    self._storage = storage
    self._config = config
    self._thread: Optional[threading.Thread] = None
    self._stopped = threading.Event()
    self._purge_lock = threading.Lock()
    self._lock = threading.Lock()

  @property
  def config(self) -> RetentionConfig:
    return self._config

  @property
  def running(self) -> bool:
    return self._thread is not None and self._thread.is_alive()

  def start(self) -> None:
    """
    Run the first purge and start the worker thread.

    Safe to call more than once; later calls are no-ops while the worker
    is alive.
    """
    with self._lock:
      if self.running or self._stopped.is_set():
        return

      self._purge_quietly()

      self._thread = threading.Thread(
        target=self._run, name="logsink-retention", daemon=True
      )
      self._thread.start()

  def stop(self) -> None:
    """
    Cancel future purges. A purge already running is allowed to finish
    before this returns.
    """
    self._stopped.set()
    with self._lock:
      thread = self._thread
      self._thread = None
    if thread is not None and thread is not threading.current_thread():
      thread.join()

  def purge(self) -> int:
    """
    Delete records older than `max_age_ms`, then compact.

    Returns the number of records deleted. Storage errors propagate.
    """
    with self._purge_lock:
      cutoff = self._storage.get_retention_cutoff(self._config.max_age_ms)
      deleted = self._storage.delete_older_than(cutoff)
      self._storage.compact()

    logger.debug("Retention purge removed %d record(s) older than %s", deleted, cutoff.isoformat())
    return deleted

  def _run(self) -> None:
    interval = self._config.interval_ms / 1000
    while not self._stopped.wait(interval):
      self._purge_quietly()

  def _purge_quietly(self) -> None:
    try:
      self.purge()
    except Exception:
      logger.exception(
        "Retention purge failed; next attempt in %d ms", self._config.interval_ms
      )
