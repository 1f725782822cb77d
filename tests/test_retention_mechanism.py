import logging
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from logsink import LogStore, StorageError
from logsink.retention import RetentionConfig, RetentionLoop
from logsink.storage import LogStorage

DAY_MS = 24 * 60 * 60 * 1000


class CountingStorage(LogStorage):
  """Fake storage that records purge activity."""

  def __init__(self, fail_delete: bool = False, compact_delay: float = 0.0) -> None:
    self.deletes = []
    self.compactions = 0
    self.fail_delete = fail_delete
    self.compact_delay = compact_delay
    self.active = 0
    self.max_active = 0
    self._lock = threading.Lock()

  def delete_older_than(self, cutoff: datetime) -> int:
    with self._lock:
      self.active += 1
      self.max_active = max(self.max_active, self.active)
    try:
      self.deletes.append(cutoff)
      if self.fail_delete:
        raise StorageError("delete failed")
      return 2
    finally:
      with self._lock:
        self.active -= 1

  def compact(self) -> None:
    with self._lock:
      self.active += 1
      self.max_active = max(self.max_active, self.active)
    time.sleep(self.compact_delay)
    self.compactions += 1
    with self._lock:
      self.active -= 1


def _wait_for(predicate, timeout: float = 2.0) -> bool:
  deadline = time.monotonic() + timeout
  while time.monotonic() < deadline:
    if predicate():
      return True
    time.sleep(0.01)
  return predicate()


def test_default_config():
  cfg = RetentionConfig()
  assert cfg.max_age_ms == 30 * DAY_MS
  assert cfg.interval_ms == DAY_MS
  assert cfg.enabled
  assert not RetentionConfig(max_age_ms=0).enabled


def test_purge_deletes_then_compacts():
  storage = CountingStorage()
  loop = RetentionLoop(storage, RetentionConfig(max_age_ms=DAY_MS))

  before = datetime.now(timezone.utc)
  assert loop.purge() == 2

  assert storage.compactions == 1
  (cutoff,) = storage.deletes
  expected = before - timedelta(days=1)
  assert abs((cutoff - expected).total_seconds()) < 1


def test_start_purges_immediately_then_on_schedule():
  storage = CountingStorage()
  loop = RetentionLoop(storage, RetentionConfig(max_age_ms=DAY_MS, interval_ms=20))

  loop.start()
  try:
    # first run happens synchronously inside start()
    assert len(storage.deletes) >= 1
    assert loop.running
    assert _wait_for(lambda: storage.compactions >= 3)
  finally:
    loop.stop()


def test_failed_purge_keeps_schedule_alive(caplog):
  storage = CountingStorage(fail_delete=True)
  loop = RetentionLoop(storage, RetentionConfig(max_age_ms=DAY_MS, interval_ms=20))

  with caplog.at_level(logging.ERROR, logger="logsink.retention"):
    loop.start()
    try:
      assert _wait_for(lambda: len(storage.deletes) >= 3)
      assert loop.running
    finally:
      loop.stop()

  assert storage.compactions == 0
  assert "Retention purge failed" in caplog.text


def test_manual_purge_propagates_storage_errors():
  loop = RetentionLoop(CountingStorage(fail_delete=True), RetentionConfig(max_age_ms=DAY_MS))
  with pytest.raises(StorageError):
    loop.purge()


def test_stop_cancels_future_purges():
  storage = CountingStorage()
  loop = RetentionLoop(storage, RetentionConfig(max_age_ms=DAY_MS, interval_ms=20))
  loop.start()
  assert _wait_for(lambda: len(storage.deletes) >= 2)

  loop.stop()
  assert not loop.running
  count = len(storage.deletes)
  time.sleep(0.1)
  assert len(storage.deletes) == count

  # idempotent, and a stopped loop does not restart
  loop.stop()
  loop.start()
  assert not loop.running


def test_purges_never_overlap():
  storage = CountingStorage(compact_delay=0.02)
  loop = RetentionLoop(storage, RetentionConfig(max_age_ms=DAY_MS, interval_ms=5))
  loop.start()
  try:
    threads = [threading.Thread(target=loop.purge) for _ in range(4)]
    for t in threads:
      t.start()
    for t in threads:
      t.join()
  finally:
    loop.stop()

  assert storage.max_active == 1


def test_store_purge_removes_only_expired_records(db_path, backdate):
  with LogStore.open(path=db_path, max_age_ms=DAY_MS, max_age_interval_ms=3_600_000) as s:
    s.write("old", 1, "stale")
    s.write("edge", 1, "just inside")
    s.write("new", 1, "fresh")
    backdate(db_path, "old", timedelta(days=2))
    backdate(db_path, "edge", timedelta(hours=23))

    assert s.purge() == 1

    remaining = {m.ctx for m in s.get_messages()}
    assert remaining == {"edge", "new"}

    oldest_allowed = datetime.now(timezone.utc) - timedelta(days=1)
    assert all(m.ctime >= oldest_allowed for m in s.get_messages())


def test_open_purges_stale_records_immediately(db_path, backdate):
  with LogStore.open(path=db_path, max_age_ms=0) as s:
    s.write("old", 1, "stale")
    s.write("new", 1, "fresh")
  backdate(db_path, "old", timedelta(days=40))

  with LogStore.open(path=db_path) as s:
    assert [m.ctx for m in s.get_messages()] == ["new"]


def test_zero_max_age_disables_retention(db_path, backdate):
  with LogStore.open(path=db_path, max_age_ms=0) as s:
    s.write("old", 1, "kept forever")
    backdate(db_path, "old", timedelta(days=400))

    assert s.purge() == 0
    assert len(s.get_messages()) == 1
    assert not s.retention_running
