from __future__ import annotations

import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional, Type

import psycopg2

from .errors import SerializationError, StorageError
from .models import MessageFilter
from .query import Row, build_select

MEMORY_PATH = ":memory:"

POSTGRES_SCHEMES = ("postgresql://", "postgres://")


class LogStorage:
  """
  Storage abstraction for log records.

  Concrete adapters own the connection to the engine, assign `id` and
  `ctime` on insert and translate driver errors into `StorageError`.
  Tests can subclass this with an in-memory fake.
  """

  placeholder = "?"

  def ensure_schema(self) -> None:
    raise NotImplementedError

  def insert(self, ctx: str, level: int, msg: str, data: Optional[str]) -> None:
    raise NotImplementedError

  def select(self, flt: MessageFilter) -> List[Row]:
    raise NotImplementedError

  def delete_older_than(self, cutoff: datetime) -> int:
    """
    Hard-delete records whose ctime is strictly before `cutoff`.

    Returns the number of rows deleted.
    """
    raise NotImplementedError

  def compact(self) -> None:
    """Reclaim space freed by deletes."""
    raise NotImplementedError

  def close(self) -> None:
    pass

  def get_retention_cutoff(self, max_age_ms: int) -> datetime:
    """
    Compute the UTC instant before which records are expired.
    """
    seconds = max(max_age_ms, 0) / 1000
    return datetime.fromtimestamp(time.time() - seconds, tz=timezone.utc)


@contextmanager
def _storage_errors(action: str, driver_error: Type[Exception]) -> Iterator[None]:
  try:
    yield
  except driver_error as exc:
    raise StorageError(f"Failed to {action}: {exc}") from exc


# -----------------------------------------------------------------------------
# SQLite
# -----------------------------------------------------------------------------

SQLITE_DDL = """
CREATE TABLE IF NOT EXISTS msgs (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ctx TEXT NOT NULL,
  level INTEGER NOT NULL CHECK (level BETWEEN 0 AND 3),
  msg TEXT NOT NULL,
  data TEXT,
  ctime TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
)
"""

SQLITE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_msgs_ctime_ctx_level
  ON msgs (ctime, ctx, level)
"""

def to_sqlite_ts(value: datetime, round_up: bool = False) -> str:
  """
  Render a datetime the way the sqlite `ctime` default does, in UTC with
  millisecond precision.

  Sub-millisecond parts are truncated, or rounded up to the next
  millisecond when `round_up` is set, so that exclusive upper bounds keep
  their meaning against millisecond-precision rows.
  """
  value = value.astimezone(timezone.utc)
  millis, rest = divmod(value.microsecond, 1000)
  value = value.replace(microsecond=millis * 1000)
  if round_up and rest:
    value += timedelta(milliseconds=1)
  return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}"


def from_sqlite_ts(raw: str) -> datetime:
  """
  Parse a stored ctime. Rows written by this package carry milliseconds;
  tables created with a `current_timestamp` default hold whole seconds.
  """
  try:
    value = datetime.fromisoformat(raw.replace(" ", "T", 1))
  except (TypeError, ValueError) as exc:
    raise SerializationError(f"Unreadable ctime {raw!r}") from exc
  if value.tzinfo is None:
    return value.replace(tzinfo=timezone.utc)
  return value.astimezone(timezone.utc)


class SqliteLogStorage(LogStorage):
  """
  SQLite-backed storage.

  Writes go through a single connection shared by all threads and
  serialized by a lock; each insert and delete commits on its own. File
  databases run in WAL mode and serve queries from a per-thread read
  connection, so a long select never holds up a write. `:memory:` gives a
  process-local store that disappears on close; it has only the shared
  connection, so its reads and writes take turns.
  """

  placeholder = "?"

  def __init__(self, path: str = MEMORY_PATH) -> None:
    self._path = path
    self._lock = threading.RLock()
    with _storage_errors(f"open sqlite database {path!r}", sqlite3.Error):
      self._conn = sqlite3.connect(path, check_same_thread=False)
    self._closed = False
    self._local = threading.local()
    self._readers: List[sqlite3.Connection] = []
    self._readers_lock = threading.Lock()

  @property
  def path(self) -> str:
    return self._path

  @property
  def is_persistent(self) -> bool:
    return self._path != MEMORY_PATH

  def _reader(self) -> sqlite3.Connection:
    conn = getattr(self._local, "conn", None)
    if conn is None:
      with self._readers_lock:
        if self._closed:
          raise StorageError("Failed to query log records: database is closed")
        with _storage_errors(f"open sqlite database {self._path!r}", sqlite3.Error):
          conn = sqlite3.connect(self._path, check_same_thread=False)
        self._readers.append(conn)
      self._local.conn = conn
    return conn

  def ensure_schema(self) -> None:
    with self._lock, _storage_errors("create schema", sqlite3.Error):
      if self.is_persistent:
        self._conn.execute("PRAGMA journal_mode = WAL")
      with self._conn:
        self._conn.execute(SQLITE_DDL)
        if self.is_persistent:
          self._conn.execute(SQLITE_INDEX)

  def insert(self, ctx: str, level: int, msg: str, data: Optional[str]) -> None:
    with self._lock, _storage_errors("insert log record", sqlite3.Error):
      with self._conn:
        self._conn.execute(
          "INSERT INTO msgs (ctx, level, msg, data) VALUES (?, ?, ?, ?)",
          (ctx, level, msg, data),
        )

  def select(self, flt: MessageFilter) -> List[Row]:
    sql, params = build_select(flt, placeholder=self.placeholder, encode_ts=to_sqlite_ts)
    if self.is_persistent:
      conn = self._reader()
      with _storage_errors("query log records", sqlite3.Error):
        rows = conn.execute(sql, params).fetchall()
    else:
      with self._lock, _storage_errors("query log records", sqlite3.Error):
        rows = self._conn.execute(sql, params).fetchall()

    return [
      (record_id, ctx, level, msg, data, from_sqlite_ts(ctime))
      for record_id, ctx, level, msg, data, ctime in rows
    ]

  def delete_older_than(self, cutoff: datetime) -> int:
    with self._lock, _storage_errors("delete expired log records", sqlite3.Error):
      with self._conn:
        cur = self._conn.execute(
          "DELETE FROM msgs WHERE ctime < ?",
          (to_sqlite_ts(cutoff),),
        )
    return cur.rowcount or 0

  def compact(self) -> None:
    with self._lock, _storage_errors("vacuum database", sqlite3.Error):
      self._conn.execute("VACUUM")

  def close(self) -> None:
    with self._lock:
      if self._closed:
        return
      self._closed = True
      with _storage_errors("close sqlite database", sqlite3.Error):
        with self._readers_lock:
          for reader in self._readers:
            reader.close()
          self._readers.clear()
        self._conn.close()


# -----------------------------------------------------------------------------
# Postgres
# -----------------------------------------------------------------------------

POSTGRES_DDL = """
CREATE TABLE IF NOT EXISTS msgs (
  id BIGSERIAL PRIMARY KEY,
  ctx TEXT NOT NULL,
  level SMALLINT NOT NULL CHECK (level BETWEEN 0 AND 3),
  msg TEXT NOT NULL,
  data TEXT,
  ctime TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);

CREATE INDEX IF NOT EXISTS idx_msgs_ctime_ctx_level
  ON msgs (ctime, ctx, level);
"""


class PostgresLogStorage(LogStorage):
  """
  Postgres-backed storage. A connection is opened per operation, so the
  adapter holds no state beyond the DSN and is safe to share across threads.
  """

  placeholder = "%s"

  def __init__(self, dsn: str) -> None:
    self._dsn = dsn

  def _connect(self):
    with _storage_errors("connect to postgres", psycopg2.Error):
      return psycopg2.connect(self._dsn)

  def ensure_schema(self) -> None:
    conn = self._connect()
    try:
      with _storage_errors("create schema", psycopg2.Error):
        with conn, conn.cursor() as cur:
          cur.execute(POSTGRES_DDL)
    finally:
      conn.close()

  def insert(self, ctx: str, level: int, msg: str, data: Optional[str]) -> None:
    conn = self._connect()
    try:
      with _storage_errors("insert log record", psycopg2.Error):
        with conn, conn.cursor() as cur:
          cur.execute(
            "INSERT INTO msgs (ctx, level, msg, data) VALUES (%s, %s, %s, %s)",
            (ctx, level, msg, data),
          )
    finally:
      conn.close()

  def select(self, flt: MessageFilter) -> List[Row]:
    sql, params = build_select(flt, placeholder=self.placeholder)
    conn = self._connect()
    try:
      with _storage_errors("query log records", psycopg2.Error):
        with conn, conn.cursor() as cur:
          cur.execute(sql, tuple(params))
          rows = cur.fetchall()
    finally:
      conn.close()

    return [
      (record_id, ctx, level, msg, data, ctime.astimezone(timezone.utc))
      for record_id, ctx, level, msg, data, ctime in rows
    ]

  def delete_older_than(self, cutoff: datetime) -> int:
    conn = self._connect()
    try:
      with _storage_errors("delete expired log records", psycopg2.Error):
        with conn, conn.cursor() as cur:
          cur.execute("DELETE FROM msgs WHERE ctime < %s", (cutoff,))
          deleted = cur.rowcount or 0
    finally:
      conn.close()

    return deleted

  def compact(self) -> None:
    conn = self._connect()
    try:
      with _storage_errors("vacuum msgs", psycopg2.Error):
        # VACUUM cannot run inside a transaction block
        conn.autocommit = True
        with conn.cursor() as cur:
          cur.execute("VACUUM msgs")
    finally:
      conn.close()


def open_storage(path: str = MEMORY_PATH) -> LogStorage:
  """
  Pick an adapter for `path`: a postgres URL selects Postgres, anything
  else (including the reserved `:memory:`) is a SQLite database.
  """
  if path.startswith(POSTGRES_SCHEMES):
    return PostgresLogStorage(dsn=path)
  return SqliteLogStorage(path)
