import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from logsink import LogStore


@pytest.fixture
def store():
  s = LogStore.open(path=":memory:", max_age_ms=0)
  try:
    yield s
  finally:
    s.close()


@pytest.fixture
def db_path(tmp_path):
  return str(tmp_path / "logs.db")


def _sqlite_stamp(value: datetime) -> str:
  return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}"


@pytest.fixture
def backdate():
  """
  Return a helper that moves every record of a ctx in a sqlite file back in
  time, going around the store since ctime is never caller-supplied.
  """

  def _backdate(path: str, ctx: str, delta: timedelta) -> None:
    stamp = _sqlite_stamp(datetime.now(timezone.utc) - delta)
    conn = sqlite3.connect(path)
    try:
      with conn:
        conn.execute("UPDATE msgs SET ctime = ? WHERE ctx = ?", (stamp, ctx))
    finally:
      conn.close()

  return _backdate


@pytest.fixture
def raw_insert():
  """Return a helper that inserts a row directly into a sqlite file."""

  def _raw_insert(path: str, ctx: str, level: int, msg: str, data) -> None:
    conn = sqlite3.connect(path)
    try:
      with conn:
        conn.execute(
          "INSERT INTO msgs (ctx, level, msg, data) VALUES (?, ?, ?, ?)",
          (ctx, level, msg, data),
        )
    finally:
      conn.close()

  return _raw_insert
