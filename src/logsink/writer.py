from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from .levels import LevelLike, parse_level
from .models import encode_data
from .storage import LogStorage


def format_line(ctx: str, level: LevelLike, msg: str, when: datetime) -> str:
  """
  Render one side-channel line:

    INFO  [2024-01-02T03:04:05.678Z] [ctx] message
  """
  name = parse_level(level).name.ljust(5)
  stamp = when.astimezone(timezone.utc).isoformat(timespec="milliseconds")
  stamp = stamp.replace("+00:00", "Z")
  return f"{name} [{stamp}] [{ctx}] {msg}\n"


class LogWriter:
  """
  Write path: encode the payload, commit one record, then optionally mirror
  a formatted line to a text stream.
  """

  def __init__(self, storage: LogStorage, tee: Optional[TextIO] = None) -> None:
    self._storage = storage
    self._tee = tee

  def write(self, ctx: str, level: LevelLike, msg: str, data: Any = None) -> None:
    severity = parse_level(level)
    payload = encode_data(data)
    self._storage.insert(ctx, int(severity), msg, payload)

    if self._tee is not None:
      self._mirror(ctx, severity, msg)

  def _mirror(self, ctx: str, level: LevelLike, msg: str) -> None:
    try:
      self._tee.write(format_line(ctx, level, msg, datetime.now(timezone.utc)))
      self._tee.flush()
    except Exception:
      # Never fail a committed write because the mirror is broken.
      pass
