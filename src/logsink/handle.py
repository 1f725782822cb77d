from __future__ import annotations

from functools import partial
from typing import Any, Callable, NamedTuple

from .levels import Level, LevelLike, parse_level
from .writer import LogWriter

LogMethod = Callable[..., None]


def _nop(msg: str, data: Any = None) -> None:
  return None


class LoggerHandle(NamedTuple):
  """
  A view bound to one context and one minimum severity.

  Each severity method takes `(msg, data=None)`. Methods below the minimum
  are no-ops; the rest write through the store. Handles own nothing and
  need no teardown.
  """

  ctx: str
  max_level: Level
  debug: LogMethod
  info: LogMethod
  warn: LogMethod
  error: LogMethod

  def is_enabled_for(self, level: LevelLike) -> bool:
    return parse_level(level) >= self.max_level


def make_logger_handle(writer: LogWriter, ctx: str, max_level: LevelLike = None) -> LoggerHandle:
  threshold = parse_level(max_level)

  def bind(level: Level) -> LogMethod:
    if level < threshold:
      return _nop
    return partial(writer.write, ctx, level)

  return LoggerHandle(
    ctx=ctx,
    max_level=threshold,
    debug=bind(Level.DEBUG),
    info=bind(Level.INFO),
    warn=bind(Level.WARN),
    error=bind(Level.ERROR),
  )
