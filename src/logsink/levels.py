from __future__ import annotations

from enum import IntEnum
from typing import Union

from .errors import InvalidLevelError


class Level(IntEnum):
  DEBUG = 0
  INFO = 1
  WARN = 2
  ERROR = 3


LevelLike = Union[Level, int, str, None]

DEFAULT_LEVEL = Level.INFO

_NAMED_LEVELS = {level.name.lower(): level for level in Level}


def parse_level(value: LevelLike, default: Level = DEFAULT_LEVEL) -> Level:
  """
  Map a level name, number or `Level` to a `Level`.

  Names are case-insensitive. `None` maps to `default`. Anything else
  raises `InvalidLevelError` rather than silently picking a level.
  """
  if value is None:
    return default

  if isinstance(value, Level):
    return value

  # bool is an int subclass; True/False are never meant as levels
  if isinstance(value, bool):
    raise InvalidLevelError(value)

  if isinstance(value, int):
    try:
      return Level(value)
    except ValueError:
      raise InvalidLevelError(value) from None

  if isinstance(value, str):
    level = _NAMED_LEVELS.get(value.strip().lower())
    if level is None:
      raise InvalidLevelError(value)
    return level

  raise InvalidLevelError(value)


def level_name(level: int) -> str:
  """Canonical upper-case name for a stored level number."""
  return Level(level).name
