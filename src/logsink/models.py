from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .errors import SerializationError
from .levels import Level, level_name


class LogRecord(BaseModel):
  """
  A stored log message as returned by queries.

  Records are append-only: once written nothing about them changes, they
  can only be removed by retention.
  """

  model_config = ConfigDict(frozen=True)

  id: int = Field(..., description="Surrogate key assigned by the store")
  ctx: str
  level: Level
  msg: str
  data: Any = None
  ctime: datetime = Field(..., description="UTC insertion time assigned by the store")

  @computed_field  # type: ignore[prop-decorator]
  @property
  def level_name(self) -> str:
    return level_name(self.level)


class MessageFilter(BaseModel):
  """
  Options for `LogStore.get_messages`. Every option is optional and they
  combine with AND.
  """

  levels: Optional[List[int]] = None
  ctxs: Optional[List[str]] = None
  after: Optional[datetime] = Field(None, description="Exclusive lower bound on ctime")
  before: Optional[datetime] = Field(None, description="Exclusive upper bound on ctime")
  limit: Optional[int] = Field(None, ge=0, description="Max records; None or 0 is unbounded")

  @field_validator("levels", mode="before")
  @classmethod
  def _coerce_levels(cls, value: Any) -> Optional[List[int]]:
    if value is None:
      return None
    if isinstance(value, (str, int)):
      value = [value]

    levels: List[int] = []
    for item in value:
      try:
        levels.append(int(item))
      except (TypeError, ValueError):
        # Unparseable entries are dropped, not rejected.
        continue
    return levels

  @field_validator("ctxs", mode="before")
  @classmethod
  def _wrap_single_ctx(cls, value: Any) -> Any:
    if isinstance(value, str):
      return [value]
    return value

  @field_validator("after", "before")
  @classmethod
  def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
      return None
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def encode_data(data: Any) -> Optional[str]:
  """
  Serialize a structured payload for storage.

  `None` stays `None` (stored as NULL). Every other value, including falsy
  ones such as `0` or `{}`, is JSON encoded.
  """
  if data is None:
    return None
  try:
    return json.dumps(data)
  except (TypeError, ValueError) as exc:
    raise SerializationError(f"Cannot encode log data: {exc}") from exc


def decode_data(raw: Optional[str], record_id: Optional[int] = None) -> Any:
  if raw is None:
    return None
  try:
    return json.loads(raw)
  except ValueError as exc:
    raise SerializationError(
      f"Cannot decode stored data for record {record_id}: {exc}"
    ) from exc
