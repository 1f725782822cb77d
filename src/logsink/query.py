"""
Query composition for `LogStore.get_messages`.

The builder only ever emits parameterized SQL; adapters pass in their
driver's placeholder style and, optionally, a function that converts the
`after`/`before` bounds to the representation their `ctime` column uses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .models import LogRecord, MessageFilter, decode_data

# encode_ts(value, round_up) -> driver parameter
TimestampEncoder = Callable[[datetime, bool], Any]

# (id, ctx, level, msg, data, ctime) as returned by an adapter's select()
Row = Tuple[int, str, int, str, Optional[str], datetime]

SELECT_COLUMNS = "id, ctx, level, msg, data, ctime"


def _passthrough(value: datetime, round_up: bool) -> datetime:
  return value


def _placeholders(placeholder: str, count: int) -> str:
  return ",".join([placeholder] * count)


def build_select(
  flt: MessageFilter,
  placeholder: str = "?",
  encode_ts: Optional[TimestampEncoder] = None,
) -> Tuple[str, List[Any]]:
  """
  Build the SELECT statement and parameters for a filter.

  Results are ordered by ctime descending, with id as the tie breaker so
  that records written within the same clock tick keep a stable order.
  """
  encode = encode_ts or _passthrough
  clauses: List[str] = []
  params: List[Any] = []

  # An empty effective level set means "no level restriction".
  levels = sorted(set(flt.levels or []))
  if levels:
    clauses.append(f"level IN ({_placeholders(placeholder, len(levels))})")
    params.extend(levels)

  if flt.ctxs is not None:
    if flt.ctxs:
      clauses.append(f"ctx IN ({_placeholders(placeholder, len(flt.ctxs))})")
      params.extend(flt.ctxs)
    else:
      clauses.append("1 = 0")

  if flt.after is not None:
    clauses.append(f"ctime > {placeholder}")
    params.append(encode(flt.after, False))

  if flt.before is not None:
    clauses.append(f"ctime < {placeholder}")
    params.append(encode(flt.before, True))

  sql = f"SELECT {SELECT_COLUMNS} FROM msgs"
  if clauses:
    sql += " WHERE " + " AND ".join(clauses)
  sql += " ORDER BY ctime DESC, id DESC"

  if flt.limit:
    sql += f" LIMIT {placeholder}"
    params.append(flt.limit)

  return sql, params


def decode_row(row: Sequence[Any]) -> LogRecord:
  record_id, ctx, level, msg, data, ctime = row
  return LogRecord(
    id=record_id,
    ctx=ctx,
    level=level,
    msg=msg,
    data=decode_data(data, record_id),
    ctime=ctime,
  )
