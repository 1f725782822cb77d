from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, status

from . import __version__
from . import status as status_mod
from . import store as store_mod
from .errors import SerializationError, StorageError
from .models import MessageFilter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  yield
  store_mod.close_store()


app = FastAPI(title="logsink", version=__version__, lifespan=lifespan)


# -----------------------------------------------------------------------------
# Time Parsing Utilities
# -----------------------------------------------------------------------------

def parse_time_param(value: str) -> datetime:
  """Parse a human-readable time into a UTC datetime.

  Accepts:
  - Relative: "5m", "1h", "2d", "30s" (that long before now)
  - ISO 8601: "2025-12-31T02:44:03" (UTC) or "2025-12-31T02:44:03+07:00"
  - Unix timestamp: "1767149043" or "1767149043.5"

  Raises:
      ValueError: If the time format cannot be parsed
  """
  value = value.strip()

  relative_match = re.match(r'^(\d+)([smhd])$', value, re.IGNORECASE)
  if relative_match:
    amount = int(relative_match.group(1))
    unit = relative_match.group(2).lower()
    unit_map = {'s': 'seconds', 'm': 'minutes', 'h': 'hours', 'd': 'days'}
    delta = timedelta(**{unit_map[unit]: amount})
    return datetime.now(timezone.utc) - delta

  # Unix timestamps before ISO 8601, which also accepts bare digit strings
  try:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)
  except (ValueError, OverflowError, OSError):
    pass

  try:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
      dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
  except ValueError:
    pass

  raise ValueError(f"Cannot parse time: {value}")


def _time_bound(value: Optional[str]) -> Optional[datetime]:
  if value is None:
    return None
  try:
    return parse_time_param(value)
  except ValueError as e:
    raise HTTPException(
      status_code=status.HTTP_400_BAD_REQUEST,
      detail={"code": "INVALID_TIME_FORMAT", "message": str(e)},
    )


@app.get("/status")
async def status_endpoint() -> Dict[str, object]:
  """
  Lightweight status endpoint for the log store, reporting the
  configuration the running store was opened with.
  """
  return status_mod.get_status(store_mod.get_store().config)


@app.get("/messages")
def get_messages(
  levels: Optional[List[str]] = Query(
    None,
    description="Level numbers to include (0=DEBUG .. 3=ERROR); repeat for several. Unparseable values are ignored",
  ),
  ctxs: Optional[List[str]] = Query(None, description="Contexts to include; repeat for several"),
  after: Optional[str] = Query(
    None,
    description="Exclusive lower bound on ctime: relative ('5m', '1h', '2d'), ISO 8601, or Unix timestamp. UTC unless an offset is given",
  ),
  before: Optional[str] = Query(
    None,
    description="Exclusive upper bound on ctime, same formats as 'after'",
  ),
  limit: Optional[int] = Query(None, ge=0, description="Max number of records; omitted or 0 means unbounded"),
) -> Dict[str, object]:
  """
  Query stored messages, most recent first.

  All timestamps are UTC. Results carry `ctime` as an ISO 8601 string and
  `data` already decoded.
  """
  flt = MessageFilter(
    levels=levels,
    ctxs=ctxs,
    after=_time_bound(after),
    before=_time_bound(before),
    limit=limit,
  )

  backend = store_mod.get_store()
  try:
    records = backend.get_messages(flt)
  except SerializationError as e:
    raise HTTPException(
      status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
      detail={"code": "SERIALIZATION_ERROR", "message": str(e)},
    )
  except StorageError as e:
    logger.error("Message query failed: %s", e)
    raise HTTPException(
      status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
      detail={"code": "STORAGE_ERROR", "message": str(e)},
    )

  return {
    "results": [r.model_dump(mode="json") for r in records],
    "count": len(records),
  }
