from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import urlparse

from . import __version__
from .config import StoreConfig


@dataclass
class StoreStatus:
  status: str
  service_name: str
  version: str
  path: str
  retention_enabled: bool
  max_age_ms: int
  max_age_interval_ms: int


def redact_path(path: str) -> str:
  """Hide the password of a database URL; plain paths are returned as-is."""
  parsed = urlparse(path)
  if not parsed.password:
    return path
  netloc = parsed.netloc.replace(f":{parsed.password}@", ":***@", 1)
  return parsed._replace(netloc=netloc).geturl()


def get_status(config: Optional[StoreConfig] = None) -> dict:
  """
  Return a simple status payload for the log store.
  """
  cfg = config or StoreConfig.from_env()

  payload = StoreStatus(
    status="healthy",
    service_name="logsink",
    version=__version__,
    path=redact_path(cfg.path),
    retention_enabled=cfg.retention.enabled,
    max_age_ms=cfg.max_age_ms,
    max_age_interval_ms=cfg.max_age_interval_ms,
  )
  return asdict(payload)
