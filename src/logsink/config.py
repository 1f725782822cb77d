from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .retention import DEFAULT_INTERVAL_MS, DEFAULT_MAX_AGE_MS, RetentionConfig
from .storage import MEMORY_PATH


@dataclass(frozen=True)
class StoreConfig:
  """
  Construction options for a `LogStore`.

  path:
    Storage location. `:memory:` (the default) is a process-local store,
    a `postgresql://` URL selects Postgres, anything else is a SQLite file.
  max_age_ms:
    Records older than this are purged. 0 disables retention.
  max_age_interval_ms:
    Delay between purges.
  tee_stderr:
    Mirror every write as a formatted line on stderr.
  """

  path: str = MEMORY_PATH
  max_age_ms: int = DEFAULT_MAX_AGE_MS
  max_age_interval_ms: int = DEFAULT_INTERVAL_MS
  tee_stderr: bool = False

  def __post_init__(self) -> None:
    if not self.path:
      raise ValueError("path must not be empty")
    if self.max_age_ms < 0:
      raise ValueError(f"max_age_ms must be >= 0, got {self.max_age_ms}")
    if self.max_age_interval_ms <= 0:
      raise ValueError(
        f"max_age_interval_ms must be > 0, got {self.max_age_interval_ms}"
      )

  @property
  def retention(self) -> RetentionConfig:
    return RetentionConfig(
      max_age_ms=self.max_age_ms,
      interval_ms=self.max_age_interval_ms,
    )

  @classmethod
  def from_env(cls) -> "StoreConfig":
    """
    Load configuration from environment variables.

    Optional:
      - LOGSINK_PATH (default: :memory:)
      - LOGSINK_MAX_AGE_MS (default: 30 days, 0 disables retention)
      - LOGSINK_MAX_AGE_INTERVAL_MS (default: 24 hours)
      - LOGSINK_TEE_STDERR (default: off)
    """
    return cls.from_params_or_env()

  @classmethod
  def from_params_or_env(
    cls,
    path: Optional[str] = None,
    max_age_ms: Optional[int] = None,
    max_age_interval_ms: Optional[int] = None,
    tee_stderr: Optional[bool] = None,
  ) -> "StoreConfig":
    """
    Build configuration from explicit parameters, falling back to environment
    variables and then to defaults.
    """
    if path is None:
      path = os.getenv("LOGSINK_PATH") or MEMORY_PATH
    if max_age_ms is None:
      max_age_ms = _get_int_env("LOGSINK_MAX_AGE_MS", DEFAULT_MAX_AGE_MS)
    if max_age_interval_ms is None:
      max_age_interval_ms = _get_int_env("LOGSINK_MAX_AGE_INTERVAL_MS", DEFAULT_INTERVAL_MS)
    if tee_stderr is None:
      tee_stderr = _get_flag_env("LOGSINK_TEE_STDERR")

    return cls(
      path=path,
      max_age_ms=max_age_ms,
      max_age_interval_ms=max_age_interval_ms,
      tee_stderr=tee_stderr,
    )


def _get_int_env(name: str, default: int) -> int:
  raw = os.getenv(name)
  if raw is None or not raw.strip():
    return default

  try:
    return int(raw.strip())
  except ValueError:
    raise ValueError(f"Invalid {name} '{raw}'. Expected an integer number of milliseconds.") from None


def _get_flag_env(name: str) -> bool:
  """
  Accepts common truthy/falsey strings. Unset or unknown values are off.
  """
  raw = os.getenv(name)
  if raw is None:
    return False

  return raw.strip().lower() in ("1", "true", "yes", "on")
