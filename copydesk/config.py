"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from copydesk.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_PROVIDER_MODES = {"anthropic", "openrouter"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Copydesk service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  provider: str
  anthropic_api_key: str | None
  openrouter_api_key: str | None
  openai_base_url: str | None
  max_concurrent_jobs: int
  default_max_iterations: int
  stream_poll_interval_seconds: float
  retry_max_retries: int
  retry_base_delay_ms: int
  retry_max_delay_ms: int
  json_max_retries: int
  worker_enabled: bool
  worker_poll_interval_seconds: float
  publisher_name: str | None
  site_url: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("COPYDESK_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("COPYDESK_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("COPYDESK_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""
  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""
  environment = os.getenv("COPYDESK_ENV", "development").lower()
  debug = _parse_bool(os.getenv("COPYDESK_DEBUG"))

  log_max_bytes = _positive_int("COPYDESK_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("COPYDESK_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("COPYDESK_LOG_BACKUP_COUNT must be zero or a positive integer.")

  provider = (os.getenv("COPYDESK_PROVIDER") or "anthropic").strip().lower()
  if provider not in _PROVIDER_MODES:
    raise ValueError(f"COPYDESK_PROVIDER must be one of {sorted(_PROVIDER_MODES)}.")

  # Iteration bounds mirror the job settings contract.
  default_max_iterations = _positive_int("COPYDESK_DEFAULT_MAX_ITERATIONS", "3")
  if default_max_iterations > 10:
    raise ValueError("COPYDESK_DEFAULT_MAX_ITERATIONS must be between 1 and 10.")

  retry_max_retries = int(os.getenv("COPYDESK_RETRY_MAX_RETRIES", "3"))
  if retry_max_retries < 0:
    raise ValueError("COPYDESK_RETRY_MAX_RETRIES must be zero or a positive integer.")

  json_max_retries = int(os.getenv("COPYDESK_JSON_MAX_RETRIES", "2"))
  if json_max_retries < 0:
    raise ValueError("COPYDESK_JSON_MAX_RETRIES must be zero or a positive integer.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("COPYDESK_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("COPYDESK_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("COPYDESK_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("COPYDESK_PG_CONNECT_TIMEOUT", "5"),
    provider=provider,
    anthropic_api_key=_optional_str(os.getenv("ANTHROPIC_API_KEY")),
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    openai_base_url=_optional_str(os.getenv("COPYDESK_OPENAI_BASE_URL")),
    max_concurrent_jobs=_positive_int("COPYDESK_MAX_CONCURRENT_JOBS", "5"),
    default_max_iterations=default_max_iterations,
    stream_poll_interval_seconds=_positive_float("COPYDESK_STREAM_POLL_INTERVAL_SECONDS", "1.0"),
    retry_max_retries=retry_max_retries,
    retry_base_delay_ms=_positive_int("COPYDESK_RETRY_BASE_DELAY_MS", "1000"),
    retry_max_delay_ms=_positive_int("COPYDESK_RETRY_MAX_DELAY_MS", "60000"),
    json_max_retries=json_max_retries,
    worker_enabled=_parse_bool(os.getenv("COPYDESK_WORKER_ENABLED")),
    worker_poll_interval_seconds=_positive_float("COPYDESK_WORKER_POLL_INTERVAL_SECONDS", "5"),
    publisher_name=_optional_str(os.getenv("COPYDESK_PUBLISHER_NAME")),
    site_url=_optional_str(os.getenv("COPYDESK_SITE_URL")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations don't require unrelated env vars.
  debug = _parse_bool(os.getenv("COPYDESK_DEBUG"))
  pg_connect_timeout = _positive_int("COPYDESK_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("COPYDESK_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
