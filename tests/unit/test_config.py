from __future__ import annotations

import pytest

from copydesk.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
  for name in ("COPYDESK_PROVIDER", "COPYDESK_MAX_CONCURRENT_JOBS", "COPYDESK_DEFAULT_MAX_ITERATIONS", "COPYDESK_WORKER_ENABLED", "COPYDESK_SITE_URL"):
    monkeypatch.delenv(name, raising=False)
  settings = get_settings()
  assert settings.provider == "anthropic"
  assert settings.max_concurrent_jobs == 5
  assert settings.default_max_iterations == 3
  assert settings.worker_enabled is False
  assert settings.site_url is None


def test_origins_are_split_and_wildcards_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("COPYDESK_ALLOWED_ORIGINS", "https://a.test, https://b.test ,")
  assert get_settings().allowed_origins == ("https://a.test", "https://b.test")
  get_settings.cache_clear()
  monkeypatch.setenv("COPYDESK_ALLOWED_ORIGINS", "https://a.test,*")
  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


def test_overrides_and_flags(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("COPYDESK_PROVIDER", " OpenRouter ")
  monkeypatch.setenv("COPYDESK_WORKER_ENABLED", "yes")
  monkeypatch.setenv("COPYDESK_MAX_CONCURRENT_JOBS", "2")
  monkeypatch.setenv("COPYDESK_SITE_URL", "  ")
  settings = get_settings()
  assert settings.provider == "openrouter"
  assert settings.worker_enabled is True
  assert settings.max_concurrent_jobs == 2
  assert settings.site_url is None


@pytest.mark.parametrize(
  ("name", "value", "message"),
  [
    ("COPYDESK_PROVIDER", "vertex", "COPYDESK_PROVIDER"),
    ("COPYDESK_MAX_CONCURRENT_JOBS", "0", "positive integer"),
    ("COPYDESK_DEFAULT_MAX_ITERATIONS", "11", "between 1 and 10"),
    ("COPYDESK_JSON_MAX_RETRIES", "-1", "zero or a positive"),
    ("COPYDESK_STREAM_POLL_INTERVAL_SECONDS", "0", "positive number"),
  ],
)
def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch, name: str, value: str, message: str) -> None:
  monkeypatch.setenv(name, value)
  with pytest.raises(ValueError, match=message):
    get_settings()


def test_startup_log_masks_dsn_password() -> None:
  from copydesk.core.lifespan import _redact_dsn

  assert _redact_dsn("postgresql://copy:s3cret@db:5432/copydesk") == "postgresql://copy:***@db:5432/copydesk"
  assert _redact_dsn("postgresql://db/copydesk") == "postgresql://db/copydesk"
  assert _redact_dsn(None) == "<unset>"
  assert _redact_dsn("not a dsn") == "<invalid>"
