"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from iolimit.core.config import LogSettings, ThrottleSettings


def test_throttle_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOLIMIT_ENABLED", "false")
    monkeypatch.setenv("IOLIMIT_PAGE_SIZE", "8192")
    monkeypatch.setenv("IOLIMIT_DIRTY_BATCH_PAGES", "16")
    monkeypatch.setenv("IOLIMIT_MAX_LATENCY_MS", "30000")

    cfg = ThrottleSettings()

    assert cfg.enabled is False
    assert cfg.dirty_batch_bytes == 8192 * 16
    assert cfg.max_latency_ms == 30000


def test_throttle_settings_reject_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOLIMIT_PAGE_SIZE", "0")

    with pytest.raises(ValidationError):
        ThrottleSettings()


def test_latency_ceiling_limited_to_u32(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("IOLIMIT_MAX_LATENCY_MS", str(2**32))

    with pytest.raises(ValidationError):
        ThrottleSettings()


def test_log_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    cfg = LogSettings()

    assert cfg.level == "INFO"
    assert cfg.format == "json"
    assert cfg.output == "stdout"
