"""
Unit tests for settings parsing and the error envelope
"""

import asyncio

import pytest

from capacity_service.config import Settings, _parse_tokens, _parse_weekdays
from capacity_service.errors import ConflictError, StoreTimeoutError, ValidationError, with_timeout


class TestParseTokens:

    def test_token_actor_pairs(self):
        assert _parse_tokens("abc=ops-1, def=ops-2") == {"abc": "ops-1", "def": "ops-2"}

    def test_bare_token_maps_to_admin(self):
        assert _parse_tokens("abc") == {"abc": "admin"}

    def test_empty(self):
        assert _parse_tokens("") == {}


class TestParseWeekdays:

    def test_parses_set(self):
        assert _parse_weekdays("0, 6") == frozenset({0, 6})

    def test_empty_means_no_closed_days(self):
        assert _parse_weekdays("") == frozenset()

    def test_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            _parse_weekdays("7")


class TestSettingsFromEnv:

    def test_defaults(self, monkeypatch):
        for name in ("CLOSED_WEEKDAYS", "CRON_SECRET", "BUSINESS_TIMEZONE", "LOW_CAPACITY_THRESHOLD"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.closed_weekdays == frozenset({0})
        assert settings.cron_secret is None
        assert settings.business_timezone == "America/New_York"
        assert settings.low_capacity_threshold == 5
        assert settings.bulk_generate_max_days == 90

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("ADMIN_API_TOKENS", "tok=ops-7")
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        monkeypatch.setenv("CLOSED_WEEKDAYS", "")
        monkeypatch.setenv("ENABLE_SCHEDULER", "false")
        monkeypatch.setenv("PRECONDITION_TIMEOUT_SECONDS", "2.5")

        settings = Settings.from_env()

        assert settings.admin_tokens == {"tok": "ops-7"}
        assert settings.cron_secret == "s3cret"
        assert settings.closed_weekdays == frozenset()
        assert settings.enable_scheduler is False
        assert settings.precondition_timeout_seconds == 2.5
        assert settings.tz.key == "America/New_York"


class TestErrors:

    def test_envelope(self):
        error = ConflictError("Found 2 conflicting slot(s).", details={"conflicts": ["a", "b"]})

        assert error.status_code == 409
        assert error.to_dict() == {
            "error": {
                "code": "CONFLICT",
                "message": "Found 2 conflicting slot(s).",
                "details": {"conflicts": ["a", "b"]},
            }
        }

    def test_validation_status(self):
        assert ValidationError("bad").status_code == 400

    async def test_with_timeout_raises_store_timeout(self):
        with pytest.raises(StoreTimeoutError) as exc_info:
            await with_timeout(asyncio.sleep(1), 0.01, "partner lookup")

        assert exc_info.value.status_code == 408
        assert "partner lookup" in exc_info.value.message

    async def test_with_timeout_returns_result(self):
        async def lookup():
            return 42

        assert await with_timeout(lookup(), 1, "lookup") == 42
