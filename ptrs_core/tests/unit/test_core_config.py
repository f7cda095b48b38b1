"""Tests for compliance core settings."""

from __future__ import annotations

import pytest
from ptrs_core.config import OUTCOME_SMALL_BUSINESS, PlatformEnv, Settings, load_settings
from pydantic import ValidationError


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.env is PlatformEnv.DEV
        assert settings.tenant_setting_name == "app.current_tenant_id"
        assert settings.default_payment_term_days == 31
        assert settings.issue_list_limit == 200
        assert settings.sbi_small_business_phrases == [OUTCOME_SMALL_BUSINESS]

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PTRS_DEFAULT_PAYMENT_TERM_DAYS", "30")
        monkeypatch.setenv("PTRS_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
        settings = load_settings()
        assert settings.default_payment_term_days == 30
        assert settings.database_url.startswith("sqlite")

    def test_phrase_list_from_json_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PTRS_SBI_SMALL_BUSINESS_PHRASES", '["A", "B"]')
        assert load_settings().sbi_small_business_phrases == ["A", "B"]

    @pytest.mark.parametrize("name", ["current_tenant", "app.current.tenant", "app.tenant;drop"])
    def test_rejects_bad_setting_name(self, name: str) -> None:
        with pytest.raises(ValidationError):
            load_settings(tenant_setting_name=name)

    @pytest.mark.parametrize("field", ["default_payment_term_days", "issue_list_limit"])
    def test_rejects_non_positive(self, field: str) -> None:
        with pytest.raises(ValidationError):
            load_settings(**{field: 0})
