"""
Tests for configuration loading and the production secret guard.
"""

import pytest
from pydantic import ValidationError

from authgate.config import DEV_SECRET_KEY, Settings


class TestSettings:

    def test_development_falls_back_to_dev_secret(self):
        settings = Settings(_env_file=None, ENVIRONMENT="development", SECRET_KEY=DEV_SECRET_KEY)
        assert settings.uses_dev_secret
        assert not settings.is_production

    def test_production_rejects_dev_secret(self):
        with pytest.raises(ValidationError, match="SECRET_KEY must be set"):
            Settings(_env_file=None, ENVIRONMENT="production", SECRET_KEY=DEV_SECRET_KEY)

    def test_production_with_explicit_secret(self):
        settings = Settings(_env_file=None, ENVIRONMENT="Production", SECRET_KEY="s3cr3t")
        assert settings.is_production
        assert not settings.uses_dev_secret

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ADMIN_EMAILS", '["a@example.com", "b@example.com"]')
        monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_HOURS", "2")
        settings = Settings(_env_file=None)
        assert settings.ADMIN_EMAILS == ["a@example.com", "b@example.com"]
        assert settings.ACCESS_TOKEN_EXPIRE_HOURS == 2

    def test_defaults(self):
        settings = Settings(_env_file=None, SECRET_KEY="x")
        assert settings.PASSWORD_MIN_LENGTH == 6
        assert settings.PASSWORD_MAX_LENGTH == 72
        assert settings.SERVER_EVENTS_LIMIT == 100
        assert settings.SERVERLESS_EVENTS_LIMIT == 50
        assert settings.RATE_LIMIT == "100 per 15 minutes"
