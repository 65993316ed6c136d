"""
Tests for settings validation and the error body shape.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings
from core.exceptions import CacheWriteError, ConflictError, JetVeinError, ValidationFailed

from conftest import TEST_SECRET, make_settings


class TestSettings:
    """Test cases for Settings."""

    def test_defaults(self):
        settings = make_settings()

        assert settings.port == 3000
        assert settings.cache_key_prefix == "jetvein:"
        assert settings.cache_ttl == 3600
        assert settings.rate_limit_window == 900
        assert settings.search_history_max == 20

    def test_short_secret_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, jwt_secret_key="too-short")

    def test_empty_prefix_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(cache_key_prefix="")

    def test_cors_origin_by_environment(self):
        assert make_settings(environment="development").cors_origin == "*"
        assert make_settings(environment="production").cors_origin == "https://jetvein.app"

    def test_sqlite_directory_created(self, tmp_path):
        db_path = tmp_path / "nested" / "jetvein.db"

        make_settings(database_url=f"sqlite+aiosqlite:///{db_path}")

        assert db_path.parent.is_dir()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_KEY", TEST_SECRET)
        monkeypatch.setenv("RATE_LIMIT_BACKEND", "redis")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")

        settings = Settings(_env_file=None)

        assert settings.rate_limit_backend == "redis"
        assert settings.redis_url == "redis://cache:6379/0"


class TestErrors:
    """Test cases for the error hierarchy."""

    def test_body_shape(self):
        assert ConflictError("taken", code="USER_EXISTS").to_dict() == {"error": "taken", "code": "USER_EXISTS"}

    def test_details_included_when_present(self):
        error = ValidationFailed("Name is required", details=["Name is required", "Email is required"])

        assert error.status_code == 400
        assert error.to_dict()["details"] == ["Name is required", "Email is required"]

    def test_status_codes(self):
        assert JetVeinError("boom").status_code == 500
        assert CacheWriteError("nope").to_dict()["code"] == "CACHE_WRITE_FAILED"
