import pytest
from pydantic import ValidationError

from food_ordering.core.config import DEFAULT_JWT_SECRET, EnvironmentMode, Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.env_mode == EnvironmentMode.DEVELOPMENT
    assert settings.is_development
    assert not settings.use_real_services
    assert settings.is_postgres
    assert settings.order_row_locking
    assert settings.max_quantity_per_line == 99
    assert settings.access_token_expire_days == 7


def test_env_mode_from_environment(monkeypatch):
    monkeypatch.setenv("ENV_MODE", "STAGING")

    settings = Settings(_env_file=None)

    assert settings.env_mode == EnvironmentMode.STAGING
    assert settings.use_real_services
    assert not settings.is_production


def test_invalid_env_mode():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, env_mode="testing")


def test_comma_separated_lists():
    settings = Settings(
        _env_file=None,
        staff_emails=" Chef@Example.com, ,owner@example.com",
        cors_origins="http://localhost:3000, https://orders.example.com",
    )

    assert settings.staff_emails_list == ["chef@example.com", "owner@example.com"]
    assert settings.cors_origins_list == ["http://localhost:3000", "https://orders.example.com"]


def test_production_config_warnings():
    unsafe = Settings(_env_file=None, env_mode="production", database_url="sqlite+aiosqlite:///orders.db")
    assert unsafe.jwt_secret_key == DEFAULT_JWT_SECRET
    assert unsafe.validate_production_config() == ["JWT_SECRET_KEY", "DATABASE_URL"]

    safe = Settings(_env_file=None, env_mode="production", jwt_secret_key="s3cret")
    assert safe.validate_production_config() == []

    assert Settings(_env_file=None).validate_production_config() == []
