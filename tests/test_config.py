import pytest
from pydantic import ValidationError

from chartbuddies.config import ProductionConfig, Settings, TestingConfig, get_config_by_env


def test_config_by_env_picks_the_subclass():
    assert isinstance(get_config_by_env("PRODUCTION"), ProductionConfig)
    assert isinstance(get_config_by_env("testing"), TestingConfig)
    assert type(get_config_by_env("staging")) is Settings


def test_production_defaults(monkeypatch):
    # conftest pins ENVIRONMENT=testing, which would win over the class default
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    config = get_config_by_env("production")
    assert config.is_production
    assert config.log_json is True
    assert config.onboarding_auto_attach_hospital is False


def test_cors_origins_accept_a_comma_separated_string():
    settings = Settings(CORS_ORIGINS="https://a.example, https://b.example")
    assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_blank_audience_disables_the_check():
    assert Settings(IDENTITY_JWT_AUDIENCE=" ").identity_jwt_audience is None


def test_short_jwt_secret_is_rejected():
    with pytest.raises(ValidationError):
        Settings(IDENTITY_JWT_SECRET="short")


def test_unknown_database_scheme_is_rejected():
    with pytest.raises(ValidationError):
        Settings(DATABASE_URL="mysql://localhost/ehr")
