import warnings

import pytest

from okrsview.config.settings import Settings, get_settings


@pytest.mark.unit
class TestSettings:
    def test_default_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("USE_DATABASE", raising=False)
        settings = Settings()
        assert settings.debug is False
        assert settings.log_level == "INFO"
        assert settings.use_database is False
        assert settings.jwt_audience == "authenticated"
        assert "postgresql" in settings.database_url

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://user:pass@db:5432/okrs")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("SESSION_MAX_AGE", "600")
        settings = Settings()
        assert settings.debug is True
        assert settings.log_level == "DEBUG"
        assert settings.session_max_age == 600

    def test_rate_limit_defaults(self) -> None:
        settings = Settings()
        assert settings.forgot_password_rate_limit == 3
        assert settings.reset_password_rate_limit == 5

    def test_identity_service_key_optional(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("IDENTITY_SERVICE_KEY", raising=False)
        assert Settings().identity_service_key is None


@pytest.mark.unit
class TestGetSettings:
    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_insecure_secret_warns(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JWT_SECRET", "change-me-in-production")
        with pytest.warns(UserWarning, match="JWT_SECRET"):
            get_settings()

    def test_configured_secret_is_quiet(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JWT_SECRET", "a-real-secret-value-for-the-test-suite")
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            get_settings()

    def test_database_mode_requires_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("USE_DATABASE", "true")
        monkeypatch.setenv("DATABASE_URL", "")
        with pytest.raises(ValueError, match="DATABASE_URL"):
            get_settings()

    def test_cached(self) -> None:
        assert get_settings() is get_settings()
