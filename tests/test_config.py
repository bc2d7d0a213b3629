import pytest

from cuizly_sync import config
from cuizly_sync.config import SyncSettings
from cuizly_sync.errors import ConfigError
from cuizly_sync.messages import t


def test_defaults():
    settings = SyncSettings()
    assert settings.profile_poll_seconds == 60
    assert settings.favorites_poll_seconds == 0
    assert settings.reload_retries == 2
    assert settings.reload_backoff_seconds == 1.0
    assert settings.activity_flush_seconds == 30
    assert settings.notifications_limit == 50
    assert settings.language == "fr"


def test_from_env(monkeypatch):
    monkeypatch.setenv("CUIZLY_PROFILE_POLL_SECONDS", "30")
    monkeypatch.setenv("CUIZLY_RELOAD_RETRIES", "4")
    monkeypatch.setenv("CUIZLY_LANGUAGE", "en")
    monkeypatch.setenv("CUIZLY_NOTIFICATIONS_LIMIT", "")
    settings = SyncSettings.from_env()
    assert settings.profile_poll_seconds == 30.0
    assert settings.reload_retries == 4
    assert settings.language == "en"
    assert settings.notifications_limit == 50
    assert SyncSettings.from_env(language="fr").language == "fr"


@pytest.mark.parametrize(
    "name, raw",
    [
        ("CUIZLY_PROFILE_POLL_SECONDS", "soon"),
        ("CUIZLY_PROFILE_POLL_SECONDS", "-5"),
        ("CUIZLY_RELOAD_RETRIES", "1.5"),
    ],
)
def test_invalid_env_values(monkeypatch, name, raw):
    monkeypatch.setenv(name, raw)
    with pytest.raises(ConfigError):
        SyncSettings.from_env()


def test_supabase_env_required(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    with pytest.raises(ConfigError):
        config.supabase_url()
    with pytest.raises(ConfigError):
        config.supabase_key()


def test_supabase_env_values(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co/")
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")
    assert config.supabase_url() == "https://project.supabase.co"
    assert config.supabase_key() == "service"


def test_messages_fall_back_to_french_then_key():
    assert t("favorites.added") == "Ajouté aux favoris"
    assert t("favorites.added", "en") == "Added to favorites"
    assert t("favorites.added", "de") == "Ajouté aux favoris"
    assert t("no.such.key", "en") == "no.such.key"
