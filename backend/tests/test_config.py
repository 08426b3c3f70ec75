from __future__ import annotations

import pytest
from app.config import get_settings, parse_frontend_origins

REQUIRED = {
    "KEYCLOAK_SERVER_URL": "http://keycloak:8080/",
    "KEYCLOAK_REALM": "vault",
    "KEYCLOAK_CLIENT_ID": "backend",
    "KEYCLOAK_CLIENT_SECRET": "secret",
}


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_derive_keycloak_urls(monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in REQUIRED.items():
        monkeypatch.setenv(key, value)

    settings = get_settings()

    assert settings.keycloak_issuer == "http://keycloak:8080/realms/vault"
    assert settings.keycloak_token_url.endswith("/realms/vault/protocol/openid-connect/token")
    assert settings.keycloak_admin_users_url == "http://keycloak:8080/admin/realms/vault/users"
    assert settings.minio_bucket == "user-files"
    assert settings.files_default_limit == 20
    assert get_settings() is settings


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_missing_keycloak_variable_fails_fast(monkeypatch: pytest.MonkeyPatch, missing: str) -> None:
    for key, value in REQUIRED.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv(missing)

    with pytest.raises(RuntimeError, match=missing.lower()):
        get_settings()


def test_frontend_origins_are_split(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FRONTEND_URL", "http://localhost:3000, https://vault.example.com")

    assert parse_frontend_origins() == ["http://localhost:3000", "https://vault.example.com"]
