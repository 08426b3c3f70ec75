from __future__ import annotations

import os
from functools import lru_cache
from typing import TypedDict

from pydantic import AnyHttpUrl, BaseModel, Field, ValidationError


class _KeycloakEnv(TypedDict):
    keycloak_server_url: str
    keycloak_realm: str
    keycloak_client_id: str
    keycloak_client_secret: str


def parse_frontend_origins() -> list[str]:
    raw = os.getenv("FRONTEND_URL", "http://localhost:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


class Settings(BaseModel):
    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO"))

    keycloak_server_url: AnyHttpUrl
    keycloak_realm: str
    keycloak_client_id: str
    keycloak_client_secret: str
    keycloak_request_timeout: float = Field(
        default=float(os.getenv("KEYCLOAK_REQUEST_TIMEOUT", "10"))
    )

    token_refresh_threshold_seconds: int = Field(
        default=int(os.getenv("TOKEN_REFRESH_THRESHOLD_SECONDS", "120"))
    )
    proactive_refresh_threshold_minutes: int = Field(
        default=int(os.getenv("PROACTIVE_REFRESH_THRESHOLD_MINUTES", "5"))
    )
    claim_clock_skew_seconds: int = Field(
        default=int(os.getenv("CLAIM_CLOCK_SKEW_SECONDS", "60"))
    )

    minio_endpoint: str = Field(default=os.getenv("MINIO_ENDPOINT", "http://minio:9000"))
    minio_access_key: str = Field(default=os.getenv("MINIO_ACCESS_KEY", "minioadmin"))
    minio_secret_key: str = Field(default=os.getenv("MINIO_SECRET_KEY", "minioadmin"))
    minio_secure: bool = Field(
        default=os.getenv("MINIO_SECURE", "false").lower() == "true"
    )
    minio_region: str | None = Field(default=os.getenv("MINIO_REGION"))
    minio_bucket: str = Field(default=os.getenv("MINIO_BUCKET", "user-files"))

    presigned_url_ttl_seconds: int = Field(
        default=int(os.getenv("PRESIGNED_URL_TTL_SECONDS", "3600"))
    )
    files_default_limit: int = Field(default=int(os.getenv("FILES_DEFAULT_LIMIT", "20")))
    files_max_limit: int = Field(default=int(os.getenv("FILES_MAX_LIMIT", "100")))

    @property
    def keycloak_base_url(self) -> str:
        return str(self.keycloak_server_url).rstrip("/")

    @property
    def keycloak_issuer(self) -> str:
        return f"{self.keycloak_base_url}/realms/{self.keycloak_realm}"

    @property
    def keycloak_token_url(self) -> str:
        return f"{self.keycloak_issuer}/protocol/openid-connect/token"

    @property
    def keycloak_userinfo_url(self) -> str:
        return f"{self.keycloak_issuer}/protocol/openid-connect/userinfo"

    @property
    def keycloak_logout_url(self) -> str:
        return f"{self.keycloak_issuer}/protocol/openid-connect/logout"

    @property
    def keycloak_admin_users_url(self) -> str:
        return f"{self.keycloak_base_url}/admin/realms/{self.keycloak_realm}/users"

    @property
    def keycloak_discovery_url(self) -> str:
        return f"{self.keycloak_issuer}/.well-known/openid-configuration"


def _load_settings() -> Settings:
    environment = {
        "keycloak_server_url": os.getenv("KEYCLOAK_SERVER_URL"),
        "keycloak_realm": os.getenv("KEYCLOAK_REALM"),
        "keycloak_client_id": os.getenv("KEYCLOAK_CLIENT_ID"),
        "keycloak_client_secret": os.getenv("KEYCLOAK_CLIENT_SECRET"),
    }

    missing = [key for key, value in environment.items() if value in (None, "")]
    if missing:
        raise RuntimeError(
            "Missing required Keycloak environment variables: " + ", ".join(missing)
        )

    assert environment["keycloak_server_url"] is not None
    assert environment["keycloak_realm"] is not None
    assert environment["keycloak_client_id"] is not None
    assert environment["keycloak_client_secret"] is not None

    typed_environment: _KeycloakEnv = {
        "keycloak_server_url": environment["keycloak_server_url"],
        "keycloak_realm": environment["keycloak_realm"],
        "keycloak_client_id": environment["keycloak_client_id"],
        "keycloak_client_secret": environment["keycloak_client_secret"],
    }

    try:
        return Settings.model_validate(typed_environment)
    except ValidationError as exc:  # pragma: no cover - pydantic already exercised in tests
        raise RuntimeError(f"Invalid settings detected: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return _load_settings()
