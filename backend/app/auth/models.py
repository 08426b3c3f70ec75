from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class Subject(BaseModel):
    """Identity resolved by the Keycloak userinfo endpoint."""

    model_config = ConfigDict(extra="ignore")

    sub: str
    email: str | None = None
    email_verified: bool = False
    given_name: str | None = None
    family_name: str | None = None
    preferred_username: str | None = None


class TokenPair(BaseModel):
    """Keycloak token endpoint response, handed back to the client as-is."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    expires_in: int = 0
    refresh_expires_in: int = 0
    refresh_token: str = ""
    token_type: str = "Bearer"
    id_token: str | None = None
    session_state: str | None = None
    scope: str | None = None


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SignupRequest(BaseModel):
    email: str = Field(alias="username", pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8)
    given_name: str = ""
    family_name: str = ""

    model_config = ConfigDict(populate_by_name=True)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(alias="refreshToken", min_length=1)

    model_config = ConfigDict(populate_by_name=True)
