from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import (
    AdminTokenUnavailable,
    InvalidCredentials,
    LogoutRejected,
    RefreshRejected,
    TokenInvalid,
    UpstreamUnavailable,
    UserCreateRejected,
)
from .metrics import IDENTITY_LATENCY_SECONDS
from .models import SignupRequest, Subject, TokenPair

LOGGER = logging.getLogger(__name__)

UPSTREAM = "identity-provider"


class KeycloakIdentityGateway:
    """Performs token, userinfo and admin round trips against a Keycloak realm.

    Every method is a single outbound call (signup is two: admin token, then
    user creation). Nothing is retried; a failure is final for the request
    that triggered it.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.keycloak_request_timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def login(self, username: str, password: str) -> TokenPair:
        response = await self._token_grant(
            "login",
            {"grant_type": "password", "username": username, "password": password},
        )
        if response.status_code != httpx.codes.OK:
            self._log_rejection("login", response)
            raise InvalidCredentials()
        return self._parse_tokens("login", response)

    async def refresh(self, refresh_token: str) -> TokenPair:
        response = await self._token_grant(
            "refresh",
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        if response.status_code != httpx.codes.OK:
            self._log_rejection("refresh", response)
            raise RefreshRejected()
        return self._parse_tokens("refresh", response)

    async def userinfo(self, access_token: str) -> Subject:
        response = await self._send(
            "userinfo",
            "GET",
            self._settings.keycloak_userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if response.status_code != httpx.codes.OK:
            self._log_rejection("userinfo", response)
            raise TokenInvalid()
        try:
            return Subject.model_validate(response.json())
        except ValueError as exc:
            raise UpstreamUnavailable(
                UPSTREAM, "userinfo", "Unexpected identity provider response"
            ) from exc

    async def verify(self, access_token: str) -> Subject:
        return await self.userinfo(access_token)

    async def signup(self, request: SignupRequest) -> None:
        admin_token = await self._admin_token()
        payload = {
            "email": request.email,
            "username": request.email,
            "enabled": True,
            "emailVerified": True,
            "firstName": request.given_name,
            "lastName": request.family_name,
            "credentials": [
                {"type": "password", "value": request.password, "temporary": False}
            ],
        }
        response = await self._send(
            "create_user",
            "POST",
            self._settings.keycloak_admin_users_url,
            json=payload,
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        if response.status_code == httpx.codes.CONFLICT:
            self._log_rejection("create_user", response)
            raise UserCreateRejected("User already exists", conflict=True)
        if response.status_code != httpx.codes.CREATED:
            self._log_rejection("create_user", response)
            raise UserCreateRejected()
        LOGGER.info("Created identity provider user", extra={"username": request.email})

    async def logout(self, refresh_token: str) -> None:
        response = await self._send(
            "logout",
            "POST",
            self._settings.keycloak_logout_url,
            data={
                "client_id": self._settings.keycloak_client_id,
                "client_secret": self._settings.keycloak_client_secret,
                "refresh_token": refresh_token,
            },
        )
        if response.status_code not in (httpx.codes.OK, httpx.codes.NO_CONTENT):
            self._log_rejection("logout", response)
            raise LogoutRejected()

    async def check_health(self) -> None:
        response = await self._send("discovery", "GET", self._settings.keycloak_discovery_url)
        if response.status_code >= 400:
            raise UpstreamUnavailable(
                UPSTREAM, "discovery", "Keycloak discovery endpoint is unavailable"
            )

    async def _admin_token(self) -> str:
        response = await self._token_grant("admin_token", {"grant_type": "client_credentials"})
        if response.status_code != httpx.codes.OK:
            self._log_rejection("admin_token", response)
            raise AdminTokenUnavailable()
        try:
            return self._parse_tokens("admin_token", response).access_token
        except UpstreamUnavailable as exc:
            raise AdminTokenUnavailable() from exc

    async def _token_grant(self, operation: str, form: dict[str, str]) -> httpx.Response:
        data = {
            "client_id": self._settings.keycloak_client_id,
            "client_secret": self._settings.keycloak_client_secret,
            **form,
        }
        return await self._send(operation, "POST", self._settings.keycloak_token_url, data=data)

    async def _send(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        with IDENTITY_LATENCY_SECONDS.labels(operation).time():
            try:
                return await self._http.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                LOGGER.warning(
                    "Identity provider unreachable",
                    extra={"operation": operation, "error": str(exc)},
                )
                raise UpstreamUnavailable(UPSTREAM, operation) from exc

    @staticmethod
    def _parse_tokens(operation: str, response: httpx.Response) -> TokenPair:
        try:
            return TokenPair.model_validate(response.json())
        except ValueError as exc:
            raise UpstreamUnavailable(
                UPSTREAM, operation, "Unexpected identity provider response"
            ) from exc

    @staticmethod
    def _log_rejection(operation: str, response: httpx.Response) -> None:
        LOGGER.warning(
            "Identity provider rejected request",
            extra={
                "operation": operation,
                "status": response.status_code,
                "body": response.text[:512],
            },
        )
