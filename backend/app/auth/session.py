"""Per-request token lifecycle decisions.

Given the presented bearer token and an optional refresh token, decide
whether to use the token as-is, rotate it before it runs out, rotate it
because it already ran out, or reject the request.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from ..errors import MissingOrMalformedCredential, ServiceError, SessionExpired, TokenInvalid
from .metrics import AUTH_DECISIONS_TOTAL, TOKEN_REFRESH_TOTAL
from .models import Subject, TokenPair
from .tokens import check_claim_times, inspect_token

LOGGER = logging.getLogger(__name__)


class IdentityGateway(Protocol):
    async def refresh(self, refresh_token: str) -> TokenPair:  # pragma: no cover - protocol definition
        ...

    async def userinfo(self, access_token: str) -> Subject:  # pragma: no cover - protocol definition
        ...


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Authenticated identity for the current request."""

    subject: Subject
    access_token: str
    refresh_token: str | None = None
    rotated: TokenPair | None = None

    @property
    def refreshed(self) -> bool:
        return self.rotated is not None


def parse_bearer(authorization: str | None) -> str:
    if not authorization:
        raise MissingOrMalformedCredential()
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise MissingOrMalformedCredential("Invalid authorization header format")
    return parts[1]


def token_headers(tokens: TokenPair) -> dict[str, str]:
    """Response headers that hand rotated tokens back to the client.

    An empty refresh token is left out so the client keeps the one it has.
    """
    headers = {
        "X-New-Access-Token": tokens.access_token,
        "X-Token-Refreshed": "true",
        "X-Token-Expires-In": str(tokens.expires_in),
    }
    if tokens.refresh_token:
        headers["X-New-Refresh-Token"] = tokens.refresh_token
    return headers


class SessionAuthenticator:
    def __init__(
        self,
        gateway: IdentityGateway,
        *,
        refresh_threshold: timedelta = timedelta(minutes=2),
        proactive_threshold: timedelta = timedelta(minutes=5),
        clock_skew: timedelta = timedelta(minutes=1),
    ) -> None:
        self._gateway = gateway
        self._refresh_threshold = refresh_threshold
        self._proactive_threshold = proactive_threshold
        self._clock_skew = clock_skew

    async def authenticate(self, authorization: str | None, refresh_token: str | None) -> AuthContext:
        try:
            access_token = parse_bearer(authorization)
        except MissingOrMalformedCredential:
            AUTH_DECISIONS_TOTAL.labels("missing_credential").inc()
            raise
        refresh_token = refresh_token or None
        status = inspect_token(access_token)

        if refresh_token and (status.expired or status.remaining < self._refresh_threshold):
            stage = "reactive" if status.expired else "inline"
            context = await self._rotate(refresh_token, stage)
            if context is not None:
                AUTH_DECISIONS_TOTAL.labels(f"rotated_{stage}").inc()
                return context
            if status.expired:
                AUTH_DECISIONS_TOTAL.labels("session_expired").inc()
                LOGGER.info("Expired access token could not be rotated")
                raise SessionExpired()

        if not status.expired and status.claims is not None:
            problem = check_claim_times(status.claims, skew=self._clock_skew)
            if problem is not None:
                AUTH_DECISIONS_TOTAL.labels("token_invalid").inc()
                raise TokenInvalid(details={"claims": problem})

        try:
            subject = await self._gateway.userinfo(access_token)
        except TokenInvalid as exc:
            if status.expired:
                AUTH_DECISIONS_TOTAL.labels("session_expired").inc()
                raise SessionExpired() from exc
            AUTH_DECISIONS_TOTAL.labels("token_invalid").inc()
            raise

        AUTH_DECISIONS_TOTAL.labels("accepted").inc()
        return AuthContext(subject=subject, access_token=access_token, refresh_token=refresh_token)

    async def proactive_refresh(self, context: AuthContext) -> AuthContext:
        """Rotate a still-valid token that is close to expiry.

        The subject resolved for this request is kept; only the tokens handed
        back to the client change. Failures leave the context untouched.
        """
        if context.refreshed or not context.refresh_token:
            return context

        status = inspect_token(context.access_token)
        if status.expired or status.remaining >= self._proactive_threshold:
            return context
        # Below the inline threshold, authenticate() already tried to rotate.
        if status.remaining < self._refresh_threshold:
            return context

        try:
            tokens = await self._gateway.refresh(context.refresh_token)
        except ServiceError as exc:
            TOKEN_REFRESH_TOTAL.labels("proactive", "failed").inc()
            LOGGER.debug("Proactive refresh failed", extra={"error": exc.message})
            return context

        TOKEN_REFRESH_TOTAL.labels("proactive", "succeeded").inc()
        return dataclasses.replace(context, rotated=tokens)

    async def _rotate(self, refresh_token: str, stage: str) -> AuthContext | None:
        try:
            tokens = await self._gateway.refresh(refresh_token)
            subject = await self._gateway.userinfo(tokens.access_token)
        except ServiceError as exc:
            TOKEN_REFRESH_TOTAL.labels(stage, "failed").inc()
            LOGGER.info(
                "Token rotation failed",
                extra={"stage": stage, "reason": exc.reason},
            )
            return None

        TOKEN_REFRESH_TOTAL.labels(stage, "succeeded").inc()
        LOGGER.info("Rotated access token", extra={"stage": stage, "sub": subject.sub})
        return AuthContext(
            subject=subject,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or refresh_token,
            rotated=tokens,
        )
