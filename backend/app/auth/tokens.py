"""Unverified inspection of Keycloak access tokens.

Claims decoded here are only used to decide *when* to refresh. Whether a
token grants access is always decided by the identity provider through the
userinfo endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

_UNVERIFIED_OPTIONS = {
    "verify_signature": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
}

_NO_TIME_LEFT = timedelta(0)


@dataclass(frozen=True, slots=True)
class TokenClaims:
    subject: str | None
    expires_at: datetime | None
    issued_at: datetime | None
    not_before: datetime | None
    email: str | None = None
    preferred_username: str | None = None


@dataclass(frozen=True, slots=True)
class TokenStatus:
    """Expiry classification of an access token.

    ``remaining`` is zero for expired or unreadable tokens.
    """

    remaining: timedelta
    claims: TokenClaims | None = None

    @property
    def expired(self) -> bool:
        return self.remaining <= _NO_TIME_LEFT


EXPIRED = TokenStatus(remaining=_NO_TIME_LEFT)


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def read_claims(token: Any) -> TokenClaims | None:
    """Decode the token payload without checking its signature."""
    if not isinstance(token, str) or not token:
        return None
    try:
        payload = jwt.decode(token, options=_UNVERIFIED_OPTIONS)
    except jwt.PyJWTError:
        return None
    if not isinstance(payload, dict):
        return None

    subject = payload.get("sub")
    email = payload.get("email")
    username = payload.get("preferred_username")
    return TokenClaims(
        subject=subject if isinstance(subject, str) else None,
        expires_at=_timestamp(payload.get("exp")),
        issued_at=_timestamp(payload.get("iat")),
        not_before=_timestamp(payload.get("nbf")),
        email=email if isinstance(email, str) else None,
        preferred_username=username if isinstance(username, str) else None,
    )


def inspect_token(token: Any, *, now: datetime | None = None) -> TokenStatus:
    """Classify a token as expired or valid with time remaining.

    Never raises: anything that cannot be decoded, or that carries no usable
    ``exp`` claim, is treated as expired.
    """
    claims = read_claims(token)
    if claims is None or claims.expires_at is None:
        return EXPIRED

    current = now or datetime.now(UTC)
    remaining = claims.expires_at - current
    if remaining <= _NO_TIME_LEFT:
        return TokenStatus(remaining=_NO_TIME_LEFT, claims=claims)
    return TokenStatus(remaining=remaining, claims=claims)


def check_claim_times(
    claims: TokenClaims,
    *,
    now: datetime | None = None,
    skew: timedelta = timedelta(minutes=1),
) -> str | None:
    """Return why the token's time claims are unacceptable, or ``None``."""
    current = now or datetime.now(UTC)
    if claims.expires_at is not None and claims.expires_at <= current:
        return "token has expired"
    if claims.not_before is not None and claims.not_before > current + skew:
        return "token is not valid yet"
    if claims.issued_at is not None and claims.issued_at > current + skew:
        return "token was issued in the future"
    return None
