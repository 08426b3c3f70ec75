from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from urllib.parse import parse_qs

import httpx
import jwt
from app.config import Settings
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_rsa_material(kid: str = "test-key") -> tuple[bytes, dict[str, object]]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(private_key.public_key()))
    public_jwk.setdefault("kid", kid)
    public_jwk.setdefault("use", "sig")
    public_jwk.setdefault("alg", "RS256")
    return private_pem, {"keys": [public_jwk]}


def default_settings() -> Settings:
    return Settings(
        keycloak_server_url="http://keycloak.test",
        keycloak_realm="vault",
        keycloak_client_id="backend",
        keycloak_client_secret="backend-secret",
    )


def build_token(
    private_pem: bytes,
    *,
    kid: str = "test-key",
    expires_in: int = 3600,
    subject: str = "user-123",
    email: str = "user@example.com",
    issued_at: int | None = None,
    not_before: int | None = None,
) -> str:
    settings = default_settings()
    now = int(time.time())
    claims: dict[str, object] = {
        "sub": subject,
        "email": email,
        "iss": settings.keycloak_issuer,
        "aud": "account",
        "iat": issued_at if issued_at is not None else now,
        "exp": now + expires_in,
        "jti": str(uuid.uuid4()),
    }
    if not_before is not None:
        claims["nbf"] = not_before
    return jwt.encode(claims, private_pem, algorithm="RS256", headers={"kid": kid})


@dataclass
class FakeUser:
    sub: str
    email: str
    password: str
    given_name: str = ""
    family_name: str = ""


@dataclass
class FakeKeycloak:
    """In-process stand-in for the Keycloak endpoints the gateway calls."""

    private_pem: bytes
    settings: Settings = field(default_factory=default_settings)
    users: dict[str, FakeUser] = field(default_factory=dict)
    access_tokens: dict[str, str] = field(default_factory=dict)
    refresh_tokens: dict[str, str] = field(default_factory=dict)
    admin_tokens: set[str] = field(default_factory=set)
    admin_enabled: bool = True
    calls: list[str] = field(default_factory=list)

    def add_user(self, sub: str, email: str, password: str) -> FakeUser:
        user = FakeUser(sub=sub, email=email, password=password)
        self.users[email] = user
        return user

    def issue_access_token(self, email: str, *, expires_in: int = 3600) -> str:
        user = self.users[email]
        token = build_token(
            self.private_pem, subject=user.sub, email=user.email, expires_in=expires_in
        )
        self.access_tokens[token] = email
        return token

    def issue_pair(self, email: str, *, expires_in: int = 3600) -> dict[str, object]:
        refresh_token = f"refresh-{uuid.uuid4()}"
        self.refresh_tokens[refresh_token] = email
        return {
            "access_token": self.issue_access_token(email, expires_in=expires_in),
            "expires_in": expires_in,
            "refresh_expires_in": 1800,
            "refresh_token": refresh_token,
            "token_type": "Bearer",
            "session_state": str(uuid.uuid4()),
            "scope": "openid email profile",
        }

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        issuer_path = f"/realms/{self.settings.keycloak_realm}"
        if path == f"{issuer_path}/protocol/openid-connect/token":
            return self._token(_form(request))
        if path == f"{issuer_path}/protocol/openid-connect/userinfo":
            return self._userinfo(request)
        if path == f"{issuer_path}/protocol/openid-connect/logout":
            return self._logout(_form(request))
        if path == f"/admin/realms/{self.settings.keycloak_realm}/users":
            return self._create_user(request)
        if path == f"{issuer_path}/.well-known/openid-configuration":
            return httpx.Response(200, json={"issuer": self.settings.keycloak_issuer})
        return httpx.Response(404)

    def _token(self, form: dict[str, str]) -> httpx.Response:
        grant = form.get("grant_type", "")
        self.calls.append(grant)
        if form.get("client_secret") != self.settings.keycloak_client_secret:
            return httpx.Response(401, json={"error": "unauthorized_client"})
        if grant == "password":
            user = self.users.get(form.get("username", ""))
            if user is None or user.password != form.get("password"):
                return httpx.Response(401, json={"error": "invalid_grant"})
            return httpx.Response(200, json=self.issue_pair(user.email))
        if grant == "refresh_token":
            email = self.refresh_tokens.pop(form.get("refresh_token", ""), None)
            if email is None:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json=self.issue_pair(email))
        if grant == "client_credentials":
            if not self.admin_enabled:
                return httpx.Response(401, json={"error": "unauthorized_client"})
            token = f"admin-{uuid.uuid4()}"
            self.admin_tokens.add(token)
            return httpx.Response(200, json={"access_token": token, "expires_in": 60})
        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _userinfo(self, request: httpx.Request) -> httpx.Response:
        self.calls.append("userinfo")
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        email = self.access_tokens.get(token)
        if email is None or _expired(token):
            return httpx.Response(401, json={"error": "invalid_token"})
        user = self.users[email]
        return httpx.Response(
            200,
            json={
                "sub": user.sub,
                "email": user.email,
                "email_verified": True,
                "preferred_username": user.email,
                "given_name": user.given_name,
                "family_name": user.family_name,
            },
        )

    def _logout(self, form: dict[str, str]) -> httpx.Response:
        self.calls.append("logout")
        if self.refresh_tokens.pop(form.get("refresh_token", ""), None) is None:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(204)

    def _create_user(self, request: httpx.Request) -> httpx.Response:
        self.calls.append("create_user")
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in self.admin_tokens:
            return httpx.Response(403)
        body = json.loads(request.content)
        if body["username"] in self.users:
            return httpx.Response(409, json={"errorMessage": "User exists with same username"})
        user = self.add_user(
            sub=str(uuid.uuid4()),
            email=body["email"],
            password=body["credentials"][0]["value"],
        )
        user.given_name = body.get("firstName", "")
        user.family_name = body.get("lastName", "")
        return httpx.Response(201)


def _form(request: httpx.Request) -> dict[str, str]:
    parsed = parse_qs(request.content.decode())
    return {key: values[0] for key, values in parsed.items()}


def _expired(token: str) -> bool:
    claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    return int(claims["exp"]) <= int(time.time())
