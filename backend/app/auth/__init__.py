"""Keycloak-backed authentication and token rotation."""

from .keycloak import KeycloakIdentityGateway
from .session import AuthContext, SessionAuthenticator

__all__ = ["AuthContext", "KeycloakIdentityGateway", "SessionAuthenticator"]
