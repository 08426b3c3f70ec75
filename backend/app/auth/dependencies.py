from __future__ import annotations

from typing import Annotated, cast

from fastapi import Depends, Header, Request

from .keycloak import KeycloakIdentityGateway
from .session import AuthContext, SessionAuthenticator


def get_identity_gateway(request: Request) -> KeycloakIdentityGateway:
    return cast(KeycloakIdentityGateway, request.app.state.identity_gateway)


def get_authenticator(request: Request) -> SessionAuthenticator:
    return cast(SessionAuthenticator, request.app.state.authenticator)


AuthenticatorDep = Annotated[SessionAuthenticator, Depends(get_authenticator)]


async def get_auth_context(
    request: Request,
    authenticator: AuthenticatorDep,
    authorization: Annotated[str | None, Header()] = None,
    x_refresh_token: Annotated[str | None, Header()] = None,
) -> AuthContext:
    """Resolve the caller's identity, rotating tokens when needed.

    Rotated tokens are left on ``request.state`` so they reach the client
    whatever status the route ends with.
    """
    context = await authenticator.authenticate(authorization, x_refresh_token)
    if not context.refreshed:
        context = await authenticator.proactive_refresh(context)
    request.state.rotated_tokens = context.rotated
    return context


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]
