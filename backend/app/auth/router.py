from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, status
from fastapi.responses import JSONResponse

from ..errors import AuthError
from .dependencies import CurrentAuth, get_identity_gateway
from .keycloak import KeycloakIdentityGateway
from .models import LoginRequest, RefreshRequest, SignupRequest, Subject, TokenPair
from .session import parse_bearer

router = APIRouter(prefix="/auth", tags=["auth"])
profile_router = APIRouter(prefix="/user", tags=["user"])

GatewayDep = Annotated[KeycloakIdentityGateway, Depends(get_identity_gateway)]


@router.get("/health")
async def auth_health(gateway: GatewayDep) -> dict[str, str]:
    await gateway.check_health()
    return {"status": "ok"}


@router.post("/login")
async def login(payload: LoginRequest, gateway: GatewayDep) -> TokenPair:
    return await gateway.login(payload.username, payload.password)


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, gateway: GatewayDep) -> dict[str, str]:
    await gateway.signup(payload)
    return {"message": "User created successfully"}


@router.post("/refresh")
async def refresh(payload: RefreshRequest, gateway: GatewayDep) -> TokenPair:
    return await gateway.refresh(payload.refresh_token)


@router.post("/logout")
async def logout(payload: RefreshRequest, gateway: GatewayDep) -> dict[str, str]:
    await gateway.logout(payload.refresh_token)
    return {"message": "Logged out successfully"}


@router.post("/verify", response_model=None)
async def verify(
    gateway: GatewayDep,
    authorization: Annotated[str | None, Header()] = None,
) -> dict[str, bool] | JSONResponse:
    """Ask the identity provider whether the presented token is still good."""
    try:
        await gateway.verify(parse_bearer(authorization))
    except AuthError as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={"valid": False, "error": exc.message},
        )
    return {"valid": True}


@profile_router.get("/profile")
async def profile(auth: CurrentAuth) -> Subject:
    return auth.subject
