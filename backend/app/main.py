import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, cast

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .auth.keycloak import KeycloakIdentityGateway
from .auth.router import profile_router
from .auth.router import router as auth_router
from .auth.session import SessionAuthenticator, token_headers
from .config import get_settings, parse_frontend_origins
from .errors import ServiceError
from .files import router as files_router
from .logging_config import setup_logging
from .storage import FileNamespace, MinioObjectStore

LOGGER = logging.getLogger(__name__)

TOKEN_HEADERS = [
    "X-New-Access-Token",
    "X-New-Refresh-Token",
    "X-Token-Refreshed",
    "X-Token-Expires-In",
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the shared, read-only service objects once per process."""
    settings = get_settings()
    setup_logging(settings.log_level)

    gateway = KeycloakIdentityGateway(settings)
    authenticator = SessionAuthenticator(
        gateway,
        refresh_threshold=timedelta(seconds=settings.token_refresh_threshold_seconds),
        proactive_threshold=timedelta(minutes=settings.proactive_refresh_threshold_minutes),
        clock_skew=timedelta(seconds=settings.claim_clock_skew_seconds),
    )
    store = MinioObjectStore(
        endpoint=settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        bucket=settings.minio_bucket,
        secure=settings.minio_secure,
        region=settings.minio_region,
    )
    await store.ensure_bucket()

    state = cast(Any, app.state)
    state.identity_gateway = gateway
    state.authenticator = authenticator
    state.file_namespace = FileNamespace(store)
    LOGGER.info("File vault API started", extra={"bucket": settings.minio_bucket})
    yield
    await gateway.aclose()


app = FastAPI(
    title="File Vault API",
    version="0.1.0",
    docs_url="/docs",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "Content-Type", "Authorization", "X-Refresh-Token"],
    expose_headers=["Content-Length", *TOKEN_HEADERS],
)


@app.middleware("http")
async def attach_rotated_tokens(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Send rotated tokens back even when the route ended in an error."""
    response = await call_next(request)
    rotated = getattr(request.state, "rotated_tokens", None)
    if rotated is not None:
        response.headers.update(token_headers(rotated))
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error(
            "Request failed",
            extra={"path": request.url.path, "reason": exc.reason, **exc.details},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "reason": "invalid_request", "fields": fields},
    )


api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(profile_router)
api_router.include_router(files_router)
app.include_router(api_router)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    """Basic readiness probe used by compose, k8s, and CI smoke tests."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
