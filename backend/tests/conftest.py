import sys
from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path

import httpx
import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.auth.dependencies import get_authenticator, get_identity_gateway  # noqa: E402
from app.auth.keycloak import KeycloakIdentityGateway  # noqa: E402
from app.auth.session import SessionAuthenticator  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.files.router import get_file_namespace  # noqa: E402
from app.main import app  # noqa: E402
from app.storage import FileNamespace, InMemoryObjectStore  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from .utils import FakeKeycloak, default_settings, generate_rsa_material  # noqa: E402


@pytest.fixture(scope="session")
def private_pem() -> bytes:
    pem, _ = generate_rsa_material()
    return pem


@pytest.fixture
def keycloak(private_pem: bytes) -> FakeKeycloak:
    fake = FakeKeycloak(private_pem=private_pem)
    fake.add_user(sub="u123", email="alice@example.com", password="password123")
    fake.add_user(sub="u456", email="bob@example.com", password="hunter2hunter2")
    return fake


@pytest.fixture
def gateway(keycloak: FakeKeycloak) -> KeycloakIdentityGateway:
    http_client = httpx.AsyncClient(transport=keycloak.transport())
    return KeycloakIdentityGateway(keycloak.settings, http_client=http_client)


@pytest.fixture
def authenticator(gateway: KeycloakIdentityGateway) -> SessionAuthenticator:
    return SessionAuthenticator(
        gateway,
        refresh_threshold=timedelta(minutes=2),
        proactive_threshold=timedelta(minutes=5),
    )


@pytest.fixture
def namespace() -> FileNamespace:
    return FileNamespace(InMemoryObjectStore())


@pytest.fixture
def client(
    gateway: KeycloakIdentityGateway,
    authenticator: SessionAuthenticator,
    namespace: FileNamespace,
) -> Iterator[TestClient]:
    """Test client wired to the fake Keycloak and an in-memory bucket.

    The lifespan is not entered, so no MinIO connection is attempted.
    """
    settings = default_settings()
    app.dependency_overrides[get_identity_gateway] = lambda: gateway
    app.dependency_overrides[get_authenticator] = lambda: authenticator
    app.dependency_overrides[get_file_namespace] = lambda: namespace
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
