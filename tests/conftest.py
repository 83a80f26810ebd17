import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from binding.client import FilmRegistryClient
from ledger.db import create_tables, get_session
from registry import main as registry_main
from registry.contract import FilmAddedListeners, FilmRegistry, deploy_registry
from signer import main as signer_main

DEPLOYER = "0x" + "ab" * 20
GOOD_TOKEN = "good-token"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def deployment(session):
    return deploy_registry(session, DEPLOYER)


@pytest.fixture
def listeners():
    return FilmAddedListeners()


@pytest.fixture
def emitted(listeners):
    events = []
    listeners.subscribe(lambda address, event: events.append((address, event)))
    return events


@pytest.fixture
def registry(session, deployment, listeners):
    return FilmRegistry(session, deployment.address, listeners=listeners)


@pytest.fixture
def override_session(engine):
    def _get_session():
        with Session(engine) as session:
            yield session
    return _get_session


def fake_caller(token: str) -> str:
    if token != GOOD_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")
    return DEPLOYER


@pytest.fixture
def registry_api(override_session):
    app = registry_main.app
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[registry_main.get_caller] = fake_caller
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def signer_api(override_session):
    app = signer_main.app
    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_client(engine, override_session):
    """Client binding wired to both services in-process."""

    async def signer_caller(token: str) -> str:
        with Session(engine) as session:
            account = await signer_main.account_from_token(session, token)
        if account is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        return account.address

    registry_main.app.dependency_overrides[get_session] = override_session
    registry_main.app.dependency_overrides[registry_main.get_caller] = signer_caller
    signer_main.app.dependency_overrides[get_session] = override_session

    def _make(address=None):
        return FilmRegistryClient(
            address=address,
            registry_http=httpx.AsyncClient(
                transport=httpx.ASGITransport(app=registry_main.app), base_url="http://registry"
            ),
            signer_http=httpx.AsyncClient(
                transport=httpx.ASGITransport(app=signer_main.app), base_url="http://signer"
            ),
        )

    yield _make
    registry_main.app.dependency_overrides.clear()
    signer_main.app.dependency_overrides.clear()
