"""Configuration for pytest."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import httpx
import pytest
from shiftcal import configure_timezone
from shiftcal.app import create_app
from shiftcal.client import SchedulingClient
from shiftcal.database import DB
from shiftcal.scheduling import SchedulingService
from shiftcal.store import MemoryStore, SQLStore

if TYPE_CHECKING:
    from collections.abc import Generator

    from flask import Flask
    from flask.testing import FlaskClient
    from shiftcal.models import User
    from shiftcal.store import Store

TOKEN = "test-token"  # noqa: S105
AUTH = {"Authorization": f"Bearer {TOKEN}"}
TIMEZONE = "Europe/Madrid"


@pytest.fixture(scope="session", autouse=True)
def _set_env() -> None:
    """Configure the app through environment variables."""
    os.environ["FLASK_API_TOKEN"] = TOKEN
    os.environ["FLASK_STORE"] = "memory"
    os.environ["FLASK_SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
    os.environ["TZ"] = TIMEZONE
    configure_timezone(TIMEZONE)


@pytest.fixture()
def auth() -> dict[str, str]:
    """Headers carrying the API token."""
    return dict(AUTH)


@pytest.fixture(params=["memory", "sql"])
def app(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> Flask:
    """Create a new app for each test, once per store backend."""
    monkeypatch.setenv("FLASK_STORE", request.param)
    app = create_app()
    app.config.update({"TESTING": True})
    return app


@pytest.fixture()
def memory_app() -> Flask:
    """Create a new app backed by the in-memory store."""
    app = create_app()
    app.config.update({"TESTING": True})
    return app


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    """Create a test client for the app."""
    return app.test_client()


@pytest.fixture()
def api_user(client: FlaskClient, auth: dict[str, str]) -> dict[str, str]:
    """Create a user through the API."""
    response = client.post(
        "/api/users",
        json={"name": "A", "email": "a@x.com"},
        headers=auth,
    )
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture(params=["memory", "sql"])
def store(request: pytest.FixtureRequest) -> Generator[Store, None, None]:
    """Provide an empty store of each backend."""
    if request.param == "memory":
        yield MemoryStore()
        return

    db = DB("sqlite:///:memory:")
    db.create_all()
    yield SQLStore(db)
    db.session.remove()
    db.drop_all()


@pytest.fixture()
def service(store: Store) -> SchedulingService:
    """Provide a scheduling service over an empty store."""
    return SchedulingService(store)


@pytest.fixture()
def user(service: SchedulingService) -> User:
    """Create a user to own shifts and blocked days."""
    return service.create_user("A", "a@x.com")


@pytest.fixture()
def other_user(service: SchedulingService) -> User:
    """Create a second user."""
    return service.create_user("B", "b@x.com")


class CountingTransport(httpx.WSGITransport):
    """WSGI transport that records every request it sends."""

    def __init__(self, app: Flask) -> None:
        """Send the requests to the given app."""
        super().__init__(app=app)
        self.requests: list[tuple[str, str]] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Record the request and let the app answer it."""
        self.requests.append((request.method, request.url.path))
        return super().handle_request(request)


@pytest.fixture()
def transport(memory_app: Flask) -> CountingTransport:
    """Provide a transport that reaches the in-memory app."""
    return CountingTransport(memory_app)


@pytest.fixture()
def api_client(transport: CountingTransport) -> Generator[SchedulingClient, None, None]:
    """Provide an API client wired to the in-memory app."""
    with SchedulingClient(
        "http://testserver/api",
        TOKEN,
        transport=transport,
    ) as api_client:
        yield api_client
