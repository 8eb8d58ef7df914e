"""Tests for the app module."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest
import pytz
from shiftcal import configure_timezone, get_timezone
from shiftcal.app import create_app
from shiftcal.config import load_api_token
from shiftcal.scheduling import DEFAULT_USER_EMAIL
from sqlalchemy.exc import OperationalError

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path

    from flask import Flask
    from pytest_mock import MockerFixture


@pytest.fixture()
def _reset_logging() -> Generator[None, None, None]:
    """Remove the handlers added by configure_logging."""
    yield
    for name in ("shiftcal", "sqlalchemy.engine"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)


@pytest.mark.usefixtures("_reset_logging")
def test_logging_enabled(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test that logging is enabled if the environment variable is set."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ENABLE_LOGGING", "true")

    app = create_app()

    assert app.logger.parent
    assert app.logger.parent.level == logging.INFO
    assert (tmp_path / "logs" / "shiftcal.log").exists()
    assert not (tmp_path / "logs" / "shiftcal-sql.log").exists()


@pytest.mark.usefixtures("_reset_logging")
def test_sql_log_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """The SQL store gets its own log file."""
    monkeypatch.setenv("FLASK_STORE", "sql")
    monkeypatch.setenv("FLASK_ENABLE_LOGGING", "true")
    monkeypatch.setenv("FLASK_LOG_DIR", str(tmp_path / "var"))
    monkeypatch.delenv("ENABLE_LOGGING", raising=False)

    create_app()

    assert (tmp_path / "var" / "shiftcal.log").exists()
    assert (tmp_path / "var" / "shiftcal-sql.log").exists()
    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO


@pytest.mark.usefixtures("_reset_logging")
def test_logging_handlers_added_once(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Creating the app again reuses the handlers already attached."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ENABLE_LOGGING", "1")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    create_app()
    create_app()

    handlers = logging.getLogger("shiftcal").handlers
    assert [handler.get_name() for handler in handlers] == [
        "shiftcal-file",
        "shiftcal-console",
    ]
    assert all(handler.level == logging.DEBUG for handler in handlers)


def test_unknown_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    """An unknown LOG_LEVEL stops the app."""
    monkeypatch.setenv("LOG_LEVEL", "loud")

    with pytest.raises(ValueError, match="LOUD"):
        create_app()


def test_logging_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that logging is disabled if the environment variable is not set."""
    monkeypatch.delenv("ENABLE_LOGGING", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    app = create_app()
    assert app.logger.parent
    assert app.logger.parent.level != logging.INFO


def test_memory_store(memory_app: Flask) -> None:
    """FLASK_STORE=memory selects the in-memory store."""
    assert memory_app.extensions["scheduling"].store.backend == "memory"
    assert "shiftcal.db" not in memory_app.extensions


def test_sql_store(monkeypatch: pytest.MonkeyPatch) -> None:
    """FLASK_STORE=sql selects the database."""
    monkeypatch.setenv("FLASK_STORE", "sql")

    app = create_app()

    assert app.extensions["scheduling"].store.backend == "sql"
    assert "shiftcal.db" in app.extensions


def test_store_fallback(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """An unreachable database falls back to the in-memory store."""
    monkeypatch.setenv("FLASK_STORE", "sql")
    monkeypatch.setenv(
        "FLASK_SQLALCHEMY_DATABASE_URI",
        f"sqlite:///{tmp_path}/missing/dir/shifts.db",
    )

    app = create_app()

    assert app.extensions["scheduling"].store.backend == "memory"
    response = app.test_client().get("/api/health")
    assert response.status_code == 200


def test_store_fallback_disabled(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    """Without fallback an unreachable database stops the app."""
    monkeypatch.setenv("FLASK_STORE", "sql")
    monkeypatch.setenv("FLASK_STORE_FALLBACK", "false")
    monkeypatch.setenv(
        "FLASK_SQLALCHEMY_DATABASE_URI",
        f"sqlite:///{tmp_path}/missing/dir/shifts.db",
    )

    with pytest.raises(SystemExit) as excinfo:
        create_app()

    assert excinfo.value.code == 1


def test_unknown_store(monkeypatch: pytest.MonkeyPatch) -> None:
    """An unknown store name is a configuration error."""
    monkeypatch.setenv("FLASK_STORE", "mongo")

    with pytest.raises(ValueError, match="Unknown store"):
        create_app()


def test_database_down(monkeypatch: pytest.MonkeyPatch, mocker: MockerFixture) -> None:
    """Requests fail with a store error when the database goes away."""
    monkeypatch.setenv("FLASK_STORE", "sql")
    app = create_app()
    db = app.extensions["shiftcal.db"]
    mocker.patch.object(
        db,
        "check_connection",
        side_effect=OperationalError("SELECT 1", {}, Exception("gone")),
    )

    response = app.test_client().get("/api/health")

    assert response.status_code == 500
    assert response.json["code"] == "StoreError"


def test_token_from_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Without FLASK_API_TOKEN the token is read from the token file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FLASK_API_TOKEN")
    (tmp_path / ".api_token").write_text("from-file\n")

    app = create_app()

    assert app.config["API_TOKEN"] == "from-file"
    response = app.test_client().get(
        "/api/users",
        headers={"Authorization": "Bearer from-file"},
    )
    assert response.status_code == 200


def test_token_file_created(tmp_path: Path) -> None:
    """A missing token file is created with a random token."""
    token_file = tmp_path / "token"

    token = load_api_token(str(token_file))

    assert token
    assert token_file.read_text() == token
    assert load_api_token(str(token_file)) == token


def test_provision_default_user(monkeypatch: pytest.MonkeyPatch) -> None:
    """The default user is created at startup when asked to."""
    monkeypatch.setenv("FLASK_PROVISION_DEFAULT_USER", "true")

    app = create_app()

    users = app.extensions["scheduling"].list_users()
    assert [user.email for user in users] == [DEFAULT_USER_EMAIL]


def test_no_default_user(memory_app: Flask) -> None:
    """No user is created unless asked to."""
    assert memory_app.extensions["scheduling"].list_users() == []


def test_default_timezone() -> None:
    """The timezone configured for the tests is Europe/Madrid."""
    tz = get_timezone()
    assert tz.zone == "Europe/Madrid"


def test_env_timezone() -> None:
    """The timezone can be set through the TZ environment variable."""
    with pytest.MonkeyPatch.context() as mp:
        mp.setenv("TZ", "America/New_York")
        configure_timezone()

        tz = get_timezone()
        assert tz.zone == "America/New_York"

    configure_timezone()
    tz = get_timezone()
    assert tz.zone == "Europe/Madrid"


def test_unknown_env_timezone(monkeypatch: pytest.MonkeyPatch) -> None:
    """An unknown TZ value leaves the default zone in place."""
    monkeypatch.setenv("TZ", "Nowhere/Land")

    assert configure_timezone().zone == "Europe/Madrid"
    assert get_timezone().zone == "Europe/Madrid"


def test_unknown_timezone_argument() -> None:
    """An explicit zone name must exist."""
    with pytest.raises(pytz.UnknownTimeZoneError):
        configure_timezone("Nowhere/Land")

    assert get_timezone().zone == "Europe/Madrid"
