"""Flask App serving the scheduling API."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from . import configure_timezone
from .config import TOKEN_FILE, load_api_token
from .database import DB
from .errors import StoreError
from .routes import register_routes
from .scheduling import DEFAULT_USER_EMAIL, DEFAULT_USER_NAME, SchedulingService
from .store import MemoryStore, SQLStore, Store

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable

    from flask import Response

LOGFILE = "shiftcal.log"
SQLLOGFILE = "shiftcal-sql.log"
LOGFORMAT = "%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]"
TRUTHY = ("true", "1", "t", "yes")


class Config:
    """Default configuration. Override with FLASK_ prefixed env variables."""

    ENABLE_LOGGING = False
    LOG_LEVEL = logging.WARNING
    LOG_DIR = "logs"
    """Where the log files go when logging is enabled."""

    SQLALCHEMY_DATABASE_URI = "sqlite:///shifts.db"
    STORE = "sql"
    """sql or memory."""
    STORE_FALLBACK = True
    """Use the in-memory store if the database cannot be reached at startup."""
    API_TOKEN: str | None = None
    """Bearer token expected by the API. Read from .api_token if not set."""
    DEFAULT_USER_NAME = DEFAULT_USER_NAME
    DEFAULT_USER_EMAIL = DEFAULT_USER_EMAIL
    PROVISION_DEFAULT_USER = False
    DEBUG = False
    HOST = "localhost"
    PORT = 3000


def _log_settings(app: Flask) -> tuple[int, bool]:
    """Return the log level and whether log files are written.

    The LOG_LEVEL and ENABLE_LOGGING environment variables win over the
    app config. Writing log files raises the level to at least INFO.
    """
    level = os.getenv("LOG_LEVEL") or app.config["LOG_LEVEL"]
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            msg = f"Unknown log level: {name}"
            raise ValueError(msg)

    enabled = os.getenv("ENABLE_LOGGING", app.config["ENABLE_LOGGING"])
    if isinstance(enabled, str):
        enabled = enabled.lower() in TRUTHY
    if enabled:
        level = min(level, logging.INFO)
    return level, bool(enabled)


def _add_handler(
    logger: logging.Logger,
    name: str,
    make: Callable[[], logging.Handler],
    level: int,
) -> None:
    """Attach a handler once. Calling again only updates its level."""
    for handler in logger.handlers:
        if handler.get_name() == name:
            handler.setLevel(level)
            return
    handler = make()
    handler.set_name(name)
    handler.setFormatter(logging.Formatter(LOGFORMAT))
    handler.setLevel(level)
    logger.addHandler(handler)


def configure_logging(app: Flask) -> Path | None:
    """Send the shiftcal logs to a file and the console when enabled.

    Returns the log directory, or None when logging is left alone.
    """
    level, enabled = _log_settings(app)
    if not enabled:
        return None

    log_dir = Path(app.config["LOG_DIR"])
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("shiftcal")
    logger.setLevel(level)
    _add_handler(
        logger,
        "shiftcal-file",
        lambda: logging.FileHandler(log_dir / LOGFILE),
        level,
    )
    _add_handler(logger, "shiftcal-console", logging.StreamHandler, level)
    logger.info("Shiftcal startup. Logs in %s", log_dir)
    return log_dir


def configure_sql_logging(log_dir: Path) -> None:
    """Write the statements of the SQL store to their own file."""
    sqllogger = logging.getLogger("sqlalchemy.engine")
    sqllogger.setLevel(logging.INFO)
    _add_handler(
        sqllogger,
        "shiftcal-sql",
        lambda: logging.FileHandler(log_dir / SQLLOGFILE),
        logging.INFO,
    )


def create_store(app: Flask) -> Store:
    """Create the store selected by the STORE setting.

    When the database cannot be initialised the app falls back to the
    in-memory store, unless STORE_FALLBACK is off.
    """
    kind = str(app.config["STORE"]).lower()
    if kind == MemoryStore.backend:
        app.logger.warning("Using in-memory storage. Data is lost on restart.")
        return MemoryStore()
    if kind != SQLStore.backend:
        msg = f"Unknown store: {kind}"
        raise ValueError(msg)

    db = DB()
    try:
        db.init_app(app)
        db.init_db()
        db.check_connection()
    except SQLAlchemyError:
        app.logger.exception("Database connection failed.")
        if not app.config["STORE_FALLBACK"]:
            sys.exit(1)
        app.logger.warning("Falling back to in-memory storage for demo purposes.")
        return MemoryStore()
    finally:
        if db.engine:
            db.session.remove()

    app.logger.info("DB_URI: %s", app.config["SQLALCHEMY_DATABASE_URI"])
    app.extensions["shiftcal.db"] = db
    return SQLStore(db)


def create_app() -> Flask:
    """Create the Flask app."""
    app = Flask("shiftcal.app")
    app.config.from_object(Config)
    app.config.from_prefixed_env()

    log_dir = configure_logging(app)
    configure_timezone()

    if not app.config["API_TOKEN"]:
        app.config["API_TOKEN"] = load_api_token()
        app.logger.info("API token read from %s", TOKEN_FILE)

    store = create_store(app)
    if log_dir is not None and store.backend == SQLStore.backend:
        configure_sql_logging(log_dir)
    service = SchedulingService(store)
    app.extensions["scheduling"] = service
    register_routes(app)

    if app.config["PROVISION_DEFAULT_USER"]:
        with app.app_context():
            service.ensure_default_user(
                app.config["DEFAULT_USER_NAME"],
                app.config["DEFAULT_USER_EMAIL"],
            )

    db: DB | None = app.extensions.get("shiftcal.db")
    if db is not None:

        @app.before_request
        def check_db_connection() -> tuple[Response, int] | None:
            """Check that the database can still be reached."""
            try:
                db.check_connection()
            except SQLAlchemyError:
                app.logger.exception("Error connecting to the database.")
                db.session.rollback()
                error = StoreError("Cannot connect to the database.")
                return jsonify(error.to_dict()), error.status_code
            return None

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException) -> tuple[Response, int]:
        return jsonify({"error": e.description}), e.code or 500

    @app.errorhandler(Exception)
    def handle_exception(_e: Exception) -> tuple[Response, int]:
        msg = "Internal server error"
        app.logger.exception(msg)
        return jsonify({"error": msg}), 500

    return app


if __name__ == "__main__":  # pragma: no cover
    app = create_app()
    app.run(debug=app.config["DEBUG"], port=app.config["PORT"], host=app.config["HOST"])
