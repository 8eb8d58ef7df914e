"""Decouples the database initialization from flask app creation."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, text
from sqlalchemy.orm import scoped_session, sessionmaker

from .models import Base

if TYPE_CHECKING:
    from flask import Flask
    from sqlalchemy.engine import Engine
    from sqlalchemy.schema import MetaData

logger = getLogger(__name__)


class DB:
    """Database connection.

    Manages the engine and the sessions. Flask-SQLAlchemy is not used
    because the models must be usable without a Flask app, from the
    command line utilities and from the tests.

    Each app gets its own instance, created when the SQL store is
    selected at startup.
    """

    engine: Engine | None = None
    session_factory: sessionmaker
    session: scoped_session

    def __init__(self, uri: str | None = None) -> None:
        """Optionally bind to a database URI straight away."""
        if uri:
            self.bind(uri)

    def bind(self, uri: str) -> None:
        """Create the engine and the session registry for a database URI."""
        if self.engine:
            logger.debug("Database already initialised. Ignored.")
            return

        self.engine = create_engine(uri, echo=False, future=True)
        self.session_factory = sessionmaker(bind=self.engine)
        self.session = scoped_session(self.session_factory)

    def init_app(self, app: Flask) -> None:
        """Initialize the database connection for a Flask app."""
        self.bind(app.config["SQLALCHEMY_DATABASE_URI"])
        app.teardown_appcontext(self.shutdown_session)

    def shutdown_session(self, _exception: BaseException | None = None) -> None:
        """Remove the session after the request is finished."""
        self.session.remove()

    def create_all(self) -> None:
        """Create all tables."""
        logger.debug("Creating database tables.")
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """Drop all tables."""
        logger.debug("Dropping database tables.")
        Base.metadata.drop_all(bind=self.engine)

    def init_db(self) -> None:
        """Initialize the database."""
        if not self.engine:
            msg = "DB engine is not initialized."
            raise RuntimeError(msg)
        self.create_all()

    def check_connection(self) -> None:
        """Run a trivial query. Raises SQLAlchemyError if the database is down."""
        self.session.execute(text("SELECT 1"))

    @property
    def metadata(self) -> MetaData:
        """Return the metadata."""
        return Base.metadata
