"""Maintenance commands: create the database, export and import users."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import click
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from .models import Base, User

if TYPE_CHECKING:
    from sqlalchemy.orm.session import Session

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
log_handler = logging.StreamHandler()
logger.addHandler(log_handler)

ATTR_NAME = "name"
ATTR_EMAIL = "email"

verbose_option = click.option(
    "-v",
    "--verbose",
    count=True,
    default=0,
    help="-v for DEBUG",
)


@click.group()
def cli() -> None:
    """Shiftcal maintenance commands."""


def get_session(db_uri: str) -> Session:
    """Return a SQLAlchemy session for the database."""
    engine = create_engine(db_uri)
    session_factory = sessionmaker(bind=engine)
    return session_factory()


def set_verbose_level(verbose: int) -> None:
    """Set the verbosity of the logger."""
    if verbose == 1:
        logger.setLevel(logging.DEBUG)
    elif verbose > 1:
        logger.setLevel(logging.DEBUG)
        sqllogger = logging.getLogger("sqlalchemy.engine")
        sqllogger.setLevel(logging.INFO)
        sqllogger.addHandler(log_handler)
    else:
        logger.setLevel(logging.INFO)


@click.command("init-db")
@click.argument("db_uri", type=str)
@verbose_option
def init_db(verbose: int, db_uri: str) -> None:
    """Create the tables in the database."""
    set_verbose_level(verbose)
    engine = create_engine(db_uri)
    Base.metadata.create_all(bind=engine)
    click.echo("Tables created")


@click.command("export-users")
@click.argument("output_file", type=click.File("w"))
@click.argument("db_uri", type=str)
@verbose_option
def export_users(verbose: int, output_file: click.File, db_uri: str) -> None:
    """Export users to a JSON file."""
    set_verbose_level(verbose)
    session = get_session(db_uri)

    users = session.scalars(select(User).order_by(User.created_at)).all()
    user_list = [{ATTR_NAME: user.name, ATTR_EMAIL: user.email} for user in users]

    json.dump(user_list, output_file, ensure_ascii=False, indent=4)  # type: ignore[arg-type]
    click.echo(f"Exported {len(user_list)} users to {output_file.name}")


@click.command("import-users")
@click.argument("input_file", type=click.File("r"))
@click.argument("db_uri", type=str)
@verbose_option
def import_users(verbose: int, input_file: click.File, db_uri: str) -> None:
    """Import users from a JSON file. Existing emails are updated."""
    set_verbose_level(verbose)
    data = json.load(input_file)  # type: ignore[arg-type]

    session = get_session(db_uri)

    n_added, n_reviewed, n_edited = 0, 0, 0

    for item in data:
        user = session.scalars(
            select(User).where(User.email == item[ATTR_EMAIL]),
        ).first()
        if not user:
            logger.info("Creating user %s", item[ATTR_EMAIL])
            session.add(User(name=item[ATTR_NAME], email=item[ATTR_EMAIL]))
            n_added += 1
            continue

        logger.debug("Reviewing user %s", item[ATTR_EMAIL])
        user.name = item[ATTR_NAME]
        n_reviewed += 1
        if session.is_modified(user):
            n_edited += 1
            logger.debug("User %s edited", item[ATTR_EMAIL])
        else:
            logger.debug("User %s not modified", item[ATTR_EMAIL])

    session.commit()
    click.echo(f"Added: {n_added}, Reviewed: {n_reviewed}, Edited: {n_edited}")


cli.add_command(init_db)
cli.add_command(export_users)
cli.add_command(import_users)

if __name__ == "__main__":
    cli()
