"""Tests for the commands module."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING
from unittest import mock

import pytest
from click.testing import CliRunner
from shiftcal.commands import (
    ATTR_EMAIL,
    ATTR_NAME,
    cli,
    get_session,
    set_verbose_level,
)
from shiftcal.models import User
from sqlalchemy import select
from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from pathlib import Path

USERS = [
    {ATTR_NAME: "John Doe", ATTR_EMAIL: "john.doe@example.com"},
    {ATTR_NAME: "Jane Smith", ATTR_EMAIL: "jane.smith@example.com"},
]


@pytest.fixture()
def db_uri(tmp_path: Path) -> str:
    """Create an empty database file with the tables."""
    uri = f"sqlite:///{tmp_path / 'shifts.db'}"
    result = CliRunner().invoke(cli, ["init-db", uri])
    assert result.exit_code == 0, result.output
    return uri


def test_get_session(db_uri: str) -> None:
    """Test getting a SQLAlchemy session."""
    session = get_session(db_uri)
    assert isinstance(session, Session)


def test_set_verbose_level() -> None:
    """Test setting the logger verbosity level."""
    logger_mock = mock.Mock()
    with mock.patch("shiftcal.commands.logger", logger_mock):
        set_verbose_level(0)
        logger_mock.setLevel.assert_called_once_with(logging.INFO)

        logger_mock.reset_mock()
        set_verbose_level(1)
        logger_mock.setLevel.assert_called_once_with(logging.DEBUG)

        logger_mock.reset_mock()
        set_verbose_level(2)
        logger_mock.setLevel.assert_called_once_with(logging.DEBUG)


def test_init_db(db_uri: str) -> None:
    """The tables exist after init-db."""
    session = get_session(db_uri)
    assert session.scalars(select(User)).all() == []


def test_import_users(db_uri: str, tmp_path: Path) -> None:
    """New users are added and existing ones updated by email."""
    input_file = tmp_path / "input.json"
    input_file.write_text(json.dumps(USERS))
    runner = CliRunner()

    result = runner.invoke(cli, ["import-users", str(input_file), db_uri])
    assert result.exit_code == 0, result.output
    assert "Added: 2, Reviewed: 0, Edited: 0" in result.output

    renamed = [dict(USERS[0], name="John Q. Doe"), USERS[1]]
    input_file.write_text(json.dumps(renamed))

    result = runner.invoke(cli, ["import-users", str(input_file), db_uri])
    assert "Added: 0, Reviewed: 2, Edited: 1" in result.output

    session = get_session(db_uri)
    names = {user.email: user.name for user in session.scalars(select(User))}
    assert names["john.doe@example.com"] == "John Q. Doe"


def test_export_users(db_uri: str, tmp_path: Path) -> None:
    """Every user is exported with name and email."""
    session = get_session(db_uri)
    session.add_all([User(**user) for user in USERS])
    session.commit()
    output_file = tmp_path / "output.json"

    result = CliRunner().invoke(cli, ["export-users", "-v", str(output_file), db_uri])

    assert result.exit_code == 0, result.output
    with output_file.open("r") as f:
        exported = json.load(f)
    assert sorted(exported, key=lambda user: user[ATTR_EMAIL]) == sorted(
        USERS,
        key=lambda user: user[ATTR_EMAIL],
    )
