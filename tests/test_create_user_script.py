"""Tests for the account bootstrap script."""

from __future__ import annotations

from pathlib import Path

import pytest

from adoptme.database import Database, verify_password
from adoptme.models import Role
from scripts import create_user


def _answers(monkeypatch: pytest.MonkeyPatch, *values: str) -> None:
    replies = iter(values)
    monkeypatch.setattr(create_user.getpass, "getpass", lambda prompt="": next(replies))


def test_creates_admin_account(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    db_path = tmp_path / "script.sqlite3"
    _answers(monkeypatch, "supersecurepw", "supersecurepw")

    exit_code = create_user.main(
        ["Ada", "Admin", "ADA@example.com", "--role", "admin", "--db", str(db_path)]
    )

    assert exit_code == 0
    assert "Created admin" in capsys.readouterr().out
    user = Database(db_path).users.find_by_email("ada@example.com")
    assert user is not None
    assert user.role is Role.ADMIN
    assert verify_password("supersecurepw", user.password_hash)


def test_password_prompt_retries_on_mismatch(monkeypatch: pytest.MonkeyPatch) -> None:
    _answers(monkeypatch, "supersecurepw", "different-pw", "short", "short", "longenough", "longenough")

    assert create_user.prompt_for_password() == "longenough"


def test_password_prompt_gives_up_after_three_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    _answers(monkeypatch, *(["a", "b"] * 3))

    with pytest.raises(SystemExit):
        create_user.prompt_for_password()


def test_duplicate_email_fails(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    db_path = tmp_path / "script.sqlite3"
    arguments = ["Juan", "Perez", "juan@example.com", "--db", str(db_path)]

    _answers(monkeypatch, *(["supersecurepw"] * 4))
    assert create_user.main(arguments) == 0
    assert create_user.main(arguments) == 1
    assert "already registered" in capsys.readouterr().err
