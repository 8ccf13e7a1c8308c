"""Tests for main.py -- the create-admin command.

Covers:
- create-admin writes an admin account through registration validation
- invalid input and duplicate email exit non-zero without writing
"""

from __future__ import annotations

import io

import pytest

import main
from auth.store import UserStore
from conftest import STRONG_PASSWORD, TEST_SECRET, memory_db_url
from core.config import get_settings


@pytest.fixture
def cli_store(monkeypatch):
    db_url = memory_db_url("cli")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("SECRET_KEY", TEST_SECRET)
    get_settings.cache_clear()
    # Keeps the shared-memory DB alive across the CLI's own connections.
    store = UserStore(db_url)
    yield store
    store.close()
    get_settings.cache_clear()


def _run(monkeypatch, password: str, *args: str) -> int:
    monkeypatch.setattr("sys.stdin", io.StringIO(password + "\n"))
    return main.main(["create-admin", *args, "--password-stdin"])


def test_create_admin(cli_store, monkeypatch, capsys):
    code = _run(monkeypatch, STRONG_PASSWORD, "--username", "root_admin", "--email", "Root@Example.com")
    assert code == 0
    user = cli_store.get_by_email("root@example.com")
    assert user is not None
    assert user.role == "admin"
    out = capsys.readouterr().out
    assert "created" in out
    assert STRONG_PASSWORD not in out


def test_weak_password_rejected(cli_store, monkeypatch, capsys):
    code = _run(monkeypatch, "weak", "--username", "root_admin", "--email", "root@example.com")
    assert code == 1
    assert not cli_store.has_users()
    assert "Password must be at least 8 characters long" in capsys.readouterr().err


def test_duplicate_email_rejected(cli_store, monkeypatch):
    assert _run(monkeypatch, STRONG_PASSWORD, "--username", "first", "--email", "dup@example.com") == 0
    assert _run(monkeypatch, STRONG_PASSWORD, "--username", "second", "--email", "dup@example.com") == 1


def test_no_command_prints_help(capsys):
    assert main.main([]) == 0
    assert "create-admin" in capsys.readouterr().out
