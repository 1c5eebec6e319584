"""Tests for escapebook.cli — Typer CLI commands via CliRunner."""

import pytest
from typer.testing import CliRunner

from escapebook.cli import app
from escapebook.identity import IdentityHasher
from escapebook.ledger import CommentLedger
from escapebook.store import SQLiteKeyValueStore
from escapebook.throttle import LoginThrottle

from conftest import ADMIN_SECRET, PASSWORD, SALT

runner = CliRunner()

ENV = {
    "ESCAPEBOOK_PASSWORD": PASSWORD,
    "ESCAPEBOOK_ADMIN_SECRET": ADMIN_SECRET,
    "ESCAPEBOOK_SECRET_SALT": SALT,
}


@pytest.fixture
def cli_db(tmp_path):
    """Return a temp db path string for CLI --db flag."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def seeded_db(cli_db):
    """Board with three visitor comments."""
    store = SQLiteKeyValueStore(db_path=cli_db)
    ledger = CommentLedger(store, IdentityHasher(SALT), admin_secret=ADMIN_SECRET)
    for n in range(1, 4):
        ledger.submit_comment(f"198.51.100.{n}", f"note {n}", is_authenticated=True)
    store.close()
    return cli_db


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "escapebook" in result.output


class TestCommentCommands:
    def test_list_empty(self, cli_db):
        result = runner.invoke(app, ["comments", "list", "--db", cli_db], env=ENV)
        assert result.exit_code == 0
        assert "No comments yet." in result.output

    def test_list(self, seeded_db):
        result = runner.invoke(app, ["comments", "list", "--db", seeded_db], env=ENV)
        assert result.exit_code == 0
        assert "note 1" in result.output
        assert "note 3" in result.output
        assert "Escapee 2" in result.output

    def test_list_paged(self, seeded_db):
        result = runner.invoke(
            app, ["comments", "list", "--limit", "1", "--page", "2", "--db", seeded_db], env=ENV,
        )
        assert result.exit_code == 0
        assert "note 2" in result.output
        assert "note 1" not in result.output

    def test_post(self, cli_db):
        result = runner.invoke(
            app, ["comments", "post", "Board rules: be kind.", "--db", cli_db], env=ENV,
        )
        assert result.exit_code == 0
        assert "Posted" in result.output
        assert "Escapee 1" in result.output

    def test_post_wrong_secret(self, cli_db):
        result = runner.invoke(
            app,
            ["comments", "post", "hello", "--admin-secret", "guess", "--db", cli_db],
            env=ENV,
        )
        assert result.exit_code == 1

    def test_post_empty(self, cli_db):
        result = runner.invoke(app, ["comments", "post", "   ", "--db", cli_db], env=ENV)
        assert result.exit_code == 1

    def test_delete(self, seeded_db):
        result = runner.invoke(app, ["comments", "delete", "1", "--db", seeded_db], env=ENV)
        assert result.exit_code == 0
        assert "Deleted" in result.output
        assert "2 remaining" in result.output
        assert "Author may post again." in result.output

        listing = runner.invoke(app, ["comments", "list", "--db", seeded_db], env=ENV)
        assert "note 1" not in listing.output
        assert "note 2" in listing.output

    def test_delete_missing(self, seeded_db):
        result = runner.invoke(app, ["comments", "delete", "9", "--db", seeded_db], env=ENV)
        assert result.exit_code == 1
        assert "not found" in result.output.lower()

    def test_delete_wrong_secret(self, seeded_db):
        result = runner.invoke(
            app,
            ["comments", "delete", "1", "--admin-secret", "guess", "--db", seeded_db],
            env=ENV,
        )
        assert result.exit_code == 1


class TestLoginCommands:
    @pytest.fixture
    def locked_db(self, cli_db):
        store = SQLiteKeyValueStore(db_path=cli_db)
        throttle = LoginThrottle(store, IdentityHasher(SALT), password=PASSWORD)
        for _ in range(10):
            throttle.authenticate("192.0.2.50", "wrong")
        store.close()
        return cli_db

    def test_status_clean(self, cli_db):
        result = runner.invoke(app, ["login", "status", "192.0.2.1", "--db", cli_db], env=ENV)
        assert result.exit_code == 0
        assert "Failed attempts: 0" in result.output
        assert "Not locked" in result.output

    def test_status_locked(self, locked_db):
        result = runner.invoke(app, ["login", "status", "192.0.2.50", "--db", locked_db], env=ENV)
        assert result.exit_code == 0
        assert "Failed attempts: 10" in result.output
        assert "Locked until" in result.output

    def test_unlock(self, locked_db):
        result = runner.invoke(app, ["login", "unlock", "192.0.2.50", "--db", locked_db], env=ENV)
        assert result.exit_code == 0
        assert "Unlocked" in result.output

        status = runner.invoke(app, ["login", "status", "192.0.2.50", "--db", locked_db], env=ENV)
        assert "Failed attempts: 0" in status.output
        assert "Not locked" in status.output


def test_purge(cli_db):
    result = runner.invoke(app, ["purge", "--db", cli_db], env=ENV)
    assert result.exit_code == 0
    assert "Purged 0 expired keys" in result.output
