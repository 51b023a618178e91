"""Tests for the command-line interface."""

import logging
import shlex
from decimal import Decimal

import pytest
from typer.testing import CliRunner

from splitledger.cli import app, format_money, setup_logging
from splitledger.config import Settings
from splitledger.db import Database

runner = CliRunner()


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    """Point the CLI at a temporary database."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SPLITLEDGER_DATABASE_PATH", str(tmp_path / "cli.db"))
    monkeypatch.delenv("SPLITLEDGER_SETTLEMENT_STRATEGY", raising=False)
    monkeypatch.delenv("SPLITLEDGER_REMAINDER_ORDER", raising=False)


def run(command: str):
    """Invoke the CLI with a shell-style command line."""
    return runner.invoke(app, shlex.split(command))


@pytest.fixture
def trip():
    """A Trip group with Alice, Bob and Carol."""
    result = run("group create Trip -p Alice -p Bob -p Carol")
    assert result.exit_code == 0, result.output
    return "Trip"


class TestFormatMoney:
    """Test accounting-style money formatting."""

    def test_positive(self):
        assert format_money(Decimal("85.02"), use_color=False) == " $85.02 "

    def test_negative(self):
        assert format_money(Decimal("-1234.5"), use_color=False) == "($1,234.50)"


class TestLogging:
    """Test logging setup."""

    def test_levels(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            logging, "basicConfig", lambda **kwargs: calls.append(kwargs)
        )

        setup_logging()
        setup_logging(verbose=True)

        assert [c["level"] for c in calls] == [logging.INFO, logging.DEBUG]


class TestGroupCommands:
    """Test group commands."""

    def test_create_and_list(self, trip):
        result = run("group list")

        assert result.exit_code == 0
        assert "Trip" in result.output

    def test_list_empty(self):
        result = run("group list")

        assert result.exit_code == 0
        assert "No groups yet" in result.output

    def test_show_unknown_group(self):
        result = run("group show Nowhere")

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "not found" in result.output

    def test_show_as_participant(self, trip):
        run(f"entry add {trip} 30 --paid-by Alice")

        result = run(f"group show {trip} --as Bob")

        assert result.exit_code == 0, result.output
        assert "Total spent" in result.output
        assert "You pay Alice $10.00" in result.output


class TestParticipantCommands:
    """Test participant commands."""

    def test_add(self, trip):
        result = run(f"participant add {trip} Dan")

        assert result.exit_code == 0
        assert "Added Dan" in result.output

    def test_add_duplicate(self, trip):
        result = run(f"participant add {trip} alice")

        assert result.exit_code == 1
        assert "already in group" in result.output

    def test_rename(self, trip):
        result = run(f"participant rename {trip} Bob Robert")

        assert result.exit_code == 0
        assert "Renamed Bob to Robert" in result.output


class TestEntryCommands:
    """Test entry commands."""

    def test_add_equal_split(self, trip):
        result = run(f"entry add {trip} 100 --paid-by Alice")

        assert result.exit_code == 0, result.output
        assert "Expense of" in result.output
        assert "Alice:" in result.output
        assert "33.34" in result.output

    def test_add_weighted_split(self, trip):
        result = run(
            f"entry add {trip} 90 --paid-by Bob --split weighted "
            f"-s Alice=2 -s Bob=1"
        )

        assert result.exit_code == 0, result.output
        assert "60.00" in result.output

    def test_add_exact_split_mismatch(self, trip):
        result = run(
            f"entry add {trip} 100 --paid-by Alice --split exact "
            f"-s Alice=50 -s Bob=40"
        )

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_add_unknown_split_policy(self, trip):
        result = run(f"entry add {trip} 10 --paid-by Alice --split odd")
        assert result.exit_code == 2

    def test_add_unknown_payer(self, trip):
        result = run(f"entry add {trip} 10 --paid-by Zed")

        assert result.exit_code == 1
        assert "No participant named 'Zed'" in result.output

    def test_add_transfer(self, trip):
        result = run(f"entry add {trip} 20 --paid-by Alice --kind transfer --to Bob")

        assert result.exit_code == 0, result.output
        assert "Transfer of" in result.output

    def test_delete_by_prefix(self, trip):
        run(f"entry add {trip} 10 --paid-by Alice")
        db = Database(Settings().database_path)
        try:
            group = db.list_groups()[0]
            entry_id = db.fetch_entries(group.id)[0].id
        finally:
            db.close()

        result = run(f"entry delete {trip} {entry_id[:6]} --yes")

        assert result.exit_code == 0, result.output
        assert "Entry deleted" in result.output
        assert "No entries yet" in run(f"entry list {trip}").output


class TestSettleCommands:
    """Test balances, suggestions and settling up."""

    def test_balances(self, trip):
        run(f"entry add {trip} 90 --paid-by Alice")

        result = run(f"balances {trip}")

        assert result.exit_code == 0
        assert "Gets $60.00" in result.output
        assert "Owes $30.00" in result.output

    def test_settle_up(self, trip):
        run(f"entry add {trip} 90 --paid-by Alice")

        result = run(f"settle up {trip} --yes")
        assert result.exit_code == 0, result.output
        assert "Recorded 2 settlements" in result.output

        assert "Everyone is settled" in run(f"suggest {trip}").output

    def test_record_bad_date(self, trip):
        result = run(f"settle record {trip} 10 --from Bob --to Alice --date someday")
        assert result.exit_code == 2

    def test_record_and_list(self, trip):
        result = run(
            f"settle record {trip} 10 --from Bob --to Alice --date 2024-03-01"
        )
        assert result.exit_code == 0, result.output

        result = run(f"settle list {trip}")
        assert "2024-03-01" in result.output

    def test_suggest_with_exact_strategy(self, trip):
        run(f"entry add {trip} 90 --paid-by Alice")

        result = run(f"suggest {trip} --strategy exact --as Carol")

        assert result.exit_code == 0, result.output
        assert "You pay Alice $30.00" in result.output

    def test_suggest_unknown_strategy(self, trip):
        result = run(f"suggest {trip} --strategy magic")

        assert result.exit_code == 1
        assert "Unknown settlement strategy" in result.output
