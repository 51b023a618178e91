"""Shared fixtures for SplitLedger tests."""

import pytest

from splitledger.config import Settings
from splitledger.db import Database
from splitledger.models import Group, Participant
from splitledger.service import LedgerService


@pytest.fixture
def group():
    """A group with Alice, Bob and Carol, in that order."""
    group = Group(id="g1", name="Trip")
    for pid, name in (("a", "Alice"), ("b", "Bob"), ("c", "Carol")):
        group.participants.append(Participant(id=pid, group_id="g1", name=name))
    return group


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary database."""
    return Settings(database_path=tmp_path / "test.db")


@pytest.fixture
def db(settings):
    """Create a temporary database."""
    db = Database(settings.database_path)
    yield db
    db.close()


@pytest.fixture
def service(settings, db):
    """Create a LedgerService instance."""
    return LedgerService(settings, db)
