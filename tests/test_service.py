"""Tests for LedgerService layer."""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from splitledger.config import Settings
from splitledger.db import Database
from splitledger.exceptions import (
    DanglingReferenceError,
    NotFoundError,
    PersistenceError,
    SplitMismatchError,
    ValidationError,
)
from splitledger.models import LedgerEntry, Split, SplitShare
from splitledger.service import LedgerService
from splitledger.settlement import ExactSettlementStrategy, GreedySettlementStrategy


@pytest.fixture
def trip(service):
    """A stored group with Alice, Bob and Carol."""
    return service.create_group("Trip", participant_names=["Alice", "Bob", "Carol"])


def ids(group):
    """Participant IDs of Alice, Bob and Carol."""
    return [group.find_participant(name).id for name in ("Alice", "Bob", "Carol")]


class TestGroups:
    """Test group and participant management."""

    def test_create_group_with_participants(self, service, trip):
        fetched = service.store.fetch_group(trip.id)

        assert fetched.name == "Trip"
        assert [p.name for p in fetched.participants] == ["Alice", "Bob", "Carol"]

    def test_empty_group_name(self, service):
        with pytest.raises(ValidationError):
            service.create_group("   ")

    def test_duplicate_names_rejected_at_creation(self, service):
        with pytest.raises(ValidationError, match="already in group"):
            service.create_group("Trip", participant_names=["Alice", "alice"])

    def test_add_participant(self, service, trip):
        dan = service.add_participant(trip.id, "  Dan ")

        assert dan.name == "Dan"
        assert service.store.fetch_group(trip.id).has_participant(dan.id)

    def test_add_duplicate_participant(self, service, trip):
        with pytest.raises(ValidationError, match="already in group"):
            service.add_participant(trip.id, "BOB")

    def test_add_participant_to_missing_group(self, service):
        with pytest.raises(NotFoundError):
            service.add_participant("nope", "Dan")

    def test_rename_participant(self, service, trip):
        _, bob, _ = ids(trip)

        service.rename_participant(trip.id, bob, "Robert")

        group = service.store.fetch_group(trip.id)
        assert group.get_participant(bob).name == "Robert"

    def test_rename_to_own_name_with_new_case(self, service, trip):
        _, bob, _ = ids(trip)
        assert service.rename_participant(trip.id, bob, "BOB").name == "BOB"

    def test_rename_to_taken_name(self, service, trip):
        _, bob, _ = ids(trip)
        with pytest.raises(ValidationError, match="already in group"):
            service.rename_participant(trip.id, bob, "Carol")

    def test_rename_non_member(self, service, trip):
        with pytest.raises(DanglingReferenceError):
            service.rename_participant(trip.id, "zzz", "Zed")


class TestEntries:
    """Test recording, updating and deleting ledger entries."""

    def test_equal_split_remainder_goes_last(self, tmp_path):
        """$100 among three with the leftover cent on the last participant."""
        settings = Settings(database_path=tmp_path / "last.db", remainder_order="last")
        db = Database(settings.database_path)
        try:
            service = LedgerService(settings, db)
            group = service.create_group("Trip", participant_names=["A", "B", "C"])
            a, b, c = (group.find_participant(n).id for n in ("A", "B", "C"))

            service.add_entry(group.id, "100", a, shares=[a, b, c])

            assert service.get_balances(group.id) == {
                a: Decimal("66.67"),
                b: Decimal("-33.33"),
                c: Decimal("-33.34"),
            }
        finally:
            db.close()

    def test_equal_split_remainder_goes_first(self, service, trip):
        alice, bob, carol = ids(trip)

        entry = service.add_entry(trip.id, "100", alice, shares=[alice, bob, carol])

        assert [s.amount for s in entry.splits] == [
            Decimal("33.34"),
            Decimal("33.33"),
            Decimal("33.33"),
        ]
        assert service.get_balances(trip.id) == {
            alice: Decimal("66.66"),
            bob: Decimal("-33.33"),
            carol: Decimal("-33.33"),
        }

    def test_exact_split_within_tolerance(self, service, trip):
        alice, bob, _ = ids(trip)

        entry = service.add_entry(
            trip.id,
            "100",
            alice,
            shares=[
                SplitShare(participant_id=alice, custom_amount=Decimal("50")),
                SplitShare(participant_id=bob, custom_amount=Decimal("49.99")),
            ],
            policy="exact",
        )

        assert entry.split_for(alice) == Decimal("50.01")
        assert entry.split_for(bob) == Decimal("49.99")

    def test_exact_split_mismatch_persists_nothing(self, service, trip):
        alice, bob, _ = ids(trip)

        with pytest.raises(SplitMismatchError):
            service.add_entry(
                trip.id,
                "100",
                alice,
                shares=[
                    SplitShare(participant_id=alice, custom_amount=Decimal("50")),
                    SplitShare(participant_id=bob, custom_amount=Decimal("40")),
                ],
                policy="exact",
            )

        assert service.list_entries(trip.id) == []

    def test_weighted_split(self, service, trip):
        alice, bob, _ = ids(trip)

        entry = service.add_entry(
            trip.id,
            "90",
            bob,
            shares=[
                SplitShare(participant_id=alice, weight=Decimal("2")),
                SplitShare(participant_id=bob, weight=Decimal("1")),
            ],
            policy="weighted",
            description="Groceries",
            category="food",
        )

        stored = service.list_entries(trip.id)[0]
        assert stored.id == entry.id
        assert stored.description == "Groceries"
        assert stored.category == "food"
        assert stored.split_for(alice) == Decimal("60.00")
        assert stored.split_for(bob) == Decimal("30.00")

    def test_non_positive_amount(self, service, trip):
        alice, _, _ = ids(trip)
        with pytest.raises(ValidationError):
            service.add_entry(trip.id, "0", alice, shares=[alice])

    def test_unknown_payer(self, service, trip):
        alice, _, _ = ids(trip)
        with pytest.raises(DanglingReferenceError):
            service.add_entry(trip.id, "10", "zzz", shares=[alice])

    def test_transfer(self, service, trip):
        alice, bob, carol = ids(trip)

        entry = service.add_entry(
            trip.id, "20", alice, kind="transfer", recipient_id=bob
        )

        assert entry.splits == []
        assert service.get_balances(trip.id) == {
            alice: Decimal("20.00"),
            bob: Decimal("-20.00"),
            carol: Decimal("0.00"),
        }

    def test_update_entry_keeps_identity(self, service, trip):
        alice, bob, carol = ids(trip)
        original = service.add_entry(trip.id, "30", alice, shares=[alice, bob])

        updated = service.update_entry(
            original.id, "60", bob, shares=[alice, bob, carol]
        )

        assert updated.id == original.id
        assert updated.created_at == original.created_at
        assert len(service.list_entries(trip.id)) == 1
        assert service.get_balances(trip.id) == {
            alice: Decimal("-20.00"),
            bob: Decimal("40.00"),
            carol: Decimal("-20.00"),
        }

    def test_delete_entry(self, service, trip):
        alice, bob, _ = ids(trip)
        entry = service.add_entry(trip.id, "30", alice, shares=[alice, bob])

        service.delete_entry(entry.id)

        assert service.list_entries(trip.id) == []
        assert all(v == 0 for v in service.get_balances(trip.id).values())

    def test_delete_missing_entry(self, service):
        with pytest.raises(NotFoundError):
            service.delete_entry("nope")


class TestSettlements:
    """Test recording payments and settling up."""

    def test_settlement_reduces_debt(self, service, trip):
        alice, bob, carol = ids(trip)
        service.add_entry(trip.id, "90", alice, shares=[alice, bob, carol])

        service.record_settlement(
            trip.id, bob, alice, "30", settlement_date=date(2024, 3, 1)
        )

        assert service.get_balances(trip.id) == {
            alice: Decimal("30.00"),
            bob: Decimal("0.00"),
            carol: Decimal("-30.00"),
        }

    def test_settlement_to_self(self, service, trip):
        alice, _, _ = ids(trip)
        with pytest.raises(ValidationError):
            service.record_settlement(trip.id, alice, alice, "10")

    def test_recording_every_suggestion_settles_group(self, service, trip):
        alice, bob, carol = ids(trip)
        service.add_entry(trip.id, "100", alice, shares=[alice, bob, carol])
        service.add_entry(trip.id, "45.50", bob, shares=[bob, carol])
        service.add_entry(trip.id, "20", carol, kind="transfer", recipient_id=alice)

        suggestions = service.get_suggestions(trip.id)
        assert suggestions

        for suggestion in suggestions:
            settlement = service.record_suggestion(trip.id, suggestion)
            assert settlement.description == "Settle up"

        assert all(v == 0 for v in service.get_balances(trip.id).values())
        assert service.get_suggestions(trip.id) == []
        assert len(service.list_settlements(trip.id)) == len(suggestions)

    def test_delete_settlement(self, service, trip):
        alice, bob, _ = ids(trip)
        settlement = service.record_settlement(trip.id, bob, alice, "5")

        service.delete_settlement(settlement.id)

        assert service.list_settlements(trip.id) == []


class TestSummary:
    """Test the one-snapshot group summary."""

    def test_summary(self, service, trip):
        alice, bob, carol = ids(trip)
        service.add_entry(trip.id, "60", alice, shares=[alice, bob, carol])
        service.add_entry(trip.id, "10", bob, kind="transfer", recipient_id=carol)
        service.record_settlement(trip.id, carol, alice, "5")

        summary = service.get_summary(trip.id)

        assert summary.group.id == trip.id
        assert len(summary.entries) == 2
        assert len(summary.settlements) == 1
        assert summary.total_spent == Decimal("60")
        assert summary.balances == {
            alice: Decimal("35.00"),
            bob: Decimal("-10.00"),
            carol: Decimal("-25.00"),
        }
        assert [
            (s.from_participant_id, s.to_participant_id, s.amount)
            for s in summary.suggestions
        ] == [
            (bob, alice, Decimal("10.00")),
            (carol, alice, Decimal("25.00")),
        ]

    def test_summary_with_rounding_drift(self, service, trip):
        """Stored splits a cent short of their entry still settle."""
        alice, bob, _ = ids(trip)
        service.store.persist_entry(
            LedgerEntry(
                group_id=trip.id,
                amount=Decimal("10.00"),
                paid_by=alice,
                splits=[
                    Split(participant_id=alice, amount=Decimal("5.00")),
                    Split(participant_id=bob, amount=Decimal("4.99")),
                ],
            )
        )

        summary = service.get_summary(trip.id)

        assert summary.balances[alice] == Decimal("5.00")
        assert summary.balances[bob] == Decimal("-4.99")
        assert [
            (s.from_participant_id, s.to_participant_id, s.amount)
            for s in summary.suggestions
        ] == [(bob, alice, Decimal("4.99"))]
        assert service.get_suggestions(trip.id) == summary.suggestions

    def test_missing_group(self, service):
        with pytest.raises(NotFoundError):
            service.get_summary("nope")


class TestViews:
    """Test last-viewed tracking through the service."""

    def test_mark_viewed(self, service, trip):
        alice, _, _ = ids(trip)

        assert service.mark_viewed(trip.id, alice) is None
        assert isinstance(service.mark_viewed(trip.id, alice), datetime)

    def test_mark_viewed_non_member(self, service, trip):
        with pytest.raises(DanglingReferenceError):
            service.mark_viewed(trip.id, "zzz")


class TestStrategySelection:
    """Test that settings pick the settlement strategy."""

    def test_default_is_greedy(self, service):
        assert isinstance(service.strategy, GreedySettlementStrategy)

    def test_exact_from_settings(self, tmp_path):
        settings = Settings(
            database_path=tmp_path / "exact.db",
            settlement_strategy="exact",
            exact_strategy_max_participants=5,
        )

        service = LedgerService(settings, MagicMock())

        assert isinstance(service.strategy, ExactSettlementStrategy)
        assert service.strategy.max_participants == 5


class TestStoreInteraction:
    """Test how the service drives its store."""

    @pytest.fixture
    def store(self, group):
        store = MagicMock()
        store.fetch_group.return_value = group
        return store

    def test_validation_fails_before_persisting(self, settings, store):
        service = LedgerService(settings, store)

        with pytest.raises(DanglingReferenceError):
            service.add_entry("g1", "10", "a", shares=["a", "zzz"])

        store.persist_entry.assert_not_called()

    def test_persistence_error_is_not_retried(self, settings, store):
        store.persist_entry.side_effect = PersistenceError("disk full")
        service = LedgerService(settings, store)

        with pytest.raises(PersistenceError, match="disk full"):
            service.add_entry("g1", "10", "a", shares=["a", "b"])

        assert store.persist_entry.call_count == 1

    def test_balances_use_one_snapshot(self, settings, store):
        store.fetch_entries.return_value = []
        store.fetch_settlements.return_value = []
        service = LedgerService(settings, store)

        service.get_summary("g1")

        store.fetch_entries.assert_called_once_with("g1")
        store.fetch_settlements.assert_called_once_with("g1")
