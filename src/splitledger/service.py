"""Service layer that composes the store with the computation engine.

Splits are computed once when an entry is written; balances and settlement
suggestions are computed on read from whatever snapshot the store returns.
"""

import logging
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from .balances import compute_balances, drift_limit, total_spent
from .config import Settings
from .exceptions import DanglingReferenceError, ValidationError
from .models import (
    EntryKind,
    Group,
    GroupSummary,
    LedgerEntry,
    Participant,
    Settlement,
    SplitPolicy,
    SplitShare,
    TransferSuggestion,
)
from .settlement import SettlementStrategy, get_strategy, suggest_settlements
from .splitter import compute_splits, require_positive
from .validation import validate_entry, validate_settlement

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """The persistence operations the service relies on."""

    def create_group(self, group: Group) -> Group: ...

    def fetch_group(self, group_id: str) -> Group: ...

    def list_groups(self) -> list[Group]: ...

    def add_participant(self, participant: Participant) -> Participant: ...

    def rename_participant(self, participant_id: str, name: str) -> Participant: ...

    def fetch_entries(self, group_id: str) -> list[LedgerEntry]: ...

    def fetch_entry(self, entry_id: str) -> LedgerEntry: ...

    def persist_entry(self, entry: LedgerEntry) -> LedgerEntry: ...

    def delete_entry(self, entry_id: str) -> None: ...

    def fetch_settlements(self, group_id: str) -> list[Settlement]: ...

    def persist_settlement(self, settlement: Settlement) -> Settlement: ...

    def delete_settlement(self, settlement_id: str) -> None: ...

    def record_group_view(
        self, group_id: str, participant_id: str, viewed_at: datetime | None = None
    ) -> None: ...

    def get_last_viewed(
        self, group_id: str, participant_id: str
    ) -> datetime | None: ...


class LedgerService:
    """Service for recording shared expenses and working out who owes whom."""

    def __init__(
        self,
        settings: Settings,
        store: LedgerStore,
        strategy: SettlementStrategy | None = None,
    ):
        """Initialize the ledger service."""
        self.settings = settings
        self.store = store
        self.strategy = strategy or get_strategy(
            settings.settlement_strategy,
            max_participants=settings.exact_strategy_max_participants,
        )

    # ========================================================================
    # Groups and participants
    # ========================================================================

    def create_group(
        self,
        name: str,
        description: str | None = None,
        participant_names: Sequence[str] = (),
    ) -> Group:
        """Create a group, optionally with its first participants."""
        name = name.strip()
        if not name:
            raise ValidationError("Group name can't be empty")

        group = Group(name=name, description=description)
        for participant_name in participant_names:
            self._check_new_name(group, participant_name)
            group.participants.append(
                Participant(group_id=group.id, name=participant_name.strip())
            )

        return self.store.create_group(group)

    def add_participant(self, group_id: str, name: str) -> Participant:
        """Add a participant to a group."""
        group = self.store.fetch_group(group_id)
        self._check_new_name(group, name)
        return self.store.add_participant(
            Participant(group_id=group.id, name=name.strip())
        )

    def rename_participant(
        self, group_id: str, participant_id: str, name: str
    ) -> Participant:
        """Rename a participant; the only mutation a participant allows."""
        group = self.store.fetch_group(group_id)
        if not group.has_participant(participant_id):
            raise DanglingReferenceError(
                f"Participant {participant_id} is not a member of group '{group.name}'"
            )
        if not name.strip():
            raise ValidationError("Participant name can't be empty")
        existing = group.find_participant(name)
        if existing is not None and existing.id != participant_id:
            raise ValidationError(
                f"'{name.strip()}' is already in group '{group.name}'"
            )
        return self.store.rename_participant(participant_id, name.strip())

    @staticmethod
    def _check_new_name(group: Group, name: str):
        if not name.strip():
            raise ValidationError("Participant name can't be empty")
        if group.find_participant(name) is not None:
            raise ValidationError(
                f"'{name.strip()}' is already in group '{group.name}'"
            )

    def mark_viewed(self, group_id: str, participant_id: str) -> datetime | None:
        """
        Record that a participant is looking at a group.

        Returns:
            When they previously looked, or None on a first visit
        """
        group = self.store.fetch_group(group_id)
        if not group.has_participant(participant_id):
            raise DanglingReferenceError(
                f"Participant {participant_id} is not a member of group '{group.name}'"
            )
        previous = self.store.get_last_viewed(group_id, participant_id)
        self.store.record_group_view(group_id, participant_id)
        return previous

    # ========================================================================
    # Ledger entries
    # ========================================================================

    def _build_entry(
        self,
        group: Group,
        entry: LedgerEntry,
        shares: Sequence[SplitShare | str],
    ) -> LedgerEntry:
        """Validate an entry and attach freshly computed splits."""
        validate_entry(entry, group, shares if entry.kind != "transfer" else None)

        if entry.kind == "transfer":
            return entry.model_copy(update={"splits": []})

        splits = compute_splits(
            entry.amount,
            entry.split_policy,
            shares,
            remainder_order=self.settings.remainder_order,
            tolerance=self.settings.split_tolerance,
        )
        return entry.model_copy(update={"splits": splits})

    def add_entry(
        self,
        group_id: str,
        amount: Decimal | int | str,
        paid_by: str,
        shares: Sequence[SplitShare | str] = (),
        policy: SplitPolicy = "equal",
        kind: EntryKind = "expense",
        description: str | None = None,
        category: str | None = None,
        recipient_id: str | None = None,
    ) -> LedgerEntry:
        """
        Record a new expense, income or transfer.

        Args:
            group_id: Group to record in
            amount: Entry amount (> 0)
            paid_by: Participant who paid (or received, for income)
            shares: Split participants with raw policy input; ignored for
                transfers
            policy: How to split the amount
            kind: expense, income or transfer
            description: Optional free text
            category: Optional category label
            recipient_id: Receiving participant, transfers only

        Returns:
            The persisted entry with its splits
        """
        group = self.store.fetch_group(group_id)
        entry = LedgerEntry(
            group_id=group.id,
            amount=require_positive(amount),
            paid_by=paid_by,
            kind=kind,
            split_policy=policy,
            description=description,
            category=category,
            recipient_id=recipient_id,
        )
        entry = self._build_entry(group, entry, shares)
        saved = self.store.persist_entry(entry)

        logger.info(
            f"Recorded {kind} of {saved.amount} in '{group.name}' "
            f"split {len(saved.splits)} ways"
        )
        return saved

    def update_entry(
        self,
        entry_id: str,
        amount: Decimal | int | str,
        paid_by: str,
        shares: Sequence[SplitShare | str] = (),
        policy: SplitPolicy = "equal",
        kind: EntryKind = "expense",
        description: str | None = None,
        category: str | None = None,
        recipient_id: str | None = None,
    ) -> LedgerEntry:
        """Replace an entry's details and recompute its splits."""
        existing = self.store.fetch_entry(entry_id)
        group = self.store.fetch_group(existing.group_id)
        entry = existing.model_copy(
            update={
                "amount": require_positive(amount),
                "paid_by": paid_by,
                "kind": kind,
                "split_policy": policy,
                "description": description,
                "category": category,
                "recipient_id": recipient_id,
                "splits": [],
            }
        )
        entry = self._build_entry(group, entry, shares)
        saved = self.store.persist_entry(entry)

        logger.info(f"Updated {kind} {entry_id}")
        return saved

    def delete_entry(self, entry_id: str):
        """Delete an entry and its splits."""
        self.store.delete_entry(entry_id)

    def list_entries(self, group_id: str) -> list[LedgerEntry]:
        """Get a group's entries, oldest first."""
        self.store.fetch_group(group_id)
        return self.store.fetch_entries(group_id)

    # ========================================================================
    # Settlements
    # ========================================================================

    def record_settlement(
        self,
        group_id: str,
        from_participant_id: str,
        to_participant_id: str,
        amount: Decimal | int | str,
        settlement_date: date | None = None,
        description: str | None = None,
    ) -> Settlement:
        """Record a real-world payment between two participants."""
        group = self.store.fetch_group(group_id)
        settlement = Settlement(
            group_id=group.id,
            from_participant_id=from_participant_id,
            to_participant_id=to_participant_id,
            amount=require_positive(amount),
            settlement_date=settlement_date or date.today(),
            description=description,
        )
        validate_settlement(settlement, group)
        return self.store.persist_settlement(settlement)

    def record_suggestion(
        self, group_id: str, suggestion: TransferSuggestion
    ) -> Settlement:
        """Record a confirmed settlement suggestion as a payment."""
        return self.record_settlement(
            group_id,
            suggestion.from_participant_id,
            suggestion.to_participant_id,
            suggestion.amount,
            description="Settle up",
        )

    def list_settlements(self, group_id: str) -> list[Settlement]:
        """Get a group's settlements, oldest first."""
        self.store.fetch_group(group_id)
        return self.store.fetch_settlements(group_id)

    def delete_settlement(self, settlement_id: str):
        """Delete a recorded settlement."""
        self.store.delete_settlement(settlement_id)

    # ========================================================================
    # Balances
    # ========================================================================

    def get_balances(self, group_id: str) -> dict[str, Decimal]:
        """Compute every participant's balance from the current snapshot."""
        group = self.store.fetch_group(group_id)
        return compute_balances(
            self.store.fetch_entries(group_id),
            self.store.fetch_settlements(group_id),
            group.participant_ids(),
        )

    def get_suggestions(self, group_id: str) -> list[TransferSuggestion]:
        """Suggest transfers that would settle the group."""
        group = self.store.fetch_group(group_id)
        entries = self.store.fetch_entries(group_id)
        balances = compute_balances(
            entries,
            self.store.fetch_settlements(group_id),
            group.participant_ids(),
        )
        return suggest_settlements(
            balances, self.strategy, max_drift=drift_limit(len(entries))
        )

    def get_summary(self, group_id: str) -> GroupSummary:
        """
        Build everything needed to show a group from one snapshot.

        Entries, settlements, balances and suggestions all come from the same
        reads, so they are consistent with each other.
        """
        group = self.store.fetch_group(group_id)
        entries = self.store.fetch_entries(group_id)
        settlements = self.store.fetch_settlements(group_id)

        balances = compute_balances(entries, settlements, group.participant_ids())
        suggestions = suggest_settlements(
            balances, self.strategy, max_drift=drift_limit(len(entries))
        )

        logger.debug(
            f"Summarized '{group.name}': {len(entries)} entries, "
            f"{len(settlements)} settlements, {len(suggestions)} suggestions"
        )

        return GroupSummary(
            group=group,
            entries=entries,
            settlements=settlements,
            balances=balances,
            suggestions=suggestions,
            total_spent=total_spent(entries),
        )
