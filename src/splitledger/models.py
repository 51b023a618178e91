"""Pydantic domain models for SplitLedger."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

EntryKind = Literal["expense", "transfer", "income"]
SplitPolicy = Literal["equal", "exact", "weighted"]


def new_id() -> str:
    """Generate an opaque record identifier."""
    return uuid.uuid4().hex


# ============================================================================
# Group Models
# ============================================================================


class Participant(BaseModel):
    """A member of a group."""

    id: str = Field(default_factory=new_id)
    group_id: str
    name: str
    created_at: datetime = Field(default_factory=datetime.now)


class Group(BaseModel):
    """A group of participants sharing expenses."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    participants: list[Participant] = Field(default_factory=list)

    def participant_ids(self) -> list[str]:
        """Participant IDs in creation order."""
        return [p.id for p in self.participants]

    def has_participant(self, participant_id: str) -> bool:
        return any(p.id == participant_id for p in self.participants)

    def get_participant(self, participant_id: str) -> Participant:
        """Get a participant by ID."""
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        raise KeyError(f"Participant {participant_id} not in group {self.id}")

    def find_participant(self, name: str) -> Participant | None:
        """Find a participant by display name (case-insensitive)."""
        wanted = name.strip().lower()
        for participant in self.participants:
            if participant.name.lower() == wanted:
                return participant
        return None


# ============================================================================
# Ledger Models
# ============================================================================


class SplitShare(BaseModel):
    """Raw split input for one participant.

    Which field matters depends on the policy: ``custom_amount`` for exact
    splits, ``weight`` for weighted splits, neither for equal splits.
    """

    participant_id: str
    custom_amount: Decimal | None = None
    weight: Decimal | None = None


class Split(BaseModel):
    """A participant's computed share of a ledger entry."""

    id: str = Field(default_factory=new_id)
    entry_id: str | None = None  # set when the owning entry is persisted
    participant_id: str
    amount: Decimal
    custom_amount: Decimal | None = None
    weight: Decimal | None = None


class LedgerEntry(BaseModel):
    """An expense, transfer or income record.

    Transfers move money directly from ``paid_by`` to ``recipient_id`` and
    carry no splits. Expenses and income are shared through ``splits``.
    """

    id: str = Field(default_factory=new_id)
    group_id: str
    amount: Decimal
    paid_by: str
    kind: EntryKind = "expense"
    split_policy: SplitPolicy = "equal"
    description: str | None = None
    category: str | None = None
    recipient_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    splits: list[Split] = Field(default_factory=list)

    def split_for(self, participant_id: str) -> Decimal:
        """Get the split amount for a participant (zero if not included)."""
        for split in self.splits:
            if split.participant_id == participant_id:
                return split.amount
        return Decimal("0.00")


class Settlement(BaseModel):
    """A recorded real-world payment between two participants."""

    id: str = Field(default_factory=new_id)
    group_id: str
    from_participant_id: str
    to_participant_id: str
    amount: Decimal
    settlement_date: date = Field(default_factory=date.today)
    description: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


# ============================================================================
# Computed Models
# ============================================================================


class TransferSuggestion(BaseModel):
    """A proposed, not-yet-executed transfer that reduces balances."""

    from_participant_id: str
    to_participant_id: str
    amount: Decimal


class GroupSummary(BaseModel):
    """Everything the presentation layer needs to show a group."""

    group: Group
    entries: list[LedgerEntry]
    settlements: list[Settlement]
    balances: dict[str, Decimal]
    suggestions: list[TransferSuggestion]
    total_spent: Decimal


class GroupView(BaseModel):
    """When a participant last looked at a group."""

    group_id: str
    participant_id: str
    viewed_at: datetime = Field(default_factory=datetime.now)
