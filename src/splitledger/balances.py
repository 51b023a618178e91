"""Fold ledger entries and settlements into a net balance per participant."""

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal

from .exceptions import DanglingReferenceError, ValidationError
from .models import LedgerEntry, Settlement
from .splitter import from_cents, to_cents

logger = logging.getLogger(__name__)


def _cents(amount: Decimal, context: str) -> int:
    if not isinstance(amount, Decimal) or not amount.is_finite():
        raise ValidationError(f"Unresolvable amount {amount!r} in {context}")
    return to_cents(amount)


class _Ledger:
    """Running balances in cents, refusing unknown participants."""

    def __init__(self, participant_ids: Sequence[str]):
        self.cents: dict[str, int] = {pid: 0 for pid in participant_ids}

    def post(self, participant_id: str, cents: int, context: str) -> None:
        if participant_id not in self.cents:
            raise DanglingReferenceError(
                f"Participant {participant_id} in {context} is not in the group"
            )
        self.cents[participant_id] += cents


def drift_limit(entry_count: int) -> Decimal:
    """Largest rounding drift tolerated across ``entry_count`` entries."""
    return from_cents(entry_count)


def compute_balances(
    entries: Iterable[LedgerEntry],
    settlements: Iterable[Settlement],
    participants: Sequence[str],
) -> dict[str, Decimal]:
    """
    Compute each participant's net balance.

    Positive means the participant is owed money, negative means they owe.

    - Expenses and income credit the payer with the full amount and debit
      every split participant by their split.
    - Transfers credit the payer and debit the recipient by the full amount.
    - Settlements credit the participant who paid and debit the one who
      received the money.

    This is a pure function: the same snapshot always gives the same result.

    Args:
        entries: Ledger entries with their persisted splits
        settlements: Recorded settlements
        participants: Participant IDs, in display order

    Returns:
        Mapping of participant ID to balance, in ``participants`` order

    Raises:
        ValidationError: A non-finite amount, or balances that don't net to
            zero within rounding tolerance
        DanglingReferenceError: A referenced participant is not in
            ``participants``
    """
    ledger = _Ledger(participants)
    entry_count = 0

    for entry in entries:
        entry_count += 1
        context = f"{entry.kind} {entry.id}"
        amount = _cents(entry.amount, context)

        if entry.kind == "transfer":
            if entry.recipient_id is None:
                raise ValidationError(f"Transfer {entry.id} has no recipient")
            ledger.post(entry.paid_by, amount, context)
            ledger.post(entry.recipient_id, -amount, context)
            continue

        ledger.post(entry.paid_by, amount, context)
        for split in entry.splits:
            ledger.post(
                split.participant_id, -_cents(split.amount, context), context
            )

    for settlement in settlements:
        context = f"settlement {settlement.id}"
        amount = _cents(settlement.amount, context)
        ledger.post(settlement.from_participant_id, amount, context)
        ledger.post(settlement.to_participant_id, -amount, context)

    drift = sum(ledger.cents.values())
    if abs(from_cents(drift)) > drift_limit(entry_count):
        raise ValidationError(
            f"Balances are off by {from_cents(drift)} across {entry_count} "
            f"entries; stored splits don't match their entry amounts"
        )
    if drift != 0:
        logger.warning(f"Balances drift by {from_cents(drift)} from rounding")

    return {pid: from_cents(cents) for pid, cents in ledger.cents.items()}


def total_spent(entries: Iterable[LedgerEntry]) -> Decimal:
    """Sum of all expense amounts (transfers and income excluded)."""
    cents = sum(to_cents(e.amount) for e in entries if e.kind == "expense")
    return from_cents(cents)
