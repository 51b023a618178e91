"""Shape checks for incoming ledger entries and settlements.

These run before anything touches the store so a bad entry can be
re-prompted without side effects.
"""

from collections.abc import Sequence

from .exceptions import DanglingReferenceError, ValidationError
from .models import Group, LedgerEntry, Settlement, SplitShare
from .splitter import require_positive


def _require_member(group: Group, participant_id: str, role: str) -> None:
    if not group.has_participant(participant_id):
        raise DanglingReferenceError(
            f"{role.capitalize()} {participant_id} is not a member of group "
            f"'{group.name}'"
        )


def validate_entry(
    entry: LedgerEntry,
    group: Group,
    shares: Sequence[SplitShare | str] | None = None,
) -> None:
    """
    Validate a ledger entry against its group.

    For expenses and income the split participants come from ``shares`` when
    given (the raw input about to be split), otherwise from ``entry.splits``.

    Args:
        entry: The entry to check
        group: The group it is being recorded in
        shares: Optional raw split input

    Raises:
        ValidationError: Non-positive amount, missing split participants,
            duplicate participants, or a malformed transfer
        DanglingReferenceError: Payer, recipient or split participant is not
            in the group
    """
    if entry.group_id != group.id:
        raise DanglingReferenceError(
            f"Entry belongs to group {entry.group_id}, not {group.id}"
        )

    require_positive(entry.amount)
    _require_member(group, entry.paid_by, "payer")

    if entry.kind == "transfer":
        if entry.recipient_id is None:
            raise ValidationError("A transfer needs a recipient")
        _require_member(group, entry.recipient_id, "recipient")
        if entry.recipient_id == entry.paid_by:
            raise ValidationError("A transfer can't be sent to the payer")
        return

    if shares is not None:
        participant_ids = [
            share if isinstance(share, str) else share.participant_id
            for share in shares
        ]
    else:
        participant_ids = [split.participant_id for split in entry.splits]

    if not participant_ids:
        raise ValidationError(
            f"An {entry.kind} needs at least one participant to split with"
        )

    if len(set(participant_ids)) != len(participant_ids):
        raise ValidationError("A participant can only appear once in a split")

    for participant_id in participant_ids:
        _require_member(group, participant_id, "participant")


def validate_settlement(settlement: Settlement, group: Group) -> None:
    """
    Validate a settlement against its group.

    Raises:
        ValidationError: Non-positive amount or a self-payment
        DanglingReferenceError: Either party is not in the group
    """
    if settlement.group_id != group.id:
        raise DanglingReferenceError(
            f"Settlement belongs to group {settlement.group_id}, not {group.id}"
        )

    require_positive(settlement.amount)
    _require_member(group, settlement.from_participant_id, "payer")
    _require_member(group, settlement.to_participant_id, "recipient")

    if settlement.from_participant_id == settlement.to_participant_id:
        raise ValidationError("A settlement needs two different participants")
