"""Split calculation: turn an entry amount and a split policy into Split records.

All arithmetic happens in integer cents so that the computed splits always
sum exactly to the entry amount.
"""

import logging
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Literal

from .exceptions import SplitMismatchError, ValidationError
from .models import Split, SplitPolicy, SplitShare

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DEFAULT_TOLERANCE = Decimal("0.01")

RemainderOrder = Literal["first", "last"]


def as_decimal(value: Decimal | int | float | str) -> Decimal:
    """
    Coerce a user-supplied amount to Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1"), not its binary
    expansion.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as e:
            raise ValidationError(f"Not a valid amount: {value!r}") from e

    if not result.is_finite():
        raise ValidationError(f"Amount must be a finite number, got {result}")
    return result


def to_cents(amount: Decimal) -> int:
    """
    Convert a Decimal currency amount to integer cents.
    Uses ROUND_HALF_UP for consistency.

    Args:
        amount: Currency amount as Decimal

    Returns:
        Amount in cents (integer)
    """
    amount = as_decimal(amount)
    exponent = amount.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -2:
        logger.warning(f"Amount {amount} has more than 2 decimal places; rounding")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a 2-place Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def require_positive(amount: Decimal | int | float | str) -> Decimal:
    """Validate that an amount is a finite number greater than zero."""
    value = as_decimal(amount)
    if value <= 0:
        raise ValidationError(f"Amount must be greater than zero, got {value}")
    if to_cents(value) <= 0:
        raise ValidationError(f"Amount {value} rounds to zero cents")
    return value


def allocate_cents(
    total_cents: int,
    weights: Sequence[Decimal],
    remainder_order: RemainderOrder = "first",
) -> list[int]:
    """
    Divide ``total_cents`` proportionally to ``weights`` (largest remainder).

    Each participant first gets the floor of their exact share. The leftover
    cents are then handed out one at a time to the participants with the
    largest fractional remainder; ties go to the earliest participant in input
    order (or the latest, with ``remainder_order="last"``).

    Equal splits are the special case where every weight is 1, so the first
    ``total % n`` participants receive the extra cent.

    Args:
        total_cents: Amount to divide, in cents
        weights: Positive weights, one per participant
        remainder_order: Tie-break direction for leftover cents

    Returns:
        Cents per participant, in input order, summing to ``total_cents``
    """
    weight_sum = sum(weights, Decimal("0"))
    if weight_sum <= 0:
        raise ValidationError("Weights must sum to more than zero")

    shares = []
    remainders = []
    for weight in weights:
        # Exact: quotient and remainder of (total * w) / W; every remainder
        # shares the denominator W so they compare directly.
        quotient, remainder = divmod(Decimal(total_cents) * weight, weight_sum)
        shares.append(int(quotient))
        remainders.append(remainder)

    residual = total_cents - sum(shares)
    direction = 1 if remainder_order == "first" else -1
    order = sorted(
        range(len(weights)), key=lambda i: (-remainders[i], direction * i)
    )
    for i in order[:residual]:
        shares[i] += 1

    return shares


def _normalize_shares(shares: Sequence[SplitShare | str]) -> list[SplitShare]:
    """Accept bare participant IDs as shorthand for shares with no raw input."""
    normalized = [
        SplitShare(participant_id=share) if isinstance(share, str) else share
        for share in shares
    ]

    if not normalized:
        raise ValidationError("At least one participant is required to split")

    seen: set[str] = set()
    for share in normalized:
        if share.participant_id in seen:
            raise ValidationError(
                f"Participant {share.participant_id} appears more than once"
            )
        seen.add(share.participant_id)

    return normalized


def _equal_splits(
    total_cents: int, shares: list[SplitShare], remainder_order: RemainderOrder
) -> list[int]:
    return allocate_cents(total_cents, [Decimal(1)] * len(shares), remainder_order)


def _weighted_splits(
    total_cents: int, shares: list[SplitShare], remainder_order: RemainderOrder
) -> list[int]:
    weights = []
    for share in shares:
        if share.weight is None:
            raise ValidationError(
                f"Weighted split needs a weight for {share.participant_id}"
            )
        weight = as_decimal(share.weight)
        if weight <= 0:
            raise ValidationError(
                f"Weight for {share.participant_id} must be greater than zero, "
                f"got {weight}"
            )
        weights.append(weight)

    return allocate_cents(total_cents, weights, remainder_order)


def _exact_splits(
    total_cents: int, shares: list[SplitShare], tolerance: Decimal
) -> list[int]:
    """
    Use the caller's custom amounts, absorbing a sub-tolerance residual.

    Steps:
    1. Convert each custom amount to cents
    2. Compute residual = total - sum
    3. If the residual exceeds the tolerance, raise SplitMismatchError
    4. Otherwise add the residual to the largest split
    """
    cents = []
    for share in shares:
        if share.custom_amount is None:
            raise ValidationError(
                f"Exact split needs an amount for {share.participant_id}"
            )
        amount = as_decimal(share.custom_amount)
        if amount < 0:
            raise ValidationError(
                f"Split amount for {share.participant_id} can't be negative, "
                f"got {amount}"
            )
        cents.append(to_cents(amount))

    actual_total = sum(cents)
    residual = total_cents - actual_total

    if abs(residual) > to_cents(tolerance):
        raise SplitMismatchError(
            expected=from_cents(total_cents), actual=from_cents(actual_total)
        )

    if residual != 0:
        largest = max(range(len(cents)), key=lambda i: cents[i])
        cents[largest] += residual
        logger.info(
            f"Applied rounding adjustment: {residual} cents "
            f"to participant {shares[largest].participant_id}"
        )

    return cents


def compute_splits(
    amount: Decimal | int | float | str,
    policy: SplitPolicy,
    shares: Sequence[SplitShare | str],
    *,
    remainder_order: RemainderOrder = "first",
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> list[Split]:
    """
    Compute one Split per participant, summing exactly to ``amount``.

    Args:
        amount: Entry amount (must be > 0)
        policy: "equal", "exact" or "weighted"
        shares: Participants in display order, with raw policy input
        remainder_order: Which end of the list gets leftover cents
        tolerance: Largest accepted mismatch for exact splits

    Returns:
        Splits in the same order as ``shares``, with ``entry_id`` unset

    Raises:
        ValidationError: Non-positive amount, bad weights, missing input
        SplitMismatchError: Exact amounts don't add up to the total
    """
    total_cents = to_cents(require_positive(amount))
    normalized = _normalize_shares(shares)

    if policy == "equal":
        cents = _equal_splits(total_cents, normalized, remainder_order)
    elif policy == "exact":
        cents = _exact_splits(total_cents, normalized, tolerance)
    elif policy == "weighted":
        cents = _weighted_splits(total_cents, normalized, remainder_order)
    else:
        raise ValidationError(f"Unknown split policy: {policy!r}")

    # Final verification
    assert sum(cents) == total_cents, "Split allocation failed"

    splits = [
        Split(
            participant_id=share.participant_id,
            amount=from_cents(share_cents),
            custom_amount=share.custom_amount if policy == "exact" else None,
            weight=share.weight if policy == "weighted" else None,
        )
        for share, share_cents in zip(normalized, cents, strict=True)
    ]

    logger.debug(
        f"Computed {policy} split of {from_cents(total_cents)} across "
        f"{len(splits)} participants"
    )

    return splits
