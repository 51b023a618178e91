"""Settlement suggestions: who should pay whom to zero every balance.

Strategies are pluggable. ``GreedySettlementStrategy`` matches the largest
debtor with the largest creditor until nothing is left; it is fast and
optimal for the usual case. ``ExactSettlementStrategy`` finds the true
minimum number of transfers for small groups.
"""

import heapq
import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Protocol

from .exceptions import ValidationError
from .models import TransferSuggestion
from .splitter import CENT, from_cents, to_cents

logger = logging.getLogger(__name__)

# (from_participant_id, to_participant_id, cents)
Transfer = tuple[str, str, int]


class SettlementStrategy(Protocol):
    """Anything that turns balances into transfer suggestions."""

    def suggest(
        self, balances: Mapping[str, Decimal], max_drift: Decimal = CENT
    ) -> list[TransferSuggestion]:
        ...


def _balances_to_cents(
    balances: Mapping[str, Decimal], max_drift: Decimal = CENT
) -> dict[str, int]:
    """
    Convert balances to cents, refusing anything that can't settle.

    Rounding drift up to ``max_drift`` is taken off the largest balance on the
    side that is too big: the largest creditor when credits exceed debts, the
    largest debtor otherwise. Ties go to the participant listed first.
    """
    cents = {}
    for participant_id, balance in balances.items():
        if not isinstance(balance, Decimal) or not balance.is_finite():
            raise ValidationError(
                f"Unresolvable balance {balance!r} for participant {participant_id}"
            )
        cents[participant_id] = to_cents(balance)

    total = sum(cents.values())
    if total == 0:
        return cents
    if abs(total) > to_cents(max_drift):
        raise ValidationError(
            f"Balances don't net to zero (off by {from_cents(total)}); "
            f"they can't be settled"
        )

    sign = 1 if total > 0 else -1
    absorber = max(cents, key=lambda pid: sign * cents[pid])
    cents[absorber] -= total
    logger.warning(
        f"Balances drift by {from_cents(total)} from rounding; "
        f"adjusted {absorber} before matching"
    )
    return cents


def _greedy_match(
    cents: Mapping[str, int], position: Mapping[str, int]
) -> list[Transfer]:
    """
    Largest debtor pays largest creditor, repeatedly.

    Ties between equal amounts go to the participant listed first.
    """
    debtors: list[tuple[int, int, str]] = []
    creditors: list[tuple[int, int, str]] = []
    for participant_id, amount in cents.items():
        if amount < 0:
            heapq.heappush(debtors, (amount, position[participant_id], participant_id))
        elif amount > 0:
            heapq.heappush(
                creditors, (-amount, position[participant_id], participant_id)
            )

    transfers = []
    while debtors and creditors:
        debt_neg, debtor_pos, debtor = heapq.heappop(debtors)
        credit_neg, creditor_pos, creditor = heapq.heappop(creditors)

        debt = -debt_neg
        credit = -credit_neg
        amount = min(debt, credit)
        transfers.append((debtor, creditor, amount))

        if debt > amount:
            heapq.heappush(debtors, (amount - debt, debtor_pos, debtor))
        if credit > amount:
            heapq.heappush(creditors, (amount - credit, creditor_pos, creditor))

    return transfers


def _to_suggestions(
    transfers: list[Transfer], position: Mapping[str, int]
) -> list[TransferSuggestion]:
    """Order transfers by debtor, then creditor, in balance-mapping order."""
    ordered = sorted(transfers, key=lambda t: (position[t[0]], position[t[1]]))
    return [
        TransferSuggestion(
            from_participant_id=debtor,
            to_participant_id=creditor,
            amount=from_cents(amount),
        )
        for debtor, creditor, amount in ordered
    ]


class GreedySettlementStrategy:
    """Largest-debtor-to-largest-creditor matching."""

    def suggest(
        self, balances: Mapping[str, Decimal], max_drift: Decimal = CENT
    ) -> list[TransferSuggestion]:
        """
        Propose transfers that zero every balance.

        Args:
            balances: Participant ID to balance (positive = is owed)
            max_drift: Largest rounding drift to absorb before matching

        Returns:
            Transfer suggestions, grouped by debtor in balance order
        """
        cents = _balances_to_cents(balances, max_drift)
        position = {pid: i for i, pid in enumerate(cents)}
        transfers = _greedy_match(cents, position)

        logger.debug(f"Greedy matching produced {len(transfers)} transfers")
        return _to_suggestions(transfers, position)


class ExactSettlementStrategy:
    """
    Minimum-transfer matching.

    A group of k participants whose balances sum to zero can always be settled
    with k - 1 transfers, so the fewest transfers overall comes from splitting
    everyone into as many independent zero-sum groups as possible. This search
    is exponential in the number of non-zero balances; above
    ``max_participants`` it falls back to greedy matching.
    """

    def __init__(self, max_participants: int = 12):
        """Initialize the strategy."""
        self.max_participants = max_participants

    def suggest(
        self, balances: Mapping[str, Decimal], max_drift: Decimal = CENT
    ) -> list[TransferSuggestion]:
        """Propose the fewest transfers that zero every balance."""
        cents = _balances_to_cents(balances, max_drift)
        position = {pid: i for i, pid in enumerate(cents)}
        open_ids = [pid for pid, amount in cents.items() if amount != 0]

        if len(open_ids) > self.max_participants:
            logger.warning(
                f"{len(open_ids)} open balances exceeds exact-search limit of "
                f"{self.max_participants}; falling back to greedy matching"
            )
            return _to_suggestions(_greedy_match(cents, position), position)

        transfers: list[Transfer] = []
        for group in self._zero_sum_groups([cents[pid] for pid in open_ids]):
            members = {open_ids[i]: cents[open_ids[i]] for i in group}
            transfers.extend(_greedy_match(members, position))

        logger.debug(f"Exact matching produced {len(transfers)} transfers")
        return _to_suggestions(transfers, position)

    @staticmethod
    def _zero_sum_groups(values: list[int]) -> list[list[int]]:
        """Partition indices into the maximum number of zero-sum groups."""
        n = len(values)
        full = (1 << n) - 1

        sums = [0] * (1 << n)
        for mask in range(1, 1 << n):
            low = mask & -mask
            sums[mask] = sums[mask ^ low] + values[low.bit_length() - 1]

        memo: dict[int, tuple[int, int]] = {0: (0, 0)}

        def best(mask: int) -> tuple[int, int]:
            # mask always sums to zero here
            if mask in memo:
                return memo[mask]
            low = mask & -mask
            rest = mask ^ low
            result = (1, mask)  # the whole mask as a single group
            sub = rest
            while True:
                candidate = sub | low
                if candidate != mask and sums[candidate] == 0:
                    count = 1 + best(mask ^ candidate)[0]
                    if count > result[0]:
                        result = (count, candidate)
                if sub == 0:
                    break
                sub = (sub - 1) & rest
            memo[mask] = result
            return result

        groups = []
        mask = full
        while mask:
            _, chosen = best(mask)
            groups.append([i for i in range(n) if chosen >> i & 1])
            mask ^= chosen
        return groups


def get_strategy(name: str, max_participants: int = 12) -> SettlementStrategy:
    """Look up a settlement strategy by its configured name."""
    if name == "greedy":
        return GreedySettlementStrategy()
    if name == "exact":
        return ExactSettlementStrategy(max_participants=max_participants)
    raise ValidationError(f"Unknown settlement strategy: {name!r}")


def suggest_settlements(
    balances: Mapping[str, Decimal],
    strategy: SettlementStrategy | None = None,
    max_drift: Decimal = CENT,
) -> list[TransferSuggestion]:
    """
    Suggest transfers that zero every balance.

    Does not modify ``balances`` or record anything; recording a settlement is
    up to the caller once a user confirms the payment.

    Args:
        balances: Participant ID to balance, as from ``compute_balances``
        strategy: Matching strategy (greedy by default)
        max_drift: Largest rounding drift to absorb, as allowed by
            ``drift_limit`` for the entries behind ``balances``

    Returns:
        Ordered transfer suggestions
    """
    return (strategy or GreedySettlementStrategy()).suggest(balances, max_drift)
