"""Presentation helpers: the acting participant, labels, interactive pickers.

The acting participant ("who am I?") only changes how things are worded. It
is never passed to the balance or settlement computations.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import Group, LedgerEntry, Participant, TransferSuggestion

logger = logging.getLogger(__name__)

SETTLED_THRESHOLD = Decimal("0.01")


def format_amount(amount: Decimal, currency_symbol: str = "$") -> str:
    """Format an unsigned amount like $1,234.50."""
    return f"{currency_symbol}{abs(amount):,.2f}"


def describe_balance(balance: Decimal, currency_symbol: str = "$") -> str:
    """
    Describe a balance in words.

    Example:
        Decimal("12.50") -> "Gets $12.50"
        Decimal("-3")    -> "Owes $3.00"
        Decimal("0")     -> "Settled"
    """
    if abs(balance) < SETTLED_THRESHOLD:
        return "Settled"
    if balance > 0:
        return f"Gets {format_amount(balance, currency_symbol)}"
    return f"Owes {format_amount(balance, currency_symbol)}"


def display_name(
    group: Group, participant_id: str, acting_participant_id: str | None = None
) -> str:
    """Participant name, marked "(you)" for the acting participant."""
    if group.has_participant(participant_id):
        name = group.get_participant(participant_id).name
    else:
        name = "Unknown"
    if participant_id == acting_participant_id:
        return f"{name} (you)"
    return name


def describe_suggestion(
    group: Group,
    suggestion: TransferSuggestion,
    acting_participant_id: str | None = None,
    currency_symbol: str = "$",
) -> str:
    """Word a transfer suggestion from the acting participant's point of view."""
    amount = format_amount(suggestion.amount, currency_symbol)
    payer = group.get_participant(suggestion.from_participant_id).name
    payee = group.get_participant(suggestion.to_participant_id).name

    if suggestion.from_participant_id == acting_participant_id:
        return f"You pay {payee} {amount}"
    if suggestion.to_participant_id == acting_participant_id:
        return f"{payer} pays you {amount}"
    return f"{payer} pays {payee} {amount}"


def is_new_since(entry: LedgerEntry, last_viewed: datetime | None) -> bool:
    """Whether an entry was added after the acting participant's last visit."""
    if last_viewed is None:
        return False
    return entry.created_at > last_viewed


class ParticipantCompleter(Completer):
    """Fuzzy search completer for group participants."""

    def __init__(self, participants: list[Participant]):
        """Initialize the completer with the group's participants."""
        self.participants = participants
        self.name_to_id = {p.name: p.id for p in participants}

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for participant in self.participants:
            if not query or self._fuzzy_match(query, participant.name.lower()):
                yield Completion(
                    text=participant.name,
                    start_position=-len(document.text),
                    display=participant.name,
                )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """
        Fuzzy match: all characters in query must appear in order in text.

        Example:
            query="al" matches "Alice"
            query="bb" matches "Bobby"
        """
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)


def select_participant_interactive(group: Group) -> str | None:
    """
    Ask who is using the app, with fuzzy search over the group's members.

    Args:
        group: The group being viewed

    Returns:
        Selected participant ID, or None to continue anonymously
    """
    if not group.participants:
        return None

    print(f"\n👤 Who are you in '{group.name}'?")
    print("   Type to search, press Enter to confirm, Ctrl+C to skip\n")

    completer = ParticipantCompleter(group.participants)
    session: PromptSession[str] = PromptSession(completer=completer)

    try:
        while True:
            result = session.prompt("Name: ", complete_while_typing=True)

            if not result:
                return None

            participant = group.find_participant(result)
            if participant:
                logger.info(f"Acting as {participant.name}")
                return participant.id

            print("❌ Unknown participant. Press Tab to see the list.")

    except KeyboardInterrupt:
        print("\n⏭️  Skipped")
        return None
    except EOFError:
        return None


def confirm(prompt: str) -> bool:
    """Simple yes/no confirmation, defaulting to no."""
    response = input(f"{prompt} [y/N] ").strip().lower()
    return response in ("y", "yes")
