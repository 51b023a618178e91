"""SplitLedger - Shared expense tracking with balances and settle-up suggestions."""

__version__ = "0.1.0"

from .balances import compute_balances
from .config import Settings, load_settings
from .db import Database
from .models import (
    Group,
    LedgerEntry,
    Participant,
    Settlement,
    Split,
    SplitShare,
    TransferSuggestion,
)
from .service import LedgerService
from .settlement import (
    ExactSettlementStrategy,
    GreedySettlementStrategy,
    SettlementStrategy,
    suggest_settlements,
)
from .splitter import compute_splits

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "Group",
    "LedgerEntry",
    "Participant",
    "Settlement",
    "Split",
    "SplitShare",
    "TransferSuggestion",
    "LedgerService",
    "compute_splits",
    "compute_balances",
    "suggest_settlements",
    "SettlementStrategy",
    "GreedySettlementStrategy",
    "ExactSettlementStrategy",
]
