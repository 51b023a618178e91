"""SQLite database operations for SplitLedger."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from .exceptions import NotFoundError, PersistenceError
from .models import Group, LedgerEntry, Participant, Settlement, Split

logger = logging.getLogger(__name__)


def _decimal_or_none(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _text_or_none(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


class Database:
    """SQLite-backed store for groups, ledger entries and settlements."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        try:
            self.conn = sqlite3.connect(str(db_path))
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open database {db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Cursor]:
        """Run statements in one transaction, surfacing failures as PersistenceError."""
        try:
            with self.conn:
                yield self.conn.cursor()
        except sqlite3.Error as e:
            raise PersistenceError(f"Database write failed: {e}") from e

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Cursor]:
        try:
            yield self.conn.cursor()
        except sqlite3.Error as e:
            raise PersistenceError(f"Database read failed: {e}") from e

    def _init_schema(self):
        """Initialize database schema."""
        with self._write() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS groups (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_at TIMESTAMP NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS participants (
                    id TEXT PRIMARY KEY,
                    group_id TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS entries (
                    id TEXT PRIMARY KEY,
                    group_id TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
                    amount TEXT NOT NULL,
                    paid_by TEXT NOT NULL REFERENCES participants(id),
                    kind TEXT NOT NULL,
                    split_policy TEXT NOT NULL,
                    description TEXT,
                    category TEXT,
                    recipient_id TEXT REFERENCES participants(id),
                    created_at TIMESTAMP NOT NULL
                )
            """
            )

            # Splits are owned by their entry
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS splits (
                    id TEXT PRIMARY KEY,
                    entry_id TEXT NOT NULL REFERENCES entries(id) ON DELETE CASCADE,
                    participant_id TEXT NOT NULL REFERENCES participants(id),
                    position INTEGER NOT NULL,
                    amount TEXT NOT NULL,
                    custom_amount TEXT,
                    weight TEXT
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS settlements (
                    id TEXT PRIMARY KEY,
                    group_id TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
                    from_participant_id TEXT NOT NULL REFERENCES participants(id),
                    to_participant_id TEXT NOT NULL REFERENCES participants(id),
                    amount TEXT NOT NULL,
                    settlement_date DATE NOT NULL,
                    description TEXT,
                    created_at TIMESTAMP NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS group_views (
                    group_id TEXT NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
                    participant_id TEXT NOT NULL
                        REFERENCES participants(id) ON DELETE CASCADE,
                    viewed_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (group_id, participant_id)
                )
            """
            )

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Group operations
    # ========================================================================

    def create_group(self, group: Group) -> Group:
        """Save a new group and any participants it already has."""
        with self._write() as cursor:
            cursor.execute(
                "INSERT INTO groups (id, name, description, created_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    group.id,
                    group.name,
                    group.description,
                    group.created_at.isoformat(),
                ),
            )
            for participant in group.participants:
                self._insert_participant(cursor, participant)

        logger.info(f"Created group '{group.name}' ({group.id})")
        return group

    def fetch_group(self, group_id: str) -> Group:
        """Get a group with its participants in creation order."""
        with self._read() as cursor:
            cursor.execute(
                "SELECT id, name, description, created_at FROM groups WHERE id = ?",
                (group_id,),
            )
            row = cursor.fetchone()
            if not row:
                raise NotFoundError("group", group_id)

            cursor.execute(
                """
                SELECT id, group_id, name, created_at
                FROM participants
                WHERE group_id = ?
                ORDER BY created_at, rowid
                """,
                (group_id,),
            )
            participants = [
                Participant(
                    id=p["id"],
                    group_id=p["group_id"],
                    name=p["name"],
                    created_at=datetime.fromisoformat(p["created_at"]),
                )
                for p in cursor.fetchall()
            ]

        return Group(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_at=datetime.fromisoformat(row["created_at"]),
            participants=participants,
        )

    def list_groups(self) -> list[Group]:
        """Get all groups, oldest first."""
        with self._read() as cursor:
            cursor.execute("SELECT id FROM groups ORDER BY created_at, rowid")
            group_ids = [row["id"] for row in cursor.fetchall()]
        return [self.fetch_group(group_id) for group_id in group_ids]

    # ========================================================================
    # Participant operations
    # ========================================================================

    def _insert_participant(self, cursor: sqlite3.Cursor, participant: Participant):
        cursor.execute(
            "INSERT INTO participants (id, group_id, name, created_at) "
            "VALUES (?, ?, ?, ?)",
            (
                participant.id,
                participant.group_id,
                participant.name,
                participant.created_at.isoformat(),
            ),
        )

    def add_participant(self, participant: Participant) -> Participant:
        """Add a participant to an existing group."""
        self.fetch_group(participant.group_id)
        with self._write() as cursor:
            self._insert_participant(cursor, participant)
        logger.info(f"Added participant '{participant.name}' ({participant.id})")
        return participant

    def rename_participant(self, participant_id: str, name: str) -> Participant:
        """Change a participant's display name."""
        with self._write() as cursor:
            cursor.execute(
                "UPDATE participants SET name = ? WHERE id = ?", (name, participant_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError("participant", participant_id)
            cursor.execute(
                "SELECT id, group_id, name, created_at FROM participants WHERE id = ?",
                (participant_id,),
            )
            row = cursor.fetchone()

        return Participant(
            id=row["id"],
            group_id=row["group_id"],
            name=row["name"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # ========================================================================
    # Ledger entry operations
    # ========================================================================

    def persist_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Insert or replace an entry together with its splits.

        Existing splits for the entry are replaced in the same transaction.

        Returns:
            The entry with every split's ``entry_id`` set
        """
        splits = [
            split.model_copy(update={"entry_id": entry.id}) for split in entry.splits
        ]

        with self._write() as cursor:
            cursor.execute(
                """
                INSERT INTO entries (
                    id, group_id, amount, paid_by, kind, split_policy,
                    description, category, recipient_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    amount = excluded.amount,
                    paid_by = excluded.paid_by,
                    kind = excluded.kind,
                    split_policy = excluded.split_policy,
                    description = excluded.description,
                    category = excluded.category,
                    recipient_id = excluded.recipient_id
                """,
                (
                    entry.id,
                    entry.group_id,
                    str(entry.amount),
                    entry.paid_by,
                    entry.kind,
                    entry.split_policy,
                    entry.description,
                    entry.category,
                    entry.recipient_id,
                    entry.created_at.isoformat(),
                ),
            )
            cursor.execute("DELETE FROM splits WHERE entry_id = ?", (entry.id,))
            cursor.executemany(
                """
                INSERT INTO splits (
                    id, entry_id, participant_id, position, amount,
                    custom_amount, weight
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        split.id,
                        entry.id,
                        split.participant_id,
                        position,
                        str(split.amount),
                        _text_or_none(split.custom_amount),
                        _text_or_none(split.weight),
                    )
                    for position, split in enumerate(splits)
                ],
            )

        logger.info(
            f"Saved {entry.kind} {entry.id} ({entry.amount}) "
            f"with {len(splits)} splits"
        )
        return entry.model_copy(update={"splits": splits})

    def _row_to_entry(self, row: sqlite3.Row, splits: list[Split]) -> LedgerEntry:
        return LedgerEntry(
            id=row["id"],
            group_id=row["group_id"],
            amount=Decimal(row["amount"]),
            paid_by=row["paid_by"],
            kind=row["kind"],
            split_policy=row["split_policy"],
            description=row["description"],
            category=row["category"],
            recipient_id=row["recipient_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            splits=splits,
        )

    def _fetch_splits(
        self, cursor: sqlite3.Cursor, entry_ids: list[str]
    ) -> dict[str, list[Split]]:
        by_entry: dict[str, list[Split]] = {entry_id: [] for entry_id in entry_ids}
        if not entry_ids:
            return by_entry

        placeholders = ", ".join("?" for _ in entry_ids)
        cursor.execute(
            f"""
            SELECT id, entry_id, participant_id, amount, custom_amount, weight
            FROM splits
            WHERE entry_id IN ({placeholders})
            ORDER BY entry_id, position
            """,
            entry_ids,
        )
        for row in cursor.fetchall():
            by_entry[row["entry_id"]].append(
                Split(
                    id=row["id"],
                    entry_id=row["entry_id"],
                    participant_id=row["participant_id"],
                    amount=Decimal(row["amount"]),
                    custom_amount=_decimal_or_none(row["custom_amount"]),
                    weight=_decimal_or_none(row["weight"]),
                )
            )
        return by_entry

    def fetch_entries(self, group_id: str) -> list[LedgerEntry]:
        """Get all entries for a group with their splits, oldest first."""
        with self._read() as cursor:
            cursor.execute(
                """
                SELECT id, group_id, amount, paid_by, kind, split_policy,
                       description, category, recipient_id, created_at
                FROM entries
                WHERE group_id = ?
                ORDER BY created_at, rowid
                """,
                (group_id,),
            )
            rows = cursor.fetchall()
            splits = self._fetch_splits(cursor, [row["id"] for row in rows])

        return [self._row_to_entry(row, splits[row["id"]]) for row in rows]

    def fetch_entry(self, entry_id: str) -> LedgerEntry:
        """Get a single entry with its splits."""
        with self._read() as cursor:
            cursor.execute(
                """
                SELECT id, group_id, amount, paid_by, kind, split_policy,
                       description, category, recipient_id, created_at
                FROM entries
                WHERE id = ?
                """,
                (entry_id,),
            )
            row = cursor.fetchone()
            if not row:
                raise NotFoundError("entry", entry_id)
            splits = self._fetch_splits(cursor, [entry_id])

        return self._row_to_entry(row, splits[entry_id])

    def delete_entry(self, entry_id: str):
        """Delete an entry; its splits go with it."""
        with self._write() as cursor:
            cursor.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("entry", entry_id)
        logger.info(f"Deleted entry {entry_id}")

    # ========================================================================
    # Settlement operations
    # ========================================================================

    def persist_settlement(self, settlement: Settlement) -> Settlement:
        """Insert or replace a settlement."""
        with self._write() as cursor:
            cursor.execute(
                """
                INSERT INTO settlements (
                    id, group_id, from_participant_id, to_participant_id,
                    amount, settlement_date, description, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    from_participant_id = excluded.from_participant_id,
                    to_participant_id = excluded.to_participant_id,
                    amount = excluded.amount,
                    settlement_date = excluded.settlement_date,
                    description = excluded.description
                """,
                (
                    settlement.id,
                    settlement.group_id,
                    settlement.from_participant_id,
                    settlement.to_participant_id,
                    str(settlement.amount),
                    settlement.settlement_date.isoformat(),
                    settlement.description,
                    settlement.created_at.isoformat(),
                ),
            )
        logger.info(f"Saved settlement {settlement.id} ({settlement.amount})")
        return settlement

    def fetch_settlements(self, group_id: str) -> list[Settlement]:
        """Get all settlements for a group, oldest first."""
        with self._read() as cursor:
            cursor.execute(
                """
                SELECT id, group_id, from_participant_id, to_participant_id,
                       amount, settlement_date, description, created_at
                FROM settlements
                WHERE group_id = ?
                ORDER BY settlement_date, created_at, rowid
                """,
                (group_id,),
            )
            return [
                Settlement(
                    id=row["id"],
                    group_id=row["group_id"],
                    from_participant_id=row["from_participant_id"],
                    to_participant_id=row["to_participant_id"],
                    amount=Decimal(row["amount"]),
                    settlement_date=date.fromisoformat(row["settlement_date"]),
                    description=row["description"],
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
                for row in cursor.fetchall()
            ]

    def delete_settlement(self, settlement_id: str):
        """Delete a recorded settlement."""
        with self._write() as cursor:
            cursor.execute("DELETE FROM settlements WHERE id = ?", (settlement_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("settlement", settlement_id)
        logger.info(f"Deleted settlement {settlement_id}")

    # ========================================================================
    # Group view operations
    # ========================================================================

    def record_group_view(
        self, group_id: str, participant_id: str, viewed_at: datetime | None = None
    ):
        """Remember when a participant last looked at a group."""
        with self._write() as cursor:
            cursor.execute(
                """
                INSERT INTO group_views (group_id, participant_id, viewed_at)
                VALUES (?, ?, ?)
                ON CONFLICT(group_id, participant_id) DO UPDATE SET
                    viewed_at = excluded.viewed_at
                """,
                (group_id, participant_id, (viewed_at or datetime.now()).isoformat()),
            )

    def get_last_viewed(self, group_id: str, participant_id: str) -> datetime | None:
        """Get when a participant last looked at a group."""
        with self._read() as cursor:
            cursor.execute(
                "SELECT viewed_at FROM group_views "
                "WHERE group_id = ? AND participant_id = ?",
                (group_id, participant_id),
            )
            row = cursor.fetchone()
        return datetime.fromisoformat(row["viewed_at"]) if row else None
