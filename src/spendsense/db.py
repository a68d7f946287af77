"""SQLite-backed ledger store for SpendSense.

The store is a flat key/value table of JSON blobs. Each ledger collection is
written as one full snapshot under its own key, so every write replaces the
whole collection.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import PersistenceError
from .models import Group, PersonalExpense, Profile

logger = logging.getLogger(__name__)

PERSONAL_EXPENSES_KEY = "personal_expenses"
GROUPS_KEY = "groups"
ACTIVE_GROUP_KEY = "active_group_id"
PROFILE_KEY = "profile"

_groups_adapter = TypeAdapter(list[Group])
_personal_adapter = TypeAdapter(list[PersonalExpense])


def _normalize_personal(raw: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Fill in a missing dateISO from the D/M/YYYY display date."""
    normalized = []
    for item in raw:
        if isinstance(item, dict) and not item.get("dateISO") and item.get("date"):
            parts = str(item["date"]).split("/")
            if len(parts) == 3:
                try:
                    day, month, year = (int(p) for p in parts)
                    item = {
                        **item,
                        "dateISO": datetime(year, month, day).isoformat(),
                    }
                except ValueError:
                    logger.debug(f"Unparseable display date on {item.get('id')}")
        normalized.append(item)
    return normalized


class Database:
    """SQLite key/value store manager."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        try:
            self.conn = sqlite3.connect(str(db_path))
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )
        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Raw key/value operations
    # ========================================================================

    def get(self, key: str) -> str | None:
        """Get a raw value by key."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT value FROM store WHERE key = ?", (key,))
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read '{key}': {e}") from e
        return str(row["value"]) if row else None

    def set(self, key: str, value: str):
        """Set a raw value, replacing any previous one."""
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                INSERT INTO store (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat()),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write '{key}': {e}") from e

    def remove(self, key: str):
        """Remove a key if present."""
        try:
            self.conn.execute("DELETE FROM store WHERE key = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to remove '{key}': {e}") from e

    def keys(self) -> list[str]:
        """List all stored keys."""
        try:
            cursor = self.conn.execute("SELECT key FROM store ORDER BY key")
            return [row["key"] for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list keys: {e}") from e

    def clear(self):
        """Remove every key."""
        try:
            self.conn.execute("DELETE FROM store")
            self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to clear store: {e}") from e

    def get_json(self, key: str) -> Any:
        """Get a value and decode it as JSON."""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Stored '{key}' is not valid JSON: {e}") from e

    # ========================================================================
    # Ledger collections
    # ========================================================================

    def load_groups(self) -> list[Group]:
        """Load all groups, newest first."""
        raw = self.get(GROUPS_KEY)
        if raw is None:
            return []
        try:
            return _groups_adapter.validate_json(raw)
        except PydanticValidationError as e:
            raise PersistenceError(f"Stored groups are corrupt: {e}") from e

    def save_groups(self, groups: list[Group]):
        """Replace the stored group list."""
        self.set(GROUPS_KEY, _groups_adapter.dump_json(groups, by_alias=True).decode())

    def load_personal_expenses(self) -> list[PersonalExpense]:
        """Load personal expenses, newest first."""
        raw = self.get_json(PERSONAL_EXPENSES_KEY)
        if raw is None:
            return []
        try:
            return _personal_adapter.validate_python(_normalize_personal(raw))
        except PydanticValidationError as e:
            raise PersistenceError(f"Stored personal expenses are corrupt: {e}") from e

    def save_personal_expenses(self, expenses: list[PersonalExpense]):
        """Replace the stored personal expense list."""
        self.set(
            PERSONAL_EXPENSES_KEY,
            _personal_adapter.dump_json(expenses, by_alias=True).decode(),
        )

    def get_active_group_id(self) -> str | None:
        """Get the active group pointer."""
        return self.get(ACTIVE_GROUP_KEY)

    def set_active_group_id(self, group_id: str):
        """Set the active group pointer."""
        self.set(ACTIVE_GROUP_KEY, group_id)

    def clear_active_group_id(self):
        """Clear the active group pointer."""
        self.remove(ACTIVE_GROUP_KEY)

    def load_profile(self) -> Profile | None:
        """Load the profile, if one was saved."""
        raw = self.get(PROFILE_KEY)
        if raw is None:
            return None
        try:
            return Profile.model_validate_json(raw)
        except PydanticValidationError as e:
            raise PersistenceError(f"Stored profile is corrupt: {e}") from e

    def save_profile(self, profile: Profile):
        """Replace the stored profile."""
        self.set(PROFILE_KEY, profile.model_dump_json(by_alias=True))
