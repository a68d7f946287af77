"""Tests for the SQLite ledger store."""

import json
from decimal import Decimal

import pytest

from spendsense.db import GROUPS_KEY, PERSONAL_EXPENSES_KEY, Database
from spendsense.exceptions import PersistenceError
from spendsense.models import Expense, Group, Member, PersonalExpense, Profile, Split


@pytest.fixture
def db(tmp_path):
    """Create a temporary database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


class TestKeyValue:
    """Raw key/value operations."""

    def test_get_set_remove(self, db):
        """Values are replaced on set and gone after remove."""
        assert db.get("k") is None
        db.set("k", "one")
        db.set("k", "two")
        assert db.get("k") == "two"

        db.remove("k")
        assert db.get("k") is None

    def test_clear(self, db):
        """Clear removes every key."""
        db.set("a", "1")
        db.set("b", "2")
        assert db.keys() == ["a", "b"]

        db.clear()
        assert db.keys() == []

    def test_survives_reopen(self, tmp_path):
        """Data is durable across connections."""
        path = tmp_path / "durable.db"
        first = Database(path)
        first.set_active_group_id("g1")
        first.close()

        second = Database(path)
        assert second.get_active_group_id() == "g1"
        second.close()


class TestCollections:
    """Typed ledger collections."""

    def test_empty_store(self, db):
        """Missing blobs load as empty collections."""
        assert db.load_groups() == []
        assert db.load_personal_expenses() == []
        assert db.load_profile() is None
        assert db.get_active_group_id() is None

    def test_groups_stored_with_camel_case_numbers(self, db):
        """Groups are stored as camelCase JSON with numeric amounts."""
        group = Group(
            id="g1",
            name="Trip",
            members=[Member(id="a", name="Alice")],
            expenses=[
                Expense(
                    id="e1",
                    description="Taxi",
                    amount=Decimal("12.5"),
                    payer_id="a",
                    participant_ids=["a"],
                    splits=[Split(member_id="a", share=Decimal("12.5"))],
                )
            ],
        )

        db.save_groups([group])
        raw = json.loads(db.get(GROUPS_KEY))
        loaded = db.load_groups()

        expense = raw[0]["expenses"][0]
        assert expense["payerId"] == "a"
        assert expense["participantIds"] == ["a"]
        assert expense["isSettled"] is False
        assert expense["amount"] == 12.5
        assert expense["splits"][0] == {"memberId": "a", "share": 12.5}
        assert loaded[0].expenses[0].amount == Decimal("12.5")

    def test_personal_expense_date_normalized(self, db):
        """Records without dateISO get one from the display date."""
        db.set(
            PERSONAL_EXPENSES_KEY,
            json.dumps(
                [
                    {"id": "p1", "title": "Old", "amount": 5, "date": "3/2/2025"},
                    {"id": "p2", "title": "Odd", "amount": 1, "date": "someday"},
                ]
            ),
        )

        expenses = db.load_personal_expenses()

        assert expenses[0].date_iso == "2025-02-03T00:00:00"
        assert expenses[1].date_iso is None

    def test_personal_expenses_keep_date_iso_key(self, db):
        """The ISO date is stored under dateISO."""
        db.save_personal_expenses(
            [PersonalExpense(id="p1", title="Tea", amount=Decimal("2"), date_iso="2026-01-01T00:00:00Z")]
        )
        assert json.loads(db.get(PERSONAL_EXPENSES_KEY))[0]["dateISO"] == "2026-01-01T00:00:00Z"

    def test_profile_round_trip(self, db):
        """The profile is stored with camelCase keys."""
        db.save_profile(Profile(name="Alice", email="a@example.com"))

        assert db.load_profile().name == "Alice"
        assert "updatedAt" in json.loads(db.get("profile"))

    def test_corrupt_blob_raises(self, db):
        """Corrupt stored data is reported, not silently dropped."""
        db.set(GROUPS_KEY, "{not json")
        with pytest.raises(PersistenceError):
            db.load_groups()

        db.set(PERSONAL_EXPENSES_KEY, "[{]")
        with pytest.raises(PersistenceError):
            db.load_personal_expenses()
