"""Pydantic domain models for SpendSense."""

import time
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Decimal in Python, plain JSON number on the wire
Money = Annotated[
    Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")
]

_last_id = 0


def generate_id(prefix: str = "") -> str:
    """
    Generate a client-side, timestamp-based id.

    Ids are microsecond timestamps, bumped so that two ids generated in the
    same process are always distinct and increasing.
    """
    global _last_id
    candidate = time.time_ns() // 1000
    if candidate <= _last_id:
        candidate = _last_id + 1
    _last_id = candidate
    return f"{prefix}{candidate}"


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string ending in Z."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def display_date(day: date) -> str:
    """Format a date the way personal expenses show it (D/M/YYYY)."""
    return f"{day.day}/{day.month}/{day.year}"


class LedgerModel(BaseModel):
    """Base for models persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Persisted Models
# ============================================================================


class SplitMode(str, Enum):
    """How an expense amount is divided among participants."""

    EQUAL = "equal"
    CUSTOM = "custom"


class Member(LedgerModel):
    """A member of one group. Names are not unique."""

    id: str
    name: str


class Split(LedgerModel):
    """A member's share of one expense."""

    member_id: str
    share: Money


class Expense(LedgerModel):
    """A group expense paid by one member and split among participants."""

    id: str
    description: str
    category: str | None = None
    amount: Money
    payer_id: str
    participant_ids: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=now_iso)
    splits: list[Split] = Field(default_factory=list)
    is_settled: bool = False


class Settlement(LedgerModel):
    """An out-of-band payment from one member to another."""

    id: str
    from_member_id: str
    to_member_id: str
    amount: Money
    created_at: str = Field(default_factory=now_iso)


class Group(LedgerModel):
    """A group owns its members, expenses and settlements."""

    id: str
    name: str
    created_at: str = Field(default_factory=now_iso)
    members: list[Member] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)  # newest first
    settlements: list[Settlement] = Field(default_factory=list)

    def find_member(self, member_id: str) -> Member | None:
        """Get a member by id."""
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def find_expense(self, expense_id: str) -> Expense | None:
        """Get an expense by id."""
        for expense in self.expenses:
            if expense.id == expense_id:
                return expense
        return None

    def member_name(self, member_id: str) -> str:
        """Display name for a member id, tolerating removed members."""
        member = self.find_member(member_id)
        return member.name if member else "Unknown"


class PersonalExpense(LedgerModel):
    """A standalone expense, not linked to any group."""

    id: str
    title: str
    amount: Money
    category: str | None = None
    date: str | None = None  # display string, D/M/YYYY
    date_iso: str | None = Field(default=None, alias="dateISO")


class Profile(LedgerModel):
    """The local user's profile. Its name identifies "you" inside groups."""

    name: str = ""
    email: str = ""
    phone: str = ""
    note: str = ""
    updated_at: str = Field(default_factory=now_iso)


# ============================================================================
# Derived Models
# ============================================================================


class SplitResult(BaseModel):
    """Output of the split calculator."""

    splits: list[Split]
    participant_ids: list[str]
    dropped_ids: list[str] = Field(default_factory=list)  # invalid custom entries


class BalanceRow(LedgerModel):
    """Net balance of one member: positive receives, negative owes."""

    member_id: str
    name: str
    balance: Money


class CategoryTotal(BaseModel):
    """Total spent in one category."""

    category: str
    total: Money


class MonthTotal(BaseModel):
    """Total spent in one calendar month."""

    key: str  # YYYY-MM
    label: str  # MM/YY
    total: Money


class PeriodTotals(BaseModel):
    """Totals for the reference month and for all time."""

    this_month: Money = Decimal("0")
    all_time: Money = Decimal("0")


class SpendingStats(BaseModel):
    """Combined personal and group-share spending for one user."""

    personal: PeriodTotals
    group: PeriodTotals
    total: PeriodTotals
    monthly_categories: list[CategoryTotal] = Field(default_factory=list)
    lifetime_by_month: list[MonthTotal] = Field(default_factory=list)


class ExportDocument(BaseModel):
    """One-way JSON export of the whole ledger."""

    personal_expenses: list[Any] = Field(default_factory=list)
    groups: list[Any] = Field(default_factory=list)
    active_group: str | None = None
    exported_at: str = Field(default_factory=now_iso)
