"""Aggregation engine: time-windowed totals, category breakdowns and trends.

Every function here is pure. The reference date and the current user's
profile name are passed in explicitly. Records with malformed dates are left
out of month buckets instead of raising.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal

from ..models import (
    CategoryTotal,
    Expense,
    Group,
    MonthTotal,
    PeriodTotals,
    PersonalExpense,
    SpendingStats,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
UNCATEGORIZED = "Uncategorized"
GROUP_UNCATEGORIZED = "Group (uncategorized)"


# ============================================================================
# Date helpers
# ============================================================================


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; aware values are shifted to local time."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed


def parse_display_date(value: str | None) -> datetime | None:
    """Parse a D/M/YYYY display date."""
    if not value:
        return None
    parts = value.strip().split("/")
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p) for p in parts)
        return datetime(year, month, day)
    except ValueError:
        return None


def month_key(moment: date) -> str:
    """Bucket key for a date, e.g. '2025-03'."""
    return f"{moment.year:04d}-{moment.month:02d}"


def month_label(key: str) -> str:
    """Short chart label for a bucket key: '2025-03' -> '03/25'."""
    year, month = key.split("-")
    return f"{month}/{year[-2:]}"


def in_month(moment: date | None, reference: date) -> bool:
    """Whether a date falls in the reference date's calendar month."""
    return (
        moment is not None
        and moment.year == reference.year
        and moment.month == reference.month
    )


def personal_date(expense: PersonalExpense) -> datetime | None:
    """When a personal expense happened: dateISO, else the display date."""
    return parse_timestamp(expense.date_iso) or parse_display_date(expense.date)


def category_name(category: str | None, fallback: str = UNCATEGORIZED) -> str:
    """Category label, with a fallback for null or blank categories."""
    if category and category.strip():
        return category.strip()
    return fallback


# ============================================================================
# Personal expenses
# ============================================================================


def personal_totals(
    expenses: Iterable[PersonalExpense], reference: date
) -> PeriodTotals:
    """
    Total personal spending for the reference month and for all time.

    All-time is unfiltered; the month total only counts expenses whose date
    can be parsed.
    """
    totals = PeriodTotals()
    for expense in expenses:
        totals.all_time += expense.amount
        if in_month(personal_date(expense), reference):
            totals.this_month += expense.amount
    return totals


# ============================================================================
# Group shares
# ============================================================================


def resolve_member_ids(group: Group, profile_name: str | None) -> set[str]:
    """Ids of members whose name matches the profile name, ignoring case."""
    if not profile_name or not profile_name.strip():
        return set()
    wanted = profile_name.strip().lower()
    return {m.id for m in group.members if m.name.strip().lower() == wanted}


def per_head_share(expense: Expense) -> Decimal | None:
    """Share per participant: the first split's share, else an even split."""
    if not expense.participant_ids:
        return None
    if expense.splits:
        return expense.splits[0].share
    return expense.amount / len(expense.participant_ids)


def user_share(expense: Expense, member_ids: set[str]) -> Decimal:
    """The user's share of an expense, counting every matched member id."""
    per_head = per_head_share(expense)
    if per_head is None or not expense.amount:
        return ZERO
    count = sum(1 for pid in expense.participant_ids if pid in member_ids)
    return per_head * count


def _user_group_shares(
    groups: Iterable[Group], profile_name: str | None
) -> Iterable[tuple[Expense, datetime, Decimal]]:
    """Yield (expense, created_at, share) for every expense the user is in."""
    for group in groups:
        member_ids = resolve_member_ids(group, profile_name)
        if not member_ids:
            continue
        for expense in group.expenses:
            share = user_share(expense, member_ids)
            if not share:
                continue
            created = parse_timestamp(expense.created_at)
            if created is None:
                logger.debug(f"Skipping expense {expense.id}: bad createdAt")
                continue
            yield expense, created, share


def group_share_totals(
    groups: Iterable[Group], profile_name: str | None, reference: date
) -> PeriodTotals:
    """
    The user's raw share of group expenses, this month and all time.

    Settlements are deliberately not applied: this reports consumption, not
    what is still owed.
    """
    totals = PeriodTotals()
    for _expense, created, share in _user_group_shares(groups, profile_name):
        totals.all_time += share
        if in_month(created, reference):
            totals.this_month += share
    return totals


# ============================================================================
# Categories and trends
# ============================================================================


def category_breakdown(
    entries: Iterable[tuple[str | None, Decimal]], sort: bool = False
) -> list[CategoryTotal]:
    """Sum amounts per category; optionally sorted by total descending."""
    totals: dict[str, Decimal] = {}
    for category, amount in entries:
        key = category_name(category)
        totals[key] = totals.get(key, ZERO) + amount

    result = [CategoryTotal(category=k, total=v) for k, v in totals.items()]
    if sort:
        result.sort(key=lambda c: c.total, reverse=True)
    return result


def group_category_totals(group: Group, sort: bool = False) -> list[CategoryTotal]:
    """Category totals over all of a group's expenses."""
    return category_breakdown(((e.category, e.amount) for e in group.expenses), sort)


def personal_category_totals(
    expenses: Iterable[PersonalExpense], reference: date | None = None
) -> list[CategoryTotal]:
    """Personal category totals, limited to one month when reference is given."""
    selected = (
        e
        for e in expenses
        if reference is None or in_month(personal_date(e), reference)
    )
    return category_breakdown(((e.category, e.amount) for e in selected), sort=True)


def monthly_trend(
    personal: Iterable[PersonalExpense],
    groups: Iterable[Group],
    profile_name: str | None,
) -> list[MonthTotal]:
    """Personal spending plus group shares per calendar month, oldest first."""
    buckets: dict[str, Decimal] = {}

    for expense in personal:
        moment = personal_date(expense)
        if moment is None:
            continue
        key = month_key(moment)
        buckets[key] = buckets.get(key, ZERO) + expense.amount

    for _expense, created, share in _user_group_shares(groups, profile_name):
        key = month_key(created)
        buckets[key] = buckets.get(key, ZERO) + share

    return [
        MonthTotal(key=key, label=month_label(key), total=buckets[key])
        for key in sorted(buckets)
    ]


def spending_stats(
    personal: Sequence[PersonalExpense],
    groups: Sequence[Group],
    profile_name: str | None,
    reference: date,
) -> SpendingStats:
    """Everything the stats view shows, computed in one pass over the ledger."""
    personal_period = personal_totals(personal, reference)
    group_period = group_share_totals(groups, profile_name, reference)

    entries = [
        (expense.category, expense.amount)
        for expense in personal
        if in_month(personal_date(expense), reference)
    ]
    entries.extend(
        (category_name(expense.category, GROUP_UNCATEGORIZED), share)
        for expense, created, share in _user_group_shares(groups, profile_name)
        if in_month(created, reference)
    )
    monthly_categories = category_breakdown(entries, sort=True)

    return SpendingStats(
        personal=personal_period,
        group=group_period,
        total=PeriodTotals(
            this_month=personal_period.this_month + group_period.this_month,
            all_time=personal_period.all_time + group_period.all_time,
        ),
        monthly_categories=monthly_categories,
        lifetime_by_month=monthly_trend(personal, groups, profile_name),
    )


def filter_expenses(
    group: Group, category: str | None = None, query: str | None = None
) -> list[Expense]:
    """
    Filter a group's expenses by category and free-text search.

    The search matches description, category or payer name, ignoring case.
    """
    wanted_category = category.strip().lower() if category else None
    needle = query.strip().lower() if query and query.strip() else None

    result = []
    for expense in group.expenses:
        if wanted_category and category_name(expense.category).lower() != wanted_category:
            continue
        if needle:
            haystacks = (
                expense.description.lower(),
                (expense.category or "").lower(),
                group.member_name(expense.payer_id).lower(),
            )
            if not any(needle in h for h in haystacks):
                continue
        result.append(expense)
    return result
