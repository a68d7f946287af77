"""Balance engine: reduces a group's expenses and settlements to net balances.

A positive balance means the member should receive money, a negative one means
the member owes. This is a pairwise-net view: it does not compute a minimal set
of transfers between members.
"""

from collections.abc import Sequence
from decimal import Decimal

from ..models import BalanceRow, Group
from .splits import round_money

ZERO = Decimal("0")


def compute_balances(group: Group) -> list[BalanceRow]:
    """
    Compute the net balance of every member of a group.

    Settled expenses are ignored entirely. Settlements move the debtor up and
    the creditor down by the settled amount. Ids that no longer belong to a
    member (e.g. removed members) are accumulated but not reported.

    Args:
        group: The group to compute balances for

    Returns:
        One row per member, sorted by balance descending (stable for ties)
    """
    balances: dict[str, Decimal] = {m.id: ZERO for m in group.members}

    for expense in group.expenses:
        if expense.is_settled:
            continue

        participants = expense.participant_ids
        if not participants:
            continue

        if expense.splits:
            for split in expense.splits:
                balances[split.member_id] = balances.get(split.member_id, ZERO) - split.share
        else:
            # Legacy records without splits: equal share per participant
            per_head = round_money(expense.amount / len(participants))
            for member_id in participants:
                balances[member_id] = balances.get(member_id, ZERO) - per_head

        # Payer fronted the full amount
        balances[expense.payer_id] = balances.get(expense.payer_id, ZERO) + expense.amount

    for settlement in group.settlements:
        balances[settlement.from_member_id] = (
            balances.get(settlement.from_member_id, ZERO) + settlement.amount
        )
        balances[settlement.to_member_id] = (
            balances.get(settlement.to_member_id, ZERO) - settlement.amount
        )

    rows = [
        BalanceRow(member_id=m.id, name=m.name, balance=round_money(balances[m.id]))
        for m in group.members
    ]
    rows.sort(key=lambda row: row.balance, reverse=True)
    return rows


def suggest_creditor(
    balances: Sequence[BalanceRow], threshold: Decimal = Decimal("0.5")
) -> BalanceRow | None:
    """
    Pick the default settlement target: the first member owed more than threshold.

    With three or more members this is only a convenience default, not a
    guarantee that the debtor owes that particular member.
    """
    for row in balances:
        if row.balance > threshold:
            return row
    return None


def balance_status(row: BalanceRow) -> str:
    """Classify a balance as 'receive', 'owes' or 'settled'."""
    if row.balance > 0:
        return "receive"
    if row.balance < 0:
        return "owes"
    return "settled"


def outstanding_total(group: Group) -> Decimal:
    """Sum of amounts of expenses not yet marked settled."""
    return sum((e.amount for e in group.expenses if not e.is_settled), ZERO)


def group_total(group: Group) -> Decimal:
    """Sum of amounts of all expenses."""
    return sum((e.amount for e in group.expenses), ZERO)
