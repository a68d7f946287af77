"""Tests for the balance engine."""

from decimal import Decimal

from spendsense.ledger.balances import (
    balance_status,
    compute_balances,
    group_total,
    outstanding_total,
    suggest_creditor,
)
from spendsense.ledger.splits import custom_splits, equal_splits
from spendsense.models import BalanceRow, Expense, Group, Member, Settlement


def make_group(*names: str) -> Group:
    """Create a group whose member ids are the lowercased names."""
    return Group(
        id="g1",
        name="Trip",
        members=[Member(id=name.lower(), name=name) for name in names],
    )


def equal_expense(id: str, amount: str, payer: str, participants: list[str]) -> Expense:
    """Create an equally split expense."""
    value = Decimal(amount)
    return Expense(
        id=id,
        description=f"Expense {id}",
        amount=value,
        payer_id=payer,
        participant_ids=participants,
        splits=equal_splits(value, participants),
    )


def balance_map(group: Group) -> dict[str, Decimal]:
    return {row.member_id: row.balance for row in compute_balances(group)}


class TestScenarios:
    """Reference scenarios."""

    def test_equal_split_payer_receives(self):
        """Alice pays 100 split with Bob: Alice +50, Bob -50."""
        group = make_group("Alice", "Bob")
        group.expenses.append(equal_expense("e1", "100", "alice", ["alice", "bob"]))

        rows = compute_balances(group)

        assert [(r.name, r.balance) for r in rows] == [
            ("Alice", Decimal("50")),
            ("Bob", Decimal("-50")),
        ]

    def test_settlement_clears_balances(self):
        """Bob paying Alice 50 settles both."""
        group = make_group("Alice", "Bob")
        group.expenses.append(equal_expense("e1", "100", "alice", ["alice", "bob"]))
        group.settlements.append(
            Settlement(id="s1", from_member_id="bob", to_member_id="alice", amount=Decimal("50"))
        )

        assert balance_map(group) == {"alice": Decimal("0"), "bob": Decimal("0")}

    def test_custom_split(self):
        """Bob pays 100 split 70/30: Alice -70, Bob +70."""
        group = make_group("Alice", "Bob")
        result = custom_splits(Decimal("100"), ["alice", "bob"], {"alice": "70", "bob": "30"})
        group.expenses.append(
            Expense(
                id="e1",
                description="Dinner",
                amount=Decimal("100"),
                payer_id="bob",
                participant_ids=result.participant_ids,
                splits=result.splits,
            )
        )

        assert balance_map(group) == {"alice": Decimal("-70"), "bob": Decimal("70")}

    def test_settled_expense_is_excluded(self):
        """A settled expense has no effect on balances at all."""
        group = make_group("Alice", "Bob", "Carol")
        group.expenses.append(equal_expense("e1", "60", "carol", ["alice", "carol"]))
        before = balance_map(group)

        settled = equal_expense("e2", "100", "alice", ["alice", "bob"])
        settled.is_settled = True
        group.expenses.insert(0, settled)

        assert balance_map(group) == before


class TestProperties:
    """Invariants of the balance computation."""

    def test_balances_conserve_total(self):
        """Balances sum to zero, up to one cent of rounding per member."""
        group = make_group("Alice", "Bob", "Carol")
        group.expenses += [
            equal_expense("e1", "100", "alice", ["alice", "bob", "carol"]),
            equal_expense("e2", "47.11", "bob", ["alice", "bob", "carol"]),
            equal_expense("e3", "20", "carol", ["bob", "carol"]),
        ]
        group.settlements.append(
            Settlement(id="s1", from_member_id="bob", to_member_id="alice", amount=Decimal("12.34"))
        )

        total = sum(row.balance for row in compute_balances(group))

        assert abs(total) <= Decimal("0.01") * len(group.members)

    def test_idempotent(self):
        """Computing twice on the same group gives identical results."""
        group = make_group("Alice", "Bob")
        group.expenses.append(equal_expense("e1", "33", "bob", ["alice", "bob"]))

        assert compute_balances(group) == compute_balances(group)

    def test_toggle_settled_round_trip(self):
        """Settling and unsettling an expense restores the balance vector."""
        group = make_group("Alice", "Bob")
        group.expenses.append(equal_expense("e1", "80", "alice", ["alice", "bob"]))
        original = compute_balances(group)

        group.expenses[0].is_settled = True
        assert compute_balances(group) != original
        group.expenses[0].is_settled = False

        assert compute_balances(group) == original

    def test_zero_balances_included_and_ties_stable(self):
        """Every member gets a row; equal balances keep member order."""
        group = make_group("Dan", "Alice", "Bob", "Carol")
        group.expenses.append(equal_expense("e1", "10", "alice", ["alice", "bob"]))

        rows = compute_balances(group)

        assert [r.name for r in rows] == ["Alice", "Dan", "Carol", "Bob"]
        assert rows[1].balance == 0 and rows[2].balance == 0


class TestDefensiveDefaults:
    """Inconsistent historical data never raises."""

    def test_orphaned_member_is_not_reported(self):
        """Shares of a removed member are computed but not listed."""
        group = make_group("Alice", "Bob")
        group.expenses.append(equal_expense("e1", "90", "alice", ["alice", "bob", "ghost"]))

        rows = compute_balances(group)

        assert {r.member_id for r in rows} == {"alice", "bob"}
        assert balance_map(group) == {"alice": Decimal("60"), "bob": Decimal("-30")}

    def test_orphaned_payer_and_settlement(self):
        """Unknown payer and settlement ids are tolerated."""
        group = make_group("Alice")
        group.expenses.append(equal_expense("e1", "10", "ghost", ["alice"]))
        group.settlements.append(
            Settlement(id="s1", from_member_id="alice", to_member_id="ghost", amount=Decimal("4"))
        )

        assert balance_map(group) == {"alice": Decimal("-6")}

    def test_expense_without_splits_falls_back_to_equal(self):
        """Legacy expenses without splits are split evenly."""
        group = make_group("Alice", "Bob", "Carol")
        group.expenses.append(
            Expense(
                id="e1",
                description="Legacy",
                amount=Decimal("10"),
                payer_id="alice",
                participant_ids=["alice", "bob", "carol"],
            )
        )

        assert balance_map(group) == {
            "alice": Decimal("6.67"),
            "bob": Decimal("-3.33"),
            "carol": Decimal("-3.33"),
        }

    def test_expense_without_participants_is_skipped(self):
        """An expense with nobody to split between contributes nothing."""
        group = make_group("Alice")
        group.expenses.append(
            Expense(id="e1", description="Empty", amount=Decimal("10"), payer_id="alice")
        )

        assert balance_map(group) == {"alice": Decimal("0")}


class TestHelpers:
    """Tests for balance helpers."""

    def test_suggest_creditor_skips_small_balances(self):
        """The default creditor must be owed more than the threshold."""
        rows = [
            BalanceRow(member_id="a", name="A", balance=Decimal("0.40")),
            BalanceRow(member_id="b", name="B", balance=Decimal("-0.40")),
        ]
        assert suggest_creditor(rows) is None

        rows.insert(0, BalanceRow(member_id="c", name="C", balance=Decimal("12")))
        assert suggest_creditor(rows).member_id == "c"

    def test_balance_status(self):
        """Signs map to receive / owes / settled."""
        assert balance_status(BalanceRow(member_id="a", name="A", balance=Decimal("1"))) == "receive"
        assert balance_status(BalanceRow(member_id="a", name="A", balance=Decimal("-1"))) == "owes"
        assert balance_status(BalanceRow(member_id="a", name="A", balance=Decimal("0"))) == "settled"

    def test_totals(self):
        """Outstanding total ignores settled expenses; group total doesn't."""
        group = make_group("Alice", "Bob")
        group.expenses.append(equal_expense("e1", "30", "alice", ["alice", "bob"]))
        paid = equal_expense("e2", "20", "bob", ["alice", "bob"])
        paid.is_settled = True
        group.expenses.append(paid)

        assert outstanding_total(group) == Decimal("30")
        assert group_total(group) == Decimal("50")
