"""Tests for the split calculator."""

from decimal import Decimal

import pytest

from spendsense.exceptions import (
    AmountMismatchError,
    InvalidAmountError,
    NoValidSharesError,
    ValidationError,
)
from spendsense.ledger.splits import (
    compute_splits,
    custom_splits,
    equal_splits,
    parse_amount,
    round_money,
)
from spendsense.models import SplitMode


class TestParseAmount:
    """Tests for parsing user-entered amounts."""

    def test_parses_plain_numbers(self):
        """Strings, ints and Decimals are accepted."""
        assert parse_amount("12.50") == Decimal("12.50")
        assert parse_amount(" 7 ") == Decimal("7")
        assert parse_amount(3) == Decimal("3")
        assert parse_amount(Decimal("0.01")) == Decimal("0.01")

    @pytest.mark.parametrize("raw", ["", "   ", "abc", "0", "-5", "NaN", "Infinity", None])
    def test_rejects_invalid_amounts(self, raw):
        """Blank, unparseable, non-finite and non-positive input is rejected."""
        with pytest.raises(InvalidAmountError):
            parse_amount(raw)


class TestEqualSplits:
    """Tests for equal-mode splitting."""

    def test_even_division(self):
        """100 between two members is 50 each."""
        splits = equal_splits(Decimal("100"), ["a", "b"])

        assert [s.member_id for s in splits] == ["a", "b"]
        assert all(s.share == Decimal("50.00") for s in splits)

    def test_rounds_each_share_to_cents(self):
        """100 between three is 33.33 each; the drift is not redistributed."""
        splits = equal_splits(Decimal("100"), ["a", "b", "c"])

        assert len(splits) == 3
        assert {s.share for s in splits} == {Decimal("33.33")}
        assert sum(s.share for s in splits) == Decimal("99.99")

    def test_half_cent_rounds_up(self):
        """0.125 per head rounds to 0.13."""
        splits = equal_splits(Decimal("0.25"), ["a", "b"])
        assert splits[0].share == Decimal("0.13")

    def test_requires_participants(self):
        """An empty participant list is a validation error."""
        with pytest.raises(ValidationError):
            equal_splits(Decimal("10"), [])

    def test_share_rounding_to_zero_rejected(self):
        """0.01 between three would leave everyone owing nothing."""
        with pytest.raises(ValidationError, match="too small"):
            equal_splits(Decimal("0.01"), ["a", "b", "c"])

    def test_smallest_positive_share_allowed(self):
        """0.02 between three still rounds to a cent each."""
        splits = equal_splits(Decimal("0.02"), ["a", "b", "c"])
        assert {s.share for s in splits} == {Decimal("0.01")}


class TestCustomSplits:
    """Tests for custom-mode splitting."""

    def test_exact_shares(self):
        """Shares that add up to the amount are kept as entered."""
        result = custom_splits(Decimal("100"), ["a", "b"], {"a": "70", "b": "30"})

        assert [(s.member_id, s.share) for s in result.splits] == [
            ("a", Decimal("70")),
            ("b", Decimal("30")),
        ]
        assert result.participant_ids == ["a", "b"]
        assert result.dropped_ids == []

    def test_invalid_entries_drop_participant(self):
        """Blank, unparseable and non-positive entries remove the participant."""
        result = custom_splits(
            Decimal("100"),
            ["a", "b", "c", "d", "e"],
            {"a": "100", "b": "", "c": "abc", "d": "-3"},
        )

        assert result.participant_ids == ["a"]
        assert result.dropped_ids == ["b", "c", "d", "e"]
        assert all(s.member_id in result.participant_ids for s in result.splits)

    def test_within_tolerance(self):
        """A sum off by exactly 0.5 is accepted."""
        result = custom_splits(Decimal("100"), ["a", "b"], {"a": "60", "b": "39.5"})
        assert sum(s.share for s in result.splits) == Decimal("99.5")

    def test_mismatch_beyond_tolerance(self):
        """A sum off by more than 0.5 is rejected."""
        with pytest.raises(AmountMismatchError, match="does not match"):
            custom_splits(Decimal("100"), ["a", "b"], {"a": "60", "b": "39.49"})

    def test_custom_tolerance(self):
        """The tolerance is configurable."""
        with pytest.raises(AmountMismatchError):
            custom_splits(
                Decimal("100"),
                ["a", "b"],
                {"a": "60", "b": "39.9"},
                tolerance=Decimal("0.05"),
            )

    def test_no_valid_shares(self):
        """All entries invalid is its own error, not a mismatch."""
        with pytest.raises(NoValidSharesError):
            custom_splits(Decimal("100"), ["a", "b"], {"a": "0", "b": "x"})


class TestComputeSplits:
    """Tests for the mode dispatcher."""

    def test_equal_mode_keeps_all_participants(self):
        """Equal mode yields one split per participant."""
        result = compute_splits(Decimal("90"), ["a", "b", "c"], SplitMode.EQUAL)

        assert result.participant_ids == ["a", "b", "c"]
        assert len(result.splits) == 3

    def test_mode_as_string(self):
        """Plain strings are accepted as modes."""
        result = compute_splits(Decimal("10"), ["a", "b"], "custom", {"a": "4", "b": "6"})
        assert [s.share for s in result.splits] == [Decimal("4"), Decimal("6")]

    def test_duplicate_participants_collapse(self):
        """A participant listed twice gets one split."""
        result = compute_splits(Decimal("10"), ["a", "a", "b"], SplitMode.EQUAL)
        assert result.participant_ids == ["a", "b"]
        assert result.splits[0].share == Decimal("5.00")

    def test_unknown_mode(self):
        """Unknown modes are rejected."""
        with pytest.raises(ValidationError, match="Unknown split mode"):
            compute_splits(Decimal("10"), ["a"], "weighted")

    def test_non_positive_amount(self):
        """The amount itself must be positive."""
        with pytest.raises(InvalidAmountError):
            compute_splits(Decimal("0"), ["a"], SplitMode.EQUAL)


def test_round_money_half_up():
    """Rounding is half away from zero at the cent."""
    assert round_money(Decimal("1.005")) == Decimal("1.01")
    assert round_money(Decimal("-1.005")) == Decimal("-1.01")
    assert round_money(Decimal("2.004")) == Decimal("2.00")
