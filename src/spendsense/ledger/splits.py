"""Split calculator: turns an expense amount into per-member shares."""

import logging
from collections.abc import Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..exceptions import (
    AmountMismatchError,
    InvalidAmountError,
    NoValidSharesError,
    ValidationError,
)
from ..models import Split, SplitMode, SplitResult

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DEFAULT_TOLERANCE = Decimal("0.5")


def round_money(amount: Decimal) -> Decimal:
    """Round to 2 decimals, half away from zero."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _to_decimal(raw: object) -> Decimal | None:
    """Parse a number, returning None for anything that isn't finite."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = Decimal(raw.strip()) if isinstance(raw, str) else Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def parse_amount(raw: object) -> Decimal:
    """
    Parse a user-entered amount.

    Args:
        raw: String, int, float or Decimal

    Returns:
        The amount as a Decimal

    Raises:
        InvalidAmountError: If the amount is blank, unparseable or not positive
    """
    value = _to_decimal(raw)
    if value is None or value <= 0:
        raise InvalidAmountError(raw)
    return value


def equal_splits(amount: Decimal, participant_ids: Sequence[str]) -> list[Split]:
    """
    Split an amount equally, rounding each share to the cent.

    The rounding drift (per_head * n - amount) is not redistributed.
    """
    if not participant_ids:
        raise ValidationError("Select at least one participant")

    per_head = round_money(amount / len(participant_ids))
    if per_head <= 0:
        raise ValidationError(
            f"Amount {amount} is too small to split between {len(participant_ids)} participants"
        )
    return [Split(member_id=pid, share=per_head) for pid in participant_ids]


def custom_splits(
    amount: Decimal,
    participant_ids: Sequence[str],
    raw_shares: Mapping[str, object],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> SplitResult:
    """
    Build splits from user-entered per-member amounts.

    Entries that are missing, unparseable or not positive are dropped, and the
    participant is removed from the expense. Dropped ids are reported back in
    the result.

    Args:
        amount: Expense total
        participant_ids: Selected participants, in display order
        raw_shares: Member id -> entered share
        tolerance: Maximum allowed |sum(shares) - amount|

    Returns:
        Splits, the surviving participant ids and the dropped ids

    Raises:
        NoValidSharesError: If no participant has a positive share
        AmountMismatchError: If the shares don't add up to the amount
    """
    splits = []
    dropped = []

    for pid in participant_ids:
        share = _to_decimal(raw_shares.get(pid))
        if share is None or share <= 0:
            dropped.append(pid)
            continue
        splits.append(Split(member_id=pid, share=share))

    if not splits:
        raise NoValidSharesError()

    total = sum((s.share for s in splits), Decimal("0"))
    if abs(total - amount) > tolerance:
        raise AmountMismatchError(expected=amount, actual=total, tolerance=tolerance)

    if dropped:
        logger.warning(
            f"Dropped {len(dropped)} participant(s) without a valid custom share: "
            f"{', '.join(dropped)}"
        )

    return SplitResult(
        splits=splits,
        participant_ids=[s.member_id for s in splits],
        dropped_ids=dropped,
    )


def compute_splits(
    amount: Decimal,
    participant_ids: Sequence[str],
    mode: SplitMode | str,
    raw_shares: Mapping[str, object] | None = None,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> SplitResult:
    """Compute splits for an expense in either equal or custom mode."""
    if amount <= 0:
        raise InvalidAmountError(amount)

    # Keep first occurrence of each participant
    participants = list(dict.fromkeys(participant_ids))

    try:
        split_mode = SplitMode(mode)
    except ValueError:
        raise ValidationError(f"Unknown split mode: {mode!r}") from None

    if split_mode is SplitMode.EQUAL:
        return SplitResult(
            splits=equal_splits(amount, participants),
            participant_ids=participants,
        )

    if not participants:
        raise ValidationError("Select at least one participant")
    return custom_splits(amount, participants, raw_shares or {}, tolerance)
