"""Custom exceptions for SpendSense."""


class SpendSenseError(Exception):
    """Base exception for all SpendSense errors."""

    pass


class ConfigurationError(SpendSenseError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(SpendSenseError):
    """Raised when user input is rejected before any state is changed."""

    pass


class InvalidAmountError(ValidationError):
    """Raised when an amount is blank, unparseable or not positive."""

    def __init__(self, raw: object, message: str | None = None):
        self.raw = raw
        super().__init__(message or f"Invalid amount: {raw!r} (enter a positive number)")


class NoValidSharesError(ValidationError):
    """Raised when a custom split has no positive share at all."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message or "Enter at least one positive amount for the custom split"
        )


class AmountMismatchError(ValidationError):
    """Raised when custom shares don't add up to the expense amount."""

    def __init__(self, expected, actual, tolerance):
        self.expected = expected
        self.actual = actual
        self.tolerance = tolerance
        super().__init__(
            f"The sum of custom shares ({actual}) does not match the total "
            f"amount ({expected}) within {tolerance}"
        )


class NotFoundError(SpendSenseError):
    """Base class for lookups of unknown ids."""

    pass


class GroupNotFoundError(NotFoundError):
    """Raised when a group id is unknown."""

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Group {group_id} not found")


class MemberNotFoundError(NotFoundError):
    """Raised when a member id (or name) is not in the group."""

    def __init__(self, member_ref: str, group_name: str | None = None):
        self.member_ref = member_ref
        where = f" in group '{group_name}'" if group_name else ""
        super().__init__(f"Member {member_ref} not found{where}")


class ExpenseNotFoundError(NotFoundError):
    """Raised when an expense id is unknown."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} not found")


class PersistenceError(SpendSenseError):
    """Raised when the ledger store can't be read or written."""

    pass
