"""SpendSense - Personal and group expense tracking with split balances."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .models import (
    BalanceRow,
    Expense,
    Group,
    Member,
    PersonalExpense,
    Profile,
    Settlement,
    Split,
    SplitMode,
)
from .ledger.aggregation import spending_stats
from .ledger.balances import compute_balances
from .ledger.service import ExpenseForm, LedgerService
from .ledger.splits import compute_splits

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "BalanceRow",
    "Expense",
    "Group",
    "Member",
    "PersonalExpense",
    "Profile",
    "Settlement",
    "Split",
    "SplitMode",
    "spending_stats",
    "compute_balances",
    "ExpenseForm",
    "LedgerService",
    "compute_splits",
]
