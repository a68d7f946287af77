"""Service layer for the SpendSense ledger.

Every mutating operation reads a whole collection from the store, applies the
change to a copy and writes the whole collection back. Validation runs before
anything is written. Nothing is cached in memory, so the store is always the
source of truth: a failed write raises and leaves no half-applied state.
"""

import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, Field

from ..config import Settings
from ..db import (
    ACTIVE_GROUP_KEY,
    GROUPS_KEY,
    PERSONAL_EXPENSES_KEY,
    Database,
)
from ..exceptions import (
    ExpenseNotFoundError,
    GroupNotFoundError,
    MemberNotFoundError,
    PersistenceError,
    ValidationError,
)
from ..models import (
    BalanceRow,
    ExportDocument,
    Expense,
    Group,
    Member,
    PersonalExpense,
    Profile,
    Settlement,
    SpendingStats,
    SplitMode,
    SplitResult,
    display_date,
    generate_id,
    now_iso,
)
from .aggregation import spending_stats
from .balances import compute_balances
from .splits import compute_splits, parse_amount

logger = logging.getLogger(__name__)


def _require_text(value: str | None, field: str) -> str:
    """Trim a required text field, rejecting blanks."""
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def _optional_text(value: str | None) -> str | None:
    """Trim an optional text field, mapping blanks to None."""
    text = (value or "").strip()
    return text or None


def resolve_member(group: Group, ref: str) -> Member:
    """
    Find a member by id, or else by case-insensitive name.

    Raises:
        MemberNotFoundError: If nothing matches
        ValidationError: If the name matches more than one member
    """
    member = group.find_member(ref)
    if member:
        return member

    wanted = ref.strip().lower()
    matches = [m for m in group.members if m.name.strip().lower() == wanted]
    if len(matches) > 1:
        raise ValidationError(
            f"'{ref}' matches {len(matches)} members in '{group.name}'; use the member id"
        )
    if not matches:
        raise MemberNotFoundError(ref, group.name)
    return matches[0]


class ExpenseForm(BaseModel):
    """In-progress state of the add/edit expense form."""

    description: str = ""
    amount: str = ""
    category: str = ""
    payer_id: str | None = None
    participant_ids: list[str] = Field(default_factory=list)
    mode: SplitMode = SplitMode.EQUAL
    custom_shares: dict[str, str] = Field(default_factory=dict)
    editing_expense_id: str | None = None

    def reset(self, group: Group | None = None):
        """Clear the form; payer defaults to the first member, everyone participates."""
        member_ids = [m.id for m in group.members] if group else []
        self.description = ""
        self.amount = ""
        self.category = ""
        self.payer_id = member_ids[0] if member_ids else None
        self.participant_ids = member_ids
        self.mode = SplitMode.EQUAL
        self.custom_shares = {}
        self.editing_expense_id = None

    def load(self, expense: Expense):
        """Pre-fill the form for editing an existing expense."""
        self.description = expense.description
        self.amount = str(expense.amount)
        self.category = expense.category or ""
        self.payer_id = expense.payer_id
        self.participant_ids = list(expense.participant_ids)
        self.editing_expense_id = expense.id

        shares = {s.share for s in expense.splits}
        if len(shares) > 1:
            self.mode = SplitMode.CUSTOM
            self.custom_shares = {s.member_id: str(s.share) for s in expense.splits}
        else:
            self.mode = SplitMode.EQUAL
            self.custom_shares = {}

    def on_member_added(self, member_ids: list[str]):
        """Default payer and participants once the group has members."""
        if not self.payer_id:
            self.payer_id = member_ids[-1] if member_ids else None
        if not self.participant_ids:
            self.participant_ids = list(member_ids)

    def on_member_removed(self, member_id: str, remaining_ids: list[str]):
        """Drop a removed member from the form selections."""
        if self.payer_id == member_id:
            self.payer_id = remaining_ids[0] if remaining_ids else None
        self.participant_ids = [pid for pid in self.participant_ids if pid != member_id]
        self.custom_shares.pop(member_id, None)


class LedgerService:
    """Lifecycle manager for groups, members, expenses and settlements."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the ledger service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Internal helpers
    # ========================================================================

    def _get_group_from(self, groups: list[Group], group_id: str) -> Group:
        for group in groups:
            if group.id == group_id:
                return group
        raise GroupNotFoundError(group_id)

    def _update_group(
        self, group_id: str, change: Callable[[Group], Group]
    ) -> Group:
        """Apply a copy-on-write change to one group and persist the list."""
        groups = self.db.load_groups()
        current = self._get_group_from(groups, group_id)
        updated = change(current)
        self.db.save_groups([updated if g.id == group_id else g for g in groups])
        return updated

    def _require_member(self, group: Group, member_id: str | None) -> Member:
        member = group.find_member(member_id) if member_id else None
        if member is None:
            raise MemberNotFoundError(member_id or "(none)", group.name)
        return member

    def _build_split(self, group: Group, form: ExpenseForm) -> tuple[Decimal, SplitResult]:
        """Validate the form and compute splits, before anything is written."""
        _require_text(form.description, "Description")
        amount = parse_amount(form.amount)
        self._require_member(group, form.payer_id)

        participants = form.participant_ids or [m.id for m in group.members]
        if not participants:
            raise ValidationError("Add members to split the expense")

        referenced = list(participants)
        if form.mode == SplitMode.CUSTOM:
            referenced.extend(form.custom_shares)
        for member_id in referenced:
            self._require_member(group, member_id)

        result = compute_splits(
            amount,
            participants,
            form.mode,
            raw_shares=form.custom_shares,
            tolerance=self.settings.custom_split_tolerance,
        )
        return amount, result

    # ========================================================================
    # Profile
    # ========================================================================

    def get_profile(self) -> Profile | None:
        """Get the saved profile."""
        return self.db.load_profile()

    def save_profile(
        self, name: str = "", email: str = "", phone: str = "", note: str = ""
    ) -> Profile:
        """Replace the profile with trimmed values."""
        profile = Profile(
            name=name.strip(),
            email=email.strip(),
            phone=phone.strip(),
            note=note.strip(),
            updated_at=now_iso(),
        )
        self.db.save_profile(profile)
        logger.info("Saved profile")
        return profile

    def current_user_name(self) -> str | None:
        """Name used to recognise the user among group members."""
        profile = self.get_profile()
        if profile and profile.name.strip():
            return profile.name.strip()
        return None

    # ========================================================================
    # Groups
    # ========================================================================

    def list_groups(self) -> list[Group]:
        """All groups, newest first."""
        return self.db.load_groups()

    def get_group(self, group_id: str) -> Group:
        """Get a group by id."""
        return self._get_group_from(self.db.load_groups(), group_id)

    def create_group(self, name: str, seed_self: bool = True) -> Group:
        """
        Create a group, adding the profile user as its first member.

        Args:
            name: Group name (required)
            seed_self: Add a member named after the profile, if one is set

        Returns:
            The new group
        """
        group_name = _require_text(name, "Group name")

        members = []
        user_name = self.current_user_name() if seed_self else None
        if user_name:
            members.append(Member(id=generate_id("self-"), name=user_name))

        group = Group(id=generate_id(), name=group_name, members=members)
        self.db.save_groups([group, *self.db.load_groups()])

        logger.info(f"Created group '{group.name}' ({group.id})")
        return group

    def rename_group(self, group_id: str, name: str) -> Group:
        """Rename a group."""
        new_name = _require_text(name, "Group name")
        return self._update_group(
            group_id, lambda g: g.model_copy(update={"name": new_name})
        )

    def delete_group(self, group_id: str):
        """Delete a group and everything it owns; clears it if it was active."""
        groups = self.db.load_groups()
        group = self._get_group_from(groups, group_id)
        self.db.save_groups([g for g in groups if g.id != group_id])

        if self.db.get_active_group_id() == group_id:
            self.db.clear_active_group_id()

        logger.info(f"Deleted group '{group.name}' ({group_id})")

    def set_active_group(self, group_id: str):
        """Mark a group as the default context."""
        self.get_group(group_id)
        self.db.set_active_group_id(group_id)

    def get_active_group_id(self) -> str | None:
        """Get the active group id, if any."""
        return self.db.get_active_group_id()

    # ========================================================================
    # Members
    # ========================================================================

    def add_member(
        self, group_id: str, name: str, form: ExpenseForm | None = None
    ) -> Member:
        """Add a member; an open form picks it up as default payer."""
        member = Member(id=generate_id(), name=_require_text(name, "Member name"))

        updated = self._update_group(
            group_id,
            lambda g: g.model_copy(update={"members": [*g.members, member]}),
        )

        if form is not None:
            form.on_member_added([m.id for m in updated.members])

        logger.info(f"Added member '{member.name}' to group {group_id}")
        return member

    def rename_member(self, group_id: str, member_id: str, name: str) -> Member:
        """Rename a member."""
        new_name = _require_text(name, "Member name")
        renamed = Member(id=member_id, name=new_name)

        def change(group: Group) -> Group:
            self._require_member(group, member_id)
            members = [renamed if m.id == member_id else m for m in group.members]
            return group.model_copy(update={"members": members})

        self._update_group(group_id, change)
        return renamed

    def remove_member(
        self, group_id: str, member_id: str, form: ExpenseForm | None = None
    ) -> Group:
        """
        Remove a member from a group.

        Saved expenses, splits and settlements keep referencing the removed id;
        only the open form is cleaned up.
        """

        def change(group: Group) -> Group:
            self._require_member(group, member_id)
            members = [m for m in group.members if m.id != member_id]
            return group.model_copy(update={"members": members})

        updated = self._update_group(group_id, change)

        if form is not None:
            form.on_member_removed(member_id, [m.id for m in updated.members])

        logger.info(f"Removed member {member_id} from group {group_id}")
        return updated

    # ========================================================================
    # Expenses
    # ========================================================================

    def add_expense(self, group_id: str, form: ExpenseForm) -> Expense:
        """Create an expense from the form and prepend it to the group."""
        group = self.get_group(group_id)
        amount, result = self._build_split(group, form)

        expense = Expense(
            id=generate_id(),
            description=form.description.strip(),
            category=_optional_text(form.category),
            amount=amount,
            payer_id=form.payer_id,
            participant_ids=result.participant_ids,
            splits=result.splits,
        )

        self._update_group(
            group_id,
            lambda g: g.model_copy(update={"expenses": [expense, *g.expenses]}),
        )

        logger.info(
            f"Added expense '{expense.description}' ({expense.amount}) "
            f"to group {group_id}"
        )
        return expense

    def update_expense(
        self, group_id: str, expense_id: str, form: ExpenseForm
    ) -> Expense:
        """Replace an expense's fields from the form, keeping id, date and status."""
        group = self.get_group(group_id)
        existing = group.find_expense(expense_id)
        if existing is None:
            raise ExpenseNotFoundError(expense_id)

        amount, result = self._build_split(group, form)
        updated = existing.model_copy(
            update={
                "description": form.description.strip(),
                "category": _optional_text(form.category),
                "amount": amount,
                "payer_id": form.payer_id,
                "participant_ids": result.participant_ids,
                "splits": result.splits,
            }
        )

        self._update_group(
            group_id,
            lambda g: g.model_copy(
                update={
                    "expenses": [updated if e.id == expense_id else e for e in g.expenses]
                }
            ),
        )

        logger.info(f"Updated expense {expense_id} in group {group_id}")
        return updated

    def delete_expense(self, group_id: str, expense_id: str):
        """Remove an expense by id."""

        def change(group: Group) -> Group:
            if group.find_expense(expense_id) is None:
                raise ExpenseNotFoundError(expense_id)
            expenses = [e for e in group.expenses if e.id != expense_id]
            return group.model_copy(update={"expenses": expenses})

        self._update_group(group_id, change)
        logger.info(f"Deleted expense {expense_id} from group {group_id}")

    def toggle_settled(self, group_id: str, expense_id: str) -> Expense:
        """Flip an expense's settled flag; nothing else changes."""

        def change(group: Group) -> Group:
            expenses = []
            for expense in group.expenses:
                if expense.id == expense_id:
                    expense = expense.model_copy(
                        update={"is_settled": not expense.is_settled}
                    )
                expenses.append(expense)
            if group.find_expense(expense_id) is None:
                raise ExpenseNotFoundError(expense_id)
            return group.model_copy(update={"expenses": expenses})

        updated = self._update_group(group_id, change)
        return updated.find_expense(expense_id)

    # ========================================================================
    # Settlements
    # ========================================================================

    def record_settlement(
        self,
        group_id: str,
        from_member_id: str,
        to_member_id: str,
        amount: object,
    ) -> Settlement:
        """
        Record that one member paid another outside of tracked expenses.

        Args:
            group_id: The group
            from_member_id: The debtor who paid
            to_member_id: The creditor who received
            amount: Positive amount (raw input accepted)

        Returns:
            The appended settlement
        """
        value = parse_amount(amount)
        group = self.get_group(group_id)
        self._require_member(group, from_member_id)
        self._require_member(group, to_member_id)
        if from_member_id == to_member_id:
            raise ValidationError("A member can't settle with themselves")

        settlement = Settlement(
            id=generate_id(),
            from_member_id=from_member_id,
            to_member_id=to_member_id,
            amount=value,
        )
        self._update_group(
            group_id,
            lambda g: g.model_copy(update={"settlements": [*g.settlements, settlement]}),
        )

        logger.info(
            f"Recorded settlement {from_member_id} -> {to_member_id} ({value}) "
            f"in group {group_id}"
        )
        return settlement

    # ========================================================================
    # Personal expenses
    # ========================================================================

    def list_personal_expenses(self) -> list[PersonalExpense]:
        """All personal expenses, newest first."""
        return self.db.load_personal_expenses()

    def add_personal_expense(
        self, title: str, amount: object, category: str | None = None
    ) -> PersonalExpense:
        """Create a personal expense dated now."""
        expense = PersonalExpense(
            id=generate_id(),
            title=_require_text(title, "Title"),
            amount=parse_amount(amount),
            category=_optional_text(category),
            date=display_date(date.today()),
            date_iso=now_iso(),
        )
        self.db.save_personal_expenses([expense, *self.db.load_personal_expenses()])

        logger.info(f"Added personal expense '{expense.title}' ({expense.amount})")
        return expense

    def update_personal_expense(
        self,
        expense_id: str,
        title: str,
        amount: object,
        category: str | None = None,
    ) -> PersonalExpense:
        """Edit a personal expense, keeping its dates (filled in if missing)."""
        new_title = _require_text(title, "Title")
        value = parse_amount(amount)

        expenses = self.db.load_personal_expenses()
        existing = next((e for e in expenses if e.id == expense_id), None)
        if existing is None:
            raise ExpenseNotFoundError(expense_id)

        updated = existing.model_copy(
            update={
                "title": new_title,
                "amount": value,
                "category": _optional_text(category),
                "date_iso": existing.date_iso or now_iso(),
                "date": existing.date or display_date(date.today()),
            }
        )
        self.db.save_personal_expenses(
            [updated if e.id == expense_id else e for e in expenses]
        )
        return updated

    def delete_personal_expense(self, expense_id: str):
        """Remove a personal expense by id."""
        expenses = self.db.load_personal_expenses()
        if not any(e.id == expense_id for e in expenses):
            raise ExpenseNotFoundError(expense_id)
        self.db.save_personal_expenses([e for e in expenses if e.id != expense_id])

    # ========================================================================
    # Read side
    # ========================================================================

    def balances(self, group_id: str) -> list[BalanceRow]:
        """Net balances for a group."""
        return compute_balances(self.get_group(group_id))

    def stats(self, reference: date | None = None) -> SpendingStats:
        """Spending stats for the profile user."""
        return spending_stats(
            personal=self.db.load_personal_expenses(),
            groups=self.db.load_groups(),
            profile_name=self.current_user_name(),
            reference=reference or date.today(),
        )

    # ========================================================================
    # Export and reset
    # ========================================================================

    def export_snapshot(self) -> ExportDocument:
        """Snapshot of the stored ledger, taken verbatim from the store."""
        return ExportDocument(
            personal_expenses=self.db.get_json(PERSONAL_EXPENSES_KEY) or [],
            groups=self.db.get_json(GROUPS_KEY) or [],
            active_group=self.db.get(ACTIVE_GROUP_KEY),
            exported_at=now_iso(),
        )

    def export_to_file(self, directory: Path | None = None) -> Path:
        """Write the export document as pretty JSON and return its path."""
        target_dir = directory or self.settings.export_dir
        stamp = datetime.now().isoformat(timespec="milliseconds")
        path = target_dir / f"spendsense-export-{stamp.replace(':', '-').replace('.', '-')}.json"

        document = self.export_snapshot()
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(document.model_dump(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise PersistenceError(f"Failed to write export {path}: {e}") from e

        logger.info(f"Exported ledger to {path}")
        return path

    def reset(self):
        """Erase every stored key: ledger, profile and preferences."""
        self.db.clear()
        logger.info("Cleared all stored data")
