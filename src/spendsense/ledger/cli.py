"""CLI commands for groups, members, expenses, settlements and stats."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ..config import Settings, load_settings
from ..db import Database
from ..exceptions import SpendSenseError, ValidationError
from ..models import Group, SplitMode
from .aggregation import (
    filter_expenses,
    group_category_totals,
    in_month,
    personal_category_totals,
    personal_date,
    personal_totals,
)
from .balances import balance_status, group_total, outstanding_total, suggest_creditor
from .service import ExpenseForm, LedgerService, resolve_member
from .ui import confirm_action, select_member_interactive

console = Console()

profile_app = typer.Typer(name="profile", help="Show or edit your profile")
group_app = typer.Typer(name="group", help="Create and manage groups")
member_app = typer.Typer(name="member", help="Manage members of a group")
expense_app = typer.Typer(name="expense", help="Manage group expenses")
personal_app = typer.Typer(name="personal", help="Manage personal expenses")

GroupOption = typer.Option(
    None, "--group", "-g", help="Group id or name (defaults to the active group)"
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Verbose output")


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool = False) -> Iterator[tuple[Settings, LedgerService]]:
    """Load settings, open the store and report errors the same way everywhere."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield settings, LedgerService(settings, db)
    except SpendSenseError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def format_money(amount: Decimal, symbol: str, use_color: bool = True) -> str:
    """
    Format money in accounting style.

    Negative amounts use parentheses: (₹85.02)
    """
    abs_amount = abs(amount)
    if amount < 0:
        text = f"({symbol}{abs_amount:,.2f})"
        return f"[red]{text}[/red]" if use_color else text
    text = f"{symbol}{abs_amount:,.2f}"
    return f"[green]{text}[/green]" if use_color and amount > 0 else text


def _resolve_group(service: LedgerService, ref: str | None) -> Group:
    """Pick a group by id or name, falling back to the active (or only) group."""
    groups = service.list_groups()
    if ref:
        for group in groups:
            if group.id == ref:
                return group
        matches = [g for g in groups if g.name.lower() == ref.strip().lower()]
        if len(matches) == 1:
            return matches[0]
        raise ValidationError(
            f"Group '{ref}' is ambiguous" if matches else f"Group '{ref}' not found"
        )

    active_id = service.get_active_group_id()
    for group in groups:
        if group.id == active_id:
            return group
    if len(groups) == 1:
        return groups[0]
    raise ValidationError("No active group; pass --group or run 'group use'")


def _parse_shares(group: Group, shares: list[str]) -> dict[str, str]:
    """Turn ['alice=70', 'bob=30'] into member id -> raw share."""
    result = {}
    for entry in shares:
        ref, sep, raw = entry.rpartition("=")
        if not sep or not ref:
            raise ValidationError(f"Bad share '{entry}', expected MEMBER=AMOUNT")
        result[resolve_member(group, ref).id] = raw
    return result


def _fill_form(
    form: ExpenseForm,
    group: Group,
    description: str | None,
    amount: str | None,
    category: str | None,
    payer: str | None,
    participants: list[str] | None,
    shares: list[str] | None,
):
    """Apply command-line options on top of a form."""
    if description is not None:
        form.description = description
    if amount is not None:
        form.amount = amount
    if category is not None:
        form.category = category
    if payer:
        form.payer_id = resolve_member(group, payer).id
    if participants:
        form.participant_ids = [resolve_member(group, p).id for p in participants]
    if shares:
        form.mode = SplitMode.CUSTOM
        form.custom_shares = _parse_shares(group, shares)
        if not participants:
            form.participant_ids = list(form.custom_shares)


# ============================================================================
# Profile
# ============================================================================


@profile_app.command("show")
def profile_show(verbose: bool = VerboseOption):
    """Show the saved profile."""
    with open_service(verbose) as (_settings, service):
        profile = service.get_profile()
        if profile is None:
            console.print("[yellow]No profile saved yet.[/yellow]")
            return
        console.print(f"[bold]{profile.name or 'You'}[/bold]")
        for label, value in (("Email", profile.email), ("Phone", profile.phone), ("Note", profile.note)):
            if value:
                console.print(f"  {label}: {value}")


@profile_app.command("set")
def profile_set(
    name: str = typer.Option(None, "--name", help="Display name (used to find you in groups)"),
    email: str = typer.Option(None, "--email"),
    phone: str = typer.Option(None, "--phone"),
    note: str = typer.Option(None, "--note"),
    verbose: bool = VerboseOption,
):
    """Update the profile; omitted fields keep their value."""
    with open_service(verbose) as (_settings, service):
        current = service.get_profile()
        profile = service.save_profile(
            name=name if name is not None else (current.name if current else ""),
            email=email if email is not None else (current.email if current else ""),
            phone=phone if phone is not None else (current.phone if current else ""),
            note=note if note is not None else (current.note if current else ""),
        )
        console.print(f"[green]✓ Profile saved for {profile.name or 'You'}[/green]")


# ============================================================================
# Groups
# ============================================================================


@group_app.command("list")
def group_list(verbose: bool = VerboseOption):
    """List groups, newest first."""
    with open_service(verbose) as (settings, service):
        groups = service.list_groups()
        if not groups:
            console.print("[yellow]No groups yet. Create one with 'group create'.[/yellow]")
            return

        active_id = service.get_active_group_id()
        table = Table(title="Groups", show_header=True, header_style="bold magenta")
        table.add_column("", width=2)
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Members", justify="right")
        table.add_column("Expenses", justify="right")
        table.add_column("Total", justify="right")
        table.add_column("Outstanding", justify="right")

        for group in groups:
            table.add_row(
                "★" if group.id == active_id else "",
                group.id,
                group.name,
                str(len(group.members)),
                str(len(group.expenses)),
                format_money(group_total(group), settings.currency_symbol, use_color=False),
                format_money(outstanding_total(group), settings.currency_symbol),
            )
        console.print(table)


@group_app.command("create")
def group_create(
    name: str = typer.Argument(..., help="Group name"),
    no_self: bool = typer.Option(False, "--no-self", help="Don't add yourself as a member"),
    verbose: bool = VerboseOption,
):
    """Create a group."""
    with open_service(verbose) as (_settings, service):
        group = service.create_group(name, seed_self=not no_self)
        console.print(f"[green]✓ Created group '{group.name}' ({group.id})[/green]")


@group_app.command("rename")
def group_rename(
    ref: str = typer.Argument(..., help="Group id or name"),
    name: str = typer.Argument(..., help="New name"),
    verbose: bool = VerboseOption,
):
    """Rename a group."""
    with open_service(verbose) as (_settings, service):
        group = service.rename_group(_resolve_group(service, ref).id, name)
        console.print(f"[green]✓ Renamed to '{group.name}'[/green]")


@group_app.command("delete")
def group_delete(
    ref: str = typer.Argument(..., help="Group id or name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VerboseOption,
):
    """Delete a group with all of its members, expenses and settlements."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, ref)
        if not yes and not confirm_action(f"Delete group '{group.name}'?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_group(group.id)
        console.print(f"[green]✓ Deleted group '{group.name}'[/green]")


@group_app.command("use")
def group_use(
    ref: str = typer.Argument(..., help="Group id or name"),
    verbose: bool = VerboseOption,
):
    """Make a group the default for other commands."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, ref)
        service.set_active_group(group.id)
        console.print(f"[green]✓ Active group: {group.name}[/green]")


# ============================================================================
# Members
# ============================================================================


@member_app.command("list")
def member_list(group_ref: str = GroupOption, verbose: bool = VerboseOption):
    """List members of a group."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, group_ref)
        for member in group.members:
            console.print(f"  {member.name} [dim]({member.id})[/dim]")
        if not group.members:
            console.print("[yellow]No members yet.[/yellow]")


@member_app.command("add")
def member_add(
    name: str = typer.Argument(..., help="Member name"),
    group_ref: str = GroupOption,
    verbose: bool = VerboseOption,
):
    """Add a member to a group."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, group_ref)
        member = service.add_member(group.id, name)
        console.print(f"[green]✓ Added {member.name} to '{group.name}'[/green]")


@member_app.command("rename")
def member_rename(
    ref: str = typer.Argument(..., help="Member id or name"),
    name: str = typer.Argument(..., help="New name"),
    group_ref: str = GroupOption,
    verbose: bool = VerboseOption,
):
    """Rename a member."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, group_ref)
        member = service.rename_member(group.id, resolve_member(group, ref).id, name)
        console.print(f"[green]✓ Renamed to {member.name}[/green]")


@member_app.command("remove")
def member_remove(
    ref: str = typer.Argument(..., help="Member id or name"),
    group_ref: str = GroupOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VerboseOption,
):
    """Remove a member. Saved expenses keep referencing them."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, group_ref)
        member = resolve_member(group, ref)
        if not yes and not confirm_action(f"Remove '{member.name}' from '{group.name}'?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.remove_member(group.id, member.id)
        console.print(f"[green]✓ Removed {member.name}[/green]")


# ============================================================================
# Expenses
# ============================================================================


@expense_app.command("list")
def expense_list(
    group_ref: str = GroupOption,
    category: str = typer.Option(None, "--category", help="Only this category"),
    search: str = typer.Option(None, "--search", "-s", help="Match description, category or payer"),
    verbose: bool = VerboseOption,
):
    """List a group's expenses, newest first."""
    with open_service(verbose) as (settings, service):
        group = _resolve_group(service, group_ref)
        expenses = filter_expenses(group, category=category, query=search)

        table = Table(title=group.name, show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Description", style="cyan", max_width=40)
        table.add_column("Category", style="yellow")
        table.add_column("Paid by")
        table.add_column("Amount", justify="right")
        table.add_column("Split")
        table.add_column("Status")

        for expense in expenses:
            split_desc = ", ".join(
                f"{group.member_name(s.member_id)} {s.share}" for s in expense.splits
            )
            table.add_row(
                expense.id,
                expense.description,
                expense.category or "[dim]Uncategorized[/dim]",
                group.member_name(expense.payer_id),
                format_money(expense.amount, settings.currency_symbol, use_color=False),
                split_desc,
                "[green]paid[/green]" if expense.is_settled else "open",
            )
        console.print(table)


@expense_app.command("add")
def expense_add(
    description: str = typer.Argument(..., help="What was paid for"),
    amount: str = typer.Argument(..., help="Total amount"),
    group_ref: str = GroupOption,
    payer: str = typer.Option(None, "--payer", "-p", help="Who paid (defaults to first member)"),
    participants: list[str] = typer.Option(None, "--participant", help="Who shares it (repeatable; default everyone)"),
    shares: list[str] = typer.Option(None, "--share", help="Custom split MEMBER=AMOUNT (repeatable)"),
    category: str = typer.Option(None, "--category", "-c"),
    verbose: bool = VerboseOption,
):
    """Add an expense, split equally unless --share is given."""
    with open_service(verbose) as (settings, service):
        group = _resolve_group(service, group_ref)
        form = ExpenseForm()
        form.reset(group)
        _fill_form(form, group, description, amount, category, payer, participants, shares)

        expense = service.add_expense(group.id, form)
        console.print(
            f"[green]✓ Added '{expense.description}' "
            f"({format_money(expense.amount, settings.currency_symbol, use_color=False)})[/green]"
        )
        dropped = set(form.participant_ids) - set(expense.participant_ids)
        if dropped:
            names = ", ".join(group.member_name(pid) for pid in dropped)
            console.print(f"[yellow]⚠️  Left out (no valid share): {names}[/yellow]")


@expense_app.command("edit")
def expense_edit(
    expense_id: str = typer.Argument(..., help="Expense id"),
    group_ref: str = GroupOption,
    description: str = typer.Option(None, "--description", "-d"),
    amount: str = typer.Option(None, "--amount", "-a"),
    payer: str = typer.Option(None, "--payer", "-p"),
    participants: list[str] = typer.Option(None, "--participant"),
    shares: list[str] = typer.Option(None, "--share", help="Custom split MEMBER=AMOUNT"),
    equal: bool = typer.Option(False, "--equal", help="Switch back to an equal split"),
    category: str = typer.Option(None, "--category", "-c"),
    verbose: bool = VerboseOption,
):
    """Edit an expense; splits are recomputed."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, group_ref)
        existing = group.find_expense(expense_id)
        if existing is None:
            raise ValidationError(f"Expense {expense_id} not found in '{group.name}'")

        form = ExpenseForm()
        form.load(existing)
        if equal:
            form.mode = SplitMode.EQUAL
            form.custom_shares = {}
        _fill_form(form, group, description, amount, category, payer, participants, shares)

        updated = service.update_expense(group.id, expense_id, form)
        console.print(f"[green]✓ Updated '{updated.description}'[/green]")


@expense_app.command("delete")
def expense_delete(
    expense_id: str = typer.Argument(..., help="Expense id"),
    group_ref: str = GroupOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VerboseOption,
):
    """Delete an expense."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, group_ref)
        if not yes and not confirm_action(f"Delete expense {expense_id}?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_expense(group.id, expense_id)
        console.print("[green]✓ Expense deleted[/green]")


@expense_app.command("settle")
def expense_settle(
    expense_id: str = typer.Argument(..., help="Expense id"),
    group_ref: str = GroupOption,
    verbose: bool = VerboseOption,
):
    """Mark an expense as paid (or back to unpaid)."""
    with open_service(verbose) as (_settings, service):
        group = _resolve_group(service, group_ref)
        expense = service.toggle_settled(group.id, expense_id)
        state = "paid" if expense.is_settled else "unpaid"
        console.print(f"[green]✓ '{expense.description}' marked as {state}[/green]")


# ============================================================================
# Balances and settlements
# ============================================================================


def balances(group_ref: str = GroupOption, verbose: bool = VerboseOption):
    """Show who owes whom in a group."""
    with open_service(verbose) as (settings, service):
        group = _resolve_group(service, group_ref)
        symbol = settings.currency_symbol
        rows = service.balances(group.id)

        console.print(
            f"\n[bold]{group.name}[/bold]  "
            f"Outstanding: {format_money(outstanding_total(group), symbol, use_color=False)}"
        )
        if not group.expenses:
            console.print("[dim]No balances yet. Add expenses to see who owes what.[/dim]")
            return

        for row in rows:
            status = balance_status(row)
            if status == "receive":
                line = f"[green]{row.name} should receive {format_money(row.balance, symbol, use_color=False)}[/green]"
            elif status == "owes":
                line = f"[red]{row.name} owes {format_money(abs(row.balance), symbol, use_color=False)}[/red]"
            else:
                line = f"[dim]{row.name} is settled up[/dim]"
            console.print(f"  {line}")

        totals = group_category_totals(group, sort=True)
        if totals:
            console.print("\n[bold]By category:[/bold]")
            for item in totals:
                console.print(f"  {item.category}: {format_money(item.total, symbol, use_color=False)}")


def settle(
    debtor: str = typer.Argument(..., help="Member who pays (id or name)"),
    to: str = typer.Option(None, "--to", help="Member who receives (default: pick interactively)"),
    amount: str = typer.Option(None, "--amount", "-a", help="Amount (default: what the debtor owes)"),
    group_ref: str = GroupOption,
    verbose: bool = VerboseOption,
):
    """Record a settlement payment between two members."""
    with open_service(verbose) as (settings, service):
        group = _resolve_group(service, group_ref)
        rows = service.balances(group.id)
        payer = resolve_member(group, debtor)

        if to:
            creditor_id = resolve_member(group, to).id
        else:
            suggested = suggest_creditor(rows, settings.creditor_threshold)
            creditor_id = select_member_interactive(
                [m for m in group.members if m.id != payer.id],
                "Pay to",
                suggested_member_id=suggested.member_id if suggested else None,
            )
            if creditor_id is None:
                console.print("[yellow]No member selected.[/yellow]")
                return

        if amount is None:
            owed = next((abs(r.balance) for r in rows if r.member_id == payer.id), Decimal("0"))
            amount = str(owed)

        settlement = service.record_settlement(group.id, payer.id, creditor_id, amount)
        console.print(
            f"[green]✓ {payer.name} paid {group.member_name(creditor_id)} "
            f"{format_money(settlement.amount, settings.currency_symbol, use_color=False)}[/green]"
        )


# ============================================================================
# Personal expenses
# ============================================================================


def _parse_month(value: str | None) -> date:
    """Parse YYYY-MM into the first day of that month (default: this month)."""
    if not value:
        return date.today().replace(day=1)
    try:
        year, month = value.split("-")
        return date(int(year), int(month), 1)
    except ValueError:
        raise ValidationError(f"Bad month '{value}', expected YYYY-MM") from None


@personal_app.command("list")
def personal_list(
    month: str = typer.Option(None, "--month", "-m", help="YYYY-MM (default: this month)"),
    show_all: bool = typer.Option(False, "--all", help="Show every month"),
    verbose: bool = VerboseOption,
):
    """List personal expenses for a month."""
    with open_service(verbose) as (settings, service):
        reference = _parse_month(month)
        expenses = service.list_personal_expenses()
        totals = personal_totals(expenses, reference)
        symbol = settings.currency_symbol

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Date")
        table.add_column("Title", style="cyan")
        table.add_column("Category", style="yellow")
        table.add_column("Amount", justify="right")

        shown = expenses if show_all else [
            e for e in expenses if in_month(personal_date(e), reference)
        ]
        for expense in shown:
            table.add_row(
                expense.id,
                expense.date or "",
                expense.title,
                expense.category or "[dim]Uncategorized[/dim]",
                format_money(expense.amount, symbol, use_color=False),
            )
        console.print(table)
        console.print(
            f"  {reference:%b %Y}: {format_money(totals.this_month, symbol, use_color=False)}"
            f"   All time: {format_money(totals.all_time, symbol, use_color=False)}"
        )

        categories = personal_category_totals(expenses, None if show_all else reference)
        if categories:
            console.print(
                "  "
                + ", ".join(
                    f"{c.category} {format_money(c.total, symbol, use_color=False)}"
                    for c in categories
                )
            )


@personal_app.command("add")
def personal_add(
    title: str = typer.Argument(...),
    amount: str = typer.Argument(...),
    category: str = typer.Option(None, "--category", "-c"),
    verbose: bool = VerboseOption,
):
    """Add a personal expense dated today."""
    with open_service(verbose) as (_settings, service):
        expense = service.add_personal_expense(title, amount, category)
        console.print(f"[green]✓ Added '{expense.title}'[/green]")


@personal_app.command("edit")
def personal_edit(
    expense_id: str = typer.Argument(...),
    title: str = typer.Option(None, "--title", "-t"),
    amount: str = typer.Option(None, "--amount", "-a"),
    category: str = typer.Option(None, "--category", "-c"),
    verbose: bool = VerboseOption,
):
    """Edit a personal expense."""
    with open_service(verbose) as (_settings, service):
        existing = next(
            (e for e in service.list_personal_expenses() if e.id == expense_id), None
        )
        if existing is None:
            raise ValidationError(f"Personal expense {expense_id} not found")
        updated = service.update_personal_expense(
            expense_id,
            title if title is not None else existing.title,
            amount if amount is not None else existing.amount,
            category if category is not None else existing.category,
        )
        console.print(f"[green]✓ Updated '{updated.title}'[/green]")


@personal_app.command("delete")
def personal_delete(
    expense_id: str = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VerboseOption,
):
    """Delete a personal expense."""
    with open_service(verbose) as (_settings, service):
        if not yes and not confirm_action("Delete this expense?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_personal_expense(expense_id)
        console.print("[green]✓ Expense deleted[/green]")


# ============================================================================
# Stats, export and reset
# ============================================================================


def stats(
    month: str = typer.Option(None, "--month", "-m", help="YYYY-MM (default: this month)"),
    verbose: bool = VerboseOption,
):
    """Show your spending: personal plus your share of group expenses."""
    with open_service(verbose) as (settings, service):
        reference = _parse_month(month)
        result = service.stats(reference)
        symbol = settings.currency_symbol

        table = Table(title="Spending", show_header=True, header_style="bold magenta")
        table.add_column("")
        table.add_column(f"{reference:%b %Y}", justify="right")
        table.add_column("All time", justify="right")
        for label, period in (
            ("Personal", result.personal),
            ("Group share", result.group),
            ("Total", result.total),
        ):
            table.add_row(
                label,
                format_money(period.this_month, symbol, use_color=False),
                format_money(period.all_time, symbol, use_color=False),
            )
        console.print(table)

        if service.current_user_name() is None:
            console.print("[dim]Set a profile name to include your group shares.[/dim]")

        if result.monthly_categories:
            console.print("\n[bold]This month by category:[/bold]")
            for item in result.monthly_categories:
                console.print(f"  {item.category}: {format_money(item.total, symbol, use_color=False)}")

        if result.lifetime_by_month:
            console.print("\n[bold]Month-wise trend:[/bold]")
            peak = max(m.total for m in result.lifetime_by_month) or Decimal("1")
            for item in result.lifetime_by_month:
                bar = "█" * max(1, int(item.total / peak * 30))
                console.print(
                    f"  {item.label}  [cyan]{bar}[/cyan] "
                    f"{format_money(item.total, symbol, use_color=False)}"
                )


def export(
    directory: str = typer.Option(None, "--dir", help="Where to write the JSON file"),
    verbose: bool = VerboseOption,
):
    """Export all data to a JSON file."""
    with open_service(verbose) as (_settings, service):
        path = service.export_to_file(Path(directory) if directory else None)
        console.print(f"[green]✓ Exported to {path}[/green]")


def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VerboseOption,
):
    """Erase all data. This cannot be undone."""
    with open_service(verbose) as (_settings, service):
        if not yes and not confirm_action("Erase all expenses, groups and your profile?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.reset()
        console.print("[green]✓ Data cleared[/green]")
