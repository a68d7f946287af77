"""CLI for SpendSense."""

import typer

from .ledger import cli as ledger_cli

app = typer.Typer(
    name="spendsense",
    help="Track personal spending and split group expenses",
)

app.add_typer(ledger_cli.profile_app, name="profile")
app.add_typer(ledger_cli.group_app, name="group")
app.add_typer(ledger_cli.member_app, name="member")
app.add_typer(ledger_cli.expense_app, name="expense")
app.add_typer(ledger_cli.personal_app, name="personal")

app.command()(ledger_cli.balances)
app.command()(ledger_cli.settle)
app.command()(ledger_cli.stats)
app.command()(ledger_cli.export)
app.command()(ledger_cli.reset)


if __name__ == "__main__":
    app()
