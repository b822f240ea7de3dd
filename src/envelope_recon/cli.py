"""
Command-line interface for the envelope reconciliation engine.
"""

from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from .config import EngineConfig, generate_default_config, load_config
from .models import DuplicateStatus, ReconciliationSummary, ResolutionAction, Transaction
from .parsers import BankCsvParser
from .reconciliation import DEMO_USER_ID, ReconciliationEngine, is_edited, needs_review
from .reports.excel_generator import ExcelReportGenerator
from .utils.exceptions import ReconciliationError
from .utils.logging_config import setup_logging

console = Console()

DEFAULT_STATE_FILE = Path("envelope_state.json")


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option(
    "--state",
    type=click.Path(path_type=Path),
    envvar="ENVELOPE_RECON_STATE",
    help="Engine state file (overrides storage.state_file)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, config: Optional[Path], state: Optional[Path], verbose: bool):
    """Envelope budgeting reconciliation engine."""
    ctx.ensure_object(dict)
    ctx.obj.update(config=config, state=state, verbose=verbose)


def _load(ctx: click.Context) -> EngineConfig:
    engine_config = load_config(ctx.obj["config"])

    if ctx.obj["state"] is not None:
        engine_config.storage.state_file = str(ctx.obj["state"])
    elif engine_config.storage.state_file is None:
        engine_config.storage.state_file = str(DEFAULT_STATE_FILE)

    if ctx.obj["verbose"]:
        level = logging.DEBUG
    else:
        level = getattr(logging, engine_config.logging.level.upper(), logging.INFO)
    log_file = Path(engine_config.logging.file) if engine_config.logging.file else None
    setup_logging(level, log_file, engine_config.logging.format)

    return engine_config


def _open_engine(ctx: click.Context) -> ReconciliationEngine:
    return ReconciliationEngine.from_config(_load(ctx))


def _fail(ctx: click.Context, error: Exception) -> None:
    console.print(f"[red]Error: {error}[/red]")
    if ctx.obj["verbose"]:
        console.print_exception()
    sys.exit(1)


def _parse_allocations(ctx, param, values: tuple[str, ...]) -> list[tuple[str, str]]:
    pairs = []
    for value in values:
        envelope_id, sep, amount = value.partition(":")
        if not sep or not envelope_id or not amount:
            raise click.BadParameter(f"expected ENVELOPE_ID:AMOUNT, got {value!r}")
        pairs.append((envelope_id, amount))
    return pairs


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


@main.command("parse-csv")
@click.argument("csv_file", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def parse_csv(ctx: click.Context, csv_file: Path):
    """
    Parse a bank CSV export and display the rows it yields.

    CSV_FILE: Path to the bank CSV export
    """
    parser = BankCsvParser(_load(ctx))

    try:
        result = parser.parse_file(csv_file)
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    table = Table(title=f"Bank CSV: {csv_file.name}")
    table.add_column("Row", justify="right")
    table.add_column("Date")
    table.add_column("Merchant")
    table.add_column("Amount", justify="right")
    table.add_column("Unique ID")

    for row in result.rows[:20]:  # Show first 20
        table.add_row(
            str(row.row_number),
            str(row.date),
            row.merchant[:40] + "..." if len(row.merchant) > 40 else row.merchant,
            f"${row.amount:,.2f}",
            row.unique_id or "-",
        )

    console.print(table)

    if len(result.rows) > 20:
        console.print(f"\n... and {len(result.rows) - 20} more rows")

    summary = parser.summarize(result.rows)
    console.print(f"\nHeader found on line {result.header_row}")
    console.print(f"Rows parsed: {summary['row_count']}")
    if summary["row_count"]:
        dates = summary["date_range"]
        totals = summary["totals"]
        console.print(f"Date range: {dates['start']} to {dates['end']}")
        console.print(
            f"Debits: {totals['debit_count']} (${totals['total_debits']:,.2f})  "
            f"Credits: {totals['credit_count']} (${totals['total_credits']:,.2f})"
        )
    _display_row_errors(result.errors)


@main.command("import-csv")
@click.argument("csv_file", type=click.Path(exists=True, path_type=Path))
@click.option("-a", "--account", "account_id", type=int, required=True, help="Account ID")
@click.pass_context
def import_csv(ctx: click.Context, csv_file: Path, account_id: int):
    """
    Import a bank CSV export into an account.

    CSV_FILE: Path to the bank CSV export
    """
    try:
        engine = _open_engine(ctx)
        result = engine.import_csv(csv_file.read_bytes(), account_id)
        engine.persist()
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    table = Table(title=f"Import: {csv_file.name}")
    table.add_column("Outcome", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Imported", str(result.imported))
    table.add_row("Created", str(result.created))
    table.add_row("Merged", str(result.merged))
    table.add_row("Flagged", str(result.flagged))
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Errors", str(len(result.errors)))
    console.print(table)

    _display_row_errors(result.errors)


@main.command()
@click.argument("connection_id", type=int)
@click.pass_context
def sync(ctx: click.Context, connection_id: int):
    """
    Sync transactions from a bank connection.

    CONNECTION_ID: Bank connection to sync
    """
    try:
        engine = _open_engine(ctx)
        result = engine.sync_bank_account(connection_id)
        engine.persist()
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(
        f"[green]Synced: {result.created} created, {result.merged} merged, "
        f"{result.flagged} flagged, {result.skipped} skipped[/green]"
    )
    for detail in result.details:
        console.print(f"  {detail}")


@main.command()
@click.option("-u", "--user", "user_id", type=int, default=DEMO_USER_ID, show_default=True)
@click.pass_context
def envelopes(ctx: click.Context, user_id: int):
    """List envelopes and their balances."""
    try:
        engine = _open_engine(ctx)
        items = engine.get_envelopes(user_id)
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    table = Table(title="Envelopes")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Budgeted", justify="right")
    table.add_column("Balance", justify="right")

    for envelope in items:
        balance = f"${envelope.current_balance:,.2f}"
        table.add_row(
            str(envelope.id),
            f"{envelope.icon} {envelope.name}",
            f"${envelope.budgeted_amount:,.2f}",
            f"[red]{balance}[/red]" if envelope.current_balance < 0 else balance,
        )
    console.print(table)


@main.command()
@click.option("-u", "--user", "user_id", type=int, default=DEMO_USER_ID, show_default=True)
@click.option("--account", "account_id", type=int, default=None, help="Only this account")
@click.option("--review", is_flag=True, help="Only transactions that still need review")
@click.pass_context
def transactions(ctx: click.Context, user_id: int, account_id: Optional[int], review: bool):
    """List transactions with their reconciliation status."""
    try:
        engine = _open_engine(ctx)
        items = engine.get_transactions(user_id, account_id=account_id)
        if review:
            items = [txn for txn in items if needs_review(txn)]
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(_transaction_table("Review Queue" if review else "Transactions", items))


@main.command()
@click.argument("transaction_id", type=int)
@click.option(
    "-a",
    "--allocate",
    "allocations",
    multiple=True,
    callback=_parse_allocations,
    help="Allocation as ENVELOPE_ID:AMOUNT (repeatable)",
)
@click.option("-d", "--description", default=None, help="New description")
@click.option("-l", "--label", "labels", type=int, multiple=True, help="Label ID (repeatable)")
@click.pass_context
def approve(
    ctx: click.Context,
    transaction_id: int,
    allocations: list[tuple[str, str]],
    description: Optional[str],
    labels: tuple[int, ...],
):
    """
    Approve a transaction with its envelope allocations.

    Without --allocate, the envelope last used for the merchant is suggested.

    TRANSACTION_ID: Transaction to approve
    """
    try:
        engine = _open_engine(ctx)
        if not allocations:
            suggestion = engine.suggest_allocation(transaction_id)
            if suggestion:
                console.print(
                    f"[yellow]Using remembered envelope {suggestion[0].envelope_id}[/yellow]"
                )
                allocations = suggestion
        approved = engine.approve_transaction(
            transaction_id,
            allocations,
            description=description,
            label_ids=labels or None,
        )
        engine.persist()
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(
        f"[green]Approved transaction {approved.id}: {approved.merchant} "
        f"${approved.amount:,.2f}[/green]"
    )


@main.command()
@click.argument("from_envelope", type=int)
@click.argument("to_envelope", type=int)
@click.argument("amount")
@click.option("-d", "--description", default=None)
@click.pass_context
def transfer(
    ctx: click.Context,
    from_envelope: int,
    to_envelope: int,
    amount: str,
    description: Optional[str],
):
    """
    Move money between two envelopes.

    FROM_ENVELOPE: Source envelope ID
    TO_ENVELOPE: Target envelope ID
    AMOUNT: Positive amount to move
    """
    try:
        engine = _open_engine(ctx)
        result = engine.transfer_between_envelopes(
            from_envelope, to_envelope, amount, description
        )
        engine.persist()
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(
        f"[green]Transferred ${result.amount:,.2f} ({result.reference})[/green]\n"
        f"  Envelope {result.from_envelope_id}: ${result.from_balance:,.2f}\n"
        f"  Envelope {result.to_envelope_id}: ${result.to_balance:,.2f}"
    )


@main.command()
@click.argument("transaction_ids", type=int, nargs=-1, required=True)
@click.pass_context
def delete(ctx: click.Context, transaction_ids: tuple[int, ...]):
    """
    Delete transactions, reversing their envelope allocations.

    TRANSACTION_IDS: One or more transaction IDs
    """
    try:
        engine = _open_engine(ctx)
        removed = engine.delete_transactions(transaction_ids)
        engine.persist()
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(f"[green]Deleted {len(removed)} transaction(s)[/green]")


@main.command()
@click.option("-u", "--user", "user_id", type=int, default=DEMO_USER_ID, show_default=True)
@click.pass_context
def duplicates(ctx: click.Context, user_id: int):
    """List transactions flagged as potential duplicates."""
    try:
        engine = _open_engine(ctx)
        pairs = engine.list_potential_duplicates(user_id)
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    if not pairs:
        console.print("[green]No potential duplicates[/green]")
        return

    table = Table(title="Potential Duplicates")
    table.add_column("Flagged ID", justify="right")
    table.add_column("Flagged")
    table.add_column("Original ID", justify="right")
    table.add_column("Original")

    for flagged, original in pairs:
        table.add_row(
            str(flagged.id),
            f"{flagged.date} {flagged.merchant} ${flagged.amount:,.2f}",
            str(original.id) if original else "-",
            f"{original.date} {original.merchant} ${original.amount:,.2f}" if original else "-",
        )
    console.print(table)


@main.command()
@click.argument("bank_transaction_id", type=int)
@click.argument("manual_transaction_id", type=int)
@click.argument("action", type=click.Choice([a.value for a in ResolutionAction]))
@click.pass_context
def resolve(
    ctx: click.Context,
    bank_transaction_id: int,
    manual_transaction_id: int,
    action: str,
):
    """
    Resolve a flagged duplicate pair.

    BANK_TRANSACTION_ID: The bank-sourced copy
    MANUAL_TRANSACTION_ID: The record it was flagged against
    ACTION: merge, keep_both or delete_bank
    """
    try:
        engine = _open_engine(ctx)
        resolved = engine.resolve_duplicate(bank_transaction_id, manual_transaction_id, action)
        engine.persist()
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(
        f"[green]Resolved ({action}): transaction {resolved.id} is "
        f"{resolved.duplicate_status.value}[/green]"
    )


@main.command()
@click.option("-u", "--user", "user_id", type=int, default=DEMO_USER_ID, show_default=True)
@click.pass_context
def summary(ctx: click.Context, user_id: int):
    """Show bank versus envelope totals."""
    try:
        engine = _open_engine(ctx)
        result = engine.get_reconciliation_summary(user_id)
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    _display_summary(result)


@main.command()
@click.option("-u", "--user", "user_id", type=int, default=DEMO_USER_ID, show_default=True)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.pass_context
def report(ctx: click.Context, user_id: int, output: Optional[Path]):
    """Generate an Excel reconciliation report."""
    try:
        engine = _open_engine(ctx)
        generator = ExcelReportGenerator(engine.config)
        if output is None:
            output = generator.default_output_path(Path.cwd())

        report_path = generator.generate_report(
            summary=engine.get_reconciliation_summary(user_id),
            envelopes=engine.get_envelopes(user_id),
            transactions=engine.get_transactions(user_id),
            journal=engine.get_ledger_entries(),
            output_path=output,
        )
    except ReconciliationError as e:
        _fail(ctx, e)
        return

    console.print(f"\n[green]Report generated: {report_path}[/green]")


def _display_summary(summary: ReconciliationSummary) -> None:
    """Display reconciliation summary in console."""
    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total Bank Balance", f"${summary.total_bank_balance:,.2f}")
    table.add_row("Total Envelope Balance", f"${summary.total_envelope_balance:,.2f}")
    table.add_row("Difference", f"${summary.difference:,.2f}")
    table.add_row(
        "Reconciled",
        "[green]Yes[/green]" if summary.is_reconciled else "[red]No[/red]",
    )
    table.add_row("Unmatched", str(summary.unmatched_count))
    table.add_row("Pending", str(summary.pending_count))
    table.add_row("Approved", str(summary.approved_count))
    table.add_row("Potential Duplicates", str(summary.potential_duplicate_count))

    console.print(table)


def _display_row_errors(errors) -> None:
    if not errors:
        return
    console.print(f"\n[yellow]{len(errors)} row(s) skipped:[/yellow]")
    for error in errors:
        console.print(f"  {error}")


def _transaction_table(title: str, items: list[Transaction]) -> Table:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Date")
    table.add_column("Merchant")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Duplicate")

    for txn in items:
        status = txn.status.value + (" (edited)" if is_edited(txn) else "")
        table.add_row(
            str(txn.id),
            str(txn.date),
            txn.merchant,
            f"${txn.amount:,.2f}",
            status,
            txn.duplicate_status.value if txn.duplicate_status is not DuplicateStatus.NONE else "",
        )
    return table


if __name__ == "__main__":
    main()
