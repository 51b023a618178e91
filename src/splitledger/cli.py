"""CLI for SplitLedger using Typer."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import cast

import typer
from rich.console import Console
from rich.table import Table

from .config import Settings, load_settings
from .db import Database
from .exceptions import DanglingReferenceError, NotFoundError, SplitLedgerError
from .models import (
    EntryKind,
    Group,
    LedgerEntry,
    SplitPolicy,
    SplitShare,
    TransferSuggestion,
)
from .service import LedgerService
from .settlement import get_strategy
from .splitter import as_decimal
from .ui import (
    confirm,
    describe_balance,
    describe_suggestion,
    display_name,
    is_new_since,
    select_participant_interactive,
)

app = typer.Typer(
    name="splitledger",
    help="Track shared expenses and settle up",
)
group_app = typer.Typer(help="Create and inspect groups")
participant_app = typer.Typer(help="Manage group participants")
entry_app = typer.Typer(help="Record expenses, income and transfers")
settle_app = typer.Typer(help="Record and suggest settlements")

app.add_typer(group_app, name="group")
app.add_typer(participant_app, name="participant")
app.add_typer(entry_app, name="entry")
app.add_typer(settle_app, name="settle")

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool = False) -> Iterator[tuple[Settings, LedgerService]]:
    """
    Load settings, open the database and build the service.

    Errors are printed and turned into exit code 1; with --verbose they are
    re-raised so the traceback is visible.
    """
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield settings, LedgerService(settings, db)
    except SplitLedgerError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        raise typer.Exit(1) from e
    finally:
        if db is not None:
            db.close()


def format_money(amount: Decimal, symbol: str = "$", use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    The spaces ensure decimal points align in tables.
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"({symbol}[red]{abs_amount:,.2f}[/red])"
        return f"({symbol}{abs_amount:,.2f})"
    if use_color:
        return f" [green]{symbol}{abs_amount:,.2f}[/green] "
    return f" {symbol}{abs_amount:,.2f} "


def resolve_group(service: LedgerService, ref: str) -> Group:
    """Find a group by ID, falling back to a case-insensitive name match."""
    try:
        return service.store.fetch_group(ref)
    except NotFoundError:
        for group in service.store.list_groups():
            if group.name.lower() == ref.strip().lower():
                return group
        raise


def resolve_participant(group: Group, name: str) -> str:
    """Turn a participant name into their ID."""
    participant = group.find_participant(name)
    if participant is None:
        raise DanglingReferenceError(f"No participant named '{name}' in '{group.name}'")
    return participant.id


def resolve_acting(group: Group, acting: str | None, pick: bool) -> str | None:
    """Work out the acting participant from --as or an interactive prompt."""
    if acting:
        return resolve_participant(group, acting)
    if pick:
        return select_participant_interactive(group)
    return None


def parse_shares(
    group: Group, raw_shares: list[str], policy: SplitPolicy
) -> list[SplitShare]:
    """
    Parse --share options of the form NAME or NAME=VALUE.

    VALUE is the exact amount for exact splits and the weight for weighted
    splits. With no --share options everyone in the group shares equally.
    """
    if not raw_shares:
        return [SplitShare(participant_id=pid) for pid in group.participant_ids()]

    shares = []
    for raw in raw_shares:
        name, _, value = raw.partition("=")
        participant_id = resolve_participant(group, name)
        number = as_decimal(value) if value else None
        shares.append(
            SplitShare(
                participant_id=participant_id,
                custom_amount=number if policy == "exact" else None,
                weight=number if policy == "weighted" else None,
            )
        )
    return shares


def find_entry(entries: list[LedgerEntry], ref: str) -> LedgerEntry:
    """Find an entry by full ID or unique ID prefix."""
    matches = [e for e in entries if e.id == ref or e.id.startswith(ref)]
    if len(matches) != 1:
        raise NotFoundError("entry", ref)
    return matches[0]


# ============================================================================
# Groups
# ============================================================================


@group_app.command("create")
def group_create(
    name: str = typer.Argument(..., help="Group name"),
    description: str | None = typer.Option(None, "--description", "-d"),
    participants: list[str] = typer.Option(
        [], "--participant", "-p", help="Participant name (repeatable)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a new group."""
    with open_service(verbose) as (_, service):
        group = service.create_group(name, description, participants)
        console.print(f"[bold green]✓ Created group '{group.name}'[/bold green]")
        console.print(f"[dim]ID: {group.id}[/dim]")


@group_app.command("list")
def group_list(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List all groups."""
    with open_service(verbose) as (_, service):
        groups = service.store.list_groups()
        if not groups:
            console.print("[yellow]No groups yet.[/yellow]")
            return

        table = Table(title="Groups", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=10)
        table.add_column("Name", style="cyan")
        table.add_column("Participants")
        for group in groups:
            table.add_row(
                group.id[:8],
                group.name,
                ", ".join(p.name for p in group.participants) or "[dim]none[/dim]",
            )
        console.print(table)


@group_app.command("show")
def group_show(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    acting: str | None = typer.Option(None, "--as", help="Show as this participant"),
    pick: bool = typer.Option(False, "--pick", help="Choose who you are interactively"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a group's entries, balances and settle-up suggestions."""
    with open_service(verbose) as (settings, service):
        group = resolve_group(service, group_ref)
        acting_id = resolve_acting(group, acting, pick)
        summary = service.get_summary(group.id)

        last_viewed = service.mark_viewed(group.id, acting_id) if acting_id else None

        console.print(f"\n[bold]{group.name}[/bold]")
        if group.description:
            console.print(f"[dim]{group.description}[/dim]")
        console.print(
            f"  Total spent: "
            f"{format_money(summary.total_spent, settings.currency_symbol)}"
        )

        display_entries(group, summary.entries, settings, acting_id, last_viewed)
        display_balances(group, summary.balances, settings, acting_id)
        display_suggestions(group, summary.suggestions, settings, acting_id)


# ============================================================================
# Participants
# ============================================================================


@participant_app.command("add")
def participant_add(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    name: str = typer.Argument(..., help="Participant name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a participant to a group."""
    with open_service(verbose) as (_, service):
        group = resolve_group(service, group_ref)
        participant = service.add_participant(group.id, name)
        console.print(
            f"[bold green]✓ Added {participant.name} to '{group.name}'[/bold green]"
        )


@participant_app.command("rename")
def participant_rename(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    old_name: str = typer.Argument(..., help="Current name"),
    new_name: str = typer.Argument(..., help="New name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Rename a participant."""
    with open_service(verbose) as (_, service):
        group = resolve_group(service, group_ref)
        participant_id = resolve_participant(group, old_name)
        participant = service.rename_participant(group.id, participant_id, new_name)
        console.print(
            f"[bold green]✓ Renamed {old_name} to {participant.name}[/bold green]"
        )


# ============================================================================
# Entries
# ============================================================================


@entry_app.command("add")
def entry_add(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    amount: str = typer.Argument(..., help="Amount, e.g. 42.50"),
    paid_by: str = typer.Option(..., "--paid-by", "-p", help="Who paid"),
    shares: list[str] = typer.Option(
        [],
        "--share",
        "-s",
        help="NAME or NAME=VALUE (repeatable); defaults to everyone",
    ),
    split: str = typer.Option(
        "equal", "--split", help="Split policy: equal, exact or weighted"
    ),
    kind: str = typer.Option(
        "expense", "--kind", "-k", help="Entry kind: expense, income or transfer"
    ),
    to: str | None = typer.Option(None, "--to", help="Recipient of a transfer"),
    description: str | None = typer.Option(None, "--description", "-d"),
    category: str | None = typer.Option(None, "--category", "-c"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record an expense, income or transfer."""
    if split not in ("equal", "exact", "weighted"):
        raise typer.BadParameter(f"Unknown split policy: {split}", param_hint="--split")
    if kind not in ("expense", "income", "transfer"):
        raise typer.BadParameter(f"Unknown entry kind: {kind}", param_hint="--kind")

    with open_service(verbose) as (settings, service):
        group = resolve_group(service, group_ref)
        payer_id = resolve_participant(group, paid_by)
        recipient_id = resolve_participant(group, to) if to else None
        policy = cast(SplitPolicy, split)
        split_shares = (
            [] if kind == "transfer" else parse_shares(group, shares, policy)
        )

        entry = service.add_entry(
            group.id,
            amount,
            payer_id,
            split_shares,
            policy=policy,
            kind=cast(EntryKind, kind),
            description=description,
            category=category,
            recipient_id=recipient_id,
        )

        console.print(
            f"[bold green]✓ {entry.kind.capitalize()} of "
            f"{format_money(entry.amount, settings.currency_symbol)} "
            f"recorded[/bold green]"
        )
        for split_line in entry.splits:
            name = group.get_participant(split_line.participant_id).name
            console.print(
                f"  {name}: {format_money(split_line.amount, settings.currency_symbol)}"
            )


@entry_app.command("list")
def entry_list(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    acting: str | None = typer.Option(None, "--as", help="Show as this participant"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List a group's entries."""
    with open_service(verbose) as (settings, service):
        group = resolve_group(service, group_ref)
        acting_id = resolve_acting(group, acting, pick=False)
        display_entries(group, service.list_entries(group.id), settings, acting_id)


@entry_app.command("delete")
def entry_delete(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    entry_ref: str = typer.Argument(..., help="Entry ID or ID prefix"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete an entry."""
    with open_service(verbose) as (settings, service):
        group = resolve_group(service, group_ref)
        entry = find_entry(service.list_entries(group.id), entry_ref)

        amount = format_money(entry.amount, settings.currency_symbol, use_color=False)
        if not yes and not confirm(f"Delete {entry.kind} of {amount.strip()}?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        service.delete_entry(entry.id)
        console.print("[bold green]✓ Entry deleted[/bold green]")


# ============================================================================
# Settlements
# ============================================================================


@settle_app.command("record")
def settle_record(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    amount: str = typer.Argument(..., help="Amount paid"),
    from_name: str = typer.Option(..., "--from", help="Who paid"),
    to_name: str = typer.Option(..., "--to", help="Who received the money"),
    on: str | None = typer.Option(None, "--date", help="Payment date (YYYY-MM-DD)"),
    description: str | None = typer.Option(None, "--description", "-d"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record a real-world payment between two participants."""
    try:
        settlement_date = date.fromisoformat(on) if on else None
    except ValueError as e:
        raise typer.BadParameter(f"Not a date: {on}", param_hint="--date") from e

    with open_service(verbose) as (settings, service):
        group = resolve_group(service, group_ref)
        settlement = service.record_settlement(
            group.id,
            resolve_participant(group, from_name),
            resolve_participant(group, to_name),
            amount,
            settlement_date=settlement_date,
            description=description,
        )
        console.print(
            f"[bold green]✓ Recorded {from_name} paying {to_name} "
            f"{format_money(settlement.amount, settings.currency_symbol)}[/bold green]"
        )


@settle_app.command("list")
def settle_list(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List recorded settlements."""
    with open_service(verbose) as (settings, service):
        group = resolve_group(service, group_ref)
        settlements = service.list_settlements(group.id)
        if not settlements:
            console.print("[yellow]No settlements recorded.[/yellow]")
            return

        table = Table(
            title="Settlements", show_header=True, header_style="bold magenta"
        )
        table.add_column("Date", style="dim", width=10)
        table.add_column("From", style="cyan")
        table.add_column("To", style="cyan")
        table.add_column("Amount", justify="right", width=12)
        table.add_column("Description")
        for settlement in settlements:
            table.add_row(
                str(settlement.settlement_date),
                display_name(group, settlement.from_participant_id),
                display_name(group, settlement.to_participant_id),
                format_money(settlement.amount, settings.currency_symbol),
                settlement.description or "",
            )
        console.print(table)


@settle_app.command("up")
def settle_up(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record every suggested transfer as paid."""
    with open_service(verbose) as (settings, service):
        group = resolve_group(service, group_ref)
        suggestions = service.get_suggestions(group.id)
        if not suggestions:
            console.print("[green]✓ Everyone is settled.[/green]")
            return

        display_suggestions(group, suggestions, settings)

        if not yes and not confirm("Record all of these as paid?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        for suggestion in suggestions:
            service.record_suggestion(group.id, suggestion)
        console.print(
            f"[bold green]✓ Recorded {len(suggestions)} settlements[/bold green]"
        )


# ============================================================================
# Balances
# ============================================================================


@app.command()
def balances(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    acting: str | None = typer.Option(None, "--as", help="Show as this participant"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show every participant's balance."""
    with open_service(verbose) as (settings, service):
        group = resolve_group(service, group_ref)
        acting_id = resolve_acting(group, acting, pick=False)
        display_balances(group, service.get_balances(group.id), settings, acting_id)


@app.command()
def suggest(
    group_ref: str = typer.Argument(..., help="Group ID or name"),
    acting: str | None = typer.Option(None, "--as", help="Show as this participant"),
    strategy: str | None = typer.Option(
        None, "--strategy", help="Matching strategy: greedy or exact"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Suggest who should pay whom to settle the group."""
    with open_service(verbose) as (settings, service):
        if strategy:
            service.strategy = get_strategy(
                strategy, settings.exact_strategy_max_participants
            )
        group = resolve_group(service, group_ref)
        acting_id = resolve_acting(group, acting, pick=False)
        display_suggestions(
            group, service.get_suggestions(group.id), settings, acting_id
        )


# ============================================================================
# Display helpers
# ============================================================================


def display_entries(
    group: Group,
    entries: list[LedgerEntry],
    settings: Settings,
    acting_id: str | None = None,
    last_viewed: datetime | None = None,
):
    """Display entries in a table, flagging ones new since the last visit."""
    if not entries:
        console.print("[yellow]No entries yet.[/yellow]")
        return

    table = Table(title="Entries", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", width=10)
    table.add_column("Date", style="dim", width=10)
    table.add_column("Description", style="cyan", width=30)
    table.add_column("Kind", width=8)
    table.add_column("Paid by")
    table.add_column("Amount", justify="right", width=12)
    table.add_column("Split", style="dim")

    for entry in entries:
        desc = entry.description or entry.category or "—"
        if is_new_since(entry, last_viewed):
            desc = f"🆕 {desc}"

        if entry.kind == "transfer":
            recipient = display_name(group, entry.recipient_id or "", acting_id)
            split_info = f"to {recipient}"
        else:
            split_info = f"{entry.split_policy}, {len(entry.splits)} ways"

        table.add_row(
            entry.id[:8],
            entry.created_at.date().isoformat(),
            desc[:30] + "..." if len(desc) > 30 else desc,
            entry.kind,
            display_name(group, entry.paid_by, acting_id),
            format_money(entry.amount, settings.currency_symbol),
            split_info,
        )

    console.print(table)


def display_balances(
    group: Group,
    balance_map: dict[str, Decimal],
    settings: Settings,
    acting_id: str | None = None,
):
    """Display balances with a plain-words status column."""
    table = Table(title="Balances", show_header=True, header_style="bold magenta")
    table.add_column("Participant", style="cyan")
    table.add_column("Balance", justify="right", width=14)
    table.add_column("Status")

    for participant_id, balance in balance_map.items():
        table.add_row(
            display_name(group, participant_id, acting_id),
            format_money(balance, settings.currency_symbol),
            describe_balance(balance, settings.currency_symbol),
        )

    console.print(table)


def display_suggestions(
    group: Group,
    suggestions: list[TransferSuggestion],
    settings: Settings,
    acting_id: str | None = None,
):
    """Display settle-up suggestions."""
    if not suggestions:
        console.print("\n[green]✓ Everyone is settled.[/green]")
        return

    console.print("\n[bold]Suggested transfers:[/bold]")
    for suggestion in suggestions:
        console.print(
            "  • "
            + describe_suggestion(
                group, suggestion, acting_id, settings.currency_symbol
            )
        )


if __name__ == "__main__":
    app()
