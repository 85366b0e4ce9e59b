"""CLI command implementations — all commands delegate to TriageEngine."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from triage.extraction.extractor import ExtractionError, ExtractionUnavailable, create_extractor
from triage.matching.recommendation import Recommendation
from triage.pipeline.config import TriageConfig
from triage.pipeline.engine import EMPTY_BATCH_MESSAGE, TriageEngine
from triage.pipeline.report import BatchReport, SingleReport
from triage.processing.analyzer import FeatureAnalyzer
from triage.storage.db import CorpusUnavailable, TriageDatabase
from triage.storage.loader import RecordSet, load_records

logger = logging.getLogger(__name__)
console = Console(width=200)

_T = TypeVar("_T")

EXIT_STORE_UNAVAILABLE = 1
EXIT_CONFIG_ERROR = 2
EXIT_NOT_FOUND = 3
EXIT_EXTRACTION_FAILED = 4

_REMEDIATION = (
    "Set ANTHROPIC_API_KEY (TRIAGE_BACKEND=anthropic), or set TRIAGE_BACKEND=comprehend "
    "with AWS credentials and AWS_REGION. A .env file in the working directory is read too."
)

_input_option = click.option(
    "--input",
    "input_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON export to read instead of the record store.",
)
_json_option = click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")


# ── Shared helpers ─────────────────────────────────────────────────────────────


def _load_corpus(config: TriageConfig, input_path: Path | None) -> RecordSet:
    """Records from a JSON export, or the newest max_batch records in the store.

    Raises:
        CorpusUnavailable: the export or the store cannot be read.
    """
    if input_path is not None:
        return load_records(input_path)
    db = TriageDatabase(config.db_path)
    try:
        return RecordSet(
            emails=db.fetch_emails(limit=config.max_batch),
            tickets=db.fetch_tickets(limit=config.max_batch),
        )
    finally:
        db.close()


async def _with_engine(
    config: TriageConfig, run: Callable[[TriageEngine], Awaitable[_T]]
) -> _T:
    """Build extractor + engine, run, and always release the extractor."""
    extractor = create_extractor(config)
    try:
        analyzer = FeatureAnalyzer(
            extractor, batch_size=config.batch_size, batch_pause=config.batch_pause
        )
        return await run(TriageEngine(analyzer, config))
    finally:
        await extractor.aclose()


def _fail(ctx: click.Context, message: str, code: int) -> None:
    console.print(message)
    ctx.exit(code)


def _echo_json(data: dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


# ── import ─────────────────────────────────────────────────────────────────────


@click.command("import")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def import_records(ctx: click.Context, file: Path) -> None:
    """Load a JSON export of emails and tickets into the record store."""
    config: TriageConfig = ctx.obj
    try:
        records = load_records(file)
        db = TriageDatabase(config.db_path)
        try:
            emails = db.save_emails(records.emails)
            tickets = db.save_tickets(records.tickets)
        finally:
            db.close()
    except CorpusUnavailable as exc:
        _fail(ctx, f"[red]{escape(str(exc))}[/red]", EXIT_STORE_UNAVAILABLE)
        return

    console.print(
        f"[green]Imported[/green] {emails} email(s) and {tickets} ticket(s) "
        f"into {config.db_path}"
        + (f" [yellow]({records.skipped} skipped)[/yellow]" if records.skipped else "")
        + "."
    )


# ── analyze ────────────────────────────────────────────────────────────────────


@click.command()
@_input_option
@_json_option
@click.pass_context
def analyze(ctx: click.Context, input_path: Path | None, as_json: bool) -> None:
    """Group duplicate emails and recommend link-or-create for each one."""
    config: TriageConfig = ctx.obj
    try:
        records = _load_corpus(config, input_path)
    except CorpusUnavailable as exc:
        _fail(ctx, f"[red]Record store unavailable: {escape(str(exc))}[/red]", EXIT_STORE_UNAVAILABLE)
        return

    if not records.emails and not records.tickets:
        if as_json:
            _echo_json(BatchReport(message=EMPTY_BATCH_MESSAGE).to_dict())
        else:
            console.print(
                "[yellow]No emails or tickets to analyze. "
                "Run `triage import FILE` or pass --input.[/yellow]"
            )
        return

    try:
        report = asyncio.run(
            _with_engine(config, lambda e: e.analyze_batch(records.emails, records.tickets))
        )
    except ExtractionUnavailable as exc:
        _fail(ctx, f"[red]{escape(str(exc))}[/red]\n{_REMEDIATION}", EXIT_CONFIG_ERROR)
        return

    if as_json:
        _echo_json(report.to_dict())
    else:
        _print_batch(report)


def _print_batch(report: BatchReport) -> None:
    s = report.stats
    t = report.ticket_stats
    console.print(
        Panel(
            f"Emails: [bold]{s.total_emails}[/bold]   Tickets: [bold]{s.total_tickets}[/bold] "
            f"([green]{t.open} open[/green], [dim]{t.closed} closed[/dim])\n"
            f"Groups: [bold]{s.total_groups}[/bold]   "
            f"Emails in groups: {s.emails_with_duplicates}   "
            f"Potential duplicates: {s.potential_duplicates}\n"
            f"Link: [cyan]{s.emails_to_link}[/cyan]   Create: [magenta]{s.emails_to_create}[/magenta]"
            + (
                f"   [red]Failed: {s.failed_emails} email(s), {s.failed_tickets} ticket(s)[/red]"
                if s.failed_emails or s.failed_tickets
                else ""
            ),
            title="[bold]Triage summary[/bold]",
            border_style="blue",
        )
    )

    if report.groups:
        table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
        table.add_column("Group", max_width=24)
        table.add_column("Suggested title", max_width=40)
        table.add_column("Emails", width=6)
        table.add_column("Category", width=10)
        table.add_column("Priority", width=8)
        table.add_column("Recommendation", max_width=60)
        for group in report.groups:
            match = report.match_for(group.primary_email.id)
            table.add_row(
                group.id,
                escape(group.suggested_ticket_title),
                str(len(group.members)),
                group.suggested_category,
                group.suggested_priority.value,
                escape(match.recommendation_reason) if match else "",
            )
        console.print("\nDuplicate groups\n")
        console.print(table)

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Email", max_width=20)
    table.add_column("Subject", max_width=38)
    table.add_column("From", max_width=26)
    table.add_column("Priority", width=8)
    table.add_column("Action", width=7)
    table.add_column("Ticket", max_width=16)
    table.add_column("Score", width=6)
    for result in report.email_analysis:
        is_link = result.recommendation is Recommendation.LINK
        style = "cyan" if is_link else "magenta"
        top = result.matching_tickets[0] if result.matching_tickets else None
        table.add_row(
            result.email.id,
            escape(result.email.subject),
            escape(result.email.sender),
            result.email.suggested_priority.value,
            f"[{style}]{result.recommendation.value}[/{style}]",
            result.linked_ticket_id or "",
            f"{top.score:.2f}" if top else "",
        )
    console.print("\nRecommendations\n")
    console.print(table)


# ── inspect ────────────────────────────────────────────────────────────────────


@click.command()
@click.argument("email_id")
@_input_option
@_json_option
@click.pass_context
def inspect(ctx: click.Context, email_id: str, input_path: Path | None, as_json: bool) -> None:
    """Analyse one email against the rest of the corpus and the tickets."""
    config: TriageConfig = ctx.obj
    try:
        records = _load_corpus(config, input_path)
    except CorpusUnavailable as exc:
        _fail(ctx, f"[red]Record store unavailable: {escape(str(exc))}[/red]", EXIT_STORE_UNAVAILABLE)
        return

    email = next((e for e in records.emails if e.id == email_id), None)
    if email is None and input_path is None:
        try:
            db = TriageDatabase(config.db_path)
            try:
                email = db.get_email(email_id)
            finally:
                db.close()
        except CorpusUnavailable as exc:
            _fail(ctx, f"[red]Record store unavailable: {escape(str(exc))}[/red]", EXIT_STORE_UNAVAILABLE)
            return
    if email is None:
        _fail(ctx, f"[red]Email {escape(repr(email_id))} not found.[/red]", EXIT_NOT_FOUND)
        return

    try:
        report = asyncio.run(
            _with_engine(
                config, lambda e: e.analyze_single(email, records.emails, records.tickets)
            )
        )
    except ExtractionUnavailable as exc:
        _fail(ctx, f"[red]{escape(str(exc))}[/red]\n{_REMEDIATION}", EXIT_CONFIG_ERROR)
        return
    except ExtractionError as exc:
        _fail(
            ctx,
            f"[red]Could not analyse email {escape(repr(email_id))}: {escape(str(exc))}[/red]",
            EXIT_EXTRACTION_FAILED,
        )
        return

    if as_json:
        _echo_json(report.to_dict())
    else:
        _print_single(report)


def _print_single(report: SingleReport) -> None:
    email = report.analyzed_email
    console.print(
        Panel(
            f"From: {escape(email.sender)}\nReceived: {email.received_at:%Y-%m-%d %H:%M} UTC\n"
            f"Categories: {', '.join(sorted(email.categories)) or '-'}   "
            f"Priority: [bold]{email.suggested_priority.value}[/bold]   "
            f"Sentiment: {email.sentiment.label.value}\n"
            f"Key phrases: {escape(', '.join(p.text for p in email.key_phrases[:8])) or '-'}",
            title=f"[bold]{escape(email.subject or email.id)}[/bold]",
            border_style="blue",
        )
    )

    if report.potential_duplicates:
        console.print("\n[bold]Potential duplicates[/bold]")
        for other, similarity in report.potential_duplicates:
            console.print(
                f"  • {escape(other.id)} {escape(other.subject)} — {similarity.score:.2f} "
                f"[dim]({escape('; '.join(similarity.reasons))})[/dim]"
            )
    else:
        console.print("\n[dim]No potential duplicates.[/dim]")

    if report.related_tickets:
        console.print("\n[bold]Related tickets[/bold]")
        for match in report.related_tickets:
            console.print(
                f"  • {escape(match.ticket.id)} {escape(match.ticket.title)} ({escape(match.ticket.status)}) — "
                f"{match.score:.2f} {match.confidence}"
            )

    if report.recommendation is not None:
        console.print(
            f"\n[bold]Recommendation:[/bold] {report.recommendation.recommendation.value} — "
            f"{escape(report.recommendation.recommendation_reason)}"
        )
