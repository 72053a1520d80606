"""Command-line interface for nanolink."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Awaitable, Optional, TypeVar

import structlog
import typer
from rich.console import Console
from rich.table import Table

from nanolink.context import NanopubContext, open_context
from nanolink.errors import FetchError, NanolinkError, QueryError
from nanolink.models import BibRecord, CandidateState, LinkedRecord
from nanolink.services import LocalLibrary, ReconciledCandidate
from nanolink.settings import configure_logging, get_settings
from nanolink.utils import nanopub_short_id

console = Console()
app = typer.Typer(help="nanolink – nanopublications for your reference library")
logger = structlog.get_logger(__name__)

T = TypeVar("T")


@app.callback()
def main() -> None:
    configure_logging(get_settings().log_level)


def _run(awaitable: Awaitable[T]) -> T:
    """Run one user operation; library errors become a single red line."""
    try:
        return asyncio.run(awaitable)
    except NanolinkError as exc:
        logger.debug("cli.failed", error=str(exc))
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


async def _require_record(ctx: NanopubContext, key: str) -> BibRecord:
    """Look a record up by key, falling back to its DOI."""
    record = await ctx.store.get_record(key)
    if record is None and "/" in key:
        matches = await ctx.store.find_by_doi(key)
        if len(matches) > 1:
            keys = ", ".join(match.key for match in matches)
            console.print(f"[red]DOI {key} matches several records: {keys}.[/red]")
            raise typer.Exit(code=1)
        record = matches[0] if matches else None
    if record is None:
        console.print(f"[red]No record with key {key}.[/red]")
        raise typer.Exit(code=1)
    return record


@app.command()
def config(
    json_output: bool = typer.Option(False, "--json", help="Output settings as JSON"),
) -> None:
    """Display the resolved settings."""
    settings = get_settings()
    if json_output:
        typer.echo(settings.model_dump_json(indent=2))
        return
    table = Table(title="nanolink Settings")
    table.add_column("Key")
    table.add_column("Value", overflow="fold")
    for key, value in settings.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)


PING_QUERY = "SELECT ?s WHERE { ?s ?p ?o } LIMIT 1"


@app.command()
def doctor() -> None:
    """Check the data directory and that the query endpoint and document host answer."""
    settings = get_settings()
    checks: list[tuple[str, bool, str]] = []
    data_dir = settings.data_dir
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        marker = data_dir / ".nanolink_doctor"
        marker.write_text("ok", encoding="utf-8")
        marker.unlink()
        checks.append(("data_dir writable", True, str(data_dir)))
    except OSError as exc:  # pragma: no cover
        checks.append(("data_dir writable", False, str(exc)))

    async def runner() -> list[tuple[str, bool, str]]:
        remote: list[tuple[str, bool, str]] = []
        async with open_context(settings) as ctx:
            try:
                await ctx.sparql.select(PING_QUERY, method="GET")
                remote.append(("query endpoint", True, settings.query_endpoint))
            except QueryError as exc:
                remote.append(("query endpoint", False, str(exc)))
            try:
                await ctx.fetcher.fetch(settings.template_url)
                remote.append(("document host", True, settings.document_host))
            except FetchError as exc:
                remote.append(("document host", False, str(exc)))
        return remote

    if checks[0][1]:
        checks.extend(_run(runner()))

    passed = True
    for name, ok, note in checks:
        status = "[green]OK[/green]" if ok else "[red]FAIL[/red]"
        console.print(f"{status} {name} ({note})")
        passed = passed and ok
    if not passed:
        raise typer.Exit(code=1)
    console.print("[green]Doctor checks passed.[/green]")


@app.command("add-record")
def add_record(
    title: str = typer.Option(..., help="Record title"),
    doi: Optional[str] = typer.Option(None, help="DOI of the work"),
    url: Optional[str] = typer.Option(None, help="Landing page URL"),
    item_type: str = typer.Option("journalArticle", help="Item type"),
    tag: Optional[list[str]] = typer.Option(None, "--tag", "-t", help="Tag applied to the record"),
) -> None:
    """Add a bibliographic record to the local library."""

    async def runner() -> BibRecord:
        storage = LocalLibrary(get_settings())
        record = BibRecord(title=title, doi=doi, url=url, item_type=item_type, tags=list(tag or []))
        return await storage.create_record(record)

    record = _run(runner())
    console.print(f"[green]Stored[/green] {record.key}: {record.title}")


@app.command("list")
def list_records(
    tag: Optional[str] = typer.Option(None, help="Filter by tag"),
) -> None:
    """List records in the library."""

    async def runner() -> list[BibRecord]:
        storage = LocalLibrary(get_settings())
        return await storage.list_records()

    records = _run(runner())
    if tag:
        records = [record for record in records if tag in record.tags]
    if not records:
        console.print("[yellow]Library is empty. Use `nanolink add-record` or `nanolink import`.")
        return
    table = Table(title="Library Records")
    table.add_column("Key")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("DOI")
    table.add_column("Tags")
    for record in records:
        table.add_row(
            record.key,
            record.item_type,
            record.title,
            record.doi or "—",
            ", ".join(record.tags) or "—",
        )
    console.print(table)


@app.command()
def notes(
    key: Optional[str] = typer.Argument(None, help="Record key"),
    limit: int = typer.Option(25, help="Number of notes to show"),
) -> None:
    """Show notes and linked nanopublications."""

    async def runner():
        storage = LocalLibrary(get_settings())
        found = await storage.list_notes(record_key=key, limit=limit)
        attachments = await storage.list_attachments(key) if key else []
        return found, attachments

    found, attachments = _run(runner())
    for attachment in attachments:
        console.print(f"[cyan]{attachment.title}[/cyan] {attachment.url}")
    if not found:
        console.print("[yellow]No notes found.")
        return
    table = Table(title="Notes")
    table.add_column("Created")
    table.add_column("Record")
    table.add_column("Body", overflow="fold")
    for entry in found:
        preview = (entry.body[:120] + "…") if len(entry.body) > 120 else entry.body
        table.add_row(entry.created_at.strftime("%Y-%m-%d"), entry.record_key, preview)
    console.print(table)


@app.command("import")
def import_nanopub(
    uri: str = typer.Argument(..., help="Nanopublication URI, e.g. https://w3id.org/np/RA..."),
) -> None:
    """Import a nanopublication as a new webpage record."""

    async def runner() -> LinkedRecord:
        async with open_context(get_settings()) as ctx:
            return await ctx.linker.import_by_identifier(uri)

    linked = _run(runner())
    message = f"[green]Imported[/green] {linked.record.key}: {linked.record.title}"
    if linked.note:
        message += " (note added)"
    console.print(message)


@app.command()
def search(
    key: str = typer.Argument(..., help="Record key or DOI"),
    limit: int = typer.Option(10, help="Maximum number of nanopublications"),
    enrich: bool = typer.Option(True, help="Fetch each nanopublication for details"),
    review: bool = typer.Option(True, help="Ask to link each result"),
) -> None:
    """Find nanopublications mentioning a record's DOI and link the ones you accept."""

    async def runner() -> list[ReconciledCandidate]:
        settings = get_settings()
        async with open_context(settings) as ctx:
            record = await _require_record(ctx, key)
            if not review:
                return await ctx.linker.search_for_record(record, limit=limit, enrich=enrich)
            return await ctx.linker.reconcile_record(
                record, ctx.prompt, limit=limit, enrich=enrich
            )

    candidates = _run(runner())
    if not candidates:
        console.print("[yellow]No nanopublications found for this record.")
        return
    _print_candidates(candidates)


def _print_candidates(candidates: list[ReconciledCandidate]) -> None:
    table = Table(title="Nanopublications")
    table.add_column("Nanopub")
    table.add_column("Created")
    table.add_column("Label / Quotation", overflow="fold")
    table.add_column("Status")
    for candidate in candidates:
        label = candidate.document.label if candidate.document else None
        status = candidate.state.value
        if candidate.state is CandidateState.LINKED:
            status = "[green]linked[/green]"
        elif candidate.enrich_error:
            status += " (no details)"
        table.add_row(
            nanopub_short_id(candidate.uri),
            (candidate.document.created_date if candidate.document else None)
            or candidate.result.created
            or "—",
            label or candidate.quoted_text or "—",
            status,
        )
    console.print(table)


@app.command()
def link(
    key: str = typer.Argument(..., help="Record key or DOI"),
    uri: str = typer.Argument(..., help="Nanopublication URI"),
    quotation: Optional[str] = typer.Option(None, help="Quoted text the nanopublication covers"),
    interpretation: Optional[str] = typer.Option(None, help="Why the quotation matters"),
) -> None:
    """Link an existing nanopublication to a record."""

    async def runner() -> LinkedRecord:
        async with open_context(get_settings()) as ctx:
            record = await _require_record(ctx, key)
            return await ctx.linker.link_uri(
                record, uri, quotation=quotation, interpretation=interpretation
            )

    linked = _run(runner())
    console.print(f"[green]Linked[/green] {linked.nanopub_uri} to {linked.record.key}")


@app.command()
def publish(
    key: str = typer.Argument(..., help="Record key or DOI"),
    quotation: str = typer.Option(..., help="Quoted text from the paper"),
    comment: Optional[str] = typer.Option(None, help="Your interpretation"),
    open_browser: bool = typer.Option(False, "--open", help="Open Nanodash in a browser"),
) -> None:
    """Prepare a Nanodash quotation nanopublication, then link the published URI."""

    async def runner() -> LinkedRecord | None:
        async with open_context(get_settings()) as ctx:
            record = await _require_record(ctx, key)
            interpretation = comment or await ctx.prompt.ask_text(
                "Why is this quotation relevant? (Your interpretation)"
            )
            if not interpretation:
                console.print("[yellow]No interpretation given – nothing to publish.")
                return None
            url = ctx.linker.publish_url(record, quotation, interpretation)
            console.print(f"Publish at: {url}")
            if open_browser:
                typer.launch(url)
            published = await ctx.prompt.ask_text(
                "After publishing, paste the nanopublication URL (empty to skip)"
            )
            if not published:
                return None
            return await ctx.linker.link_uri(
                record, published, quotation=quotation, interpretation=interpretation
            )

    linked = _run(runner())
    if linked:
        console.print(f"[green]Linked[/green] {linked.nanopub_uri} to {linked.record.key}")


@app.command()
def query(
    text: Optional[str] = typer.Argument(None, help="SPARQL SELECT query"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", exists=True, dir_okay=False),
    method: str = typer.Option("POST", help="POST or GET", case_sensitive=False),
) -> None:
    """Run an ad-hoc SPARQL query against the nanopublication endpoint."""
    verb = method.upper()
    if verb not in {"POST", "GET"}:
        raise typer.BadParameter("Method must be 'POST' or 'GET'.")
    sparql = file.read_text(encoding="utf-8") if file else text
    if not sparql or not sparql.strip():
        raise typer.BadParameter("Provide a query argument or --file.")

    async def runner():
        async with open_context(get_settings()) as ctx:
            return await ctx.sparql.select(sparql, method=verb)

    rows = _run(runner())
    if not rows:
        console.print("[yellow]No results found.")
        return
    headers = list(rows[0].keys())
    table = Table(title=f"SPARQL Results ({len(rows)} rows)")
    for header in headers:
        table.add_column(header, overflow="fold")
    for row in rows:
        table.add_row(*[(row.get(header) or {}).get("value", "") for header in headers])
    console.print(table)



@app.command()
def citations(
    key: str = typer.Argument(..., help="Record key or DOI"),
    limit: int = typer.Option(100, help="Maximum number of nanopublications"),
) -> None:
    """List nanopublications whose assertion quotes the record's paper."""

    async def runner():
        async with open_context(get_settings()) as ctx:
            record = await _require_record(ctx, key)
            if not record.doi:
                console.print(f"[red]Record {key} has no DOI.[/red]")
                raise typer.Exit(code=1)
            return await ctx.search.citing(record.doi, limit=limit)

    results = _run(runner())
    if not results:
        console.print("[yellow]No nanopublications found for this item.")
        return
    table = Table(title=f"Nanopublications citing {key} ({len(results)})")
    table.add_column("Nanopub")
    table.add_column("Quotation", overflow="fold")
    table.add_column("Comment", overflow="fold")
    for result in results:
        table.add_row(
            result.uri,
            result.extra.get("quotation", "—"),
            result.extra.get("comment", "—"),
        )
    console.print(table)
