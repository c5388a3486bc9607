"""
Event Ledger CLI

Command-line access to a SQLite-backed ledger: append messages, read a
stream back, walk the global time-ordered view window by window.

Usage:
    ledger init --db events.db
    ledger append order-17 --version 1 --name OrderPlaced --data '{"total": 12}'
    ledger show order-17 --after 3
    ledger page --start 1577836800 --window 60
    ledger page --cursor "1577836861|60|0"
    ledger stats
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import BaseModel, Field
from typing_extensions import Annotated

from event_ledger.kernel.config import LedgerSettings
from event_ledger.kernel.cursor import TimestampCursor
from event_ledger.kernel.errors import EventLedgerError, InvalidCursor
from event_ledger.kernel.logging import configure_logging
from event_ledger.kernel.messages import DefaultHeadersDecorator, Message
from event_ledger.kernel.payloads import PayloadRegistry
from event_ledger.kernel.repository import MessageRepository, MessageStream
from event_ledger.kernel.serializer import JsonMessageSerializer
from event_ledger.storage.sqlite import SQLiteEventBackend

settings = LedgerSettings.from_env()

configure_logging(json_output=settings.json_logs, log_level=settings.log_level)

app = typer.Typer(
    name="ledger",
    help="Event Ledger - append-only event message repository",
    add_completion=False,
)


class CliEvent(BaseModel):
    """Free-form event recorded from the command line"""

    name: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


registry = PayloadRegistry()
registry.register(CliEvent)


def get_backend(db_path: Optional[Path] = None) -> SQLiteEventBackend:
    """Open an existing ledger database"""
    db = db_path or settings.db_path
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'ledger init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return SQLiteEventBackend(db, page_size=settings.page_size)


def get_repository(db_path: Optional[Path] = None) -> MessageRepository:
    return MessageRepository(
        get_backend(db_path),
        JsonMessageSerializer(registry),
        marker=settings.marker,
    )


def echo_messages(messages: MessageStream) -> int:
    """Print messages one per line; returns how many were printed"""
    count = 0
    try:
        for message in messages:
            event = message.event
            label = event.name if isinstance(event, CliEvent) else type(event).__name__
            data = event.data if isinstance(event, CliEvent) else event.model_dump(mode="json")
            typer.echo(
                f"{message.stream_id} v{message.version} "
                f"@{message.timestamp} {label} {json.dumps(data, sort_keys=True)}"
            )
            count += 1
    except EventLedgerError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    return count


@app.command()
def init(
    db: Annotated[
        Optional[Path],
        typer.Option(help="Database path"),
    ] = None,
) -> None:
    """Initialize a new ledger database"""
    db = db or settings.db_path
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    try:
        SQLiteEventBackend(db)
    except EventLedgerError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Initialized ledger database: {db}")


@app.command()
def append(
    stream: Annotated[str, typer.Argument(help="Stream identifier")],
    version: Annotated[int, typer.Option("--version", min=0, help="Stream version")],
    name: Annotated[str, typer.Option("--name", help="Event name")],
    data: Annotated[
        Optional[str],
        typer.Option("--data", help="Event data (JSON object)"),
    ] = None,
    recorded_at: Annotated[
        Optional[int],
        typer.Option("--recorded-at", help="Time of recording (unix seconds, default now)"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Append one message to a stream"""
    try:
        data_dict = json.loads(data) if data else {}
    except json.JSONDecodeError as e:
        typer.echo(f"Error: --data is not valid JSON: {e}", err=True)
        raise typer.Exit(1)
    if not isinstance(data_dict, dict):
        typer.echo("Error: --data must be a JSON object", err=True)
        raise typer.Exit(1)

    repository = get_repository(db)

    message = Message.for_stream(CliEvent(name=name, data=data_dict), stream, version)
    if recorded_at is not None:
        message = message.with_time_of_recording(
            datetime.fromtimestamp(recorded_at, tz=timezone.utc)
        )
    message = DefaultHeadersDecorator(registry).decorate(message)
    result = repository.persist([message])
    if result.is_err():
        typer.echo(f"Error: {result.error}", err=True)
        raise typer.Exit(1)

    typer.echo(f"✓ Appended {name} to {stream} at version {version}")


@app.command()
def show(
    stream: Annotated[str, typer.Argument(help="Stream identifier")],
    after: Annotated[
        Optional[int],
        typer.Option("--after", help="Only versions greater than this"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show the messages of one stream in version order"""
    repository = get_repository(db)
    if after is None:
        messages = repository.retrieve_all(stream)
    else:
        messages = repository.retrieve_all_after_version(stream, after)

    count = echo_messages(messages)
    if count == 0:
        typer.echo("No messages found")
    typer.echo(f"Last version: {messages.last_version}")


@app.command()
def page(
    start: Annotated[
        Optional[int],
        typer.Option("--start", help="Window start (unix seconds) for a new session"),
    ] = None,
    window: Annotated[
        int,
        typer.Option("--window", min=0, help="Window length in seconds for a new session"),
    ] = 60,
    cursor: Annotated[
        Optional[str],
        typer.Option("--cursor", help="Cursor returned by a previous page"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show one time window of the global message log"""
    if (start is None) == (cursor is None):
        typer.echo("Error: pass exactly one of --start or --cursor", err=True)
        raise typer.Exit(1)

    try:
        if cursor is not None:
            current = TimestampCursor.from_string(cursor)
        else:
            current = TimestampCursor.from_start(window, start)
    except InvalidCursor as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    repository = get_repository(db)
    result = repository.paginate(current)
    count = echo_messages(result.messages)
    typer.echo(
        f"{count} message(s) in [{current.window_start}, {current.window_end}]"
    )
    typer.echo(f"Next cursor: {result.next_cursor.to_string()}")


@app.command()
def stats(
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show record and stream counts"""
    backend = get_backend(db)
    try:
        records = backend.count_records()
        streams = backend.count_streams()
    except EventLedgerError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Records: {records}")
    typer.echo(f"Streams: {streams}")


if __name__ == "__main__":
    app()
