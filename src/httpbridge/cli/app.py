"""
Root Typer application for the httpbridge CLI.

Commands:
    render      Dry-run one record through the configured templates
    normalize   Normalize a saved response payload
    run         Dispatch JSON-lines records and print the documents
"""

from __future__ import annotations

import json
import sys
import threading
from pathlib import Path
from typing import Any

import typer
from rich.markup import escape

from httpbridge.cli.utils import (
    err_console,
    load_settings,
    parse_fields,
    parse_record_line,
    print_json,
    print_mapping,
)
from httpbridge.core.errors import BridgeError

app = typer.Typer(
    name="httpbridge",
    help="httpbridge: render HTTP requests from records and normalize the responses.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("httpbridge")
        except PackageNotFoundError:
            from httpbridge import __version__ as v
        typer.echo(f"httpbridge {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """httpbridge CLI: render, dispatch and normalize."""


# ------------------------------------------------------------------ #
# render
# ------------------------------------------------------------------ #


@app.command("render")
def render_command(
    fields: list[str] = typer.Option([], "--field", "-f", help="Record field as name=value (repeatable)"),
    url: str | None = typer.Option(None, "--url", help="URL template"),
    method: str | None = typer.Option(None, "--method", "-m", help="GET, POST or PUT"),
    headers: str | None = typer.Option(None, "--headers", help="Pipe-separated name:value header templates"),
    body: str | None = typer.Option(None, "--body", help="Body template for POST/PUT"),
    last_polling: int | None = typer.Option(
        None, "--last-polling", help="Window start as epoch value (in the configured unit)"
    ),
    millis: bool | None = typer.Option(None, "--millis/--seconds", help="Epoch unit for time tokens"),
    env_file: str | None = typer.Option(None, "--env-file", "-e"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Render one record through the request templates without sending it."""
    from httpbridge.bridge import RequestBuilder, RequestTemplate
    from httpbridge.templating.clock import PollingClock, utcnow

    settings = load_settings(
        env_file,
        client_url=url,
        http_method=method,
        headers=headers,
        post_body=body,
        use_epoch_milliseconds=millis,
    )
    if last_polling is not None:
        clock = PollingClock.from_epoch(last_polling, use_epoch_milliseconds=settings.use_epoch_milliseconds)
    else:
        clock = PollingClock(
            last_polling=settings.initial_polling_time(utcnow()),
            use_epoch_milliseconds=settings.use_epoch_milliseconds,
        )

    record = parse_fields(fields)
    request = RequestBuilder(RequestTemplate.from_settings(settings), clock).build(record)

    if json_out:
        print_json(request.to_dict())
    else:
        print_mapping(request.to_dict(), title="Rendered Request")


# ------------------------------------------------------------------ #
# normalize
# ------------------------------------------------------------------ #


@app.command("normalize")
def normalize_command(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved response payload"),
    response_format: str | None = typer.Option(None, "--format", "-F", help="json, xml or csv"),
    separator: str | None = typer.Option(None, "--separator", "-s", help="Field separator for csv"),
    env_file: str | None = typer.Option(None, "--env-file", "-e"),
) -> None:
    """Normalize a saved payload and print the document.

    Delimited text is always keyed in schema-creation mode here.
    """
    from httpbridge.normalize.normalizer import ResponseNormalizer

    settings = load_settings(
        env_file,
        response_format=response_format,
        field_separator=separator,
    )
    normalizer = ResponseNormalizer(
        settings.response_format,
        field_separator=settings.field_separator,
        create_schema=True,
    )

    try:
        document = normalizer.normalize(file.read_text(encoding="utf-8"))
    except BridgeError as e:
        err_console.print(f"[bold red]{type(e).__name__}:[/bold red] {escape(e.message)}")
        raise typer.Exit(code=1)

    print_json(document)


# ------------------------------------------------------------------ #
# run
# ------------------------------------------------------------------ #


@app.command("run")
def run_command(
    input_path: str = typer.Option("-", "--input", "-i", help="JSON-lines records; '-' reads stdin"),
    url: str | None = typer.Option(None, "--url", help="URL template"),
    method: str | None = typer.Option(None, "--method", "-m", help="GET, POST or PUT"),
    response_format: str | None = typer.Option(None, "--format", "-F", help="json, xml or csv"),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Concurrent requests"),
    env_file: str | None = typer.Option(None, "--env-file", "-e"),
) -> None:
    """Dispatch every input record and print each normalized document as a JSON line."""
    from httpbridge.bridge import HttpBridge
    from httpbridge.normalize.schema import InMemorySchemaRegistry

    settings = load_settings(
        env_file,
        client_url=url,
        http_method=method,
        response_format=response_format,
        max_workers=workers,
    )
    if not settings.client_url:
        err_console.print("[bold red]No URL template configured[/bold red] (--url or HTTPBRIDGE_CLIENT_URL)")
        raise typer.Exit(code=2)

    output_lock = threading.Lock()

    def emit(document: Any) -> None:
        line = json.dumps(document, default=str)
        with output_lock:
            typer.echo(line)

    stream = sys.stdin
    skipped = 0
    try:
        if input_path != "-":
            stream = open(input_path, encoding="utf-8")
        registry = InMemorySchemaRegistry() if settings.create_schema else None
        with HttpBridge.from_settings(settings, emit, registry=registry) as bridge:
            for number, line in enumerate(stream, start=1):
                try:
                    record = parse_record_line(line)
                except ValueError as e:
                    err_console.print(f"[yellow]Skipping line {number}:[/yellow] {escape(str(e))}")
                    skipped += 1
                    continue
                if record is not None:
                    bridge.process(record)
            dispatcher = bridge.dispatcher
    except OSError as e:
        err_console.print(f"[bold red]Cannot read input:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except BridgeError as e:
        err_console.print(f"[bold red]{type(e).__name__}:[/bold red] {escape(e.message)}")
        raise typer.Exit(code=1)
    finally:
        if stream is not sys.stdin:
            stream.close()

    summary = dispatcher.get_stats()
    err_console.print(
        f"[green]✓[/green] {summary.completed} completed, {summary.failed} failed, "
        f"{summary.dropped} dropped, {skipped} skipped"
    )
