"""
CLI utility helpers: consoles, settings loading and record parsing.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from httpbridge.core.config import BridgeSettings
from httpbridge.core.logging import configure_logging
from httpbridge.core.records import MappingRecord

console = Console()
err_console = Console(stderr=True)


# ── Settings helper ──────────────────────────────────────────────────────


def load_settings(env_file: str | None = None, **overrides: Any) -> BridgeSettings:
    """Settings from env / ``.env`` with CLI options layered on top.

    Options left at ``None`` do not override anything. Validation errors
    are printed and end the command with exit code 2.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        settings = BridgeSettings(_env_file=env_file or ".env", **values)  # type: ignore[call-arg]
    except ValidationError as e:
        err_console.print(f"[bold red]Invalid configuration:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2)
    if not structlog.is_configured():
        configure_logging(
            level=settings.log_level,
            json_format=settings.log_format == "json",
        )
    return settings


# ── Record helpers ───────────────────────────────────────────────────────


def parse_fields(pairs: list[str]) -> MappingRecord:
    """Build a record from repeated ``name=value`` options."""
    data: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            err_console.print(f"[bold red]Invalid field:[/bold red] {pair!r} (expected name=value)")
            raise typer.Exit(code=1)
        name, value = pair.split("=", 1)
        data[name.strip()] = value
    return MappingRecord.from_dict(data)


def parse_record_line(line: str) -> MappingRecord | None:
    """One JSON-lines input record; ``None`` for blank lines."""
    line = line.strip()
    if not line:
        return None
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("record must be a JSON object")
    return MappingRecord.from_dict(data)


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_mapping(data: dict[str, Any], *, title: str = "") -> None:
    """Print a flat mapping as a two-column table."""
    table = Table(title=title or None, show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in data.items():
        if isinstance(value, (list, tuple)):
            value = "\n".join(str(v) for v in value)
        table.add_row(escape(str(key)), escape(str(value)))
    console.print(table)
