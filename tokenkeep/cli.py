"""
CLI interface for tokenkeep.

Usage:
    tokenkeep save example.com --cookie "session=abc; theme=dark" --name admin
    tokenkeep list example.com
    tokenkeep export backup.json
    tokenkeep import backup.json --mode overwrite
"""

import json
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import TokenKeeper
from .capture import StaticCaptureAdapter
from .errors import TokenKeepError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .reconcile import MERGE, OVERWRITE
from .types import Record

# Quiet by default; TOKENKEEP_VERBOSE=1 enables debug output
if os.environ.get("TOKENKEEP_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="tokenkeep",
    help="Save, browse and move per-site cookie and local-storage snapshots.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="TOKENKEEP_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
    )] = None,
):
    """Save, browse and move per-site cookie and local-storage snapshots."""


def _get_keeper() -> TokenKeeper:
    """Open the store, exiting with a message if that fails."""
    try:
        return TokenKeeper(_store_override)
    except (OSError, ValueError, TokenKeepError) as e:
        _fail(e, "open store")


def _fail(e: Exception, context: str) -> None:
    log_exception(e, context, store_path=_store_override)
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(1)


def _parse_local(values: Optional[list[str]]) -> dict[str, str]:
    """Parse KEY=VALUE pairs given with --local."""
    entries: dict[str, str] = {}
    for value in values or []:
        if "=" not in value:
            typer.echo(f"Error: --local expects KEY=VALUE, got {value!r}", err=True)
            raise typer.Exit(1)
        key, _, val = value.partition("=")
        entries[key] = val
    return entries


def _format_record(record: Record) -> str:
    return f"{record.id}  {record.display_name}  ({len(record.data)} items)"


def _record_json(record: Record) -> dict:
    d = record.to_dict()
    d["display_name"] = record.display_name
    return d


@app.command("hosts")
def list_hosts():
    """List hosts that have saved records."""
    with _get_keeper() as kp:
        try:
            counts = kp.hosts()
        except TokenKeepError as e:
            _fail(e, "hosts")
    if _json_output:
        typer.echo(json.dumps(counts, indent=2, ensure_ascii=False))
        return
    if not counts:
        typer.echo("No saved records.")
        return
    width = max(len(h) for h in counts)
    for host, count in counts.items():
        typer.echo(f"{host:<{width}}  {count}")


@app.command("list")
def list_records(
    host: Annotated[str, typer.Argument(help="Host name or URL")],
    name_filter: Annotated[str, typer.Option(
        "--filter", "-f", help="Only records whose name contains this text"
    )] = "",
):
    """List records for a host, newest first."""
    with _get_keeper() as kp:
        try:
            records = kp.list_records(host, name_filter)
        except TokenKeepError as e:
            _fail(e, "list")
    if _json_output:
        typer.echo(json.dumps([_record_json(r) for r in records], indent=2, ensure_ascii=False))
        return
    if not records:
        typer.echo("No records match." if name_filter else "No saved records.")
        return
    for record in records:
        typer.echo(_format_record(record))


@app.command("show")
def show_record(
    host: Annotated[str, typer.Argument(help="Host name or URL")],
    record_id: Annotated[str, typer.Argument(help="Record id")],
):
    """Show the items of one record."""
    with _get_keeper() as kp:
        try:
            record = kp.get(host, record_id)
        except TokenKeepError as e:
            _fail(e, "show")
    if record is None:
        typer.echo(f"Not found: {record_id}", err=True)
        raise typer.Exit(1)
    if _json_output:
        typer.echo(json.dumps(_record_json(record), indent=2, ensure_ascii=False))
        return
    typer.echo(_format_record(record))
    for item in record.data:
        if isinstance(item, dict):
            typer.echo(f"  [{item.get('type')}] {item.get('key')} = {item.get('value')}")


@app.command("save")
def save_record(
    host: Annotated[str, typer.Argument(help="Host name or URL")],
    cookie: Annotated[Optional[str], typer.Option(
        "--cookie", "-c", help="Cookie header, e.g. 'a=1; b=2'"
    )] = None,
    local: Annotated[Optional[list[str]], typer.Option(
        "--local", "-l", help="Local-storage entry as KEY=VALUE (repeatable)"
    )] = None,
    name: Annotated[Optional[str], typer.Option(
        "--name", "-n", help="Record name (default: the save time)"
    )] = None,
):
    """Save the given cookies and local-storage entries as a new record."""
    adapter = StaticCaptureAdapter(local=_parse_local(local), cookie_header=cookie)
    with _get_keeper() as kp:
        try:
            record = kp.capture(host, adapter, name=name)
        except TokenKeepError as e:
            _fail(e, "save")
    if _json_output:
        typer.echo(json.dumps(_record_json(record), indent=2, ensure_ascii=False))
    else:
        typer.echo(f"Saved {record.id} ({len(record.data)} items)")


@app.command("rename")
def rename_record(
    host: Annotated[str, typer.Argument(help="Host name or URL")],
    record_id: Annotated[str, typer.Argument(help="Record id")],
    name: Annotated[str, typer.Argument(help="New name ('' resets to the date)")],
):
    """Rename a record."""
    with _get_keeper() as kp:
        try:
            renamed = kp.rename(host, record_id, name)
        except TokenKeepError as e:
            _fail(e, "rename")
    if not renamed:
        typer.echo(f"Not found: {record_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Renamed {record_id}")


@app.command("delete")
def delete_record(
    host: Annotated[str, typer.Argument(help="Host name or URL")],
    record_id: Annotated[str, typer.Argument(help="Record id")],
):
    """Delete a record."""
    with _get_keeper() as kp:
        try:
            deleted = kp.delete(host, record_id)
        except TokenKeepError as e:
            _fail(e, "delete")
    if not deleted:
        typer.echo(f"Not found: {record_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {record_id}")


@app.command("export")
def export_records(
    output: Annotated[str, typer.Argument(
        help="Output file path (use '-' for stdout)"
    )] = "-",
    host: Annotated[Optional[str], typer.Option(
        "--host", "-H", help="Export only this host"
    )] = None,
    record_id: Annotated[Optional[str], typer.Option(
        "--id", help="Export a single record (requires --host)"
    )] = None,
):
    """Export records to JSON for backup or transfer."""
    if record_id and not host:
        typer.echo("Error: --id requires --host", err=True)
        raise typer.Exit(1)

    with _get_keeper() as kp:
        try:
            if record_id:
                text = kp.export_record(host, record_id)
            elif host:
                text = kp.export_host(host)
            else:
                text = kp.export_all()
        except TokenKeepError as e:
            _fail(e, "export")

    if not text:
        typer.echo("Error: nothing to export (invalid host or unknown record)", err=True)
        raise typer.Exit(1)

    if output == "-":
        typer.echo(text)
        return
    Path(output).write_text(text + "\n", encoding="utf-8")
    typer.echo(f"Exported to {output}", err=True)


@app.command("import")
def import_records(
    file: Annotated[str, typer.Argument(help="JSON export file to import ('-' for stdin)")],
    mode: Annotated[str, typer.Option(
        "--mode", "-m", help="merge (upsert by id) or overwrite (replace the whole store)"
    )] = MERGE,
    yes: Annotated[bool, typer.Option(
        "--yes", "-y", help="Don't ask before overwriting"
    )] = False,
):
    """Import records from an export file."""
    if mode not in (MERGE, OVERWRITE):
        typer.echo(f"Error: --mode must be '{MERGE}' or '{OVERWRITE}', got '{mode}'", err=True)
        raise typer.Exit(1)

    if file == "-":
        text = sys.stdin.read()
    else:
        path = Path(file)
        if not path.exists():
            typer.echo(f"Error: file not found: {file}", err=True)
            raise typer.Exit(1)
        text = path.read_text(encoding="utf-8")

    if mode == OVERWRITE and not yes:
        if not typer.confirm(
            f"This will delete all saved records and keep only those in {file}. Continue?"
        ):
            raise typer.Exit(0)

    with _get_keeper() as kp:
        try:
            result = kp.import_text(text, mode)
        except TokenKeepError as e:
            _fail(e, "import")

    if _json_output:
        typer.echo(json.dumps({
            "ok": result.ok,
            "added": result.added,
            "updated": result.updated,
            "skipped": result.skipped,
            "message": result.message,
        }, indent=2, ensure_ascii=False))
    else:
        typer.echo(result.message, err=not result.ok)
    if not result.ok:
        raise typer.Exit(1)


def main():
    """Entry point for the tokenkeep console script."""
    app()


if __name__ == "__main__":
    main()
