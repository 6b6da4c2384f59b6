from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional
import typer, yaml

from .client import D1Client
from .config import AppConfig
from .errors import ArtifactDownloadError, D1ExportError
from .export import ProgressEvent

app = typer.Typer(help="Export remote D1 databases to SQL files")

@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)

def _echo_progress(event: ProgressEvent) -> None:
    typer.secho(f"[export] {event}", fg=typer.colors.CYAN)

def _build_config(
    config_path: Optional[Path],
    account_id: Optional[str],
    api_token: Optional[str],
    export_overrides: Dict[str, Any],
) -> AppConfig:
    server: Dict[str, Any] = {}
    if account_id:
        server["account_id"] = account_id
    if api_token:
        server["api_token"] = api_token
    overrides: Dict[str, Any] = {"export": export_overrides}
    if server:
        overrides["server"] = server

    if config_path is not None:
        return AppConfig.load(str(config_path), overrides=overrides)
    overrides.setdefault("server", {})
    return AppConfig.model_validate(overrides)

@app.command("export")
def export(
    name: str = typer.Argument(..., help="Name or binding of the database"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML or JSON config file"),
    account_id: Optional[str] = typer.Option(None, "--account-id", envvar="CLOUDFLARE_ACCOUNT_ID"),
    api_token: Optional[str] = typer.Option(None, "--api-token", envvar="CLOUDFLARE_API_TOKEN"),
    local: bool = typer.Option(False, "--local", help="Export from your local DB you use with wrangler dev"),
    remote: bool = typer.Option(False, "--remote", help="Export from your live D1"),
    no_schema: bool = typer.Option(False, "--no-schema", help="Only output table contents, not the DB schema"),
    no_data: bool = typer.Option(False, "--no-data", help="Only output table schema, not the contents"),
    table: List[str] = typer.Option([], "--table", help="Table to include in the export; repeatable"),
    output: str = typer.Option(..., "--output", "-o", help="Which .sql file to output to"),
    poll_interval: Optional[float] = typer.Option(None, "--poll-interval", help="Seconds between status polls"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Give up after this many seconds"),
) -> None:
    """Export a remote database to a .sql file."""
    if local and remote:
        _fail("Arguments --local and --remote are mutually exclusive")
    if no_schema and no_data:
        _fail("Arguments --no-schema and --no-data are mutually exclusive")
    if local:
        _fail("Local imports/exports will be coming in a future version.")
    if not remote:
        _fail("You must specify either --local or --remote")

    export_overrides: Dict[str, Any] = {"output": output}
    if table:
        export_overrides["tables"] = list(table)
    if no_schema:
        export_overrides["no_schema"] = True
    if no_data:
        export_overrides["no_data"] = True
    if poll_interval is not None:
        export_overrides["poll_interval"] = poll_interval
    if timeout is not None:
        export_overrides["timeout"] = timeout

    try:
        app_config = _build_config(config, account_id, api_token, export_overrides)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        _fail(f"Invalid configuration: {exc}")

    try:
        with D1Client(app_config) as client:
            path = client.export_database(name, output, on_progress=_echo_progress)
    except ArtifactDownloadError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        if exc.signed_url:
            typer.secho(f"Retry the download manually from: {exc.signed_url}", err=True)
        raise typer.Exit(code=1)
    except D1ExportError as exc:
        _fail(str(exc))

    typer.secho(f"Done! Export written to {path}", fg=typer.colors.GREEN)

if __name__ == "__main__":
    app()
