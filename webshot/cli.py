"""CLI entry point for webshot."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from playwright.async_api import Error as PlaywrightError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from webshot.auth.form_analyzer import (
    FormAnalysis,
    LoginCheck,
    analyze_login_form,
    build_form_auth,
    verify_login,
)
from webshot.browser.session import BrowserSession
from webshot.errors import ConfigurationError, WebshotError
from webshot.identity import url_hash
from webshot.models.auth import BasicAuth, dump_auth_config
from webshot.models.config import (
    CaptureOptions,
    ViewportConfig,
    WebshotDefaults,
    auth_from_env,
    load_auth_config,
)
from webshot.models.record import CaptureResult
from webshot.orchestrator import ScreenshotCapture
from webshot.records.extract import extract_all, extract_image
from webshot.records.info import collect_info

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    sys.exit(1)


def resolve_auth(
    auth_config: Optional[str],
    auth_type: Optional[str],
    username: Optional[str],
    password: Optional[str],
):
    """Pick the auth config from the CLI flags; a config file wins over --auth-type."""
    if auth_config:
        return load_auth_config(auth_config)
    if auth_type == "basic":
        if not (username and password):
            raise ConfigurationError("--auth-type basic requires --username and --password")
        return BasicAuth(username=username, password=password)
    if auth_type == "env":
        auth = auth_from_env("basic")
        if auth is None:
            raise ConfigurationError("WEBSHOT_USERNAME and WEBSHOT_PASSWORD must be set")
        return auth
    if auth_type == "header-env":
        auth = auth_from_env("header")
        if auth is None:
            raise ConfigurationError("WEBSHOT_AUTH_HEADER and WEBSHOT_AUTH_VALUE must be set")
        return auth
    return None


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Web page screenshots with perceptual diff detection."""
    setup_logging(verbose)


# ---------------------------------------------------------------------------
# capture
# ---------------------------------------------------------------------------


async def _capture(options: CaptureOptions) -> CaptureResult:
    async with ScreenshotCapture(options.output_dir) as capture:
        return await capture.capture(options)


@cli.command()
@click.argument("url")
@click.option("--output", "-o", default=None, help="Output directory (env: WEBSHOT_OUTPUT_DIR)")
@click.option("--prefix", "-p", default=None, help="Identifier instead of the URL hash (env: WEBSHOT_PREFIX)")
@click.option("--width", "-w", default=1280, show_default=True, help="Viewport width")
@click.option("--height", "-h", default=720, show_default=True, help="Viewport height")
@click.option("--full-page/--no-full-page", default=True, help="Capture the whole page or only the viewport")
@click.option("--threshold", "-t", default=1.0, show_default=True, help="Diff threshold percentage (0-100)")
@click.option("--timeout", default=30000, show_default=True, help="Navigation timeout in ms")
@click.option("--auth-config", default=None, help="Path to an authentication config (.json)")
@click.option("--auth-type", type=click.Choice(["basic", "env", "header-env"]), default=None,
              help="basic: --username/--password; env: WEBSHOT_USERNAME/PASSWORD; "
                   "header-env: WEBSHOT_AUTH_HEADER/VALUE")
@click.option("--username", default=None, help="Username for basic auth")
@click.option("--password", default=None, help="Password for basic auth")
def capture(
    url: str,
    output: Optional[str],
    prefix: Optional[str],
    width: int,
    height: int,
    full_page: bool,
    threshold: float,
    timeout: int,
    auth_config: Optional[str],
    auth_type: Optional[str],
    username: Optional[str],
    password: Optional[str],
) -> None:
    """Capture URL and compare it with the previous capture."""
    defaults = WebshotDefaults.from_env()
    try:
        options = CaptureOptions(
            url=url,
            output_dir=output or defaults.output_dir,
            prefix=prefix or defaults.prefix,
            viewport=ViewportConfig(width=width, height=height),
            full_page=full_page,
            diff_threshold=threshold,
            timeout_ms=timeout,
            auth=resolve_auth(auth_config, auth_type, username, password),
        )
        console.print(f"Capturing [blue]{url}[/blue] into {Path(options.output_dir).resolve()}")
        result = asyncio.run(_capture(options))
    except (WebshotError, PlaywrightError) as e:
        _fail(str(e))
        return

    table = Table(title="Capture")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Record", result.logs_path)
    table.add_row("Sequence", str(result.logs.metadata.sequence))
    color = "yellow" if result.diff.has_diff else "green"
    table.add_row("Diff", f"[{color}]{result.diff.diff_percentage:.2f}%[/{color}]")
    table.add_row("Evidence", result.evidence_path or "-")
    console.print(table)


# ---------------------------------------------------------------------------
# extract / info
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--input", "-i", "input_dir", default=None, help="Records directory (env: WEBSHOT_OUTPUT_DIR)")
@click.option("--output", "-o", default=None, help="Output directory or file for extracted images")
@click.option("--file", "-f", "record_file", default=None, help="Extract a single record file")
def extract(input_dir: Optional[str], output: Optional[str], record_file: Optional[str]) -> None:
    """Write the PNG images embedded in capture records."""
    try:
        if record_file:
            files = extract_image(record_file, output)
        else:
            files = extract_all(input_dir or WebshotDefaults.from_env().output_dir, output)
    except WebshotError as e:
        _fail(str(e))
        return

    if not files:
        console.print("[yellow]No records found to extract[/yellow]")
        return
    console.print(f"[green]Extracted {len(files)} image(s)[/green]")
    for i, path in enumerate(files, 1):
        console.print(f"  {i}. {path}")


@cli.command()
@click.argument("url", required=False)
@click.option("--output", "-o", default=None, help="Records directory (env: WEBSHOT_OUTPUT_DIR)")
def info(url: Optional[str], output: Optional[str]) -> None:
    """Show captured records, optionally only those of URL."""
    directory = output or WebshotDefaults.from_env().output_dir
    prefix = url_hash(url) if url else None
    try:
        capture_info = collect_info(directory, prefix)
    except WebshotError as e:
        _fail(str(e))
        return

    console.print(f"Directory: {capture_info.directory}")
    if url:
        console.print(f"URL: [blue]{url}[/blue] (identifier {prefix})")

    table = Table(title=f"{capture_info.summary.total_files} record file(s)")
    table.add_column("File")
    table.add_column("Seq", justify="right")
    table.add_column("Kind")
    table.add_column("Diff", justify="right")
    table.add_column("Timestamp")
    for record in capture_info.files:
        diff = f"{record.diff_percentage:.2f}%" if record.diff_percentage is not None else "-"
        table.add_row(record.filename, str(record.sequence), record.kind, diff, record.timestamp)
    console.print(table)

    if not url and capture_info.by_identifier:
        console.print("\n[bold]Captures by identifier[/bold]")
        for identifier, count in sorted(capture_info.by_identifier.items()):
            console.print(f"  {identifier}: {count}")


# ---------------------------------------------------------------------------
# analyze-auth
# ---------------------------------------------------------------------------


async def _analyze_auth(
    url: str,
    username: Optional[str],
    password: Optional[str],
    headless: bool,
) -> tuple[FormAnalysis, Optional[LoginCheck]]:
    session = BrowserSession(headless=headless)
    await session.start()
    try:
        context = await session.new_context(viewport={"width": 1280, "height": 720})
        try:
            page = await context.new_page()
            analysis = await analyze_login_form(page, url)
            check = None
            if analysis.has_login_form and username and password:
                check = await verify_login(page, build_form_auth(analysis, username, password))
            return analysis, check
        finally:
            await context.close()
    finally:
        await session.close()


@cli.command("analyze-auth")
@click.argument("url")
@click.option("--username", "-u", default=None, help="Username for a trial login")
@click.option("--password", "-p", default=None, help="Password for a trial login")
@click.option("--output", "-o", default="./auth-config.json", show_default=True,
              help="Where to write the proposed auth config")
@click.option("--headless/--headed", default=False, help="Run the browser headless")
def analyze_auth(
    url: str,
    username: Optional[str],
    password: Optional[str],
    output: str,
    headless: bool,
) -> None:
    """Detect the login form at URL and propose a form auth config."""
    try:
        analysis, check = asyncio.run(_analyze_auth(url, username, password, headless))
    except (WebshotError, PlaywrightError) as e:
        _fail(str(e))
        return

    for rec in analysis.recommendations:
        console.print(f"  • {rec}")
    if not analysis.has_login_form:
        console.print("[red]No login form detected on this page[/red]")
        sys.exit(1)

    if check is not None:
        if check.success:
            console.print(f"[green]Login test succeeded[/green] ({check.strategy})")
        else:
            console.print("[red]Login test failed[/red]")
        for rec in check.recommendations:
            console.print(f"  • {rec}")

    config = build_form_auth(analysis, username or "YOUR_USERNAME", password or "YOUR_PASSWORD")
    Path(output).write_text(json.dumps(dump_auth_config(config), indent=2))
    console.print(f"[green]Auth config written to {output}[/green]")
    if not (username and password):
        console.print("Replace the placeholder credentials, or use \"env:VAR\" for the password.")


# ---------------------------------------------------------------------------
# servers
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the HTTP/WebSocket capture service."""
    from webshot.service.app import run_server

    run_server(host, port)


@cli.command()
def mcp() -> None:
    """Run the MCP tool server on stdio."""
    from webshot.service.mcp_server import run_mcp_server

    # stdout carries the protocol; keep log output on stderr.
    logging.getLogger().handlers = [RichHandler(console=Console(stderr=True), rich_tracebacks=True)]
    run_mcp_server()


if __name__ == "__main__":
    cli()
