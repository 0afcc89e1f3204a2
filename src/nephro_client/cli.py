"""CLI for nephro-client: login / logout / status / patients / sessions / labs."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from nephro_client.client import NephroClient
from nephro_client.config import AppSettings, ObservabilityConfig, SessionConfig
from nephro_client.exceptions import AuthenticationExpired, NephroError
from nephro_client.logging_config import setup_logging
from nephro_client.normalizer import NormalizedList

app = typer.Typer(name="nephro", help="Command-line access to the dialysis-care API")
console = Console()

T = TypeVar("T")


def _build_client(base_url: Optional[str]) -> NephroClient:
    """Client whose session survives between invocations (file backend)."""
    settings = AppSettings(session=SessionConfig(backend="file"))
    if base_url:
        settings.api.base_url = base_url
    return NephroClient(settings)


def _run(base_url: Optional[str], verbose: bool, action: Callable[[NephroClient], Awaitable[T]]) -> T:
    """Run *action* against a fresh client; API errors exit with status 1."""
    setup_logging(ObservabilityConfig(log_level="DEBUG" if verbose else "WARNING", json_logs=False))

    async def _main() -> T:
        async with _build_client(base_url) as client:
            return await action(client)

    try:
        return asyncio.run(_main())
    except AuthenticationExpired:
        console.print("[red]Session expired. Run `nephro login` again.[/red]")
        raise typer.Exit(code=1)
    except NephroError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


def _print_page(title: str, page: NormalizedList, columns: list[str]) -> None:
    table = Table(title=f"{title} (page {page.page}, {len(page.items)} of {page.total})")
    for column in columns:
        table.add_column(column)
    for item in page.items:
        row = item if isinstance(item, dict) else {}
        table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in columns))
    console.print(table)


@app.command()
def login(
    email: str = typer.Option(..., prompt=True, help="Account email"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Account password"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="API base URL"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Log in and store the session locally."""
    _run(base_url, verbose, lambda client: client.auth.login(email, password))
    console.print(f"[green]Logged in as {email}[/green]")


@app.command()
def logout(
    base_url: Optional[str] = typer.Option(None, "--base-url"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Forget the stored session."""

    async def _logout(client: NephroClient) -> None:
        await client.auth.logout()

    _run(base_url, verbose, _logout)
    console.print("Logged out")


@app.command()
def status(
    base_url: Optional[str] = typer.Option(None, "--base-url"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Show the stored session (token truncated)."""

    async def _status(client: NephroClient) -> dict[str, Any]:
        return client.auth.auth_status()

    info = _run(base_url, verbose, _status)
    table = Table(title="Session")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in info.items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


@app.command()
def patients(
    page: int = typer.Option(1, min=1),
    page_size: int = typer.Option(10, min=1),
    base_url: Optional[str] = typer.Option(None, "--base-url"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """List patients."""
    result = _run(base_url, verbose, lambda client: client.patients.list(page, page_size))
    _print_page("Patients", result, ["id", "first_name", "last_name", "birth_date", "gender", "institution_name"])


@app.command()
def sessions(
    patient_id: str = typer.Argument(..., help="Patient id"),
    page: int = typer.Option(1, min=1),
    page_size: int = typer.Option(10, min=1),
    base_url: Optional[str] = typer.Option(None, "--base-url"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """List a patient's dialysis sessions."""
    result = _run(base_url, verbose, lambda client: client.dialysis.by_patient(patient_id, page, page_size))
    _print_page(
        "Dialysis sessions",
        result,
        ["id", "session_date", "duration_minutes", "pre_weight", "post_weight", "complications"],
    )


@app.command()
def labs(
    patient_id: str = typer.Argument(..., help="Patient id"),
    trend: Optional[str] = typer.Option(None, help="Show the trend of one test, e.g. hemoglobin"),
    days: int = typer.Option(30, min=1, help="Trend window in days"),
    fhir: bool = typer.Option(False, "--fhir", help="Print results as a FHIR Bundle"),
    base_url: Optional[str] = typer.Option(None, "--base-url"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """List a patient's laboratory results."""
    if fhir:
        bundle = _run(base_url, verbose, lambda client: client.laboratory.as_fhir(patient_id))
        console.print_json(json.dumps(bundle, default=str))
        return

    if trend:
        points = _run(base_url, verbose, lambda client: client.laboratory.trends(patient_id, trend, days))
        table = Table(title=f"{trend} over {days} days")
        table.add_column("Date", style="cyan")
        table.add_column("Value")
        for point in points:
            table.add_row(str(point["date"]), str(point["value"]))
        console.print(table)
        return

    result = _run(base_url, verbose, lambda client: client.laboratory.by_patient(patient_id))
    _print_page("Laboratory results", result, ["id", "test_date", "hemoglobin", "potassium", "creatinine", "albumin"])


if __name__ == "__main__":
    app()
