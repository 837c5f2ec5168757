"""Terminal front end for the CSV review import flow."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from padu_api.client.orchestrator import ImportOrchestrator
from padu_api.client.state import ImportState, ImportStep, InvalidTransition
from padu_api.client.submitters import HttpIngestionClient, IngestionClientError
from padu_api.core.config import settings
from padu_api.core.log_config import setup_logging
from padu_api.imports.mappers import IncompleteMapping
from padu_api.imports.parsers import FileTooLarge, MalformedInput
from padu_api.imports.templates import TEMPLATE_FILENAME, build_template_csv
from padu_api.imports.validators import ValidationPolicy, ValidationReport

USER_ERRORS = (MalformedInput, FileTooLarge, IncompleteMapping, InvalidTransition, IngestionClientError)


def _apply_overrides(orchestrator: ImportOrchestrator, overrides: tuple[str, ...]) -> None:
    for override in overrides:
        field_name, sep, header = override.partition("=")
        if not sep:
            raise click.BadParameter(f"expected FIELD=HEADER, got '{override}'", param_hint="--map")
        orchestrator.override_mapping(field_name.strip(), header.strip())


def _echo_mapping(state: ImportState) -> None:
    click.echo(f"{state.filename}: {state.total_rows} rows, {len(state.headers)} columns")
    for header in state.headers:
        click.echo(f"  {header!r:30} -> {state.mapping.field_for(header)}")


def _echo_report(report: ValidationReport) -> None:
    click.echo(
        f"Validated {report.total_rows} rows: {report.accepted_rows} accepted, "
        f"{report.error_rows} with errors, {report.warning_rows} with warnings"
    )
    for message in report.messages():
        click.echo(f"  {message}")


def _load_and_check(
    orchestrator: ImportOrchestrator, csv_path: str, overrides: tuple[str, ...]
) -> ValidationReport:
    orchestrator.load_file(csv_path)
    _apply_overrides(orchestrator, overrides)
    _echo_mapping(orchestrator.get_state())
    report = orchestrator.preview()
    _echo_report(report)
    return report


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level: Optional[str]) -> None:
    """Padu CSV review import."""
    if log_level:
        settings.log_level = log_level.upper()
    setup_logging()


@cli.command()
@click.option(
    "--output",
    "-o",
    default=TEMPLATE_FILENAME,
    show_default=True,
    type=click.Path(dir_okay=False),
)
def template(output: str) -> None:
    """Write the CSV template."""
    Path(output).write_bytes(build_template_csv())
    click.echo(f"Template written to {output}")


@cli.command()
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--map", "overrides", multiple=True, help="FIELD=HEADER override (repeatable)")
@click.option(
    "--max-error-ratio",
    default=settings.import_max_error_ratio,
    type=float,
    show_default=True,
    help="Share of rows with errors tolerated (0.02 = 2%%)",
)
@click.pass_context
def check(ctx: click.Context, csv_path: str, overrides: tuple[str, ...], max_error_ratio: float) -> None:
    """Parse, map and validate a CSV without importing it."""
    policy = ValidationPolicy(max_error_ratio)
    with ImportOrchestrator(policy=policy) as orchestrator:
        try:
            report = _load_and_check(orchestrator, csv_path, overrides)
        except USER_ERRORS as e:
            raise click.ClickException(str(e)) from e

    if not report.is_importable(policy):
        click.echo("Import would be blocked by validation errors", err=True)
        ctx.exit(1)
    click.echo("Ready to import")


@cli.command()
@click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--integration-id", required=True, help="CSV integration to import into")
@click.option("--api-url", envvar="PADU_API_URL", default="http://localhost:8000", show_default=True)
@click.option("--token", envvar="PADU_API_TOKEN", required=True, help="Bearer access token")
@click.option("--map", "overrides", multiple=True, help="FIELD=HEADER override (repeatable)")
@click.option(
    "--max-error-ratio",
    default=settings.import_max_error_ratio,
    type=float,
    show_default=True,
)
@click.option("--chunk-size", default=settings.import_chunk_size, type=int, show_default=True)
@click.option("--poll-interval", default=1.0, type=float, show_default=True)
@click.option("--timeout", default=None, type=float, help="Seconds to wait for jobs to finish")
@click.pass_context
def upload(
    ctx: click.Context,
    csv_path: str,
    integration_id: str,
    api_url: str,
    token: str,
    overrides: tuple[str, ...],
    max_error_ratio: float,
    chunk_size: int,
    poll_interval: float,
    timeout: Optional[float],
) -> None:
    """Validate a CSV and import it through the ingestion API."""
    policy = ValidationPolicy(max_error_ratio)
    with HttpIngestionClient(api_url, token=token) as client, ImportOrchestrator(
        client, integration_id, policy=policy, chunk_size=chunk_size
    ) as orchestrator:
        last_progress = -1.0

        def show_progress(state: ImportState) -> None:
            nonlocal last_progress
            if state.step == ImportStep.IMPORT and state.progress > last_progress:
                last_progress = state.progress
                click.echo(f"Submitted {state.rows_submitted}/{state.rows_to_submit} rows ({state.progress:.0f}%)")

        unsubscribe = orchestrator.subscribe(show_progress)
        try:
            report = _load_and_check(orchestrator, csv_path, overrides)
            if not report.is_importable(policy):
                click.echo("Import blocked by validation errors", err=True)
                ctx.exit(1)
            results = orchestrator.run_import(poll_interval=poll_interval, timeout=timeout)
        except USER_ERRORS as e:
            raise click.ClickException(str(e)) from e
        except TimeoutError as e:
            raise click.ClickException(str(e)) from e
        finally:
            unsubscribe()

    click.echo(
        f"Inserted {results.inserted}, updated {results.updated}, "
        f"skipped {results.skipped}, errors {results.errors}"
    )
    for message in results.messages:
        click.echo(f"  {message}")
    if results.failed_chunks or results.errors:
        ctx.exit(1)


if __name__ == "__main__":
    cli()
