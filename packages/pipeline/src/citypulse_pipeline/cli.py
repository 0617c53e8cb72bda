"""
cli.py — Click CLI entrypoint for the ingestion pipelines.

Usage:
    citypulse refresh crimeIncidents
    citypulse refresh transit
    citypulse refresh all
    citypulse show fireIncidents
    citypulse status
    citypulse export crimeIncidents --format parquet --output crime.parquet
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import structlog

from citypulse_shared.config import settings
from citypulse_pipeline.pipelines import boston, transit
from citypulse_pipeline.utils.logging import configure_logging

log = structlog.get_logger(__name__)

TRANSIT = "transit"
ALL = "all"


def _targets() -> list[str]:
    return [*boston.dataset_ids(), TRANSIT, ALL]


def _echo_warnings(warnings: tuple[str, ...] | list[str]) -> None:
    for warning in warnings:
        click.echo(f"    ! {warning}")


@click.group()
@click.option(
    "--log-level",
    default=settings.log_level,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level",
)
@click.option(
    "--log-format",
    default=settings.log_format,
    type=click.Choice(["json", "console"]),
    help="Log renderer",
)
def main(log_level: str, log_format: str) -> None:
    """citypulse open-data and transit ingestion."""
    configure_logging(log_level.upper(), log_format, force=True)


@main.command()
@click.argument("target", type=click.Choice(_targets(), case_sensitive=False))
@click.option("--timeout", type=float, default=None, help="Seconds before falling back to cache")
def refresh(target: str, timeout: float | None) -> None:
    """Refresh a dataset, 'transit', or 'all'."""
    log.info("cli_refresh_start", target=target)
    failed = asyncio.run(_refresh(target, timeout))
    log.info("cli_refresh_complete", target=target, failed=failed)
    if failed:
        raise SystemExit(1)


async def _refresh(target: str, timeout: float | None) -> int:
    failed = 0
    if target in (TRANSIT, ALL):
        try:
            payload = await transit.refresh_transit_with_timeout(timeout=timeout)
        except transit.TransitRefreshError as exc:
            click.echo(f"  ✗ {TRANSIT:20s} {exc}", err=True)
            failed += 1
        else:
            if payload is None:
                click.echo(f"  ✗ {TRANSIT:20s} timed out, no cached payload")
                failed += 1
            else:
                click.echo(
                    f"  ✓ {TRANSIT:20s} {len(payload.vehicles)} vehicles  "
                    f"{len(payload.lines)} lines  {len(payload.alerts)} alerts"
                )
                _echo_warnings(payload.provenance.warnings)

    if target == TRANSIT:
        return failed

    ids = boston.dataset_ids() if target == ALL else [target]
    results = await asyncio.gather(
        *(boston.refresh_with_timeout(d, timeout=timeout) for d in ids),
        return_exceptions=True,
    )
    for dataset_id, result in zip(ids, results):
        if isinstance(result, BaseException):
            click.echo(f"  ✗ {dataset_id:20s} {result}", err=True)
            failed += 1
        elif result is None:
            click.echo(f"  ✗ {dataset_id:20s} timed out, no cached payload")
            failed += 1
        else:
            click.echo(f"  ✓ {dataset_id:20s} {result.provenance.record_count} records")
            _echo_warnings(result.provenance.warnings)
    return failed


@main.command()
@click.argument("target", type=click.Choice(_targets()[:-1], case_sensitive=False))
@click.option("--limit", default=10, show_default=True, help="Rows to print")
def show(target: str, limit: int) -> None:
    """Print the cached payload for a dataset or 'transit' (no network)."""
    if target == TRANSIT:
        payload = transit.get_cached_transit()
        if payload is None:
            raise click.ClickException("No cached transit payload. Run: citypulse refresh transit")
        click.echo(f"Fetched at {payload.provenance.fetched_at}")
        for label, status in transit.mode_statuses(payload):
            click.echo(f"  {label:15s} {status}")
        for alert in payload.alerts[:limit]:
            click.echo(f"  [{alert.severity:6s}] {alert.mode:13s} {alert.title}")
        _echo_warnings(payload.provenance.warnings)
        return

    dataset_id = target
    dataset = boston.get_cached_dataset(dataset_id)
    if dataset is None:
        raise click.ClickException(f"No cached payload for {dataset_id}. Run: citypulse refresh {dataset_id}")
    prov = dataset.provenance
    click.echo(f"{dataset_id}: {prov.record_count} records, fetched at {prov.fetched_at}")
    click.echo(f"  source: {prov.source_url}")
    if dataset.incidents is not None:
        for incident in dataset.incidents[:limit]:
            click.echo(
                f"  {incident.id:15s} {(incident.occurred_at or '')[:19]:19s} "
                f"{incident.district:5s} {incident.incident_type}"
            )
    _echo_warnings(prov.warnings)


@main.command()
def status() -> None:
    """Show the cached state of every dataset."""
    click.echo("Dataset status:")
    bundle = boston.get_cached_bundle()
    for dataset_id in boston.dataset_ids():
        payload = bundle.get(dataset_id)
        if payload is None:
            click.echo(f"  ? {dataset_id:20s} never refreshed")
            continue
        prov = payload.provenance
        marker = "⚠" if prov.warnings else "✓"
        click.echo(
            f"  {marker} {dataset_id:20s} {prov.record_count:6d} records  "
            f"{prov.fetched_at[:19]}  {len(prov.warnings)} warnings"
        )

    cached_transit = transit.get_cached_transit()
    if cached_transit is None:
        click.echo(f"  ? {TRANSIT:20s} never refreshed")
    else:
        prov = cached_transit.provenance
        marker = "⚠" if prov.warnings else "✓"
        click.echo(
            f"  {marker} {TRANSIT:20s} {prov.record_count:6d} records  "
            f"{prov.fetched_at[:19]}  {len(prov.warnings)} warnings"
        )


@main.command()
@click.argument("target", type=click.Choice(_targets()[:-1], case_sensitive=False))
@click.option("--format", "fmt", type=click.Choice(["csv", "parquet"]), default="csv", show_default=True)
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), default=None)
def export(target: str, fmt: str, output: Path | None) -> None:
    """Write a cached dataset (or transit vehicles) to CSV or Parquet."""
    from citypulse_pipeline.transforms.tabular import payload_to_frame, vehicles_to_frame

    if target == TRANSIT:
        payload = transit.get_cached_transit()
        if payload is None:
            raise click.ClickException("No cached transit payload. Run: citypulse refresh transit")
        df = vehicles_to_frame(payload.vehicles)
        name = TRANSIT
    else:
        name = target
        dataset = boston.get_cached_dataset(name)
        if dataset is None:
            raise click.ClickException(f"No cached payload for {name}. Run: citypulse refresh {name}")
        df = payload_to_frame(dataset)

    path = output or Path(f"{name}.{fmt}")
    if fmt == "csv":
        df.write_csv(path)
    else:
        df.write_parquet(path)
    log.info("cli_export_complete", target=name, rows=df.height, path=str(path))
    click.echo(f"Wrote {df.height} rows to {path}")


if __name__ == "__main__":
    main()
