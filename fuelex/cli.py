"""
Fuelex CLI commands

Command-line interface for ingesting fuel invoices.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import click
import yaml

from fuelex.config.config_manager import ConfigManager
from fuelex.exceptions import FuelexError
from fuelex.jobs.batch import BatchOrchestrator
from fuelex.jobs.progress import ProgressChannel, ProgressSnapshot
from fuelex.jobs.retry import retry_rate_limited
from fuelex.models.batch import BatchResult
from fuelex.models.fuel_invoice import ExistingRecordIndex, IngestedFileIndex, KnownVehicle, RawDocument

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _load_list(path: Optional[str], key: str) -> List[Any]:
    """Read a YAML/JSON file holding either a list or a mapping with `key`"""
    if not path:
        return []
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise click.BadParameter(f"{path} must contain a list or a '{key}' list")
    return data


def _result_to_json(result: BatchResult) -> dict:
    payload = result.model_dump(mode='json')
    payload['summary'] = result.summary()
    payload['records'] = [c.to_record() for c in result.merged_candidates]
    return payload


def _echo_result(result: BatchResult) -> None:
    for outcome in result.per_file:
        if outcome.succeeded:
            duplicates = sum(1 for c in outcome.candidates if c.is_duplicate)
            unresolved = sum(1 for c in outcome.candidates if c.needs_manual_resolution)
            click.echo(
                f"✅ {outcome.document_name}: {len(outcome.candidates)} candidate(s), "
                f"{len(outcome.rejected)} rejected, {duplicates} duplicate(s), {unresolved} unresolved"
            )
            for rejected in outcome.rejected:
                click.echo(f"   ⚠️  line {rejected.item.line_number}: {'; '.join(rejected.reasons)}")
        else:
            click.echo(f"❌ {outcome.document_name}: {outcome.failure}")

    summary = result.summary()
    click.echo(
        f"\n{summary['reconciled']}/{summary['files']} file(s) reconciled, "
        f"{summary['selected']} record(s) selected, {summary['duplicates']} duplicate(s)"
    )
    if summary['duplicate_files']:
        click.echo(f"⚠️  {summary['duplicate_files']} file(s) skipped as already ingested")
    if result.quota_exhausted:
        click.echo("⚠️  Extraction quota exhausted; remaining files were not started")
    if result.cancelled:
        click.echo("⚠️  Batch cancelled before all files were started")


@click.group()
def cli():
    """Fuelex command-line interface"""
    pass


@cli.command()
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--vehicles', 'vehicles_path', required=True, type=click.Path(exists=True, dir_okay=False),
              help='YAML/JSON vehicle roster: list of {id, registration}')
@click.option('--existing', 'existing_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML/JSON existing fuel records: list of {vehicle_id, fill_date, litres}')
@click.option('--ingested', 'ingested_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML/JSON list of previously ingested files: {name, size} or {name, sha256}')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='Path to configuration file')
@click.option('--window-size', type=click.IntRange(min=1), help='Files processed concurrently')
@click.option('--timeout', type=click.FloatRange(min=0, min_open=True), help='Extraction timeout in seconds')
@click.option('--retry-rate-limited', 'retries', type=click.IntRange(min=0), default=0, show_default=True,
              help='Retry rate-limited files up to N times')
@click.option('--log-level', type=click.Choice(LOG_LEVELS), help='Logging level')
@click.option('--output', type=click.Path(dir_okay=False), help='Write the batch result as JSON')
def ingest(files, vehicles_path, existing_path, ingested_path, config_path, window_size, timeout,
           retries, log_level, output):
    """Extract, validate and reconcile fuel invoices"""
    try:
        config = ConfigManager.load(config_path)
        if window_size:
            config.set('batch.window_size', window_size)
        if timeout:
            config.set('batch.extraction_timeout', timeout)

        logging.basicConfig(
            level=getattr(logging, log_level or config.log_level(), logging.INFO),
            format=config.log_format()
        )

        vehicles = [KnownVehicle(**v) for v in _load_list(vehicles_path, 'vehicles')]
        existing = ExistingRecordIndex(_load_list(existing_path, 'records'))
        ingested = IngestedFileIndex(_load_list(ingested_path, 'files'))
        documents = [RawDocument.from_path(path) for path in files]

        orchestrator = BatchOrchestrator.from_config(config)
        result = asyncio.run(
            _run(orchestrator, documents, vehicles, existing, ingested, retries)
        )
    except (FuelexError, OSError, ValueError, yaml.YAMLError) as e:
        click.echo(f"❌ Error: {str(e)}", err=True)
        raise click.Abort()

    _echo_result(result)

    if output:
        Path(output).write_text(json.dumps(_result_to_json(result), indent=2), encoding='utf-8')
        click.echo(f"Result written to {output}")


async def _run(orchestrator, documents, vehicles, existing, ingested, retries: int) -> BatchResult:
    progress = ProgressChannel()

    def report(snapshot: ProgressSnapshot) -> None:
        if snapshot.completed:
            click.echo(f"Processed {snapshot.completed}/{snapshot.total} file(s)")

    progress.subscribe(report)
    result = await orchestrator.run_batch(
        documents, vehicles, existing, progress=progress, ingested_files=ingested
    )
    if retries and result.rate_limited_names:
        result = await retry_rate_limited(
            orchestrator, documents, result, vehicles, existing, max_retries=retries
        )
    return result


@cli.command('show-config')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='Path to configuration file')
def show_config(config_path):
    """Print the effective configuration"""
    try:
        config = ConfigManager.load(config_path)
    except FuelexError as e:
        click.echo(f"❌ Error: {str(e)}", err=True)
        raise click.Abort()

    effective = config.to_dict()
    if effective.get('extraction', {}).get('api_key'):
        effective['extraction']['api_key'] = '***'
    click.echo(yaml.safe_dump(effective, sort_keys=False, allow_unicode=True))


if __name__ == '__main__':
    cli()
