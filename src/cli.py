"""
loose-ingest CLI.

A Click-based command-line interface for converting record files to
JSON-lines, browsing and reporting on the results, exporting profiled JSONL
back to CSV, and importing records into SQLAlchemy entities.
"""

import importlib
import json
import sys
from pathlib import Path
from typing import Optional

import click
import sqlalchemy

from src.catalog.database import get_db_session
from src.common.logging_config import setup_logging
from src.config.settings import get_settings
from src.ingest.converter import ConvertService
from src.ingest.entity_importer import EntityImporter, EntityImportError
from src.ingest.errors import ConvertError
from src.ingest.jsonl import iter_jsonl
from src.profiling.csv_exporter import CsvProfileExporter
from src.profiling.profile import (
    ProfileInvalidError,
    default_profile_path,
    load_profile,
    profile_path_for_dataset,
)
from src.profiling.report import ONLY_FILTERS, SORT_KEYS, build_report_rows, render_report


# =============================================================================
# Utility Functions
# =============================================================================

def print_success(message: str) -> None:
    """Print success message in green."""
    click.echo(click.style(message, fg='green'))


def print_error(message: str) -> None:
    """Print error message in red."""
    click.echo(click.style(f"Error: {message}", fg='red'), err=True)


def print_warning(message: str) -> None:
    """Print warning message in yellow."""
    click.echo(click.style(f"Warning: {message}", fg='yellow'))


def print_info(message: str) -> None:
    """Print info message in blue."""
    click.echo(click.style(message, fg='blue'))


def load_entity_class(spec: str) -> type:
    """Resolve ``package.module:ClassName``."""
    module_name, _, class_name = spec.partition(':')
    if not module_name or not class_name:
        raise click.BadParameter(f"Expected module:ClassName, got {spec!r}", param_hint='ENTITY')
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"Cannot import {module_name}: {e}", param_hint='ENTITY')
    entity_cls = getattr(module, class_name, None)
    if not isinstance(entity_cls, type):
        raise click.BadParameter(f"{class_name} not found in {module_name}", param_hint='ENTITY')
    return entity_cls


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.version_option(version='0.1.0', prog_name='loose-ingest')
@click.option('--log-level', default=None, help='Log level (defaults to INGEST_LOG_LEVEL)')
@click.option('--json-logs/--plain-logs', default=None, help='Structured JSON log lines')
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], json_logs: Optional[bool]) -> None:
    """
    loose-ingest: convert, profile and import loosely-typed record files.
    """
    ctx.ensure_object(dict)
    settings = get_settings()
    setup_logging(
        log_level or settings.log_level,
        settings.log_json if json_logs is None else json_logs,
    )


# =============================================================================
# Convert Command
# =============================================================================

@cli.command()
@click.argument('input_path', metavar='INPUT', type=click.Path())
@click.option('--output', '-o', type=click.Path(), help='Output JSONL path (defaults to <data_dir>/<base>.jsonl)')
@click.option('--limit', '-l', type=int, help='Max records to convert and profile')
@click.option('--profile-only', is_flag=True, help='Treat input as JSONL and only write the profile')
@click.option('--dataset', '-d', help='Dataset code (defaults to the input base name)')
@click.option('--tags', '-t', help='Additional tags, comma-separated')
@click.option('--zip-path', help='Entry (file or directory) to use inside a ZIP input')
@click.option('--root-key', help='JSON key holding the record list')
@click.option('--apply-profile', type=click.Path(), help='Profile whose split transforms are applied')
@click.option('--format', '-f', 'output_format', type=click.Choice(['text', 'json']), default='text')
def convert(
    input_path: str,
    output: Optional[str],
    limit: Optional[int],
    profile_only: bool,
    dataset: Optional[str],
    tags: Optional[str],
    zip_path: Optional[str],
    root_key: Optional[str],
    apply_profile: Optional[str],
    output_format: str,
) -> None:
    """Convert INPUT (CSV/TSV/JSON/JSONL, directory, ZIP or GZ) to JSONL and profile it."""
    service = ConvertService()
    try:
        result = service.convert(
            input_path,
            output=output,
            limit=limit,
            profile_only=profile_only,
            dataset=dataset,
            tags=tags,
            zip_path=zip_path,
            root_key=root_key,
            apply_profile=apply_profile,
        )
    except ConvertError as e:
        print_error(str(e))
        sys.exit(1)

    if output_format == 'json':
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.converted_count is not None:
        print_success(f"Converted {result.converted_count} records to {result.jsonl_path}")
    print_success(f"Profile written to {result.profile_path} ({result.record_count} records)")
    if result.unique_fields:
        print_info(f"PK-like unique fields: {', '.join(result.unique_fields)}")
    else:
        print_warning("No PK-like unique field detected")
    for status, count in result.dropped.items():
        print_warning(f"Dropped {count} records ({status})")


# =============================================================================
# Report Command
# =============================================================================

@cli.command()
@click.argument('profile_path', metavar='PROFILE', required=False, type=click.Path())
@click.option('--dataset', '-d', help='Dataset code used to find <data_dir>/<dataset>.profile.json')
@click.option('--only', type=click.Choice(list(ONLY_FILTERS)), help='Only show these fields')
@click.option('--sort', '-s', type=click.Choice(list(SORT_KEYS)), default='name', help='Sort key')
@click.option('--limit', '-l', type=int, default=0, help='Limit rows (0 = no limit)')
@click.option('--match', '-m', help='Regex filter on field name (e.g. "/title|name/i")')
@click.option('--show-transforms', is_flag=True, help='Show the transforms block')
def report(
    profile_path: Optional[str],
    dataset: Optional[str],
    only: Optional[str],
    sort: str,
    limit: int,
    match: Optional[str],
    show_transforms: bool,
) -> None:
    """Show a field report for a profile."""
    if not profile_path:
        if not dataset:
            print_error("Provide a profile path or --dataset")
            sys.exit(1)
        profile_path = str(profile_path_for_dataset(get_settings().data_dir, dataset))

    try:
        profile = load_profile(profile_path)
    except ProfileInvalidError as e:
        print_error(str(e))
        sys.exit(1)

    rows = build_report_rows(profile, only=only, sort=sort, limit=limit, match=match)
    click.echo(render_report(profile, rows, profile_path=profile_path, show_transforms=show_transforms))


# =============================================================================
# Export CSV Command
# =============================================================================

@cli.command('export-csv')
@click.argument('input_path', metavar='INPUT', required=False, type=click.Path())
@click.option('--profile', '-p', 'profile_path', type=click.Path(), help='Profile JSON path')
@click.option('--dataset', '-d', help='Dataset code used to find profile and input')
@click.option('--output', '-o', type=click.Path(), help='Output CSV path')
@click.option('--limit', '-l', type=int, default=0, help='Max records to export (0 = no limit)')
def export_csv(
    input_path: Optional[str],
    profile_path: Optional[str],
    dataset: Optional[str],
    output: Optional[str],
    limit: int,
) -> None:
    """Export a profiled JSONL file to CSV, in profile field order."""
    if not profile_path:
        if dataset:
            profile_path = str(profile_path_for_dataset(get_settings().data_dir, dataset))
        elif input_path:
            profile_path = str(default_profile_path(input_path))
        else:
            print_error("Provide INPUT, --profile or --dataset")
            sys.exit(1)

    try:
        result = CsvProfileExporter().export_from_profile(
            profile_path, input_path, output, limit or None
        )
    except (ProfileInvalidError, FileNotFoundError) as e:
        print_error(str(e))
        sys.exit(1)

    print_success(f"Exported {result['recordCount']} records to {result['outputPath']}")


# =============================================================================
# Browse Command
# =============================================================================

@cli.command()
@click.argument('jsonl_path', metavar='JSONL', required=False, type=click.Path())
@click.option('--dataset', '-d', help='Dataset code used to find <data_dir>/<dataset>.jsonl')
@click.option('--limit', '-l', type=int, default=10, help='Number of records to display')
def browse(jsonl_path: Optional[str], dataset: Optional[str], limit: int) -> None:
    """Pretty-print the first records of a JSONL file."""
    if not jsonl_path:
        if not dataset:
            print_error("Provide a JSONL path or --dataset")
            sys.exit(1)
        jsonl_path = str(Path(get_settings().data_dir) / f"{dataset}.jsonl")

    if not Path(jsonl_path).is_file():
        print_error(f"JSONL file not found: {jsonl_path}")
        sys.exit(1)

    print_info(f"File: {jsonl_path}")
    count = 0
    for _, record in iter_jsonl(jsonl_path):
        if count >= limit:
            break
        count += 1
        click.echo(click.style(f"\nRecord #{count}", bold=True))
        click.echo(json.dumps(record, indent=2, ensure_ascii=False))

    print_success(f"\nDisplayed {count} records")


# =============================================================================
# Import Entities Command
# =============================================================================

@cli.command('import-entities')
@click.argument('input_path', metavar='INPUT', type=click.Path(exists=True))
@click.argument('entity')
@click.option('--pk', help='Primary key attribute (defaults to the mapped primary key)')
@click.option('--limit', '-l', type=int, help='Max rows to import')
@click.option('--batch', '-b', type=int, help='Commit every N rows')
@click.option('--reset', is_flag=True, help='Delete existing rows first')
@click.option('--yes', '-y', is_flag=True, help='Do not ask before --reset')
@click.option('--id-is-line-number', is_flag=True, help='Use the record number as the primary key')
@click.option('--create-table', is_flag=True, help='Create the entity table if missing')
def import_entities(
    input_path: str,
    entity: str,
    pk: Optional[str],
    limit: Optional[int],
    batch: Optional[int],
    reset: bool,
    yes: bool,
    id_is_line_number: bool,
    create_table: bool,
) -> None:
    """Import INPUT into ENTITY (``package.module:ClassName``)."""
    entity_cls = load_entity_class(entity)

    if reset and not yes:
        if not click.confirm(f"Delete all {entity_cls.__name__} rows first?", default=False):
            print_warning("Import cancelled.")
            return

    try:
        with get_db_session() as db:
            if create_table:
                sqlalchemy.inspect(entity_cls).local_table.create(db.get_bind(), checkfirst=True)
            summary = EntityImporter(db).import_file(
                input_path,
                entity_cls,
                pk=pk,
                limit=limit,
                batch=batch,
                reset=reset,
                id_is_line_number=id_is_line_number,
            )
    except (EntityImportError, ConvertError) as e:
        print_error(str(e))
        sys.exit(1)

    print_success(
        f"Imported {summary.imported} {summary.entity} rows "
        f"({summary.created} new, {summary.updated} updated, {summary.skipped_rows} skipped)"
    )
    for reason, count in sorted(summary.field_skips.items()):
        print_info(f"  {reason}: {count} fields")
    print_info(f"{summary.total_in_table} now in {summary.entity}")


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        print_warning("\nOperation cancelled by user.")
        sys.exit(1)


if __name__ == '__main__':
    main()
