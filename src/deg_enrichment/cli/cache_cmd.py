"""Cache commands: inspect and clear DuckDB checkpoints and the HTTP cache."""

import logging
import sys
from pathlib import Path

import click

from deg_enrichment.api_clients.base import CachedAPIClient
from deg_enrichment.cli.options import echo_error, echo_ok, echo_step
from deg_enrichment.config.loader import load_config
from deg_enrichment.persistence import PipelineStore

logger = logging.getLogger(__name__)


@click.group('cache')
def cache():
    """Inspect or clear checkpoints and cached downloads."""


@cache.command('list')
@click.pass_context
def list_cmd(ctx):
    """List DuckDB checkpoints (newest first) and the HTTP cache size."""
    config = load_config(ctx.obj['config_path'])

    with PipelineStore.from_config(config) as store:
        checkpoints = store.list_checkpoints()

    echo_step(f"Checkpoints in {config.duckdb_path}:")
    if not checkpoints:
        click.echo("  (none)")
    for checkpoint in checkpoints:
        click.echo(
            f"  {checkpoint['table_name']:<40} {checkpoint['row_count']:>8} rows  "
            f"{checkpoint['created_at']:%Y-%m-%d %H:%M}  {checkpoint['description']}"
        )
    click.echo()

    stats = CachedAPIClient.from_config(config).cache_stats()
    echo_step("HTTP cache:")
    click.echo(f"  {stats['cache_path']}")
    if stats['cache_exists']:
        click.echo(f"  {stats['cache_size_bytes'] / 1e6:.1f} MB")
    else:
        click.echo("  (empty)")


@cache.command('clear')
@click.argument('tables', nargs=-1)
@click.option('--all-checkpoints', is_flag=True, help='Drop every checkpoint table')
@click.option('--http', 'clear_http', is_flag=True, help='Also clear cached KEGG downloads')
@click.pass_context
def clear_cmd(ctx, tables, all_checkpoints, clear_http):
    """Drop checkpoint TABLES so the next run fetches them again.

    Example: deg-enrichment cache clear kegg_pathways_hsa
    """
    config = load_config(ctx.obj['config_path'])

    if not tables and not all_checkpoints and not clear_http:
        echo_error("Nothing to clear (name tables, or pass --all-checkpoints or --http)")
        sys.exit(2)

    with PipelineStore.from_config(config) as store:
        if all_checkpoints:
            tables = [c['table_name'] for c in store.list_checkpoints()]
        for table in tables:
            if not store.has_checkpoint(table):
                click.echo(f"  {table}: no such checkpoint")
                continue
            store.delete_checkpoint(table)
            logger.info(f"Dropped checkpoint {table}")
            echo_ok(f"Dropped {table}")

    if clear_http:
        CachedAPIClient.from_config(config).clear_cache()
        echo_ok("HTTP cache cleared")


@cache.command('export')
@click.argument('table')
@click.argument('output', type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def export_cmd(ctx, table, output):
    """Write checkpoint TABLE to OUTPUT as Parquet."""
    config = load_config(ctx.obj['config_path'])

    with PipelineStore.from_config(config) as store:
        if not store.has_checkpoint(table):
            echo_error(f"No checkpoint named {table}")
            sys.exit(1)
        store.export_parquet(table, output)

    echo_ok(f"{table} -> {output}")
