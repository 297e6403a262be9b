"""deg-enrichment command group: global options, info, and the analysis commands."""

import logging
from pathlib import Path

import click
import structlog

from deg_enrichment import __version__
from deg_enrichment.cli.cache_cmd import cache
from deg_enrichment.cli.go_cmd import go
from deg_enrichment.cli.gsea_cmd import gsea
from deg_enrichment.cli.kegg_cmd import kegg
from deg_enrichment.cli.pathview_cmd import pathview
from deg_enrichment.cli.run_cmd import run
from deg_enrichment.config.loader import load_config
from deg_enrichment.config.schema import PipelineConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(verbose: bool = False) -> None:
    """Send stdlib and structlog events through one stderr handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def _section(title: str, rows: list[tuple[str, object]]) -> None:
    click.echo(click.style(f"{title}:", bold=True))
    for label, value in rows:
        click.echo(f"  {label}: {value}" if label else f"  {value}")
    click.echo()


def describe_config(config: PipelineConfig) -> None:
    """Print the settings that decide what a run computes."""
    t = config.thresholds
    a = config.annotation

    _section("Thresholds", [
        ("", f"DE padj < {t.padj_cutoff}, |log2FC| > {t.log2fc_cutoff}"),
        ("", f"Enrichment p <= {t.pvalue_cutoff}, q <= {t.qvalue_cutoff} ({t.p_adjust_method})"),
        ("Gene-set size", f"{t.min_gs_size}-{t.max_gs_size}"),
    ])

    annotation_rows = [
        ("Input IDs", config.input.gene_id_type),
        ("Species", a.species),
        ("GO Ontology", a.ontology),
        ("KEGG Organism", f"{a.kegg_organism} ({a.kegg_key_type})"),
    ]
    if a.gmt_path:
        annotation_rows.append(("GMT Override", a.gmt_path))
    _section("Annotation", annotation_rows)

    _section("Paths", [
        ("Data Directory", config.data_dir),
        ("Cache Directory", config.cache_dir),
        ("DuckDB Path", config.duckdb_path),
    ])

    _section("KEGG REST", [
        ("Rate Limit", f"{config.api.rate_limit_per_second} req/s"),
        ("Max Retries", config.api.max_retries),
        ("Cache TTL", f"{config.api.cache_ttl_seconds}s"),
        ("Timeout", f"{config.api.timeout_seconds}s"),
    ])


@click.group()
@click.version_option(__version__, prog_name='deg-enrichment')
@click.option(
    '--config',
    type=click.Path(exists=True, path_type=Path),
    default='config/default.yaml',
    help='Path to configuration YAML file'
)
@click.option('--verbose', is_flag=True, help='Enable verbose logging (DEBUG level)')
@click.pass_context
def cli(ctx, config, verbose):
    """deg-enrichment: GO/KEGG enrichment and pathway diagrams for DE results.

    Takes a differential-expression CSV (gene id, log2 fold change, adjusted
    p-value), runs over-representation analysis and preranked GSEA, and
    renders the usual enrichment plots and KEGG pathway diagrams.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    configure_logging(verbose)
    logging.debug("Verbose logging enabled")


@cli.command()
@click.pass_context
def info(ctx):
    """Display version and configuration summary."""
    config_path = ctx.obj['config_path']

    click.echo(f"deg-enrichment v{__version__}")
    click.echo(f"Config: {config_path}")
    click.echo()

    try:
        config = load_config(config_path)
    except Exception as e:
        click.echo(click.style(f"Error loading config: {e}", fg='red'), err=True)
        ctx.exit(1)

    click.echo(f"Config Hash: {config.config_hash()[:16]}...")
    click.echo()
    describe_config(config)


for command in (go, kegg, gsea, pathview, run, cache):
    cli.add_command(command)


if __name__ == '__main__':
    cli()
