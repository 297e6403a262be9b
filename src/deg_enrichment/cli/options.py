"""Options and helpers shared by the analysis commands."""

from pathlib import Path

import click

from deg_enrichment.config.loader import load_config_with_overrides
from deg_enrichment.config.schema import PipelineConfig


ANALYSIS_OPTIONS = [
    click.argument(
        'de_results',
        required=False,
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
    ),
    click.option(
        '--output-dir',
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help='Directory for tables and plots (default: <data_dir>/results)'
    ),
    click.option(
        '--force',
        is_flag=True,
        help='Re-fetch annotations and ID mappings even if checkpoints exist'
    ),
    click.option('--padj', type=float, default=None, help='DE adjusted p-value cutoff'),
    click.option('--log2fc', type=float, default=None, help='DE |log2 fold change| cutoff'),
    click.option('--pvalue', type=float, default=None, help='Enrichment p-value cutoff'),
    click.option('--qvalue', type=float, default=None, help='Enrichment q-value cutoff'),
]


def analysis_options(func):
    """DE input, output directory, checkpoint and threshold options."""
    for decorator in reversed(ANALYSIS_OPTIONS):
        func = decorator(func)
    return func


def load_run_config(ctx, padj, log2fc, pvalue, qvalue, overrides=None) -> PipelineConfig:
    """Load the group's config file with CLI overrides applied (None = keep YAML value)."""
    return load_config_with_overrides(ctx.obj['config_path'], {
        'thresholds.padj_cutoff': padj,
        'thresholds.log2fc_cutoff': log2fc,
        'thresholds.pvalue_cutoff': pvalue,
        'thresholds.qvalue_cutoff': qvalue,
        **(overrides or {}),
    })


def resolve_output_dir(config: PipelineConfig, output_dir: Path | None) -> Path:
    output_dir = output_dir or config.data_dir / "results"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def echo_step(message: str) -> None:
    click.echo(click.style(message, bold=True))


def echo_ok(message: str) -> None:
    click.echo(click.style(f"  {message}", fg='green'))


def echo_error(message: str) -> None:
    click.echo(click.style(f"  Error: {message}", fg='red'), err=True)


def echo_result_summary(label: str, tested: int, significant: int) -> None:
    echo_ok(f"{label}: {significant} significant of {tested} tested")
