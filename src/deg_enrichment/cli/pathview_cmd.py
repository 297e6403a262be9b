"""Pathview command: draw KEGG pathways coloured by DE fold changes."""

import logging
import sys
from pathlib import Path

import click

from deg_enrichment.annotation import KEGGClient
from deg_enrichment.cli.options import (
    echo_error,
    echo_ok,
    echo_step,
    resolve_output_dir,
)
from deg_enrichment.config.loader import load_config_with_overrides
from deg_enrichment.config.schema import NODE_SUM_METHODS
from deg_enrichment.persistence import PipelineStore, ProvenanceTracker
from deg_enrichment.pipeline import kegg_gene_lists, load_gene_lists, run_pathview

logger = logging.getLogger(__name__)


@click.command('pathview')
@click.argument(
    'de_results',
    required=False,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    '--pathway-id', '-p',
    'pathway_ids',
    multiple=True,
    help='Pathway to draw, e.g. 04130 or hsa04130 (repeatable; default: pathview.pathway_ids)'
)
@click.option('--limit', type=float, default=None, help='Fold change drawn with the extreme colours')
@click.option(
    '--node-sum',
    type=click.Choice(NODE_SUM_METHODS),
    default=None,
    help='How several genes on one box are combined'
)
@click.option(
    '--output-dir',
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help='Directory for diagrams (default: <data_dir>/results/pathview)'
)
@click.option('--force', is_flag=True, help='Re-run ID translation even if a checkpoint exists')
@click.pass_context
def pathview(ctx, de_results, pathway_ids, limit, node_sum, output_dir, force):
    """Draw KEGG pathway diagrams (PNG overlay, PDF graph, node TSV).

    Every gene of the DE table contributes its log2 fold change, translated
    to the KEGG gene namespace. Colours run green (down) through gray to red
    (up) and are clipped at +/- limit.

    Examples:

        deg-enrichment pathview results/deseq2.csv -p 04130

        deg-enrichment pathview results/deseq2.csv -p hsa04110 -p hsa04115 --limit 2
    """
    click.echo(click.style("=== Pathway Diagrams ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_config_with_overrides(ctx.obj['config_path'], {
            'pathview.pathway_ids': list(pathway_ids) or None,
            'pathview.limit': limit,
            'pathview.node_sum': node_sum,
        })
        output_dir = output_dir or resolve_output_dir(config, None) / "pathview"

        if not config.pathview.pathway_ids:
            raise click.UsageError("No pathway given (use --pathway-id or pathview.pathway_ids)")

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)
        client = KEGGClient.from_config(config)

        echo_step("Step 1: Loading DE results and translating IDs...")
        gene_lists = load_gene_lists(config, de_results, store, provenance)
        kegg_lists = kegg_gene_lists(config, gene_lists, store, provenance, force)
        echo_ok(f"{len(kegg_lists.universe)} genes with a KEGG identifier")
        click.echo()

        echo_step("Step 2: Rendering pathways...")
        rendered = run_pathview(config, kegg_lists, client, output_dir, provenance)
        for pathway_id, paths in rendered.items():
            echo_ok(f"{pathway_id}: {paths['png'].name}, {paths['pdf'].name}")

        failed = set(config.pathview.pathway_ids) - set(rendered)
        for pathway_id in sorted(failed):
            click.echo(click.style(f"  {pathway_id}: failed (see log)", fg='yellow'))

        provenance.save_to_store(store)

    except click.UsageError:
        raise
    except Exception as e:
        echo_error(str(e))
        logger.exception("Pathway rendering failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()

    click.echo()
    click.echo(click.style("Pathway diagrams complete", fg='green', bold=True))
