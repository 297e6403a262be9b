"""GO command: over-representation of significant DE genes in GO terms."""

import logging
import sys

import click

from deg_enrichment.cli.options import (
    analysis_options,
    echo_error,
    echo_ok,
    echo_result_summary,
    echo_step,
    load_run_config,
    resolve_output_dir,
)
from deg_enrichment.persistence import PipelineStore, ProvenanceTracker
from deg_enrichment.pipeline import export_enrichment, load_gene_lists, run_go_analysis

logger = logging.getLogger(__name__)


@click.command('go')
@analysis_options
@click.option(
    '--ontology',
    type=click.Choice(['BP', 'MF', 'CC', 'ALL'], case_sensitive=False),
    default=None,
    help='GO sub-ontology (overrides annotation.ontology)'
)
@click.pass_context
def go(ctx, de_results, output_dir, force, padj, log2fc, pvalue, qvalue, ontology):
    """Run GO over-representation analysis (enrichGO) on a DE result CSV.

    Significant genes (padj and |log2FC| thresholds) are tested against all
    genes of the DE table. Writes go_enrichment.tsv/.parquet and the bar,
    dot, upset, enrichment map, gene-concept network and word cloud plots.

    Examples:

        deg-enrichment go results/deseq2.csv

        deg-enrichment go results/deseq2.csv --ontology MF --log2fc 1
    """
    click.echo(click.style("=== GO Enrichment ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_run_config(
            ctx, padj, log2fc, pvalue, qvalue,
            overrides={'annotation.ontology': ontology.upper() if ontology else None},
        )
        output_dir = resolve_output_dir(config, output_dir)

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        echo_step("Step 1: Loading DE results...")
        gene_lists = load_gene_lists(config, de_results, store, provenance)
        echo_ok(
            f"{len(gene_lists.universe)} genes, {len(gene_lists.significant_ids)} significant"
        )
        click.echo()

        echo_step(f"Step 2: GO {config.annotation.ontology} over-representation...")
        result = run_go_analysis(config, gene_lists, store, provenance, force=force)
        echo_result_summary(result.source, result.table.height, result.significant().height)
        click.echo()

        echo_step("Step 3: Writing tables and plots...")
        paths = export_enrichment(
            config, result, "go", output_dir, gene_lists.fold_changes, provenance
        )
        echo_ok(f"{len(paths)} files written to {output_dir}")

        provenance.save_to_store(store)
        provenance.save_sidecar(output_dir / "go_enrichment.tsv")

    except Exception as e:
        echo_error(str(e))
        logger.exception("GO enrichment failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()

    click.echo()
    click.echo(click.style("GO enrichment complete", fg='green', bold=True))
