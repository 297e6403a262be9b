"""KEGG command: ID translation, KEGG over-representation and pathway diagrams."""

import logging
import sys

import click

from deg_enrichment.annotation import KEGGClient
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
from deg_enrichment.pipeline import (
    export_enrichment,
    load_gene_lists,
    run_kegg_analysis,
    run_pathview,
)

logger = logging.getLogger(__name__)


@click.command('kegg')
@analysis_options
@click.option(
    '--pathview/--no-pathview',
    default=True,
    help='Draw the pathways listed in pathview.pathway_ids'
)
@click.pass_context
def kegg(ctx, de_results, output_dir, force, padj, log2fc, pvalue, qvalue, pathview):
    """Run KEGG over-representation analysis (bitr + enrichKEGG).

    DE identifiers are translated to the KEGG gene namespace through mygene
    (unmapped IDs are dropped with a warning), then tested against KEGG
    pathways of the configured organism. Optionally draws the configured
    pathway diagrams coloured by fold change.

    Examples:

        deg-enrichment kegg results/deseq2.csv

        deg-enrichment kegg results/deseq2.csv --no-pathview --force
    """
    click.echo(click.style("=== KEGG Enrichment ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_run_config(ctx, padj, log2fc, pvalue, qvalue)
        output_dir = resolve_output_dir(config, output_dir)

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)
        client = KEGGClient.from_config(config)

        echo_step("Step 1: Loading DE results...")
        gene_lists = load_gene_lists(config, de_results, store, provenance)
        echo_ok(
            f"{len(gene_lists.universe)} genes, {len(gene_lists.significant_ids)} significant"
        )
        click.echo()

        echo_step(
            f"Step 2: {config.input.gene_id_type} -> {config.annotation.kegg_key_type} "
            f"translation and KEGG over-representation..."
        )
        result, kegg_lists = run_kegg_analysis(
            config, gene_lists, store, provenance, client, force=force
        )
        echo_ok(f"{len(kegg_lists.universe)} genes carried into the KEGG namespace")
        echo_result_summary(result.source, result.table.height, result.significant().height)
        click.echo()

        echo_step("Step 3: Writing tables and plots...")
        paths = export_enrichment(
            config, result, "kegg", output_dir, kegg_lists.fold_changes, provenance
        )
        echo_ok(f"{len(paths)} files written to {output_dir}")
        click.echo()

        if pathview and config.pathview.pathway_ids:
            echo_step("Step 4: Drawing pathway diagrams...")
            rendered = run_pathview(
                config, kegg_lists, client, output_dir / "pathview", provenance
            )
            echo_ok(f"{len(rendered)}/{len(config.pathview.pathway_ids)} pathways drawn")

        provenance.save_to_store(store)
        provenance.save_sidecar(output_dir / "kegg_enrichment.tsv")

    except Exception as e:
        echo_error(str(e))
        logger.exception("KEGG enrichment failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()

    click.echo()
    click.echo(click.style("KEGG enrichment complete", fg='green', bold=True))
