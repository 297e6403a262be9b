"""GSEA command: preranked gene-set enrichment over GO or KEGG gene sets."""

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
    export_gsea,
    kegg_gene_lists,
    load_gene_lists,
    load_go_collection,
    load_kegg_collection,
    run_gsea_analysis,
)

logger = logging.getLogger(__name__)


@click.command('gsea')
@analysis_options
@click.option(
    '--source',
    type=click.Choice(['go', 'kegg']),
    default='go',
    help='Gene sets to test'
)
@click.option('--permutations', type=int, default=None, help='Number of permutations')
@click.option('--seed', type=int, default=None, help='Permutation random seed')
@click.pass_context
def gsea(ctx, de_results, output_dir, force, padj, log2fc, pvalue, qvalue,
         source, permutations, seed):
    """Run preranked GSEA (gseGO / gseKEGG) on all genes ranked by fold change.

    Examples:

        deg-enrichment gsea results/deseq2.csv

        deg-enrichment gsea results/deseq2.csv --source kegg --permutations 5000
    """
    click.echo(click.style(f"=== GSEA ({source.upper()}) ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_run_config(
            ctx, padj, log2fc, pvalue, qvalue,
            overrides={
                'gsea.permutation_num': permutations,
                'gsea.seed': seed,
            },
        )
        output_dir = resolve_output_dir(config, output_dir)

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)

        echo_step("Step 1: Loading DE results...")
        gene_lists = load_gene_lists(config, de_results, store, provenance)
        echo_ok(f"{len(gene_lists.universe)} ranked genes")
        click.echo()

        echo_step("Step 2: Loading gene sets...")
        if source == 'go':
            ranked = gene_lists.ranked
            collection = load_go_collection(config, gene_lists.universe, store, force)
        else:
            client = KEGGClient.from_config(config)
            kegg_lists = kegg_gene_lists(config, gene_lists, store, provenance, force)
            ranked = kegg_lists.ranked
            collection = load_kegg_collection(config, client, store, provenance, force)
        echo_ok(f"{collection.n_terms} gene sets from {collection.name}")
        click.echo()

        echo_step(f"Step 3: Running prerank ({config.gsea.permutation_num} permutations)...")
        result = run_gsea_analysis(config, ranked, collection, store, provenance)
        echo_result_summary(result.source, result.table.height, result.significant().height)
        click.echo()

        paths = export_gsea(config, result, f"gsea_{source}", output_dir, provenance)
        echo_ok(f"{len(paths)} files written to {output_dir}")

        provenance.save_to_store(store)
        provenance.save_sidecar(output_dir / f"gsea_{source}.tsv")

    except Exception as e:
        echo_error(str(e))
        logger.exception("GSEA failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()

    click.echo()
    click.echo(click.style("GSEA complete", fg='green', bold=True))
