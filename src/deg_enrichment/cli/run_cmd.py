"""Run command: the complete GO + KEGG + pathway workflow with a run report."""

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
from deg_enrichment.output import generate_reproducibility_report
from deg_enrichment.persistence import PipelineStore, ProvenanceTracker
from deg_enrichment.pipeline import (
    export_enrichment,
    export_gsea,
    load_go_collection,
    load_gene_lists,
    load_kegg_collection,
    run_go_analysis,
    run_gsea_analysis,
    run_kegg_analysis,
    run_pathview,
)

logger = logging.getLogger(__name__)


@click.command('run')
@analysis_options
@click.option('--gsea/--no-gsea', 'with_gsea', default=False, help='Also run preranked GSEA')
@click.option('--skip-kegg', is_flag=True, help='Only run the GO analysis')
@click.pass_context
def run(ctx, de_results, output_dir, force, padj, log2fc, pvalue, qvalue, with_gsea, skip_kegg):
    """Run the full enrichment workflow on a DE result CSV.

    Pipeline steps:
    1. Load DE results, derive ranked and significant gene lists
    2. GO over-representation + plots
    3. ID translation, KEGG over-representation + plots
    4. Pathway diagrams for pathview.pathway_ids
    5. (--gsea) preranked GSEA over GO and KEGG gene sets
    6. Reproducibility report (JSON + Markdown)

    Examples:

        deg-enrichment run results/deseq2.csv

        deg-enrichment --config my.yaml run results/deseq2.csv --gsea --output-dir out/
    """
    click.echo(click.style("=== DEG Enrichment Workflow ===", bold=True))
    click.echo()

    store = None
    try:
        config = load_run_config(ctx, padj, log2fc, pvalue, qvalue)
        output_dir = resolve_output_dir(config, output_dir)

        store = PipelineStore.from_config(config)
        provenance = ProvenanceTracker.from_config(config)
        results = {}

        echo_step("Step 1: Loading DE results...")
        gene_lists = load_gene_lists(config, de_results, store, provenance)
        echo_ok(
            f"{len(gene_lists.universe)} genes, {len(gene_lists.significant_ids)} significant"
        )
        click.echo()

        echo_step(f"Step 2: GO {config.annotation.ontology} over-representation...")
        go_result = run_go_analysis(config, gene_lists, store, provenance, force=force)
        results["go"] = go_result
        echo_result_summary(go_result.source, go_result.table.height, go_result.significant().height)
        export_enrichment(
            config, go_result, "go", output_dir, gene_lists.fold_changes, provenance
        )
        click.echo()

        kegg_lists = None
        if not skip_kegg:
            client = KEGGClient.from_config(config)

            echo_step("Step 3: KEGG over-representation...")
            kegg_result, kegg_lists = run_kegg_analysis(
                config, gene_lists, store, provenance, client, force=force,
                gene_symbols=go_result.gene_symbols,
            )
            results["kegg"] = kegg_result
            echo_result_summary(
                kegg_result.source, kegg_result.table.height, kegg_result.significant().height
            )
            export_enrichment(
                config, kegg_result, "kegg", output_dir, kegg_lists.fold_changes, provenance
            )
            click.echo()

            if config.pathview.pathway_ids:
                echo_step("Step 4: Drawing pathway diagrams...")
                rendered = run_pathview(
                    config, kegg_lists, client, output_dir / "pathview", provenance
                )
                echo_ok(f"{len(rendered)}/{len(config.pathview.pathway_ids)} pathways drawn")
                click.echo()

        if with_gsea:
            echo_step("Step 5: Preranked GSEA...")
            go_sets = load_go_collection(config, gene_lists.universe, store)
            results["gsea_go"] = run_gsea_analysis(
                config, gene_lists.ranked, go_sets, store, provenance
            )
            export_gsea(config, results["gsea_go"], "gsea_go", output_dir, provenance)

            if kegg_lists is not None:
                kegg_sets = load_kegg_collection(config, client, store, provenance)
                results["gsea_kegg"] = run_gsea_analysis(
                    config, kegg_lists.ranked, kegg_sets, store, provenance
                )
                export_gsea(config, results["gsea_kegg"], "gsea_kegg", output_dir, provenance)

            for name in ("gsea_go", "gsea_kegg"):
                if name in results:
                    echo_result_summary(
                        results[name].source,
                        results[name].table.height,
                        results[name].significant().height,
                    )
            click.echo()

        echo_step("Step 6: Writing reproducibility report...")
        report = generate_reproducibility_report(config, results, provenance)
        json_path = report.to_json(output_dir / "reproducibility.json")
        md_path = report.to_markdown(output_dir / "reproducibility.md")
        echo_ok(f"{json_path.name}, {md_path.name}")

        provenance.save_to_store(store)
        provenance.save_sidecar(output_dir / "run.json")

    except Exception as e:
        echo_error(str(e))
        logger.exception("Enrichment workflow failed")
        sys.exit(1)
    finally:
        if store is not None:
            store.close()

    click.echo()
    click.echo(click.style("=== Workflow Complete ===", bold=True))
    click.echo(f"Results: {output_dir}")
