"""Orchestration of the GO, KEGG, GSEA and pathway-diagram flows.

Each run_* function fetches (or reloads from a DuckDB checkpoint) what it
needs, runs the analysis, persists the result table and records a
provenance step with input_count, output_count and criteria.
"""

from dataclasses import replace
from pathlib import Path

import polars as pl
import requests
import structlog

from deg_enrichment.annotation import (
    GeneSetCollection,
    KEGGClient,
    fetch_go_annotations,
    fetch_kegg_pathways,
    read_gmt,
)
from deg_enrichment.config.schema import PipelineConfig
from deg_enrichment.deg import (
    DE_TABLE_NAME,
    GENE_ID_COL,
    GeneLists,
    load_de_results,
    prepare_gene_lists,
)
from deg_enrichment.enrichment import EnrichmentResult, GSEAResult, run_gsea, run_ora
from deg_enrichment.gene_mapping import (
    GeneMapper,
    MappingValidator,
    attach_fold_changes,
    deduplicate_mapping,
    validate_gene_ids,
)
from deg_enrichment.output import (
    generate_all_plots,
    plot_gsea_dotplot,
    render_pathway,
    write_enrichment_output,
)
from deg_enrichment.persistence import (
    PipelineStore,
    ProvenanceTracker,
    checkpoint_name,
    universe_key,
)

logger = structlog.get_logger()

GO_RESULT_TABLE = "go_enrichment"
KEGG_RESULT_TABLE = "kegg_enrichment"


def load_gene_lists(
    config: PipelineConfig,
    de_path: Path | None,
    store: PipelineStore,
    provenance: ProvenanceTracker,
) -> GeneLists:
    """
    Load the DE table, check its identifiers and derive the gene lists.

    Raises:
        ValueError: If no DE path is given or configured, or the identifiers
            do not look like the configured gene_id_type
        FileNotFoundError: If the DE file does not exist
    """
    path = de_path or config.input.path
    if path is None:
        raise ValueError("No DE results file given (pass a path or set input.path)")

    de_df = load_de_results(path, config.input.columns)

    check = validate_gene_ids(de_df[GENE_ID_COL].drop_nulls().to_list(), config.input.gene_id_type)
    for message in check.messages:
        logger.info("gene_id_check", message=message)
    if not check.passed:
        raise ValueError("; ".join(check.messages))

    store.save_dataframe(de_df, DE_TABLE_NAME, description=f"DE results from {Path(path).name}")

    thresholds = config.thresholds
    gene_lists = prepare_gene_lists(de_df, thresholds.padj_cutoff, thresholds.log2fc_cutoff)

    provenance.record_step("filter_significant", {
        "input_count": de_df.height,
        "output_count": len(gene_lists.significant_ids),
        "criteria": f"padj < {thresholds.padj_cutoff} and |log2FC| > {thresholds.log2fc_cutoff}",
        "source_file": str(path),
    })

    return gene_lists


def load_go_collection(
    config: PipelineConfig,
    gene_ids: list[str],
    store: PipelineStore,
    force: bool = False,
) -> GeneSetCollection:
    """
    GO memberships for the universe, from a GMT override, a checkpoint or mygene.

    The checkpoint is keyed by namespace, ontology and a digest of the
    universe and species, so a different DE table triggers a new fetch.
    """
    annotation = config.annotation
    if annotation.gmt_path is not None:
        logger.info("go_annotations_from_gmt", path=str(annotation.gmt_path))
        return read_gmt(annotation.gmt_path)

    table = checkpoint_name(
        "go_annotations",
        config.input.gene_id_type,
        annotation.ontology,
        universe_key(gene_ids, annotation.species),
    )
    name = f"GO:{annotation.ontology}"

    if store.has_checkpoint(table) and not force:
        logger.info("go_annotations_checkpoint", table=table)
        return GeneSetCollection.from_frame(name, store.load_dataframe(table))

    collection = fetch_go_annotations(
        gene_ids,
        id_type=config.input.gene_id_type,
        species=annotation.species,
        ontology=annotation.ontology,
    )
    store.save_dataframe(
        collection.to_frame(),
        table,
        description=f"GO {annotation.ontology} memberships (mygene, taxid {annotation.species})",
    )
    return collection


def run_go_analysis(
    config: PipelineConfig,
    gene_lists: GeneLists,
    store: PipelineStore,
    provenance: ProvenanceTracker,
    force: bool = False,
) -> EnrichmentResult:
    """
    GO over-representation of the significant genes against the DE universe.

    Returns:
        Readable EnrichmentResult (gene_ids hold symbols where known)
    """
    thresholds = config.thresholds
    collection = load_go_collection(config, gene_lists.universe, store, force)

    result = run_ora(
        gene_lists.significant_ids,
        collection,
        universe=gene_lists.universe,
        p_adjust_method=thresholds.p_adjust_method,
        pvalue_cutoff=thresholds.pvalue_cutoff,
        qvalue_cutoff=thresholds.qvalue_cutoff,
        min_gs_size=thresholds.min_gs_size,
        max_gs_size=thresholds.max_gs_size,
    ).set_readable()

    store.save_dataframe(result.table, GO_RESULT_TABLE, description=f"{result.source} ORA")
    provenance.record_step("go_enrichment", {
        "input_count": len(gene_lists.significant_ids),
        "output_count": result.significant().height,
        "criteria": (
            f"pvalue <= {thresholds.pvalue_cutoff}, p.adjust ({thresholds.p_adjust_method}) "
            f"<= {thresholds.pvalue_cutoff}, qvalue <= {thresholds.qvalue_cutoff}"
        ),
        "tested_terms": result.table.height,
    })

    return result


def translate_ids(
    config: PipelineConfig,
    gene_ids: list[str],
    to_type: str,
    store: PipelineStore,
    provenance: ProvenanceTracker,
    force: bool = False,
) -> pl.DataFrame:
    """
    Translate DE identifiers into to_type, keeping one target per source id.

    Returns:
        DataFrame with the from_type and to_type columns

    Raises:
        ValueError: If too few identifiers map (see MappingValidator)
    """
    from_type = config.input.gene_id_type
    to_type = to_type.upper()

    table = checkpoint_name(
        "id_mapping", from_type, to_type, universe_key(gene_ids, config.annotation.species)
    )
    if store.has_checkpoint(table) and not force:
        logger.info("id_mapping_checkpoint", table=table)
        return store.load_dataframe(table)

    mapper = GeneMapper(species=config.annotation.species)
    mapping, report = mapper.translate(gene_ids, from_type, to_type)

    validator = MappingValidator()
    validation = validator.validate(report)
    if report.unmapped_ids:
        validator.save_unmapped_report(
            report, config.data_dir / f"unmapped_{from_type.lower()}_{to_type.lower()}.txt"
        )
    if not validation.passed:
        raise ValueError("; ".join(validation.messages))

    mapping = deduplicate_mapping(mapping, from_type)
    store.save_dataframe(mapping, table, description=f"{from_type} -> {to_type} via mygene")

    provenance.record_step("id_translation", {
        "input_count": report.total_genes,
        "output_count": report.mapped,
        "criteria": f"{from_type} -> {to_type}, first target per source id",
        "success_rate": report.success_rate,
    })

    return mapping


def load_kegg_collection(
    config: PipelineConfig,
    client: KEGGClient,
    store: PipelineStore,
    provenance: ProvenanceTracker,
    force: bool = False,
) -> GeneSetCollection:
    """KEGG pathway memberships for the configured organism (checkpointed)."""
    organism = config.annotation.kegg_organism
    table = checkpoint_name("kegg_pathways", organism)
    name = f"KEGG:{organism}"

    try:
        release = client.release(organism)
    except requests.RequestException as e:
        logger.warning("kegg_release_unavailable", organism=organism, error=str(e))
        release = None
    if release:
        provenance.record_data_version("kegg", f"KEGG {release} ({organism})")

    if store.has_checkpoint(table) and not force:
        logger.info("kegg_pathways_checkpoint", table=table)
        return GeneSetCollection.from_frame(name, store.load_dataframe(table))

    collection = fetch_kegg_pathways(client, organism)
    store.save_dataframe(collection.to_frame(), table, description=f"KEGG pathways for {organism}")
    return collection


def kegg_gene_lists(
    config: PipelineConfig,
    gene_lists: GeneLists,
    store: PipelineStore,
    provenance: ProvenanceTracker,
    force: bool = False,
) -> GeneLists:
    """Re-key the ranked and significant lists into the KEGG gene namespace."""
    from_type = config.input.gene_id_type
    to_type = config.annotation.kegg_key_type
    if from_type == to_type:
        return gene_lists

    mapping = translate_ids(
        config, gene_lists.universe, to_type, store, provenance, force
    )
    ranked = attach_fold_changes(mapping, gene_lists.ranked, from_type, to_type)
    significant = attach_fold_changes(mapping, gene_lists.significant, from_type, to_type)

    logger.info(
        "kegg_gene_lists",
        ranked=ranked.height,
        significant=significant.height,
        dropped_significant=len(gene_lists.significant_ids) - significant.height,
    )

    return GeneLists(
        ranked=ranked,
        significant=significant,
        universe=ranked[GENE_ID_COL].to_list(),
        padj_cutoff=gene_lists.padj_cutoff,
        log2fc_cutoff=gene_lists.log2fc_cutoff,
    )


def kegg_gene_symbols(
    config: PipelineConfig,
    gene_lists: GeneLists,
    gene_symbols: dict[str, str] | None,
    store: PipelineStore,
    provenance: ProvenanceTracker,
) -> dict[str, str]:
    """Symbols keyed by DE id, re-keyed to the KEGG gene namespace through the id mapping."""
    from_type = config.input.gene_id_type
    to_type = config.annotation.kegg_key_type
    if not gene_symbols or from_type == to_type:
        return dict(gene_symbols or {})

    # kegg_gene_lists has already written this checkpoint
    mapping = translate_ids(config, gene_lists.universe, to_type, store, provenance)
    symbols: dict[str, str] = {}
    for source, target in mapping.select([from_type, to_type]).iter_rows():
        if source in gene_symbols:
            symbols.setdefault(target, gene_symbols[source])
    return symbols


def run_kegg_analysis(
    config: PipelineConfig,
    gene_lists: GeneLists,
    store: PipelineStore,
    provenance: ProvenanceTracker,
    client: KEGGClient,
    force: bool = False,
    gene_symbols: dict[str, str] | None = None,
) -> tuple[EnrichmentResult, GeneLists]:
    """
    KEGG over-representation after translating ids to the KEGG namespace.

    Args:
        gene_symbols: DE id -> symbol (e.g. from the GO result); carried
            over so plots label KEGG genes by symbol. Without it labels
            fall back to KEGG ids.

    Returns:
        Tuple of (result, kegg_lists) where kegg_lists holds the KEGG-keyed
        ranked/significant lists (the pathway diagram and GSEA input)
    """
    thresholds = config.thresholds
    kegg_lists = kegg_gene_lists(config, gene_lists, store, provenance, force)
    collection = load_kegg_collection(config, client, store, provenance, force)

    result = run_ora(
        kegg_lists.significant_ids,
        collection,
        universe=kegg_lists.universe,
        p_adjust_method=thresholds.p_adjust_method,
        pvalue_cutoff=thresholds.pvalue_cutoff,
        qvalue_cutoff=thresholds.qvalue_cutoff,
        min_gs_size=thresholds.min_gs_size,
        max_gs_size=thresholds.max_gs_size,
    )
    result = replace(
        result,
        gene_symbols=kegg_gene_symbols(config, gene_lists, gene_symbols, store, provenance),
    )

    store.save_dataframe(result.table, KEGG_RESULT_TABLE, description=f"{result.source} ORA")
    provenance.record_step("kegg_enrichment", {
        "input_count": len(kegg_lists.significant_ids),
        "output_count": result.significant().height,
        "criteria": (
            f"pvalue <= {thresholds.pvalue_cutoff}, p.adjust ({thresholds.p_adjust_method}) "
            f"<= {thresholds.pvalue_cutoff}, qvalue <= {thresholds.qvalue_cutoff}"
        ),
        "tested_terms": result.table.height,
    })

    return result, kegg_lists


def run_gsea_analysis(
    config: PipelineConfig,
    ranked: pl.DataFrame,
    collection: GeneSetCollection,
    store: PipelineStore,
    provenance: ProvenanceTracker,
) -> GSEAResult:
    """Preranked GSEA of the full fold-change list over one collection."""
    thresholds = config.thresholds
    result = run_gsea(
        ranked,
        collection,
        min_size=thresholds.min_gs_size,
        max_size=thresholds.max_gs_size,
        permutation_num=config.gsea.permutation_num,
        seed=config.gsea.seed,
        pvalue_cutoff=thresholds.pvalue_cutoff,
    )

    table = checkpoint_name("gsea", collection.name)
    store.save_dataframe(result.table, table, description=f"{collection.name} preranked GSEA")
    provenance.record_step(table, {
        "input_count": ranked.height,
        "output_count": result.significant().height,
        "criteria": f"FDR <= {thresholds.pvalue_cutoff}, {config.gsea.permutation_num} permutations",
        "tested_sets": result.table.height,
    })

    return result


def run_pathview(
    config: PipelineConfig,
    kegg_lists: GeneLists,
    client: KEGGClient,
    output_dir: Path,
    provenance: ProvenanceTracker,
    pathway_ids: list[str] | None = None,
) -> dict[str, dict[str, Path]]:
    """
    Draw every requested pathway coloured by KEGG-keyed fold changes.

    A pathway that fails to download or parse is logged and skipped.

    Returns:
        pathway id -> {"png", "pdf", "tsv"} paths
    """
    pathview = config.pathview
    pathway_ids = pathway_ids or pathview.pathway_ids
    gene_data = kegg_lists.fold_changes
    rendered: dict[str, dict[str, Path]] = {}

    for pathway_id in pathway_ids:
        try:
            rendered[pathway_id] = render_pathway(
                pathway_id,
                gene_data,
                client,
                output_dir,
                organism=config.annotation.kegg_organism,
                limit=pathview.limit,
                node_sum=pathview.node_sum,
                dpi=config.plots.dpi,
            )
        except (ValueError, requests.RequestException) as e:
            logger.warning("pathview_failed", pathway_id=pathway_id, error=str(e))

    provenance.record_step("pathview", {
        "input_count": len(pathway_ids),
        "output_count": len(rendered),
        "criteria": f"limit={pathview.limit}, node_sum={pathview.node_sum}",
    })

    return rendered


def _record_outputs(provenance: ProvenanceTracker | None, paths: dict[str, Path]) -> None:
    if provenance is None:
        return
    for path in paths.values():
        provenance.record_output(path)


def export_enrichment(
    config: PipelineConfig,
    result: EnrichmentResult,
    name: str,
    output_dir: Path,
    fold_changes: dict[str, float] | None = None,
    provenance: ProvenanceTracker | None = None,
) -> dict[str, Path]:
    """Write the result table and every ORA plot; returns all output paths."""
    paths = write_enrichment_output(
        result.table,
        output_dir,
        filename_base=f"{name}_enrichment",
        significant_count=result.significant().height,
        metadata=result.params,
    )
    paths.update(generate_all_plots(
        result,
        output_dir / "plots",
        prefix=name,
        fold_changes=fold_changes,
        plot_config=config.plots,
    ))
    _record_outputs(provenance, paths)
    return paths


def export_gsea(
    config: PipelineConfig,
    result: GSEAResult,
    name: str,
    output_dir: Path,
    provenance: ProvenanceTracker | None = None,
) -> dict[str, Path]:
    """Write a GSEA table and its dot plot (skipped with a warning when empty)."""
    paths = write_enrichment_output(
        result.table,
        output_dir,
        filename_base=name,
        significant_count=result.significant().height,
        metadata={"source": result.source, "seed": result.seed},
    )
    try:
        paths["dotplot"] = plot_gsea_dotplot(
            result.table,
            output_dir / "plots" / f"{name}_dotplot.png",
            config.plots.show_category,
            config.plots.dpi,
        )
    except ValueError as e:
        logger.warning("gsea_dotplot_skipped", name=name, error=str(e))
    _record_outputs(provenance, paths)
    return paths
