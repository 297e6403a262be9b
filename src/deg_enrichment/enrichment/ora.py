"""Over-representation analysis (hypergeometric test) over a gene-set collection."""

import numpy as np
import polars as pl
import structlog

from deg_enrichment.annotation.models import GeneSetCollection
from deg_enrichment.enrichment.models import GENE_SEPARATOR, ORA_SCHEMA, EnrichmentResult
from deg_enrichment.enrichment.stats import (
    hypergeometric_pvalues,
    p_adjust,
    storey_qvalues,
)

logger = structlog.get_logger()


def run_ora(
    genes: list[str],
    collection: GeneSetCollection,
    universe: list[str] | None = None,
    p_adjust_method: str = "BH",
    pvalue_cutoff: float = 0.05,
    qvalue_cutoff: float = 0.2,
    min_gs_size: int = 10,
    max_gs_size: int = 500,
) -> EnrichmentResult:
    """Test every term of a collection for over-representation in genes.

    Counting follows the usual ORA convention:
    - the universe is restricted to genes with at least one annotation (N)
    - only annotated query genes are counted (n)
    - a term is tested when its size within the universe (M) lies in
      [min_gs_size, max_gs_size] and at least one query gene hits it (k)
    - pvalue = P(X >= k), X ~ Hypergeometric(N, M, n)

    Args:
        genes: Query genes (e.g. significant DE genes)
        collection: Term memberships in the same ID namespace as genes
        universe: Background genes; None uses every annotated gene
        p_adjust_method: R-style method name (BH, bonferroni, ...)
        pvalue_cutoff: Stored on the result, applied by significant()
        qvalue_cutoff: Stored on the result, applied by significant()
        min_gs_size: Smallest term size tested
        max_gs_size: Largest term size tested

    Returns:
        EnrichmentResult with every tested term, sorted by pvalue then term_id
    """
    result_kwargs = dict(
        pvalue_cutoff=pvalue_cutoff,
        qvalue_cutoff=qvalue_cutoff,
        p_adjust_method=p_adjust_method,
        gene_symbols=collection.gene_symbols,
    )

    if universe is not None:
        collection = collection.restrict(universe)

    annotated = collection.genes
    query = [g for g in dict.fromkeys(genes) if g in annotated]

    logger.info(
        "run_ora_start",
        source=collection.name,
        input_genes=len(genes),
        annotated_query=len(query),
        annotated_universe=len(annotated),
        term_count=collection.n_terms,
    )

    if not query:
        logger.warning(
            "run_ora_no_annotated_genes",
            source=collection.name,
            message="None of the query genes carry an annotation",
        )
        return EnrichmentResult.empty(collection.name, universe_size=len(annotated), **result_kwargs)

    query_size = len(query)
    universe_size = len(annotated)
    query_order = pl.DataFrame(
        {"gene_id": query, "_order": list(range(query_size))},
        schema={"gene_id": pl.Utf8, "_order": pl.Int64},
    )

    set_sizes = collection.term_to_gene.group_by("term_id").agg(pl.len().alias("set_size"))

    hits = (
        collection.term_to_gene
        .join(query_order, on="gene_id", how="inner")
        .sort("_order")
        .group_by("term_id", maintain_order=True)
        .agg(
            pl.col("gene_id").str.join(GENE_SEPARATOR).alias("gene_ids"),
            pl.len().alias("count"),
        )
        .join(set_sizes, on="term_id", how="left")
        .filter(
            (pl.col("set_size") >= min_gs_size)
            & (pl.col("set_size") <= max_gs_size)
        )
    )

    if hits.height == 0:
        logger.warning(
            "run_ora_no_testable_terms",
            source=collection.name,
            min_gs_size=min_gs_size,
            max_gs_size=max_gs_size,
        )
        return EnrichmentResult.empty(
            collection.name,
            query_size=query_size,
            universe_size=universe_size,
            **result_kwargs,
        )

    pvalues = hypergeometric_pvalues(
        hits["count"].to_numpy(),
        hits["set_size"].to_numpy(),
        query_size,
        universe_size,
    )
    adjusted = p_adjust(pvalues, p_adjust_method)
    qvalues = storey_qvalues(pvalues)

    table = (
        hits.with_columns(
            pl.Series("pvalue", pvalues, dtype=pl.Float64),
            pl.Series("p_adjust", adjusted, dtype=pl.Float64),
            pl.Series("qvalue", qvalues, dtype=pl.Float64).fill_nan(None),
        )
        .join(collection.term_to_name, on="term_id", how="left")
        .with_columns(
            pl.coalesce(pl.col("description"), pl.col("term_id")).alias("description"),
            pl.format("{}/{}", pl.col("count"), pl.lit(query_size)).alias("gene_ratio"),
            pl.format("{}/{}", pl.col("set_size"), pl.lit(universe_size)).alias("bg_ratio"),
            (pl.col("count") / query_size).alias("gene_ratio_value"),
        )
        .select([pl.col(name).cast(dtype) for name, dtype in ORA_SCHEMA.items()])
        .sort(["pvalue", "term_id"])
    )

    result = EnrichmentResult(
        table=table,
        source=collection.name,
        query_size=query_size,
        universe_size=universe_size,
        **result_kwargs,
    )

    logger.info(
        "run_ora_complete",
        source=collection.name,
        tested_terms=table.height,
        significant_terms=result.significant().height,
        min_pvalue=float(np.min(pvalues)),
    )

    return result
