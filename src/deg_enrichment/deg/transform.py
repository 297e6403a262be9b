"""Derive ranked and significant gene lists from DE results."""

import polars as pl
import structlog

from deg_enrichment.deg.models import (
    FOLD_CHANGE_COL,
    GENE_ID_COL,
    PADJ_COL,
    GeneLists,
)

logger = structlog.get_logger()


def build_ranked_list(df: pl.DataFrame) -> pl.DataFrame:
    """Gene -> log2 fold change, sorted decreasing.

    Rows without a fold change or gene id are dropped; for duplicate gene ids
    the first occurrence in file order wins. Ties in fold change keep file order.

    Args:
        df: DataFrame from load_de_results

    Returns:
        DataFrame with gene_id and log2_fold_change
    """
    ranked = (
        df.select([GENE_ID_COL, FOLD_CHANGE_COL])
        .drop_nulls()
        .filter(pl.col(GENE_ID_COL) != "")
        .unique(subset=GENE_ID_COL, keep="first", maintain_order=True)
        .sort(FOLD_CHANGE_COL, descending=True, maintain_order=True)
    )

    dropped = df.height - ranked.height
    if dropped:
        logger.info("build_ranked_list_dropped", dropped=dropped, kept=ranked.height)

    return ranked


def filter_significant(
    df: pl.DataFrame,
    padj_cutoff: float = 0.05,
    log2fc_cutoff: float = 2.0,
) -> pl.DataFrame:
    """Keep genes with padj < padj_cutoff and |log2FC| > log2fc_cutoff.

    Both comparisons are strict. Genes with a NULL padj or fold change are
    never significant.

    Args:
        df: DataFrame from load_de_results
        padj_cutoff: Adjusted p-value threshold
        log2fc_cutoff: Absolute log2 fold change threshold

    Returns:
        DataFrame with gene_id, log2_fold_change and padj, sorted by fold change
        descending
    """
    significant = (
        df.select([GENE_ID_COL, FOLD_CHANGE_COL, PADJ_COL])
        .drop_nulls()
        .filter(
            (pl.col(PADJ_COL) < padj_cutoff)
            & (pl.col(FOLD_CHANGE_COL).abs() > log2fc_cutoff)
        )
        .unique(subset=GENE_ID_COL, keep="first", maintain_order=True)
        .sort(FOLD_CHANGE_COL, descending=True, maintain_order=True)
    )

    up = significant.filter(pl.col(FOLD_CHANGE_COL) > 0).height
    logger.info(
        "filter_significant_complete",
        input_count=df.height,
        significant=significant.height,
        up=up,
        down=significant.height - up,
        padj_cutoff=padj_cutoff,
        log2fc_cutoff=log2fc_cutoff,
    )

    if significant.height == 0:
        logger.warning(
            "filter_significant_empty",
            message="No genes pass the significance thresholds",
        )

    return significant


def prepare_gene_lists(
    df: pl.DataFrame,
    padj_cutoff: float = 0.05,
    log2fc_cutoff: float = 2.0,
) -> GeneLists:
    """Build the ranked list, significant subset and universe in one pass."""
    ranked = build_ranked_list(df)
    significant = filter_significant(df, padj_cutoff, log2fc_cutoff)

    return GeneLists(
        ranked=ranked,
        significant=significant,
        universe=ranked[GENE_ID_COL].to_list(),
        padj_cutoff=padj_cutoff,
        log2fc_cutoff=log2fc_cutoff,
    )


def fold_change_map(df: pl.DataFrame) -> dict[str, float]:
    """Map gene id -> log2 fold change for a ranked or significant table."""
    return dict(zip(df[GENE_ID_COL].to_list(), df[FOLD_CHANGE_COL].to_list()))
