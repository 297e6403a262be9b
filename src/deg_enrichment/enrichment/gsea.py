"""Preranked gene-set enrichment analysis via gseapy."""

import gseapy as gp
import numpy as np
import pandas as pd
import polars as pl
import structlog

from deg_enrichment.annotation.models import GeneSetCollection
from deg_enrichment.deg.models import FOLD_CHANGE_COL, GENE_ID_COL
from deg_enrichment.enrichment.models import GENE_SEPARATOR, GSEA_SCHEMA, GSEAResult

logger = structlog.get_logger()


def _set_size(tag: object) -> int | None:
    """Set size from gseapy's "Tag %" column ("hits/size")."""
    if not isinstance(tag, str) or "/" not in tag:
        return None
    try:
        return int(tag.split("/")[-1])
    except ValueError:
        return None


def normalize_gsea_table(res2d: pd.DataFrame, descriptions: dict[str, str]) -> pl.DataFrame:
    """Convert gseapy's res2d into the GSEA_SCHEMA column layout.

    Leading-edge genes are re-joined with "/" so the GSEA table matches the
    ORA gene_ids convention.
    """
    if res2d is None or res2d.empty:
        return pl.DataFrame(schema=GSEA_SCHEMA)

    rows = []
    for record in res2d.to_dict(orient="records"):
        term = str(record.get("Term", ""))
        lead = record.get("Lead_genes") or ""
        lead_genes = [g for g in str(lead).split(";") if g]
        rows.append({
            "term_id": term,
            "description": descriptions.get(term, term),
            "set_size": _set_size(record.get("Tag %")),
            "es": float(record.get("ES", np.nan)),
            "nes": float(record.get("NES", np.nan)),
            "pvalue": float(record.get("NOM p-val", np.nan)),
            "fdr": float(record.get("FDR q-val", np.nan)),
            "fwer": float(record.get("FWER p-val", np.nan)),
            "leading_edge": GENE_SEPARATOR.join(lead_genes),
            "count": len(lead_genes),
        })

    return pl.DataFrame(rows, schema=GSEA_SCHEMA).sort(["pvalue", "term_id"])


def run_gsea(
    ranked: pl.DataFrame,
    collection: GeneSetCollection,
    min_size: int = 10,
    max_size: int = 500,
    permutation_num: int = 1000,
    seed: int = 42,
    pvalue_cutoff: float = 0.05,
) -> GSEAResult:
    """Run gseapy prerank over a ranked fold-change list.

    The series handed to prerank is ordered by fold change, then gene id,
    with no jitter. gseapy re-sorts it by score itself, so the order of
    tied genes inside its running sum is up to gseapy.

    Args:
        ranked: DataFrame with gene_id and log2_fold_change
        collection: Gene sets in the same namespace as ranked.gene_id
        min_size: Smallest gene set tested
        max_size: Largest gene set tested
        permutation_num: Number of gene-set permutations
        seed: Random seed for the permutations
        pvalue_cutoff: FDR cutoff used by GSEAResult.significant()

    Returns:
        GSEAResult with one row per tested gene set

    Raises:
        ValueError: If the ranked list or the collection is empty
    """
    ranked = (
        ranked.select([GENE_ID_COL, FOLD_CHANGE_COL])
        .drop_nulls()
        .filter(pl.col(FOLD_CHANGE_COL).is_finite())
        .unique(subset=GENE_ID_COL, keep="first", maintain_order=True)
        .sort([FOLD_CHANGE_COL, GENE_ID_COL], descending=[True, False])
    )
    if ranked.height == 0:
        raise ValueError("Ranked gene list is empty")

    gene_sets = collection.restrict(ranked[GENE_ID_COL].to_list()).gene_sets()
    if not gene_sets:
        raise ValueError(f"No gene set of {collection.name} overlaps the ranked list")

    logger.info(
        "run_gsea_start",
        source=collection.name,
        ranked_genes=ranked.height,
        gene_sets=len(gene_sets),
        permutation_num=permutation_num,
        seed=seed,
    )

    rnk = pd.Series(
        ranked[FOLD_CHANGE_COL].to_list(),
        index=ranked[GENE_ID_COL].to_list(),
        dtype=float,
    )

    pre_res = gp.prerank(
        rnk=rnk,
        gene_sets=gene_sets,
        min_size=min_size,
        max_size=max_size,
        permutation_num=permutation_num,
        outdir=None,
        no_plot=True,
        seed=seed,
        verbose=False,
    )

    table = normalize_gsea_table(pre_res.res2d, collection.descriptions())
    result = GSEAResult(
        table=table,
        source=collection.name,
        ranked_size=ranked.height,
        pvalue_cutoff=pvalue_cutoff,
        permutation_num=permutation_num,
        seed=seed,
    )

    logger.info(
        "run_gsea_complete",
        source=collection.name,
        tested_sets=table.height,
        significant_sets=result.significant().height,
    )

    return result
