"""Differential-expression input: loading and threshold filtering."""

from deg_enrichment.deg.load import load_de_results
from deg_enrichment.deg.models import (
    DE_TABLE_NAME,
    FOLD_CHANGE_COL,
    GENE_ID_COL,
    PADJ_COL,
    GeneLists,
)
from deg_enrichment.deg.transform import (
    build_ranked_list,
    filter_significant,
    fold_change_map,
    prepare_gene_lists,
)

__all__ = [
    "load_de_results",
    "build_ranked_list",
    "filter_significant",
    "fold_change_map",
    "prepare_gene_lists",
    "GeneLists",
    "DE_TABLE_NAME",
    "GENE_ID_COL",
    "FOLD_CHANGE_COL",
    "PADJ_COL",
]
