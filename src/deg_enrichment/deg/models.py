"""Data models for differential-expression input."""

from dataclasses import dataclass, field

import polars as pl

# Canonical column names used throughout the pipeline
GENE_ID_COL = "gene_id"
FOLD_CHANGE_COL = "log2_fold_change"
PADJ_COL = "padj"

DE_TABLE_NAME = "de_results"


@dataclass
class GeneLists:
    """Gene lists derived from one DE result table.

    Attributes:
        ranked: gene_id / log2_fold_change for every gene with a fold change,
            sorted by fold change descending (the GSEA and cnet input)
        significant: genes passing the padj and |log2FC| thresholds
        universe: every gene id in ranked (background for ORA)
        padj_cutoff: threshold used to build significant
        log2fc_cutoff: threshold used to build significant
    """

    ranked: pl.DataFrame
    significant: pl.DataFrame
    universe: list[str] = field(default_factory=list)
    padj_cutoff: float = 0.05
    log2fc_cutoff: float = 2.0

    @property
    def significant_ids(self) -> list[str]:
        return self.significant[GENE_ID_COL].to_list()

    @property
    def fold_changes(self) -> dict[str, float]:
        return dict(zip(self.ranked[GENE_ID_COL], self.ranked[FOLD_CHANGE_COL]))
