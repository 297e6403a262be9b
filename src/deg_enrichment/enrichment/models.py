"""Result containers for enrichment analyses."""

from dataclasses import dataclass, field, replace

import polars as pl

GENE_SEPARATOR = "/"

ORA_SCHEMA = {
    "term_id": pl.Utf8,
    "description": pl.Utf8,
    "category": pl.Utf8,
    "gene_ratio": pl.Utf8,
    "bg_ratio": pl.Utf8,
    "gene_ratio_value": pl.Float64,
    "pvalue": pl.Float64,
    "p_adjust": pl.Float64,
    "qvalue": pl.Float64,
    "gene_ids": pl.Utf8,
    "count": pl.Int64,
}

GSEA_SCHEMA = {
    "term_id": pl.Utf8,
    "description": pl.Utf8,
    "set_size": pl.Int64,
    "es": pl.Float64,
    "nes": pl.Float64,
    "pvalue": pl.Float64,
    "fdr": pl.Float64,
    "fwer": pl.Float64,
    "leading_edge": pl.Utf8,
    "count": pl.Int64,
}


def split_genes(value: str | None) -> list[str]:
    if not value:
        return []
    return value.split(GENE_SEPARATOR)


@dataclass
class EnrichmentResult:
    """Over-representation result for one gene-set source.

    Attributes:
        table: One row per tested term (columns in ORA_SCHEMA), sorted by pvalue
        source: Gene-set collection name (e.g. "GO:BP", "KEGG:hsa")
        query_size: Annotated query genes (n in gene_ratio k/n)
        universe_size: Annotated universe genes (N in bg_ratio M/N)
        pvalue_cutoff: Cutoff applied to pvalue and p_adjust
        qvalue_cutoff: Cutoff applied to qvalue
        p_adjust_method: R-style adjustment method name
        gene_symbols: gene id -> symbol used by set_readable
        readable: True once gene_ids hold symbols instead of ids
    """

    table: pl.DataFrame
    source: str
    query_size: int = 0
    universe_size: int = 0
    pvalue_cutoff: float = 0.05
    qvalue_cutoff: float = 0.2
    p_adjust_method: str = "BH"
    gene_symbols: dict[str, str] = field(default_factory=dict)
    readable: bool = False

    @classmethod
    def empty(cls, source: str, **kwargs) -> "EnrichmentResult":
        return cls(table=pl.DataFrame(schema=ORA_SCHEMA), source=source, **kwargs)

    @property
    def is_empty(self) -> bool:
        return self.table.height == 0

    @property
    def params(self) -> dict:
        return {
            "source": self.source,
            "query_size": self.query_size,
            "universe_size": self.universe_size,
            "pvalue_cutoff": self.pvalue_cutoff,
            "qvalue_cutoff": self.qvalue_cutoff,
            "p_adjust_method": self.p_adjust_method,
            "readable": self.readable,
        }

    def significant(self) -> pl.DataFrame:
        """Terms passing the pvalue, p_adjust and qvalue cutoffs (inclusive).

        The qvalue cutoff is skipped when any q-value is NULL (pi0 could not
        be estimated).
        """
        df = self.table.filter(
            (pl.col("pvalue") <= self.pvalue_cutoff)
            & (pl.col("p_adjust") <= self.pvalue_cutoff)
        )
        if self.table["qvalue"].null_count() == 0:
            df = df.filter(pl.col("qvalue") <= self.qvalue_cutoff)
        return df

    def top(self, n: int, significant_only: bool = True) -> pl.DataFrame:
        """First n terms by pvalue."""
        df = self.significant() if significant_only else self.table
        return df.sort(["pvalue", "term_id"]).head(n)

    def gene_sets(self, significant_only: bool = True) -> dict[str, list[str]]:
        """term_id -> hit genes, in query order."""
        df = self.significant() if significant_only else self.table
        return {
            row["term_id"]: split_genes(row["gene_ids"])
            for row in df.select(["term_id", "gene_ids"]).iter_rows(named=True)
        }

    def set_readable(self, symbols: dict[str, str] | None = None) -> "EnrichmentResult":
        """Return a copy whose gene_ids lists symbols instead of ids.

        IDs without a symbol are kept as they are. Calling it on an already
        readable result returns the result unchanged.
        """
        if self.readable:
            return self
        symbols = symbols if symbols is not None else self.gene_symbols
        if not symbols:
            return self

        table = self.table.with_columns(
            pl.col("gene_ids").map_elements(
                lambda value: GENE_SEPARATOR.join(
                    symbols.get(gene, gene) for gene in split_genes(value)
                ),
                return_dtype=pl.Utf8,
            )
        )
        return replace(self, table=table, gene_symbols=symbols, readable=True)

    def label_for(self, gene_id: str) -> str:
        """Display label for a gene id in this result's namespace."""
        if self.readable:
            return gene_id
        return self.gene_symbols.get(gene_id, gene_id)


@dataclass
class GSEAResult:
    """Preranked GSEA result for one gene-set source.

    Attributes:
        table: One row per tested term (columns in GSEA_SCHEMA), sorted by pvalue
        source: Gene-set collection name
        ranked_size: Number of genes in the ranked list
        pvalue_cutoff: Cutoff applied to the FDR q-value
        permutation_num: Permutations used by gseapy
        seed: Random seed passed to gseapy
    """

    table: pl.DataFrame
    source: str
    ranked_size: int = 0
    pvalue_cutoff: float = 0.05
    permutation_num: int = 1000
    seed: int = 42

    @property
    def is_empty(self) -> bool:
        return self.table.height == 0

    def significant(self) -> pl.DataFrame:
        return self.table.filter(pl.col("fdr") <= self.pvalue_cutoff)
