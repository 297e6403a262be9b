"""Gene-set collection model shared by GO, KEGG and GMT sources."""

from dataclasses import dataclass, field

import polars as pl

TERM_ID_COL = "term_id"
DESCRIPTION_COL = "description"
CATEGORY_COL = "category"

TERM2GENE_SCHEMA = {TERM_ID_COL: pl.Utf8, "gene_id": pl.Utf8}
TERM2NAME_SCHEMA = {TERM_ID_COL: pl.Utf8, DESCRIPTION_COL: pl.Utf8, CATEGORY_COL: pl.Utf8}


@dataclass
class GeneSetCollection:
    """Annotation terms and their member genes.

    Attributes:
        name: Source label, e.g. "GO:BP", "KEGG:hsa" or a GMT file stem
        term_to_gene: DataFrame with term_id and gene_id (one row per membership)
        term_to_name: DataFrame with term_id, description and category
            (GO ontology for GO terms, NULL otherwise)
        gene_symbols: gene_id -> readable symbol, when the source provides one
    """

    name: str
    term_to_gene: pl.DataFrame
    term_to_name: pl.DataFrame
    gene_symbols: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.term_to_gene = (
            self.term_to_gene.select(list(TERM2GENE_SCHEMA))
            .cast(TERM2GENE_SCHEMA)
            .drop_nulls()
            .unique(maintain_order=True)
        )
        if CATEGORY_COL not in self.term_to_name.columns:
            self.term_to_name = self.term_to_name.with_columns(
                pl.lit(None, dtype=pl.Utf8).alias(CATEGORY_COL)
            )
        self.term_to_name = (
            self.term_to_name.select(list(TERM2NAME_SCHEMA))
            .cast(TERM2NAME_SCHEMA)
            .unique(subset=TERM_ID_COL, keep="first", maintain_order=True)
        )

    @property
    def n_terms(self) -> int:
        return self.term_to_gene[TERM_ID_COL].n_unique()

    @property
    def genes(self) -> set[str]:
        """All genes carrying at least one annotation."""
        return set(self.term_to_gene["gene_id"].to_list())

    def gene_sets(self) -> dict[str, list[str]]:
        """term_id -> sorted member genes."""
        grouped = (
            self.term_to_gene.group_by(TERM_ID_COL, maintain_order=True)
            .agg(pl.col("gene_id").sort())
        )
        return dict(zip(grouped[TERM_ID_COL].to_list(), grouped["gene_id"].to_list()))

    def descriptions(self) -> dict[str, str]:
        """term_id -> description (falls back to the id when unnamed)."""
        names = dict(zip(
            self.term_to_name[TERM_ID_COL].to_list(),
            self.term_to_name[DESCRIPTION_COL].to_list(),
        ))
        return {
            term: names.get(term) or term
            for term in self.term_to_gene[TERM_ID_COL].unique(maintain_order=True).to_list()
        }

    def categories(self) -> dict[str, str | None]:
        return dict(zip(
            self.term_to_name[TERM_ID_COL].to_list(),
            self.term_to_name[CATEGORY_COL].to_list(),
        ))

    def restrict(self, universe: list[str] | set[str]) -> "GeneSetCollection":
        """Drop memberships of genes outside universe."""
        universe = list(universe)
        return GeneSetCollection(
            name=self.name,
            term_to_gene=self.term_to_gene.filter(pl.col("gene_id").is_in(universe)),
            term_to_name=self.term_to_name,
            gene_symbols=self.gene_symbols,
        )

    def filter_category(self, category: str) -> "GeneSetCollection":
        """Keep terms of one category (GO ontology); "ALL" keeps everything."""
        if category == "ALL":
            return self
        terms = self.term_to_name.filter(pl.col(CATEGORY_COL) == category)[TERM_ID_COL].to_list()
        return GeneSetCollection(
            name=f"{self.name.split(':')[0]}:{category}",
            term_to_gene=self.term_to_gene.filter(pl.col(TERM_ID_COL).is_in(terms)),
            term_to_name=self.term_to_name.filter(pl.col(TERM_ID_COL).is_in(terms)),
            gene_symbols=self.gene_symbols,
        )

    def to_frame(self) -> pl.DataFrame:
        """Long table for DuckDB storage: one row per term/gene membership."""
        symbols = pl.DataFrame(
            {
                "gene_id": list(self.gene_symbols.keys()),
                "gene_symbol": list(self.gene_symbols.values()),
            },
            schema={"gene_id": pl.Utf8, "gene_symbol": pl.Utf8},
        )
        return (
            self.term_to_gene
            .join(self.term_to_name, on=TERM_ID_COL, how="left")
            .join(symbols, on="gene_id", how="left")
        )

    @classmethod
    def from_frame(cls, name: str, df: pl.DataFrame) -> "GeneSetCollection":
        """Rebuild a collection from to_frame() output."""
        symbols = (
            df.select(["gene_id", "gene_symbol"])
            .drop_nulls()
            .unique(subset="gene_id", keep="first")
        )
        return cls(
            name=name,
            term_to_gene=df.select([TERM_ID_COL, "gene_id"]),
            term_to_name=df.select([TERM_ID_COL, DESCRIPTION_COL, CATEGORY_COL]),
            gene_symbols=dict(zip(symbols["gene_id"].to_list(), symbols["gene_symbol"].to_list())),
        )
