"""Pydantic models for pipeline configuration."""

import hashlib
import json
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

# Gene identifier namespaces understood by the ID translator
KEY_TYPES = ("ENSEMBL", "ENTREZID", "SYMBOL", "UNIPROT")

# p-value adjustment methods, named as in R's p.adjust
P_ADJUST_METHODS = ("BH", "fdr", "BY", "bonferroni", "holm", "hochberg", "hommel", "none")

GO_ONTOLOGIES = ("BP", "MF", "CC", "ALL")

NODE_SUM_METHODS = ("sum", "mean", "median", "max", "min")


class DEColumns(BaseModel):
    """Column names in the differential-expression CSV."""

    gene_id: str = Field(
        default="gene_id",
        description="Column holding the gene identifier",
    )
    log2_fold_change: str = Field(
        default="log2FoldChange",
        description="Column holding the log2 fold change",
    )
    padj: str = Field(
        default="padj",
        description="Column holding the adjusted p-value",
    )


class DEInputConfig(BaseModel):
    """Differential-expression input settings."""

    path: Path | None = Field(
        default=None,
        description="Default DE results CSV (can be overridden on the CLI)",
    )
    columns: DEColumns = Field(default_factory=DEColumns)
    gene_id_type: str = Field(
        default="ENSEMBL",
        description="Namespace of the identifiers in the gene column",
    )

    @field_validator("gene_id_type")
    @classmethod
    def check_key_type(cls, v: str) -> str:
        v = v.upper()
        if v not in KEY_TYPES:
            raise ValueError(f"gene_id_type must be one of {KEY_TYPES}, got {v!r}")
        return v


class ThresholdConfig(BaseModel):
    """Significance and gene-set size thresholds."""

    padj_cutoff: float = Field(
        default=0.05,
        gt=0.0,
        le=1.0,
        description="Adjusted p-value cutoff for significant DE genes",
    )
    log2fc_cutoff: float = Field(
        default=2.0,
        ge=0.0,
        description="Absolute log2 fold change cutoff for significant DE genes",
    )
    pvalue_cutoff: float = Field(
        default=0.05,
        gt=0.0,
        le=1.0,
        description="Enrichment p-value and adjusted p-value cutoff",
    )
    qvalue_cutoff: float = Field(
        default=0.10,
        gt=0.0,
        le=1.0,
        description="Enrichment q-value cutoff",
    )
    p_adjust_method: str = Field(
        default="BH",
        description="Multiple testing correction (R p.adjust naming)",
    )
    min_gs_size: int = Field(
        default=10,
        ge=1,
        description="Minimum annotated gene-set size tested",
    )
    max_gs_size: int = Field(
        default=500,
        ge=1,
        description="Maximum annotated gene-set size tested",
    )

    @field_validator("p_adjust_method")
    @classmethod
    def check_adjust_method(cls, v: str) -> str:
        if v not in P_ADJUST_METHODS:
            raise ValueError(f"p_adjust_method must be one of {P_ADJUST_METHODS}, got {v!r}")
        return v

    @model_validator(mode="after")
    def check_size_bounds(self) -> "ThresholdConfig":
        if self.max_gs_size < self.min_gs_size:
            raise ValueError(
                f"max_gs_size ({self.max_gs_size}) must be >= min_gs_size ({self.min_gs_size})"
            )
        return self


class AnnotationConfig(BaseModel):
    """Annotation sources for GO and KEGG."""

    species: int = Field(
        default=9606,
        description="NCBI taxonomy id used for mygene queries",
    )
    ontology: str = Field(
        default="BP",
        description="GO sub-ontology: BP, MF, CC or ALL",
    )
    kegg_organism: str = Field(
        default="hsa",
        description="KEGG organism code",
    )
    kegg_key_type: str = Field(
        default="ENTREZID",
        description="Namespace of KEGG gene identifiers for the organism",
    )
    gmt_path: Path | None = Field(
        default=None,
        description="Optional GMT file replacing GO annotations fetched from mygene",
    )

    @field_validator("ontology")
    @classmethod
    def check_ontology(cls, v: str) -> str:
        v = v.upper()
        if v not in GO_ONTOLOGIES:
            raise ValueError(f"ontology must be one of {GO_ONTOLOGIES}, got {v!r}")
        return v

    @field_validator("kegg_key_type")
    @classmethod
    def check_kegg_key_type(cls, v: str) -> str:
        v = v.upper()
        if v not in KEY_TYPES:
            raise ValueError(f"kegg_key_type must be one of {KEY_TYPES}, got {v!r}")
        return v


class GSEAConfig(BaseModel):
    """Settings for preranked gene-set enrichment analysis."""

    permutation_num: int = Field(default=1000, ge=10)
    seed: int = Field(default=42)


class PlotConfig(BaseModel):
    """Plot rendering options."""

    show_category: int = Field(default=20, ge=1)
    cnet_categories: int = Field(default=5, ge=1)
    upset_terms: int = Field(default=10, ge=1)
    emap_min_edge: float = Field(default=0.2, ge=0.0, le=1.0)
    wordcloud_max_words: int = Field(default=25, ge=1)
    dpi: int = Field(default=300, ge=50)


class PathviewConfig(BaseModel):
    """KEGG pathway diagram rendering options."""

    pathway_ids: list[str] = Field(
        default_factory=list,
        description="Pathways to draw, with or without organism prefix",
    )
    limit: float = Field(
        default=1.0,
        gt=0.0,
        description="Fold change mapped to the extreme colours",
    )
    node_sum: str = Field(
        default="sum",
        description="How several genes on one node are combined",
    )

    @field_validator("node_sum")
    @classmethod
    def check_node_sum(cls, v: str) -> str:
        if v not in NODE_SUM_METHODS:
            raise ValueError(f"node_sum must be one of {NODE_SUM_METHODS}, got {v!r}")
        return v


class APIConfig(BaseModel):
    """Configuration for API clients."""

    rate_limit_per_second: int = Field(
        default=5,
        ge=1,
        description="Maximum API requests per second",
    )
    max_retries: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum retry attempts for failed requests",
    )
    cache_ttl_seconds: int = Field(
        default=86400,
        ge=0,
        description="Cache time-to-live in seconds (0 = infinite)",
    )
    timeout_seconds: int = Field(
        default=30,
        ge=1,
        description="Request timeout in seconds",
    )


class PipelineConfig(BaseModel):
    """Main pipeline configuration."""

    data_dir: Path = Field(
        ...,
        description="Directory for analysis outputs",
    )
    cache_dir: Path = Field(
        ...,
        description="Directory for API response caching",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB database file",
    )
    input: DEInputConfig = Field(default_factory=DEInputConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    annotation: AnnotationConfig = Field(default_factory=AnnotationConfig)
    gsea: GSEAConfig = Field(default_factory=GSEAConfig)
    plots: PlotConfig = Field(default_factory=PlotConfig)
    pathview: PathviewConfig = Field(default_factory=PathviewConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    @field_validator("data_dir", "cache_dir")
    @classmethod
    def create_directory(cls, v: Path) -> Path:
        """Create directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    def config_hash(self) -> str:
        """
        Compute SHA-256 hash of the configuration.

        Returns a deterministic hash based on all config values,
        useful for tracking config changes between analysis runs.
        """
        config_dict = self.model_dump(mode="python")
        config_json = json.dumps(
            config_dict,
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()
