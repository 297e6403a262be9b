"""Over-representation and gene-set enrichment analysis."""

from deg_enrichment.enrichment.gsea import normalize_gsea_table, run_gsea
from deg_enrichment.enrichment.models import EnrichmentResult, GSEAResult
from deg_enrichment.enrichment.ora import run_ora
from deg_enrichment.enrichment.stats import (
    hypergeometric_pvalues,
    p_adjust,
    storey_qvalues,
)

__all__ = [
    "EnrichmentResult",
    "GSEAResult",
    "hypergeometric_pvalues",
    "normalize_gsea_table",
    "p_adjust",
    "run_gsea",
    "run_ora",
    "storey_qvalues",
]
