"""Gene ID translation module.

Provides batch ID translation via mygene (the bitr step), re-keying of
fold-change lists, and validation gates for quality control.
"""

from deg_enrichment.gene_mapping.mapper import (
    KEY_TYPE_SCOPES,
    GeneMapper,
    MappingReport,
    attach_fold_changes,
    deduplicate_mapping,
)
from deg_enrichment.gene_mapping.validator import (
    MappingValidator,
    ValidationResult,
    validate_gene_ids,
)

__all__ = [
    "GeneMapper",
    "MappingReport",
    "KEY_TYPE_SCOPES",
    "attach_fold_changes",
    "deduplicate_mapping",
    "MappingValidator",
    "ValidationResult",
    "validate_gene_ids",
]
