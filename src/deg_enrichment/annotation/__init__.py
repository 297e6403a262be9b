"""Gene-set annotation sources: GO (mygene), KEGG (REST) and GMT files."""

from deg_enrichment.annotation.gmt import read_gmt, write_gmt
from deg_enrichment.annotation.go import fetch_go_annotations, parse_go_hit
from deg_enrichment.annotation.kegg import (
    KEGG_REST_URL,
    KEGGClient,
    fetch_kegg_pathways,
    normalize_pathway_id,
    strip_species_suffix,
)
from deg_enrichment.annotation.models import GeneSetCollection

__all__ = [
    "GeneSetCollection",
    "fetch_go_annotations",
    "parse_go_hit",
    "KEGGClient",
    "KEGG_REST_URL",
    "fetch_kegg_pathways",
    "normalize_pathway_id",
    "strip_species_suffix",
    "read_gmt",
    "write_gmt",
]
