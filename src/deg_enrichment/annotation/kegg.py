"""KEGG REST client and pathway gene-set construction."""

import re

import polars as pl
import structlog

from deg_enrichment.annotation.models import GeneSetCollection
from deg_enrichment.api_clients.base import CachedAPIClient
from deg_enrichment.config.schema import PipelineConfig

logger = structlog.get_logger()

KEGG_REST_URL = "https://rest.kegg.jp"

# " - Homo sapiens (human)" style suffix on organism-specific pathway names
_SPECIES_SUFFIX = re.compile(r"\s-\s[A-Za-z0-9 .,/']+\([^()]*\)$")
_PATHWAY_ID = re.compile(r"^[a-z]{2,4}\d{5}$")


def normalize_pathway_id(pathway_id: str, organism: str) -> str:
    """Return a KEGG pathway id with organism prefix.

    Examples:
        "04130" -> "hsa04130", "path:hsa04130" -> "hsa04130"

    Raises:
        ValueError: If the id is not a five-digit map number with optional prefix
    """
    pid = str(pathway_id).strip()
    if pid.startswith("path:"):
        pid = pid[len("path:"):]
    if pid.isdigit() and len(pid) == 5:
        pid = f"{organism}{pid}"
    if not _PATHWAY_ID.match(pid):
        raise ValueError(f"Not a KEGG pathway id: {pathway_id!r}")
    return pid


def strip_species_suffix(name: str) -> str:
    """Remove the trailing organism label from a KEGG pathway name."""
    return _SPECIES_SUFFIX.sub("", name).strip()


def _strip_prefix(value: str) -> str:
    return value.split(":", 1)[1] if ":" in value else value


class KEGGClient:
    """Thin wrapper over the KEGG REST API (plain-text, tab-separated responses)."""

    def __init__(self, api_client: CachedAPIClient):
        self.api = api_client

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "KEGGClient":
        return cls(CachedAPIClient.from_config(config, base_url=KEGG_REST_URL))

    def _lines(self, path: str) -> list[list[str]]:
        text = self.api.get_text(path)
        return [line.split("\t") for line in text.splitlines() if line.strip()]

    def list_pathways(self, organism: str) -> pl.DataFrame:
        """Pathway ids and names for an organism.

        Returns:
            DataFrame with term_id (e.g. hsa04110) and description
            (species suffix removed)
        """
        rows = [
            {
                "term_id": _strip_prefix(fields[0]),
                "description": strip_species_suffix(fields[1]) if len(fields) > 1 else None,
            }
            for fields in self._lines(f"list/pathway/{organism}")
        ]
        return pl.DataFrame(rows, schema={"term_id": pl.Utf8, "description": pl.Utf8})

    def link_pathway_genes(self, organism: str) -> pl.DataFrame:
        """Pathway memberships for every gene of an organism.

        Returns:
            DataFrame with term_id and gene_id, organism prefixes removed
            (for hsa the gene ids are Entrez gene ids)
        """
        rows = []
        for fields in self._lines(f"link/pathway/{organism}"):
            if len(fields) < 2:
                continue
            gene, pathway = fields[0], fields[1]
            # The service answers gene<TAB>pathway; tolerate the reverse order
            if gene.startswith("path:"):
                gene, pathway = pathway, gene
            rows.append({
                "term_id": _strip_prefix(pathway),
                "gene_id": _strip_prefix(gene),
            })
        return pl.DataFrame(rows, schema={"term_id": pl.Utf8, "gene_id": pl.Utf8})

    def get_kgml(self, pathway_id: str) -> str:
        """KGML (XML) description of a pathway."""
        return self.api.get_text(f"get/{pathway_id}/kgml")

    def get_image(self, pathway_id: str) -> bytes:
        """Static PNG diagram of a pathway."""
        return self.api.get_bytes(f"get/{pathway_id}/image")

    def release(self, organism: str) -> str | None:
        """KEGG release string reported by /info, e.g. "Release 110.0+/05-01, May 24"."""
        for line in self.api.get_text(f"info/{organism}").splitlines():
            if "Release" in line:
                return line.split("Release", 1)[1].strip().lstrip(":").strip() or None
        return None


def fetch_kegg_pathways(client: KEGGClient, organism: str = "hsa") -> GeneSetCollection:
    """Build a gene-set collection from all KEGG pathways of an organism.

    Args:
        client: KEGGClient instance
        organism: KEGG organism code

    Returns:
        GeneSetCollection named "KEGG:<organism>"
    """
    logger.info("fetch_kegg_pathways_start", organism=organism)

    names = client.list_pathways(organism)
    links = client.link_pathway_genes(organism)

    collection = GeneSetCollection(
        name=f"KEGG:{organism}",
        term_to_gene=links,
        term_to_name=names,
    )

    logger.info(
        "fetch_kegg_pathways_complete",
        organism=organism,
        pathway_count=collection.n_terms,
        annotated_genes=len(collection.genes),
    )

    return collection
