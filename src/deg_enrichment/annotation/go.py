"""Fetch GO annotations for a gene universe from mygene.info."""

import math

import mygene
import polars as pl
import structlog

from deg_enrichment.annotation.models import GeneSetCollection
from deg_enrichment.gene_mapping.mapper import KEY_TYPE_SCOPES

logger = structlog.get_logger()

GO_CATEGORIES = ("BP", "MF", "CC")

# Initialize mygene client lazily and reuse it across calls
_mg_client = None


def _get_mygene_client() -> mygene.MyGeneInfo:
    """Get or create mygene client singleton."""
    global _mg_client
    if _mg_client is None:
        _mg_client = mygene.MyGeneInfo()
    return _mg_client


def parse_go_hit(hit: dict) -> list[dict]:
    """Flatten the go field of one mygene hit into term rows.

    mygene returns a dict keyed by ontology (BP/MF/CC) whose values are either
    a single term dict or a list of term dicts. A gene annotated to the same
    term through several evidence codes appears once.

    Args:
        hit: One element of querymany output

    Returns:
        List of {"term_id", "description", "category"} dicts
    """
    go_data = hit.get("go")
    if not isinstance(go_data, dict):
        return []

    rows = []
    seen = set()
    for category in GO_CATEGORIES:
        entries = go_data.get(category) or []
        if isinstance(entries, dict):
            entries = [entries]
        for entry in entries:
            term_id = entry.get("id")
            if not term_id or term_id in seen:
                continue
            seen.add(term_id)
            rows.append({
                "term_id": term_id,
                "description": entry.get("term"),
                "category": category,
            })
    return rows


def fetch_go_annotations(
    gene_ids: list[str],
    id_type: str = "ENSEMBL",
    species: int | str = 9606,
    ontology: str = "BP",
    batch_size: int = 1000,
) -> GeneSetCollection:
    """Fetch GO term memberships for a list of genes.

    Uses mygene.querymany in batches. A batch that fails is logged and
    skipped so one API hiccup does not abort a long fetch; its genes simply
    carry no annotation.

    Args:
        gene_ids: Universe genes in the id_type namespace
        id_type: ENSEMBL, ENTREZID, SYMBOL or UNIPROT
        species: NCBI taxonomy id or mygene species name
        ontology: BP, MF, CC or ALL
        batch_size: Number of genes per batch query (default: 1000)

    Returns:
        GeneSetCollection named "GO:<ontology>", keyed by the input IDs, with
        gene symbols recorded for readable output

    Note: Annotations are the direct annotations mygene reports; parent terms
    are not added.
    """
    logger.info(
        "fetch_go_annotations_start",
        gene_count=len(gene_ids),
        id_type=id_type,
        ontology=ontology,
    )

    mg = _get_mygene_client()
    scope = KEY_TYPE_SCOPES[id_type.upper()]

    memberships: list[dict] = []
    terms: dict[str, dict] = {}
    symbols: dict[str, str] = {}
    failed_batches = 0

    num_batches = math.ceil(len(gene_ids) / batch_size) if gene_ids else 0

    for i in range(num_batches):
        batch = gene_ids[i * batch_size:(i + 1) * batch_size]

        logger.info(
            "fetch_go_batch",
            batch_num=i + 1,
            total_batches=num_batches,
            batch_size=len(batch),
        )

        try:
            results = mg.querymany(
                batch,
                scopes=scope,
                fields="go,symbol",
                species=species,
                returnall=False,
                verbose=False,
            )
        except Exception as e:
            failed_batches += 1
            logger.warning("fetch_go_batch_error", batch_num=i + 1, error=str(e))
            continue

        for hit in results:
            if hit.get("notfound", False):
                continue
            gene_id = str(hit.get("query"))
            symbol = hit.get("symbol")
            if symbol and gene_id not in symbols:
                symbols[gene_id] = symbol

            for row in parse_go_hit(hit):
                if ontology != "ALL" and row["category"] != ontology:
                    continue
                memberships.append({"term_id": row["term_id"], "gene_id": gene_id})
                terms.setdefault(row["term_id"], row)

    collection = GeneSetCollection(
        name=f"GO:{ontology}",
        term_to_gene=pl.DataFrame(
            memberships, schema={"term_id": pl.Utf8, "gene_id": pl.Utf8}
        ),
        term_to_name=pl.DataFrame(
            list(terms.values()),
            schema={"term_id": pl.Utf8, "description": pl.Utf8, "category": pl.Utf8},
        ),
        gene_symbols=symbols,
    )

    logger.info(
        "fetch_go_annotations_complete",
        term_count=collection.n_terms,
        annotated_genes=len(collection.genes),
        failed_batches=failed_batches,
    )

    return collection
