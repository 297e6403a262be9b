"""Read and write gene sets in GMT format.

Each line: set name <TAB> description <TAB> gene <TAB> gene ...
"""

from pathlib import Path

import polars as pl
import structlog

from deg_enrichment.annotation.models import GeneSetCollection

logger = structlog.get_logger()


def read_gmt(path: Path | str, name: str | None = None) -> GeneSetCollection:
    """Load a GMT file into a GeneSetCollection.

    Blank lines and lines starting with '#' are skipped. A description of
    "na" or "NA" (MSigDB style) falls back to the set name.

    Args:
        path: GMT file
        name: Collection label (default: file stem)

    Returns:
        GeneSetCollection

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If a line has fewer than two fields
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"GMT file not found: {path}")

    memberships = []
    terms = []
    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.rstrip("\n\r")
            if not line.strip() or line.startswith("#"):
                continue
            fields = line.split("\t")
            if len(fields) < 2:
                raise ValueError(f"{path}:{line_no}: expected name<TAB>description<TAB>genes")
            term_id = fields[0].strip()
            description = fields[1].strip()
            if description.lower() in ("", "na") or description.startswith("http"):
                description = term_id
            terms.append({"term_id": term_id, "description": description})
            for gene in fields[2:]:
                gene = gene.strip()
                if gene:
                    memberships.append({"term_id": term_id, "gene_id": gene})

    collection = GeneSetCollection(
        name=name or path.stem,
        term_to_gene=pl.DataFrame(memberships, schema={"term_id": pl.Utf8, "gene_id": pl.Utf8}),
        term_to_name=pl.DataFrame(terms, schema={"term_id": pl.Utf8, "description": pl.Utf8}),
    )
    logger.info("read_gmt_complete", path=str(path), term_count=collection.n_terms)
    return collection


def write_gmt(collection: GeneSetCollection, path: Path | str) -> Path:
    """Write a GeneSetCollection as GMT (genes sorted within each set)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    descriptions = collection.descriptions()
    with open(path, "w") as f:
        for term_id, genes in collection.gene_sets().items():
            f.write("\t".join([term_id, descriptions.get(term_id, term_id), *genes]) + "\n")
    return path
