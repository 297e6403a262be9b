"""Gene ID translation between namespaces via mygene batch queries.

Translates identifiers such as Ensembl gene IDs into Entrez IDs or HGNC symbols
(the KEGG REST service keys human genes by Entrez ID). Handles mygene's
irregular result shapes: notfound hits, scalar vs list fields and nested
ensembl/uniprot records.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import mygene
import polars as pl

from deg_enrichment.deg.models import FOLD_CHANGE_COL, GENE_ID_COL

logger = logging.getLogger(__name__)

# mygene query scope for each supported key type
KEY_TYPE_SCOPES = {
    "ENSEMBL": "ensembl.gene",
    "ENTREZID": "entrezgene",
    "SYMBOL": "symbol",
    "UNIPROT": "uniprot",
}

# mygene field returned for each supported key type
KEY_TYPE_FIELDS = {
    "ENSEMBL": "ensembl.gene",
    "ENTREZID": "entrezgene",
    "SYMBOL": "symbol",
    "UNIPROT": "uniprot.Swiss-Prot",
}


@dataclass
class MappingReport:
    """Summary report for a batch translation.

    Attributes:
        from_type: Source namespace (e.g. ENSEMBL)
        to_type: Target namespace (e.g. ENTREZID)
        total_genes: Number of distinct input IDs
        mapped: Number of input IDs with at least one target ID
        unmapped_ids: Input IDs with no target ID
        success_rate: mapped / total_genes (0-1)
    """
    from_type: str
    to_type: str
    total_genes: int
    mapped: int
    unmapped_ids: list[str] = field(default_factory=list)
    success_rate: float = 0.0

    def __post_init__(self):
        if self.total_genes > 0:
            self.success_rate = self.mapped / self.total_genes

    @property
    def failed_fraction(self) -> float:
        return 1.0 - self.success_rate if self.total_genes > 0 else 0.0


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def extract_ids(hit: dict, key_type: str) -> list[str]:
    """Pull all target IDs of key_type out of one mygene hit.

    Args:
        hit: One element of querymany output
        key_type: ENSEMBL, ENTREZID, SYMBOL or UNIPROT

    Returns:
        Distinct IDs as strings in the order mygene returned them
    """
    if key_type == "ENSEMBL":
        values = [
            entry.get("gene")
            for entry in _as_list(hit.get("ensembl"))
            if isinstance(entry, dict)
        ]
    elif key_type == "UNIPROT":
        uniprot = hit.get("uniprot")
        values = _as_list(uniprot.get("Swiss-Prot")) if isinstance(uniprot, dict) else []
    elif key_type == "ENTREZID":
        values = _as_list(hit.get("entrezgene"))
    else:
        values = _as_list(hit.get("symbol"))

    ids: list[str] = []
    for value in values:
        if value is None or value == "":
            continue
        value = str(value)
        if value not in ids:
            ids.append(value)
    return ids


class GeneMapper:
    """Batch gene ID translator using the mygene API.

    Equivalent of a bitr() call: one input can map to several outputs, and
    IDs that fail to map are dropped with a warning.
    """

    def __init__(self, species: int | str = 9606, batch_size: int = 1000):
        """Initialize gene mapper.

        Args:
            species: NCBI taxonomy id or mygene species name
            batch_size: Number of genes to query per batch (default: 1000)
        """
        self.species = species
        self.batch_size = batch_size
        self.mg = mygene.MyGeneInfo()
        logger.info(f"Initialized GeneMapper with species={species}, batch_size={batch_size}")

    def translate(
        self,
        gene_ids: list[str],
        from_type: str,
        to_type: str,
    ) -> tuple[pl.DataFrame, MappingReport]:
        """Translate gene IDs from one namespace to another.

        Args:
            gene_ids: Input identifiers in the from_type namespace
            from_type: ENSEMBL, ENTREZID, SYMBOL or UNIPROT
            to_type: ENSEMBL, ENTREZID, SYMBOL or UNIPROT

        Returns:
            Tuple of (mapping, report)
            - mapping: DataFrame with one Utf8 column per key type
              (named from_type and to_type), one row per (input, output) pair
            - report: MappingReport for the translation

        Raises:
            ValueError: If a key type is not supported or both are equal
        """
        from_type = from_type.upper()
        to_type = to_type.upper()
        for key_type in (from_type, to_type):
            if key_type not in KEY_TYPE_SCOPES:
                raise ValueError(
                    f"Unsupported key type {key_type!r}; expected one of {list(KEY_TYPE_SCOPES)}"
                )
        if from_type == to_type:
            raise ValueError(f"from_type and to_type are both {from_type}")

        unique_ids = list(dict.fromkeys(gene_ids))
        total_genes = len(unique_ids)
        logger.info(f"Translating {total_genes} IDs from {from_type} to {to_type}")

        pairs: dict[str, list[str]] = {gene_id: [] for gene_id in unique_ids}

        for i in range(0, total_genes, self.batch_size):
            batch = unique_ids[i:i + self.batch_size]
            batch_num = i // self.batch_size + 1
            total_batches = (total_genes + self.batch_size - 1) // self.batch_size

            logger.info(
                f"Processing batch {batch_num}/{total_batches} "
                f"({len(batch)} genes)"
            )

            batch_results = self.mg.querymany(
                batch,
                scopes=KEY_TYPE_SCOPES[from_type],
                fields=KEY_TYPE_FIELDS[to_type],
                species=self.species,
                returnall=True,
                verbose=False,
            )

            # returnall=True gives {'out': [...], 'missing': [...], 'dup': [...]}
            for hit in batch_results.get("out", []):
                query = str(hit.get("query", ""))
                if query not in pairs or hit.get("notfound", False):
                    continue
                for target in extract_ids(hit, to_type):
                    if target not in pairs[query]:
                        pairs[query].append(target)

        rows = [
            (source, target)
            for source, targets in pairs.items()
            for target in targets
        ]
        mapping = pl.DataFrame(
            {
                from_type: [source for source, _ in rows],
                to_type: [target for _, target in rows],
            },
            schema={from_type: pl.Utf8, to_type: pl.Utf8},
        )

        unmapped_ids = [source for source, targets in pairs.items() if not targets]
        report = MappingReport(
            from_type=from_type,
            to_type=to_type,
            total_genes=total_genes,
            mapped=total_genes - len(unmapped_ids),
            unmapped_ids=unmapped_ids,
        )

        if unmapped_ids:
            logger.warning(
                f"{report.failed_fraction:.2%} of input gene IDs failed to map "
                f"({len(unmapped_ids)}/{total_genes}, {from_type} -> {to_type})"
            )
        logger.info(
            f"Translation complete: {report.mapped}/{total_genes} mapped "
            f"({report.success_rate:.1%})"
        )

        return mapping, report


def deduplicate_mapping(mapping: pl.DataFrame, key: str) -> pl.DataFrame:
    """Keep only the first translation for every value of key.

    Args:
        mapping: DataFrame from GeneMapper.translate
        key: Column whose values must become unique (usually the source type)

    Returns:
        DataFrame with one row per distinct key value, input order preserved
    """
    return mapping.unique(subset=key, keep="first", maintain_order=True)


def attach_fold_changes(
    mapping: pl.DataFrame,
    ranked: pl.DataFrame,
    from_type: str,
    to_type: str,
) -> pl.DataFrame:
    """Re-key a ranked fold-change list into the target namespace.

    Joins translated IDs onto the ranked list, keeps the first (highest ranked)
    row for every target ID, and sorts by fold change descending.

    Args:
        mapping: Deduplicated translation with from_type and to_type columns
        ranked: DataFrame with gene_id and log2_fold_change
        from_type: Column of mapping matching ranked.gene_id
        to_type: Column of mapping that becomes the new gene_id

    Returns:
        DataFrame with gene_id (target namespace) and log2_fold_change
    """
    return (
        ranked.with_row_index("_rank")
        .join(
            mapping.select([from_type, to_type]),
            left_on=GENE_ID_COL,
            right_on=from_type,
            how="inner",
        )
        .sort("_rank", maintain_order=True)
        .select([pl.col(to_type).alias(GENE_ID_COL), pl.col(FOLD_CHANGE_COL)])
        .unique(subset=GENE_ID_COL, keep="first", maintain_order=True)
    )
