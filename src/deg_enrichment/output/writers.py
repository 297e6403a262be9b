"""Enrichment tables on disk: TSV for people, Parquet for code, YAML alongside."""

from datetime import datetime, timezone
from pathlib import Path

import polars as pl
import yaml

# Deterministic row order for every ORA and GSEA table
SORT_COLUMNS = ["pvalue", "term_id"]


def _sidecar(
    df: pl.DataFrame,
    files: list[Path],
    significant_count: int | None,
    metadata: dict | None,
) -> dict:
    statistics = {"total_terms": df.height}
    if significant_count is not None:
        statistics["significant_terms"] = significant_count

    sidecar = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "output_files": [path.name for path in files],
        "statistics": statistics,
        "column_count": df.width,
        "column_names": df.columns,
    }
    if metadata:
        sidecar["metadata"] = metadata
    return sidecar


def write_enrichment_output(
    df: pl.DataFrame | pl.LazyFrame,
    output_dir: Path,
    filename_base: str = "enrichment",
    significant_count: int | None = None,
    metadata: dict | None = None,
) -> dict[str, Path]:
    """
    Write one enrichment table as <base>.tsv, <base>.parquet and <base>.provenance.yaml.

    Rows are ordered by pvalue then term_id (NULL p-values last). The
    Parquet copy keeps column types, e.g. count as Int64, which a TSV
    round trip can lose for an empty table.

    Args:
        df: ORA or GSEA table; needs pvalue and term_id columns
        output_dir: Created when missing
        filename_base: e.g. "go_enrichment" or "gsea_kegg"
        significant_count: Terms passing the result's cutoffs
        metadata: Analysis parameters (source, cutoffs, query size...)

    Returns:
        {"tsv": ..., "parquet": ..., "provenance": ...}
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    table = df.collect() if isinstance(df, pl.LazyFrame) else df
    table = table.sort(SORT_COLUMNS, nulls_last=True)

    paths = {
        "tsv": output_dir / f"{filename_base}.tsv",
        "parquet": output_dir / f"{filename_base}.parquet",
        "provenance": output_dir / f"{filename_base}.provenance.yaml",
    }

    table.write_csv(paths["tsv"], separator="\t")
    table.write_parquet(paths["parquet"], compression="snappy", use_pyarrow=True)

    sidecar = _sidecar(table, [paths["tsv"], paths["parquet"]], significant_count, metadata)
    paths["provenance"].write_text(
        yaml.safe_dump(sidecar, default_flow_style=False, sort_keys=False)
    )

    return paths
