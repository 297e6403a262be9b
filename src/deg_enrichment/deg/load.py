"""Read differential-expression results from CSV."""

from pathlib import Path

import polars as pl
import structlog

from deg_enrichment.config.schema import DEColumns
from deg_enrichment.deg.models import FOLD_CHANGE_COL, GENE_ID_COL, PADJ_COL

logger = structlog.get_logger()

# Missing-value spellings written by R, pandas and spreadsheet exports
NULL_VALUES = ["NA", "NaN", "nan", ""]


def load_de_results(path: Path | str, columns: DEColumns | None = None) -> pl.DataFrame:
    """Load a DE result CSV and rename its columns to canonical names.

    Args:
        path: CSV file with at least gene id, log2 fold change and padj columns
        columns: Column names in the file (default: DESeq2 naming)

    Returns:
        DataFrame with gene_id (str), log2_fold_change (f64) and padj (f64);
        any other columns are carried along unchanged

    Raises:
        FileNotFoundError: If the CSV does not exist
        ValueError: If any configured column is absent (all missing columns listed)
    """
    path = Path(path)
    columns = columns or DEColumns()

    if not path.exists():
        raise FileNotFoundError(f"DE results file not found: {path}")

    logger.info("load_de_results_start", path=str(path))

    df = pl.read_csv(path, null_values=NULL_VALUES, infer_schema_length=10000)

    rename = {
        columns.gene_id: GENE_ID_COL,
        columns.log2_fold_change: FOLD_CHANGE_COL,
        columns.padj: PADJ_COL,
    }
    missing = [name for name in rename if name not in df.columns]
    if missing:
        raise ValueError(
            f"DE results file {path} is missing column(s) {missing}; "
            f"available columns: {df.columns}"
        )

    # Drop pre-existing canonical columns that would collide after renaming
    collisions = [
        canonical for source, canonical in rename.items()
        if canonical in df.columns and canonical != source
    ]
    if collisions:
        df = df.drop(collisions)

    df = df.rename(rename).with_columns(
        pl.col(GENE_ID_COL).cast(pl.Utf8).str.strip_chars(),
        pl.col(FOLD_CHANGE_COL).cast(pl.Float64, strict=False).fill_nan(None),
        pl.col(PADJ_COL).cast(pl.Float64, strict=False).fill_nan(None),
    )

    logger.info(
        "load_de_results_complete",
        row_count=df.height,
        null_fold_change=df[FOLD_CHANGE_COL].null_count(),
        null_padj=df[PADJ_COL].null_count(),
    )

    return df
