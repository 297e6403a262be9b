"""DuckDB checkpoint store for annotation downloads and enrichment tables."""

import hashlib
import re
from pathlib import Path
from typing import Optional

import duckdb
import polars as pl

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_CHECKPOINTS_DDL = """
    CREATE TABLE IF NOT EXISTS _checkpoints (
        table_name VARCHAR PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        row_count INTEGER,
        description VARCHAR
    )
"""


def checkpoint_name(*parts: str) -> str:
    """Build a table name from free-form parts, e.g. ("go_annotations", "BP")."""
    name = "_".join(str(p) for p in parts if p)
    return re.sub(r"[^A-Za-z0-9_]", "_", name).lower()


def universe_key(gene_ids, *qualifiers) -> str:
    """Short digest of a gene universe (order and duplicates ignored) and its qualifiers.

    Checkpoints of per-gene downloads carry this key, so a DE table with
    other genes or another species gets its own table instead of reusing one
    fetched for different ids.
    """
    digest = hashlib.sha1()
    for part in [*(str(q) for q in qualifiers), "|", *sorted(set(gene_ids))]:
        digest.update(part.encode())
        digest.update(b"\0")
    return digest.hexdigest()[:12]


class PipelineStore:
    """
    Tables of one analysis directory, kept in a single DuckDB file.

    GO memberships, KEGG links and ID mappings are slow, rate-limited
    downloads; they are written here once and reloaded by later runs
    unless a step is forced. The _checkpoints table tracks what exists,
    when it was written and how many rows it holds.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = duckdb.connect(str(self.db_path))
        self.conn.execute(_CHECKPOINTS_DDL)

    @staticmethod
    def _check_name(table_name: str) -> str:
        if not _TABLE_NAME.match(table_name):
            raise ValueError(f"Invalid table name: {table_name!r}")
        return table_name

    def save_dataframe(
        self,
        df: pl.DataFrame,
        table_name: str,
        description: str = "",
    ) -> None:
        """Write df as table_name (replacing it) and update its checkpoint row."""
        if not isinstance(df, pl.DataFrame):
            raise ValueError("df must be a polars.DataFrame")
        table_name = self._check_name(table_name)

        # Arrow keeps empty frames typed, e.g. an ORA table with no terms
        self.conn.register("_incoming", df.to_arrow())
        try:
            self.conn.execute(f"CREATE OR REPLACE TABLE {table_name} AS SELECT * FROM _incoming")
        finally:
            self.conn.unregister("_incoming")

        self.conn.execute(
            "INSERT OR REPLACE INTO _checkpoints (table_name, row_count, description, created_at) "
            "VALUES (?, ?, ?, CURRENT_TIMESTAMP)",
            [table_name, df.height, description],
        )

    def load_dataframe(self, table_name: str) -> Optional[pl.DataFrame]:
        """table_name as a polars DataFrame, or None when there is no such table."""
        table_name = self._check_name(table_name)
        try:
            return self.conn.execute(f"SELECT * FROM {table_name}").pl()
        except duckdb.CatalogException:
            return None

    def has_checkpoint(self, table_name: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM _checkpoints WHERE table_name = ?", [table_name]
        ).fetchone()
        return row is not None

    def list_checkpoints(self) -> list[dict]:
        """Checkpoint rows (table_name, created_at, row_count, description), newest first."""
        return self.execute_query(
            "SELECT table_name, created_at, row_count, description "
            "FROM _checkpoints ORDER BY created_at DESC, table_name"
        ).to_dicts()

    def delete_checkpoint(self, table_name: str) -> None:
        """Drop the table and forget it, so the next run rebuilds it."""
        table_name = self._check_name(table_name)
        self.conn.execute(f"DROP TABLE IF EXISTS {table_name}")
        self.conn.execute("DELETE FROM _checkpoints WHERE table_name = ?", [table_name])

    def export_parquet(self, table_name: str, output_path: Path) -> None:
        """Copy a table out with DuckDB's own Parquet writer."""
        table_name = self._check_name(table_name)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn.execute(f"COPY {table_name} TO '{output_path.as_posix()}' (FORMAT PARQUET)")

    def execute_query(self, query: str, params: Optional[list] = None) -> pl.DataFrame:
        if params:
            return self.conn.execute(query, params).pl()
        return self.conn.execute(query).pl()

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "PipelineStore":
        return self

    def __exit__(self, *exc_info) -> bool:
        self.close()
        return False

    @classmethod
    def from_config(cls, config: "PipelineConfig") -> "PipelineStore":
        """Store at config.duckdb_path."""
        return cls(config.duckdb_path)
