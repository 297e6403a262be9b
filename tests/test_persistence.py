"""Tests for persistence layer (DuckDB store and provenance tracking)."""

import json
from pathlib import Path

import polars as pl
import pytest

from deg_enrichment.config.loader import load_config
from deg_enrichment.persistence import PipelineStore, ProvenanceTracker, checkpoint_name


@pytest.fixture
def test_config(tmp_path):
    """Create a minimal test config."""
    config_path = tmp_path / "test_config.yaml"
    config_path.write_text(f"""
data_dir: {tmp_path / "data"}
cache_dir: {tmp_path / "cache"}
duckdb_path: {tmp_path / "test.duckdb"}
annotation:
  species: 9606
  ontology: MF
  kegg_organism: hsa
""")
    return load_config(config_path)


@pytest.fixture
def store(tmp_path):
    with PipelineStore(tmp_path / "test.duckdb") as store:
        yield store


@pytest.fixture
def sample_df():
    return pl.DataFrame({
        "term_id": ["GO:0006915", "GO:0006914", "GO:0016192"],
        "gene_id": ["ENSG00000141510", "ENSG00000057663", "ENSG00000106089"],
    })


# ============================================================================
# DuckDB Store Tests
# ============================================================================

def test_store_creates_database(tmp_path):
    """PipelineStore creates the .duckdb file and parent directories."""
    db_path = tmp_path / "nested" / "test.duckdb"

    store = PipelineStore(db_path)
    store.close()

    assert db_path.exists()


def test_save_and_load_roundtrip(store, sample_df):
    store.save_dataframe(sample_df, "go_annotations_ensembl_bp", "GO memberships")

    loaded = store.load_dataframe("go_annotations_ensembl_bp")

    assert loaded.shape == (3, 2)
    assert loaded["term_id"].to_list() == sample_df["term_id"].to_list()


def test_save_replaces_existing_table(store, sample_df):
    store.save_dataframe(sample_df, "annotations")
    store.save_dataframe(sample_df.head(1), "annotations")

    assert store.load_dataframe("annotations").height == 1
    assert store.list_checkpoints()[0]["row_count"] == 1


def test_save_rejects_non_polars(store):
    with pytest.raises(ValueError, match="polars"):
        store.save_dataframe({"a": [1]}, "bad")


def test_invalid_table_name(store, sample_df):
    with pytest.raises(ValueError, match="Invalid table name"):
        store.save_dataframe(sample_df, "drop table; --")


def test_load_missing_table_returns_none(store):
    assert store.load_dataframe("nonexistent") is None


def test_checkpoint_tracking(store, sample_df):
    assert not store.has_checkpoint("kegg_pathways_hsa")

    store.save_dataframe(sample_df, "kegg_pathways_hsa", "KEGG links")

    assert store.has_checkpoint("kegg_pathways_hsa")
    checkpoints = store.list_checkpoints()
    assert checkpoints[0]["table_name"] == "kegg_pathways_hsa"
    assert checkpoints[0]["description"] == "KEGG links"

    store.delete_checkpoint("kegg_pathways_hsa")

    assert not store.has_checkpoint("kegg_pathways_hsa")
    assert store.load_dataframe("kegg_pathways_hsa") is None


def test_export_parquet(store, sample_df, tmp_path):
    store.save_dataframe(sample_df, "annotations")
    output_path = tmp_path / "exports" / "annotations.parquet"

    store.export_parquet("annotations", output_path)

    assert pl.read_parquet(output_path).height == 3


def test_execute_query(store, sample_df):
    store.save_dataframe(sample_df, "annotations")

    result = store.execute_query(
        "SELECT gene_id FROM annotations WHERE term_id = ?", ["GO:0006914"]
    )

    assert result["gene_id"].to_list() == ["ENSG00000057663"]


def test_store_from_config(test_config):
    store = PipelineStore.from_config(test_config)
    try:
        assert store.db_path == test_config.duckdb_path
    finally:
        store.close()


def test_checkpoint_name():
    assert checkpoint_name("go_annotations", "ENSEMBL", "BP") == "go_annotations_ensembl_bp"
    assert checkpoint_name("gsea", "KEGG:hsa") == "gsea_kegg_hsa"
    assert checkpoint_name("id_mapping", None, "entrezid") == "id_mapping_entrezid"


# ============================================================================
# Provenance Tests
# ============================================================================

def test_provenance_metadata(test_config):
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("filter_significant", {"input_count": 100, "output_count": 12})
    tracker.record_data_version("kegg_release", "110.0+/05-24")

    metadata = tracker.create_metadata()

    assert metadata["pipeline_version"] == "0.1.0"
    assert metadata["config_hash"] == test_config.config_hash()
    assert "MF" in metadata["data_source_versions"]["go"]
    assert metadata["data_source_versions"]["kegg"] == "KEGG REST (hsa)"
    assert metadata["data_source_versions"]["kegg_release"] == "110.0+/05-24"
    assert "gmt" not in metadata["data_source_versions"]
    steps = tracker.get_steps()
    assert steps[0]["step_name"] == "filter_significant"
    assert steps[0]["details"]["output_count"] == 12


def test_provenance_step_without_details(test_config):
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("load_gene_sets")

    assert "details" not in tracker.get_steps()[0]


def test_provenance_sidecar_roundtrip(test_config, tmp_path):
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("run_ora", {"source": "GO:BP"})

    sidecar = tracker.save_sidecar(tmp_path / "results" / "go_enrichment.tsv")

    assert sidecar.name == "go_enrichment.provenance.json"
    loaded = ProvenanceTracker.load_sidecar(sidecar)
    assert loaded["processing_steps"][0]["details"]["source"] == "GO:BP"


def test_provenance_save_to_store(test_config, store):
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("run_ora")

    tracker.save_to_store(store)
    tracker.save_to_store(store)

    rows = store.execute_query("SELECT * FROM _provenance")
    assert rows.height == 2
    assert json.loads(rows["sources_json"][0])["kegg"] == "KEGG REST (hsa)"
    assert json.loads(rows["steps_json"][0])[0]["step_name"] == "run_ora"


def test_provenance_from_config_uses_package_version(test_config):
    from deg_enrichment import __version__

    tracker = ProvenanceTracker.from_config(test_config)

    assert tracker.pipeline_version == __version__


def test_provenance_records_outputs_once(test_config, store):
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_output("results/go_enrichment.tsv")
    tracker.record_output(Path("results/go_enrichment.tsv"))
    tracker.record_output("results/plots/go_dotplot.png")

    assert tracker.create_metadata()["output_files"] == [
        "results/go_enrichment.tsv",
        "results/plots/go_dotplot.png",
    ]

    tracker.save_to_store(store)
    rows = store.execute_query("SELECT outputs_json FROM _provenance")
    assert len(json.loads(rows["outputs_json"][0])) == 2
