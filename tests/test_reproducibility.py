"""Tests for reproducibility report generation."""

import json

import polars as pl
import pytest

from deg_enrichment.config.loader import load_config
from deg_enrichment.enrichment import EnrichmentResult, GSEAResult
from deg_enrichment.enrichment.models import GSEA_SCHEMA
from deg_enrichment.output.reproducibility import (
    generate_reproducibility_report,
    software_versions,
    summarize_result,
)
from deg_enrichment.persistence.provenance import ProvenanceTracker


@pytest.fixture
def test_config(tmp_path):
    config_path = tmp_path / "test_config.yaml"
    config_path.write_text(f"""
data_dir: {tmp_path / "data"}
cache_dir: {tmp_path / "cache"}
duckdb_path: {tmp_path / "test.duckdb"}
""")
    return load_config(config_path)


@pytest.fixture
def provenance(test_config):
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("filter_significant", {
        "input_count": 20000,
        "output_count": 350,
        "criteria": "padj < 0.05 and |log2FC| > 2.0",
    })
    tracker.record_step("load_gene_sets")
    tracker.record_data_version("kegg_release", "110.0+/05-24")
    return tracker


@pytest.fixture
def results():
    go = EnrichmentResult.empty("GO:BP", query_size=300, universe_size=15000)
    gsea = GSEAResult(
        table=pl.DataFrame(
            {
                "term_id": ["GO:1", "GO:2"],
                "description": ["a", "b"],
                "set_size": [10, 20],
                "es": [0.5, -0.4],
                "nes": [1.5, -1.2],
                "pvalue": [0.001, 0.3],
                "fdr": [0.01, 0.5],
                "fwer": [0.01, 0.6],
                "leading_edge": ["x/y", "z"],
                "count": [2, 1],
            },
            schema=GSEA_SCHEMA,
        ),
        source="GO:BP",
        ranked_size=15000,
    )
    return {"go": go, "gsea_go": gsea}


def test_generate_report_has_all_fields(test_config, provenance, results):
    report = generate_reproducibility_report(test_config, results, provenance)

    assert report.run_id
    assert report.pipeline_version == "0.1.0"
    assert report.parameters["thresholds"]["padj_cutoff"] == 0.05
    assert report.parameters["annotation"]["kegg_organism"] == "hsa"
    assert report.parameters["gsea"]["seed"] == 42
    assert report.data_versions["kegg_release"] == "110.0+/05-24"
    assert "python" in report.software_environment


def test_report_filtering_steps(test_config, provenance, results):
    report = generate_reproducibility_report(test_config, results, provenance)

    assert len(report.filtering_steps) == 2
    first, second = report.filtering_steps
    assert (first.input_count, first.output_count) == (20000, 350)
    assert "padj" in first.criteria
    assert (second.input_count, second.output_count, second.criteria) == (0, 0, "")


def test_summarize_result(results):
    assert summarize_result(results["go"]) == {
        "source": "GO:BP",
        "tested": 0,
        "significant": 0,
        "query_size": 300,
        "universe_size": 15000,
    }
    gsea = summarize_result(results["gsea_go"])
    assert gsea["tested"] == 2
    assert gsea["significant"] == 1
    assert gsea["ranked_size"] == 15000


def test_report_to_json_parseable(test_config, provenance, results, tmp_path):
    report = generate_reproducibility_report(test_config, results, provenance)

    path = report.to_json(tmp_path / "reports" / "reproducibility.json")

    data = json.loads(path.read_text())
    assert data["run_id"] == report.run_id
    assert data["filtering_steps"][0]["step_name"] == "filter_significant"
    assert data["result_statistics"]["gsea_go"]["significant"] == 1


def test_report_to_markdown_has_headers(test_config, provenance, results, tmp_path):
    report = generate_reproducibility_report(test_config, results, provenance)

    text = report.to_markdown(tmp_path / "reproducibility.md").read_text()

    assert "# Enrichment Reproducibility Report" in text
    assert "## Parameters" in text
    assert "## Annotation Sources" in text
    assert "## Software Environment" in text
    assert "## Filtering Steps" in text
    assert "## Results" in text
    assert "| filter_significant | 20000 | 350 |" in text
    assert "| gsea_go | GO:BP | 2 | 1 |" in text


def test_software_versions():
    versions = software_versions()

    for package in ("python", "polars", "duckdb", "scipy", "statsmodels"):
        assert package in versions


def test_report_top_terms_and_outputs(test_config, provenance, results, tmp_path):
    provenance.record_output(tmp_path / "gsea_go.tsv")

    report = generate_reproducibility_report(test_config, results, provenance)

    assert report.top_terms == {"go": [], "gsea_go": ["GO:1 a"]}
    assert report.output_files == [str(tmp_path / "gsea_go.tsv")]

    text = report.to_markdown(tmp_path / "reproducibility.md").read_text()
    assert "**gsea_go:** GO:1 a" in text
    assert "## Output Files" in text
