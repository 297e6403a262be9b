"""Tests for enrichment plot generation."""

import polars as pl
import pytest

from deg_enrichment.config.schema import PlotConfig
from deg_enrichment.enrichment import EnrichmentResult
from deg_enrichment.enrichment.models import GSEA_SCHEMA, ORA_SCHEMA
from deg_enrichment.output.visualizations import (
    build_cnet,
    build_enrichment_map,
    generate_all_plots,
    jaccard_similarity,
    plot_barplot,
    plot_cnet,
    plot_dotplot,
    _term_labels,
    plot_gsea_dotplot,
    plot_upset,
    plot_wordcloud,
)
from deg_enrichment.output import visualizations


@pytest.fixture
def synthetic_result():
    """Eight significant terms sharing genes from a pool of twelve."""
    genes = [f"G{i}" for i in range(12)]
    rows = []
    for i in range(8):
        hits = genes[i:i + 4]
        rows.append({
            "term_id": f"GO:{i:07d}",
            "description": f"biological process number {i}",
            "category": "BP",
            "gene_ratio": f"{len(hits)}/12",
            "bg_ratio": "40/1000",
            "gene_ratio_value": len(hits) / 12,
            "pvalue": 1e-6 * (i + 1),
            "p_adjust": 1e-5 * (i + 1),
            "qvalue": 1e-5 * (i + 1),
            "gene_ids": "/".join(hits),
            "count": len(hits),
        })
    return EnrichmentResult(
        table=pl.DataFrame(rows, schema=ORA_SCHEMA),
        source="GO:BP",
        query_size=12,
        universe_size=1000,
        gene_symbols={"G0": "SYM0"},
    )


@pytest.fixture
def empty_result():
    return EnrichmentResult.empty("KEGG:hsa")


def test_plot_barplot_creates_file(synthetic_result, tmp_path):
    output_path = tmp_path / "bar.png"

    result = plot_barplot(synthetic_result, output_path, dpi=50)

    assert result == output_path
    assert output_path.exists()
    assert output_path.stat().st_size > 0


def test_plot_dotplot_creates_file(synthetic_result, tmp_path):
    output_path = plot_dotplot(synthetic_result, tmp_path / "dot.png", show_category=5, dpi=50)

    assert output_path.exists()


def test_plot_upset_creates_file(synthetic_result, tmp_path):
    output_path = plot_upset(synthetic_result, tmp_path / "upset.png", n_terms=5, dpi=50)

    assert output_path.exists()
    assert output_path.stat().st_size > 0


def test_term_labels_disambiguate_truncated_descriptions(synthetic_result):
    shared = "regulation of transcription by RNA polymerase II in response to "
    table = synthetic_result.table.with_columns(
        pl.when(pl.col("term_id").is_in(["GO:0000000", "GO:0000001"]))
        .then(pl.lit(shared) + pl.col("term_id"))
        .otherwise(pl.col("description"))
        .alias("description")
    )

    labels = _term_labels(table)

    assert len(set(labels)) == table.height
    assert labels[0].endswith("(GO:0000000)")
    assert labels[1].endswith("(GO:0000001)")
    assert labels[2] == "biological process number 2"


def test_plot_upset_keeps_terms_with_colliding_labels(synthetic_result, tmp_path, monkeypatch):
    shared = "x" * 60
    colliding = EnrichmentResult(
        table=synthetic_result.table.with_columns(pl.lit(shared).alias("description")),
        source=synthetic_result.source,
        query_size=synthetic_result.query_size,
        universe_size=synthetic_result.universe_size,
    )
    seen = {}
    real_from_contents = visualizations.from_contents

    def recording_from_contents(contents):
        seen.update(contents)
        return real_from_contents(contents)

    monkeypatch.setattr(visualizations, "from_contents", recording_from_contents)

    plot_upset(colliding, tmp_path / "upset.png", n_terms=4, dpi=50)

    assert len(seen) == 4
    assert seen[f"{shared[:37]}... (GO:0000000)"] == ["G0", "G1", "G2", "G3"]


def test_empty_result_raises(empty_result, tmp_path):
    with pytest.raises(ValueError, match="No significant terms"):
        plot_barplot(empty_result, tmp_path / "bar.png", dpi=50)

    with pytest.raises(ValueError):
        plot_wordcloud(empty_result, tmp_path / "cloud.png", dpi=50)

    assert not (tmp_path / "bar.png").exists()


def test_jaccard_similarity():
    assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
    assert jaccard_similarity(set(), set()) == 0.0


def test_build_enrichment_map_edges(synthetic_result):
    graph = build_enrichment_map(synthetic_result, show_category=8, min_edge=0.5)

    assert graph.number_of_nodes() == 8
    # consecutive terms share 3 of 5 genes (0.6); terms two apart share 2 of 6
    assert graph.has_edge("GO:0000000", "GO:0000001")
    assert not graph.has_edge("GO:0000000", "GO:0000002")
    assert graph.edges["GO:0000000", "GO:0000001"]["weight"] == pytest.approx(0.6)


def test_build_cnet_nodes(synthetic_result):
    graph = build_cnet(synthetic_result, show_category=2)

    terms = [n for n, d in graph.nodes(data=True) if d["kind"] == "term"]
    genes = [n for n, d in graph.nodes(data=True) if d["kind"] == "gene"]
    assert terms == ["GO:0000000", "GO:0000001"]
    assert sorted(genes) == ["G0", "G1", "G2", "G3", "G4"]
    assert graph.nodes["G0"]["label"] == "SYM0"
    assert graph.degree["G1"] == 2


def test_plot_cnet_with_fold_changes(synthetic_result, tmp_path):
    fold_changes = {"G0": 2.5, "G1": -3.0}

    output_path = plot_cnet(
        synthetic_result, tmp_path / "cnet.png", fold_changes, category_size="pvalue", dpi=50
    )

    assert output_path.exists()


def test_plot_cnet_rejects_unknown_size(synthetic_result, tmp_path):
    with pytest.raises(ValueError, match="category_size"):
        plot_cnet(synthetic_result, tmp_path / "cnet.png", category_size="ratio")


def test_plot_wordcloud_creates_file(synthetic_result, tmp_path):
    output_path = plot_wordcloud(synthetic_result, tmp_path / "cloud.png", max_words=10, dpi=50)

    assert output_path.exists()


def test_plot_gsea_dotplot(tmp_path):
    table = pl.DataFrame(
        {
            "term_id": ["A", "B", "C"],
            "description": ["up set", "down set", "flat set"],
            "set_size": [20, 30, 15],
            "es": [0.7, -0.6, 0.1],
            "nes": [1.9, -1.7, 0.3],
            "pvalue": [0.001, 0.004, 0.8],
            "fdr": [0.01, 0.02, 0.9],
            "fwer": [0.01, 0.03, 1.0],
            "leading_edge": ["a/b/c", "d/e", ""],
            "count": [3, 2, 0],
        },
        schema=GSEA_SCHEMA,
    )

    output_path = plot_gsea_dotplot(table, tmp_path / "gsea.png", dpi=50)

    assert output_path.exists()

    with pytest.raises(ValueError):
        plot_gsea_dotplot(table.head(0), tmp_path / "empty.png")


def test_generate_all_plots(synthetic_result, tmp_path):
    plots = generate_all_plots(
        synthetic_result,
        tmp_path / "plots",
        prefix="go",
        fold_changes={"G2": 1.0},
        plot_config=PlotConfig(dpi=50),
    )

    assert set(plots) == {"barplot", "dotplot", "upset", "emap", "cnet", "wordcloud"}
    for name, path in plots.items():
        assert path.name == f"go_{name}.png"
        assert path.exists()


def test_generate_all_plots_empty_result_continues(empty_result, tmp_path):
    plots = generate_all_plots(empty_result, tmp_path, prefix="kegg")

    assert plots == {}
