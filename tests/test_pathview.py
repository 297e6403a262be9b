"""Tests for KGML parsing and pathway rendering."""

import io
from unittest.mock import MagicMock

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import polars as pl  # noqa: E402
import pytest  # noqa: E402

from deg_enrichment.output.pathview import (  # noqa: E402
    parse_kgml,
    render_pathway,
    summarize_nodes,
)

KGML = """<?xml version="1.0"?>
<!DOCTYPE pathway SYSTEM "https://www.kegg.jp/kegg/xml/KGML_v0.7.2_.dtd">
<pathway name="path:hsa04130" org="hsa" number="04130"
         title="SNARE interactions in vesicular transport">
    <entry id="1" name="hsa:6804 hsa:6811" type="gene">
        <graphics name="STX1A, STX1B..." fgcolor="#000000" bgcolor="#BFFFBF"
             type="rectangle" x="100" y="50" width="46" height="17"/>
    </entry>
    <entry id="2" name="hsa:8417" type="gene">
        <graphics name="STX7..." type="rectangle" x="200" y="50" width="46" height="17"/>
    </entry>
    <entry id="3" name="hsa:9999" type="gene">
        <graphics name="VAMP9" type="rectangle" x="300" y="100" width="46" height="17"/>
    </entry>
    <entry id="4" name="cpd:C00001" type="compound">
        <graphics name="C00001" type="circle" x="150" y="150" width="8" height="8"/>
    </entry>
    <entry id="5" name="path:hsa04140" type="map">
        <graphics name="Autophagy" type="roundrectangle" x="350" y="150" width="80" height="25"/>
    </entry>
    <entry id="6" name="hsa:1 hsa:2" type="gene">
        <graphics type="line" coords="10,10,20,20"/>
    </entry>
    <relation entry1="1" entry2="2" type="PPrel">
        <subtype name="activation" value="--&gt;"/>
    </relation>
    <relation entry1="2" entry2="3" type="PCrel"/>
</pathway>
"""

GENE_DATA = {"6804": 0.5, "6811": 1.0, "8417": -3.0}


def make_png() -> bytes:
    fig, ax = plt.subplots(figsize=(4, 2))
    ax.axis("off")
    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=100)
    plt.close(fig)
    return buffer.getvalue()


def test_parse_kgml():
    pathway = parse_kgml(KGML)

    assert pathway.pathway_id == "hsa04130"
    assert pathway.title == "SNARE interactions in vesicular transport"
    assert [n.entry_id for n in pathway.nodes] == ["1", "2", "3", "4", "5"]
    assert [n.entry_id for n in pathway.gene_nodes()] == ["1", "2", "3"]

    first = pathway.nodes[0]
    assert first.kegg_ids == ["6804", "6811"]
    assert first.label == "STX1A"
    assert (first.x, first.y, first.width, first.height) == (100.0, 50.0, 46.0, 17.0)
    assert pathway.nodes[1].label == "STX7"
    assert pathway.nodes[4].kegg_ids == ["hsa04140"]

    assert pathway.relations == [("1", "2", "activation"), ("2", "3", "PCrel")]


def test_parse_kgml_rejects_bad_documents():
    with pytest.raises(ValueError, match="Invalid KGML"):
        parse_kgml("<pathway")

    with pytest.raises(ValueError, match="root element"):
        parse_kgml("<html><body/></html>")


def test_summarize_nodes_sum_and_clipping():
    nodes = summarize_nodes(parse_kgml(KGML), GENE_DATA, node_sum="sum", limit=1.0)

    assert nodes["entry_id"].to_list() == ["1", "2", "3"]
    first, second, third = nodes.iter_rows(named=True)

    assert first["value"] == pytest.approx(1.5)
    assert first["mapped_genes"] == "6804/6811"
    assert first["n_mapped"] == 2
    assert first["color"] == "#ff0000"

    assert second["value"] == pytest.approx(-3.0)
    assert second["color"] == "#008000"

    assert third["value"] is None
    assert third["color"] is None
    assert third["n_mapped"] == 0


@pytest.mark.parametrize("node_sum,expected", [
    ("mean", 0.75),
    ("median", 0.75),
    ("max", 1.0),
    ("min", 0.5),
])
def test_summarize_nodes_methods(node_sum, expected):
    nodes = summarize_nodes(parse_kgml(KGML), GENE_DATA, node_sum=node_sum, limit=5.0)

    assert nodes.row(0, named=True)["value"] == pytest.approx(expected)


def test_summarize_nodes_unknown_method():
    with pytest.raises(ValueError, match="node_sum"):
        summarize_nodes(parse_kgml(KGML), GENE_DATA, node_sum="mode")


def test_summarize_nodes_custom_colors():
    nodes = summarize_nodes(parse_kgml(KGML), GENE_DATA, limit=1.0, low="blue", high="yellow")

    assert nodes.row(0, named=True)["color"] == "#ffff00"
    assert nodes.row(1, named=True)["color"] == "#0000ff"


def test_render_pathway_writes_outputs(tmp_path):
    client = MagicMock()
    client.get_kgml.return_value = KGML
    client.get_image.return_value = make_png()

    paths = render_pathway("04130", GENE_DATA, client, tmp_path / "pathview", dpi=50)

    client.get_kgml.assert_called_once_with("hsa04130")
    client.get_image.assert_called_once_with("hsa04130")
    assert paths["png"].name == "hsa04130.pathview.png"
    assert paths["pdf"].name == "hsa04130.pathview.pdf"
    assert paths["tsv"].name == "hsa04130.pathview.tsv"
    for path in paths.values():
        assert path.exists()
        assert path.stat().st_size > 0

    nodes = pl.read_csv(paths["tsv"], separator="\t")
    assert nodes.height == 3
    assert nodes["n_mapped"].to_list() == [2, 1, 0]


def test_render_pathway_invalid_id(tmp_path):
    client = MagicMock()

    with pytest.raises(ValueError, match="Not a KEGG pathway id"):
        render_pathway("4130", GENE_DATA, client, tmp_path)

    client.get_kgml.assert_not_called()
