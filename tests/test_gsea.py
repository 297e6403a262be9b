"""Tests for preranked GSEA (gseapy is mocked)."""

import math
from unittest.mock import MagicMock, patch

import pandas as pd
import polars as pl
import pytest

from deg_enrichment.annotation import GeneSetCollection
from deg_enrichment.enrichment import normalize_gsea_table, run_gsea
from deg_enrichment.enrichment.gsea import _set_size
from deg_enrichment.enrichment.models import GSEA_SCHEMA


@pytest.fixture
def ranked():
    return pl.DataFrame({
        "gene_id": ["g3", "g1", "g2", "g4", "g5"],
        "log2_fold_change": [1.5, 3.0, 1.5, -2.0, None],
    })


@pytest.fixture
def collection():
    return GeneSetCollection(
        name="GO:BP",
        term_to_gene=pl.DataFrame({
            "term_id": ["GO:1", "GO:1", "GO:2", "GO:3"],
            "gene_id": ["g1", "g2", "g4", "g99"],
        }),
        term_to_name=pl.DataFrame({
            "term_id": ["GO:1", "GO:2"],
            "description": ["apoptosis", "autophagy"],
        }),
    )


@pytest.fixture
def res2d():
    return pd.DataFrame({
        "Name": ["prerank", "prerank"],
        "Term": ["GO:2", "GO:1"],
        "ES": [-0.8, 0.9],
        "NES": [-1.2, 1.6],
        "NOM p-val": [0.2, 0.01],
        "FDR q-val": [0.3, 0.02],
        "FWER p-val": [0.4, 0.03],
        "Tag %": ["1/1", "2/2"],
        "Gene %": ["20%", "40%"],
        "Lead_genes": ["g4", "g1;g2"],
    })


def test_set_size_parses_tag():
    assert _set_size("3/12") == 12
    assert _set_size("12") is None
    assert _set_size(None) is None


def test_normalize_gsea_table(res2d):
    table = normalize_gsea_table(res2d, {"GO:1": "apoptosis"})

    assert table.columns == list(GSEA_SCHEMA)
    assert table["term_id"].to_list() == ["GO:1", "GO:2"]
    first = table.row(0, named=True)
    assert first["description"] == "apoptosis"
    assert first["set_size"] == 2
    assert first["leading_edge"] == "g1/g2"
    assert first["count"] == 2
    assert first["nes"] == pytest.approx(1.6)
    assert table.row(1, named=True)["description"] == "GO:2"


def test_normalize_gsea_table_empty():
    table = normalize_gsea_table(pd.DataFrame(), {})

    assert table.height == 0
    assert table.columns == list(GSEA_SCHEMA)


@patch("deg_enrichment.enrichment.gsea.gp.prerank")
def test_run_gsea_calls_prerank(mock_prerank, ranked, collection, res2d):
    mock_prerank.return_value = MagicMock(res2d=res2d)

    result = run_gsea(ranked, collection, min_size=1, max_size=50, permutation_num=100, seed=7)

    kwargs = mock_prerank.call_args.kwargs
    rnk = kwargs["rnk"]
    # g2 and g3 tie at 1.5 and go in by gene id
    assert list(rnk.index) == ["g1", "g2", "g3", "g4"]
    assert list(rnk.values) == [3.0, 1.5, 1.5, -2.0]
    assert kwargs["gene_sets"] == {"GO:1": ["g1", "g2"], "GO:2": ["g4"]}
    assert kwargs["permutation_num"] == 100
    assert kwargs["seed"] == 7
    assert kwargs["outdir"] is None
    assert kwargs["no_plot"] is True

    assert result.source == "GO:BP"
    assert result.ranked_size == 4
    assert result.significant()["term_id"].to_list() == ["GO:1"]


@patch("deg_enrichment.enrichment.gsea.gp.prerank")
def test_run_gsea_empty_ranked_list(mock_prerank, collection):
    ranked = pl.DataFrame({"gene_id": ["g1"], "log2_fold_change": [math.inf]})

    with pytest.raises(ValueError, match="empty"):
        run_gsea(ranked, collection)

    mock_prerank.assert_not_called()


@patch("deg_enrichment.enrichment.gsea.gp.prerank")
def test_run_gsea_no_overlap(mock_prerank, collection):
    ranked = pl.DataFrame({"gene_id": ["x1", "x2"], "log2_fold_change": [1.0, -1.0]})

    with pytest.raises(ValueError, match="overlaps"):
        run_gsea(ranked, collection)

    mock_prerank.assert_not_called()
