"""Tests for ORA statistics and the over-representation test."""

import math

import numpy as np
import polars as pl
import pytest
from scipy.stats import hypergeom

from deg_enrichment.annotation import GeneSetCollection
from deg_enrichment.enrichment import (
    EnrichmentResult,
    hypergeometric_pvalues,
    p_adjust,
    run_ora,
    storey_qvalues,
)
from deg_enrichment.enrichment.models import ORA_SCHEMA


def make_collection():
    """20 annotated genes g1..g20 in five terms."""
    memberships = (
        [("T1", f"g{i}") for i in range(1, 6)]
        + [("T2", f"g{i}") for i in range(1, 11)]
        + [("T3", f"g{i}") for i in range(15, 21)]
        + [("T4", "g11")]
        + [("T5", g) for g in ("g12", "g13", "g14")]
    )
    return GeneSetCollection(
        name="TEST",
        term_to_gene=pl.DataFrame(
            {"term_id": [t for t, _ in memberships], "gene_id": [g for _, g in memberships]}
        ),
        term_to_name=pl.DataFrame({
            "term_id": ["T1", "T2", "T3", "T4"],
            "description": ["small set", "large set", "other set", "single gene"],
        }),
        gene_symbols={"g1": "GENE1", "g11": "GENE11"},
    )


QUERY = ["g2", "g1", "g3", "g11", "g99"]


def test_hypergeometric_pvalues_match_scipy():
    p = hypergeometric_pvalues(np.array([3, 1]), np.array([5, 1]), 4, 20)

    assert p[0] == pytest.approx(hypergeom.sf(2, 20, 5, 4))
    assert p[1] == pytest.approx(4 / 20)


def test_p_adjust_bh():
    adjusted = p_adjust([0.01, 0.02, 0.03, 0.04], "BH")

    assert adjusted == pytest.approx([0.04, 0.04, 0.04, 0.04])
    assert p_adjust([0.01, 0.02, 0.03, 0.04], "fdr") == pytest.approx(adjusted)


def test_p_adjust_bonferroni_caps_at_one():
    assert p_adjust([0.01, 0.5], "bonferroni") == pytest.approx([0.02, 1.0])


def test_p_adjust_none_and_empty():
    assert p_adjust([0.3, 0.01], "none") == pytest.approx([0.3, 0.01])
    assert p_adjust([], "BH").size == 0


def test_p_adjust_unknown_method():
    with pytest.raises(ValueError):
        p_adjust([0.1], "fdr_bh")


def test_storey_qvalues():
    p = [0.01, 0.2, 0.5, 0.9]
    pi0 = (3 / 4) / 0.95

    q = storey_qvalues(p)

    assert q == pytest.approx([pi0 * 0.04, pi0 * 0.4, pi0 * 2 / 3, pi0 * 0.9])


def test_storey_qvalues_single_value():
    assert storey_qvalues([0.03]) == pytest.approx([0.03])


def test_storey_qvalues_all_below_lambda_are_nan():
    q = storey_qvalues([0.001, 0.01, 0.02])

    assert all(math.isnan(v) for v in q)


def test_run_ora_counts_and_columns():
    result = run_ora(QUERY, make_collection(), min_gs_size=1, max_gs_size=500)

    assert result.query_size == 4
    assert result.universe_size == 20
    assert result.table.columns == list(ORA_SCHEMA)
    assert result.table["term_id"].to_list() == ["T1", "T4", "T2"]

    t1 = result.table.row(0, named=True)
    assert t1["gene_ratio"] == "3/4"
    assert t1["bg_ratio"] == "5/20"
    assert t1["count"] == 3
    assert t1["gene_ratio_value"] == pytest.approx(0.75)
    assert t1["pvalue"] == pytest.approx(hypergeom.sf(2, 20, 5, 4))
    assert t1["description"] == "small set"


def test_run_ora_gene_ids_in_query_order():
    result = run_ora(QUERY, make_collection(), min_gs_size=1)

    genes = result.gene_sets(significant_only=False)
    assert genes["T1"] == ["g2", "g1", "g3"]
    assert genes["T4"] == ["g11"]


def test_run_ora_sorted_by_pvalue():
    result = run_ora(QUERY, make_collection(), min_gs_size=1)

    pvalues = result.table["pvalue"].to_list()
    assert pvalues == sorted(pvalues)
    assert all(a <= b for a, b in zip(result.table["pvalue"], result.table["p_adjust"]))


def test_run_ora_universe_restriction():
    universe = [f"g{i}" for i in range(1, 12)]

    result = run_ora(QUERY, make_collection(), universe=universe, min_gs_size=1)

    assert result.universe_size == 11
    t2 = result.table.filter(pl.col("term_id") == "T2").row(0, named=True)
    assert t2["bg_ratio"] == "10/11"


def test_run_ora_size_filter():
    result = run_ora(QUERY, make_collection(), min_gs_size=2, max_gs_size=5)

    assert result.table["term_id"].to_list() == ["T1"]


def test_run_ora_no_annotated_query():
    result = run_ora(["x", "y"], make_collection(), min_gs_size=1)

    assert result.is_empty
    assert result.table.columns == list(ORA_SCHEMA)
    assert result.significant().height == 0


def test_set_readable_replaces_known_ids():
    result = run_ora(QUERY, make_collection(), min_gs_size=1).set_readable()

    assert result.readable
    genes = result.gene_sets(significant_only=False)
    assert genes["T1"] == ["g2", "GENE1", "g3"]
    assert genes["T4"] == ["GENE11"]
    assert result.set_readable() is result


def make_result(qvalues):
    table = pl.DataFrame(
        {
            "term_id": ["A", "B", "C"],
            "description": ["a", "b", "c"],
            "category": [None, None, None],
            "gene_ratio": ["1/3", "1/3", "1/3"],
            "bg_ratio": ["1/9", "1/9", "1/9"],
            "gene_ratio_value": [1 / 3] * 3,
            "pvalue": [0.001, 0.01, 0.2],
            "p_adjust": [0.003, 0.06, 0.2],
            "qvalue": qvalues,
            "gene_ids": ["x", "y", "z"],
            "count": [1, 1, 1],
        },
        schema=ORA_SCHEMA,
    )
    return EnrichmentResult(table=table, source="TEST", pvalue_cutoff=0.05, qvalue_cutoff=0.1)


def test_significant_applies_all_cutoffs():
    assert make_result([0.002, 0.04, 0.2]).significant()["term_id"].to_list() == ["A"]
    assert make_result([0.5, 0.04, 0.2]).significant().height == 0


def test_significant_skips_missing_qvalues():
    assert make_result([None, None, None]).significant()["term_id"].to_list() == ["A"]


def test_top_and_params():
    result = make_result([0.002, 0.04, 0.2])

    assert result.top(5, significant_only=False)["term_id"].to_list() == ["A", "B", "C"]
    assert result.params["p_adjust_method"] == "BH"
    assert result.params["source"] == "TEST"
