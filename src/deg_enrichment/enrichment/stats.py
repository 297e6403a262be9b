"""Statistical primitives for over-representation analysis."""

import numpy as np
from scipy.stats import hypergeom
from statsmodels.stats.multitest import multipletests

# R p.adjust method names -> statsmodels multipletests method names
P_ADJUST_METHODS = {
    "BH": "fdr_bh",
    "fdr": "fdr_bh",
    "BY": "fdr_by",
    "bonferroni": "bonferroni",
    "holm": "holm",
    "hochberg": "simes-hochberg",
    "hommel": "hommel",
    "none": None,
}

STOREY_LAMBDA = 0.05


def hypergeometric_pvalues(
    hits: np.ndarray,
    set_sizes: np.ndarray,
    query_size: int,
    universe_size: int,
) -> np.ndarray:
    """Upper-tail hypergeometric p-values P(X >= k).

    X counts annotated query genes falling in a term when query_size genes are
    drawn from universe_size annotated genes, set_size of which carry the term.

    Args:
        hits: k per term (genes in both query and term)
        set_sizes: M per term (term size within the universe)
        query_size: n (annotated query genes)
        universe_size: N (annotated universe genes)

    Returns:
        Array of p-values, one per term
    """
    hits = np.asarray(hits, dtype=np.int64)
    set_sizes = np.asarray(set_sizes, dtype=np.int64)
    return hypergeom.sf(hits - 1, universe_size, set_sizes, query_size)


def p_adjust(pvalues, method: str = "BH") -> np.ndarray:
    """Multiple testing correction with R p.adjust method names.

    Args:
        pvalues: Sequence of raw p-values
        method: BH/fdr, BY, bonferroni, holm, hochberg, hommel or none

    Returns:
        Adjusted p-values in input order

    Raises:
        ValueError: If method is unknown
    """
    if method not in P_ADJUST_METHODS:
        raise ValueError(f"Unknown p-value adjustment method {method!r}; expected one of {list(P_ADJUST_METHODS)}")

    pvalues = np.asarray(pvalues, dtype=float)
    if pvalues.size == 0 or P_ADJUST_METHODS[method] is None:
        return pvalues.copy()

    _, adjusted, _, _ = multipletests(pvalues, method=P_ADJUST_METHODS[method])
    return adjusted


def storey_qvalues(pvalues, lambda_: float = STOREY_LAMBDA) -> np.ndarray:
    """Storey q-values with a fixed lambda.

    pi0 = #(p >= lambda) / (m * (1 - lambda)), capped at 1. A single p-value is
    returned unchanged. When pi0 is 0 (every p-value below lambda) the
    proportion of true nulls cannot be estimated and all q-values are NaN.

    Args:
        pvalues: Sequence of raw p-values
        lambda_: Tuning parameter for the pi0 estimate

    Returns:
        Array of q-values in input order
    """
    p = np.asarray(pvalues, dtype=float)
    m = p.size
    if m <= 1:
        return p.copy()

    pi0 = min(1.0, float(np.mean(p >= lambda_)) / (1.0 - lambda_))
    if pi0 <= 0:
        return np.full(m, np.nan)

    order = np.argsort(p)[::-1]
    ranks = np.arange(m, 0, -1)
    q_sorted = np.minimum(1.0, np.minimum.accumulate(p[order] * m / ranks))

    q = np.empty(m)
    q[order] = pi0 * q_sorted
    return q
