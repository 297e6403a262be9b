"""Enrichment plots: bar, dot, upset, enrichment map, gene-concept network, word cloud."""

import logging
from collections import Counter
from pathlib import Path

import matplotlib
import numpy as np
import polars as pl

# Use Agg backend (non-interactive, safe for headless/CLI use)
matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import networkx as nx  # noqa: E402
import seaborn as sns  # noqa: E402
from matplotlib.colors import Normalize  # noqa: E402
from upsetplot import UpSet, from_contents  # noqa: E402
from wordcloud import WordCloud  # noqa: E402

from deg_enrichment.config.schema import PlotConfig  # noqa: E402
from deg_enrichment.enrichment.models import EnrichmentResult, split_genes  # noqa: E402

logger = logging.getLogger(__name__)

# Low adjusted p-values in red, as in enrichplot
PADJ_CMAP = "RdBu"
FOLD_CHANGE_CMAP = "RdBu_r"
CATEGORY_SIZES = ("count", "pvalue")


def _top_terms(result: EnrichmentResult, n: int) -> pl.DataFrame:
    """Top n significant terms, raising when there is nothing to draw."""
    top = result.top(n)
    if top.height == 0:
        raise ValueError(f"No significant terms to plot for {result.source}")
    return top


def _wrap(label: str, width: int = 50) -> str:
    return label if len(label) <= width else label[: width - 3] + "..."


def _term_labels(terms, width: int = 50) -> list[str]:
    """Shortened descriptions; the term id is appended where two of them collide."""
    labels = [_wrap(d, width) for d in terms["description"]]
    counts = Counter(labels)
    return [
        f"{label} ({term_id})" if counts[label] > 1 else label
        for label, term_id in zip(labels, terms["term_id"])
    ]


def _save(fig, output_path: Path, dpi: int) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    return output_path


def plot_barplot(
    result: EnrichmentResult,
    output_path: Path,
    show_category: int = 20,
    dpi: int = 300,
) -> Path:
    """
    Horizontal bar chart of hit counts for the top terms.

    Args:
        result: Enrichment result
        output_path: Path where PNG will be saved
        show_category: Number of terms to draw
        dpi: Output resolution

    Returns:
        Path to the saved PNG file

    Raises:
        ValueError: If the result has no significant terms
    """
    pdf = _top_terms(result, show_category).to_pandas().iloc[::-1]
    labels = _term_labels(pdf)

    sns.set_theme(style="whitegrid", context="paper")
    fig, ax = plt.subplots(figsize=(8, max(3, 0.35 * len(pdf))))

    norm = Normalize(vmin=pdf["p_adjust"].min(), vmax=pdf["p_adjust"].max())
    cmap = matplotlib.colormaps[PADJ_CMAP]
    ax.barh(labels, pdf["count"], color=cmap(norm(pdf["p_adjust"])))

    sm = plt.cm.ScalarMappable(norm=norm, cmap=cmap)
    fig.colorbar(sm, ax=ax, label="p.adjust")

    ax.set_xlabel("Count")
    ax.set_title(result.source)

    output_path = _save(fig, output_path, dpi)
    logger.info(f"Saved bar plot to {output_path}")
    return output_path


def plot_dotplot(
    result: EnrichmentResult,
    output_path: Path,
    show_category: int = 20,
    dpi: int = 300,
) -> Path:
    """
    Dot plot: x = gene ratio, dot size = count, colour = adjusted p-value.

    Raises:
        ValueError: If the result has no significant terms
    """
    pdf = (
        _top_terms(result, show_category)
        .sort("gene_ratio_value")
        .to_pandas()
    )
    labels = _term_labels(pdf)

    sns.set_theme(style="whitegrid", context="paper")
    fig, ax = plt.subplots(figsize=(8, max(3, 0.35 * len(pdf))))

    scatter = ax.scatter(
        pdf["gene_ratio_value"],
        labels,
        s=pdf["count"] * 20,
        c=pdf["p_adjust"],
        cmap=PADJ_CMAP,
        edgecolors="black",
        linewidths=0.5,
    )
    fig.colorbar(scatter, ax=ax, label="p.adjust")
    handles, size_labels = scatter.legend_elements(
        prop="sizes", num=4, func=lambda s: s / 20
    )
    ax.legend(handles, size_labels, title="Count", loc="lower right", frameon=True)

    ax.set_xlabel("GeneRatio")
    ax.set_title(result.source)

    output_path = _save(fig, output_path, dpi)
    logger.info(f"Saved dot plot to {output_path}")
    return output_path


def plot_upset(
    result: EnrichmentResult,
    output_path: Path,
    n_terms: int = 10,
    dpi: int = 300,
) -> Path:
    """
    UpSet plot of hit-gene overlap between the top terms.

    Raises:
        ValueError: If the result has no significant terms
    """
    top = _top_terms(result, n_terms)
    contents = dict(zip(
        _term_labels(top, 40),
        (split_genes(g) for g in top["gene_ids"]),
    ))
    data = from_contents(contents)

    fig = plt.figure(figsize=(10, 6))
    UpSet(data, subset_size="count", show_counts=True, sort_by="cardinality").plot(fig=fig)
    fig.suptitle(result.source)

    output_path = _save(fig, output_path, dpi)
    logger.info(f"Saved upset plot to {output_path}")
    return output_path


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def build_enrichment_map(
    result: EnrichmentResult,
    show_category: int = 30,
    min_edge: float = 0.2,
) -> nx.Graph:
    """
    Term similarity graph: nodes are terms, edges join terms whose hit-gene
    sets have Jaccard similarity of at least min_edge.

    Raises:
        ValueError: If the result has no significant terms
    """
    top = _top_terms(result, show_category)

    graph = nx.Graph()
    hits: dict[str, set[str]] = {}
    for row in top.iter_rows(named=True):
        hits[row["term_id"]] = set(split_genes(row["gene_ids"]))
        graph.add_node(
            row["term_id"],
            label=row["description"],
            count=row["count"],
            p_adjust=row["p_adjust"],
        )

    terms = list(hits)
    for i, a in enumerate(terms):
        for b in terms[i + 1:]:
            similarity = jaccard_similarity(hits[a], hits[b])
            if similarity >= min_edge:
                graph.add_edge(a, b, weight=similarity)

    return graph


def plot_enrichment_map(
    result: EnrichmentResult,
    output_path: Path,
    show_category: int = 30,
    min_edge: float = 0.2,
    seed: int = 42,
    dpi: int = 300,
) -> Path:
    """
    Enrichment map drawn with a seeded spring layout.

    Raises:
        ValueError: If the result has no significant terms
    """
    graph = build_enrichment_map(result, show_category, min_edge)
    pos = nx.spring_layout(graph, weight="weight", seed=seed)

    nodes = list(graph.nodes)
    sizes = [graph.nodes[n]["count"] * 30 for n in nodes]
    padj = [graph.nodes[n]["p_adjust"] for n in nodes]
    widths = [graph.edges[e]["weight"] * 4 for e in graph.edges]

    fig, ax = plt.subplots(figsize=(10, 10))
    nx.draw_networkx_edges(graph, pos, width=widths, alpha=0.4, edge_color="gray", ax=ax)
    drawn = nx.draw_networkx_nodes(
        graph, pos, nodelist=nodes, node_size=sizes, node_color=padj,
        cmap=PADJ_CMAP, edgecolors="black", linewidths=0.5, ax=ax,
    )
    nx.draw_networkx_labels(
        graph, pos, labels={n: _wrap(graph.nodes[n]["label"], 30) for n in nodes},
        font_size=7, ax=ax,
    )
    fig.colorbar(drawn, ax=ax, label="p.adjust", shrink=0.6)
    ax.set_title(result.source)
    ax.axis("off")

    output_path = _save(fig, output_path, dpi)
    logger.info(
        f"Saved enrichment map to {output_path} "
        f"({graph.number_of_nodes()} terms, {graph.number_of_edges()} edges)"
    )
    return output_path


def build_cnet(
    result: EnrichmentResult,
    show_category: int = 5,
) -> nx.Graph:
    """
    Bipartite gene-concept network for the top terms.

    Term nodes carry kind="term", count and p_adjust; gene nodes carry
    kind="gene". Gene node keys are the entries of gene_ids.
    """
    top = _top_terms(result, show_category)

    graph = nx.Graph()
    for row in top.iter_rows(named=True):
        term = row["term_id"]
        graph.add_node(
            term, kind="term", label=row["description"],
            count=row["count"], p_adjust=row["p_adjust"],
        )
        for gene in split_genes(row["gene_ids"]):
            if gene not in graph:
                graph.add_node(gene, kind="gene", label=result.label_for(gene))
            graph.add_edge(term, gene)
    return graph


def plot_cnet(
    result: EnrichmentResult,
    output_path: Path,
    fold_changes: dict[str, float] | None = None,
    show_category: int = 5,
    category_size: str = "count",
    seed: int = 42,
    dpi: int = 300,
) -> Path:
    """
    Gene-concept network plot.

    Args:
        result: Enrichment result
        output_path: Path where PNG will be saved
        fold_changes: gene id -> log2 fold change; genes are coloured on a
            diverging scale centred at 0, genes without a value are grey
        show_category: Number of terms to draw
        category_size: "count" (hit count) or "pvalue" (-log10 p.adjust)
        seed: Spring layout seed
        dpi: Output resolution

    Raises:
        ValueError: If the result has no significant terms or category_size
            is not recognised
    """
    if category_size not in CATEGORY_SIZES:
        raise ValueError(f"category_size must be one of {CATEGORY_SIZES}, got {category_size!r}")

    graph = build_cnet(result, show_category)
    pos = nx.spring_layout(graph, seed=seed)

    # gene_ids may already hold symbols, so look fold changes up by both keys
    lookup: dict[str, float] = {}
    for gene, value in (fold_changes or {}).items():
        lookup[gene] = value
        lookup.setdefault(result.gene_symbols.get(gene, gene), value)

    terms = [n for n, d in graph.nodes(data=True) if d["kind"] == "term"]
    genes = [n for n, d in graph.nodes(data=True) if d["kind"] == "gene"]

    if category_size == "count":
        term_sizes = [graph.nodes[t]["count"] * 40 for t in terms]
    else:
        term_sizes = [
            -np.log10(max(graph.nodes[t]["p_adjust"], 1e-300)) * 60 for t in terms
        ]

    fig, ax = plt.subplots(figsize=(11, 10))
    nx.draw_networkx_edges(graph, pos, alpha=0.3, edge_color="gray", ax=ax)
    nx.draw_networkx_nodes(
        graph, pos, nodelist=terms, node_size=term_sizes,
        node_color="#e5c494", edgecolors="black", linewidths=0.5, ax=ax,
    )

    colored = [g for g in genes if g in lookup]
    uncolored = [g for g in genes if g not in lookup]
    if uncolored:
        nx.draw_networkx_nodes(
            graph, pos, nodelist=uncolored, node_size=60, node_color="lightgray", ax=ax,
        )
    if colored:
        values = [lookup[g] for g in colored]
        bound = max(abs(min(values)), abs(max(values)), 1e-6)
        drawn = nx.draw_networkx_nodes(
            graph, pos, nodelist=colored, node_size=60, node_color=values,
            cmap=FOLD_CHANGE_CMAP, vmin=-bound, vmax=bound, ax=ax,
        )
        fig.colorbar(drawn, ax=ax, label="log2 fold change", shrink=0.6)

    nx.draw_networkx_labels(
        graph, pos,
        labels={n: _wrap(graph.nodes[n]["label"], 30) for n in graph.nodes},
        font_size=6, ax=ax,
    )
    ax.set_title(result.source)
    ax.axis("off")

    output_path = _save(fig, output_path, dpi)
    logger.info(
        f"Saved gene-concept network to {output_path} "
        f"({len(terms)} terms, {len(genes)} genes)"
    )
    return output_path


def plot_wordcloud(
    result: EnrichmentResult,
    output_path: Path,
    max_words: int = 25,
    dpi: int = 300,
) -> Path:
    """
    Word cloud of significant term descriptions weighted by hit count.

    Raises:
        ValueError: If the result has no significant terms
    """
    significant = result.significant()
    if significant.height == 0:
        raise ValueError(f"No significant terms to plot for {result.source}")

    frequencies: dict[str, float] = {}
    for row in significant.iter_rows(named=True):
        frequencies[row["description"]] = frequencies.get(row["description"], 0) + row["count"]

    cloud = WordCloud(
        width=1600,
        height=800,
        background_color="white",
        max_words=max_words,
        colormap="Dark2",
        random_state=42,
    ).generate_from_frequencies(frequencies)

    fig, ax = plt.subplots(figsize=(12, 6))
    ax.imshow(cloud, interpolation="bilinear")
    ax.axis("off")

    output_path = _save(fig, output_path, dpi)
    logger.info(f"Saved word cloud to {output_path}")
    return output_path


def plot_gsea_dotplot(
    gsea_table: pl.DataFrame,
    output_path: Path,
    show_category: int = 20,
    dpi: int = 300,
) -> Path:
    """
    GSEA dot plot: x = NES, dot size = leading-edge count, colour = FDR.

    Raises:
        ValueError: If the table is empty
    """
    if gsea_table.height == 0:
        raise ValueError("No GSEA terms to plot")

    pdf = (
        gsea_table.sort(["pvalue", "term_id"])
        .head(show_category)
        .sort("nes")
        .to_pandas()
    )
    labels = _term_labels(pdf)

    sns.set_theme(style="whitegrid", context="paper")
    fig, ax = plt.subplots(figsize=(8, max(3, 0.35 * len(pdf))))

    scatter = ax.scatter(
        pdf["nes"],
        labels,
        s=pdf["count"].clip(lower=1) * 10,
        c=pdf["fdr"],
        cmap=PADJ_CMAP,
        edgecolors="black",
        linewidths=0.5,
    )
    ax.axvline(0, color="gray", linewidth=0.8, linestyle="--")
    fig.colorbar(scatter, ax=ax, label="FDR")
    ax.set_xlabel("NES")

    output_path = _save(fig, output_path, dpi)
    logger.info(f"Saved GSEA dot plot to {output_path}")
    return output_path


def generate_all_plots(
    result: EnrichmentResult,
    output_dir: Path,
    prefix: str,
    fold_changes: dict[str, float] | None = None,
    plot_config: PlotConfig | None = None,
) -> dict[str, Path]:
    """
    Generate every ORA plot for one result.

    Args:
        result: Enrichment result
        output_dir: Directory where plots will be saved
        prefix: Filename prefix, e.g. "go" or "kegg"
        fold_changes: gene id -> log2 fold change for the network plot
        plot_config: Plot options (defaults when None)

    Returns:
        Dictionary mapping plot name to file path

    Notes:
        - Wraps each plot in try/except to continue on individual failures
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    cfg = plot_config or PlotConfig()

    jobs = {
        "barplot": lambda path: plot_barplot(result, path, cfg.show_category, cfg.dpi),
        "dotplot": lambda path: plot_dotplot(result, path, cfg.show_category, cfg.dpi),
        "upset": lambda path: plot_upset(result, path, cfg.upset_terms, cfg.dpi),
        "emap": lambda path: plot_enrichment_map(
            result, path, cfg.show_category, cfg.emap_min_edge, dpi=cfg.dpi
        ),
        "cnet": lambda path: plot_cnet(
            result, path, fold_changes, cfg.cnet_categories, dpi=cfg.dpi
        ),
        "wordcloud": lambda path: plot_wordcloud(result, path, cfg.wordcloud_max_words, cfg.dpi),
    }

    plots = {}
    for name, job in jobs.items():
        try:
            plots[name] = job(output_dir / f"{prefix}_{name}.png")
        except Exception as e:
            logger.warning(f"Failed to create {prefix} {name} plot: {e}")

    logger.info(f"Generated {len(plots)} plots in {output_dir}")
    return plots
