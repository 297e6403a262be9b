"""KEGG pathway diagrams coloured by fold change.

Fetches a pathway's KGML and static PNG from KEGG, aggregates the fold
changes of the genes behind every gene box, and writes:
- <id>.pathview.png: the KEGG image with coloured gene boxes
- <id>.pathview.pdf: the KGML graph redrawn at KGML coordinates
- <id>.pathview.tsv: node-level data (genes, summarised value, colour)
"""

import io
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

import matplotlib
import numpy as np
import polars as pl
import structlog

# Use Agg backend (non-interactive, safe for headless/CLI use)
matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import networkx as nx  # noqa: E402
from matplotlib.colors import LinearSegmentedColormap, Normalize, to_hex  # noqa: E402
from matplotlib.patches import Rectangle  # noqa: E402

from deg_enrichment.annotation.kegg import KEGGClient, normalize_pathway_id  # noqa: E402

logger = structlog.get_logger()

NODE_SUM_FUNCS = {
    "sum": np.sum,
    "mean": np.mean,
    "median": np.median,
    "max": np.max,
    "min": np.min,
}

NO_DATA_COLOR = "#ffffff"
NO_DATA_EDGE = "#808080"


@dataclass
class KGMLNode:
    """One KGML entry with box graphics (pixel centre coordinates, y down)."""

    entry_id: str
    entry_type: str
    kegg_ids: list[str]
    label: str
    x: float
    y: float
    width: float
    height: float


@dataclass
class KGMLPathway:
    pathway_id: str
    title: str
    image_width: int
    image_height: int
    nodes: list[KGMLNode] = field(default_factory=list)
    relations: list[tuple[str, str, str]] = field(default_factory=list)

    def gene_nodes(self) -> list[KGMLNode]:
        return [n for n in self.nodes if n.entry_type == "gene"]


def _strip_org(kegg_id: str) -> str:
    return kegg_id.split(":", 1)[1] if ":" in kegg_id else kegg_id


def parse_kgml(kgml: str) -> KGMLPathway:
    """Parse KGML text into nodes and relations.

    Entries without rectangular graphics (lines in metabolic maps) are
    skipped. Relations keep the type of their first subtype, or the
    relation type when there is none.

    Raises:
        ValueError: If the text is not a KGML pathway document
    """
    try:
        root = ET.fromstring(kgml)
    except ET.ParseError as e:
        raise ValueError(f"Invalid KGML: {e}") from e
    if root.tag != "pathway":
        raise ValueError(f"Invalid KGML: root element is <{root.tag}>, expected <pathway>")

    pathway = KGMLPathway(
        pathway_id=_strip_org(root.get("name", "")),
        title=root.get("title", ""),
        image_width=int(float(root.get("image_width", 0) or 0)),
        image_height=int(float(root.get("image_height", 0) or 0)),
    )

    for entry in root.findall("entry"):
        graphics = entry.find("graphics")
        if graphics is None or graphics.get("x") is None or graphics.get("y") is None:
            continue
        name = graphics.get("name", "") or ""
        pathway.nodes.append(KGMLNode(
            entry_id=entry.get("id", ""),
            entry_type=entry.get("type", ""),
            kegg_ids=[_strip_org(i) for i in entry.get("name", "").split()],
            label=name.split(",")[0].rstrip(".").strip(),
            x=float(graphics.get("x")),
            y=float(graphics.get("y")),
            width=float(graphics.get("width", 46) or 46),
            height=float(graphics.get("height", 17) or 17),
        ))

    for relation in root.findall("relation"):
        subtype = relation.find("subtype")
        kind = subtype.get("name") if subtype is not None else relation.get("type", "")
        pathway.relations.append((relation.get("entry1", ""), relation.get("entry2", ""), kind))

    return pathway


def fold_change_colormap(low: str = "green", mid: str = "gray", high: str = "red") -> LinearSegmentedColormap:
    return LinearSegmentedColormap.from_list("pathview", [low, mid, high])


def summarize_nodes(
    pathway: KGMLPathway,
    gene_data: dict[str, float],
    node_sum: str = "sum",
    limit: float = 1.0,
    low: str = "green",
    mid: str = "gray",
    high: str = "red",
) -> pl.DataFrame:
    """
    Combine the fold changes of the genes behind every gene box.

    Args:
        pathway: Parsed KGML
        gene_data: KEGG gene id (without organism prefix) -> log2 fold change
        node_sum: sum, mean, median, max or min
        limit: Values are clipped to [-limit, limit] before colouring
        low: Colour at -limit
        mid: Colour at 0
        high: Colour at +limit

    Returns:
        DataFrame with one row per gene box: entry_id, label, kegg_ids,
        mapped_genes, n_mapped, value (NULL without data), color, x, y,
        width, height

    Raises:
        ValueError: If node_sum is unknown
    """
    if node_sum not in NODE_SUM_FUNCS:
        raise ValueError(f"node_sum must be one of {list(NODE_SUM_FUNCS)}, got {node_sum!r}")
    combine = NODE_SUM_FUNCS[node_sum]
    cmap = fold_change_colormap(low, mid, high)
    norm = Normalize(vmin=-limit, vmax=limit)

    rows = []
    for node in pathway.gene_nodes():
        mapped = [g for g in node.kegg_ids if g in gene_data]
        value = float(combine([gene_data[g] for g in mapped])) if mapped else None
        color = (
            to_hex(cmap(norm(float(np.clip(value, -limit, limit)))))
            if value is not None
            else None
        )
        rows.append({
            "entry_id": node.entry_id,
            "label": node.label,
            "kegg_ids": "/".join(node.kegg_ids),
            "mapped_genes": "/".join(mapped),
            "n_mapped": len(mapped),
            "value": value,
            "color": color,
            "x": node.x,
            "y": node.y,
            "width": node.width,
            "height": node.height,
        })

    return pl.DataFrame(
        rows,
        schema={
            "entry_id": pl.Utf8,
            "label": pl.Utf8,
            "kegg_ids": pl.Utf8,
            "mapped_genes": pl.Utf8,
            "n_mapped": pl.Int64,
            "value": pl.Float64,
            "color": pl.Utf8,
            "x": pl.Float64,
            "y": pl.Float64,
            "width": pl.Float64,
            "height": pl.Float64,
        },
    )


def _add_colorbar(fig, ax, cmap, limit: float) -> None:
    sm = plt.cm.ScalarMappable(norm=Normalize(vmin=-limit, vmax=limit), cmap=cmap)
    fig.colorbar(sm, ax=ax, label="log2 fold change", shrink=0.4, pad=0.01)


def draw_overlay(
    image_png: bytes,
    nodes: pl.DataFrame,
    output_path: Path,
    title: str,
    cmap: LinearSegmentedColormap,
    limit: float,
    dpi: int = 300,
) -> Path:
    """Paint coloured boxes over the native KEGG image."""
    image = plt.imread(io.BytesIO(image_png), format="png")
    height, width = image.shape[:2]

    fig, ax = plt.subplots(figsize=(width / 100, height / 100))
    ax.imshow(image, extent=(0, width, height, 0), origin="upper")

    for row in nodes.filter(pl.col("value").is_not_null()).iter_rows(named=True):
        ax.add_patch(Rectangle(
            (row["x"] - row["width"] / 2, row["y"] - row["height"] / 2),
            row["width"],
            row["height"],
            facecolor=row["color"],
            edgecolor="black",
            linewidth=0.6,
        ))
        ax.text(row["x"], row["y"], row["label"], ha="center", va="center", fontsize=4.5)

    _add_colorbar(fig, ax, cmap, limit)
    ax.set_title(title)
    ax.set_xlim(0, width)
    ax.set_ylim(height, 0)
    ax.axis("off")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    return output_path


def draw_graph(
    pathway: KGMLPathway,
    nodes: pl.DataFrame,
    output_path: Path,
    cmap: LinearSegmentedColormap,
    limit: float,
) -> Path:
    """Redraw the KGML graph (boxes at KGML positions, relation edges) to PDF."""
    colors = {
        row["entry_id"]: row["color"]
        for row in nodes.iter_rows(named=True)
    }

    graph = nx.DiGraph()
    for node in pathway.nodes:
        if node.entry_type in ("gene", "compound", "map"):
            graph.add_node(node.entry_id, node=node)
    for entry1, entry2, kind in pathway.relations:
        if entry1 in graph and entry2 in graph:
            graph.add_edge(entry1, entry2, kind=kind)

    pos = {n: (d["node"].x, d["node"].y) for n, d in graph.nodes(data=True)}
    width = pathway.image_width or max((x for x, _ in pos.values()), default=100) + 50
    height = pathway.image_height or max((y for _, y in pos.values()), default=100) + 50

    fig, ax = plt.subplots(figsize=(max(width / 100, 4), max(height / 100, 3)))
    nx.draw_networkx_edges(
        graph, pos, ax=ax, arrows=True, arrowsize=6, width=0.5,
        edge_color="#555555", node_size=0,
    )

    for entry_id, data in graph.nodes(data=True):
        node = data["node"]
        if node.entry_type == "gene":
            ax.add_patch(Rectangle(
                (node.x - node.width / 2, node.y - node.height / 2),
                node.width,
                node.height,
                facecolor=colors.get(entry_id) or NO_DATA_COLOR,
                edgecolor="black" if colors.get(entry_id) else NO_DATA_EDGE,
                linewidth=0.5,
            ))
            ax.text(node.x, node.y, node.label, ha="center", va="center", fontsize=4)
        elif node.entry_type == "compound":
            ax.plot(node.x, node.y, "o", markersize=2.5, color="#333333")
        else:
            ax.add_patch(Rectangle(
                (node.x - node.width / 2, node.y - node.height / 2),
                node.width,
                node.height,
                facecolor="none",
                edgecolor=NO_DATA_EDGE,
                linewidth=0.5,
                linestyle="--",
            ))
            ax.text(node.x, node.y, node.label, ha="center", va="center", fontsize=4)

    _add_colorbar(fig, ax, cmap, limit)
    ax.set_xlim(0, width)
    ax.set_ylim(height, 0)
    ax.set_aspect("equal")
    ax.set_title(pathway.title or pathway.pathway_id)
    ax.axis("off")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, format="pdf", bbox_inches="tight")
    plt.close(fig)
    return output_path


def render_pathway(
    pathway_id: str,
    gene_data: dict[str, float],
    kegg_client: KEGGClient,
    output_dir: Path,
    organism: str = "hsa",
    limit: float = 1.0,
    node_sum: str = "sum",
    low: str = "green",
    mid: str = "gray",
    high: str = "red",
    dpi: int = 300,
) -> dict[str, Path]:
    """
    Draw one KEGG pathway coloured by fold change.

    Args:
        pathway_id: "04130", "hsa04130" or "path:hsa04130"
        gene_data: KEGG gene id -> log2 fold change (Entrez ids for hsa)
        kegg_client: KEGGClient used to fetch KGML and the PNG
        output_dir: Directory for the three output files
        organism: KEGG organism code used for bare map numbers
        limit: Fold change drawn with the extreme colours
        node_sum: How several genes on one box are combined
        low: Colour for down-regulation
        mid: Colour for no change
        high: Colour for up-regulation
        dpi: Resolution of the PNG overlay

    Returns:
        Dictionary with "png", "pdf" and "tsv" paths

    Raises:
        ValueError: If the pathway id, KGML or node_sum is invalid
    """
    pid = normalize_pathway_id(pathway_id, organism)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger.info("render_pathway_start", pathway_id=pid, genes_with_data=len(gene_data))

    pathway = parse_kgml(kegg_client.get_kgml(pid))
    nodes = summarize_nodes(pathway, gene_data, node_sum, limit, low, mid, high)
    cmap = fold_change_colormap(low, mid, high)
    title = f"{pid}: {pathway.title}" if pathway.title else pid

    tsv_path = output_dir / f"{pid}.pathview.tsv"
    nodes.write_csv(tsv_path, separator="\t")

    png_path = draw_overlay(
        kegg_client.get_image(pid),
        nodes,
        output_dir / f"{pid}.pathview.png",
        title,
        cmap,
        limit,
        dpi,
    )
    pdf_path = draw_graph(pathway, nodes, output_dir / f"{pid}.pathview.pdf", cmap, limit)

    colored = nodes.filter(pl.col("value").is_not_null()).height
    logger.info(
        "render_pathway_complete",
        pathway_id=pid,
        gene_boxes=nodes.height,
        colored_boxes=colored,
    )
    if colored == 0:
        logger.warning("render_pathway_no_data", pathway_id=pid)

    return {"png": png_path, "pdf": pdf_path, "tsv": tsv_path}
