"""Output generation: enrichment tables, plots, pathway diagrams and run reports."""

from deg_enrichment.output.pathview import parse_kgml, render_pathway, summarize_nodes
from deg_enrichment.output.reproducibility import (
    ReproducibilityReport,
    generate_reproducibility_report,
)
from deg_enrichment.output.visualizations import (
    generate_all_plots,
    plot_barplot,
    plot_cnet,
    plot_dotplot,
    plot_enrichment_map,
    plot_gsea_dotplot,
    plot_upset,
    plot_wordcloud,
)
from deg_enrichment.output.writers import write_enrichment_output

__all__ = [
    "write_enrichment_output",
    "generate_reproducibility_report",
    "ReproducibilityReport",
    "generate_all_plots",
    "plot_barplot",
    "plot_dotplot",
    "plot_upset",
    "plot_enrichment_map",
    "plot_cnet",
    "plot_wordcloud",
    "plot_gsea_dotplot",
    "parse_kgml",
    "render_pathway",
    "summarize_nodes",
]
