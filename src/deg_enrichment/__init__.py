"""deg-enrichment: GO/KEGG enrichment analysis of differential-expression results."""

__version__ = "0.1.0"
