"""Command-line interface for deg-enrichment."""
