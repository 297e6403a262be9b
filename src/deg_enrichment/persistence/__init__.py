"""Persistence layer for checkpoints and provenance tracking."""

from deg_enrichment.persistence.duckdb_store import PipelineStore, checkpoint_name, universe_key
from deg_enrichment.persistence.provenance import ProvenanceTracker

__all__ = ["PipelineStore", "ProvenanceTracker", "checkpoint_name", "universe_key"]
