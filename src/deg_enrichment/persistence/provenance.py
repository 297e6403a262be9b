"""Run provenance: package version, annotation sources, config hash and steps."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

SIDECAR_SUFFIX = ".provenance.json"


class ProvenanceTracker:
    """
    What one enrichment run did and with which inputs.

    Annotation sources start out as described by the configuration (mygene GO
    for the configured species and ontology, KEGG REST for the organism, an
    optional GMT file) and are refined while the run fetches them, e.g. with
    the KEGG release string. Every pipeline step appends an entry whose
    details usually carry input_count, output_count and criteria.
    """

    def __init__(self, pipeline_version: str, config: "PipelineConfig"):
        """
        Args:
            pipeline_version: Package version string (e.g., "0.1.0")
            config: PipelineConfig of the run
        """
        self.pipeline_version = pipeline_version
        self.config_hash = config.config_hash()
        self.data_source_versions = self._configured_sources(config)
        self.processing_steps: list[dict] = []
        self.output_files: list[str] = []
        self.created_at = datetime.now(timezone.utc)

    @staticmethod
    def _configured_sources(config: "PipelineConfig") -> dict[str, str]:
        annotation = config.annotation
        sources = {
            "go": f"mygene.info GO annotations (taxid {annotation.species}, {annotation.ontology})",
            "kegg": f"KEGG REST ({annotation.kegg_organism})",
        }
        if annotation.gmt_path is not None:
            sources["gmt"] = str(annotation.gmt_path)
        return sources

    def record_step(self, step_name: str, details: Optional[dict] = None) -> None:
        step = {
            "step_name": step_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            step["details"] = details
        self.processing_steps.append(step)

    def record_data_version(self, source: str, version: str) -> None:
        """Replace or add an annotation source description (e.g. the KEGG release)."""
        self.data_source_versions[source] = version

    def record_output(self, path: Path | str) -> None:
        path = str(path)
        if path not in self.output_files:
            self.output_files.append(path)

    def get_steps(self) -> list[dict]:
        return self.processing_steps

    def create_metadata(self) -> dict:
        return {
            "pipeline_version": self.pipeline_version,
            "config_hash": self.config_hash,
            "created_at": self.created_at.isoformat(),
            "data_source_versions": self.data_source_versions,
            "processing_steps": self.processing_steps,
            "output_files": self.output_files,
        }

    def save_sidecar(self, output_path: Path) -> Path:
        """
        Write the metadata as JSON beside an output file.

        Args:
            output_path: Main output, e.g. results/go_enrichment.tsv; the
                sidecar becomes results/go_enrichment.provenance.json

        Returns:
            Path to the sidecar
        """
        sidecar_path = Path(output_path).with_suffix(SIDECAR_SUFFIX)
        sidecar_path.parent.mkdir(parents=True, exist_ok=True)
        sidecar_path.write_text(json.dumps(self.create_metadata(), indent=2, default=str))
        return sidecar_path

    def save_to_store(self, store: "PipelineStore") -> None:
        """Append one row for this run to the _provenance table."""
        metadata = self.create_metadata()

        store.conn.execute("""
            CREATE TABLE IF NOT EXISTS _provenance (
                version VARCHAR,
                config_hash VARCHAR,
                created_at TIMESTAMP,
                sources_json VARCHAR,
                steps_json VARCHAR,
                outputs_json VARCHAR
            )
        """)
        store.conn.execute(
            "INSERT INTO _provenance VALUES (?, ?, ?, ?, ?, ?)",
            [
                metadata["pipeline_version"],
                metadata["config_hash"],
                metadata["created_at"],
                json.dumps(metadata["data_source_versions"]),
                json.dumps(metadata["processing_steps"], default=str),
                json.dumps(metadata["output_files"]),
            ],
        )

    @staticmethod
    def load_sidecar(sidecar_path: Path) -> dict:
        return json.loads(Path(sidecar_path).read_text())

    @classmethod
    def from_config(
        cls,
        config: "PipelineConfig",
        version: Optional[str] = None,
    ) -> "ProvenanceTracker":
        """Tracker for config, stamped with deg_enrichment.__version__ unless version is given."""
        if version is None:
            from deg_enrichment import __version__
            version = __version__

        return cls(version, config)
