"""Reproducibility report (JSON + Markdown) for one enrichment run."""

import json
import sys
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from importlib import metadata
from pathlib import Path

import duckdb
import polars as pl

from deg_enrichment.config.schema import PipelineConfig
from deg_enrichment.enrichment.models import EnrichmentResult, GSEAResult
from deg_enrichment.persistence.provenance import ProvenanceTracker

SOFTWARE_PACKAGES = ("scipy", "statsmodels", "gseapy", "mygene", "networkx", "matplotlib")
TOP_TERMS = 5


@dataclass
class FilteringStep:
    """One provenance step reduced to its gene/term counts."""

    step_name: str
    input_count: int
    output_count: int
    criteria: str

    @classmethod
    def from_provenance(cls, step: dict) -> "FilteringStep":
        details = step.get("details", {})
        return cls(
            step_name=step["step_name"],
            input_count=details.get("input_count", 0),
            output_count=details.get("output_count", 0),
            criteria=details.get("criteria", ""),
        )


@dataclass
class ReproducibilityReport:
    """
    Parameters, annotation sources, environment, step counts and result
    sizes of a run, plus the leading significant terms per analysis.
    """

    run_id: str
    timestamp: str
    pipeline_version: str
    parameters: dict
    data_versions: dict
    software_environment: dict
    filtering_steps: list[FilteringStep] = field(default_factory=list)
    result_statistics: dict = field(default_factory=dict)
    top_terms: dict[str, list[str]] = field(default_factory=dict)
    output_files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=str))
        return path

    def to_markdown(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        lines = [
            "# Enrichment Reproducibility Report",
            "",
            f"**Run ID:** `{self.run_id}`",
            f"**Timestamp:** {self.timestamp}",
            f"**Pipeline Version:** {self.pipeline_version}",
            "",
            "## Parameters",
            "",
        ]
        for section, values in self.parameters.items():
            lines += [f"**{section}:**", ""]
            lines += [f"- {key}: {value}" for key, value in values.items()]
            lines.append("")

        lines += _bullets("Annotation Sources", self.data_versions)
        lines += _bullets("Software Environment", self.software_environment)

        if self.filtering_steps:
            lines += _table(
                "Filtering Steps",
                ["Step", "Input Count", "Output Count", "Criteria"],
                [
                    [s.step_name, s.input_count, s.output_count, s.criteria]
                    for s in self.filtering_steps
                ],
            )

        if self.result_statistics:
            lines += _table(
                "Results",
                ["Analysis", "Source", "Tested", "Significant"],
                [
                    [name, stats.get("source", ""), stats.get("tested", 0), stats.get("significant", 0)]
                    for name, stats in self.result_statistics.items()
                ],
            )

        top = {name: terms for name, terms in self.top_terms.items() if terms}
        if top:
            lines += ["## Top Terms", ""]
            for name, terms in top.items():
                lines.append(f"**{name}:** " + "; ".join(terms))
            lines.append("")

        if self.output_files:
            lines += ["## Output Files", ""]
            lines += [f"- `{p}`" for p in self.output_files]
            lines.append("")

        path.write_text("\n".join(lines))
        return path


def _bullets(title: str, values: dict) -> list[str]:
    return [f"## {title}", ""] + [f"- **{k}:** {v}" for k, v in values.items()] + [""]


def _table(title: str, header: list[str], rows: list[list]) -> list[str]:
    lines = [
        f"## {title}",
        "",
        "| " + " | ".join(header) + " |",
        "|" + "|".join("-" * (len(h) + 2) for h in header) + "|",
    ]
    lines += ["| " + " | ".join(str(v) for v in row) + " |" for row in rows]
    lines.append("")
    return lines


def software_versions() -> dict[str, str]:
    """Interpreter and library versions of the running environment."""
    versions = {
        "python": sys.version.split()[0],
        "polars": pl.__version__,
        "duckdb": duckdb.__version__,
    }
    for package in SOFTWARE_PACKAGES:
        try:
            versions[package] = metadata.version(package)
        except metadata.PackageNotFoundError:
            versions[package] = "not installed"
    return versions


def summarize_result(result: EnrichmentResult | GSEAResult) -> dict:
    stats = {
        "source": result.source,
        "tested": result.table.height,
        "significant": result.significant().height,
    }
    if isinstance(result, EnrichmentResult):
        stats["query_size"] = result.query_size
        stats["universe_size"] = result.universe_size
    else:
        stats["ranked_size"] = result.ranked_size
    return stats


def top_term_labels(result: EnrichmentResult | GSEAResult, n: int = TOP_TERMS) -> list[str]:
    """'term_id description' for the n most significant terms."""
    df = result.significant().sort(["pvalue", "term_id"]).head(n)
    return [f"{row['term_id']} {row['description']}" for row in df.iter_rows(named=True)]


def generate_reproducibility_report(
    config: PipelineConfig,
    results: dict[str, EnrichmentResult | GSEAResult],
    provenance: ProvenanceTracker,
) -> ReproducibilityReport:
    """
    Args:
        config: Pipeline configuration of the run
        results: Analysis name (e.g. "go", "kegg", "gsea_go") -> result
        provenance: Tracker holding the run's steps, sources and outputs
    """
    return ReproducibilityReport(
        run_id=str(uuid.uuid4()),
        timestamp=datetime.now(timezone.utc).isoformat(),
        pipeline_version=provenance.pipeline_version,
        parameters={
            "thresholds": config.thresholds.model_dump(),
            "annotation": config.annotation.model_dump(mode="json"),
            "gsea": config.gsea.model_dump(),
        },
        data_versions=dict(provenance.data_source_versions),
        software_environment=software_versions(),
        filtering_steps=[FilteringStep.from_provenance(s) for s in provenance.get_steps()],
        result_statistics={name: summarize_result(r) for name, r in results.items()},
        top_terms={name: top_term_labels(r) for name, r in results.items()},
        output_files=list(provenance.output_files),
    )
