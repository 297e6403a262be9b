"""Quality gates for identifiers: DE table format check and translation success rate."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from deg_enrichment.gene_mapping.mapper import MappingReport

logger = logging.getLogger(__name__)

# Loose patterns; species-specific prefixes (ENSMUSG, FBgn...) are allowed
ID_PATTERNS = {
    "ENSEMBL": re.compile(r"^(ENS[A-Z]*G\d+|FBgn\d+|WBGene\d+)(\.\d+)?$"),
    "ENTREZID": re.compile(r"^\d+$"),
    "UNIPROT": re.compile(r"^[A-Z0-9]{6,10}(-\d+)?$"),
}

MIN_FORMAT_MATCH = 0.90


@dataclass
class ValidationResult:
    """Outcome of one gate.

    Attributes:
        passed: False stops the pipeline
        messages: PASSED/WARNING/FAILED lines, most important first
        success_rate: Fraction of identifiers that passed (0-1)
    """
    passed: bool
    messages: list[str] = field(default_factory=list)
    success_rate: float = 0.0


class MappingValidator:
    """Success-rate gate for GeneMapper.translate.

    Ensembl -> Entrez routinely loses a few percent of genes (non-coding
    loci, retired IDs). Losing a large share usually means the wrong
    species or key type was configured, so the run stops below
    min_success_rate and warns below warn_threshold.
    """

    def __init__(self, min_success_rate: float = 0.60, warn_threshold: float = 0.90):
        self.min_success_rate = min_success_rate
        self.warn_threshold = warn_threshold

    def validate(self, report: MappingReport) -> ValidationResult:
        rate = report.success_rate
        label = f"{report.from_type} -> {report.to_type}"
        lost = len(report.unmapped_ids)

        if rate < self.min_success_rate:
            passed = False
            messages = [
                f"FAILED: {label} success rate {rate:.1%} is below "
                f"minimum threshold {self.min_success_rate:.1%}",
                f"Unmapped genes: {lost} (first 10: {report.unmapped_ids[:10]})",
            ]
        elif rate < self.warn_threshold:
            passed = True
            messages = [
                f"WARNING: {label} success rate {rate:.1%} is below "
                f"warning threshold {self.warn_threshold:.1%}",
                f"Consider reviewing {lost} unmapped genes",
            ]
        else:
            passed = True
            messages = [
                f"PASSED: {label} success rate {rate:.1%} "
                f"({report.mapped}/{report.total_genes} genes)"
            ]

        log = logger.info if passed else logger.error
        log(f"ID translation {label}: {messages[0]}")

        return ValidationResult(passed=passed, messages=messages, success_rate=rate)

    def save_unmapped_report(self, report: MappingReport, output_path: Path) -> None:
        """Write the unmapped IDs one per line under a commented header."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        header = [
            f"# Unmapped Gene IDs ({report.from_type} -> {report.to_type})",
            f"# Generated: {datetime.now():%Y-%m-%d %H:%M:%S}",
            f"# Total unmapped: {len(report.unmapped_ids)}",
            f"# Success rate: {report.success_rate:.1%}",
            "#",
        ]
        output_path.write_text("\n".join(header + list(report.unmapped_ids)) + "\n")

        logger.info(f"Saved {len(report.unmapped_ids)} unmapped gene IDs to {output_path}")


def validate_gene_ids(gene_ids: list[str], key_type: str) -> ValidationResult:
    """Check that DE table identifiers look like the declared namespace.

    Fails on an empty list or when fewer than 90% of the identifiers match
    the namespace pattern. SYMBOL has no pattern and is never format-checked.
    Duplicates only produce a warning; the loader keeps the first row.
    """
    if not gene_ids:
        return ValidationResult(passed=False, messages=["FAILED: No gene identifiers found"])

    messages: list[str] = []
    passed = True
    match_rate = 1.0

    pattern = ID_PATTERNS.get(key_type.upper())
    if pattern is not None:
        bad = [g for g in gene_ids if not pattern.match(g)]
        match_rate = 1.0 - len(bad) / len(gene_ids)
        passed = match_rate >= MIN_FORMAT_MATCH
        if passed:
            messages.append(f"{match_rate:.1%} of gene IDs match the {key_type} format")
        else:
            messages.append(
                f"FAILED: only {match_rate:.1%} of gene IDs look like {key_type} "
                f"(examples: {bad[:5]})"
            )

    duplicates = len(gene_ids) - len(set(gene_ids))
    messages.append(
        f"WARNING: Found {duplicates} duplicate gene IDs (first occurrence kept)"
        if duplicates else "No duplicate gene IDs found"
    )

    logger.info(
        f"Gene ID check: {'PASSED' if passed else 'FAILED'} ({len(gene_ids)} IDs, {key_type})"
    )
    return ValidationResult(passed=passed, messages=messages, success_rate=match_rate)
