"""Read the YAML pipeline config and layer CLI overrides on top of it."""

from pathlib import Path
from typing import Any

import pydantic_yaml

from .schema import PipelineConfig


def load_config(config_path: Path | str) -> PipelineConfig:
    """
    Parse and validate a YAML config file.

    Missing sections take their schema defaults, so an empty file is a
    valid config. Validation also creates data_dir and cache_dir.

    Raises:
        FileNotFoundError: If config_path does not exist
        pydantic.ValidationError: If a value is out of range or unknown
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    return pydantic_yaml.parse_yaml_raw_as(PipelineConfig, config_path.read_text() or "{}")


def _set_dotted(data: dict, key: str, value: Any) -> None:
    *sections, leaf = key.split(".")
    for section in sections:
        data = data[section]
    data[leaf] = value


def apply_overrides(config: PipelineConfig, overrides: dict[str, Any]) -> PipelineConfig:
    """
    Copy of config with dotted-key overrides, validated again.

    None values are skipped so that CLI options left unset keep the YAML
    value, e.g. {"thresholds.padj_cutoff": None, "annotation.ontology": "MF"}
    only changes the ontology.

    Raises:
        KeyError: If a dotted key names an unknown section
        pydantic.ValidationError: If an override value is invalid
    """
    data = config.model_dump()
    for key, value in overrides.items():
        if value is not None:
            _set_dotted(data, key, value)
    return PipelineConfig.model_validate(data)


def load_config_with_overrides(
    config_path: Path | str,
    overrides: dict[str, Any],
) -> PipelineConfig:
    """load_config followed by apply_overrides."""
    return apply_overrides(load_config(config_path), overrides)
