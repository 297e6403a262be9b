from .loader import load_config, load_config_with_overrides
from .schema import (
    APIConfig,
    AnnotationConfig,
    DEColumns,
    DEInputConfig,
    GSEAConfig,
    PathviewConfig,
    PipelineConfig,
    PlotConfig,
    ThresholdConfig,
)

__all__ = [
    "load_config",
    "load_config_with_overrides",
    "PipelineConfig",
    "DEInputConfig",
    "DEColumns",
    "ThresholdConfig",
    "AnnotationConfig",
    "GSEAConfig",
    "PlotConfig",
    "PathviewConfig",
    "APIConfig",
]
