"""Overlap configuration module."""

from .overlap_config import (
    OVERLAP_CONFIG,
    get_threshold,
    build_config,
    load_config,
    validate_config,
    require_config_keys,
)

__all__ = [
    "OVERLAP_CONFIG",
    "get_threshold",
    "build_config",
    "load_config",
    "validate_config",
    "require_config_keys",
]
