"""Orchestration services."""

from .analyzer import PrototypeOverlapAnalyzer, COMBINED_FAMILIES

__all__ = [
    "PrototypeOverlapAnalyzer",
    "COMBINED_FAMILIES",
]
