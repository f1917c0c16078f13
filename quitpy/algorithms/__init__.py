"""Per-voxel fitting algorithms."""

from __future__ import annotations

from .base import Algorithm
from .despot1 import DESPOT1, FIT_TYPES, normalize_fit_type

__all__ = ["Algorithm", "DESPOT1", "FIT_TYPES", "normalize_fit_type"]
