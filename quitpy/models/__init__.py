"""Tissue models (single- and multi-compartment)."""

from __future__ import annotations

from .model import MCD2, MCD3, MODELS, SCD, TissueModel, get_model

__all__ = ["MCD2", "MCD3", "MODELS", "SCD", "TissueModel", "get_model"]
