"""Voxelwise engines: fitting (:class:`ApplyAlgorithm`) and simulation (:class:`SignalSimulator`)."""

from __future__ import annotations

from .apply import ApplyAlgorithm
from .regions import split_regions
from .signals import SignalSimulator

__all__ = ["ApplyAlgorithm", "SignalSimulator", "split_regions"]
