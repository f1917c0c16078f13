"""Sequence protocols and their signal equations."""

from __future__ import annotations

from .sequence import SEQUENCES, MultiEcho, SequenceBase, SPGRSimple, build_sequence

__all__ = ["SEQUENCES", "MultiEcho", "SequenceBase", "SPGRSimple", "build_sequence"]
