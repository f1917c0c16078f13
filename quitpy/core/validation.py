"""Validation helpers and shared exceptions."""

from __future__ import annotations

import numpy as np


class ConfigurationError(Exception):
    """Custom exception for configuration validation errors."""


class DataError(Exception):
    """Raised when input images (data, constants, mask) are invalid or misaligned."""


class EngineStateError(Exception):
    """Raised when the voxelwise engine is used out of order (e.g. re-binding after setup)."""


def validate_same_grid(reference, other, name: str, *, reference_name: str = "primary data input") -> None:
    """Fail fast when ``other`` does not share the grid of ``reference``.

    Both arguments are :class:`quitpy.core.image.Image` instances. The grid is the
    spatial shape plus the affine (voxel spacing, orientation and origin).
    """

    if tuple(other.spatial_shape) != tuple(reference.spatial_shape):
        raise DataError(
            f"{name} has spatial shape {tuple(other.spatial_shape)}, "
            f"but the {reference_name} has {tuple(reference.spatial_shape)}.\n"
            f"All images must be co-registered on the same voxel grid.\n"
            f"Action: resample {name} onto the {reference_name} before fitting."
        )

    if not np.allclose(other.affine, reference.affine, rtol=0.0, atol=1e-4):
        raise DataError(
            f"{name} affine does not match the {reference_name}.\n"
            f"  {name} spacing/origin   : {other.spacing} / {other.origin}\n"
            f"  {reference_name} spacing/origin: {reference.spacing} / {reference.origin}\n"
            f"Voxels would be silently misaligned.\n"
            f"Action: check that both files come from the same acquisition or registration."
        )
