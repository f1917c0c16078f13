"""In-memory image container shared by the I/O layer and the engine.

An :class:`Image` is a numpy array on a voxel grid. Scalar images are 3D
``(x, y, z)``; vector images carry their components on a trailing axis
``(x, y, z, n)``. The grid is defined by the spatial shape plus the 4x4 affine
(which encodes voxel spacing, orientation and origin).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from quitpy.core.validation import DataError


@dataclass
class Image:
    data: np.ndarray
    affine: np.ndarray = field(default_factory=lambda: np.eye(4))
    header: Any = None

    def __post_init__(self) -> None:
        self.data = np.asarray(self.data)
        self.affine = np.asarray(self.affine, dtype=np.float64)
        if self.data.ndim not in (3, 4):
            raise DataError(
                f"Images must be 3D (scalar) or 4D (vector), got shape {self.data.shape}.\n"
                f"2D slices should be stored with a singleton third dimension."
            )
        if self.affine.shape != (4, 4):
            raise DataError(f"Affine must be 4x4, got {self.affine.shape}")

    @property
    def spatial_shape(self) -> tuple[int, int, int]:
        return tuple(int(d) for d in self.data.shape[:3])  # type: ignore[return-value]

    @property
    def is_vector(self) -> bool:
        return self.data.ndim == 4

    @property
    def n_components(self) -> int:
        return int(self.data.shape[3]) if self.is_vector else 1

    @property
    def spacing(self) -> tuple[float, ...]:
        return tuple(float(s) for s in np.linalg.norm(self.affine[:3, :3], axis=0))

    @property
    def origin(self) -> tuple[float, ...]:
        return tuple(float(o) for o in self.affine[:3, 3])

    def like(self, data: np.ndarray) -> "Image":
        """New image on the same grid (affine and header) holding ``data``."""
        return Image(data=data, affine=self.affine.copy(), header=self.header)

    def same_grid(self, other: "Image") -> bool:
        return (
            self.spatial_shape == other.spatial_shape
            and np.allclose(self.affine, other.affine, rtol=0.0, atol=1e-4)
        )
