"""Adapters between stacks of scalar volumes and vector-valued volumes.

The engine consumes vector images (one component per acquisition). Acquisitions
usually arrive either as a 4D time series or as a list of co-registered 3D
files; these helpers convert between the representations and back again for
writing residuals.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from quitpy.core.image import Image
from quitpy.core.validation import DataError, validate_same_grid


def images_to_vector(images: Sequence[Image]) -> Image:
    """Stack scalar 3D images (same grid) into one vector image.

    Component ``k`` of the result is ``images[k]``.
    """
    if len(images) == 0:
        raise DataError("Cannot build a vector image from an empty list of volumes.")

    reference = images[0]
    for inx, img in enumerate(images):
        if img.is_vector:
            raise DataError(
                f"Volume {inx} is already vector-valued (shape {img.data.shape}); "
                f"pass a single 4D time series to `timeseries_to_vector` instead."
            )
        if inx > 0:
            validate_same_grid(reference, img, f"Volume {inx}", reference_name="first volume")

    data = np.stack([np.asarray(img.data) for img in images], axis=-1)
    return reference.like(data)


def vector_to_images(image: Image) -> List[Image]:
    """Split a vector image into one scalar 3D image per component."""
    if not image.is_vector:
        return [image.like(np.array(image.data, copy=True))]
    return [image.like(np.array(image.data[..., k], copy=True)) for k in range(image.n_components)]


def timeseries_to_vector(series: Image) -> Image:
    """Present a 4D time series as a vector image (one component per volume).

    3D inputs are promoted to a single-component vector image.
    """
    if series.is_vector:
        return series.like(np.ascontiguousarray(series.data))
    return series.like(series.data[..., np.newaxis])


def vector_to_timeseries(image: Image) -> Image:
    """Inverse of :func:`timeseries_to_vector`; always returns a 4D image."""
    if image.is_vector:
        return image.like(np.array(image.data, copy=True))
    return image.like(image.data[..., np.newaxis])
