from __future__ import annotations

import numpy as np
import pytest

from quitpy.core.image import Image
from quitpy.core.reshape import images_to_vector, timeseries_to_vector, vector_to_images, vector_to_timeseries
from quitpy.core.validation import DataError


def test_images_to_vector_keeps_order_and_grid() -> None:
    affine = np.diag([2.0, 2.0, 2.0, 1.0])
    vols = [Image(np.full((2, 3, 4), float(k)), affine) for k in range(4)]
    vec = images_to_vector(vols)
    assert vec.data.shape == (2, 3, 4, 4)
    np.testing.assert_array_equal(vec.data[1, 2, 3], [0.0, 1.0, 2.0, 3.0])
    np.testing.assert_array_equal(vec.affine, affine)

    back = vector_to_images(vec)
    assert len(back) == 4
    np.testing.assert_array_equal(back[2].data, vols[2].data)


def test_images_to_vector_rejects_mismatched_grid() -> None:
    a = Image(np.zeros((2, 2, 2)))
    b = Image(np.zeros((2, 2, 2)), np.diag([1.0, 1.0, 2.0, 1.0]))
    with pytest.raises(DataError, match="affine"):
        images_to_vector([a, b])
    with pytest.raises(DataError):
        images_to_vector([])


def test_timeseries_promotes_scalar_images() -> None:
    scalar = Image(np.ones((2, 2, 2)))
    vec = timeseries_to_vector(scalar)
    assert vec.is_vector
    assert vec.n_components == 1
    assert vector_to_timeseries(vec).data.shape == (2, 2, 2, 1)


def test_image_rejects_bad_dimensions() -> None:
    with pytest.raises(DataError):
        Image(np.zeros((2, 2)))
    with pytest.raises(DataError):
        Image(np.zeros((2, 2, 2)), np.eye(3))
