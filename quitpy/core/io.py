from __future__ import annotations

import logging
import os
from typing import Optional, Sequence

import nibabel as nb
import numpy as np

from quitpy.core.image import Image
from quitpy.core.reshape import images_to_vector, timeseries_to_vector
from quitpy.core.validation import ConfigurationError, DataError


_HEADER_KEYS = ("xyzt_units", "qform_code", "sform_code", "descrip", "aux_file")


def _strip_nifti_ext(path: str) -> str:
    name = os.path.basename(path)
    if name.lower().endswith(".nii.gz"):
        return name[:-7]
    if name.lower().endswith(".nii"):
        return name[:-4]
    return os.path.splitext(name)[0]


def load_image(path: str) -> Image:
    """Load a NIfTI file as an :class:`Image`.

    - real data is read with ``get_fdata()`` (float64), complex data as stored
    - 2D inputs get a singleton third (slice) dimension
    - ITK-style 5D vectors ``(x, y, z, 1, n)`` are flattened to ``(x, y, z, n)``
    """
    if not path or not os.path.exists(path):
        raise ConfigurationError(f"Input file not found: '{path}'")

    try:
        img = nb.load(path)
    except Exception as e:
        raise DataError(f"Could not read '{path}' as a NIfTI image: {e}") from e

    if np.issubdtype(img.get_data_dtype(), np.complexfloating):
        data = np.asanyarray(img.dataobj).astype(np.complex128)
    else:
        data = img.get_fdata()

    if data.ndim == 2:
        data = np.expand_dims(data, axis=2)
    elif data.ndim == 5 and data.shape[3] == 1:
        data = data[:, :, :, 0, :]

    if data.ndim not in (3, 4):
        raise DataError(
            f"'{path}' has shape {data.shape}; only 3D volumes and 4D series are supported."
        )
    return Image(data=data, affine=img.affine, header=img.header)


def load_spgr_input(paths: Sequence[str]) -> Image:
    """Load the SPGR data channel: one 4D series or several co-registered volumes.

    When several files are given they are concatenated in order, so the flip
    angle list must follow the same order.
    """
    paths = [p for p in paths if str(p).strip()]
    if not paths:
        raise ConfigurationError("No SPGR input file given.")

    if len(paths) == 1:
        return timeseries_to_vector(load_image(paths[0]))

    images = [load_image(p) for p in paths]
    if all(not img.is_vector for img in images):
        return images_to_vector(images)

    # Mixed 3D/4D inputs: promote everything to vector images and concatenate.
    vectors = [timeseries_to_vector(img) for img in images]
    reference = vectors[0]
    for inx, v in enumerate(vectors[1:], start=1):
        if not reference.same_grid(v):
            raise DataError(
                f"SPGR input '{paths[inx]}' is not on the same grid as '{paths[0]}'.\n"
                f"All SPGR volumes must be co-registered."
            )
    return reference.like(np.concatenate([v.data for v in vectors], axis=-1))


def save_image(image: Image, path: str, *, name: Optional[str] = None) -> str:
    """Write ``image`` to ``path`` (float32, or complex64 for complex data).

    Non-finite values are replaced by 0 before writing. Set ``QUITPY_STRICT=1`` to
    make that an error instead.
    """
    name = name or _strip_nifti_ext(path)
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    data = np.asarray(image.data)
    if np.iscomplexobj(data):
        data = data.astype(np.complex64, copy=False)
        bad = ~(np.isfinite(data.real) & np.isfinite(data.imag))
    elif np.issubdtype(data.dtype, np.floating):
        data = data.astype(np.float32, copy=False)
        bad = ~np.isfinite(data)
    else:
        bad = None

    if bad is not None:
        n_bad = int(bad.sum())
        if n_bad > 0:
            msg = f"Non-finite values detected while saving '{name}': {n_bad} value(s)"
            if os.environ.get('QUITPY_STRICT', '0') == '1':
                raise DataError(msg)
            # Degenerate voxels are expected for unstable fits.
            logging.debug(msg + "; sanitizing to 0.0")
            data = np.where(bad, 0, data).astype(data.dtype, copy=False)

    nii = nb.nifti1.Nifti1Image(data, affine=image.affine)

    # Only copy shape-agnostic metadata; the source may be 4D while outputs are 3D.
    if image.header is not None:
        try:
            zooms = image.header.get_zooms()
            if zooms is not None and len(zooms) >= 3:
                nii.header.set_zooms(tuple(zooms[:3]) + ((1.0,) if nii.ndim == 4 else ()))
        except Exception:
            pass
        for key in _HEADER_KEYS:
            try:
                nii.header[key] = image.header[key]
            except Exception:
                pass

    try:
        nb.save(nii, path)
    except Exception as e:
        raise RuntimeError(f"Failed to save NIfTI map '{name}' to '{path}': {e}") from e
    logging.debug(f"Saved {name} {tuple(data.shape)} -> {path}")
    return path


def output_path(prefix: str, name: str, save_dir: Optional[str] = None) -> str:
    filename = f"{prefix}{name}.nii.gz"
    return os.path.join(save_dir, filename) if save_dir else filename


def write_result(image: Image, prefix: str, name: str, save_dir: Optional[str] = None) -> str:
    return save_image(image, output_path(prefix, name, save_dir), name=f"{prefix}{name}")


def residual_norm(resids: Image) -> Image:
    """Per-voxel L2 norm of a residual vector image."""
    data = np.asarray(resids.data)
    if not resids.is_vector:
        return resids.like(np.abs(data))
    with np.errstate(invalid='ignore', over='ignore'):
        return resids.like(np.sqrt(np.sum(data ** 2, axis=-1)))


def write_residuals(
    resids: Image,
    prefix: str,
    *,
    all_residuals: bool = False,
    save_dir: Optional[str] = None,
) -> list[str]:
    """Write the aggregate residual map and, on request, the per-acquisition residuals."""
    written = [write_result(residual_norm(resids), prefix, "residual", save_dir)]
    if all_residuals:
        written.append(write_result(resids, prefix, "all_residuals", save_dir))
    return written
