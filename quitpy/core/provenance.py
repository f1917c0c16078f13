"""Provenance and run-manifest utilities.

Writes the on-disk ``run_manifest.json`` next to the outputs of a run.

Provenance should never abort a computation.
"""

from __future__ import annotations

import importlib
import json
import logging
import platform
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def _safe_version(mod_name: str) -> str:
    try:
        mod = importlib.import_module(mod_name)
        return getattr(mod, "__version__", "unknown")
    except Exception:
        return "unavailable"


def write_run_manifest(pipeline: Any, *, quitpy_version: str) -> None:
    """Write a provenance manifest alongside saved outputs.

    Parameters
    ----------
    pipeline:
        A finished pipeline object (see :mod:`quitpy.core.pipeline`).
    quitpy_version:
        The version string to record. Passed in to avoid circular imports.

    Notes
    -----
    Failures are logged and ignored.
    """

    try:
        save_dir = getattr(pipeline, "save_dir", None)
        if not isinstance(save_dir, str) or not save_dir:
            return

        configuration = getattr(pipeline, "configuration", None)
        cfg = getattr(configuration, "cfg_file", None)

        cfg_source = None
        if cfg is not None:
            try:
                cfg_source = cfg.get("DEBUG", "cfg_source", fallback=None)
            except Exception:
                cfg_source = None

        config_selected: dict[str, Any] = {
            "tool": getattr(configuration, "tool", None),
            "output_mode": str(getattr(configuration, "output_mode", "standard")),
            "threads": getattr(configuration, "threads", None),
            "prefix": getattr(configuration, "prefix", None),
            "sequences": [s.describe() for s in getattr(configuration, "sequences", [])],
        }
        if config_selected["tool"] == "DESPOT1":
            config_selected["algorithm"] = {
                "fit_type": getattr(configuration, "algorithm", None),
                "iterations": getattr(configuration, "iterations", None),
            }
            config_selected["inputs"] = {
                "spgr_file": getattr(configuration, "spgr_paths", None),
                "mask_file": getattr(configuration, "mask_path", None),
                "b1_file": getattr(configuration, "b1_path", None),
            }
            config_selected["all_residuals"] = bool(getattr(configuration, "all_residuals", False))
        else:
            model = getattr(configuration, "model", None)
            config_selected["model"] = getattr(model, "name", None)
            config_selected["inputs"] = {
                "parameters": dict(getattr(configuration, "parameter_paths", {}) or {}),
                "mask_file": getattr(configuration, "mask_path", None),
            }
            config_selected["noise"] = getattr(configuration, "noise", None)
            config_selected["seed"] = getattr(configuration, "seed", None)
            config_selected["complex"] = bool(getattr(configuration, "complex_output", False))

        manifest = {
            "schema_version": 1,
            "created_utc": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "run_started_utc": getattr(pipeline, "_run_started_utc", None),
            "run_finished_utc": getattr(pipeline, "_run_finished_utc", None),
            "total_runtime_s": getattr(pipeline, "_total_runtime_s", None),
            "save_dir": save_dir,
            "cfg_source": cfg_source,
            "config_selected": config_selected,
            "data": dict(getattr(pipeline, "data_summary", {}) or {}),
            "summary": dict(getattr(pipeline, "summary", {}) or {}),
            "runtime": {
                "quitpy_version": str(quitpy_version),
                "python": sys.version.split()[0],
                "platform": platform.platform(),
                "numpy": _safe_version("numpy"),
                "scipy": _safe_version("scipy"),
                "nibabel": _safe_version("nibabel"),
                "joblib": _safe_version("joblib"),
            },
            "provenance": {
                "argv": " ".join(sys.argv),
            },
            "artifacts": {
                "config_final_ini": str(Path(save_dir) / "config_final.ini"),
                "log": getattr(pipeline, "log_path", None),
                "outputs_nii_gz": [Path(p).name for p in getattr(pipeline, "written", [])],
            },
        }

        out_path = Path(save_dir) / "run_manifest.json"
        out_path.write_text(json.dumps(manifest, indent=2, sort_keys=True, default=str), encoding="utf-8")
        logging.info(f"Run manifest saved to: {out_path}")
    except Exception:
        logging.exception("Failed to write run_manifest.json")
