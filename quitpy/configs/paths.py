from __future__ import annotations

from pathlib import Path


def get_configs_dir() -> Path:
    """Return the on-disk directory containing shipped config templates.

    Works for editable installs and installed wheels.
    """

    try:
        import importlib.resources as resources

        return Path(resources.files("quitpy.configs"))
    except Exception:
        # Fallback: relative to this file
        return Path(__file__).resolve().parent


def resolve_config_path(raw: str) -> str:
    """Resolve a config path; bare template names are looked up in the shipped configs.

    If `raw` exists on disk, it is returned unchanged.
    """

    if not raw:
        return raw

    try:
        if Path(raw).exists():
            return raw
    except Exception:
        pass

    name = Path(str(raw).replace("\\", "/")).name
    for candidate in (get_configs_dir() / name, get_configs_dir() / f"{name}.ini"):
        if candidate.exists():
            return str(candidate)

    return raw
