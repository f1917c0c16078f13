"""Packaged configuration templates.

This package ships `*.ini` templates for each ``QUIT`` tool. Use
`get_configs_dir()` to locate them on disk.
"""

from __future__ import annotations

from .paths import get_configs_dir, resolve_config_path

__all__ = [
    "get_configs_dir",
    "resolve_config_path",
]
