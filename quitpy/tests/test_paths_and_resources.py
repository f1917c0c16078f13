from __future__ import annotations

import configparser
from pathlib import Path

from joblib import Parallel, delayed

from quitpy.configs.paths import get_configs_dir, resolve_config_path
from quitpy.core.progress import SliceProgress, progress_enabled, set_progress_enabled
from quitpy.core.resources import effective_worker_count, resolve_worker_count


def test_get_configs_dir_exists() -> None:
    p = get_configs_dir()
    assert isinstance(p, Path)
    assert p.exists()


def test_resolve_config_path_filename_only() -> None:
    resolved = resolve_config_path("Template_Signal.ini")
    assert Path(resolved).exists()
    assert Path(resolved).name == "Template_Signal.ini"

    resolved = resolve_config_path("Template_DESPOT1")
    assert Path(resolved).name == "Template_DESPOT1.ini"


def test_resolve_config_path_unknown_is_unchanged() -> None:
    assert resolve_config_path("no_such_template.ini") == "no_such_template.ini"


def test_shipped_templates_parse() -> None:
    for name in ("Template_DESPOT1.ini", "Template_Signal.ini"):
        cfg = configparser.ConfigParser()
        cfg.read(get_configs_dir() / name)
        assert cfg.has_section("SEQUENCE")
        assert cfg.has_section("GLOBAL")


def test_worker_count_prefers_explicit_then_env(monkeypatch) -> None:
    monkeypatch.setenv("QUITPY_THREADS", "3")
    assert effective_worker_count() == 3
    assert resolve_worker_count(5) == 5
    assert resolve_worker_count(None) == 3
    assert resolve_worker_count(0) == 3


def test_worker_count_ignores_bad_env(monkeypatch) -> None:
    for key in ("QUITPY_THREADS", "SLURM_CPUS_PER_TASK", "SLURM_CPUS_ON_NODE", "OMP_NUM_THREADS"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("QUITPY_THREADS", "lots")
    assert effective_worker_count() >= 1


def test_slice_progress_counts_across_threads() -> None:
    set_progress_enabled(False)
    try:
        with SliceProgress(400, "test") as progress:
            Parallel(n_jobs=8, backend="threading")(
                delayed(lambda: [progress.advance() for _ in range(50)])() for _ in range(8)
            )
        assert progress.done == 400
    finally:
        set_progress_enabled(None)


def test_progress_env_switch(monkeypatch) -> None:
    set_progress_enabled(None)
    monkeypatch.setenv("QUITPY_PROGRESS", "0")
    assert progress_enabled() is False
    monkeypatch.setenv("QUITPY_PROGRESS", "yes")
    assert progress_enabled() is True
    set_progress_enabled(False)
    try:
        assert progress_enabled() is False
    finally:
        set_progress_enabled(None)
