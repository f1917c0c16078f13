from __future__ import annotations

import json
from pathlib import Path

import nibabel as nb
import numpy as np
import pytest

from quitpy.core import runner
from quitpy.core.image import Image
from quitpy.core.validation import ConfigurationError, EngineStateError
from quitpy.engine.signals import SignalSimulator
from quitpy.models.model import MCD2, SCD
from quitpy.sequences.sequence import MultiEcho, SPGRSimple
from quitpy.sequences.signal_equations import one_spgr


SHAPE = (3, 4, 5)


@pytest.fixture
def T1_map() -> Image:
    return Image(np.linspace(0.6, 1.8, int(np.prod(SHAPE))).reshape(SHAPE), np.eye(4))


def test_simulated_spgr_matches_signal_equation(T1_map: Image) -> None:
    seq = SPGRSimple([4, 12, 20], 0.008)
    sim = SignalSimulator(SCD(), n_workers=2)
    sim.set_parameter('T1', T1_map)
    sim.set_parameter('PD', T1_map.like(np.full(SHAPE, 50.0)))
    sim.setup()

    out = sim.simulate(seq)
    assert out.data.shape == SHAPE + (3,)
    assert np.iscomplexobj(out.data)
    idx = (2, 1, 4)
    expected = one_spgr(seq.flip, seq.TR, 50.0, T1_map.data[idx])
    np.testing.assert_allclose(out.data[idx], expected)


def test_unbound_parameters_use_model_defaults(T1_map: Image) -> None:
    seq = MultiEcho(0.01, 4, 3.0)
    sim = SignalSimulator(SCD(), n_workers=1)
    sim.set_parameter(1, T1_map)
    sim.setup()

    out = sim.simulate(seq)
    PD, _, T2, _, _ = SCD().default_parameters()
    idx = (0, 0, 0)
    expected = PD * (1 - np.exp(-3.0 / T1_map.data[idx])) * np.exp(-seq.TE / T2)
    np.testing.assert_allclose(out.data[idx].real, expected)


def test_two_compartment_signal_is_fraction_weighted_sum(T1_map: Image) -> None:
    seq = SPGRSimple([5, 15], 0.006)
    model = MCD2()
    sim = SignalSimulator(model, n_workers=1)
    sim.set_parameter('f_m', T1_map.like(np.full(SHAPE, 0.25)))
    sim.setup()
    out = sim.simulate(seq)

    p = model.default_parameters()
    expected = (
        0.25 * one_spgr(seq.flip, seq.TR, p[0], p[1])
        + 0.75 * one_spgr(seq.flip, seq.TR, p[0], p[3])
    )
    np.testing.assert_allclose(out.data[1, 1, 1], expected)


def test_mask_zeroes_signal_and_noise(T1_map: Image) -> None:
    mask = np.ones(SHAPE)
    mask[:, 0, :] = 0
    sim = SignalSimulator(SCD(), n_workers=2)
    sim.set_parameter('T1', T1_map)
    sim.set_mask(T1_map.like(mask))
    sim.setup()

    out = sim.simulate(SPGRSimple([5, 15], 0.006), noise_sigma=0.1, seed=1)
    assert np.all(out.data[mask == 0] == 0)
    assert np.all(out.data[mask == 1] != 0)


def test_seeded_noise_is_reproducible_across_worker_counts(T1_map: Image) -> None:
    seq = SPGRSimple([5, 15, 25], 0.006)
    results = []
    for n in (1, 3):
        sim = SignalSimulator(SCD(), n_workers=n)
        sim.set_parameter('T1', T1_map)
        sim.setup()
        results.append(sim.simulate(seq, noise_sigma=0.01, seed=42).data)
    np.testing.assert_array_equal(results[0], results[1])

    sim = SignalSimulator(SCD(), n_workers=1)
    sim.set_parameter('T1', T1_map)
    sim.setup()
    clean = sim.simulate(seq).data
    assert not np.array_equal(results[0], clean)


def test_simulator_requires_a_parameter_map() -> None:
    sim = SignalSimulator(SCD())
    with pytest.raises(ConfigurationError, match="No parameter maps"):
        sim.setup()
    with pytest.raises(EngineStateError):
        sim.simulate(SPGRSimple([5, 15], 0.006))


def test_simulator_rejects_unknown_parameter(T1_map: Image) -> None:
    sim = SignalSimulator(SCD())
    with pytest.raises(ConfigurationError, match="no parameter 'T1_m'"):
        sim.set_parameter('T1_m', T1_map)


def _write(path: Path, data: np.ndarray, affine=None) -> str:
    nb.save(nb.Nifti1Image(data.astype(np.float32), np.eye(4) if affine is None else affine), str(path))
    return str(path)


def _signal_args(tmp_path: Path, **overrides) -> dict:
    args = {
        'cfg_path': None,
        'model': '1C',
        'param': None,
        'TR': 0.005,
        'FA': '5,10,15',
        'mask': None,
        'out': 'sim_',
        'save_dir': str(tmp_path),
        'noise': None,
        'seed': None,
        'complex': False,
        'threads': 2,
        'output_mode': 'quiet',
    }
    args.update(overrides)
    return args


def _despot1_args(tmp_path: Path, spgr: str, **overrides) -> dict:
    args = {
        'cfg_path': None,
        'spgr_files': [spgr],
        'TR': 0.005,
        'FA': '5,10,15',
        'out': 'fit_',
        'save_dir': str(tmp_path),
        'mask': None,
        'B1': None,
        'algo': 'l',
        'its': None,
        'resids': True,
        'threads': 2,
        'output_mode': 'quiet',
    }
    args.update(overrides)
    return args


def test_simulate_then_fit_round_trip_through_files(tmp_path: Path) -> None:
    affine = np.diag([1.5, 1.5, 2.0, 1.0])
    T1 = np.linspace(0.7, 1.5, int(np.prod(SHAPE))).reshape(SHAPE)
    t1_path = _write(tmp_path / "T1.nii.gz", T1, affine)
    pd_path = _write(tmp_path / "PD.nii.gz", np.full(SHAPE, 1000.0), affine)

    runner.run(_signal_args(tmp_path, param=[f"T1={t1_path}", f"PD={pd_path}"]), tool='SIGNAL')
    spgr_path = tmp_path / "sim_signal.nii.gz"
    assert spgr_path.exists()
    assert nb.load(str(spgr_path)).shape == SHAPE + (3,)

    pipeline = runner.run(_despot1_args(tmp_path, str(spgr_path)), tool='DESPOT1')

    t1_img = nb.load(str(tmp_path / "fit_D1_T1.nii.gz"))
    assert t1_img.shape == SHAPE
    np.testing.assert_allclose(t1_img.affine, affine)
    np.testing.assert_allclose(t1_img.get_fdata(), T1, rtol=1e-2)
    np.testing.assert_allclose(nb.load(str(tmp_path / "fit_D1_PD.nii.gz")).get_fdata(), 1000.0, rtol=1e-2)
    assert nb.load(str(tmp_path / "fit_D1_residual.nii.gz")).shape == SHAPE
    assert nb.load(str(tmp_path / "fit_D1_all_residuals.nii.gz")).shape == SHAPE + (3,)

    assert (tmp_path / "config_final.ini").exists()
    assert (tmp_path / "fit_log.txt").exists()
    manifest = json.loads((tmp_path / "run_manifest.json").read_text(encoding="utf-8"))
    assert manifest["config_selected"]["tool"] == "DESPOT1"
    assert manifest["config_selected"]["algorithm"]["fit_type"] == "LLS"
    assert "fit_D1_T1.nii.gz" in manifest["artifacts"]["outputs_nii_gz"]
    assert pipeline.summary["active_voxels"] == int(np.prod(SHAPE))


def test_fit_accepts_separate_3d_volumes_and_mask(tmp_path: Path) -> None:
    from quitpy.sequences.sequence import SPGRSimple as _SPGR

    seq = _SPGR([5, 10, 15], 0.005)
    T1 = np.full(SHAPE, 1.1)
    vols = [np.abs(one_spgr(seq.flip[k], seq.TR, 800.0, 1.1)) * np.ones(SHAPE) for k in range(3)]
    paths = [_write(tmp_path / f"spgr_{k}.nii.gz", v) for k, v in enumerate(vols)]
    mask = np.ones(SHAPE)
    mask[0] = 0
    mask_path = _write(tmp_path / "mask.nii.gz", mask)

    args = _despot1_args(tmp_path, paths[0], spgr_files=paths, mask=mask_path, algo='w', resids=False)
    runner.run(args, tool='DESPOT1')

    t1 = nb.load(str(tmp_path / "fit_D1_T1.nii.gz")).get_fdata()
    assert np.all(t1[0] == 0)
    np.testing.assert_allclose(t1[1:], T1[1:], rtol=1e-3)
    assert not (tmp_path / "fit_D1_all_residuals.nii.gz").exists()


def test_complex_output_and_named_files_from_config(tmp_path: Path) -> None:
    T1 = np.full(SHAPE, 1.0)
    t1_path = _write(tmp_path / "T1.nii.gz", T1)
    cfg = tmp_path / "signal.ini"
    cfg.write_text(
        "[GLOBAL]\ntool = SIGNAL\noutput_mode = quiet\nthreads = 1\n"
        "[MODEL]\nmodel = 1C\n"
        f"[PARAMETERS]\nT1 = {t1_path}\n"
        "[SEQUENCE]\ntype = SPGR\nTR = 0.005\nflip_angles = 5, 15\n"
        "[SEQUENCE_ME]\ntype = SPINECHO\nTR = 2.0\necho_spacing = 0.01\necho_count = 4\n"
        "[SIGNAL]\ncomplex = true\n"
        f"[OUTPUT]\nsave_dir = {tmp_path}\nsignal_files = a, b\n",
        encoding="utf-8",
    )
    runner.run(_signal_args(tmp_path, cfg_path=str(cfg), model=None, TR=None, FA=None, out=None), tool='SIGNAL')

    a = nb.load(str(tmp_path / "a.nii.gz"))
    b = nb.load(str(tmp_path / "b.nii.gz"))
    assert a.shape == SHAPE + (2,)
    assert b.shape == SHAPE + (4,)
    assert np.issubdtype(a.get_data_dtype(), np.complexfloating)
