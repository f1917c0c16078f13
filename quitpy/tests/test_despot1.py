from __future__ import annotations

import numpy as np
import pytest

from quitpy.algorithms.despot1 import DESPOT1, normalize_fit_type
from quitpy.core.validation import ConfigurationError
from quitpy.sequences.sequence import MultiEcho, SPGRSimple
from quitpy.sequences.signal_equations import one_spgr


TR = 0.005
FLIPS = [5.0, 10.0, 15.0]


def _spgr_signal(seq: SPGRSimple, PD: float, T1: float, B1: float = 1.0) -> np.ndarray:
    return np.abs(one_spgr(seq.flip, seq.TR, PD, T1, B1))


@pytest.fixture
def seq() -> SPGRSimple:
    return SPGRSimple(FLIPS, TR)


@pytest.mark.parametrize("fit_type", ["LLS", "WLLS", "NLLS"])
def test_three_angle_scenario_recovers_pd_and_t1(seq: SPGRSimple, fit_type: str) -> None:
    data = _spgr_signal(seq, PD=1.0, T1=1.0)
    outputs, resids = DESPOT1(fit_type).apply(seq, data, np.ones(1))

    assert outputs.shape == (2,)
    np.testing.assert_allclose(outputs[0], 1.0, rtol=1e-2)
    np.testing.assert_allclose(outputs[1], 1.0, rtol=1e-2)
    assert resids.shape == (3,)
    assert np.all(np.abs(resids) < 1e-4 * data.max())


def test_lls_is_exact_on_noiseless_data(seq: SPGRSimple) -> None:
    data = _spgr_signal(seq, PD=1500.0, T1=0.85)
    outputs, resids = DESPOT1('l').apply(seq, data, np.ones(1))
    np.testing.assert_allclose(outputs, [1500.0, 0.85], rtol=1e-5)
    np.testing.assert_allclose(resids, 0.0, atol=1e-6 * data.max())


def test_wlls_residual_does_not_grow_across_passes(seq: SPGRSimple) -> None:
    data = _spgr_signal(seq, PD=2.0, T1=1.2)
    algo = DESPOT1('WLLS', iterations=6)

    norms = []
    for PD, T1 in algo.reweighted_estimates(seq, data, 1.0):
        np.testing.assert_allclose([PD, T1], [2.0, 1.2], rtol=1e-5)
        norms.append(np.linalg.norm(data - _spgr_signal(seq, PD, T1)))

    assert len(norms) == 7  # LLS start + one per pass
    for prev, cur in zip(norms, norms[1:]):
        assert cur <= prev + 1e-9


def test_nlls_does_not_increase_residual_over_its_lls_start(seq: SPGRSimple) -> None:
    rng = np.random.default_rng(3)
    clean = _spgr_signal(seq, PD=1.0, T1=1.0)
    data = clean + rng.normal(0.0, 2e-4, clean.shape)

    _, r_lls = DESPOT1('LLS').apply(seq, data, np.ones(1))
    out_nlls, r_nlls = DESPOT1('NLLS', iterations=10).apply(seq, data, np.ones(1))

    assert np.linalg.norm(r_nlls) <= np.linalg.norm(r_lls) + 1e-12
    np.testing.assert_allclose(out_nlls[1], 1.0, rtol=0.1)


def test_b1_constant_scales_flip_angles(seq: SPGRSimple) -> None:
    data = _spgr_signal(seq, PD=1.0, T1=1.0, B1=0.9)
    algo = DESPOT1('LLS')

    with_b1, _ = algo.apply(seq, data, np.array([0.9]))
    np.testing.assert_allclose(with_b1, [1.0, 1.0], rtol=1e-5)

    without_b1, _ = algo.apply(seq, data, algo.default_consts())
    assert abs(without_b1[1] - 1.0) > 0.05


def test_residuals_are_measured_minus_theoretical(seq: SPGRSimple) -> None:
    data = _spgr_signal(seq, PD=1.0, T1=1.0)
    data[1] += 0.01
    outputs, resids = DESPOT1('LLS').apply(seq, data, np.ones(1))
    theory = _spgr_signal(seq, outputs[0], outputs[1])
    np.testing.assert_allclose(resids, data - theory)


@pytest.mark.parametrize("fit_type", ["LLS", "WLLS", "NLLS"])
def test_degenerate_voxel_does_not_raise(seq: SPGRSimple, fit_type: str) -> None:
    outputs, resids = DESPOT1(fit_type).apply(seq, np.zeros(3), np.ones(1))
    assert outputs.shape == (2,)
    assert resids.shape == (3,)


def test_degenerate_lls_yields_non_finite_estimate(seq: SPGRSimple) -> None:
    outputs, _ = DESPOT1('LLS').apply(seq, np.zeros(3), np.ones(1))
    assert not np.all(np.isfinite(outputs))


def test_normalize_fit_type_accepts_letters_and_names() -> None:
    assert normalize_fit_type(None) == 'LLS'
    assert normalize_fit_type('l') == 'LLS'
    assert normalize_fit_type('W') == 'WLLS'
    assert normalize_fit_type(' n ') == 'NLLS'
    assert normalize_fit_type('wlls') == 'WLLS'


def test_normalize_fit_type_rejects_unknown() -> None:
    with pytest.raises(ConfigurationError, match="Invalid DESPOT1 algorithm"):
        normalize_fit_type('x')


@pytest.mark.parametrize("its", [0, -3, "many"])
def test_iterations_must_be_positive_integer(its) -> None:
    with pytest.raises(ConfigurationError):
        DESPOT1('WLLS', iterations=its)


def test_declared_cardinalities() -> None:
    algo = DESPOT1()
    assert algo.num_inputs == 1
    assert algo.num_consts == 1
    assert algo.num_outputs == 2
    assert algo.output_names == ('PD', 'T1')
    np.testing.assert_array_equal(algo.default_consts(), [1.0])


def test_check_sequence_requires_spgr_with_two_angles() -> None:
    algo = DESPOT1()
    algo.check_sequence(SPGRSimple([3, 18], TR))
    with pytest.raises(ConfigurationError, match="at least 2 flip angles"):
        algo.check_sequence(SPGRSimple([10], TR))
    with pytest.raises(ConfigurationError, match="needs an SPGR sequence"):
        algo.check_sequence(MultiEcho(0.01, 8, 2.0))
