import numpy as np

import pytest


def _local_level(nobs, level_var, obs_var):
    from state_space.kalman import StateSpaceSystem

    return StateSpaceSystem(
        transition=np.array([[1.0]]),
        design=np.ones((nobs, 1)),
        selection=np.array([[1.0]]),
        state_cov=np.array([[level_var]]),
        obs_var=obs_var,
    )


def test_first_observation_pins_the_diffuse_level():
    from state_space.kalman import kalman_filter

    system = _local_level(3, level_var=0.5, obs_var=2.0)
    out = kalman_filter(system, [5.0, 6.0, 7.0])

    assert out.n_diffuse == 1
    assert out.filtered_state[0, 0] == pytest.approx(5.0)
    # After one diffuse update the finite variance equals the noise variance
    assert out.filtered_cov[0, 0, 0] == pytest.approx(2.0)
    assert out.predicted_cov_inf[1, 0, 0] == 0.0


def test_missing_observation_skips_the_update_and_the_likelihood():
    from state_space.kalman import LOG_2PI, STEP_MISSING, kalman_filter

    q, h = 0.5, 2.0
    system = _local_level(3, level_var=q, obs_var=h)
    out = kalman_filter(system, [1.0, np.nan, 3.0])

    assert out.step_kind[1] == STEP_MISSING
    assert out.filtered_state[1, 0] == pytest.approx(out.filtered_state[0, 0])
    assert not out.observed[1]

    # Diffuse step contributes -0.5*(log 2pi + log F_inf) with F_inf = 1
    F = h + 2 * q + h
    expected = -0.5 * LOG_2PI - 0.5 * (LOG_2PI + np.log(F) + 2.0 ** 2 / F)
    assert out.loglike == pytest.approx(expected)


def test_zero_innovation_variance_raises():
    from state_space.kalman import StateSpaceError, kalman_filter

    system = _local_level(2, level_var=0.0, obs_var=0.0)
    with pytest.raises(StateSpaceError):
        kalman_filter(system, [1.0, 2.0])


def test_design_rows_must_match_observations():
    from state_space.kalman import kalman_filter

    system = _local_level(3, level_var=1.0, obs_var=1.0)
    with pytest.raises(ValueError):
        kalman_filter(system, [1.0, 2.0])


def test_smoother_matches_statsmodels_local_level():
    """Exact diffuse local level smoother agrees with statsmodels' implementation."""
    from statsmodels.tsa.statespace.structural import UnobservedComponents

    from state_space.kalman import kalman_smoother

    rng = np.random.default_rng(42)
    y = 10.0 + np.cumsum(rng.normal(0, 0.7, size=30)) + rng.normal(0, 1.0, size=30)
    y[12] = np.nan
    level_var, obs_var = 0.49, 1.0

    out = kalman_smoother(_local_level(len(y), level_var, obs_var), y)

    mod = UnobservedComponents(y, level="llevel", use_exact_diffuse=True)
    res = mod.smooth([obs_var, level_var])

    np.testing.assert_allclose(out.smoothed_state[:, 0], res.smoothed_state[0], rtol=1e-6, atol=1e-8)
    np.testing.assert_allclose(out.smoothed_cov[:, 0, 0], res.smoothed_state_cov[0, 0], rtol=1e-6, atol=1e-8)


def test_smoother_equals_filter_at_last_observation():
    from state_space.kalman import kalman_smoother
    from state_space.structural import StateSpaceSpec

    rng = np.random.default_rng(42)
    n = 24
    x = np.zeros(n)
    x[10:14] = 1.0
    y = 50 + 0.4 * np.arange(n) + np.tile([3.0, -1.0, 2.0, -4.0], n // 4) + 5 * x + rng.normal(0, 0.3, n)

    spec = StateSpaceSpec(regressor_names=("covid",))
    design = spec.design(n, x)
    system = spec.build_system([0.1, 0.01, 0.05, 0.2], design)
    out = kalman_smoother(system, y)

    np.testing.assert_allclose(out.smoothed_state[-1], out.filtered.filtered_state[-1], atol=1e-8)
    np.testing.assert_allclose(out.smoothed_cov[-1], out.filtered.filtered_cov[-1], atol=1e-8)
    assert out.filtered.n_diffuse == spec.k_states


def test_smoother_interpolates_deterministic_trend_and_season():
    from state_space.kalman import kalman_smoother
    from state_space.structural import StateSpaceSpec

    n = 20
    season = np.tile([4.0, -2.0, 1.0, -3.0], n // 4)
    truth = 100.0 + 2.0 * np.arange(n) + season
    y = truth.copy()
    y[9] = np.nan

    spec = StateSpaceSpec()
    system = spec.build_system([1e-10, 1e-10, 1e-10, 1e-6], spec.design(n))
    out = kalman_smoother(system, y)
    signal = out.signal(system.design)

    assert signal[9] == pytest.approx(truth[9], abs=1e-3)
    assert out.filtered.n_diffuse == spec.k_states


def test_trailing_missing_values_extrapolate_the_last_level():
    from state_space.kalman import kalman_smoother

    y = np.array([3.0, 4.0, 5.0, 4.5, np.nan, np.nan, np.nan])
    system = _local_level(len(y), level_var=0.3, obs_var=0.6)
    out = kalman_smoother(system, y)

    last_filtered = out.filtered.filtered_state[3, 0]
    np.testing.assert_allclose(out.smoothed_state[4:, 0], last_filtered)
    # Forecast uncertainty grows with the horizon
    assert np.all(np.diff(out.smoothed_cov[3:, 0, 0]) > 0)
