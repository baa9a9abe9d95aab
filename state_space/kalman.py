"""Exact diffuse Kalman filter and fixed-interval smoother.

Linear Gaussian state space model with a univariate observation::

    y_t         = Z_t alpha_t + eps_t,        eps_t ~ N(0, H)
    alpha_{t+1} = T alpha_t + R eta_t,        eta_t ~ N(0, Q)

Every state starts diffuse (``a_1 = 0``, ``P_1 = kappa * I`` with
``kappa -> infinity``). The recursions track the finite part ``P_star`` and
the diffuse part ``P_inf`` of the state covariance separately, following the
univariate exact initial treatment of Koopman & Durbin (2000), so no
"large variance" approximation is needed.

Missing observations are encoded as NaN in the observation array. The filter
computes an explicit observed/missing mask up front; masked steps skip the
measurement update, contribute nothing to the likelihood and still produce
predicted states, which is how forecasts are obtained from the smoother.

Features:
- Diffuse log-likelihood for maximum likelihood estimation
- Predicted, filtered and smoothed states with covariances
- Time-varying design row so regressor values enter ``Z_t``
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

LOG_2PI = float(np.log(2.0 * np.pi))
DIFFUSE_TOL = 1e-8

# Kind of measurement update performed at each time step
STEP_MISSING = 0
STEP_DIFFUSE = 1
STEP_REGULAR = 2


class StateSpaceError(RuntimeError):
    """Raised when the recursions break down numerically."""


@dataclass(frozen=True, eq=False)
class StateSpaceSystem:
    """System matrices of a univariate linear Gaussian state space model.

    Attributes
    ----------
    transition : np.ndarray
        ``T``, shape (m, m).
    design : np.ndarray
        ``Z_t`` stacked over time, shape (nobs, m).
    selection : np.ndarray
        ``R``, shape (m, r).
    state_cov : np.ndarray
        ``Q``, shape (r, r).
    obs_var : float
        Observation noise variance ``H``.
    """

    transition: np.ndarray
    design: np.ndarray
    selection: np.ndarray
    state_cov: np.ndarray
    obs_var: float

    def __post_init__(self):
        m = self.transition.shape[0]
        if self.transition.shape != (m, m):
            raise ValueError("transition must be square")
        if self.design.ndim != 2 or self.design.shape[1] != m:
            raise ValueError(f"design must have shape (nobs, {m}), got {self.design.shape}")
        if self.selection.shape[0] != m:
            raise ValueError("selection rows must match the state dimension")
        r = self.selection.shape[1]
        if self.state_cov.shape != (r, r):
            raise ValueError(f"state_cov must have shape ({r}, {r})")
        if not np.isfinite(self.obs_var) or self.obs_var < 0:
            raise ValueError("obs_var must be a finite non-negative number")

    @property
    def k_states(self) -> int:
        return self.transition.shape[0]

    @property
    def nobs(self) -> int:
        return self.design.shape[0]

    @property
    def state_noise_cov(self) -> np.ndarray:
        """``R Q R'``."""
        return self.selection @ self.state_cov @ self.selection.T


@dataclass(frozen=True, eq=False)
class FilterOutput:
    """Quantities stored by :func:`kalman_filter` (``store=True``).

    ``predicted_*`` arrays have ``nobs + 1`` rows; the last row is the
    one-step-ahead prediction beyond the sample.
    """

    loglike: float
    n_diffuse: int
    observed: np.ndarray
    step_kind: np.ndarray
    predicted_state: Optional[np.ndarray] = None
    predicted_cov: Optional[np.ndarray] = None
    predicted_cov_inf: Optional[np.ndarray] = None
    filtered_state: Optional[np.ndarray] = None
    filtered_cov: Optional[np.ndarray] = None
    innovations: Optional[np.ndarray] = None
    innovation_var: Optional[np.ndarray] = None
    diffuse_var: Optional[np.ndarray] = None
    gain0: Optional[np.ndarray] = None
    gain1: Optional[np.ndarray] = None


@dataclass(frozen=True, eq=False)
class SmootherOutput:
    """Smoothed states ``E[alpha_t | y]`` and their covariances for every t."""

    smoothed_state: np.ndarray
    smoothed_cov: np.ndarray
    filtered: FilterOutput

    def signal(self, design: np.ndarray) -> np.ndarray:
        """Smoothed signal ``Z_t alpha_hat_t``."""
        return np.einsum("ti,ti->t", design, self.smoothed_state)

    def signal_var(self, design: np.ndarray) -> np.ndarray:
        """Variance of the smoothed signal ``Z_t V_t Z_t'``."""
        return np.einsum("ti,tij,tj->t", design, self.smoothed_cov, design)


def _as_observations(system: StateSpaceSystem, endog) -> np.ndarray:
    y = np.asarray(endog, dtype=float)
    if y.ndim != 1:
        raise ValueError("endog must be one-dimensional")
    if len(y) != system.nobs:
        raise ValueError(f"endog has {len(y)} observations but design has {system.nobs} rows")
    return y


def kalman_filter(system: StateSpaceSystem, endog, store: bool = True) -> FilterOutput:
    """Run the exact diffuse Kalman filter.

    Parameters
    ----------
    system : StateSpaceSystem
        Model matrices.
    endog : array-like
        Observations, NaN marks a missing value.
    store : bool
        Keep per-step states, covariances and gains. Likelihood evaluation
        during optimisation runs with ``store=False``.

    Returns
    -------
    FilterOutput

    Raises
    ------
    StateSpaceError
        If an innovation variance is non-positive or the recursions
        produce non-finite values.
    """
    y = _as_observations(system, endog)
    observed = ~np.isnan(y)
    n, m = system.nobs, system.k_states
    T = system.transition
    RQR = system.state_noise_cov
    H = float(system.obs_var)

    a = np.zeros(m)
    P_star = np.zeros((m, m))
    P_inf = np.eye(m)
    loglike = 0.0
    n_diffuse = 0
    step_kind = np.zeros(n, dtype=np.int8)

    if store:
        predicted_state = np.zeros((n + 1, m))
        predicted_cov = np.zeros((n + 1, m, m))
        predicted_cov_inf = np.zeros((n + 1, m, m))
        filtered_state = np.zeros((n, m))
        filtered_cov = np.zeros((n, m, m))
        innovations = np.full(n, np.nan)
        innovation_var = np.full(n, np.nan)
        diffuse_var = np.zeros(n)
        gain0 = np.zeros((n, m))
        gain1 = np.zeros((n, m))

    for t in range(n):
        Z = system.design[t]
        if store:
            predicted_state[t] = a
            predicted_cov[t] = P_star
            predicted_cov_inf[t] = P_inf

        kind = STEP_MISSING
        if observed[t]:
            v = y[t] - Z @ a
            M_inf = P_inf @ Z
            F_inf = Z @ M_inf
            M_star = P_star @ Z
            F_star = Z @ M_star + H

            if F_inf > DIFFUSE_TOL:
                kind = STEP_DIFFUSE
                n_diffuse += 1
                k0 = M_inf / F_inf
                k1 = (M_star - k0 * F_star) / F_inf
                a = a + k0 * v
                P_star = P_star + F_star * np.outer(k0, k0) - np.outer(M_star, k0) - np.outer(k0, M_star)
                P_inf = P_inf - np.outer(M_inf, k0)
                loglike -= 0.5 * (LOG_2PI + np.log(F_inf))
            else:
                if not (np.isfinite(F_star) and F_star > 0):
                    raise StateSpaceError(f"non-positive innovation variance {F_star!r} at t={t}")
                kind = STEP_REGULAR
                k0 = M_star / F_star
                k1 = np.zeros(m)
                a = a + k0 * v
                P_star = P_star - np.outer(M_star, k0)
                loglike -= 0.5 * (LOG_2PI + np.log(F_star) + v * v / F_star)

            if store:
                innovations[t] = v
                innovation_var[t] = F_star
                diffuse_var[t] = F_inf
                gain0[t] = k0
                gain1[t] = k1

        step_kind[t] = kind
        if store:
            filtered_state[t] = a
            filtered_cov[t] = P_star

        a = T @ a
        P_star = T @ P_star @ T.T + RQR
        P_star = 0.5 * (P_star + P_star.T)
        P_inf = T @ P_inf @ T.T
        P_inf = 0.5 * (P_inf + P_inf.T)
        if n_diffuse and np.abs(P_inf).max() < DIFFUSE_TOL:
            P_inf = np.zeros((m, m))

    if not np.isfinite(loglike):
        raise StateSpaceError("log-likelihood is not finite")

    if not store:
        return FilterOutput(loglike=float(loglike), n_diffuse=n_diffuse,
                            observed=observed, step_kind=step_kind)

    predicted_state[n] = a
    predicted_cov[n] = P_star
    predicted_cov_inf[n] = P_inf
    return FilterOutput(
        loglike=float(loglike),
        n_diffuse=n_diffuse,
        observed=observed,
        step_kind=step_kind,
        predicted_state=predicted_state,
        predicted_cov=predicted_cov,
        predicted_cov_inf=predicted_cov_inf,
        filtered_state=filtered_state,
        filtered_cov=filtered_cov,
        innovations=innovations,
        innovation_var=innovation_var,
        diffuse_var=diffuse_var,
        gain0=gain0,
        gain1=gain1,
    )


def kalman_loglike(system: StateSpaceSystem, endog) -> float:
    """Diffuse log-likelihood of ``endog`` under ``system``."""
    return kalman_filter(system, endog, store=False).loglike


def kalman_smoother(system: StateSpaceSystem, endog,
                    filtered: Optional[FilterOutput] = None) -> SmootherOutput:
    """Exact diffuse fixed-interval state smoother.

    Runs the backward recursions for ``r`` and ``N`` split into their
    finite and diffuse parts (``r0, r1`` and ``N0, N1, N2``). Smoothed
    states at missing indices are the optimal interpolations (inside the
    sample) or extrapolations (at its end).

    Parameters
    ----------
    system : StateSpaceSystem
        Model matrices.
    endog : array-like
        Observations, NaN marks a missing value.
    filtered : FilterOutput, optional
        Output of a stored filter run on the same inputs.

    Returns
    -------
    SmootherOutput
    """
    if filtered is None or filtered.predicted_state is None:
        filtered = kalman_filter(system, endog, store=True)

    n, m = system.nobs, system.k_states
    T = system.transition
    r0 = np.zeros(m)
    r1 = np.zeros(m)
    N0 = np.zeros((m, m))
    N1 = np.zeros((m, m))
    N2 = np.zeros((m, m))
    smoothed_state = np.zeros((n, m))
    smoothed_cov = np.zeros((n, m, m))

    for t in range(n - 1, -1, -1):
        Z = system.design[t]
        kind = filtered.step_kind[t]

        if kind == STEP_DIFFUSE:
            v = filtered.innovations[t]
            F1 = 1.0 / filtered.diffuse_var[t]
            F2 = -filtered.innovation_var[t] * F1 * F1
            ZZ = np.outer(Z, Z)
            L0 = T - np.outer(T @ filtered.gain0[t], Z)
            L1 = -np.outer(T @ filtered.gain1[t], Z)
            r0, r1 = L0.T @ r0, Z * (F1 * v) + L0.T @ r1 + L1.T @ r0
            N0, N1, N2 = (
                L0.T @ N0 @ L0,
                ZZ * F1 + L0.T @ N1 @ L0 + L1.T @ N0 @ L0 + L0.T @ N0 @ L1,
                ZZ * F2 + L0.T @ N2 @ L0 + L0.T @ N1 @ L1 + L1.T @ N1 @ L0 + L1.T @ N0 @ L1,
            )
        elif kind == STEP_REGULAR:
            v = filtered.innovations[t]
            F = filtered.innovation_var[t]
            L = T - np.outer(T @ filtered.gain0[t], Z)
            r0 = Z * (v / F) + L.T @ r0
            r1 = L.T @ r1
            N0 = np.outer(Z, Z) / F + L.T @ N0 @ L
            N1 = L.T @ N1 @ L
            N2 = L.T @ N2 @ L
        else:
            r0 = T.T @ r0
            r1 = T.T @ r1
            N0 = T.T @ N0 @ T
            N1 = T.T @ N1 @ T
            N2 = T.T @ N2 @ T

        a = filtered.predicted_state[t]
        Ps = filtered.predicted_cov[t]
        Pi = filtered.predicted_cov_inf[t]
        smoothed_state[t] = a + Ps @ r0 + Pi @ r1
        cross = Pi @ N1 @ Ps
        V = Ps - Ps @ N0 @ Ps - cross - cross.T - Pi @ N2 @ Pi
        smoothed_cov[t] = 0.5 * (V + V.T)

    if not np.isfinite(smoothed_state).all():
        raise StateSpaceError("smoothed states are not finite")

    return SmootherOutput(smoothed_state=smoothed_state, smoothed_cov=smoothed_cov, filtered=filtered)
