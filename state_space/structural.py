"""Structural time series model: local linear trend + dummy seasonal + regression.

State vector layout (quarterly case)::

    [level, slope, gamma_t, gamma_{t-1}, gamma_{t-2}, beta_1, ..., beta_k]

- ``level_{t+1} = level_t + slope_t + xi_t``
- ``slope_{t+1} = slope_t + zeta_t`` (``zeta`` switched off with
  ``estimate_slope=False``, giving a local level with fixed drift)
- ``gamma_{t+1} = -(gamma_t + gamma_{t-1} + gamma_{t-2}) + omega_t``: one
  variance for the whole seasonal block
- ``beta_{t+1} = beta_t``: regression coefficients without process noise
- ``y_t = level_t + gamma_t + x_t' beta + eps_t``

The four variances are estimated by maximising the exact diffuse
log-likelihood over their logarithms.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import minimize

from .kalman import StateSpaceError, StateSpaceSystem, kalman_loglike, kalman_smoother

logger = logging.getLogger(__name__)

# Log-variance search box relative to log(var(y))
LOG_VAR_LOWER = -30.0
LOG_VAR_UPPER = 10.0
_PENALTY = 1e12


@dataclass(frozen=True)
class StateSpaceSpec:
    """Layout of the structural model.

    Attributes
    ----------
    seasonal_period : int
        Number of seasons (4 for quarterly data).
    estimate_slope : bool
        Estimate the slope disturbance variance; fixed at zero otherwise.
    regressor_names : tuple of str
        One constant-coefficient state per regressor, in column order.
    """

    seasonal_period: int = 4
    estimate_slope: bool = True
    regressor_names: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.seasonal_period < 2:
            raise ValueError("seasonal_period must be at least 2")

    @property
    def n_seasonal(self) -> int:
        return self.seasonal_period - 1

    @property
    def k_regressors(self) -> int:
        return len(self.regressor_names)

    @property
    def k_states(self) -> int:
        return 2 + self.n_seasonal + self.k_regressors

    @property
    def state_names(self) -> Tuple[str, ...]:
        seasonal = tuple(f"seasonal.L{i}" if i else "seasonal" for i in range(self.n_seasonal))
        return ("level", "slope") + seasonal + tuple(f"beta.{name}" for name in self.regressor_names)

    @property
    def param_names(self) -> Tuple[str, ...]:
        names = ["sigma2.level"]
        if self.estimate_slope:
            names.append("sigma2.slope")
        names.extend(["sigma2.seasonal", "sigma2.irregular"])
        return tuple(names)

    def transition(self) -> np.ndarray:
        m = self.k_states
        T = np.zeros((m, m))
        T[0, 0] = T[0, 1] = T[1, 1] = 1.0
        s = 2
        T[s, s:s + self.n_seasonal] = -1.0
        for i in range(1, self.n_seasonal):
            T[s + i, s + i - 1] = 1.0
        for j in range(2 + self.n_seasonal, m):
            T[j, j] = 1.0
        return T

    def selection(self) -> np.ndarray:
        disturbed = [0, 1, 2] if self.estimate_slope else [0, 2]
        R = np.zeros((self.k_states, len(disturbed)))
        for col, state in enumerate(disturbed):
            R[state, col] = 1.0
        return R

    def design(self, nobs: int, exog: Optional[np.ndarray] = None) -> np.ndarray:
        """Time-varying observation rows ``Z_t`` of shape (nobs, k_states)."""
        Z = np.zeros((nobs, self.k_states))
        Z[:, 0] = 1.0
        Z[:, 2] = 1.0
        if self.k_regressors:
            if exog is None:
                raise ValueError("regressor values are required for a model with regressors")
            x = np.asarray(exog, dtype=float).reshape(nobs, -1)
            if x.shape[1] != self.k_regressors:
                raise ValueError(f"expected {self.k_regressors} regressor column(s), got {x.shape[1]}")
            Z[:, 2 + self.n_seasonal:] = x
        return Z

    def build_system(self, variances: Sequence[float], design: np.ndarray) -> StateSpaceSystem:
        """Bind variances (ordered as ``param_names``) to the system matrices."""
        variances = np.asarray(variances, dtype=float)
        if variances.shape != (len(self.param_names),):
            raise ValueError(f"expected {len(self.param_names)} variances, got {variances.shape}")
        return StateSpaceSystem(
            transition=self.transition(),
            design=design,
            selection=self.selection(),
            state_cov=np.diag(variances[:-1]),
            obs_var=float(variances[-1]),
        )


@dataclass(frozen=True, eq=False)
class SmoothedSignal:
    """Smoothed observation signal and its uncertainty."""

    mean: np.ndarray
    state_var: np.ndarray
    obs_var: float
    states: np.ndarray
    state_names: Tuple[str, ...]

    @property
    def prediction_var(self) -> np.ndarray:
        """Variance of a new observation around the signal."""
        return self.state_var + self.obs_var

    def component(self, name: str) -> np.ndarray:
        return self.states[:, self.state_names.index(name)]


@dataclass(frozen=True, eq=False)
class StructuralFit:
    """Maximum likelihood fit of a :class:`StateSpaceSpec`."""

    spec: StateSpaceSpec
    params: Dict[str, float]
    loglike: float
    nobs: int
    n_iter: int
    message: str

    @property
    def variances(self) -> np.ndarray:
        return np.array([self.params[name] for name in self.spec.param_names])

    def smooth(self, endog, exog=None) -> SmoothedSignal:
        """Smooth ``endog`` (NaN where unobserved) with the fitted variances.

        Trailing NaNs turn the smoothed signal into a forecast: the value at
        a future index is the extrapolated trend plus the seasonal effect of
        that quarter plus the regressor contribution.
        """
        y = np.asarray(endog, dtype=float)
        design = self.spec.design(len(y), exog)
        system = self.spec.build_system(self.variances, design)
        out = kalman_smoother(system, y)
        return SmoothedSignal(
            mean=out.signal(design),
            state_var=np.maximum(out.signal_var(design), 0.0),
            obs_var=system.obs_var,
            states=out.smoothed_state,
            state_names=self.spec.state_names,
        )


def fit_structural(endog,
                   exog=None,
                   spec: Optional[StateSpaceSpec] = None,
                   init_scale: float = 10.0,
                   maxiter: int = 500) -> StructuralFit:
    """Estimate the structural model variances by maximum likelihood.

    Parameters
    ----------
    endog : array-like
        Observations (NaN allowed for missing values).
    exog : array-like, optional
        Regressor matrix with one column per ``spec.regressor_names``.
    spec : StateSpaceSpec, optional
        Model layout; defaults to a regressor-free quarterly model.
    init_scale : float
        Every variance starts at ``var(y) * init_scale``.
    maxiter : int
        Iteration cap of the optimiser. Reaching it is a failure.

    Returns
    -------
    StructuralFit

    Raises
    ------
    StateSpaceError
        Too few observations, a constant series, an optimiser that hits the
        iteration cap, or a non-finite optimum.

    Notes
    -----
    The optimiser is L-BFGS-B over log-variances inside a box of
    ``[log var(y) - 30, log var(y) + 10]``. A line-search stop at a finite
    optimum is accepted; it means the likelihood cannot be improved at
    machine precision.
    """
    spec = spec or StateSpaceSpec()
    y = np.asarray(endog, dtype=float)
    n_observed = int(np.isfinite(y).sum())
    if n_observed <= spec.k_states:
        raise StateSpaceError(
            f"need more than {spec.k_states} observations to fit the structural model, got {n_observed}"
        )
    sample_var = float(np.nanvar(y, ddof=1))
    if not np.isfinite(sample_var) or sample_var <= 0:
        raise StateSpaceError("series has no variation")

    design = spec.design(len(y), exog)
    log_var = np.log(sample_var)
    x0 = np.full(len(spec.param_names), np.log(sample_var * init_scale))
    bounds = [(log_var + LOG_VAR_LOWER, log_var + LOG_VAR_UPPER)] * len(x0)

    def objective(theta):
        system = spec.build_system(np.exp(theta), design)
        try:
            return -kalman_loglike(system, y)
        except StateSpaceError:
            return _PENALTY

    res = minimize(objective, x0, method="L-BFGS-B", bounds=bounds, options={"maxiter": maxiter})
    if not np.isfinite(res.fun) or res.fun >= _PENALTY:
        raise StateSpaceError(f"likelihood optimisation failed: {res.message}")
    if res.nit >= maxiter:
        raise StateSpaceError(f"likelihood optimisation did not converge in {maxiter} iterations")
    if not res.success:
        logger.debug("Optimiser stopped early at a finite optimum: %s", res.message)

    variances = np.exp(res.x)
    params = {name: float(value) for name, value in zip(spec.param_names, variances)}
    logger.debug("Structural fit: nobs=%d loglike=%.3f params=%s", len(y), -res.fun, params)
    return StructuralFit(
        spec=spec,
        params=params,
        loglike=float(-res.fun),
        nobs=len(y),
        n_iter=int(res.nit),
        message=str(res.message),
    )
