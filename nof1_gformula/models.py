"""
Outcome and Covariate Models for G-Formula Simulation.

The simulator only needs two small contracts:

    - outcome model:   predict(treatment, temperature, day_moment,
                               lag1_treatment, lag1_outcome) -> μ ∈ (0, 1)
                       plus a precision attribute φ > 0
    - covariate model: predict(lag1_temperature) -> mean temperature
                       plus a residual_scale attribute σ ≥ 0

Any object honouring them can be plugged in (tests use constant stubs).
This module also provides the default fitting procedure:

    Outcome:    Beta regression, logit(μ) = x'β, constant log-link precision
                x = [1, A_t, T_t, wakeup_t, sec_meal_t, A_{t-1}, Y_{t-1}]
    Covariate:  T_t = α + γ T_{t-1} + ε, ε ~ N(0, σ²), fitted only on rows
                whose current moment is wakeup (temperature changes once a day)

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, Protocol, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.special import expit
from sklearn.linear_model import LinearRegression
from statsmodels.othermod.betareg import BetaModel
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from nof1_gformula.exceptions import ModelFitError
from nof1_gformula.timeseries import DayMoment, Period


# =============================================================================
# CONSTANTS
# =============================================================================

OUTCOME_TERMS: Tuple[str, ...] = (
    'intercept',
    'treatment',
    'temperature',
    'wakeup',
    'sec_meal',
    'lag1_treatment',
    'lag1_outcome',
)

BFGS_MAXITER: int = 1000     # Coarse optimisation stage
NEWTON_MAXITER: int = 100    # Refinement stage from the BFGS solution
MIN_COVARIATE_ROWS: int = 3  # Intercept + slope + one residual degree of freedom


# =============================================================================
# CONTRACTS
# =============================================================================

class OutcomeModel(Protocol):
    precision: float

    def predict(
        self,
        treatment: bool,
        temperature: float,
        day_moment: DayMoment,
        lag1_treatment: bool,
        lag1_outcome: float,
    ) -> float:
        ...


class CovariateModel(Protocol):
    residual_scale: float

    def predict(self, lag1_temperature: float) -> float:
        ...


@dataclass(frozen=True)
class FittedModelPair:
    """Outcome and covariate models fitted on the same data."""
    outcome: OutcomeModel
    covariate: CovariateModel


# =============================================================================
# DESIGN MATRICES
# =============================================================================

def outcome_design_row(
    treatment: bool,
    temperature: float,
    day_moment: DayMoment,
    lag1_treatment: bool,
    lag1_outcome: float,
) -> NDArray:
    """Regressor vector of the outcome model, ordered as OUTCOME_TERMS."""
    return np.array([
        1.0,
        float(treatment),
        float(temperature),
        float(day_moment is DayMoment.WAKEUP),
        float(day_moment is DayMoment.SEC_MEAL),
        float(lag1_treatment),
        float(lag1_outcome),
    ])


def outcome_design(periods: Iterable[Period]) -> Tuple[NDArray, NDArray]:
    """
    Build (X, y) for the outcome regression.

    Periods without lag fields (the anchor) are skipped.
    """
    rows = []
    y = []
    for p in periods:
        if not p.has_lag:
            continue
        rows.append(outcome_design_row(
            p.treatment, p.temperature, p.day_moment, p.lag1_treatment, p.lag1_outcome
        ))
        y.append(p.outcome)
    X = np.vstack(rows) if rows else np.empty((0, len(OUTCOME_TERMS)))
    return X, np.asarray(y, dtype=float)


def covariate_design(periods: Iterable[Period]) -> Tuple[NDArray, NDArray]:
    """Build (x, y) for the temperature regression from wake-up rows only."""
    rows = [p for p in periods if p.has_lag and p.day_moment is DayMoment.WAKEUP]
    x = np.array([[p.lag1_temperature] for p in rows], dtype=float).reshape(-1, 1)
    y = np.array([p.temperature for p in rows], dtype=float)
    return x, y


# =============================================================================
# FITTED MODELS
# =============================================================================

@dataclass(frozen=True)
class BetaOutcomeModel:
    """
    Fitted Beta regression for the outcome.

    Attributes
    ----------
    coefficients : tuple of float
        Mean-model coefficients on the logit scale, ordered as OUTCOME_TERMS.
    precision : float
        Precision φ; the Beta shapes are (μφ, (1 - μ)φ).
    n_obs : int
        Number of rows the model was fitted on.
    """
    coefficients: Tuple[float, ...]
    precision: float
    n_obs: int = 0
    _beta: NDArray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'coefficients', tuple(float(c) for c in self.coefficients))
        if len(self.coefficients) != len(OUTCOME_TERMS):
            raise ValueError(
                f"Expected {len(OUTCOME_TERMS)} coefficients, got {len(self.coefficients)}"
            )
        object.__setattr__(self, '_beta', np.asarray(self.coefficients))

    def predict(
        self,
        treatment: bool,
        temperature: float,
        day_moment: DayMoment,
        lag1_treatment: bool,
        lag1_outcome: float,
    ) -> float:
        x = outcome_design_row(treatment, temperature, day_moment, lag1_treatment, lag1_outcome)
        return float(expit(x @ self._beta))

    @property
    def params(self) -> Dict[str, float]:
        out = dict(zip(OUTCOME_TERMS, self.coefficients))
        out['precision'] = self.precision
        return out


@dataclass(frozen=True)
class LinearCovariateModel:
    """Fitted day-to-day temperature regression T_t = α + γ T_{t-1} + ε."""
    intercept: float
    slope: float
    residual_scale: float
    n_obs: int = 0

    def predict(self, lag1_temperature: float) -> float:
        return self.intercept + self.slope * lag1_temperature


# =============================================================================
# FITTING
# =============================================================================

def fit_outcome_model(periods: Iterable[Period]) -> BetaOutcomeModel:
    """
    Fit the Beta regression outcome model by maximum likelihood.

    Optimisation runs BFGS from the statsmodels default start values, then
    refines with Newton steps from the BFGS solution. The result is
    deterministic for identical input.

    Parameters
    ----------
    periods : iterable of Period
        Observed or simulated trajectory.

    Returns
    -------
    model : BetaOutcomeModel

    Raises
    ------
    ModelFitError
        Too few rows, rank-deficient design (e.g. no treatment contrast),
        responses outside (0, 1), failed optimisation, or a non-finite /
        non-positive precision.
    """
    X, y = outcome_design(periods)
    n, k = X.shape

    if n <= k:
        raise ModelFitError(
            f"Outcome model needs more than {k} rows with lag information, got {n}"
        )
    if np.linalg.matrix_rank(X) < k:
        constant = [
            term for term, col in zip(OUTCOME_TERMS[1:], X[:, 1:].T)
            if np.ptp(col) == 0
        ]
        detail = f" (no variation in {constant})" if constant else ""
        raise ModelFitError(f"Outcome design matrix is rank deficient{detail}")
    if not np.all((y > 0.0) & (y < 1.0)):
        raise ModelFitError("Outcome responses must lie strictly inside (0, 1)")

    model = BetaModel(y, X)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            warnings.simplefilter('ignore', RuntimeWarning)
            coarse = model.fit(method='bfgs', maxiter=BFGS_MAXITER, disp=False)
            res = model.fit(
                start_params=coarse.params,
                method='newton',
                maxiter=NEWTON_MAXITER,
                disp=False,
            )
    except (np.linalg.LinAlgError, ValueError, OverflowError, FloatingPointError) as e:
        raise ModelFitError(f"Beta regression failed: {e}") from e

    params = np.asarray(res.params, dtype=float)
    if not res.mle_retvals.get('converged', False):
        raise ModelFitError("Beta regression did not converge")
    if not np.all(np.isfinite(params)):
        raise ModelFitError("Beta regression produced non-finite coefficients")

    # Precision uses the default log link with a constant regressor
    precision = float(np.exp(params[-1]))
    if not np.isfinite(precision) or precision <= 0:
        raise ModelFitError(f"Fitted precision is not usable: {precision}")

    return BetaOutcomeModel(
        coefficients=tuple(params[:k]),
        precision=precision,
        n_obs=n,
    )


def fit_covariate_model(periods: Iterable[Period]) -> LinearCovariateModel:
    """
    Fit the wake-up temperature regression by ordinary least squares.

    The residual scale is the usual unbiased estimate √(RSS / (n - 2)).

    Raises
    ------
    ModelFitError
        Fewer than MIN_COVARIATE_ROWS wake-up rows, or no variation in the
        lagged temperature.
    """
    x, y = covariate_design(periods)
    n = len(y)
    if n < MIN_COVARIATE_ROWS:
        raise ModelFitError(
            f"Temperature model needs at least {MIN_COVARIATE_ROWS} wake-up rows, got {n}"
        )
    if np.ptp(x[:, 0]) == 0:
        raise ModelFitError("Lagged temperature is constant on wake-up rows")

    reg = LinearRegression().fit(x, y)
    resid = y - reg.predict(x)
    residual_scale = float(np.sqrt(np.sum(resid ** 2) / (n - 2)))

    intercept = float(reg.intercept_)
    slope = float(reg.coef_[0])
    if not np.all(np.isfinite([intercept, slope, residual_scale])):
        raise ModelFitError("Temperature regression produced non-finite parameters")

    return LinearCovariateModel(
        intercept=intercept,
        slope=slope,
        residual_scale=residual_scale,
        n_obs=n,
    )


def fit_models(periods: Iterable[Period]) -> FittedModelPair:
    """Fit both models on one (observed or simulated) trajectory."""
    periods = tuple(periods)
    return FittedModelPair(
        outcome=fit_outcome_model(periods),
        covariate=fit_covariate_model(periods),
    )
