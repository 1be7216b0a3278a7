"""
Individual G-Formula Estimator.

Ties the pieces together for one subject:

    1. fit the outcome and covariate models on the observed series,
    2. point estimate of the effect trajectory (G draws per policy),
    3. parametric bootstrap (B replicates, each refit + G draws per policy),
    4. per-period Wald interval.

Errors on the original sample abort the estimation: a failed original fit
is a ModelFitError, and an unusable distribution parameter during the point
estimate means the fitted models cannot be simulated from. Errors inside a
bootstrap replicate only drop that replicate.

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from nof1_gformula.bootstrap import (
    B_DEFAULT,
    MIN_REPLICATES,
    BootstrapResult,
    FitFunction,
    parametric_bootstrap,
)
from nof1_gformula.exceptions import InvalidDistributionParameterError, ModelFitError
from nof1_gformula.intervals import CONFIDENCE_DEFAULT, EffectReport, build_effect_report
from nof1_gformula.models import FittedModelPair, fit_models
from nof1_gformula.montecarlo import G_DEFAULT, estimate_effect
from nof1_gformula.timeseries import TimeSeries


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_SEED: int = 20240515


# =============================================================================
# RESULT CONTAINER
# =============================================================================

@dataclass
class GFormulaResult:
    """
    Container for one individual g-formula estimation.

    Attributes
    ----------
    report : EffectReport
        Point estimate, bootstrap SE and interval per period.
    models : FittedModelPair
        Models fitted on the observed series.
    point : ndarray of shape (N,)
        Monte Carlo point estimate of the effect trajectory.
    bootstrap : BootstrapResult
        Surviving replicates and failure counts.
    n_draws : int
        Inner Monte Carlo draws G.
    """
    report: EffectReport
    models: FittedModelPair
    point: NDArray
    bootstrap: BootstrapResult
    n_draws: int

    @property
    def mean_effect(self) -> float:
        """Average point effect over the informative periods (index ≥ 2)."""
        return float(np.mean(self.point[1:]))

    def to_dict(self) -> Dict[str, Any]:
        out = {
            'n_periods': len(self.point),
            'n_draws': self.n_draws,
            'confidence': self.report.confidence,
            'mean_effect': self.mean_effect,
        }
        out.update(self.bootstrap.summary_dict())
        return out


# =============================================================================
# ESTIMATOR CLASS
# =============================================================================

class GFormulaEstimator:
    """
    Sequential g-formula estimator of an individual, time-varying effect.

    Parameters
    ----------
    n_draws : int, default 500
        Monte Carlo draws G per policy (point estimate and each replicate).
    n_boot : int, default 100
        Parametric bootstrap replicates B.
    confidence : float, default 0.95
        Two-sided confidence level of the Wald intervals.
    random_state : int or None, default 20240515
        Root seed; the point estimate and the bootstrap use independent
        child streams of it.
    fit : callable, default fit_models
        Fitting procedure used on the observed series and on every
        bootstrap dataset.
    min_replicates : int, default 2
        Minimum surviving bootstrap replicates.
    n_jobs : int, default 1
        Parallel jobs across bootstrap replicates.
    backend : str or None
        joblib backend for the bootstrap.
    time_limit : float or None
        Wall-clock limit for the bootstrap in seconds.
    verbose : bool, default False
        Print progress.

    Attributes
    ----------
    result_ : GFormulaResult or None
        Set by fit().
    """

    def __init__(
        self,
        n_draws: int = G_DEFAULT,
        n_boot: int = B_DEFAULT,
        confidence: float = CONFIDENCE_DEFAULT,
        random_state: Optional[int] = DEFAULT_SEED,
        fit: FitFunction = fit_models,
        min_replicates: int = MIN_REPLICATES,
        n_jobs: int = 1,
        backend: Optional[str] = None,
        time_limit: Optional[float] = None,
        verbose: bool = False,
    ) -> None:
        self.n_draws = n_draws
        self.n_boot = n_boot
        self.confidence = confidence
        self.random_state = random_state
        self.fit_models = fit
        self.min_replicates = min_replicates
        self.n_jobs = n_jobs
        self.backend = backend
        self.time_limit = time_limit
        self.verbose = verbose
        self.result_: Optional[GFormulaResult] = None

    def _fit_original(self, series: TimeSeries) -> FittedModelPair:
        try:
            return self.fit_models(series)
        except ModelFitError as e:
            raise ModelFitError(f"Model fit on the observed series failed: {e}") from e

    def fit(
        self,
        series: TimeSeries,
        models: Optional[FittedModelPair] = None,
    ) -> GFormulaResult:
        """
        Estimate the effect trajectory for one subject.

        Parameters
        ----------
        series : TimeSeries
            Observed periods of the subject.
        models : FittedModelPair or None
            Models already fitted on ``series``; fitted here when omitted.

        Returns
        -------
        result : GFormulaResult
        """
        if self.n_draws < 1:
            raise ValueError(f"n_draws must be >= 1, got {self.n_draws}")

        length = len(series)
        anchor = series.anchor
        point_seed, boot_seed = np.random.SeedSequence(self.random_state).spawn(2)

        if self.verbose:
            print(f"G-formula estimation: N = {length}, G = {self.n_draws}, B = {self.n_boot}")

        if models is None:
            models = self._fit_original(series)

        try:
            point = estimate_effect(models, anchor, length, self.n_draws, point_seed)
        except InvalidDistributionParameterError as e:
            raise InvalidDistributionParameterError(
                f"Fitted models are unusable for simulation on the observed series: {e}"
            ) from e

        if self.verbose:
            print(f"  Point estimate: mean effect over periods 2..{length} = "
                  f"{np.mean(point[1:]):.4f}")

        boot = parametric_bootstrap(
            models,
            series.observed_treatment,
            anchor,
            n_boot=self.n_boot,
            n_draws=self.n_draws,
            random_state=boot_seed,
            fit=self.fit_models,
            min_replicates=self.min_replicates,
            n_jobs=self.n_jobs,
            backend=self.backend,
            time_limit=self.time_limit,
            verbose=self.verbose,
        )

        report = build_effect_report(
            point, boot.replicates, confidence=self.confidence, n_requested=self.n_boot
        )

        self.result_ = GFormulaResult(
            report=report,
            models=models,
            point=point,
            bootstrap=boot,
            n_draws=self.n_draws,
        )
        return self.result_

    @property
    def report_(self) -> EffectReport:
        if self.result_ is None:
            raise ValueError("Estimator not fitted. Call .fit() first.")
        return self.result_.report

    def summary_frame(self) -> pd.DataFrame:
        """Informative rows of the report (anchor dropped)."""
        return self.report_.informative()

    def __repr__(self) -> str:
        if self.result_ is None:
            return (f"GFormulaEstimator(n_draws={self.n_draws}, n_boot={self.n_boot}, "
                    f"confidence={self.confidence}) [not fitted]")
        r = self.result_
        return (
            f"GFormulaEstimator Results:\n"
            f"  N = {len(r.point)}, G = {r.n_draws}, "
            f"B = {r.bootstrap.n_completed}/{r.bootstrap.n_requested}\n"
            f"  Mean effect (periods ≥ 2) = {r.mean_effect:.4f}"
        )


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def run_gformula(
    series: TimeSeries,
    n_draws: int = G_DEFAULT,
    n_boot: int = B_DEFAULT,
    confidence: float = CONFIDENCE_DEFAULT,
    random_state: Optional[int] = DEFAULT_SEED,
    models: Optional[FittedModelPair] = None,
    n_jobs: int = 1,
    verbose: bool = False,
) -> GFormulaResult:
    """
    Convenience function to run the individual g-formula estimation.

    See GFormulaEstimator for the parameters.
    """
    estimator = GFormulaEstimator(
        n_draws=n_draws,
        n_boot=n_boot,
        confidence=confidence,
        random_state=random_state,
        n_jobs=n_jobs,
        verbose=verbose,
    )
    return estimator.fit(series, models=models)
