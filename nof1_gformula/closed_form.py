"""
Closed-Form Two-Sample Effect Estimates.

Simple baselines next to the g-formula: compare outcomes of treated and
untreated periods directly.

    θ̂ = Ȳ₁ - Ȳ₀

    pooled:   s_p² = ((n₁-1)s₁² + (n₀-1)s₀²) / (n₁+n₀-2)
              se = s_p √(1/n₁ + 1/n₀),  CI with t_{n₁+n₀-2}
    unpooled: se = √(s₁²/n₁ + s₀²/n₀), Wald CI with z

These ignore carry-over and time-varying confounding, which is what the
g-formula estimator accounts for.

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

from nof1_gformula.exceptions import InsufficientDataError
from nof1_gformula.intervals import CONFIDENCE_DEFAULT, normal_quantile
from nof1_gformula.timeseries import DayMoment, TimeSeries


@dataclass
class ClosedFormResult:
    """Difference-in-means estimate with its interval."""
    theta_hat: float
    se: float
    ci_lower: float
    ci_upper: float
    n_treated: int
    n_control: int
    method: str

    @property
    def ci_length(self) -> float:
        return self.ci_upper - self.ci_lower

    def to_dict(self) -> Dict[str, Any]:
        return {
            'theta_hat': self.theta_hat,
            'se': self.se,
            'ci_lower': self.ci_lower,
            'ci_upper': self.ci_upper,
            'ci_length': self.ci_length,
            'n_treated': self.n_treated,
            'n_control': self.n_control,
            'method': self.method,
        }


def difference_in_means(
    outcome: NDArray,
    treatment: NDArray,
    confidence: float = CONFIDENCE_DEFAULT,
    pooled: bool = True,
) -> ClosedFormResult:
    """
    Two-sample difference in mean outcome between treated and untreated periods.

    Parameters
    ----------
    outcome : ndarray of shape (n,)
        Outcome per period.
    treatment : ndarray of shape (n,)
        Treatment indicator per period.
    confidence : float, default 0.95
        Two-sided confidence level.
    pooled : bool, default True
        Pooled-variance SE with a Student-t quantile; otherwise Welch SE with
        a normal quantile.

    Returns
    -------
    result : ClosedFormResult

    Raises
    ------
    InsufficientDataError
        Fewer than two observations in either arm.
    """
    y = np.asarray(outcome, dtype=float).ravel()
    d = np.asarray(treatment).astype(bool).ravel()
    if y.shape != d.shape:
        raise ValueError(f"outcome and treatment lengths differ: {y.shape} vs {d.shape}")

    y1, y0 = y[d], y[~d]
    n1, n0 = len(y1), len(y0)
    if n1 < 2 or n0 < 2:
        raise InsufficientDataError(
            f"Need at least 2 treated and 2 untreated periods, got {n1} and {n0}"
        )

    theta_hat = float(y1.mean() - y0.mean())
    var1, var0 = y1.var(ddof=1), y0.var(ddof=1)

    if pooled:
        df = n1 + n0 - 2
        pooled_var = ((n1 - 1) * var1 + (n0 - 1) * var0) / df
        se = float(np.sqrt(pooled_var * (1.0 / n1 + 1.0 / n0)))
        if not 0.0 < confidence < 1.0:
            raise ValueError(f"confidence must be in (0, 1), got {confidence}")
        crit = float(stats.t.ppf(1.0 - (1.0 - confidence) / 2.0, df))
        method = 'pooled'
    else:
        se = float(np.sqrt(var1 / n1 + var0 / n0))
        crit = normal_quantile(confidence)
        method = 'welch'

    return ClosedFormResult(
        theta_hat=theta_hat,
        se=se,
        ci_lower=theta_hat - crit * se,
        ci_upper=theta_hat + crit * se,
        n_treated=n1,
        n_control=n0,
        method=method,
    )


def effect_by_day_moment(
    series: TimeSeries,
    confidence: float = CONFIDENCE_DEFAULT,
    pooled: bool = True,
) -> pd.DataFrame:
    """
    Difference in means overall and within each moment of the day.

    Moments without two periods in each arm get NaN estimates.

    Returns
    -------
    table : pd.DataFrame
        One row per moment plus an 'all' row, columns of ClosedFormResult.
    """
    outcome = series.outcome
    treatment = series.treatment
    moments = np.array([m.value for m in series.day_moments])

    rows = []
    groups = [('all', np.ones(len(series), dtype=bool))]
    groups += [(m.value, moments == m.value) for m in DayMoment]
    for label, mask in groups:
        try:
            res = difference_in_means(outcome[mask], treatment[mask], confidence, pooled)
            row = res.to_dict()
        except InsufficientDataError:
            row = {
                'theta_hat': np.nan, 'se': np.nan, 'ci_lower': np.nan,
                'ci_upper': np.nan, 'ci_length': np.nan,
                'n_treated': int(treatment[mask].sum()),
                'n_control': int((~treatment[mask]).sum()),
                'method': 'pooled' if pooled else 'welch',
            }
        row['day_moment'] = label
        rows.append(row)

    df = pd.DataFrame(rows)
    return df[['day_moment'] + [c for c in df.columns if c != 'day_moment']]
