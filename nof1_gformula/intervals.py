"""
Wald Intervals for the Effect Trajectory.

Combines the Monte Carlo point estimate with the bootstrap dispersion:

    se_t    = sd_b( τ̂_t^{(b)} )           (sample standard deviation, ddof=1)
    CI_t    = τ̂_t ± z_{1-α/2} · se_t

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

from nof1_gformula.exceptions import InsufficientReplicatesError


# =============================================================================
# CONSTANTS
# =============================================================================

CONFIDENCE_DEFAULT: float = 0.95


def normal_quantile(confidence: float) -> float:
    """Two-sided critical value z_{1-α/2} for the given confidence level."""
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")
    return float(stats.norm.ppf(1.0 - (1.0 - confidence) / 2.0))


def _frozen(values: NDArray) -> NDArray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


# =============================================================================
# EFFECT REPORT
# =============================================================================

@dataclass(frozen=True, eq=False)
class EffectReport:
    """
    Per-period effect estimate with bootstrap standard error and interval.

    Attributes
    ----------
    point : ndarray of shape (N,)
        Point estimate from the original models.
    std : ndarray of shape (N,)
        Bootstrap standard deviation.
    lower, upper : ndarray of shape (N,)
        Wald interval bounds.
    confidence : float
        Nominal two-sided coverage.
    z : float
        Critical value used for the bounds.
    n_replicates : int
        Number of bootstrap replicates actually used (B').
    n_requested : int
        Number of bootstrap replicates requested (B).
    """
    point: NDArray
    std: NDArray
    lower: NDArray
    upper: NDArray
    confidence: float
    z: float
    n_replicates: int
    n_requested: int

    @property
    def index(self) -> NDArray:
        return np.arange(1, len(self.point) + 1)

    def __len__(self) -> int:
        return len(self.point)

    def to_frame(self) -> pd.DataFrame:
        """Ordered records {index, point, std, lower, upper}."""
        return pd.DataFrame({
            'index': self.index,
            'point': self.point,
            'std': self.std,
            'lower': self.lower,
            'upper': self.upper,
        })

    def informative(self) -> pd.DataFrame:
        """Records without index 1, where both policies share the anchor."""
        return self.to_frame().iloc[1:].reset_index(drop=True)

    def records(self) -> List[Dict[str, Any]]:
        return self.to_frame().to_dict(orient='records')

    def __repr__(self) -> str:
        return (
            f"EffectReport(N={len(self)}, confidence={self.confidence}, "
            f"replicates={self.n_replicates}/{self.n_requested})"
        )


def build_effect_report(
    point: NDArray,
    replicates: NDArray,
    confidence: float = CONFIDENCE_DEFAULT,
    n_requested: Optional[int] = None,
) -> EffectReport:
    """
    Build the per-period Wald interval report.

    Parameters
    ----------
    point : ndarray of shape (N,)
        Point estimate of the effect trajectory.
    replicates : ndarray of shape (B', N)
        Bootstrap replicates of the effect trajectory.
    confidence : float, default 0.95
        Two-sided confidence level.
    n_requested : int or None
        Number of replicates originally requested; defaults to B'.

    Returns
    -------
    report : EffectReport

    Raises
    ------
    InsufficientReplicatesError
        Fewer than two replicates.
    ValueError
        Shape mismatch or confidence outside (0, 1).
    """
    point = np.asarray(point, dtype=float)
    replicates = np.atleast_2d(np.asarray(replicates, dtype=float))
    if point.ndim != 1:
        raise ValueError(f"point must be one-dimensional, got shape {point.shape}")
    if replicates.shape[1] != point.shape[0]:
        raise ValueError(
            f"Replicates have {replicates.shape[1]} periods, point estimate has {point.shape[0]}"
        )

    n_replicates = replicates.shape[0]
    if n_replicates < 2:
        raise InsufficientReplicatesError(
            f"Need at least 2 bootstrap replicates for a standard deviation, got {n_replicates}"
        )

    z = normal_quantile(confidence)
    std = replicates.std(axis=0, ddof=1)

    return EffectReport(
        point=_frozen(point),
        std=_frozen(std),
        lower=_frozen(point - z * std),
        upper=_frozen(point + z * std),
        confidence=confidence,
        z=z,
        n_replicates=n_replicates,
        n_requested=n_requested if n_requested is not None else n_replicates,
    )
