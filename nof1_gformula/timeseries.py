"""
Per-Subject Time Series Data Model.

This module holds the immutable records the simulation engine works on:

    - DayMoment: the closed 3-cycle bedtime → wakeup → sec_meal → bedtime
    - Period: one measured or simulated time step with its lag-1 fields
    - Trajectory: an ordered sequence of Periods anchored on a real observation
    - TimeSeries: a validated Trajectory of observed Periods

The lag-1 fields of Period i always equal the current fields of Period i-1,
and the day moment of Period i is fully determined by its lag. A TimeSeries
enforces both on construction; simulated Trajectories satisfy them by
building every Period from its predecessor with ``Period.next_period``.

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from nof1_gformula.exceptions import InsufficientDataError


# =============================================================================
# CONSTANTS
# =============================================================================

DAY_MOMENT_COL: str = "day_moment"
TEMPERATURE_COL: str = "temperature"
TREATMENT_COL: str = "treatment"
OUTCOME_COL: str = "outcome"

MIN_PERIODS: int = 2         # Need at least one transition to simulate


# =============================================================================
# DAY MOMENT CYCLE
# =============================================================================

class DayMoment(Enum):
    """Moment of the day at which a period is measured."""

    BEDTIME = "bedtime"
    WAKEUP = "wakeup"
    SEC_MEAL = "sec_meal"

    def successor(self) -> "DayMoment":
        """Next moment in the fixed daily cycle."""
        return _SUCCESSOR[self]

    @classmethod
    def parse(cls, value: Union[str, "DayMoment"]) -> "DayMoment":
        """Coerce a label such as ``'wakeup'`` or ``'SEC_MEAL'`` to a DayMoment."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for moment in cls:
            if moment.value == key:
                return moment
        raise ValueError(
            f"Unknown day moment {value!r}, expected one of "
            f"{[m.value for m in cls]}"
        )


_SUCCESSOR = {
    DayMoment.BEDTIME: DayMoment.WAKEUP,
    DayMoment.WAKEUP: DayMoment.SEC_MEAL,
    DayMoment.SEC_MEAL: DayMoment.BEDTIME,
}


# =============================================================================
# PERIOD
# =============================================================================

@dataclass(frozen=True)
class Period:
    """
    One time step of one subject.

    Attributes
    ----------
    index : int
        1-based position in the subject's sequence.
    day_moment : DayMoment
        Moment of the day of this period.
    temperature : float
        Time-varying covariate.
    treatment : bool
        Whether the treatment was taken in this period.
    outcome : float
        Outcome in the open interval (0, 1).
    lag1_day_moment, lag1_temperature, lag1_treatment, lag1_outcome
        Values of the previous period; ``None`` on the first period.
    """
    index: int
    day_moment: DayMoment
    temperature: float
    treatment: bool
    outcome: float
    lag1_day_moment: Optional[DayMoment] = None
    lag1_temperature: Optional[float] = None
    lag1_treatment: Optional[bool] = None
    lag1_outcome: Optional[float] = None

    @property
    def has_lag(self) -> bool:
        return self.lag1_day_moment is not None

    def next_period(
        self,
        *,
        treatment: bool,
        temperature: float,
        outcome: float,
    ) -> "Period":
        """
        Build the period that follows this one.

        The day moment advances along the cycle and the lag-1 fields are
        copied from ``self``.
        """
        return Period(
            index=self.index + 1,
            day_moment=self.day_moment.successor(),
            temperature=temperature,
            treatment=treatment,
            outcome=outcome,
            lag1_day_moment=self.day_moment,
            lag1_temperature=self.temperature,
            lag1_treatment=self.treatment,
            lag1_outcome=self.outcome,
        )

    def to_dict(self) -> dict:
        return {
            'index': self.index,
            'day_moment': self.day_moment.value,
            'temperature': self.temperature,
            'treatment': self.treatment,
            'outcome': self.outcome,
            'lag1_day_moment': (
                self.lag1_day_moment.value if self.lag1_day_moment is not None else None
            ),
            'lag1_temperature': self.lag1_temperature,
            'lag1_treatment': self.lag1_treatment,
            'lag1_outcome': self.lag1_outcome,
        }


# =============================================================================
# TRAJECTORY
# =============================================================================

@dataclass(frozen=True)
class Trajectory:
    """
    Ordered, immutable sequence of Periods.

    The first period is always a real observation (the anchor); the rest
    may be observed or simulated.
    """
    periods: Tuple[Period, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, 'periods', tuple(self.periods))

    def __len__(self) -> int:
        return len(self.periods)

    def __iter__(self) -> Iterator[Period]:
        return iter(self.periods)

    def __getitem__(self, item):
        return self.periods[item]

    @property
    def anchor(self) -> Period:
        return self.periods[0]

    @property
    def outcome(self) -> NDArray:
        return np.array([p.outcome for p in self.periods], dtype=float)

    @property
    def treatment(self) -> NDArray:
        return np.array([p.treatment for p in self.periods], dtype=bool)

    @property
    def temperature(self) -> NDArray:
        return np.array([p.temperature for p in self.periods], dtype=float)

    @property
    def day_moments(self) -> Tuple[DayMoment, ...]:
        return tuple(p.day_moment for p in self.periods)

    def to_frame(self) -> pd.DataFrame:
        """One row per period, day moments as their string labels."""
        return pd.DataFrame([p.to_dict() for p in self.periods])


# =============================================================================
# OBSERVED TIME SERIES
# =============================================================================

class TimeSeries(Trajectory):
    """
    Validated sequence of observed periods for one subject.

    Raises
    ------
    InsufficientDataError
        Fewer than two periods, or no wake-up period after the anchor (the
        covariate model has nothing to learn from).
    ValueError
        Broken day-moment cycle, lag fields inconsistent with the previous
        period, non-consecutive indices, non-finite temperature, or an
        outcome outside (0, 1).
    """

    def __post_init__(self) -> None:
        super().__post_init__()
        self._validate()

    def _validate(self) -> None:
        periods = self.periods
        if len(periods) < MIN_PERIODS:
            raise InsufficientDataError(
                f"Time series has {len(periods)} period(s); at least "
                f"{MIN_PERIODS} are needed to simulate a transition"
            )
        if periods[0].index != 1:
            raise ValueError(f"First period must have index 1, got {periods[0].index}")

        for period in periods:
            if not np.isfinite(period.temperature):
                raise ValueError(f"Non-finite temperature at index {period.index}")
            if not 0.0 < period.outcome < 1.0:
                raise ValueError(
                    f"Outcome at index {period.index} is {period.outcome}, "
                    f"must lie strictly inside (0, 1)"
                )

        for prev, cur in zip(periods, periods[1:]):
            if cur.day_moment is not prev.day_moment.successor():
                raise ValueError(
                    f"Day-moment cycle broken at index {cur.index}: "
                    f"{prev.day_moment.value} -> {cur.day_moment.value}"
                )
            expected = prev.next_period(
                treatment=cur.treatment,
                temperature=cur.temperature,
                outcome=cur.outcome,
            )
            if cur != expected:
                raise ValueError(
                    f"Period {cur.index} does not follow period {prev.index} "
                    f"(index or lag-1 fields inconsistent)"
                )

        if not any(p.day_moment is DayMoment.WAKEUP for p in periods[1:]):
            raise InsufficientDataError(
                "Time series has no wake-up period after the anchor; the "
                "temperature model cannot be fit"
            )

    @property
    def observed_treatment(self) -> Tuple[bool, ...]:
        return tuple(p.treatment for p in self.periods)

    @classmethod
    def from_periods(cls, periods: Sequence[Period]) -> "TimeSeries":
        return cls(tuple(periods))

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        day_moment_col: str = DAY_MOMENT_COL,
        temperature_col: str = TEMPERATURE_COL,
        treatment_col: str = TREATMENT_COL,
        outcome_col: str = OUTCOME_COL,
    ) -> "TimeSeries":
        """
        Build a TimeSeries from a regular, time-ordered per-period table.

        Lag-1 columns are derived here with ``DataFrame.shift``; the frame
        only needs the current values.

        Parameters
        ----------
        frame : pd.DataFrame
            One row per period, in time order.
        day_moment_col, temperature_col, treatment_col, outcome_col : str
            Column names of the four per-period fields.

        Returns
        -------
        ts : TimeSeries
        """
        cols = [day_moment_col, temperature_col, treatment_col, outcome_col]
        missing = [c for c in cols if c not in frame.columns]
        if missing:
            raise ValueError(f"Missing columns: {missing}")

        df = frame[cols].reset_index(drop=True)
        if df.isna().any().any():
            raise ValueError("Time series frame contains missing values")

        treatment_values = set(pd.unique(df[treatment_col]))
        if not treatment_values <= {0, 1}:
            raise ValueError(
                f"Treatment column must be boolean or 0/1, got values {sorted(map(str, treatment_values))}"
            )

        df = pd.DataFrame({
            'day_moment': [DayMoment.parse(v) for v in df[day_moment_col]],
            'temperature': df[temperature_col].astype(float),
            'treatment': df[treatment_col].astype(bool),
            'outcome': df[outcome_col].astype(float),
        })
        lagged = df.shift(1)

        periods = []
        for i, (row, lag) in enumerate(zip(df.itertuples(index=False), lagged.itertuples(index=False))):
            has_lag = i > 0
            periods.append(Period(
                index=i + 1,
                day_moment=row.day_moment,
                temperature=float(row.temperature),
                treatment=bool(row.treatment),
                outcome=float(row.outcome),
                lag1_day_moment=lag.day_moment if has_lag else None,
                lag1_temperature=float(lag.temperature) if has_lag else None,
                lag1_treatment=bool(lag.treatment) if has_lag else None,
                lag1_outcome=float(lag.outcome) if has_lag else None,
            ))
        return cls(tuple(periods))


def read_time_series_csv(path: Union[str, Path], **kwargs) -> TimeSeries:
    """
    Load a per-period CSV file into a TimeSeries.

    Extra keyword arguments are forwarded to ``TimeSeries.from_frame``
    (column names).
    """
    df = pd.read_csv(path)
    return TimeSeries.from_frame(df, **kwargs)
