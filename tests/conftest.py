"""Shared fixtures: stub models, true models and synthetic observed series."""

from dataclasses import dataclass

import numpy as np
import pytest

from nof1_gformula.models import BetaOutcomeModel, FittedModelPair, LinearCovariateModel
from nof1_gformula.simulation import TreatmentPolicy, simulate_trajectory
from nof1_gformula.timeseries import DayMoment, Period, TimeSeries


@dataclass(frozen=True)
class ConstantOutcomeModel:
    """Outcome mean that ignores every regressor."""
    mean: float = 0.6
    precision: float = 50.0

    def predict(self, treatment, temperature, day_moment, lag1_treatment, lag1_outcome):
        return self.mean


@dataclass(frozen=True)
class TreatmentOutcomeModel:
    """Outcome mean that only depends on the current treatment."""
    treated_mean: float = 0.7
    control_mean: float = 0.4
    precision: float = 40.0

    def predict(self, treatment, temperature, day_moment, lag1_treatment, lag1_outcome):
        return self.treated_mean if treatment else self.control_mean


@dataclass(frozen=True)
class PersistentCovariateModel:
    """Temperature mean equal to its lag."""
    residual_scale: float = 0.0

    def predict(self, lag1_temperature):
        return lag1_temperature


TRUE_OUTCOME = BetaOutcomeModel(
    coefficients=(-0.2, 0.8, -0.02, 0.3, -0.2, 0.4, 1.0),
    precision=30.0,
)
TRUE_COVARIATE = LinearCovariateModel(intercept=4.0, slope=0.8, residual_scale=1.0)


@pytest.fixture
def anchor():
    return Period(
        index=1,
        day_moment=DayMoment.BEDTIME,
        temperature=20.0,
        treatment=False,
        outcome=0.5,
    )


@pytest.fixture
def constant_models():
    return FittedModelPair(ConstantOutcomeModel(), PersistentCovariateModel())


@pytest.fixture
def treatment_models():
    return FittedModelPair(TreatmentOutcomeModel(), PersistentCovariateModel(residual_scale=0.5))


@pytest.fixture
def true_models():
    return FittedModelPair(TRUE_OUTCOME, TRUE_COVARIATE)


@pytest.fixture
def make_series(anchor, true_models):
    """Factory for observed series simulated from the true models."""

    def _make(n_periods, seed=0):
        rng = np.random.default_rng(seed)
        treatment = rng.random(n_periods) < 0.5
        trajectory = simulate_trajectory(
            anchor,
            TreatmentPolicy.sequence(treatment),
            true_models,
            n_periods,
            random_state=seed + 1,
        )
        return TimeSeries.from_periods(trajectory.periods)

    return _make
