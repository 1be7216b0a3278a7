"""
Counterfactual Trajectory Simulation.

Given a real anchor period, a treatment policy and a fitted model pair, this
module generates the rest of a subject's sequence one period at a time:

    1. A_t      = policy(t)
    2. moment_t = successor(moment_{t-1})
    3. T_t      ~ N(ĉ(T_{t-1}), σ̂²)        if moment_{t-1} = bedtime
       T_t      = T_{t-1}                   otherwise
    4. μ_t      = m̂(A_t, T_t, moment_t, A_{t-1}, Y_{t-1})
       Y_t      ~ Beta(μ_t φ̂, φ̂ - μ_t φ̂)

The trajectory is built as a fold that only carries the previous Period, so
replicates share nothing but the read-only anchor and models.

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from nof1_gformula.exceptions import InvalidDistributionParameterError
from nof1_gformula.models import FittedModelPair
from nof1_gformula.timeseries import DayMoment, Period, Trajectory


RandomState = Union[None, int, np.random.SeedSequence, np.random.Generator]


# =============================================================================
# RANDOM STREAMS
# =============================================================================

def as_seed_sequence(random_state: RandomState) -> np.random.SeedSequence:
    """
    Turn any accepted random_state into a SeedSequence that can be spawned.

    A SeedSequence is copied, so spawning from the result never advances the
    caller's object and the same seed always yields the same children. A
    Generator is consumed once to derive the entropy, so passing the same
    Generator twice gives two different sequences.
    """
    if isinstance(random_state, np.random.SeedSequence):
        return np.random.SeedSequence(
            random_state.entropy,
            spawn_key=random_state.spawn_key,
            pool_size=random_state.pool_size,
        )
    if isinstance(random_state, np.random.Generator):
        return np.random.SeedSequence(random_state.integers(0, 2**32, size=4).tolist())
    return np.random.SeedSequence(random_state)


# =============================================================================
# TREATMENT POLICIES
# =============================================================================

class PolicyKind(Enum):
    ALWAYS = "always"
    NEVER = "never"
    SEQUENCE = "sequence"


@dataclass(frozen=True)
class TreatmentPolicy:
    """
    Treatment assignment rule: always treat, never treat, or a fixed sequence.

    Use the ``always``, ``never`` and ``sequence`` constructors rather than
    building instances directly.
    """
    kind: PolicyKind
    assignments: Tuple[bool, ...] = ()

    @classmethod
    def always(cls) -> "TreatmentPolicy":
        return cls(PolicyKind.ALWAYS)

    @classmethod
    def never(cls) -> "TreatmentPolicy":
        return cls(PolicyKind.NEVER)

    @classmethod
    def sequence(cls, assignments: Sequence[bool]) -> "TreatmentPolicy":
        return cls(PolicyKind.SEQUENCE, tuple(bool(a) for a in assignments))

    def treatment_at(self, index: int) -> bool:
        """Treatment of the period with 1-based ``index``."""
        if self.kind is PolicyKind.ALWAYS:
            return True
        if self.kind is PolicyKind.NEVER:
            return False
        return self.assignments[index - 1]

    def check_length(self, length: int) -> None:
        if self.kind is PolicyKind.SEQUENCE and len(self.assignments) < length:
            raise ValueError(
                f"Treatment sequence has {len(self.assignments)} entries, "
                f"trajectory length is {length}"
            )


# =============================================================================
# SINGLE STEP
# =============================================================================

def beta_shapes(mu: float, precision: float) -> Tuple[float, float]:
    """
    Translate a Beta regression mean and precision into shape parameters.

    Returns
    -------
    shape1, shape2 : float
        μφ and φ - μφ.

    Raises
    ------
    InvalidDistributionParameterError
        μ outside (0, 1), φ non-finite or non-positive, or a shape ≤ 0.
    """
    if not np.isfinite(mu) or not 0.0 < mu < 1.0:
        raise InvalidDistributionParameterError(f"Outcome mean {mu} is outside (0, 1)")
    if not np.isfinite(precision) or precision <= 0:
        raise InvalidDistributionParameterError(f"Outcome precision {precision} is not positive")
    shape1 = mu * precision
    shape2 = precision - mu * precision
    if shape1 <= 0 or shape2 <= 0:
        raise InvalidDistributionParameterError(
            f"Beta shapes ({shape1}, {shape2}) must both be positive"
        )
    return shape1, shape2


def _draw_temperature(prev: Period, models: FittedModelPair, rng: np.random.Generator) -> float:
    # Temperature only moves at the bedtime -> wakeup transition
    if prev.day_moment is not DayMoment.BEDTIME:
        return prev.temperature

    mean = models.covariate.predict(prev.temperature)
    scale = models.covariate.residual_scale
    if not np.isfinite(mean):
        raise InvalidDistributionParameterError(
            f"Temperature mean {mean} at index {prev.index + 1} is not finite"
        )
    if not np.isfinite(scale) or scale < 0:
        raise InvalidDistributionParameterError(f"Temperature scale {scale} is not usable")
    return float(rng.normal(mean, scale))


def step(
    prev: Period,
    treatment: bool,
    models: FittedModelPair,
    rng: np.random.Generator,
) -> Period:
    """Simulate the period following ``prev`` under the given treatment."""
    temperature = _draw_temperature(prev, models, rng)
    day_moment = prev.day_moment.successor()

    mu = models.outcome.predict(treatment, temperature, day_moment, prev.treatment, prev.outcome)
    try:
        shape1, shape2 = beta_shapes(mu, models.outcome.precision)
    except InvalidDistributionParameterError as e:
        raise InvalidDistributionParameterError(f"Index {prev.index + 1}: {e}") from e

    outcome = float(rng.beta(shape1, shape2))
    if not 0.0 < outcome < 1.0:
        raise InvalidDistributionParameterError(
            f"Beta({shape1:.4g}, {shape2:.4g}) draw at index {prev.index + 1} "
            f"hit the boundary ({outcome})"
        )

    return prev.next_period(treatment=treatment, temperature=temperature, outcome=outcome)


# =============================================================================
# FULL TRAJECTORY
# =============================================================================

def simulate_trajectory(
    anchor: Period,
    policy: TreatmentPolicy,
    models: FittedModelPair,
    length: int,
    random_state: RandomState = None,
) -> Trajectory:
    """
    Simulate a trajectory of ``length`` periods starting from a real anchor.

    Parameters
    ----------
    anchor : Period
        Observed first period; returned unchanged as element 0.
    policy : TreatmentPolicy
        Treatment assignment for periods 2..length.
    models : FittedModelPair
        Outcome and covariate models.
    length : int
        Number of periods N, anchor included.
    random_state : int, SeedSequence, Generator or None
        Source of randomness. Equal seeds give identical trajectories.

    Returns
    -------
    trajectory : Trajectory

    Raises
    ------
    InvalidDistributionParameterError
        A step produced an unusable distribution parameter.
    ValueError
        ``length`` below 1, or an anchor that is not period 1.
    """
    if length < 1:
        raise ValueError(f"length must be >= 1, got {length}")
    if anchor.index != 1:
        raise ValueError(f"Anchor must be period 1, got index {anchor.index}")
    policy.check_length(length)

    rng = np.random.default_rng(random_state)
    periods = [anchor]
    prev = anchor
    for index in range(2, length + 1):
        prev = step(prev, policy.treatment_at(index), models, rng)
        periods.append(prev)
    return Trajectory(tuple(periods))
