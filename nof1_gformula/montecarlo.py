"""
Monte Carlo G-Formula Effect Estimator.

For one fixed model pair, simulates G trajectories under "always treat" and
G under "never treat" and averages the per-period outcome differences:

    τ̂_t = (1/G) Σ_g [ Y_t^{(g)}(always) - Y_t^{(g)}(never) ]

Each (draw, policy) pair gets its own child SeedSequence, so the estimate is
reproducible and independent of the order draws are evaluated in. The anchor
is shared by both policies, hence τ̂_1 = 0 exactly.

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from nof1_gformula.models import FittedModelPair
from nof1_gformula.simulation import (
    RandomState,
    TreatmentPolicy,
    as_seed_sequence,
    simulate_trajectory,
)
from nof1_gformula.timeseries import Period


# =============================================================================
# CONSTANTS
# =============================================================================

G_DEFAULT: int = 500         # Inner Monte Carlo draws per policy


def simulate_policy_outcomes(
    models: FittedModelPair,
    anchor: Period,
    length: int,
    policy: TreatmentPolicy,
    n_draws: int,
    random_state: RandomState = None,
) -> NDArray:
    """
    Simulate ``n_draws`` independent trajectories under one policy.

    Returns
    -------
    outcomes : ndarray of shape (n_draws, length)
        Simulated outcome of every draw at every period.
    """
    if n_draws < 1:
        raise ValueError(f"n_draws must be >= 1, got {n_draws}")
    seeds = as_seed_sequence(random_state).spawn(n_draws)
    return np.vstack([
        simulate_trajectory(anchor, policy, models, length, seed).outcome
        for seed in seeds
    ])


def estimate_effect(
    models: FittedModelPair,
    anchor: Period,
    length: int,
    n_draws: int = G_DEFAULT,
    random_state: RandomState = None,
) -> NDArray:
    """
    Estimate the per-period effect of always vs. never treating.

    Parameters
    ----------
    models : FittedModelPair
        Models used for every simulated trajectory.
    anchor : Period
        Observed first period shared by all trajectories.
    length : int
        Number of periods N.
    n_draws : int, default 500
        Number of draws G per policy.
    random_state : int, SeedSequence, Generator or None
        Root of the per-draw random streams.

    Returns
    -------
    effect : ndarray of shape (length,)
        Mean difference in outcome; element 0 (the anchor) is always 0.

    Raises
    ------
    InvalidDistributionParameterError
        Propagated from the simulator.
    """
    treated_seed, control_seed = as_seed_sequence(random_state).spawn(2)
    treated = simulate_policy_outcomes(
        models, anchor, length, TreatmentPolicy.always(), n_draws, treated_seed
    )
    control = simulate_policy_outcomes(
        models, anchor, length, TreatmentPolicy.never(), n_draws, control_seed
    )
    delta = treated - control
    return delta.mean(axis=0)
