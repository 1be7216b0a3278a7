"""
Parametric Bootstrap for the G-Formula Effect Trajectory.

Each bootstrap replicate b = 1..B:

    1. simulates one synthetic dataset from the original models under the
       observed treatment sequence,
    2. refits both models on it with the same procedure as the original fit,
    3. re-runs the Monte Carlo effect estimator with the refitted models.

Replicates are independent: replicate b draws its randomness from child b
of the root SeedSequence (split again into data-generation and inner Monte
Carlo streams), so the result does not depend on n_jobs or scheduling.

A replicate whose refit or simulation fails is dropped and counted. The
bootstrap fails as a whole only when fewer than ``min_replicates`` survive.

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

import time
import warnings
from dataclasses import dataclass, field
from typing import Callable, List, NamedTuple, Optional, Sequence

import numpy as np
from numpy.typing import NDArray
from sklearn.utils.parallel import Parallel, delayed
from tqdm import tqdm

from nof1_gformula.exceptions import (
    InsufficientReplicatesError,
    InvalidDistributionParameterError,
    ModelFitError,
)
from nof1_gformula.models import FittedModelPair, fit_models
from nof1_gformula.montecarlo import G_DEFAULT, estimate_effect
from nof1_gformula.simulation import (
    RandomState,
    TreatmentPolicy,
    as_seed_sequence,
    simulate_trajectory,
)
from nof1_gformula.timeseries import Period, Trajectory


# =============================================================================
# CONSTANTS
# =============================================================================

B_DEFAULT: int = 100         # Bootstrap replicates
MIN_REPLICATES: int = 2      # Minimum survivors for a standard deviation

FitFunction = Callable[[Trajectory], FittedModelPair]


# =============================================================================
# RESULT CONTAINERS
# =============================================================================

class ReplicateOutcome(NamedTuple):
    """Outcome of one bootstrap iteration."""
    index: int
    status: str                      # 'ok', 'failed' or 'cancelled'
    effect: Optional[NDArray] = None
    error: Optional[str] = None


@dataclass
class BootstrapResult:
    """
    Surviving bootstrap replicates and failure bookkeeping.

    Attributes
    ----------
    replicates : ndarray of shape (B', N)
        Effect trajectories of the replicates that completed, in b order.
    n_requested : int
        Number of replicates B that were asked for.
    n_failed : int
        Replicates dropped because of a refit or simulation error.
    n_cancelled : int
        Replicates not started before the time limit.
    errors : list of str
        One message per failed replicate, prefixed with its index.
    """
    replicates: NDArray
    n_requested: int
    n_failed: int = 0
    n_cancelled: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def n_completed(self) -> int:
        return int(self.replicates.shape[0])

    def summary_dict(self) -> dict:
        return {
            'n_requested': self.n_requested,
            'n_completed': self.n_completed,
            'n_failed': self.n_failed,
            'n_cancelled': self.n_cancelled,
        }


# =============================================================================
# SINGLE REPLICATE
# =============================================================================

def run_bootstrap_replicate(
    b: int,
    original_models: FittedModelPair,
    policy: TreatmentPolicy,
    anchor: Period,
    length: int,
    n_draws: int,
    seed: np.random.SeedSequence,
    fit: FitFunction = fit_models,
    deadline: Optional[float] = None,
) -> ReplicateOutcome:
    """
    Run bootstrap iteration ``b``: simulate, refit, re-estimate.

    Refit and simulation errors are returned as a 'failed' outcome instead of
    being raised; any other exception propagates.
    """
    if deadline is not None and time.time() > deadline:
        return ReplicateOutcome(b, 'cancelled')

    data_seed, mc_seed = as_seed_sequence(seed).spawn(2)
    try:
        synthetic = simulate_trajectory(anchor, policy, original_models, length, data_seed)
        refitted = fit(synthetic)
        effect = estimate_effect(refitted, anchor, length, n_draws, mc_seed)
    except (ModelFitError, InvalidDistributionParameterError) as e:
        return ReplicateOutcome(b, 'failed', error=f"{type(e).__name__}: {e}")
    return ReplicateOutcome(b, 'ok', effect=effect)


# =============================================================================
# BOOTSTRAP ENGINE
# =============================================================================

def parametric_bootstrap(
    original_models: FittedModelPair,
    observed_treatment: Sequence[bool],
    anchor: Period,
    n_boot: int = B_DEFAULT,
    n_draws: int = G_DEFAULT,
    random_state: RandomState = None,
    fit: FitFunction = fit_models,
    min_replicates: int = MIN_REPLICATES,
    n_jobs: int = 1,
    backend: Optional[str] = None,
    time_limit: Optional[float] = None,
    verbose: bool = False,
) -> BootstrapResult:
    """
    Parametric bootstrap of the Monte Carlo effect trajectory.

    Parameters
    ----------
    original_models : FittedModelPair
        Models fitted on the observed series; used to generate the synthetic
        datasets.
    observed_treatment : sequence of bool
        Observed treatment of every period; its length fixes N.
    anchor : Period
        Observed first period.
    n_boot : int, default 100
        Number of bootstrap replicates B.
    n_draws : int, default 500
        Inner Monte Carlo draws G per policy and replicate.
    random_state : int, SeedSequence, Generator or None
        Root of the per-replicate random streams.
    fit : callable, default fit_models
        Refit procedure; must match the one used for ``original_models``.
    min_replicates : int, default 2
        Minimum number of surviving replicates.
    n_jobs : int, default 1
        Parallel jobs across replicates (-1 for all cores).
    backend : str or None
        joblib backend, e.g. 'loky' or 'threading'.
    time_limit : float or None
        Wall-clock limit in seconds; replicates not started in time are
        cancelled and counted.
    verbose : bool, default False
        Show a progress bar and print a summary.

    Returns
    -------
    result : BootstrapResult

    Raises
    ------
    InsufficientReplicatesError
        Fewer than ``min_replicates`` replicates completed.
    """
    if n_boot < 1:
        raise ValueError(f"n_boot must be >= 1, got {n_boot}")
    if min_replicates < 2:
        raise ValueError(f"min_replicates must be >= 2, got {min_replicates}")

    length = len(observed_treatment)
    policy = TreatmentPolicy.sequence(observed_treatment)
    seeds = as_seed_sequence(random_state).spawn(n_boot)
    deadline = time.time() + time_limit if time_limit is not None else None

    tasks = range(n_boot)
    if verbose:
        tasks = tqdm(tasks, desc="Bootstrap", total=n_boot)

    outcomes = Parallel(n_jobs=n_jobs, backend=backend)(
        delayed(run_bootstrap_replicate)(
            b, original_models, policy, anchor, length, n_draws, seeds[b], fit, deadline
        )
        for b in tasks
    )

    effects = [o.effect for o in outcomes if o.status == 'ok']
    errors = [f"[{o.index}] {o.error}" for o in outcomes if o.status == 'failed']
    n_cancelled = sum(o.status == 'cancelled' for o in outcomes)

    if errors or n_cancelled:
        warnings.warn(
            f"Bootstrap: {len(errors)} replicate(s) failed and {n_cancelled} "
            f"cancelled out of {n_boot}",
            RuntimeWarning,
        )
    if verbose:
        print(f"  Bootstrap replicates: {len(effects)}/{n_boot} completed "
              f"({len(errors)} failed, {n_cancelled} cancelled)")

    if len(effects) < min_replicates:
        raise InsufficientReplicatesError(
            f"Only {len(effects)} of {n_boot} bootstrap replicates completed; "
            f"at least {min_replicates} are required"
        )

    return BootstrapResult(
        replicates=np.vstack(effects),
        n_requested=n_boot,
        n_failed=len(errors),
        n_cancelled=n_cancelled,
        errors=errors,
    )
