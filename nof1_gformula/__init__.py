"""
N-of-1 G-Formula - Individual Time-Varying Treatment Effects
============================================================

Sequential g-formula estimation of a causal effect from one subject's
longitudinal record: fit outcome and covariate models, simulate forward
under "always treat" and "never treat", and quantify uncertainty with a
parametric bootstrap.

Modules
-------
- timeseries: DayMoment, Period, Trajectory and TimeSeries data model
- models: outcome / covariate model contracts and default fitting
- simulation: treatment policies and the trajectory simulator
- montecarlo: Monte Carlo effect estimator
- bootstrap: parametric bootstrap engine
- intervals: Wald interval report
- estimator: end-to-end estimator
- closed_form: two-sample difference-in-means baselines
- visualization: plotting of effect reports
"""

from nof1_gformula.exceptions import (
    GFormulaError,
    ModelFitError,
    InvalidDistributionParameterError,
    InsufficientDataError,
    InsufficientReplicatesError,
)

from nof1_gformula.timeseries import (
    DayMoment,
    Period,
    Trajectory,
    TimeSeries,
    read_time_series_csv,
)

from nof1_gformula.models import (
    OUTCOME_TERMS,
    FittedModelPair,
    BetaOutcomeModel,
    LinearCovariateModel,
    fit_outcome_model,
    fit_covariate_model,
    fit_models,
)

from nof1_gformula.simulation import (
    TreatmentPolicy,
    beta_shapes,
    simulate_trajectory,
)

from nof1_gformula.montecarlo import (
    G_DEFAULT,
    estimate_effect,
    simulate_policy_outcomes,
)

from nof1_gformula.bootstrap import (
    B_DEFAULT,
    MIN_REPLICATES,
    BootstrapResult,
    parametric_bootstrap,
)

from nof1_gformula.intervals import (
    CONFIDENCE_DEFAULT,
    EffectReport,
    build_effect_report,
    normal_quantile,
)

from nof1_gformula.estimator import (
    DEFAULT_SEED,
    GFormulaEstimator,
    GFormulaResult,
    run_gformula,
)

from nof1_gformula.closed_form import (
    ClosedFormResult,
    difference_in_means,
    effect_by_day_moment,
)

from nof1_gformula.visualization import plot_effect_report

__all__ = [
    # Errors
    "GFormulaError",
    "ModelFitError",
    "InvalidDistributionParameterError",
    "InsufficientDataError",
    "InsufficientReplicatesError",
    # Data model
    "DayMoment",
    "Period",
    "Trajectory",
    "TimeSeries",
    "read_time_series_csv",
    # Models
    "OUTCOME_TERMS",
    "FittedModelPair",
    "BetaOutcomeModel",
    "LinearCovariateModel",
    "fit_outcome_model",
    "fit_covariate_model",
    "fit_models",
    # Simulation
    "TreatmentPolicy",
    "beta_shapes",
    "simulate_trajectory",
    # Monte Carlo
    "G_DEFAULT",
    "estimate_effect",
    "simulate_policy_outcomes",
    # Bootstrap
    "B_DEFAULT",
    "MIN_REPLICATES",
    "BootstrapResult",
    "parametric_bootstrap",
    # Intervals
    "CONFIDENCE_DEFAULT",
    "EffectReport",
    "build_effect_report",
    "normal_quantile",
    # Estimator
    "DEFAULT_SEED",
    "GFormulaEstimator",
    "GFormulaResult",
    "run_gformula",
    # Closed form
    "ClosedFormResult",
    "difference_in_means",
    "effect_by_day_moment",
    # Visualization
    "plot_effect_report",
]
