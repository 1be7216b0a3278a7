"""
Error Hierarchy for the Individual G-Formula Estimator.

Errors local to one bootstrap replicate (``ModelFitError``,
``InvalidDistributionParameterError``) are caught and counted by the
bootstrap engine. Everything else aborts the estimation.
"""

from __future__ import annotations


class GFormulaError(Exception):
    """Base class for all estimation errors raised by this package."""


class ModelFitError(GFormulaError):
    """Fitting the outcome or covariate model failed."""


class InvalidDistributionParameterError(GFormulaError):
    """A simulation step produced an unusable distribution parameter."""


class InsufficientDataError(GFormulaError):
    """The observed series cannot support the requested computation."""


class InsufficientReplicatesError(GFormulaError):
    """Too few bootstrap replicates survived to compute a dispersion."""
