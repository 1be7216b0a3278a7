"""Tests for the parametric bootstrap engine."""

import time

import numpy as np
import pytest

from nof1_gformula.bootstrap import parametric_bootstrap, run_bootstrap_replicate
from nof1_gformula.exceptions import InsufficientReplicatesError, ModelFitError
from nof1_gformula.models import FittedModelPair
from nof1_gformula.simulation import TreatmentPolicy

from conftest import ConstantOutcomeModel, PersistentCovariateModel

N = 9
OBSERVED = [False, True, False, True, True, False, False, True, True]


class TestReplicate:
    def test_simulates_under_observed_treatment(self, anchor, true_models, treatment_models):
        seen = []

        def fit(trajectory):
            seen.append(tuple(trajectory.treatment))
            return treatment_models

        out = run_bootstrap_replicate(
            0, true_models, TreatmentPolicy.sequence(OBSERVED), anchor, N, 5,
            np.random.SeedSequence(1), fit,
        )
        assert out.status == 'ok'
        assert seen == [tuple([anchor.treatment] + OBSERVED[1:])]
        assert out.effect.shape == (N,)

    def test_fit_error_becomes_failure(self, anchor, true_models):
        def fit(trajectory):
            raise ModelFitError("degenerate")

        out = run_bootstrap_replicate(
            3, true_models, TreatmentPolicy.sequence(OBSERVED), anchor, N, 5,
            np.random.SeedSequence(1), fit,
        )
        assert out.status == 'failed'
        assert "degenerate" in out.error

    def test_invalid_refit_simulation_becomes_failure(self, anchor, true_models):
        broken = FittedModelPair(ConstantOutcomeModel(mean=1.5), PersistentCovariateModel())
        out = run_bootstrap_replicate(
            0, true_models, TreatmentPolicy.sequence(OBSERVED), anchor, N, 5,
            np.random.SeedSequence(1), lambda t: broken,
        )
        assert out.status == 'failed'
        assert out.error.startswith("InvalidDistributionParameterError")

    def test_other_errors_propagate(self, anchor, true_models):
        def fit(trajectory):
            raise KeyError("bug")

        with pytest.raises(KeyError):
            run_bootstrap_replicate(
                0, true_models, TreatmentPolicy.sequence(OBSERVED), anchor, N, 5,
                np.random.SeedSequence(1), fit,
            )


class TestBootstrap:
    def test_shape(self, anchor, true_models, treatment_models):
        res = parametric_bootstrap(
            true_models, OBSERVED, anchor, n_boot=6, n_draws=10,
            random_state=0, fit=lambda t: treatment_models,
        )
        assert res.replicates.shape == (6, N)
        assert res.n_completed == 6
        assert res.n_failed == 0

    def test_reproducible(self, anchor, true_models, treatment_models):
        kwargs = dict(n_boot=4, n_draws=10, random_state=3, fit=lambda t: treatment_models)
        a = parametric_bootstrap(true_models, OBSERVED, anchor, **kwargs)
        b = parametric_bootstrap(true_models, OBSERVED, anchor, **kwargs)
        np.testing.assert_array_equal(a.replicates, b.replicates)

    def test_reusing_seed_sequence(self, anchor, true_models, treatment_models):
        ss = np.random.SeedSequence(3)
        kwargs = dict(n_boot=4, n_draws=10, random_state=ss, fit=lambda t: treatment_models)
        a = parametric_bootstrap(true_models, OBSERVED, anchor, **kwargs)
        b = parametric_bootstrap(true_models, OBSERVED, anchor, **kwargs)
        np.testing.assert_array_equal(a.replicates, b.replicates)

    def test_independent_of_parallelism(self, anchor, true_models, treatment_models):
        kwargs = dict(n_boot=6, n_draws=10, random_state=3, fit=lambda t: treatment_models)
        serial = parametric_bootstrap(true_models, OBSERVED, anchor, n_jobs=1, **kwargs)
        threaded = parametric_bootstrap(
            true_models, OBSERVED, anchor, n_jobs=3, backend='threading', **kwargs
        )
        np.testing.assert_array_equal(serial.replicates, threaded.replicates)

    def test_replicates_differ(self, anchor, true_models, treatment_models):
        res = parametric_bootstrap(
            true_models, OBSERVED, anchor, n_boot=3, n_draws=10,
            random_state=0, fit=lambda t: treatment_models,
        )
        assert not np.array_equal(res.replicates[0], res.replicates[1])

    def test_failed_replicates_are_dropped(self, anchor, true_models, treatment_models):
        def fit(trajectory):
            if trajectory.outcome[1] < 0.73:
                raise ModelFitError("unlucky draw")
            return treatment_models

        with pytest.warns(RuntimeWarning, match="failed"):
            res = parametric_bootstrap(
                true_models, OBSERVED, anchor, n_boot=40, n_draws=5,
                random_state=11, fit=fit,
            )
        assert res.n_failed > 0
        assert res.n_completed + res.n_failed == 40
        assert len(res.errors) == res.n_failed
        assert all("unlucky draw" in e for e in res.errors)

    def test_too_few_survivors(self, anchor, true_models):
        def fit(trajectory):
            raise ModelFitError("always fails")

        with pytest.warns(RuntimeWarning):
            with pytest.raises(InsufficientReplicatesError):
                parametric_bootstrap(
                    true_models, OBSERVED, anchor, n_boot=5, n_draws=5,
                    random_state=0, fit=fit,
                )

    def test_single_replicate_is_not_enough(self, anchor, true_models, treatment_models):
        with pytest.raises(InsufficientReplicatesError):
            parametric_bootstrap(
                true_models, OBSERVED, anchor, n_boot=1, n_draws=5,
                random_state=0, fit=lambda t: treatment_models,
            )

    def test_expired_time_limit_cancels_everything(self, anchor, true_models, treatment_models):
        with pytest.warns(RuntimeWarning, match="cancelled"):
            with pytest.raises(InsufficientReplicatesError):
                parametric_bootstrap(
                    true_models, OBSERVED, anchor, n_boot=4, n_draws=5,
                    random_state=0, fit=lambda t: treatment_models, time_limit=-1.0,
                )

    def test_time_limit_keeps_completed_replicates(self, anchor, true_models, treatment_models):
        def slow_fit(trajectory):
            time.sleep(0.2)
            return treatment_models

        with pytest.warns(RuntimeWarning, match="cancelled"):
            res = parametric_bootstrap(
                true_models, OBSERVED, anchor, n_boot=10, n_draws=5,
                random_state=0, fit=slow_fit, time_limit=0.5,
            )
        assert res.n_cancelled > 0
        assert res.n_completed >= 2
        assert res.n_completed + res.n_cancelled == 10

    def test_rejects_bad_arguments(self, anchor, true_models):
        with pytest.raises(ValueError):
            parametric_bootstrap(true_models, OBSERVED, anchor, n_boot=0)
        with pytest.raises(ValueError):
            parametric_bootstrap(true_models, OBSERVED, anchor, n_boot=5, min_replicates=1)
