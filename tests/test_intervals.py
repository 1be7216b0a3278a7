"""Tests for the Wald interval report."""

import numpy as np
import pytest

from nof1_gformula.exceptions import InsufficientReplicatesError
from nof1_gformula.intervals import build_effect_report, normal_quantile


class TestQuantile:
    def test_95(self):
        assert normal_quantile(0.95) == pytest.approx(1.959964, abs=1e-6)

    def test_90(self):
        assert normal_quantile(0.90) == pytest.approx(1.644854, abs=1e-6)

    @pytest.mark.parametrize("level", [0.0, 1.0, 1.5, -0.2])
    def test_invalid_level(self, level):
        with pytest.raises(ValueError):
            normal_quantile(level)


class TestBuildReport:
    def test_wald_bounds(self):
        point = np.array([0.0, 0.1, 0.2])
        reps = np.array([[0.0, 0.0, 0.1], [0.0, 0.2, 0.3], [0.0, 0.1, 0.2]])
        report = build_effect_report(point, reps)
        std = reps.std(axis=0, ddof=1)
        np.testing.assert_allclose(report.std, std)
        np.testing.assert_allclose(report.lower, point - 1.959964 * std, atol=1e-6)
        np.testing.assert_allclose(report.upper, point + 1.959964 * std, atol=1e-6)

    def test_other_level(self):
        point = np.zeros(4)
        reps = np.random.default_rng(0).normal(size=(50, 4))
        r95 = build_effect_report(point, reps, confidence=0.95)
        r80 = build_effect_report(point, reps, confidence=0.80)
        assert r80.z == pytest.approx(1.281552, abs=1e-6)
        assert np.all(r80.upper < r95.upper)

    def test_degenerate_replicates(self):
        point = np.zeros(5)
        reps = np.zeros((10, 5))
        report = build_effect_report(point, reps)
        np.testing.assert_array_equal(report.std, 0.0)
        np.testing.assert_array_equal(report.lower, report.point)
        np.testing.assert_array_equal(report.upper, report.point)

    def test_single_replicate_raises(self):
        with pytest.raises(InsufficientReplicatesError):
            build_effect_report(np.zeros(3), np.zeros((1, 3)))

    def test_one_dimensional_replicate_raises(self):
        with pytest.raises(InsufficientReplicatesError):
            build_effect_report(np.zeros(3), np.zeros(3))

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="periods"):
            build_effect_report(np.zeros(3), np.zeros((4, 5)))

    def test_records_partial_bootstrap(self):
        report = build_effect_report(np.zeros(3), np.ones((7, 3)), n_requested=10)
        assert report.n_replicates == 7
        assert report.n_requested == 10

    def test_arrays_are_read_only(self):
        report = build_effect_report(np.zeros(3), np.ones((4, 3)))
        with pytest.raises(ValueError):
            report.point[0] = 1.0

    def test_input_not_aliased(self):
        point = np.zeros(3)
        report = build_effect_report(point, np.ones((4, 3)))
        point[0] = 5.0
        assert report.point[0] == 0.0


class TestReportFrames:
    def test_to_frame(self):
        report = build_effect_report(np.array([0.0, 0.1, 0.2]), np.zeros((3, 3)))
        df = report.to_frame()
        assert list(df.columns) == ['index', 'point', 'std', 'lower', 'upper']
        assert list(df['index']) == [1, 2, 3]

    def test_informative_drops_anchor(self):
        report = build_effect_report(np.array([0.0, 0.1, 0.2]), np.zeros((3, 3)))
        df = report.informative()
        assert list(df['index']) == [2, 3]

    def test_records(self):
        report = build_effect_report(np.array([0.0, 0.1]), np.zeros((3, 2)))
        assert report.records()[1]['point'] == pytest.approx(0.1)
