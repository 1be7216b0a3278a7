"""Tests for the closed-form two-sample effect estimates."""

import numpy as np
import pytest
from scipy import stats

from nof1_gformula.closed_form import difference_in_means, effect_by_day_moment
from nof1_gformula.exceptions import InsufficientDataError


Y = np.array([0.6, 0.7, 0.65, 0.3, 0.35, 0.4, 0.45])
D = np.array([1, 1, 1, 0, 0, 0, 0])


class TestDifferenceInMeans:
    def test_point_estimate(self):
        res = difference_in_means(Y, D)
        assert res.theta_hat == pytest.approx(0.65 - 0.375)
        assert res.n_treated == 3
        assert res.n_control == 4

    def test_pooled_matches_student_t(self):
        res = difference_in_means(Y, D, pooled=True)
        t_stat, _ = stats.ttest_ind(Y[D == 1], Y[D == 0], equal_var=True)
        assert res.theta_hat / res.se == pytest.approx(t_stat)
        crit = stats.t.ppf(0.975, 5)
        assert res.ci_upper - res.theta_hat == pytest.approx(crit * res.se)

    def test_welch_uses_normal_quantile(self):
        res = difference_in_means(Y, D, pooled=False)
        se = np.sqrt(Y[D == 1].var(ddof=1) / 3 + Y[D == 0].var(ddof=1) / 4)
        assert res.se == pytest.approx(se)
        assert res.ci_upper - res.theta_hat == pytest.approx(1.959964 * se, rel=1e-6)
        assert res.method == 'welch'

    def test_too_few_in_arm(self):
        with pytest.raises(InsufficientDataError):
            difference_in_means(Y, np.array([1, 0, 0, 0, 0, 0, 0]))

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            difference_in_means(Y, D[:-1])


class TestByDayMoment:
    def test_table(self, make_series):
        table = effect_by_day_moment(make_series(60, seed=2))
        assert list(table['day_moment']) == ['all', 'bedtime', 'wakeup', 'sec_meal']
        overall = table.iloc[0]
        assert overall['n_treated'] + overall['n_control'] == 60

    def test_sparse_moment_gives_nan(self, make_series):
        table = effect_by_day_moment(make_series(5, seed=2))
        assert table['theta_hat'].isna().any()
