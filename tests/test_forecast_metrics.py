"""
Tests for forecast accuracy measures.
"""

import numpy as np
import pandas as pd
import pytest

from henryhub.forecast_metrics import (forecast_metrics, interval_coverage, mase_scale,
                                       seasonal_naive_forecast, skill_vs_naive)


class TestForecastMetrics:
    """Tests for forecast_metrics."""

    def test_known_values(self):
        y_true = pd.Series([1.0, 2.0, 4.0, 5.0])
        y_pred = pd.Series([1.0, 2.0, 4.0, 4.0])
        m = forecast_metrics(y_true, y_pred)
        assert m['ME'] == pytest.approx(0.25)
        assert m['RMSE'] == pytest.approx(0.5)
        assert m['MAE'] == pytest.approx(0.25)
        assert m['MPE'] == pytest.approx(5.0)
        assert m['MAPE'] == pytest.approx(5.0)
        assert np.isnan(m['MASE'])

    def test_mase_random_walk_scale(self):
        y_train = [1.0, 2.0, 3.0, 4.0, 5.0]
        m = forecast_metrics([6.0, 7.0], [6.5, 7.5], y_train=y_train)
        assert m['MASE'] == pytest.approx(0.5)

    def test_mase_seasonal_scale(self):
        y_train = np.array([1.0, 2.0, 3.0, 3.0, 4.0, 5.0])
        assert mase_scale(y_train, seasonal_period=3) == pytest.approx(2.0)
        m = forecast_metrics([6.0], [5.0], y_train=y_train, seasonal_period=3)
        assert m['MASE'] == pytest.approx(0.5)

    def test_acf1_of_alternating_errors(self):
        y_true = np.zeros(10)
        y_pred = np.array([1.0, -1.0] * 5)
        assert forecast_metrics(y_true + 10, y_pred + 10)['ACF1'] < -0.5

    def test_perfect_forecast(self):
        y = pd.Series([2.0, 3.0, 4.0])
        m = forecast_metrics(y, y)
        assert m['RMSE'] == 0
        assert np.isnan(m['ACF1'])

    def test_rounding(self):
        m = forecast_metrics([1.0, 2.0, 3.0], [1.1, 2.2, 2.9], decimals=2)
        assert m['MAE'] == 0.13

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match='same length'):
            forecast_metrics([1.0, 2.0], [1.0])

    def test_empty(self):
        with pytest.raises(ValueError):
            forecast_metrics([], [])


class TestBenchmarks:
    """Seasonal naive, skill score and interval coverage."""

    def test_seasonal_naive_repeats_last_season(self):
        y_train = pd.Series(np.arange(24, dtype=float))
        naive = seasonal_naive_forecast(y_train, horizon=15, seasonal_period=12)
        np.testing.assert_array_equal(naive[:12], np.arange(12, 24))
        np.testing.assert_array_equal(naive[12:], np.arange(12, 15))

    def test_seasonal_naive_needs_a_season(self):
        with pytest.raises(ValueError):
            seasonal_naive_forecast([1.0, 2.0], horizon=3, seasonal_period=12)

    def test_skill(self):
        y = np.array([1.0, 2.0, 3.0])
        assert skill_vs_naive(y, y, y + 1) == pytest.approx(1.0)
        assert skill_vs_naive(y, y + 1, y + 1) == pytest.approx(0.0)
        assert skill_vs_naive(y, y + 2, y + 1) == pytest.approx(-1.0)

    def test_coverage(self):
        y = pd.Series([1.0, 2.0, 3.0, 4.0])
        lower = pd.Series([0.5, 2.5, 2.0, 3.0])
        upper = pd.Series([1.5, 3.0, 4.0, 3.5])
        assert interval_coverage(y, lower, upper) == pytest.approx(0.5)

