"""
Tests for CSV loading, monthly reshaping and the chronological holdout.
"""

import numpy as np
import pandas as pd
import pytest

from henryhub.data_loading import load_price_csv, to_monthly_series, train_test_split


class TestLoadPriceCsv:
    """Tests for load_price_csv."""

    def test_eia_layout(self, eia_csv, seasonal_prices):
        """Preamble lines are skipped and rows come back oldest first."""
        df = load_price_csv(eia_csv)
        assert list(df.columns) == ['date', 'price']
        assert len(df) == len(seasonal_prices)
        assert df['date'].is_monotonic_increasing
        assert df['date'].iloc[0] == pd.Timestamp('2010-01-01')
        assert df['price'].iloc[0] == pytest.approx(seasonal_prices.iloc[0], abs=0.006)

    def test_plain_layout(self, plain_csv, seasonal_prices):
        df = load_price_csv(plain_csv)
        assert len(df) == len(seasonal_prices)
        np.testing.assert_allclose(df['price'].values, seasonal_prices.round(3).values)

    def test_dates_snap_to_month_start(self, tmp_path):
        path = tmp_path / 'mid_month.csv'
        path.write_text('date,price\n2020-01-15,2.1\n2020-02-20,1.9\n')
        df = load_price_csv(path)
        assert list(df['date']) == [pd.Timestamp('2020-01-01'), pd.Timestamp('2020-02-01')]

    def test_explicit_columns(self, tmp_path):
        path = tmp_path / 'wide.csv'
        path.write_text('when,volume,spot\n2020-01-01,10,2.0\n2020-02-01,11,2.5\n')
        df = load_price_csv(path, date_col='when', value_col='spot')
        assert list(df['price']) == [2.0, 2.5]

    def test_bad_dates_dropped_and_non_numeric_prices_nan(self, tmp_path):
        path = tmp_path / 'dirty.csv'
        path.write_text('Month,Price\nJan 2020,2.0\nnot a date,3.0\nFeb 2020,NA\nMar 2020,1.8\n')
        df = load_price_csv(path)
        assert len(df) == 3
        assert np.isnan(df['price'].iloc[1])

    def test_duplicate_months_keep_last(self, tmp_path):
        path = tmp_path / 'dupes.csv'
        path.write_text('Month,Price\n2020-01-01,2.0\n2020-02-01,2.2\n2020-01-01,2.4\n')
        df = load_price_csv(path)
        assert len(df) == 2
        assert df.loc[df['date'] == '2020-01-01', 'price'].item() == 2.4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_price_csv(tmp_path / 'nope.csv')

    def test_no_numeric_column(self, tmp_path):
        path = tmp_path / 'text.csv'
        path.write_text('Month,Note\n2020-01-01,high\n2020-02-01,low\n')
        with pytest.raises(ValueError, match='numeric'):
            load_price_csv(path)

    def test_unknown_column(self, plain_csv):
        with pytest.raises(ValueError, match='not found'):
            load_price_csv(plain_csv, value_col='Close')


class TestToMonthlySeries:
    """Tests for to_monthly_series."""

    def test_frequency_and_name(self, price_frame):
        series = to_monthly_series(price_frame)
        assert series.index.freqstr == 'MS'
        assert series.name == 'price'

    def test_missing_months_become_nan(self):
        df = pd.DataFrame({'date': pd.to_datetime(['2020-01-01', '2020-02-01', '2020-04-01']),
                           'price': [2.0, 2.1, 2.3]})
        series = to_monthly_series(df)
        assert len(series) == 4
        assert np.isnan(series.loc['2020-03-01'])

    def test_mid_month_dates_snap_to_month_start(self, seasonal_prices):
        df = pd.DataFrame({'date': seasonal_prices.index + pd.Timedelta(days=14),
                           'price': seasonal_prices.values})
        series = to_monthly_series(df)
        assert series.index.equals(seasonal_prices.index)
        np.testing.assert_allclose(series.values, seasonal_prices.values)

    def test_duplicate_months_keep_last(self):
        df = pd.DataFrame({'date': pd.to_datetime(['2020-01-01', '2020-01-20', '2020-02-03']),
                           'price': [2.0, 2.5, 2.1]})
        series = to_monthly_series(df)
        assert list(series.values) == [2.5, 2.1]

    def test_requires_dates(self):
        with pytest.raises(ValueError):
            to_monthly_series(pd.DataFrame({'price': [1.0, 2.0]}))


class TestTrainTestSplit:
    """Tests for the chronological holdout."""

    def test_sizes_and_order(self, seasonal_prices):
        train, test = train_test_split(seasonal_prices, 24)
        assert len(train) == 96
        assert len(test) == 24
        assert train.index[-1] < test.index[0]
        assert test.index[-1] == seasonal_prices.index[-1]

    def test_invalid_test_size(self, seasonal_prices):
        with pytest.raises(ValueError):
            train_test_split(seasonal_prices, 0)
        with pytest.raises(ValueError):
            train_test_split(seasonal_prices, len(seasonal_prices))
