"""
Pytest Configuration and Fixtures

Shared fixtures for the Henry Hub analysis tests.
"""

import sys
from pathlib import Path

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

import numpy as np
import pandas as pd
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# SERIES FIXTURES
# =============================================================================

def make_seasonal_prices(n_months=120, start='2010-01-01', seed=42):
    """Log-price = level + yearly cycle + slow random walk, returned in $/MMBtu."""
    rng = np.random.default_rng(seed)
    t = np.arange(n_months)
    log_price = (1.2
                 + 0.25 * np.sin(2 * np.pi * t / 12)
                 + np.cumsum(rng.normal(0, 0.03, n_months))
                 + rng.normal(0, 0.02, n_months))
    index = pd.date_range(start, periods=n_months, freq='MS')
    return pd.Series(np.exp(log_price), index=index, name='price')


@pytest.fixture
def seasonal_prices():
    """Ten years of synthetic monthly prices with strong yearly seasonality."""
    return make_seasonal_prices()


@pytest.fixture
def price_frame(seasonal_prices):
    """Same prices as a 'date'/'price' table, as load_price_csv returns."""
    return pd.DataFrame({'date': seasonal_prices.index, 'price': seasonal_prices.values})


@pytest.fixture
def log_prices(seasonal_prices):
    return np.log(seasonal_prices)


@pytest.fixture
def white_noise():
    rng = np.random.default_rng(7)
    index = pd.date_range('2000-01-01', periods=300, freq='MS')
    return pd.Series(rng.normal(0, 1, 300), index=index)


@pytest.fixture
def random_walk():
    rng = np.random.default_rng(11)
    index = pd.date_range('1980-01-01', periods=500, freq='MS')
    return pd.Series(np.cumsum(rng.normal(0, 1, 500)), index=index)


# =============================================================================
# FILE FIXTURES
# =============================================================================

@pytest.fixture
def eia_csv(tmp_path, seasonal_prices):
    """Price file in the EIA download layout: preamble lines, newest month first."""
    lines = [
        'Henry Hub Natural Gas Spot Price',
        'https://www.eia.gov/dnav/ng/hist/rngwhhdm.htm',
        '10:15:00 GMT-0400 (Eastern Daylight Time)',
        'Data Source: Thomson Reuters',
        'Month,Henry Hub Natural Gas Spot Price Dollars per Million Btu',
    ]
    for date, price in seasonal_prices.iloc[::-1].items():
        lines.append(f'{date:%b %Y},{price:.2f}')
    path = tmp_path / 'Henry_Hub_Natural_Gas_Spot_Price.csv'
    path.write_text('\n'.join(lines) + '\n')
    return path


@pytest.fixture
def plain_csv(tmp_path, seasonal_prices):
    path = tmp_path / 'prices.csv'
    frame = pd.DataFrame({'Month': seasonal_prices.index.strftime('%Y-%m-%d'),
                          'Price': seasonal_prices.round(3).values})
    frame.to_csv(path, index=False)
    return path


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')
