# henryhub/forecast_metrics.py

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error
from statsmodels.tsa.stattools import acf


def _as_array(values):
    # handles pandas Series and DataFrames
    if hasattr(values, 'values'):
        values = values.values
    return np.asarray(values, dtype=float).flatten()


def seasonal_naive_forecast(y_train, horizon, seasonal_period=12):
    '''
    Repeat the last observed season over the forecast horizon.
    '''
    values = _as_array(y_train)
    if len(values) < seasonal_period:
        raise ValueError(f'Need at least {seasonal_period} training points for a seasonal naive forecast, got {len(values)}')
    last_season = values[-seasonal_period:]
    reps = int(np.ceil(horizon / seasonal_period))
    return np.tile(last_season, reps)[:horizon]


def mase_scale(y_train, seasonal_period=1):
    '''In-sample MAE of the (seasonal) naive method, the MASE denominator.'''
    values = _as_array(y_train)
    if len(values) <= seasonal_period:
        return np.nan
    return np.mean(np.abs(values[seasonal_period:] - values[:-seasonal_period]))


def forecast_metrics(y_true, y_pred, y_train=None, seasonal_period=1, decimals=None):
    '''
    Forecast accuracy measures on the test window: ME, RMSE, MAE, MPE, MAPE, MASE, ACF1.

    Parameters:
    y_true (pd.Series): Actual values.
    y_pred (pd.Series): Forecast values, same length as y_true.
    y_train (pd.Series, optional): Training data, needed for MASE.
    seasonal_period (int): Lag of the naive method used to scale MASE (1 = random walk).
    decimals (int, optional): Round every metric to this many decimals.

    Returns:
    dict: Dictionary of forecast metrics. Errors are defined as actual - forecast.
    '''
    y_true = _as_array(y_true)
    y_pred = _as_array(y_pred)
    if len(y_true) != len(y_pred):
        raise ValueError(f'y_true and y_pred must have the same length ({len(y_true)} != {len(y_pred)})')
    if len(y_true) == 0:
        raise ValueError('Cannot score an empty forecast.')

    errors = y_true - y_pred
    mse = mean_squared_error(y_true, y_pred)
    mae = mean_absolute_error(y_true, y_pred)

    with np.errstate(divide='ignore', invalid='ignore'):
        pct_errors = 100 * errors / y_true
    mpe = np.mean(pct_errors)
    mape = np.mean(np.abs(pct_errors))

    if y_train is not None:
        scale = mase_scale(y_train, seasonal_period)
        mase = mae / scale if scale else np.nan
    else:
        mase = np.nan

    if len(errors) > 2 and np.std(errors) > 0:
        acf1 = acf(errors, nlags=1, fft=False)[1]
    else:
        acf1 = np.nan

    metrics = {
        'ME': np.mean(errors),
        'RMSE': np.sqrt(mse),
        'MAE': mae,
        'MPE': mpe,
        'MAPE': mape,
        'MASE': mase,
        'ACF1': acf1,
    }
    if decimals is not None:
        metrics = {k: round(float(v), decimals) for k, v in metrics.items()}
    return metrics


def skill_vs_naive(y_true, y_pred, y_naive):
    '''
    RMSE skill score relative to a benchmark: 1 - RMSE_model / RMSE_naive.
    Positive values beat the benchmark.
    '''
    rmse_model = np.sqrt(mean_squared_error(_as_array(y_true), _as_array(y_pred)))
    rmse_naive = np.sqrt(mean_squared_error(_as_array(y_true), _as_array(y_naive)))
    if rmse_naive == 0:
        return np.nan
    return 1 - rmse_model / rmse_naive


def interval_coverage(y_true, lower, upper):
    '''Share of actual values falling inside [lower, upper].'''
    y = _as_array(y_true)
    return float(np.mean((y >= _as_array(lower)) & (y <= _as_array(upper))))

