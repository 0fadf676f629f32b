# henryhub/model_selection.py
import itertools
import time
import warnings

import numpy as np
import pandas as pd
from tqdm import tqdm
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.sarimax import SARIMAX

VALID_CRITERIA = ('aic', 'aicc', 'bic')


def sarima_grid(p_range=range(3),
                d_range=range(2),
                q_range=range(3),
                P_range=range(3),
                D_range=range(2),
                Q_range=range(3),
                seasonal_period=12):
    '''
    Every combination of the six order ranges, p outermost and Q innermost.

    Returns:
        list of dict: [{'order': (p, d, q), 'seasonal_order': (P, D, Q, s)}, ...]
    '''
    return [
        {'order': (p, d, q), 'seasonal_order': (P, D, Q, seasonal_period)}
        for p, d, q, P, D, Q in itertools.product(p_range, d_range, q_range,
                                                  P_range, D_range, Q_range)
    ]


def default_trend(order, seasonal_order):
    '''A constant is only included when the model is not differenced.'''
    return 'c' if order[1] + seasonal_order[1] == 0 else 'n'


def format_order(order, seasonal_order):
    '''Label like ARIMA(1,1,1)(0,1,1)[12].'''
    p, d, q = order
    P, D, Q, s = seasonal_order
    return f'ARIMA({p},{d},{q})({P},{D},{Q})[{s}]'


def fit_sarima(y,
               order,
               seasonal_order,
               trend=None,
               estimation_method='lbfgs',
               maxiter=200,
               enforce_stationarity=False,
               enforce_invertibility=False):
    '''
    Fit one SARIMA model.

    Stationarity and invertibility are not enforced during estimation so that
    the fitted roots can be checked afterwards with check_roots().

    Returns:
        (SARIMAXResults, bool): fitted results and whether the optimizer converged
    '''
    if trend is None:
        trend = default_trend(order, seasonal_order)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        warnings.filterwarnings('ignore', message='Non-invertible starting')
        warnings.filterwarnings('ignore', message='Non-stationary starting')
        warnings.filterwarnings('ignore', message='Too few observations')

        model = SARIMAX(y,
                        order=order,
                        seasonal_order=seasonal_order,
                        trend=trend,
                        enforce_stationarity=enforce_stationarity,
                        enforce_invertibility=enforce_invertibility)
        results = model.fit(disp=False, method=estimation_method, maxiter=maxiter)

    converged = bool((results.mle_retvals or {}).get('converged', False))
    if any(issubclass(w.category, ConvergenceWarning) for w in caught):
        converged = False
    return results, converged


def check_roots(results):
    '''
    Unit-circle check on the reduced-form (seasonal x non-seasonal) lag polynomials.
    Roots are in the lag operator, so a stationary / invertible model has every
    root strictly outside the unit circle.
    '''
    ar_moduli = np.abs(np.atleast_1d(results.arroots))
    ma_moduli = np.abs(np.atleast_1d(results.maroots))
    return {
        'stationary': bool(np.all(ar_moduli > 1)),
        'invertible': bool(np.all(ma_moduli > 1)),
        'min_ar_root': float(ar_moduli.min()) if ar_moduli.size else np.nan,
        'min_ma_root': float(ma_moduli.min()) if ma_moduli.size else np.nan,
    }


def grid_search_sarima(y,
                       candidates=None,
                       p_range=range(3),
                       d_range=range(2),
                       q_range=range(3),
                       P_range=range(3),
                       D_range=range(2),
                       Q_range=range(3),
                       seasonal_period=12,
                       criterion='aicc',
                       estimation_method='lbfgs',
                       maxiter=200,
                       verbose=False,
                       progress=True):
    '''
    Brute-force search over seasonal ARIMA orders.

    Every candidate is fitted on `y`; a candidate that raises during fitting is
    recorded as a failed row and the sweep continues.

    Parameters
    ----------
    y : pd.Series
        Transformed (e.g. log) training series with a regular DatetimeIndex.
    candidates : list of dict, optional
        Models in the {'order', 'seasonal_order'} format. Built from the
        six ranges with sarima_grid() when omitted.
    criterion : {'aic', 'aicc', 'bic'}
        Ranking criterion; lower is better.

    Returns
    -------
    pd.DataFrame
        One row per candidate, usable fits sorted by `criterion`, failures last.
    '''
    if criterion not in VALID_CRITERIA:
        raise ValueError(f'criterion must be one of {VALID_CRITERIA}, got {criterion!r}')
    if candidates is None:
        candidates = sarima_grid(p_range, d_range, q_range, P_range, D_range, Q_range, seasonal_period)
    if not candidates:
        raise ValueError('No candidate models to fit: the search grid is empty.')

    start_time = time.perf_counter()
    print(f'[INFO] Grid search over {len(candidates)} SARIMA candidates on {len(y)} observations')

    rows = []
    for params in tqdm(candidates, desc='SARIMA grid', disable=not progress):
        order = tuple(params['order'])
        seasonal_order = tuple(params['seasonal_order'])
        row = {
            'model': format_order(order, seasonal_order),
            'order': order,
            'seasonal_order': seasonal_order,
            'aic': np.nan,
            'aicc': np.nan,
            'bic': np.nan,
            'llf': np.nan,
            'n_params': np.nan,
            'converged': False,
            'stationary': False,
            'invertible': False,
            'min_ar_root': np.nan,
            'min_ma_root': np.nan,
            'status': 'ok',
            'error': '',
        }
        try:
            results, converged = fit_sarima(y, order, seasonal_order,
                                             estimation_method=estimation_method,
                                             maxiter=maxiter)
            row.update({
                'aic': results.aic,
                'aicc': results.aicc,
                'bic': results.bic,
                'llf': results.llf,
                'n_params': len(results.params),
                'converged': converged,
            })
            row.update(check_roots(results))
            if verbose:
                print(f"{row['model']}: {criterion.upper()}={row[criterion]:.3f} "
                      f"converged={converged} invertible={row['invertible']}")
        except Exception as e:
            row['status'] = 'failed'
            row['error'] = f'{type(e).__name__}: {e}'
            if verbose:
                print(f"Model {row['model']} failed: {row['error']}")
        rows.append(row)

    grid_results = pd.DataFrame(rows)
    grid_results['_failed'] = grid_results['status'] != 'ok'
    grid_results = (grid_results
                    .sort_values(['_failed', criterion], kind='mergesort', na_position='last')
                    .drop(columns='_failed')
                    .reset_index(drop=True))

    n_failed = int((grid_results['status'] == 'failed').sum())
    total_time = time.perf_counter() - start_time
    print(f'[INFO] Fitted {len(grid_results) - n_failed} models, {n_failed} failed '
          f'({total_time:.1f} s)')
    if n_failed < len(grid_results):
        best = grid_results.iloc[0]
        print(f"[INFO] Lowest {criterion.upper()}: {best['model']} ({best[criterion]:.3f})")

    return grid_results


def select_top_models(grid_results,
                      n=5,
                      criterion='aicc',
                      require_invertible=True,
                      require_converged=True,
                      require_stationary=False):
    '''
    Shortlist the best `n` usable candidates from a grid search.

    Note: information criteria are only strictly comparable between models
    with the same differencing orders (d, D). They are ranked together here,
    and the held-out comparison is what settles the final choice.

    Returns:
        list of dict in the {'order', 'seasonal_order'} format
    '''
    if criterion not in VALID_CRITERIA:
        raise ValueError(f'criterion must be one of {VALID_CRITERIA}, got {criterion!r}')

    usable = grid_results[(grid_results['status'] == 'ok') & np.isfinite(grid_results[criterion])]
    for flag, required in (('converged', require_converged),
                           ('invertible', require_invertible),
                           ('stationary', require_stationary)):
        if required:
            usable = usable[usable[flag].astype(bool)]
    if usable.empty:
        raise ValueError('No candidate model passes the selection filters.')

    top = usable.sort_values(criterion, kind='mergesort').head(n)
    diff_orders = {(o[1], so[1]) for o, so in zip(top['order'], top['seasonal_order'])}
    if len(diff_orders) > 1:
        print(f'[Warning] Shortlist mixes differencing orders; {criterion.upper()} values are not strictly comparable.')

    return [{'order': tuple(r.order), 'seasonal_order': tuple(r.seasonal_order)}
            for r in top.itertuples(index=False)]
