# henryhub/model_evaluation.py
import time

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.model_selection import TimeSeriesSplit
from sklearn.metrics import mean_squared_error, mean_absolute_error
from tqdm import tqdm
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.stats.stattools import jarque_bera
from statsmodels.graphics.tsaplots import plot_acf
from statsmodels.api import qqplot
from scipy import stats

from .forecast_metrics import (forecast_metrics, interval_coverage,
                               seasonal_naive_forecast, skill_vs_naive)
from .model_selection import check_roots, fit_sarima, format_order


def ljung_box_df(order, seasonal_order):
    '''Fitted ARMA coefficients, the Ljung-Box degrees-of-freedom correction.'''
    return order[0] + order[2] + seasonal_order[0] + seasonal_order[2]


def _burn_in(order, seasonal_order):
    '''Observations lost to differencing; their residuals are not informative.'''
    return order[1] + seasonal_order[1] * seasonal_order[3]


def ljung_box(residuals, lags, model_df=0):
    '''
    Ljung-Box test with the ARMA degrees-of-freedom correction. Lags that are
    not larger than model_df, or not smaller than the sample, are dropped.
    '''
    residuals = pd.Series(residuals).dropna()
    lags = [lag for lag in np.atleast_1d(lags) if model_df < lag < len(residuals)]
    if not lags:
        return pd.DataFrame(columns=['lb_stat', 'lb_pvalue'])
    return acorr_ljungbox(residuals, lags=lags, model_df=model_df, return_df=True)


# === 1. Volatility / ARCH Check ===
def test_volatility_clustering(residuals, lags=(1, 3, 6, 12), plot=False):
    '''
    Check for GARCH effects in residuals
    '''
    residuals = pd.Series(residuals).dropna()
    squared_residuals = residuals ** 2
    lags = [lag for lag in lags if lag < len(squared_residuals)]
    if not lags:
        print('Warning: Not enough residuals for the volatility clustering test')
        return pd.DataFrame(columns=['lb_stat', 'lb_pvalue'])

    # Ljung-Box test on squared residuals (McLeod-Li)
    arch_test = acorr_ljungbox(squared_residuals, lags=lags, return_df=True)

    print('\n--- Volatility Clustering Diagnostics ---')
    print('Ljung-Box test on squared residuals:')
    print('(H0: No ARCH effects (constant variance))')
    for lag in lags:
        pval = arch_test.loc[lag, 'lb_pvalue']
        sig = '***' if pval < 0.05 else ''
        print(f'\tLag {lag}: p-value = {pval:.4f}{sig}')

    if plot:
        fig, axes = plt.subplots(2, 1, figsize=(10, 6), sharex=True)
        axes[0].plot(residuals)
        axes[0].set_title('Residuals Over Time', fontsize=14)
        axes[0].set_ylabel('Residuals', fontsize=12)

        axes[1].plot(squared_residuals)
        axes[1].set_title('Squared Residuals (Volatility Clustering Check)', fontsize=14)
        axes[1].set_xlabel('Time', fontsize=12)
        axes[1].set_ylabel('Squared Residuals', fontsize=12)

        plt.tight_layout()
        plt.show()

    return arch_test


# === 2. In-sample residual diagnostics ===
def in_sample_resid_analysis(train,
                             order,
                             seasonal_order,
                             ljung_box_lag=24,
                             estimation_method='lbfgs',
                             maxiter=200,
                             alpha=0.05,
                             plot=True):
    '''
    Fit a SARIMA model and run in-sample residual diagnostics
    (the checkresiduals() routine: time plot, ACF, histogram, Ljung-Box).

    Parameters
    ----------
    train          : pd.Series
        Training set (time-indexed, transformed scale).
    order          : tuple
        SARIMA (p,d,q).
    seasonal_order : tuple
        SARIMA seasonal (P,D,Q,s).
    ljung_box_lag  : int, default=24
        Lag of the Ljung-Box test, tested with p+q+P+Q degrees of freedom removed.

    Returns
    -------
    (SARIMAXResults, pd.Series, dict)
        fitted results, residuals after the differencing burn-in, diagnostics
    '''
    model_name = format_order(order, seasonal_order)
    results, converged = fit_sarima(train, order, seasonal_order,
                                    estimation_method=estimation_method, maxiter=maxiter)

    burn_in_period = _burn_in(order, seasonal_order)
    residuals = results.resid.iloc[burn_in_period:]
    fitted = results.fittedvalues.iloc[burn_in_period:]
    actual = train.iloc[burn_in_period:]

    print(f'=== In-Sample Residual Analysis: {model_name} ===')
    print(f'Using {len(residuals)} residuals for diagnostics '
          f'(first {burn_in_period} excluded as burn-in)')
    if not converged:
        print('[Warning] Optimizer did not converge.')

    in_sample = forecast_metrics(actual, fitted)
    print('\n--- In-Sample Accuracy (after burn-in) ---')
    print(f"RMSE: {in_sample['RMSE']:.4f}")
    print(f"MAE:  {in_sample['MAE']:.4f}")

    jb_stat, jb_pvalue, skew, kurtosis = jarque_bera(residuals)
    print('\n--- Distribution Diagnostics ---')
    print('Jarque-Bera test:')
    print(f'\tJB = {jb_stat:.2f}')
    print(f'\tp = {jb_pvalue:.4f}')
    print(f'\tSkewness = {skew:.3f}')
    print(f'\tkurtosis = {kurtosis:.3f}')

    model_df = ljung_box_df(order, seasonal_order)
    lb = ljung_box(residuals, [ljung_box_lag], model_df=model_df)
    lb_pvalue = lb['lb_pvalue'].iloc[0] if not lb.empty else np.nan
    print('\n--- Autocorrelation Diagnostics ---')
    print(f'Ljung-Box Test (H0: No autocorrelation), lag {ljung_box_lag}, df = {ljung_box_lag - model_df}')
    print(f'\tp = {lb_pvalue:.4f}' + (' ***' if lb_pvalue < alpha else ''))

    arch_test = test_volatility_clustering(residuals)
    roots = check_roots(results)
    print(f"\nStationary AR roots: {roots['stationary']} | Invertible MA roots: {roots['invertible']}")

    if plot:
        plot_residual_diagnostics(residuals, title=f'{model_name} - In-Sample Residuals')

    diagnostics = {
        'model': model_name,
        'converged': converged,
        'in_sample_rmse': in_sample['RMSE'],
        'in_sample_mae': in_sample['MAE'],
        'jarque_bera_p': jb_pvalue,
        'skew': skew,
        'kurtosis': kurtosis,
        'ljung_box_p': lb_pvalue,
        'arch_p_min': arch_test['lb_pvalue'].min() if not arch_test.empty else np.nan,
        **roots,
    }
    return results, residuals, diagnostics


def plot_residual_diagnostics(residuals, title='Residual Diagnostics', lags=36):
    fig, axes = plt.subplots(2, 2, figsize=(12, 8))
    fig.suptitle(title, fontsize=16)

    # Residual time series
    axes[0,0].plot(residuals)
    axes[0,0].axhline(y=0, color='r', linestyle='--')
    axes[0,0].set_title('Residuals over Time')
    axes[0,0].set_ylabel('Residual Value')

    # Histogram + normal curve
    axes[0,1].hist(residuals, bins=30, density=True, alpha=0.8)
    x_vals = np.linspace(residuals.min(), residuals.max(), 200)
    normal_pdf = stats.norm.pdf(x_vals, loc=residuals.mean(), scale=residuals.std())
    axes[0,1].plot(x_vals, normal_pdf, color='r', linestyle='--', label='Normal PDF')
    axes[0,1].set_title('Residual Distribution', fontsize=14)
    axes[0,1].legend()

    # Q-Q plot
    qqplot(residuals, line='s', ax=axes[1,0])
    axes[1,0].set_title('Q-Q Plot', fontsize=14)

    # ACF plot
    plot_acf(residuals, lags=min(lags, len(residuals) - 1), ax=axes[1,1])
    axes[1,1].set_title('ACF of Residuals', fontsize=14)
    axes[1,1].set_xlabel('Lag', fontsize=12)

    plt.tight_layout()
    plt.show()


def _forecast_horizon(train, test):
    # months from the end of train to the end of test, gaps included
    if isinstance(train.index, pd.DatetimeIndex) and isinstance(test.index, pd.DatetimeIndex):
        steps = (test.index[-1].to_period('M') - train.index[-1].to_period('M')).n
        if steps < 1:
            raise ValueError('Test window must start after the training window.')
        return steps
    return len(test)


# === 3. Out-of-sample evaluation ===
def out_of_sample_evaluation(train,
                             test,
                             order,
                             seasonal_order,
                             preprocessor=None,
                             estimation_method='lbfgs',
                             maxiter=200,
                             coverage=0.95,
                             plot_forecast=True,
                             verbose=True):
    '''
    Fit on the training window, forecast the test window and score the
    forecast on the original price scale.

    Parameters
    ----------
    train, test    : pd.Series
        Training and test windows in the modelling (transformed) scale.
    preprocessor   : PricePreprocessor, optional
        Used to back-transform forecasts, intervals and actuals to dollars.
        Without it everything is scored on the modelling scale.
    coverage       : float, default=0.95
        Nominal coverage of the forecast intervals.

    Returns
    -------
    dict with 'forecast', 'conf_int', 'actual', 'metrics', 'results', 'converged'
    '''
    model_name = format_order(order, seasonal_order)
    results, converged = fit_sarima(train, order, seasonal_order,
                                    estimation_method=estimation_method, maxiter=maxiter)

    forecast_obj = results.get_forecast(steps=_forecast_horizon(train, test))
    predictions = forecast_obj.predicted_mean
    conf_int = forecast_obj.conf_int(alpha=1 - coverage)
    if not predictions.index.equals(test.index):
        outside = test.index.difference(predictions.index)
        if len(outside):
            raise ValueError(f'{len(outside)} test months fall outside the forecast horizon '
                             f'starting {predictions.index[0]}')
        print(f'[Warning] Test window of {model_name} has gaps; scoring the {len(test)} observed months only.')
        predictions = predictions.reindex(test.index)
        conf_int = conf_int.reindex(test.index)

    actual_train, actual_test = train, test
    if preprocessor is not None:
        # median forecast on the price scale
        predictions = preprocessor.inverse_transform(predictions)
        conf_int = preprocessor.inverse_transform(conf_int)
        actual_train = preprocessor.inverse_transform(train)
        actual_test = preprocessor.inverse_transform(test)

    seasonal_period = seasonal_order[3]
    metrics = forecast_metrics(actual_test, predictions, y_train=actual_train,
                               seasonal_period=seasonal_period)
    metrics['coverage'] = interval_coverage(actual_test, conf_int.iloc[:, 0], conf_int.iloc[:, 1])
    if len(actual_train) >= seasonal_period:
        naive = seasonal_naive_forecast(actual_train, len(actual_test), seasonal_period)
        metrics['skill_vs_naive'] = skill_vs_naive(actual_test, predictions, naive)
    else:
        metrics['skill_vs_naive'] = np.nan

    if verbose:
        print(f'=== Out-of-Sample Forecast: {model_name} ===')
        print(f"RMSE: {metrics['RMSE']:.3f}")
        print(f"MAE:  {metrics['MAE']:.3f}")
        print(f"MAPE: {metrics['MAPE']:.2f}%")
        print(f"MASE: {metrics['MASE']:.3f}")
        print(f"{coverage:.0%} interval coverage: {metrics['coverage']:.1%}")

    if plot_forecast:
        plot_forecast_vs_actual(actual_train, actual_test, predictions, conf_int,
                                title=f'{model_name} - Forecast vs Actual')

    return {
        'forecast': predictions,
        'conf_int': conf_int,
        'actual': actual_test,
        'metrics': metrics,
        'results': results,
        'converged': converged,
    }


def plot_forecast_vs_actual(train, test, predictions, conf_int, title='Forecast vs Actual', history=60):
    plt.figure(figsize=(12,6))
    plt.plot(train.index[-history:], train.values[-history:], label='Train', color='black')
    plt.plot(test.index, test.values, label='Actual', marker='o', markersize=4)
    plt.plot(predictions.index, predictions.values, label='Forecast', linestyle='--', linewidth=2)
    plt.fill_between(conf_int.index,
                     conf_int.iloc[:,0],
                     conf_int.iloc[:,1],
                     color='r',
                     alpha=0.2,
                     label='Forecast Interval')
    plt.title(title, fontsize=14)
    plt.ylabel('$/MMBtu', fontsize=12)
    plt.legend(fontsize=12)
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.show()


# === 4. Model comparison on the test window ===
def compare_models(models_list,
                   train,
                   test,
                   preprocessor=None,
                   ljung_box_lag=24,
                   estimation_method='lbfgs',
                   maxiter=200,
                   plot_forecast=False):
    '''
    Fit each shortlisted model on `train` and tabulate information criteria,
    root checks, the residual Ljung-Box p-value and test-window accuracy.

    Returns:
        (pd.DataFrame, dict): comparison table sorted by test RMSE, and the
        out-of-sample evaluation dict of every model keyed by its label
    '''
    rows = []
    evaluations = {}
    for params in models_list:
        order = tuple(params['order'])
        seasonal_order = tuple(params['seasonal_order'])
        model_name = format_order(order, seasonal_order)
        try:
            evaluation = out_of_sample_evaluation(train, test, order, seasonal_order,
                                                  preprocessor=preprocessor,
                                                  estimation_method=estimation_method,
                                                  maxiter=maxiter,
                                                  plot_forecast=plot_forecast,
                                                  verbose=False)
        except Exception as e:
            print(f'Model {model_name} failed: {e}')
            continue

        results = evaluation['results']
        burn_in_period = _burn_in(order, seasonal_order)
        lb = ljung_box(results.resid.iloc[burn_in_period:], [ljung_box_lag],
                       model_df=ljung_box_df(order, seasonal_order))

        row = {
            'model': model_name,
            'order': order,
            'seasonal_order': seasonal_order,
            'aic': results.aic,
            'aicc': results.aicc,
            'bic': results.bic,
            'converged': evaluation['converged'],
            'ljung_box_p': lb['lb_pvalue'].iloc[0] if not lb.empty else np.nan,
        }
        row.update(check_roots(results))
        row.update(evaluation['metrics'])
        rows.append(row)
        evaluations[model_name] = evaluation

    comparison = pd.DataFrame(rows)
    if not comparison.empty:
        comparison = comparison.sort_values('RMSE', kind='mergesort').reset_index(drop=True)
        print('\n--- Model Comparison (test window) ---')
        print(comparison[['model', 'aicc', 'ljung_box_p', 'RMSE', 'MAE', 'MAPE', 'MASE']].to_string(index=False))
    else:
        print('[Warning] No model could be evaluated on the test window.')
    return comparison, evaluations


# === 5. Model validation via TimeSeriesSplit CV ===
def evaluate_models_tscv(models_list,
                         data,
                         n_splits=5,
                         test_size=12,
                         gap=0,
                         min_folds=3,
                         estimation_method='lbfgs',
                         maxiter=200):
    '''
    Expanding-window cross-validation of candidate SARIMA models.
    Each fold forecasts `test_size` steps past its training window.

    Models with fewer than `min_folds` converged folds are dropped.
    '''
    start_time = time.perf_counter()
    tscv = TimeSeriesSplit(n_splits=n_splits, test_size=test_size, gap=gap)

    print(f'Evaluating {len(models_list)} models with {n_splits} folds each')
    for i, (train_idx, val_idx) in enumerate(tscv.split(data)):
        print(f'Fold {i+1}: Train={len(train_idx)}, Val={len(val_idx)}')

    results_summary = []
    for params in tqdm(models_list, desc='Models'):
        order = tuple(params['order'])
        seasonal_order = tuple(params['seasonal_order'])
        rmse_scores, mae_scores, aic_values = [], [], []

        for fold_idx, (train_idx, val_idx) in enumerate(tscv.split(data)):
            train_fold = data.iloc[train_idx]
            val_fold = data.iloc[val_idx]
            try:
                results, converged = fit_sarima(train_fold, order, seasonal_order,
                                                estimation_method=estimation_method,
                                                maxiter=maxiter)
                if not converged:
                    print(f'Model {format_order(order, seasonal_order)} did not converge on fold {fold_idx+1}')
                    continue

                # gap steps are forecast but not scored
                forecast_values = results.get_forecast(steps=gap + len(val_fold)).predicted_mean.iloc[gap:]
                rmse_scores.append(np.sqrt(mean_squared_error(val_fold, forecast_values)))
                mae_scores.append(mean_absolute_error(val_fold, forecast_values))
                aic_values.append(results.aic)
            except Exception as e:
                print(f'Model {format_order(order, seasonal_order)} failed on fold {fold_idx+1}: {e}')
                continue

        if len(rmse_scores) >= min_folds:
            results_summary.append({
                'model': format_order(order, seasonal_order),
                'order': order,
                'seasonal_order': seasonal_order,
                'successful_folds': len(rmse_scores),
                'convergence_rate': len(rmse_scores) / n_splits,
                'RMSE_mean': np.mean(rmse_scores),
                'RMSE_std': np.std(rmse_scores),
                'MAE_mean': np.mean(mae_scores),
                'AIC_mean': np.mean(aic_values),
            })

    total_time = time.perf_counter() - start_time
    print(f'\nTotal duration: {total_time/60:.2f} minutes')
    print(f'Number of models successfully evaluated: {len(results_summary)}')

    summary = pd.DataFrame(results_summary)
    if not summary.empty:
        summary = summary.sort_values('RMSE_mean', kind='mergesort').reset_index(drop=True)
    return summary


# === 6. Summary assumption check ===
def summarize_model_assumptions(residuals, alpha=0.05, lags=(6, 12, 24), model_df=0):
    '''
    Evaluate normality, zero-mean, and autocorrelation assumptions.
    '''
    residuals = pd.Series(residuals).dropna()

    _, normality_p = stats.shapiro(residuals)

    lb = ljung_box(residuals, lags, model_df=model_df)
    no_autocorr = bool((lb['lb_pvalue'] > alpha).all()) if not lb.empty else True

    # one-sample t-test of the residual mean against zero
    _, mean_p = stats.ttest_1samp(residuals, 0.0)

    assumptions = {
        'zero_mean': bool(mean_p > alpha),
        'normality': bool(normality_p > alpha),
        'no_autocorrelation': no_autocorr,
        'normality_pvalue': normality_p,
        'zero_mean_pvalue': mean_p,
    }

    yes, no = '✅', '❌'
    print('\n--- Model Assumptions Summary ---')
    print(f"Zero mean: {yes if assumptions['zero_mean'] else no} (mean = {residuals.mean():.6f})")
    print(f"Normality: {yes if assumptions['normality'] else no} (p = {normality_p:.4f})")
    print(f"No autocorrelation: {yes if assumptions['no_autocorrelation'] else no}")

    return assumptions
