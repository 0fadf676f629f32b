# henryhub/analysis.py
'''
End-to-end Henry Hub analysis: load -> transform -> grid search -> compare -> report.

Usage from a notebook:

    from henryhub.analysis import run_analysis
    from henryhub.config import AnalysisConfig

    report = run_analysis(config=AnalysisConfig(test_size=24, plot=True))
    report.comparison

or from the shell:

    henryhub-analysis --csv data/raw/Henry_Hub_Natural_Gas_Spot_Price.csv --no-plots
'''
import argparse
from dataclasses import dataclass, field, replace
from pathlib import Path

import pandas as pd

from .config import AnalysisConfig, VALID_CRITERIA
from .data_loading import load_price_csv, to_monthly_series, train_test_split
from .model_evaluation import (compare_models, in_sample_resid_analysis,
                               plot_forecast_vs_actual, summarize_model_assumptions,
                               ljung_box_df)
from .model_selection import grid_search_sarima, select_top_models
from .preprocessing import PricePreprocessor


@dataclass
class AnalysisReport:
    config: AnalysisConfig
    train: pd.Series
    test: pd.Series
    stationarity: pd.DataFrame
    suggested_d: int
    suggested_D: int
    grid_results: pd.DataFrame
    shortlist: list
    comparison: pd.DataFrame
    best_model: str
    diagnostics: dict
    assumptions: dict
    forecast: pd.DataFrame
    saved_files: dict = field(default_factory=dict)


def _banner(title):
    print(f"\n{'=' * 60}")
    print(title)
    print(f"{'=' * 60}")


def run_analysis(csv_path=None, config=None, prices=None):
    '''
    Run the full analysis.

    Parameters:
        csv_path (str or Path, optional): Overrides config.csv_path.
        config (AnalysisConfig, optional): Run settings; defaults are used when omitted.
        prices (pd.DataFrame, optional): Already loaded 'date'/'price' table; skips the CSV.

    Returns:
        AnalysisReport
    '''
    config = config or AnalysisConfig()
    if csv_path is not None:
        config = replace(config, csv_path=csv_path)
    config.validate()
    s = config.seasonal_period

    _banner('1. Load data')
    if prices is None:
        prices = load_price_csv(config.csv_path)
    preprocessor = PricePreprocessor(seasonal_period=s,
                                     transformation=config.transformation,
                                     do_eda=config.plot,
                                     alpha=config.alpha)
    # gaps are filled on the whole series so none falls at the split point
    series = preprocessor.clean(to_monthly_series(prices))
    train_raw, test_raw = train_test_split(series, config.test_size)

    _banner('2. Transform')
    train = preprocessor.fit_transform(train_raw)
    test = preprocessor.transform(test_raw)
    if len(test) != config.test_size:
        print(f'[Warning] Test window has {len(test)} usable months instead of {config.test_size}.')

    label = config.transformation or 'raw'
    stationarity = pd.DataFrame([
        preprocessor.run_stationarity_tests(train, f'{label} price'),
        preprocessor.run_stationarity_tests(preprocessor.seasonal_difference(train),
                                            f'seasonally differenced {label} price'),
    ])
    suggested_D = preprocessor.suggest_seasonal_differencing(train, max_D=max(config.max_D, 1))
    suggested_d = preprocessor.suggest_differencing(train, seasonal=suggested_D > 0)
    print(f'[INFO] Suggested differencing: d={suggested_d}, D={suggested_D}')
    if config.plot:
        preprocessor.plot_acf_pacf(preprocessor.seasonal_difference(train),
                                   title_suffix=f'Seasonally Differenced {label} Price')

    _banner('3. Grid search')
    p_range, d_range, q_range, P_range, D_range, Q_range = config.grid_ranges()
    grid_results = grid_search_sarima(train,
                                      p_range=p_range, d_range=d_range, q_range=q_range,
                                      P_range=P_range, D_range=D_range, Q_range=Q_range,
                                      seasonal_period=s,
                                      criterion=config.criterion,
                                      estimation_method=config.estimation_method,
                                      maxiter=config.maxiter,
                                      verbose=config.verbose)
    print(grid_results[['model', 'aic', 'aicc', 'bic', 'invertible', 'status']]
          .head(10).to_string(index=False))

    _banner('4. Compare shortlisted models')
    shortlist = select_top_models(grid_results, n=config.top_n, criterion=config.criterion)
    comparison, evaluations = compare_models(shortlist, train, test,
                                             preprocessor=preprocessor,
                                             ljung_box_lag=config.ljung_box_lag,
                                             estimation_method=config.estimation_method,
                                             maxiter=config.maxiter)
    if comparison.empty:
        raise RuntimeError('None of the shortlisted models could be evaluated on the test window.')

    _banner('5. Residual diagnostics of the best model')
    best = comparison.iloc[0]
    best_model = best['model']
    print(f'[INFO] Best model on the test window: {best_model}')
    _, residuals, diagnostics = in_sample_resid_analysis(train, best['order'], best['seasonal_order'],
                                                         ljung_box_lag=config.ljung_box_lag,
                                                         estimation_method=config.estimation_method,
                                                         maxiter=config.maxiter,
                                                         alpha=config.alpha,
                                                         plot=config.plot)
    assumptions = summarize_model_assumptions(residuals, alpha=config.alpha,
                                              lags=[config.ljung_box_lag],
                                              model_df=ljung_box_df(best['order'], best['seasonal_order']))

    evaluation = evaluations[best_model]
    forecast = pd.DataFrame({
        'actual': evaluation['actual'],
        'forecast': evaluation['forecast'],
        'lower': evaluation['conf_int'].iloc[:, 0],
        'upper': evaluation['conf_int'].iloc[:, 1],
    })
    if config.plot:
        plot_forecast_vs_actual(preprocessor.inverse_transform(train), evaluation['actual'],
                                evaluation['forecast'], evaluation['conf_int'],
                                title=f'{best_model} - Forecast vs Actual')

    report = AnalysisReport(config=config,
                            train=train,
                            test=test,
                            stationarity=stationarity,
                            suggested_d=suggested_d,
                            suggested_D=suggested_D,
                            grid_results=grid_results,
                            shortlist=shortlist,
                            comparison=comparison,
                            best_model=best_model,
                            diagnostics=diagnostics,
                            assumptions=assumptions,
                            forecast=forecast)

    if config.save_results:
        report.saved_files = save_report(report, config.output_dir)
    return report


def save_report(report, output_dir):
    '''Write the grid, comparison and forecast tables as CSV files.'''
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    files = {
        'grid_search': output_dir / 'grid_search.csv',
        'model_comparison': output_dir / 'model_comparison.csv',
        'forecast': output_dir / 'forecast.csv',
    }
    report.grid_results.to_csv(files['grid_search'], index=False)
    report.comparison.to_csv(files['model_comparison'], index=False)
    report.forecast.to_csv(files['forecast'], index_label='date')
    print(f'[INFO] Results written to {output_dir}')
    return files


def build_parser():
    defaults = AnalysisConfig()
    parser = argparse.ArgumentParser(
        prog='henryhub-analysis',
        description='Seasonal ARIMA grid search and model comparison for the monthly Henry Hub spot price.')
    parser.add_argument('--csv', dest='csv_path', default=defaults.csv_path,
                        help='monthly price CSV (plain or EIA download format)')
    parser.add_argument('--output-dir', default=defaults.output_dir,
                        help='directory for the result tables')
    parser.add_argument('--test-size', type=int, default=defaults.test_size,
                        help='months held out for the forecast comparison')
    parser.add_argument('--criterion', choices=VALID_CRITERIA, default=defaults.criterion)
    parser.add_argument('--top-n', type=int, default=defaults.top_n,
                        help='models carried from the grid search into the comparison')
    parser.add_argument('--transformation', choices=('log', 'boxcox', 'none'), default=defaults.transformation)
    for name in ('p', 'd', 'q', 'P', 'D', 'Q'):
        parser.add_argument(f'--max-{name}', dest=f'max_{name}', type=int,
                            default=getattr(defaults, f'max_{name}'))
    parser.add_argument('--no-plots', action='store_true', help='skip all figures')
    parser.add_argument('--no-save', action='store_true', help='do not write result tables')
    parser.add_argument('--verbose', action='store_true', help='print every grid search fit')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = AnalysisConfig(csv_path=args.csv_path,
                            output_dir=args.output_dir,
                            test_size=args.test_size,
                            criterion=args.criterion,
                            top_n=args.top_n,
                            transformation=None if args.transformation == 'none' else args.transformation,
                            max_p=args.max_p, max_d=args.max_d, max_q=args.max_q,
                            max_P=args.max_P, max_D=args.max_D, max_Q=args.max_Q,
                            plot=not args.no_plots,
                            save_results=not args.no_save,
                            verbose=args.verbose)
    report = run_analysis(config=config)
    _banner('Summary')
    print(f'Best model: {report.best_model}')
    print(report.comparison[['model', 'aicc', 'RMSE', 'MAE', 'MAPE', 'MASE', 'coverage']].to_string(index=False))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
