# henryhub/preprocessing.py
import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tsa.seasonal import STL
from statsmodels.tsa.stattools import adfuller, kpss
from statsmodels.tools.sm_exceptions import InterpolationWarning
from statsmodels.stats.diagnostic import het_breuschpagan, het_white
from statsmodels.graphics.tsaplots import plot_acf, plot_pacf
import matplotlib.pyplot as plt
from scipy import stats

class PricePreprocessor:
    '''
    Prepare a monthly spot price series for seasonal ARIMA modelling: regular
    month-start index, interior gaps interpolated, and an optional variance
    stabilising transformation (log or Box-Cox) that can be inverted on forecasts.

    This class also supports optional exploratory data analysis (EDA), including:
    - Stationarity tests (ADF and KPSS)
    - STL decomposition of the signal into trend, seasonal, and residual components
    - Autocorrelation and partial autocorrelation plots

     Parameters:
        value_col (str): Name of the price column when a DataFrame is passed.
        seasonal_period (int): Seasonality period (12 for monthly data with yearly seasonality).
        freq (str): Frequency the index is forced onto ('MS' = month start).
        interpolate_method (str): Interpolation method for interior missing months.
        lags (int): Number of lags to show in ACF and PACF plots.
        do_eda (bool): If True, performs exploratory data analysis with plots and statistical tests.
        transformation (str, optional): Type of transformation to apply. Options: None, 'log', 'boxcox'.
        bc_lambda (float, optional): Fixed Box-Cox lambda. If None, lambda is estimated in fit().

    Attributes:
        trained_ (bool): Indicates whether the preprocessor has been fitted.
        stl_result_ (DecomposeResult): STL decomposition of the transformed series.
        data_start_date_, data_end_date_ (pd.Timestamp): Boundaries of the fitted data.
        fitted_lambda_ (float, optional): Lambda parameter fitted for Box-Cox transformation.
        cleaned_series_ (pd.Series): Transformed training series.

    Methods:
        fit(data): Fits the preprocessor. Performs optional EDA and STL decomposition.
        transform(data): Applies the fitted preprocessing to new data.
        clean(data): Regular monthly index with interior gaps interpolated.
        fit_transform(data): Combines `fit` and `transform` for convenience.
        inverse_transform(series): Inverts the transformation to return to dollars.
        difference(series, lag): Applies differencing to a time series.
        seasonal_difference(series): Differencing at the seasonal lag.
        run_stationarity_tests(series, label): ADF and KPSS tests.
        suggest_differencing(series): Number of first differences needed for stationarity.
        suggest_seasonal_differencing(series): Number of seasonal differences needed.
        test_heteroscedasticity(residuals): Tests for heteroscedasticity in residuals.
    '''

# Section 1: Public interface methods

    def __init__(self,
                 value_col='price',
                 seasonal_period=12,
                 freq='MS',
                 interpolate_method='linear',
                 lags=36,
                 do_eda=False,
                 transformation='log',
                 bc_lambda=None,
                 alpha=0.05):
        if transformation not in (None, 'log', 'boxcox'):
            raise ValueError(f"transformation must be None, 'log' or 'boxcox', got {transformation!r}")
        self.value_col = value_col
        self.seasonal_period = seasonal_period
        self.freq = freq
        self.interpolate_method = interpolate_method
        self.lags = lags
        self.do_eda = do_eda
        self.transformation = transformation
        self.bc_lambda = bc_lambda
        self.alpha = alpha
        self.stl_result_ = None
        self.data_start_date_ = None
        self.data_end_date_ = None
        self.trained_ = False
        self.fitted_lambda_ = None
        self.cleaned_series_ = None

    def fit(self, data, custom_title=None):
        print(f"[INFO] Fitting preprocessing for {self.value_col} | transformation = {self.transformation or 'None'}")

        # Box-Cox lambda is re-estimated on every fit
        self.fitted_lambda_ = None

        raw_series = self._to_series(data)
        clean_series = self._clean(raw_series)

        self.data_start_date_ = clean_series.index[0]
        self.data_end_date_ = clean_series.index[-1]
        print(f'Data range: {self.data_start_date_:%Y-%m} to {self.data_end_date_:%Y-%m} ({len(clean_series)} months)')

        if self.transformation:
            print(f'[INFO] Applying {self.transformation} transformation.')
        transformed = self._apply_transform(clean_series)

        self.cleaned_series_ = transformed
        self.trained_ = True

        if len(transformed.dropna()) >= 2 * self.seasonal_period:
            self.stl_result_ = STL(transformed.dropna(), period=self.seasonal_period, robust=True).fit()
        else:
            print('[Warning] Fewer than two seasons of data; STL decomposition skipped.')

        if self.do_eda:
            if custom_title is None:
                custom_title = f'Henry Hub {self.value_col}: raw vs {self.transformation or "untransformed"}'
            self._plot_raw_vs_transformed(clean_series, transformed, custom_title=custom_title)

            print('[INFO] EDA stationarity tests on transformed data:')
            self.run_stationarity_tests(transformed, f'{self.transformation or "raw"} price')
            self.run_stationarity_tests(self.seasonal_difference(transformed),
                                        f'seasonally differenced {self.transformation or "raw"} price')

            if self.stl_result_ is not None:
                self._plot_decomposition(self.stl_result_)
                self.test_heteroscedasticity(self.stl_result_.resid, label='Heteroscedasticity Tests of STL Residuals')

        return self

    def transform(self, data):
        '''
        Transforms new data using the same preprocessing steps as in `fit`.

        Parameters:
        data (pd.DataFrame or pd.Series): New prices with a 'date' column or DatetimeIndex.

        Returns:
        pd.Series: Transformed monthly price series.
        '''
        if not self.trained_:
            raise ValueError('You must call .fit() before .transform().')

        clean_series = self._clean(self._to_series(data))
        return self._apply_transform(clean_series)

    def clean(self, data):
        '''
        Regularise the full series to month-start frequency and interpolate
        interior gaps, without transforming. Run this before splitting so that
        a gap at the split point is filled from both sides.
        '''
        return self._clean(self._to_series(data))

    def fit_transform(self, data, custom_title=None):
        '''
        Fits the preprocessor on the input data and returns the transformed series.
        '''
        self.fit(data, custom_title=custom_title)
        return self.cleaned_series_.copy()

    def inverse_transform(self, data):
        '''
        Inverts the transformation applied during fit/transform.
        Use this on forecasts or confidence intervals to bring them back to dollars.

        Parameters:
        data (pd.Series or pd.DataFrame): Values in transformed space.

        Returns:
        Same type as the input, in original units.
        '''
        if self.transformation:
            return self._apply_transform(data, inverse=True)
        return data

# Section 2: Core preprocessing methods

    def _to_series(self, data):
        if isinstance(data, pd.Series):
            series = data.copy()
        else:
            df = data.copy()
            # Allow either 'date' column or DatetimeIndex
            if 'date' in df.columns:
                df = df.set_index('date')
            if self.value_col not in df.columns:
                raise ValueError(f'Column {self.value_col!r} not found in input.')
            series = df[self.value_col]

        if not isinstance(series.index, pd.DatetimeIndex):
            raise ValueError("Input must have a 'date' column or DatetimeIndex.")

        series = series.astype(float).sort_index()
        series.name = self.value_col
        series = series.rename_axis('date')
        return series

    def _clean(self, series):
        series = self._trim_leading_nans(series)
        series = self._trim_trailing_nans(series)
        if series.dropna().empty:
            raise ValueError(f'{self.value_col} series has no valid observations.')

        # log and Box-Cox need strictly positive data
        if self.transformation:
            non_positive = series <= 0
            if non_positive.any():
                print(f'[Warning] {non_positive.sum()} non-positive values found in {self.value_col} series. Converting to NaN.')
                series = series.where(series > 0, np.nan)

        series = series.asfreq(self.freq)
        n_missing = series.isna().sum()
        if n_missing:
            print(f'[INFO] Interpolating {n_missing} missing months.')
            series = self._interpolate_series(series)
        return series

    def _trim_trailing_nans(self, series):
        '''
        Trim trailing NaN values from a series
        '''
        last_valid_idx = series.last_valid_index()
        if last_valid_idx is not None and last_valid_idx < series.index[-1]:
            print(f'Trimming {len(series.loc[last_valid_idx:]) - 1} trailing NaN values')
            return series.loc[:last_valid_idx]
        return series

    def _trim_leading_nans(self, series):
        '''
        Trim leading NaN values from a series
        '''
        first_valid_idx = series.first_valid_index()
        if first_valid_idx is not None and first_valid_idx > series.index[0]:
            print(f'Trimming {len(series.loc[:first_valid_idx]) - 1} leading NaN values')
            return series.loc[first_valid_idx:]
        return series

    def _interpolate_series(self, series):
        # interpolate within the valid data range only
        interpolated = series.interpolate(method=self.interpolate_method, limit_area='inside')
        # non-positive values at the edges are left as NaN by limit_area
        return self._trim_trailing_nans(self._trim_leading_nans(interpolated))

    def _apply_transform(self, data, inverse=False):
        '''
        Applies or inverts the specified transformation to a series
        '''
        if self.transformation is None:
            return data

        if not inverse:
            if self.transformation == 'log':
                return np.log(data.where(data > 0, np.nan))

            # Box-Cox
            non_na = data.dropna()
            if self.bc_lambda is not None:
                self.fitted_lambda_ = self.bc_lambda
            if self.fitted_lambda_ is None:
                # this should happen only during .fit()
                transformed, fitted_lambda = stats.boxcox(non_na.values)
                self.fitted_lambda_ = fitted_lambda
                print(f'Calculated Box-Cox lambda: {fitted_lambda:.4f}')
            elif self.fitted_lambda_ == 0:
                transformed = np.log(non_na.values)
            else:
                transformed = stats.boxcox(non_na.values, lmbda=self.fitted_lambda_)

            # NaNs stay NaN after reindexing
            return pd.Series(transformed, index=non_na.index, name=data.name).reindex(data.index)

        if self.transformation == 'log':
            return np.exp(data)
        if self.fitted_lambda_ is None:
            raise ValueError('Box-Cox lambda is unknown; call .fit() first.')
        if self.fitted_lambda_ == 0:
            return np.exp(data)
        return np.power(data * self.fitted_lambda_ + 1, 1 / self.fitted_lambda_)

    def difference(self, series, lag=1):
        '''
        Apply a lagged difference to a time series.

        Parameters:
            series (pd.Series): a single price series
            lag (int): lag of the difference (1 = first difference)

        Returns:
            pd.Series: differenced series
        '''
        return series.diff(lag).dropna()

    def seasonal_difference(self, series):
        '''Difference at the seasonal lag (y_t - y_{t-s}).'''
        return self.difference(series, lag=self.seasonal_period)

    def run_stationarity_tests(self, series, label='Series', verbose=True):
        '''
        ADF (H0: unit root) and KPSS (H0: level stationary) tests.

        Returns:
            dict: statistics, p-values and a combined verdict
        '''
        values = series.dropna()
        adf_stat = adf_p = kpss_stat = kpss_p = np.nan

        try:
            adf_result = adfuller(values)
            adf_stat, adf_p = adf_result[0], adf_result[1]
        except (ValueError, np.linalg.LinAlgError) as e:
            print(f'Error in ADF test: {e}')

        try:
            with warnings.catch_warnings():
                # KPSS p-values are clipped to the table range; that is expected
                warnings.simplefilter('ignore', InterpolationWarning)
                kpss_result = kpss(values, regression='c', nlags='auto')
            kpss_stat, kpss_p = kpss_result[0], kpss_result[1]
        except (ValueError, np.linalg.LinAlgError) as e:
            print(f'Error in KPSS test: {e}')

        if np.isnan(adf_p) or np.isnan(kpss_p):
            verdict = 'inconclusive'
        elif adf_p < self.alpha and kpss_p > self.alpha:
            verdict = 'stationary'
        elif adf_p > self.alpha and kpss_p < self.alpha:
            verdict = 'non-stationary'
        elif adf_p > self.alpha and kpss_p > self.alpha:
            verdict = 'trend-stationary'
        else:
            verdict = 'difference-stationary'

        if verbose:
            print(f'ADF and KPSS tests for {label}:')
            print(f'ADF statistic {adf_stat:.4f}')
            print(f'ADF p-value {adf_p:.4f}')
            print(f'KPSS statistic {kpss_stat:.4f}')
            print(f'KPSS p-value {kpss_p:.4f}')
            print(f'the {label} time series is {verdict} according to ADF and KPSS tests.\n')

        return {
            'label': label,
            'adf_statistic': adf_stat,
            'adf_pvalue': adf_p,
            'kpss_statistic': kpss_stat,
            'kpss_pvalue': kpss_p,
            'verdict': verdict,
        }

    def suggest_differencing(self, series, max_d=2, seasonal=False):
        '''
        Number of first differences needed before the KPSS test stops rejecting
        level stationarity. With seasonal=True the series is seasonally
        differenced first.
        '''
        working = self.seasonal_difference(series) if seasonal else series.dropna()
        for d in range(max_d + 1):
            result = self.run_stationarity_tests(working, f'd={d}', verbose=False)
            if not np.isnan(result['kpss_pvalue']) and result['kpss_pvalue'] > self.alpha:
                return d
            working = self.difference(working)
        return max_d

    def seasonal_strength(self, series):
        '''
        Strength of seasonality from an STL decomposition:
        max(0, 1 - Var(remainder) / Var(seasonal + remainder)).
        '''
        values = series.dropna()
        if len(values) < 2 * self.seasonal_period:
            return np.nan
        result = STL(values, period=self.seasonal_period, robust=True).fit()
        detrended = result.seasonal + result.resid
        if detrended.var() == 0:
            return 0.0
        return max(0.0, 1 - result.resid.var() / detrended.var())

    def suggest_seasonal_differencing(self, series, threshold=0.64, max_D=1):
        '''
        Seasonal differences needed: difference while the seasonal strength
        exceeds `threshold`.
        '''
        working = series.dropna()
        for D in range(max_D + 1):
            strength = self.seasonal_strength(working)
            if np.isnan(strength) or strength <= threshold:
                return D
            working = self.seasonal_difference(working)
        return max_D

# Section 3: EDA/Visualization methods

    def _plot_raw_vs_transformed(self, raw_series, transformed, figsize=(10, 6), custom_title=None):
        plt.close('all') # close any open figures to avoid ghost plots

        fig, axes = plt.subplots(2, 1, figsize=figsize, sharex=True)
        axes[0].plot(raw_series, color='#0072B2', linewidth=1)
        axes[0].set_ylabel('$/MMBtu', fontsize=12)
        axes[0].set_title(custom_title if custom_title else f'{self.value_col} time series', fontsize=14)

        axes[1].plot(transformed, color='#F0950D', linewidth=1)
        axes[1].set_ylabel(self.transformation or 'raw', fontsize=12)
        axes[1].set_xlabel('Time', fontsize=12)

        plt.tight_layout()
        plt.show()

    def _plot_decomposition(self, stl_result):
        residuals_clean = stl_result.resid.dropna()
        if len(residuals_clean) < 2:
            print('Warning: Not enough data in residuals for decomposition plots')
            return

        fig = stl_result.plot()
        plt.suptitle('STL Decomposition', fontsize=16)
        for ax, y_label in zip(fig.axes, ['Observed', 'Trend', 'Seasonal', 'Residual']):
            ax.yaxis.set_label_position('right')
            ax.set_ylabel(y_label, fontsize=12)
        fig.axes[-1].set_xlabel('Year', fontsize=12)
        plt.tight_layout()
        plt.show()

        self.plot_acf_pacf(residuals_clean, title_suffix='STL Residuals')

    def test_heteroscedasticity(self, residuals, label='Heteroscedasticity Tests'):
        '''
        Test for heteroscedasticity in the residuals using the Breusch-Pagan and White tests.

        Parameters:
            residuals (pd.Series): residuals from the fitted model

        Returns:
            Breusch-Pagan p-value: p < 0.05 indicates heteroscedasticity
            White Test p-value: p < 0.05 indicates heteroscedasticity
        '''
        residuals = residuals.dropna()
        X = sm.add_constant(np.arange(len(residuals)))
        bp_test = het_breuschpagan(residuals, X)
        white_test = het_white(residuals, X)

        print(f'\n{label}')
        print(f'Breusch-Pagan p-value: {bp_test[1]:.4f}')
        if bp_test[1] < self.alpha:
            print('Heteroscedasticity detected (Breusch-Pagan test)')
        else:
            print('No heteroscedasticity detected (Breusch-Pagan test)')

        print(f'\nWhite Test p-value: {white_test[1]:.4f}')
        if white_test[1] < self.alpha:
            print('Heteroscedasticity detected (White test)')
        else:
            print('No heteroscedasticity detected (White test)')

        return {'bp_pvalue': bp_test[1], 'white_pvalue': white_test[1]}

    def plot_acf_pacf(self, series, title_suffix=''):
        '''
        Plot ACF and PACF plots for any time series
        '''
        series_clean = series.dropna()
        if len(series_clean) < 4:
            print('Warning: Not enough data for ACF and PACF plots')
            return

        # PACF needs lags < n/2
        safe_lags = min(self.lags, len(series_clean) // 2 - 1)

        plt.figure(figsize=(12,4))

        plt.subplot(1,2,1)
        plot_acf(series_clean, ax=plt.gca(), lags=safe_lags)
        plt.title(f'ACF Plot of {title_suffix}', fontsize=14)
        plt.ylabel('Autocorrelation Coef', fontsize=12)
        plt.xlabel('Lag', fontsize=12)

        plt.subplot(1,2,2)
        plot_pacf(series_clean, ax=plt.gca(), lags=safe_lags, method='ywm')
        plt.title(f'PACF Plot of {title_suffix}', fontsize=14)
        plt.ylabel('Partial Autocorrelation Coef', fontsize=12)
        plt.xlabel('Lag', fontsize=12)

        plt.tight_layout()
        plt.show()
