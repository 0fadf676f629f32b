# henryhub/config.py
from dataclasses import dataclass

from .paths import DEFAULT_PRICE_CSV, RESULTS

SEASONAL_PERIOD = 12        # monthly data, yearly seasonality
TEST_SIZE = 24              # months held out at the end of the series
TRANSFORMATION = 'log'

# Grid bounds (inclusive)
MAX_P = 2
MAX_D = 1
MAX_Q = 2
MAX_SEASONAL_P = 2
MAX_SEASONAL_D = 1
MAX_SEASONAL_Q = 2

CRITERION = 'aicc'
VALID_CRITERIA = ('aic', 'aicc', 'bic')
TOP_N = 5

LJUNG_BOX_LAG = 2 * SEASONAL_PERIOD
ALPHA = 0.05

ESTIMATION_METHOD = 'lbfgs'
MAXITER = 200


@dataclass
class AnalysisConfig:
    '''
    Settings for one run of the Henry Hub analysis.

    Every field defaults to the module-level constant of the same meaning, so
    a notebook can override just the pieces it cares about, e.g.
    AnalysisConfig(test_size=12, max_p=1).
    '''
    csv_path: object = DEFAULT_PRICE_CSV
    output_dir: object = RESULTS
    seasonal_period: int = SEASONAL_PERIOD
    test_size: int = TEST_SIZE
    transformation: object = TRANSFORMATION
    max_p: int = MAX_P
    max_d: int = MAX_D
    max_q: int = MAX_Q
    max_P: int = MAX_SEASONAL_P
    max_D: int = MAX_SEASONAL_D
    max_Q: int = MAX_SEASONAL_Q
    criterion: str = CRITERION
    top_n: int = TOP_N
    ljung_box_lag: int = LJUNG_BOX_LAG
    alpha: float = ALPHA
    estimation_method: str = ESTIMATION_METHOD
    maxiter: int = MAXITER
    plot: bool = True
    save_results: bool = True
    verbose: bool = False

    def grid_ranges(self):
        '''Return the six search ranges in (p, d, q, P, D, Q) order.'''
        return (
            range(self.max_p + 1),
            range(self.max_d + 1),
            range(self.max_q + 1),
            range(self.max_P + 1),
            range(self.max_D + 1),
            range(self.max_Q + 1),
        )

    def validate(self):
        if self.seasonal_period < 2:
            raise ValueError(f'seasonal_period must be >= 2, got {self.seasonal_period}')
        if self.test_size < 1:
            raise ValueError(f'test_size must be >= 1, got {self.test_size}')
        if self.criterion not in VALID_CRITERIA:
            raise ValueError(f'criterion must be one of {VALID_CRITERIA}, got {self.criterion!r}')
        if self.top_n < 1:
            raise ValueError(f'top_n must be >= 1, got {self.top_n}')
        if self.transformation not in (None, 'log', 'boxcox'):
            raise ValueError(f"transformation must be None, 'log' or 'boxcox', got {self.transformation!r}")
        for name in ('max_p', 'max_d', 'max_q', 'max_P', 'max_D', 'max_Q'):
            if getattr(self, name) < 0:
                raise ValueError(f'{name} must be >= 0, got {getattr(self, name)}')
        return self
