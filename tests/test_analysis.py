"""
End-to-end tests for the analysis pipeline and its command line.
"""

import pandas as pd
import pytest

from henryhub.analysis import build_parser, main, run_analysis
from henryhub.config import AnalysisConfig

# keeps the sweep to 2 x 2 x 2 x 1 x 1 x 2 = 16 fits
TINY_GRID = dict(max_p=1, max_d=1, max_q=1, max_P=0, max_D=0, max_Q=1)


class TestConfig:
    """Tests for AnalysisConfig."""

    def test_defaults(self):
        config = AnalysisConfig().validate()
        assert config.seasonal_period == 12
        assert config.criterion == 'aicc'
        assert [len(r) for r in config.grid_ranges()] == [3, 2, 3, 3, 2, 3]

    @pytest.mark.parametrize('overrides', [
        {'test_size': 0},
        {'criterion': 'hqic'},
        {'seasonal_period': 1},
        {'top_n': 0},
        {'max_q': -1},
        {'transformation': 'sqrt'},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            AnalysisConfig(**overrides).validate()


class TestRunAnalysis:
    """Tests for run_analysis."""

    def test_full_run_from_frame(self, price_frame, tmp_path):
        config = AnalysisConfig(test_size=12, top_n=3, plot=False, output_dir=tmp_path, **TINY_GRID)
        config.max_D = 1
        report = run_analysis(config=config, prices=price_frame)

        assert len(report.train) == 108
        assert len(report.test) == 12
        assert len(report.grid_results) == 32
        assert 1 <= len(report.shortlist) <= 3
        assert not report.comparison.empty
        assert report.best_model == report.comparison.loc[0, 'model']
        assert report.suggested_D == 1
        assert list(report.stationarity['label']) == ['log price', 'seasonally differenced log price']

        assert list(report.forecast.columns) == ['actual', 'forecast', 'lower', 'upper']
        assert len(report.forecast) == 12
        assert (report.forecast['forecast'] > 0).all()

        for name, path in report.saved_files.items():
            assert path.exists(), name
        saved = pd.read_csv(report.saved_files['model_comparison'])
        assert len(saved) == len(report.comparison)

    def test_run_from_csv_without_saving(self, eia_csv):
        config = AnalysisConfig(test_size=12, top_n=2, plot=False, save_results=False, **TINY_GRID)
        report = run_analysis(csv_path=eia_csv, config=config)
        assert report.saved_files == {}
        assert report.config.csv_path == eia_csv
        # the caller's config is left as it was
        assert config.csv_path != eia_csv

    def test_gap_at_split_point_interpolated(self, price_frame):
        # 2018-12 is the last training month for a 12-month test window
        prices = price_frame[price_frame['date'] != pd.Timestamp('2018-12-01')]
        config = AnalysisConfig(test_size=12, top_n=2, plot=False, save_results=False, **TINY_GRID)
        report = run_analysis(config=config, prices=prices)
        assert len(report.train) == 108
        assert report.train.index[-1] == pd.Timestamp('2018-12-01')
        assert report.test.index[0] == pd.Timestamp('2019-01-01')
        assert report.forecast.index.equals(report.test.index)

    def test_missing_csv(self, tmp_path):
        config = AnalysisConfig(plot=False, save_results=False, **TINY_GRID)
        with pytest.raises(FileNotFoundError):
            run_analysis(csv_path=tmp_path / 'missing.csv', config=config)


class TestCli:
    """Tests for the henryhub-analysis command."""

    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        assert args.test_size == 24
        assert args.criterion == 'aicc'
        assert args.max_P == 2
        assert not args.no_plots

    def test_main(self, plain_csv, tmp_path, capsys):
        exit_code = main(['--csv', str(plain_csv), '--output-dir', str(tmp_path),
                          '--test-size', '12', '--top-n', '2', '--no-plots',
                          '--max-p', '1', '--max-q', '1', '--max-P', '0',
                          '--max-D', '1', '--max-Q', '1'])
        assert exit_code == 0
        assert (tmp_path / 'grid_search.csv').exists()
        assert 'Best model' in capsys.readouterr().out
