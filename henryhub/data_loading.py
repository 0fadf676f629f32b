# henryhub/data_loading.py
from pathlib import Path

import pandas as pd

# First cell of the header row in the plain and EIA download layouts
HEADER_KEYS = ('month', 'date')


def _find_header_row(path, max_scan=20):
    '''
    The EIA download carries a few preamble lines (title, source URL,
    timestamp, source) before the real header row. Return the index of the
    header row, or 0 if none of the first lines look like one.
    '''
    with open(path, encoding='utf-8-sig') as fh:
        for i, line in enumerate(fh):
            if i >= max_scan:
                break
            first_cell = line.split(',')[0].strip().strip('"').strip().lower()
            if first_cell in HEADER_KEYS:
                return i
    return 0


def _first_numeric_column(df, exclude):
    for col in df.columns:
        if col == exclude:
            continue
        if pd.to_numeric(df[col], errors='coerce').notna().any():
            return col
    return None


def load_price_csv(path, date_col=None, value_col=None):
    '''
    Load a monthly Henry Hub spot price CSV.

    Parameters:
        path (str or Path): CSV file, either a plain two-column file
            (e.g. 'Month,Price') or the EIA download with its preamble lines.
        date_col (str, optional): Name of the date column. Defaults to the first column.
        value_col (str, optional): Name of the price column. Defaults to the first
            numeric column after the date column.

    Returns:
        pd.DataFrame: columns 'date' (month-start timestamps) and 'price' (float),
        sorted ascending with one row per month.
    '''
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f'Price file not found: {path}')

    header_row = _find_header_row(path)
    df = pd.read_csv(path, skiprows=header_row, encoding='utf-8-sig')
    df.columns = [str(c).strip() for c in df.columns]

    if df.empty or len(df.columns) < 2:
        raise ValueError(f'{path.name}: expected a date column and a price column')

    if date_col is None:
        date_col = df.columns[0]
    if date_col not in df.columns:
        raise ValueError(f'{path.name}: date column {date_col!r} not found in {list(df.columns)}')

    if value_col is None:
        value_col = _first_numeric_column(df, exclude=date_col)
        if value_col is None:
            raise ValueError(f'{path.name}: no numeric price column found')
    if value_col not in df.columns:
        raise ValueError(f'{path.name}: price column {value_col!r} not found in {list(df.columns)}')

    dates = pd.to_datetime(df[date_col].astype(str).str.strip(), errors='coerce')
    out = pd.DataFrame({
        'date': dates.dt.to_period('M').dt.to_timestamp(),
        'price': pd.to_numeric(df[value_col], errors='coerce'),
    })

    n_bad_dates = out['date'].isna().sum()
    if n_bad_dates:
        print(f'[Warning] Dropping {n_bad_dates} rows with unparseable dates')
    out = out.dropna(subset=['date'])
    if out.empty:
        raise ValueError(f'{path.name}: no rows with a valid date')

    # Stable sort so that keep='last' keeps the row that came last in the file
    out = out.sort_values('date', kind='mergesort')
    n_dupes = out['date'].duplicated(keep='last').sum()
    if n_dupes:
        print(f'[Warning] {n_dupes} duplicated months found, keeping the last entry of each')
    out = out.drop_duplicates('date', keep='last').reset_index(drop=True)

    print(f'[INFO] Loaded {len(out)} monthly prices from {path.name} '
          f'({out["date"].min():%Y-%m} to {out["date"].max():%Y-%m})')
    return out


def to_monthly_series(df, value_col='price'):
    '''
    Reshape a loaded price table into a month-start indexed series.
    Dates anywhere in a month are snapped to its first day, and months absent
    from the table appear as NaN.
    '''
    if 'date' in df.columns:
        df = df.set_index('date')
    elif not isinstance(df.index, pd.DatetimeIndex):
        raise ValueError("Input must have a 'date' column or DatetimeIndex.")

    series = df[value_col].astype(float)
    series.index = pd.DatetimeIndex(series.index).to_period('M').to_timestamp()
    series = series.sort_index(kind='mergesort')
    n_dupes = series.index.duplicated(keep='last').sum()
    if n_dupes:
        print(f'[Warning] {n_dupes} duplicated months found, keeping the last entry of each')
    series = series[~series.index.duplicated(keep='last')].asfreq('MS')
    series.name = 'price'
    series.index.name = 'date'
    return series


def train_test_split(series, test_size):
    '''
    Chronological holdout: the last `test_size` observations form the test window.
    '''
    if test_size < 1:
        raise ValueError(f'test_size must be >= 1, got {test_size}')
    if test_size >= len(series):
        raise ValueError(f'test_size ({test_size}) leaves no training data '
                         f'for a series of length {len(series)}')

    train = series.iloc[:-test_size]
    test = series.iloc[-test_size:]
    print(f'[INFO] Train: {train.index[0]:%Y-%m} to {train.index[-1]:%Y-%m} ({len(train)} obs) | '
          f'Test: {test.index[0]:%Y-%m} to {test.index[-1]:%Y-%m} ({len(test)} obs)')
    return train, test
