from pathlib import Path

# Points to repo root (one level above this package)
REPO_ROOT = Path(__file__).resolve().parent.parent

# Standardized paths
RAW_DATA = REPO_ROOT / "data" / "raw"
RESULTS = REPO_ROOT / "results"

DEFAULT_PRICE_CSV = RAW_DATA / "Henry_Hub_Natural_Gas_Spot_Price.csv"
