import os
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME, TAX_DEBOUNCE_MS, TAX_TIMEOUT_MS

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = BASE_DIR / DATA_DIR
DB_PATH = Path(os.environ.get("POS_BILLING_DB") or DATA_PATH / DB_FILE_NAME)

# tax service endpoint; None means tax is computed nowhere and totals stay estimates
TAX_SERVICE_URL = os.environ.get("POS_TAX_SERVICE_URL") or None

DEBOUNCE_MS = int(os.environ.get("POS_TAX_DEBOUNCE_MS") or TAX_DEBOUNCE_MS)
TIMEOUT_MS = int(os.environ.get("POS_TAX_TIMEOUT_MS") or TAX_TIMEOUT_MS)
