APP_NAME = "POS Billing"

DATA_DIR = "data"
DB_FILE_NAME = "pos_billing.db"

# draft carts held open at the counter
BILL_SLOTS = 9

TAX_DEBOUNCE_MS = 400
TAX_TIMEOUT_MS = 10_000
TAX_CALCULATE_PATH = "/taxes/calculate"

MONEY_PLACES = 2

# lowest unit price a counter price edit can set
MIN_EDIT_PRICE = 1
