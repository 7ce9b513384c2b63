import os
from pathlib import Path
from dotenv import load_dotenv

# --- Base Directory ---
BASE_DIR = Path(__file__).resolve().parent.parent

# --- Load Environment Variables ---
load_dotenv(BASE_DIR / ".env")

# --- Path Configuration ---
STATE_DIR = BASE_DIR / os.getenv("STATE_DIR", "state")
LOG_DIR = BASE_DIR / os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Persisted State ---
# Bumping the version orphans older layouts instead of trying to read them.
STORE_VERSION = os.getenv("STORE_VERSION", "v5")

# --- Language Model ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
LLM_TIMEOUT = int(os.getenv("LLM_TIMEOUT", "60"))
# Seconds a model call waits for credentials that are still being provided.
CREDENTIAL_WAIT = float(os.getenv("CREDENTIAL_WAIT", "0"))

# --- Extraction ---
HEADER_SCAN_LIMIT = 50
ZERO_VARIANCE_TOLERANCE = 0.001
RAW_TEXT_LIMIT = 20000

# Rows (0-based) whose first cell carries the market label, in lookup order.
MARKET_HINT_ROWS = (3, 2)

# Column positions used when the header row leaves a field unmapped.
DEFAULT_COLUMN_MAP = {
    "item_number": 0,
    "item_name": 1,
    "variance": 2,
    "revenue": 3,
    "sold_qty": 4,
    "sale_price": 5,
    "item_cost": 7,
}

# --- Display ---
LEADERBOARD_SIZE = int(os.getenv("LEADERBOARD_SIZE", "5"))
MARKET_BREAKDOWN_SIZE = int(os.getenv("MARKET_BREAKDOWN_SIZE", "10"))
OUTLIER_LIMIT = 30

# --- Shared Business Logic ---
ALL_MARKETS = "All"

MONTHS = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]

SUGGESTED_QUESTIONS = [
    "Find naming confusion errors (e.g. Cheeseburger vs Classic Cheeseburger).",
    "Are Cold Food (KF/F/B) overages due to missing tablet 'Adds'?",
    "Analyze items with inverted variances in the same market.",
    "Contrast Scanned Food (KF) accuracy vs Manual Snack counting.",
    "Which market has the highest risk of tablet receiving errors?",
]
