"""Constants for Mail Intelligence."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".mail-intelligence"
DB_PATH = CONFIG_DIR / "mail.db"
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
TOKEN_DIR = CONFIG_DIR / "tokens"
CATEGORIES_PATH = CONFIG_DIR / "categories.json"

# --- Gmail API ---
SCOPES = ["https://www.googleapis.com/auth/gmail.modify"]

# --- Row limits (keep full-corpus scans bounded) ---
RULE_TEST_WINDOW = 1000
RULE_TEST_SAMPLE = 10
RULE_SUGGESTION_SCAN_LIMIT = 2000
CLEANUP_SCAN_LIMIT = 5000
MAX_RULE_SUGGESTIONS = 10
SUGGESTION_SAMPLE_LIMIT = 3

# --- Classifier ---
UNCATEGORIZED = "uncategorized"
BODY_PREFIX_CHARS = 2000
MAX_KEYWORDS = 10
CONFIDENCE_SCALE = 10.0
UNSUBSCRIBE_MARKETING_BONUS = 1.0
BASE_IMPORTANCE = 0.5
URGENCY_BOOST = 0.2
STRONG_SIGNAL_SCORE = 5.0
STRONG_SIGNAL_BOOST = 0.1

# --- Sender rule suggestions ---
SENDER_RULE_MIN_COUNT = 3
SENDER_RULE_MIN_SHARE = 0.8
DOMAIN_SUGGESTION_MIN_MESSAGES = 5
MARKETING_ARCHIVE_MIN_MESSAGES = 20
MARKETING_ARCHIVE_AGE_DAYS = 180
MARKETING_ARCHIVE_CONFIDENCE = 0.9
FINANCIAL_SUGGESTION_MIN_MESSAGES = 10
FINANCIAL_SUGGESTION_CONFIDENCE = 0.85
FINANCE_FOLDER = "Finance"

# --- Cleanup thresholds ---
DUPLICATE_SNIPPET_CHARS = 50
INACTIVE_SUBSCRIPTION_DAYS = 90
LARGE_ATTACHMENT_BYTES = 5 * 1024 * 1024
MARKETING_VOLUME_THRESHOLD = 50
UNREAD_NEWSLETTER_THRESHOLD = 20
OLD_TRANSACTIONAL_DAYS = 365
ACTIVE_READ_RATE = 20  # percent

# --- Side effects ---
PROVIDER_CALL_TIMEOUT = 30.0  # seconds per gateway call
UNSUBSCRIBE_DELAY = 1.0  # seconds between opened links
