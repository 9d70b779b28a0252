"""Constants for tgstore."""

# Reserved document name holding catalog snapshots
CATALOG_NAME = "filelist.json"

# Telegram Bot API
DEFAULT_API_BASE = "https://api.telegram.org"
GET_UPDATES_MAX_LIMIT = 100  # Bot API caps getUpdates at 100 per call

# Catalog synchronization defaults
DEFAULT_LOOKBACK_WINDOW = 100
DEFAULT_MAX_CONFLICT_RETRIES = 5
DEFAULT_MAX_TRANSPORT_RETRIES = 3

# Configuration
CONFIG_DIR = ".tgstore"
CONFIG_FILE = "config.yaml"
ENV_CONFIG_PATH = "TGSTORE_CONFIG"
ENV_BOT_TOKEN = "TGSTORE_BOT_TOKEN"
ENV_CHAT_ID = "TGSTORE_CHAT_ID"
ENV_LOOKBACK_WINDOW = "TGSTORE_LOOKBACK_WINDOW"

# Legacy variable names, still honoured
LEGACY_ENV_BOT_TOKEN = "RCLONE_TELEGRAM_BOT_TOKEN"
LEGACY_ENV_CHAT_ID = "RCLONE_TELEGRAM_CHAT_ID"

# Version
TGSTORE_VERSION = "0.1.0"
