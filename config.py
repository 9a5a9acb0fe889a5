import os
import sys

from dotenv import load_dotenv

from enums.runtime_environment import RuntimeEnvironment

# Load .env but don't override existing environment variables
# This allows test scripts to set RUNTIME_ENVIRONMENT=TEST before import
load_dotenv(".env", override=False)

# Parse RUNTIME_ENVIRONMENT with clear error message on misconfiguration
try:
    _runtime_env_str = os.environ.get("RUNTIME_ENVIRONMENT")
    if not _runtime_env_str:
        raise ValueError("RUNTIME_ENVIRONMENT environment variable is not set")
    RUNTIME_ENVIRONMENT = RuntimeEnvironment(_runtime_env_str)
except ValueError as e:
    valid_values = [env.value for env in RuntimeEnvironment]
    print(f"\n ERROR: Invalid RUNTIME_ENVIRONMENT configuration\n", file=sys.stderr)
    print(f"Reason: {e}", file=sys.stderr)
    print(f"Valid values: {', '.join(valid_values)}", file=sys.stderr)
    print(f"Current value: {os.environ.get('RUNTIME_ENVIRONMENT', '(not set)')}", file=sys.stderr)
    print(f"\nAdd to .env: RUNTIME_ENVIRONMENT={valid_values[0]}\n", file=sys.stderr)
    sys.exit(1)

# Database
DB_NAME = os.environ.get("DB_NAME", "marketplace.db")
DB_URL = os.environ.get("DB_URL") or f"sqlite+aiosqlite:///data/{DB_NAME}"

# Redis (realtime change feed + broadcast channel)
REDIS_HOST = os.environ.get("REDIS_HOST", "localhost")
REDIS_PORT = int(os.environ.get("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.environ.get("REDIS_PASSWORD")

# Push notifications are delivered through a Telegram bot
TOKEN = os.environ.get("TOKEN")
PUSH_ENABLED = os.environ.get("PUSH_ENABLED", "true") == "true"
PUSH_FUNCTION_SECRET = os.environ.get("PUSH_FUNCTION_SECRET", "")

WEBAPP_HOST = os.environ.get("WEBAPP_HOST", "0.0.0.0")
WEBAPP_PORT = int(os.environ.get("WEBAPP_PORT", "8000"))

LANGUAGE = os.environ.get("LANGUAGE", "en")
CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₱")

# Parse DEFAULT_DELIVERY_FEE with error handling
try:
    DEFAULT_DELIVERY_FEE = float(os.environ.get("DEFAULT_DELIVERY_FEE", "50"))
    if DEFAULT_DELIVERY_FEE < 0:
        raise ValueError(f"DEFAULT_DELIVERY_FEE must not be negative (got: {DEFAULT_DELIVERY_FEE})")
except ValueError as e:
    print(f"\n ERROR: Invalid DEFAULT_DELIVERY_FEE configuration\n", file=sys.stderr)
    print(f"Reason: {e}", file=sys.stderr)
    print(f"Expected: Non-negative number (e.g., 0, 50, 75.5)", file=sys.stderr)
    print(f"Current value: {os.environ.get('DEFAULT_DELIVERY_FEE', '(not set)')}\n", file=sys.stderr)
    sys.exit(1)

# Messaging
MESSAGE_DEDUP_WINDOW_SECONDS = int(os.environ.get("MESSAGE_DEDUP_WINDOW_SECONDS", "10"))

# Ratings
RATING_MAX_STARS = int(os.environ.get("RATING_MAX_STARS", "3"))
VENDOR_REVIEWS_LIMIT = int(os.environ.get("VENDOR_REVIEWS_LIMIT", "50"))

# Logging Configuration
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_MASK_SECRETS = os.environ.get("LOG_MASK_SECRETS", "true") == "true"  # Mask sensitive data in logs

# Log Retention: Dev keeps a month for debugging, everything else 5 days
if RUNTIME_ENVIRONMENT == RuntimeEnvironment.DEV:
    LOG_RETENTION_DAYS = int(os.environ.get("LOG_RETENTION_DAYS", "30"))
else:
    LOG_RETENTION_DAYS = int(os.environ.get("LOG_RETENTION_DAYS", "5"))
