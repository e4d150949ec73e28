import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

# Server / Host configuration
HOSTNAME = os.environ.get("HOSTNAME") or "localhost"

# SQLite file holding subscriptions and content
DATABASE_PATH = os.environ.get("DATABASE_PATH") or "hubsub.db"

# Permanent guid/link of self-authored entries; {id} is the row id
ENTRY_URL = os.environ.get("ENTRY_URL") or f"https://{HOSTNAME}/entry/{{id}}"

# Author used when neither entry nor feed names one
FALLBACK_AUTHOR = os.environ.get("FALLBACK_AUTHOR", "")

# Logging configuration
from hubsub.logger import logger
FLASK_RUN_FROM_CLI = os.environ.get("FLASK_RUN_FROM_CLI")
if FLASK_RUN_FROM_CLI:
    logger.setLevel(logging.DEBUG)

# Optional global flags
def _get_bool_env_var(value: str, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y"}

REQUIRE_SIGNATURE = _get_bool_env_var(os.environ.get("REQUIRE_SIGNATURE"), default=True)
