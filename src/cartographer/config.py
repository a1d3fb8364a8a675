"""Configuration for the Cartographer crawler and the Conductor planner."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from a .env file when present.
load_dotenv()

SESSION_ROOT = Path(os.getenv("CARTOGRAPHER_SESSION_DIR", "sessions"))

APP_MAP_FILENAME = "app_map_progress_v3.json"

OPENAI_MODEL = os.getenv("CARTOGRAPHER_MODEL", "gpt-4o-mini")

# Width, height of the device display in pixels.
VIEWPORT = (1080, 2400)

MAX_INTERACTIONS = 20

CRAWL_SETTLE_SECONDS = 2.0
STEP_SETTLE_SECONDS = 0.5
APP_LAUNCH_SECONDS = 2.0
GRACE_SECONDS = 5.0

ORACLE_MAX_ATTEMPTS = 3


def get_openai_api_key() -> str | None:
    """Return the OpenAI API key or None when it is not configured."""
    return os.getenv("OPENAI_API_KEY") or None
