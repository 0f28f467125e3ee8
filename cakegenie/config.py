"""Application configuration. Loads from environment and .env file."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
# Load .env from cwd, then project root .env
load_dotenv()
load_dotenv(BASE_DIR / ".env")

# Compression (env overrides)
MAX_LONG_EDGE = int(os.getenv("MAX_LONG_EDGE", "1800"))
TARGET_MAX_BYTES = int(os.getenv("TARGET_MAX_BYTES", "1200000"))
QUALITY_START = float(os.getenv("QUALITY_START", "0.85"))
QUALITY_MIN = float(os.getenv("QUALITY_MIN", "0.60"))
QUALITY_STEP = 0.10
MAX_ENCODE_ATTEMPTS = int(os.getenv("MAX_ENCODE_ATTEMPTS", "5"))
PREVIEW_MAX_EDGE = 480

# Upload validation
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
MAX_UPLOAD_SIZE_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024
MIN_IMAGE_DIMENSION = int(os.getenv("MIN_IMAGE_DIMENSION", "200"))
ERROR_DISPLAY_SECONDS = float(os.getenv("ERROR_DISPLAY_SECONDS", "5"))

# Pricing poll: 8 attempts * 5 seconds = 40 seconds
POLL_INITIAL_DELAY_SECONDS = float(os.getenv("POLL_INITIAL_DELAY_SECONDS", "5"))
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "5"))
POLL_MAX_ATTEMPTS = int(os.getenv("POLL_MAX_ATTEMPTS", "8"))
PRICE_CURRENCY_SYMBOL = os.getenv("PRICE_CURRENCY_SYMBOL", "")

# Supabase storage path prefix for uploaded cake photos
UPLOAD_PREFIX = "uploads"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
