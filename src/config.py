"""
BudgetBuddy - Configuration

All runtime settings come from environment variables, optionally loaded
from a `.env` file next to the project. Values are read once at import
time; the application factory accepts overrides for tests.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# =============================================================================
# PATHS
# =============================================================================
SRC_DIR = Path(__file__).parent
DEFAULT_DB_PATH = SRC_DIR / "data" / "budgetbuddy.db"
DATABASE_PATH = Path(os.getenv("DATABASE_PATH", str(DEFAULT_DB_PATH)))

# =============================================================================
# SERVER
# =============================================================================
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "5000"))
APP_ENV = os.getenv("APP_ENV", "development")
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
CORS_ORIGIN = os.getenv("CORS_ORIGIN", "*")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# =============================================================================
# AUTH
# =============================================================================
JWT_SECRET = os.getenv("JWT_SECRET", "your-super-secret-jwt-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", "1"))
MIN_PASSWORD_LENGTH = 8

# =============================================================================
# ML SERVICE
# =============================================================================
ML_SERVICE_URL = os.getenv("ML_SERVICE_URL", "http://localhost:8000")
ML_SERVICE_TIMEOUT = float(os.getenv("ML_SERVICE_TIMEOUT", "30"))
ML_TRANSACTION_LIMIT = 1000


def as_flask_config():
    """Settings in the shape Flask's app.config expects."""
    return {
        "SECRET_KEY": SECRET_KEY,
        "DATABASE_PATH": DATABASE_PATH,
        "APP_ENV": APP_ENV,
        "CORS_ORIGIN": CORS_ORIGIN,
        "JWT_SECRET": JWT_SECRET,
        "JWT_ALGORITHM": JWT_ALGORITHM,
        "JWT_EXPIRES_HOURS": JWT_EXPIRES_HOURS,
        "ML_SERVICE_URL": ML_SERVICE_URL,
        "ML_SERVICE_TIMEOUT": ML_SERVICE_TIMEOUT,
        "ML_TRANSPORT": None,
    }


def configure_logging(level=None):
    logging.basicConfig(
        level=getattr(logging, level or LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
