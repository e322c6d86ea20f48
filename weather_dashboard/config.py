import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (one level above weather_dashboard/)
ROOT = Path(__file__).parent.parent
load_dotenv(dotenv_path=ROOT / ".env")

# ── Storage ───────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///weather_dashboard.db")
DB_CONNECT_RETRIES = int(os.getenv("DB_CONNECT_RETRIES", "5"))
DB_RETRY_DELAY = float(os.getenv("DB_RETRY_DELAY", "5"))

# ── Weather provider ──────────────────────────────────────────────────────────

WEATHER_API_KEY = os.getenv("WEATHER_API_KEY", "")

# ── Language model ────────────────────────────────────────────────────────────

PROJECT_ENDPOINT = os.getenv("PROJECT_ENDPOINT", "")
AZURE_AI_API_KEY = os.getenv("AZURE_AI_API_KEY", "")
AZURE_API_VERSION = os.getenv("AZURE_API_VERSION", "2025-01-01-preview")
MODEL_DEPLOYMENT_NAME = os.getenv("MODEL_DEPLOYMENT_NAME", "")

# ── Auth ──────────────────────────────────────────────────────────────────────

DEFAULT_JWT_SECRET = "dev-secret-change-me-before-deploying"
JWT_SECRET = os.getenv("JWT_SECRET") or DEFAULT_JWT_SECRET
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXP_DAYS = int(os.getenv("JWT_EXP_DAYS", "7"))

# ── HTTP server ───────────────────────────────────────────────────────────────

PORT = int(os.getenv("PORT", "5000"))
STATIC_DIR = ROOT / os.getenv("STATIC_DIR", "client")
