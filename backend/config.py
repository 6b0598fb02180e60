import os
from pathlib import Path

from dotenv import load_dotenv

# Load env from backend/.env when present
load_dotenv(dotenv_path=(Path(__file__).parent / ".env"))

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./schedule.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() in ("1", "true", "yes")

# CORS settings
CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")

# Bulk operations (re-anchoring, schedule generation)
BULK_CONCURRENCY = int(os.getenv("BULK_CONCURRENCY", "8"))
BULK_RETRIES = int(os.getenv("BULK_RETRIES", "1"))

# Name used by the "at least one project" bootstrap
DEFAULT_PROJECT_NAME = os.getenv("DEFAULT_PROJECT_NAME", "新規プロジェクト")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Uvicorn server settings
UVICORN_HOST = os.getenv("UVICORN_HOST", "0.0.0.0")
UVICORN_PORT = int(os.getenv("UVICORN_PORT", "8000"))
