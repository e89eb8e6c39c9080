# ======================================
# config.py
# (Loads environment variables + economy knobs)
# ======================================
import os
from dotenv import load_dotenv

# Load .env when running locally
load_dotenv()

# ----------------------
# Database
# ----------------------
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("❌ Missing DATABASE_URL env var")

SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

# ----------------------
# Telegram (optional: the HTTP API runs without a bot)
# ----------------------
BOT_TOKEN = os.getenv("BOT_TOKEN")
BOT_USERNAME = os.getenv("BOT_USERNAME", "TapCoinGameBot")
WEBAPP_URL = os.getenv("WEBAPP_URL", "")
RENDER_EXTERNAL_URL = os.getenv("RENDER_EXTERNAL_URL")
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET")
ADMIN_USER_ID = int(os.getenv("ADMIN_USER_ID", "0"))

# ----------------------
# Observability
# ----------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SENTRY_DSN = os.getenv("SENTRY_DSN")  # optional, leave empty if not using
ENVIRONMENT = os.getenv("ENVIRONMENT", "production")

