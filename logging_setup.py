# ===============================================================
# logging_setup.py
# ===============================================================
import logging
import re
import sys
import traceback

import sentry_sdk
from telegram import Update
from telegram.ext import ContextTypes

from config import LOG_LEVEL, SENTRY_DSN, ENVIRONMENT, ADMIN_USER_ID

numeric_level = getattr(logging, LOG_LEVEL, logging.INFO)


# ------------------------------------------------
# 🔒 Secret Filter to hide tokens / API keys
# ------------------------------------------------
class SecretFilter(logging.Filter):
    TOKEN_PATTERN = re.compile(r"\b\d{9,10}:[A-Za-z0-9_-]{35,}\b")
    KEY_PATTERN = re.compile(
        r"(?:secret|token|key|password|api)[^\s=:'\"]*['\"]?[:=]['\"]?([\w-]+)['\"]?",
        re.IGNORECASE
    )

    def filter(self, record):
        msg = str(record.msg)
        msg = self.TOKEN_PATTERN.sub("[SECRET]", msg)
        msg = self.KEY_PATTERN.sub("[REDACTED]", msg)
        record.msg = msg
        if record.args:
            record.args = tuple(
                self.TOKEN_PATTERN.sub("[SECRET]", a) if isinstance(a, str) else a
                for a in record.args
            )
        return True


# ------------------------------------------------
# Configure root handler once
# ------------------------------------------------
formatter = logging.Formatter(
    "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    "%Y-%m-%d %H:%M:%S",
)


def setup_logging(level: int = numeric_level) -> logging.Logger:
    """Attach the masked stdout handler to the root logger (idempotent)."""
    root = logging.getLogger()
    if not any(getattr(h, "_tapcoin", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        handler.addFilter(SecretFilter())
        handler._tapcoin = True
        root.addHandler(handler)
    root.setLevel(level)

    # Ensure uvicorn/gunicorn logs flow through this formatter
    for noisy in ("uvicorn", "uvicorn.error", "uvicorn.access",
                  "gunicorn", "gunicorn.error", "gunicorn.access"):
        logging.getLogger(noisy).handlers = []
        logging.getLogger(noisy).propagate = True

    # python-telegram-bot logs every getUpdates/webhook call at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("TapCoinBot")


logger = setup_logging()

# ------------------------------------------------
# Optional: Initialize Sentry
# ------------------------------------------------
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        traces_sample_rate=1.0,
        environment=ENVIRONMENT,
    )

logger.info("✅ Secure logger initialized (tokens masked from output).")


# ------------------------------------------------
# Telegram error handler
# ------------------------------------------------
async def tg_error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handles exceptions in Telegram updates safely:
    - Logs the error locally (with secrets masked)
    - Sends to Sentry (if configured)
    - Notifies admin (if ADMIN_USER_ID set)
    """
    error = context.error
    logger.error(
        "Telegram update failed: %s\n%s",
        update,
        "".join(traceback.format_exception(None, error, error.__traceback__)),
    )

    if SENTRY_DSN:
        sentry_sdk.capture_exception(error)

    if ADMIN_USER_ID and isinstance(update, Update):
        try:
            await context.bot.send_message(
                chat_id=ADMIN_USER_ID,
                text=f"⚠️ Exception in bot:\n{type(error).__name__}: {error}",
            )
        except Exception as inner_exc:
            logger.warning(f"Failed to notify admin: {inner_exc}")
