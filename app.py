# =====================================================
# app.py
# =====================================================
import os
import logging

# Force unbuffered output (Render needs this for real-time logs)
os.environ["PYTHONUNBUFFERED"] = "1"

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse

from telegram import Update
from telegram.ext import Application

# Local imports
from logging_setup import tg_error_handler
from handlers import core
from tasks import start_background_tasks, stop_background_tasks
from db import async_sessionmaker, init_db, test_connection
from services.engine import GameService
from services.errors import GameError
from services.notifications import TelegramNotifier
from config import BOT_TOKEN, RENDER_EXTERNAL_URL, WEBHOOK_SECRET
import api

logger = logging.getLogger(__name__)


# -------------------------------------------------
# Initialize FastAPI (+ optional Telegram bot)
# -------------------------------------------------
app = FastAPI(title="TapCoin")
app.include_router(api.router)
application: Application = None  # Telegram Application (global)


# -------------------------------------------------
# Typed game failures → stable JSON errors
# -------------------------------------------------
@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    if exc.status_code >= 500:
        logger.warning(f"⚠️ {request.method} {request.url.path} → {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# -------------------------------------------------
# Root route
# -------------------------------------------------
@app.get("/")
@app.head("/")
async def root():
    return {
        "status": "ok",
        "message": "TapCoin game server is running ✅",
        "health": "Check /health for bot status",
    }


# -------------------------------------------------
# Startup event
# -------------------------------------------------
@app.on_event("startup")
async def on_startup():
    global application
    logger.info("🚀 Starting up TapCoin...")

    await test_connection()
    await init_db()

    game = getattr(app.state, "game", None)
    if game is None:
        game = GameService(async_sessionmaker)
        app.state.game = game

    if BOT_TOKEN:
        application = Application.builder().token(BOT_TOKEN).build()
        application.bot_data["game"] = game

        # ✅ Register handlers
        core.register_handlers(application)
        application.add_error_handler(tg_error_handler)

        # Initialize & start bot
        await application.initialize()
        await application.start()
        game.notifier = TelegramNotifier(application.bot)
        logger.info("Telegram Application initialized & started ✅")

        # Webhook setup
        if RENDER_EXTERNAL_URL and WEBHOOK_SECRET:
            webhook_url = f"{RENDER_EXTERNAL_URL}/telegram/webhook/{WEBHOOK_SECRET}"
            await application.bot.set_webhook(webhook_url)
            logger.info("Webhook set ✅")
        else:
            logger.warning("⚠️ RENDER_EXTERNAL_URL/WEBHOOK_SECRET not set, webhook not registered")
    else:
        logger.warning("⚠️ BOT_TOKEN not set, running HTTP API only")

    # ✅ Start background tasks
    await start_background_tasks(game)


# -------------------------------------------------
# Shutdown event
# -------------------------------------------------
@app.on_event("shutdown")
async def on_shutdown():
    global application
    try:
        # Stop background tasks first
        await stop_background_tasks()

        # Then stop Telegram app
        if application:
            await application.stop()
            await application.shutdown()
            logger.info("🛑 Telegram bot stopped cleanly.")
    except Exception as e:
        logger.warning(f"⚠️ Error while shutting down: {e}")


# -------------------------------------------------
# Telegram webhook endpoint
# -------------------------------------------------
@app.post("/telegram/webhook/{secret}")
async def telegram_webhook(secret: str, request: Request):
    if not WEBHOOK_SECRET or secret != WEBHOOK_SECRET:
        raise HTTPException(status_code=403, detail="Invalid secret")
    if application is None:
        raise HTTPException(status_code=503, detail="Bot not initialized")

    payload = await request.json()
    update = Update.de_json(payload, application.bot)
    await application.process_update(update)
    return {"ok": True}


# -------------------------------------------------
# Health check endpoint
# -------------------------------------------------
@app.get("/health")
@app.head("/health")
async def health_check():
    return {"status": "ok", "bot_initialized": application is not None}
