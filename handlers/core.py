# ==============================================================
# handlers/core.py — /start (with referral), /help, /stats, /leaderboard
# ===============================================================
from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo
from telegram.ext import ContextTypes, CommandHandler
from helpers import md_escape
from services.errors import GameError
from services.referrals import REFERRED_REWARD, REFERRER_REWARD
from config import BOT_USERNAME, WEBAPP_URL
import html
import logging

logger = logging.getLogger(__name__)

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


def _game(context: ContextTypes.DEFAULT_TYPE):
    return context.application.bot_data["game"]


def _play_keyboard():
    if not WEBAPP_URL:
        return None
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton("🎮 Play TapCoin", web_app=WebAppInfo(url=WEBAPP_URL))]]
    )


# ===============================================================
# /start (with optional referral)
# ===============================================================
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user = update.effective_user
    game = _game(context)

    summary = await game.get_player_summary(
        user.id, username=user.username, first_name=user.first_name
    )

    referral_line = ""
    code = context.args[0].strip() if context.args else ""
    if code and code.upper() != summary["referral_code"]:
        try:
            await game.redeem_referral(
                code, user.id, username=user.username, first_name=user.first_name
            )
            referral_line = f"\n🎁 You received *{REFERRED_REWARD}* bonus coins for joining via a friend's link\\!\n"
        except GameError as e:
            # referral failures are logged only, never shown to the user
            logger.info(f"ℹ️ Referral '{code}' for {user.id} not applied: {e.code}")

    text = (
        f"🌟 Welcome to *TapCoin*, {md_escape(user.first_name or 'Player')}\\!\n"
        f"{referral_line}\n"
        "💎 Tap the coin to earn\n"
        "⚡ Watch your energy\n"
        "📈 Level up\n"
        "🛒 Buy upgrades\n"
        "🏆 Complete tasks\n"
        "👥 Invite friends\n\n"
        "Tap the button below to start playing 👇"
    )

    await update.message.reply_text(
        text,
        reply_markup=_play_keyboard(),
        parse_mode="MarkdownV2",
    )


# ===============================================================
# /help
# ===============================================================
async def help_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = (
        "📖 <b>How to play TapCoin</b>\n\n"
        "🎯 <b>Basics</b>\n"
        "• Tap the coin to earn coins\n"
        "• Every tap spends 1 energy\n"
        "• Energy refills on its own over time\n\n"
        "📈 <b>Progress</b>\n"
        "• Coins raise your level\n"
        "• Higher level = bigger daily bonus\n\n"
        "🛒 <b>Upgrades</b>\n"
        "• Click power: more coins per tap\n"
        "• Energy capacity: a bigger energy tank\n"
        "• Energy regen: faster refills\n\n"
        "🏆 <b>Tasks</b>\n"
        "• Finish tasks for rewards\n"
        "• Claim a daily bonus every 24h\n\n"
        "👥 <b>Referrals</b>\n"
        f"• Invite friends and get {REFERRER_REWARD:,} coins\n"
        f"• Your friends get {REFERRED_REWARD:,} bonus coins\n\n"
        "Have fun! 🎮"
    )
    await update.message.reply_text(text, parse_mode="HTML")


# ===============================================================
# /stats
# ===============================================================
async def stats(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user = update.effective_user
    game = _game(context)

    summary = await game.get_player_summary(
        user.id, username=user.username, first_name=user.first_name
    )
    referral = await game.get_referral_stats(user.id)

    text = (
        "📊 <b>Your stats</b>\n\n"
        f"💰 Coins: {summary['coins']:,}\n"
        f"📈 Level: {summary['level']}\n"
        f"🎯 Total taps: {summary['total_clicks']:,}\n"
        f"👥 Friends invited: {referral['total_referrals']}\n"
        f"💎 Referral earnings: {referral['total_earnings']:,}\n\n"
        f"🔗 Invite link: https://t.me/{BOT_USERNAME}?start={summary['referral_code']}"
    )
    await update.message.reply_text(text, parse_mode="HTML")


# ===============================================================
# /leaderboard
# ===============================================================
async def leaderboard_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE):
    rows = await _game(context).get_leaderboard(10)

    if not rows:
        await update.message.reply_text("🏆 No players yet. Be the first!")
        return

    lines = ["🏆 <b>Leaderboard</b>\n"]
    for row in rows:
        medal = MEDALS.get(row["rank"], f"{row['rank']}.")
        lines.append(f"{medal} {html.escape(row['name'])} - {row['coins']:,} coins")

    await update.message.reply_text("\n".join(lines), parse_mode="HTML")


# ===============================================================
# Register Handlers
# ===============================================================
def register_handlers(application):

    # Commands
    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("help", help_cmd))
    application.add_handler(CommandHandler("stats", stats))
    application.add_handler(CommandHandler("leaderboard", leaderboard_cmd))
