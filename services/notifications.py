# ===============================================================
# services/notifications.py — out-of-band player notifications
# ===============================================================
import html
import logging

from telegram.error import TelegramError

logger = logging.getLogger(__name__)

REFERRAL_REDEEMED = "referral_redeemed"
DAILY_BONUS_AVAILABLE = "daily_bonus_available"


def render_message(event: str, **data) -> str | None:
    if event == REFERRAL_REDEEMED:
        name = html.escape(data.get("referred_name") or "A new player")
        reward = data.get("reward", 0)
        return (
            "🎉 <b>New referral!</b>\n\n"
            f"{name} joined through your link.\n"
            f"💰 You earned <b>{reward:,}</b> coins!"
        )
    if event == DAILY_BONUS_AVAILABLE:
        return (
            "🎁 <b>Your daily bonus is ready!</b>\n\n"
            "Open the game and claim it before your friends do 🚀"
        )
    return None


class TelegramNotifier:
    """Delivers engine events as chat messages. Never raises."""

    def __init__(self, bot):
        self.bot = bot

    async def notify(self, player_id: int, event: str, **data) -> bool:
        text = render_message(event, **data)
        if text is None:
            logger.warning(f"⚠️ Unknown notification event '{event}' for {player_id}")
            return False
        try:
            await self.bot.send_message(chat_id=player_id, text=text, parse_mode="HTML")
            logger.info(f"📨 Sent '{event}' to {player_id}")
            return True
        except TelegramError as e:
            # blocked bot, deleted chat, flood limits...
            logger.warning(f"⚠️ Could not deliver '{event}' to {player_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ Unexpected error delivering '{event}' to {player_id}: {e}")
            return False
