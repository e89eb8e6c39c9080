# ==================================================
# handlers/__init__.py
# ==================================================
"""
Telegram Bot Handlers Package.

- core.py: /start (with referral code), /help, /stats, /leaderboard
"""
