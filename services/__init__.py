# ========================================================
# services/__init__.py
# ========================================================
"""
Game engine services.

- economy.py:       level curve, upgrade tables, task catalog (pure rules)
- player_state.py:  validated transitions on a single Player
- referrals.py:     exactly-once referral redemption and stats
- leaderboard.py:   ranking by coins
- engine.py:        GameService (locks, transactions, conflict retries)
- notifications.py: Telegram delivery of engine events
"""
