# ========================================================
# services/errors.py
# ========================================================
"""
Typed failures of the game engine.

Every expected rejection is a GameError subclass carrying a stable
`code` (sent to clients) and the HTTP `status_code` the API answers with.
Anything that is not a GameError is an internal error.
"""


class GameError(Exception):
    code = "game_error"
    status_code = 400
    default_message = "Request rejected"

    def __init__(self, message: str = None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"ok": False, "error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# ----------------------------
# Player state transitions
# ----------------------------
class InsufficientEnergy(GameError):
    code = "insufficient_energy"
    status_code = 409
    default_message = "Not enough energy"


class InsufficientFunds(GameError):
    code = "insufficient_funds"
    status_code = 409
    default_message = "Not enough coins"


class UpgradeMaxed(GameError):
    code = "upgrade_maxed"
    status_code = 409
    default_message = "Upgrade is already at its maximum tier"


class UnknownUpgrade(GameError):
    code = "unknown_upgrade"
    status_code = 404
    default_message = "No such upgrade"


class BonusNotReady(GameError):
    code = "bonus_not_ready"
    status_code = 409
    default_message = "Daily bonus is not available yet"


class TaskAlreadyCompleted(GameError):
    code = "task_already_completed"
    status_code = 409
    default_message = "Task already completed"


class TaskNotEligible(GameError):
    code = "task_not_eligible"
    status_code = 409
    default_message = "Task requirement not met"


class TaskNotFound(GameError):
    code = "task_not_found"
    status_code = 404
    default_message = "No such task"


# ----------------------------
# Referral ledger
# ----------------------------
class UnknownCode(GameError):
    code = "unknown_code"
    status_code = 404
    default_message = "Referral code not found"


class SelfReferral(GameError):
    code = "self_referral"
    status_code = 400
    default_message = "You cannot use your own referral code"


class AlreadyReferred(GameError):
    code = "already_referred"
    status_code = 409
    default_message = "Player was already referred"


# ----------------------------
# Storage
# ----------------------------
class PlayerNotFound(GameError):
    code = "player_not_found"
    status_code = 404
    default_message = "Player not found"


class StorageConflict(GameError):
    code = "storage_conflict"
    status_code = 503
    default_message = "Concurrent update, please retry"


class CorruptedPlayerState(Exception):
    """Persisted record breaks an invariant. Never sent to clients as-is."""

    def __init__(self, player_id, reason: str):
        super().__init__(f"player {player_id}: {reason}")
        self.player_id = player_id
        self.reason = reason
