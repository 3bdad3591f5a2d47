from typing import Any, Dict, Optional


class ServiceErrorCode:
    """Standard error codes for ledger services"""

    # Validation
    UNKNOWN_QUEST = "UNKNOWN_QUEST"
    INVALID_WALLET = "INVALID_WALLET"

    # Coordination
    LOCK_CONTENTION = "LOCK_CONTENTION"
    TRANSACTION_CONFLICT = "TRANSACTION_CONFLICT"

    # System
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class GiveawayError(Exception):
    """
    Standardized service error for internal use.
    Callers decide whether to retry or report to the end user.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class StoreUnavailableError(GiveawayError):
    def __init__(self, message: str = "Store is unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(ServiceErrorCode.STORE_UNAVAILABLE, message, details)


class TransactionConflictError(GiveawayError):
    def __init__(self, key: str, attempts: int):
        super().__init__(
            ServiceErrorCode.TRANSACTION_CONFLICT,
            f"Gave up updating {key} after {attempts} conflicting attempts",
            {"key": key, "attempts": attempts},
        )


class LockContentionError(GiveawayError):
    def __init__(self, message: str = "Bot long polling is already running", details: Optional[Dict[str, Any]] = None):
        super().__init__(ServiceErrorCode.LOCK_CONTENTION, message, details)


class UnknownQuestError(GiveawayError):
    def __init__(self, quest_id: str):
        super().__init__(
            ServiceErrorCode.UNKNOWN_QUEST,
            f"Quest {quest_id} is not part of the catalog",
            {"quest_id": quest_id},
        )


class InvalidWalletError(GiveawayError):
    def __init__(self, participant_id: int):
        super().__init__(
            ServiceErrorCode.INVALID_WALLET,
            "Wallet is required to confirm winner",
            {"participant_id": participant_id},
        )
