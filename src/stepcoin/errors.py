"""Typed errors raised by the ledger, accrual, and challenge services.

All subclass ValueError so callers that only care about "the action was
declined" can keep catching ValueError. The global error handler renders
them as ``{"detail": ..., "code": ...}`` with ``status_code``.
"""

from __future__ import annotations


class StepcoinError(ValueError):
    """Base class for expected, user-recoverable failures."""

    code = "stepcoin_error"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message())

    def default_message(self) -> str:
        return "Request could not be completed"


class InvalidAmount(StepcoinError):
    code = "invalid_amount"
    status_code = 422

    def __init__(self, amount: int) -> None:
        self.amount = amount
        super().__init__(f"Amount must be a positive integer, got {amount!r}")


class InsufficientFunds(StepcoinError):
    code = "insufficient_funds"
    status_code = 402

    def __init__(self, balance: int, requested: int) -> None:
        self.balance = balance
        self.requested = requested
        super().__init__(f"Not enough coins: balance {balance}, requested {requested}")


class WalletNotFound(StepcoinError):
    code = "wallet_not_found"
    status_code = 404

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__("Wallet not found")


class ChallengeNotFound(StepcoinError):
    code = "challenge_not_found"
    status_code = 404

    def __init__(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        super().__init__("Challenge not found")


class ChallengeEnded(StepcoinError):
    code = "challenge_ended"
    status_code = 409

    def __init__(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        super().__init__("This challenge has already ended")


class AlreadyJoined(StepcoinError):
    code = "already_joined"
    status_code = 409

    def __init__(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        super().__init__("Already joined this challenge")


class NotJoined(StepcoinError):
    code = "not_joined"
    status_code = 404

    def __init__(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        super().__init__("You have not joined this challenge")


class ChallengeAlreadyCompleted(StepcoinError):
    code = "challenge_already_completed"
    status_code = 409

    def __init__(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        super().__init__("Cannot leave completed challenges")
