"""
Custom exceptions for the liquidation bot.
"""


class LiquidationBotError(Exception):
    """Base exception for all liquidation bot errors."""


class ConfigError(LiquidationBotError):
    """Raised for configuration-related errors."""


class ReadError(LiquidationBotError):
    """Raised when a read-only query against the protocol or quoter fails."""


class TransientReadError(ReadError):
    """
    Network failure, timeout or RPC-level error on a read.
    The result is unknown; the next trigger will try again.
    """

    def __init__(self, message: str, connection_lost: bool = False):
        super().__init__(message)
        self.connection_lost = connection_lost


class PermanentReadError(ReadError):
    """Malformed or unexpected response (revert on a view call, ABI mismatch)."""


class LiquidationError(LiquidationBotError):
    """Raised for errors during liquidation execution."""


class SubmissionFailure(LiquidationError):
    """The liquidation transaction was rejected before inclusion."""


class RevertedExecution(LiquidationError):
    """The liquidation transaction was included but reverted."""


class ConnectionFailure(LiquidationBotError):
    """Transport-level failure. Fatal to the process."""
