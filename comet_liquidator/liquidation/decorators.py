"""
Decorators that classify ledger client errors into the bot's read error taxonomy.
"""

import functools
from typing import Any, Callable

import requests
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    MismatchedABI,
    ProviderConnectionError,
    Web3ValidationError,
)

from .exceptions import PermanentReadError, ReadError, TransientReadError

CONNECTION_ERRORS = (
    requests.exceptions.ConnectionError,
    ProviderConnectionError,
    ConnectionError,
)

# ContractLogicError subclasses Web3RPCError, so permanent errors are checked first
PERMANENT_ERRORS = (
    ContractLogicError,
    BadFunctionCallOutput,
    MismatchedABI,
    Web3ValidationError,
    ValueError,
    TypeError,
)


def classify_read_error(ex: Exception, description: str) -> ReadError:
    """
    Map an exception raised by a web3 read to TransientReadError or PermanentReadError.

    Args:
        ex: The exception raised by the call.
        description: Human readable description of the call for the error message.

    Returns:
        The classified error. Timeouts, RPC errors and anything unrecognised are transient.
    """
    if isinstance(ex, ReadError):
        return ex
    if isinstance(ex, PERMANENT_ERRORS):
        return PermanentReadError(f"{description}: {ex}")
    if isinstance(ex, CONNECTION_ERRORS):
        return TransientReadError(f"{description}: connection lost: {ex}", connection_lost=True)
    return TransientReadError(f"{description}: {ex}")


def classify_read_errors(func: Callable) -> Callable:
    """
    Decorator that re-raises every failure of a read as a classified ReadError.

    Returns:
        Decorated function raising only TransientReadError or PermanentReadError.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ReadError:
            raise
        except Exception as ex:
            raise classify_read_error(ex, func.__name__) from ex

    return wrapper
