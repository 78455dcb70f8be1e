# swapclient/errors.py
from typing import Any, List, Optional, Tuple


class SwapClientError(Exception):
    """Base class for every error raised by the swap client."""
    pass


# --- Fatal input errors: never retried ---

class ValidationError(SwapClientError):
    pass


class MissingCredentials(ValidationError):
    pass


class InvalidAsset(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


# --- Connection ---

class TransportError(SwapClientError):
    """Transport could not be opened (refused, DNS, connect timeout)."""
    pass


class AuthError(SwapClientError):
    pass


class AuthRejected(AuthError):
    pass


class AuthTimeout(AuthError):
    pass


class AllNodesExhausted(SwapClientError):
    """
    Raised after every configured Smart Node failed within one connect() call.
    `failures` holds (node url, error) pairs in the order they were tried.
    """
    def __init__(self, message: str, failures: Optional[List[Tuple[str, Exception]]] = None):
        super().__init__(message)
        self.failures = failures or []


# --- Operations on an authenticated channel ---

class OperationError(SwapClientError):
    """Failure of a named gateway operation. `response` keeps the raw reply."""
    def __init__(self, message: str, operation: str = "", response: Any = None):
        super().__init__(message)
        self.operation = operation
        self.response = response


class OperationTimeout(OperationError):
    pass


class InvalidResponseShape(OperationError):
    pass


class SwapRejected(OperationError):
    pass


# --- Swap flow ---

class SwapError(SwapClientError):
    pass


class MissingTransaction(SwapError):
    pass


class MalformedTransaction(SwapError):
    pass


class AssociationError(SwapError):
    pass


# --- Sniper ---

class SniperError(SwapClientError):
    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class SniperTimeout(SniperError):
    pass


class SniperCancelled(SniperError):
    pass


# Conditions that abort a sniper run instead of being retried on the next poll.
FATAL_ERRORS = (ValidationError, MalformedTransaction)
