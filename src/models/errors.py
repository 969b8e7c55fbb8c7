# src/models/errors.py

"""Shared error taxonomy for retailer integrations."""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Every upstream failure mode maps onto one of these."""

    NETWORK_UNAVAILABLE = "network_unavailable"
    TIMEOUT = "timeout"
    AUTHENTICATION_FAILED = "authentication_failed"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"  # upstream 429
    QUOTA_EXCEEDED = "quota_exceeded"            # local limiter, pre-call
    CIRCUIT_OPEN = "circuit_open"                # local breaker, pre-call
    SERVER_ERROR = "server_error"
    DECODING_FAILED = "decoding_failed"
    NOT_FOUND = "not_found"
    CUSTOM = "custom"


class RetailerError(Exception):
    """A typed failure raised by an adapter or the guarded call path.

    ``status_code`` is set for :attr:`ErrorKind.SERVER_ERROR`;
    ``message`` carries free text for :attr:`ErrorKind.CUSTOM`.
    """

    def __init__(
        self,
        kind: ErrorKind,
        retailer: str = "",
        status_code: int | None = None,
        message: str = "",
    ) -> None:
        self.kind = kind
        self.retailer = retailer
        self.status_code = status_code
        self.message = message
        super().__init__(self.describe())

    def describe(self) -> str:
        """Short human-readable summary, e.g. ``server_error (HTTP 503)``."""
        text = self.kind.value
        if self.status_code is not None:
            text += f" (HTTP {self.status_code})"
        if self.message:
            text += f": {self.message}"
        return text


class InvalidSearchRequest(ValueError):
    """The caller built a request that can never be dispatched."""


class UnknownRetailerError(ValueError):
    """No registered adapter matches the requested retailer(s)."""
