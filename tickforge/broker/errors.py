"""Exceptions raised by the Deriv WebSocket client."""


class DerivError(Exception):
    """Base class for all client errors."""


class DerivAPIError(DerivError):
    """The API answered a request with an ``error`` object."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message

    @classmethod
    def from_payload(cls, error: dict) -> "DerivAPIError":
        return cls(
            code=str(error.get("code", "UnknownError")),
            message=str(error.get("message", "")),
        )


class DerivConnectionError(DerivError, ConnectionError):
    """The socket is not open, or dropped while a request was in flight."""


class DerivTimeoutError(DerivError, TimeoutError):
    """No response arrived for a request within the configured timeout."""
