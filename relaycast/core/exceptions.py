"""
Custom exception classes for relaycast.
"""


class RelaycastError(Exception):
    """Base exception for relaycast."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{super().__str__()} - {self.details}"
        return super().__str__()


class ProtocolError(RelaycastError):
    """Raised when a wire message cannot be decoded."""
    pass


class ConnectionError(RelaycastError):
    """Raised when the signaling transport cannot be used."""
    pass


class NegotiationError(RelaycastError):
    """Raised when the peer transport rejects a negotiation step."""
    pass


class ConfigError(RelaycastError):
    """Raised when configuration values are invalid."""
    pass
