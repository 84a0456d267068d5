"""Exceptions raised inside the real-time client."""


class RealtimeError(Exception):
    """Base class for real-time client errors."""


class InvalidCredentialError(RealtimeError):
    """The bearer token could not be decoded."""


class CredentialExpiredError(RealtimeError):
    """The bearer token's ``exp`` is in the past."""

    def __init__(self, exp: float):
        super().__init__(f"Token expired at {exp}")
        self.exp = exp


class FrameDecodeError(RealtimeError):
    """An inbound frame was not a JSON object with a ``kind``."""
