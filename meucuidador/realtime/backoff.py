"""
Reconnection policy.

Exponential backoff: ``min(base * 2**attempt, cap)``. With the defaults
the scheduled attempts wait 1s, 2s, 4s, 8s, 16s, then 30s from there on.
"""

from dataclasses import dataclass
from typing import Optional

from .config import CloseCode, ReconnectConfig


@dataclass(frozen=True)
class ReconnectDecision:
    """Whether to schedule another attempt, and after how long."""
    reconnect: bool
    delay: float = 0.0
    reason: Optional[str] = None


class ReconnectPolicy:
    """Pure backoff policy driven by the attempt counter."""

    def __init__(self, config: Optional[ReconnectConfig] = None):
        self.config = config or ReconnectConfig()

    @property
    def max_attempts(self) -> int:
        return self.config.max_attempts

    def delay(self, attempt: int) -> float:
        """Backoff delay in seconds for a zero-based attempt index."""
        attempt = min(max(attempt, 0), 62)
        return min(self.config.base_delay * (2 ** attempt), self.config.max_delay)

    def decide(self, close_code: int, attempt: int, eligible: bool) -> ReconnectDecision:
        """
        Decide on reconnection after a close.

        Args:
            close_code: Close code of the socket that just ended
            attempt: Automatic attempts already made since the last
                     successful handshake (counter value before this close)
            eligible: Whether the gate is still open

        Returns:
            ReconnectDecision; ``delay`` is for attempt number ``attempt + 1``
        """
        if close_code == CloseCode.NORMAL:
            return ReconnectDecision(False, reason="normal closure")
        if not eligible:
            return ReconnectDecision(False, reason="not eligible")
        if attempt >= self.config.max_attempts:
            return ReconnectDecision(False, reason=f"max attempts ({self.config.max_attempts}) reached")
        return ReconnectDecision(True, delay=self.delay(attempt))
