"""Failures raised by the scavenge loop itself.

Broker failures (connect, channel creation, consume, ack/nack) are not wrapped:
they reach the caller as the exception the broker client raised.
"""
from __future__ import annotations


class ScavengeError(Exception):
    """Base for failures that originate in the loop rather than the broker."""


class InvalidDeliveryError(ScavengeError):
    """The consume callback was invoked without a usable delivery."""


class IdleTimeoutError(ScavengeError):
    """No delivery arrived within the idle window."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"no message received in {timeout_seconds:g}s")
