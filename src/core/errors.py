"""Error taxonomy shared by the core and adapters.

Only configuration errors and adapter readiness timeouts are run-level
failures. Everything else is local to one channel, one message, or one task.
"""

from __future__ import annotations


class VacuumerError(Exception):
    """Base class for all errors raised by vacuumer."""


class ConfigurationError(VacuumerError):
    """Invalid or missing monitoring policy; the pipeline must not start."""


class AdapterNotReady(VacuumerError):
    """The message source did not become ready within the startup bound."""


class ChannelUnavailable(VacuumerError):
    """A channel cannot be resolved or read."""

    def __init__(self, channel_id: str, detail: str = "") -> None:
        self.channel_id = channel_id
        self.detail = detail
        message = f"Channel not accessible: {channel_id}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)


class DeliveryError(VacuumerError):
    """Sending a message to a chat or user failed."""

    def __init__(self, target_id: str, detail: str) -> None:
        self.target_id = target_id
        self.detail = detail
        super().__init__(f"Delivery to {target_id} failed: {detail}")


class LookupFailure(VacuumerError):
    """Sender or channel metadata could not be resolved."""
