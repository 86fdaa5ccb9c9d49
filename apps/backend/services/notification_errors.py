"""Error types for outbox processing and notification delivery."""
from __future__ import annotations


class DeliveryError(Exception):
    """Handler failure; the processor turns it into a retry or dead-letter."""

    def __init__(self, code: str, detail: str = "") -> None:
        super().__init__(detail or code)
        self.code = code
        self.detail = detail or code

    def __str__(self) -> str:
        if self.detail and self.detail != self.code:
            return f"{self.code}: {self.detail}"
        return self.code


class TransientDeliveryError(DeliveryError):
    """Adapter unreachable, rate limited or timed out."""


class InvalidPayloadError(DeliveryError):
    """Payload does not match the shape registered for its event type."""


class SlackApiError(TransientDeliveryError):
    pass


class EmailDeliveryError(TransientDeliveryError):
    pass


class ChannelNotConfigured(Exception):
    """Raised by a channel's send when it has no credentials; callers skip that channel."""

    def __init__(self, channel: str) -> None:
        super().__init__(f"{channel}_not_configured")
        self.channel = channel


class OutboxStoreError(Exception):
    """Outbox table unreachable; aborts the whole invocation."""
