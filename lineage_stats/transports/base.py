# =============================================================================
# Base Classes for Transports
# =============================================================================
# Abstract base class for all event sinks.
# =============================================================================

import logging
from abc import ABC, abstractmethod
from enum import Enum

from ..models import Event

__all__ = ["SendResult", "Transport", "NoopTransport"]

logger = logging.getLogger(__name__)


class SendResult(str, Enum):
    """Outcome of handing one event to a transport."""

    OK = "ok"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class Transport(ABC):
    """
    Base class for all transports.

    Transports must implement `send`, which delivers one event and reports
    whether delivery succeeded, may succeed on retry, or can never succeed.
    Consumers are expected to deduplicate by the event's `eventId`, as the
    sender delivers at least once.
    """

    @abstractmethod
    def send(self, event: Event) -> SendResult:
        """
        Deliver a single event.

        Args:
            event: Event to deliver

        Returns:
            SendResult.OK, SendResult.RETRYABLE or SendResult.FATAL
        """
        pass

    def close(self) -> None:
        """Release any connections or file handles."""
        pass


class NoopTransport(Transport):
    """Discards every event."""

    def send(self, event: Event) -> SendResult:
        logger.debug(f"Discarding event {event.event_id}")
        return SendResult.OK
