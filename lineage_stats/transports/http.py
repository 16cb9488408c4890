# =============================================================================
# HTTP Transport
# =============================================================================
# POSTs events as JSON to a lineage endpoint (e.g., Marquez /api/v1/lineage).
# =============================================================================

import logging
from typing import Optional

import httpx

from ..models import Event
from .base import SendResult, Transport

__all__ = ["HttpTransport", "RETRYABLE_STATUS_CODES"]

logger = logging.getLogger(__name__)

# Status codes worth retrying; every other 4xx is permanent
RETRYABLE_STATUS_CODES = frozenset([408, 425, 429])


class HttpTransport(Transport):
    """
    Delivers events with an HTTP POST.

    Attributes:
        url: Endpoint receiving events
        api_key: Optional bearer token
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def send(self, event: Event) -> SendResult:
        """
        POST one event.

        Connection errors, timeouts, 5xx and 408/425/429 are retryable;
        any other non-2xx response is fatal.
        """
        try:
            response = self._client.post(
                self.url,
                json=event.to_wire(),
                headers=self._headers(),
            )
        except httpx.TransportError as exc:
            logger.warning(f"POST {self.url} failed for event {event.event_id}: {exc}")
            return SendResult.RETRYABLE

        if response.is_success:
            return SendResult.OK

        status = response.status_code
        logger.warning(f"POST {self.url} returned {status} for event {event.event_id}")
        if status >= 500 or status in RETRYABLE_STATUS_CODES:
            return SendResult.RETRYABLE
        return SendResult.FATAL

    def close(self) -> None:
        self._client.close()
