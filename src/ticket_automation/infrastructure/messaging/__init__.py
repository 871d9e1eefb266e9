"""
Messaging Gateway
=================

Outbound WhatsApp text messages through the WhatsApp Cloud (Graph) API.

Handles:
- Circuit breaker to prevent cascade failures
- Exponential backoff retry
- Timeout handling
"""

import asyncio
import re
import time
from typing import Any, Dict, Optional

import httpx

from ticket_automation.core import IMessagingGateway
from ticket_automation.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


def format_phone_number(phone: str) -> str:
    """WhatsApp expects digits only: no '+', spaces, dashes or brackets."""
    return re.sub(r"[\s+()\-]", "", phone)


class WhatsAppGateway(IMessagingGateway):
    """
    WhatsApp Cloud API client.

    When no phone number ID or access token is configured every send is
    skipped and reported as not delivered.
    """

    def __init__(
        self,
        phone_number_id: Optional[str],
        access_token: Optional[str],
        api_version: str = "v21.0",
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._phone_number_id = phone_number_id
        self._access_token = access_token
        self._api_version = api_version
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._http_client = http_client
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)

    @property
    def is_configured(self) -> bool:
        return bool(self._phone_number_id and self._access_token)

    @property
    def messages_url(self) -> str:
        return f"{GRAPH_API_BASE}/{self._api_version}/{self._phone_number_id}/messages"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    @staticmethod
    def _build_payload(phone: str, message: str) -> Dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": format_phone_number(phone),
            "type": "text",
            "text": {"preview_url": False, "body": message},
        }

    async def send_text(self, phone: str, message: str) -> bool:
        """
        Send a text message.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.is_configured:
            logger.debug("WhatsApp not configured, skipping message")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning("Circuit breaker open, skipping WhatsApp message", extra={"phone": phone})
            return False

        payload = self._build_payload(phone, message)
        headers = {"Authorization": f"Bearer {self._access_token}"}

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self.messages_url, json=payload, headers=headers)

                if response.status_code in (200, 201):
                    self._circuit_breaker.record_success()
                    logger.info("WhatsApp message sent", extra={"phone": phone})
                    return True

                logger.warning(
                    "WhatsApp API returned error status",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
                # Client errors (bad number, template rules) will not succeed on retry
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    break

            except httpx.HTTPError as e:
                logger.error(
                    "WhatsApp message failed",
                    extra={"error": str(e), "attempt": attempt + 1, "phone": phone}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "WhatsAppGateway",
    "format_phone_number",
]
