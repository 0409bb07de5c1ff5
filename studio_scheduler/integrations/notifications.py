"""
Notification dispatcher.
Delivers schedule proposals and waitlist offers by invoking the studio's
serverless functions, which own templating and the email provider.
"""

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx

from studio_scheduler.config import settings
from studio_scheduler.domain import ExternalServiceError
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 2
BACKOFF_FACTOR = 0.5
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class NotificationKind(StrEnum):
    SCHEDULE_PROPOSAL = "schedule_proposal"
    WAITLIST_OFFER = "waitlist_offer"


FUNCTION_BY_KIND: dict[NotificationKind, str] = {
    NotificationKind.SCHEDULE_PROPOSAL: "booking-notification",
    NotificationKind.WAITLIST_OFFER: "send-waitlist-offer",
}


@dataclass(slots=True)
class SendNotification:
    """A notification planned by a transition, dispatched after commit."""

    kind: NotificationKind
    recipient: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class NotificationResult:
    kind: NotificationKind
    recipient: str
    success: bool
    response_data: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher:
    """
    Thin client over the notification functions.

    ``send`` returns a successful NotificationResult or raises
    ExternalServiceError; it never touches scheduling state.
    """

    def __init__(
        self,
        base_url: str | None = None,
        service_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = base_url or settings.functions_base_url()
        self._service_key = service_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self._timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
        }

    async def _post_with_retry(self, url: str, body: dict[str, Any]) -> httpx.Response:
        client = self._get_client()
        for attempt in range(1, MAX_RETRIES + 2):
            try:
                response = await client.post(url, json=body, headers=self._get_headers())
                if response.status_code in RETRY_STATUS_CODES and attempt <= MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Notification function retrying",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt > MAX_RETRIES:
                    raise
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug("Notification request error, retrying", attempt=attempt, error=str(e))
                await asyncio.sleep(backoff)
        raise RuntimeError("Notification retry loop exhausted")

    async def send(
        self, kind: NotificationKind, recipient: str, payload: dict[str, Any]
    ) -> NotificationResult:
        """
        Dispatch one notification.

        Raises:
            ExternalServiceError: dispatcher not configured, transport failure
                or a non-2xx response from the function
        """
        if not self._base_url:
            raise ExternalServiceError(
                "Notification functions are not configured (SUPABASE_URL missing)",
                error_code="notifications_not_configured",
            )

        function_name = FUNCTION_BY_KIND[kind]
        url = f"{self._base_url}/{function_name}"
        body = {"type": str(kind), "to": recipient, **payload}

        try:
            response = await self._post_with_retry(url, body)
        except httpx.RequestError as e:
            logger.error("Notification transport failure", kind=str(kind), error=str(e))
            raise ExternalServiceError(
                f"Could not reach {function_name}: {e}", error_code="notification_transport"
            ) from e

        if not response.is_success:
            logger.error(
                "Notification function rejected request",
                kind=str(kind),
                status_code=response.status_code,
                body=response.text[:300],
            )
            raise ExternalServiceError(
                f"{function_name} returned HTTP {response.status_code}",
                error_code="notification_rejected",
            )

        try:
            data = response.json() if response.text else {}
        except ValueError:
            data = {}

        logger.info("Notification dispatched", kind=str(kind), function=function_name)
        return NotificationResult(kind=kind, recipient=recipient, success=True, response_data=data)


notification_dispatcher = NotificationDispatcher()
