"""Notification webhook client with exponential backoff retry logic"""

import asyncio
import logging
from typing import Iterable

import httpx

from installment_engine.config import settings
from installment_engine.domain.events import DomainEvent
from installment_engine.domain.exceptions import NotificationDeliveryError
from installment_engine.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)


class NotificationClient:
    """Client handing domain events to the external notification dispatcher"""

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base

    async def send_event(self, event: DomainEvent) -> None:
        """
        Deliver one event with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base^attempt)
        - Retries on HTTP errors and network failures
        - Tracks latency histogram and failure counter

        Raises:
            NotificationDeliveryError: after max_retries failed attempts
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=event.to_dict())
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notification_failure_counter.inc()

                    if attempt >= self.max_retries:
                        raise NotificationDeliveryError(
                            f"Giving up on {event.name} for {event.entity_id} after {attempt} attempts"
                        ) from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

    async def publish(self, events: Iterable[DomainEvent]) -> None:
        """Deliver events in order; a failed event is logged and the rest still go out"""
        for event in events:
            try:
                await self.send_event(event)
            except NotificationDeliveryError as e:
                logging.error(str(e), extra={"event": event.name, "entity_id": event.entity_id})
