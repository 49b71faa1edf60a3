"""Notification pipeline: parse, deduplicate, format and deliver.

Every repository-scoped event is marked in the dedup cache, but only push
events are turned into chat messages. Parse and delivery failures are logged
here and re-raised; the HTTP layer runs this pipeline after the webhook has
already been acknowledged.
"""

import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from notifier.dedup import CacheStats, EventCache
from notifier.formatter import format_message
from notifier.logger import with_fields
from notifier.parser import parse_event
from notifier.telegram import DeliveryError, TelegramClient

TEST_MESSAGE = "🤖 <b>Test Message</b>\nGit-to-Telegram notifier is working correctly!"
DELIVERED_EVENT_TYPES = frozenset({"push"})


class ProcessingOutcome(str, Enum):
    PING = "ping"
    NO_REPOSITORY = "no_repository"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    EMPTY_MESSAGE = "empty_message"
    DELIVERED = "delivered"


class NotificationService:
    def __init__(
        self,
        chat_id: str,
        telegram: TelegramClient,
        cache: EventCache,
        logger: logging.Logger,
    ):
        self._chat_id = chat_id
        self._telegram = telegram
        self._cache = cache
        self._logger = logger

    def start(self) -> None:
        self._cache.start()

    async def process_event(
        self, event_type: str, delivery_id: str, payload: Any
    ) -> ProcessingOutcome:
        repository = payload.get("repository") if isinstance(payload, dict) else None
        repository_name = (
            repository.get("full_name") if isinstance(repository, dict) else None
        )
        context = with_fields(
            event_type=event_type, delivery_id=delivery_id, repository=repository_name
        )
        self._logger.info("Processing GitHub event", extra=context)

        if event_type == "ping":
            self._logger.info("Ping event received - webhook is working", extra=context)
            return ProcessingOutcome.PING

        if not repository:
            self._logger.warning(
                "Event payload missing repository property",
                extra=with_fields(
                    event_type=event_type,
                    delivery_id=delivery_id,
                    payload_type=type(payload).__name__,
                    payload_keys=sorted(payload) if isinstance(payload, dict) else [],
                ),
            )
            return ProcessingOutcome.NO_REPOSITORY

        try:
            event = parse_event(event_type, delivery_id, payload)
        except ValidationError as e:
            self._logger.error(
                f"Malformed {event_type} payload: {e.error_count()} validation error(s)",
                extra=context,
            )
            raise

        if self._cache.check_and_mark_processed(event):
            self._logger.info(
                "Duplicate event detected, skipping notification", extra=context
            )
            return ProcessingOutcome.DUPLICATE

        if event_type not in DELIVERED_EVENT_TYPES:
            self._logger.debug(
                "Event type not configured for delivery", extra=context
            )
            return ProcessingOutcome.IGNORED

        message = format_message(event)
        if not message:
            self._logger.debug(
                "Nothing to notify for this push (branch created or deleted)",
                extra=context,
            )
            return ProcessingOutcome.EMPTY_MESSAGE

        try:
            sent = await self._telegram.send(self._chat_id, message, "HTML")
        except DeliveryError:
            self._logger.error(
                "Failed to deliver Telegram notification",
                extra=with_fields(
                    event_type=event.event_type,
                    event_id=event.event_id,
                    repository=event.repository,
                    chat_id=self._chat_id,
                ),
            )
            raise

        self._logger.info(
            "GitHub event delivered",
            extra=with_fields(
                event_type=event.event_type,
                event_id=event.event_id,
                repository=event.repository,
                message_id=sent.message_id,
            ),
        )
        return ProcessingOutcome.DELIVERED

    async def test_telegram_connection(self) -> bool:
        connected = await self._telegram.test_connection()
        if connected:
            self._logger.info("Telegram connection test successful")
        else:
            self._logger.error("Telegram connection test failed")
        return connected

    async def send_test_message(self) -> None:
        await self._telegram.send(self._chat_id, TEST_MESSAGE, "HTML")
        self._logger.info("Test message sent")

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def destroy(self) -> None:
        self._cache.destroy()

    async def shutdown(self) -> None:
        await self._cache.stop()
