"""Telegram Bot API client with a per-instance send rate limit.

Consecutive ``send`` calls through one client are spaced at least
``RATE_LIMIT_INTERVAL`` apart. The limit is local to the instance; it does
not coordinate with other clients or processes. Failed calls are not retried.
"""

import asyncio
import logging
import time
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from notifier.logger import with_fields

TELEGRAM_API_URL = "https://api.telegram.org"
MESSAGES_PER_SECOND = 30
RATE_LIMIT_INTERVAL = 1 / MESSAGES_PER_SECOND  # seconds

ModelT = TypeVar("ModelT", bound=BaseModel)


class DeliveryError(Exception):
    """The Telegram API rejected a call or could not be reached."""

    def __init__(self, message: str, description: str | None = None):
        super().__init__(message)
        self.description = description


class Chat(BaseModel):
    id: int
    type: str


class SentMessage(BaseModel):
    message_id: int
    date: int
    chat: Chat
    text: str | None = None


class BotIdentity(BaseModel):
    id: int
    is_bot: bool
    first_name: str
    username: str | None = None


class TelegramClient:
    def __init__(
        self,
        bot_token: str,
        logger: logging.Logger,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self._base_url = f"{TELEGRAM_API_URL}/bot{bot_token}"
        self._logger = logger
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._last_send: float | None = None  # monotonic timestamp
        self._rate_lock = asyncio.Lock()

    async def _wait_for_rate_limit(self) -> None:
        async with self._rate_lock:
            if self._last_send is not None:
                remaining = RATE_LIMIT_INTERVAL - (time.monotonic() - self._last_send)
                while remaining > 0:
                    await asyncio.sleep(remaining)
                    remaining = RATE_LIMIT_INTERVAL - (
                        time.monotonic() - self._last_send
                    )
            self._last_send = time.monotonic()

    async def _call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        url = f"{self._base_url}/{method}"
        try:
            if payload is None:
                resp = await self._client.get(url)
            else:
                resp = await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise DeliveryError(
                f"Telegram API request failed: {type(e).__name__}: {e}"
            ) from e

        try:
            data = resp.json()
        except ValueError as e:
            raise DeliveryError(
                f"Telegram API returned a non-JSON response (HTTP {resp.status_code})"
            ) from e

        if not data.get("ok"):
            description = data.get("description")
            raise DeliveryError(
                f"Telegram API error: {description or 'Unknown error'}",
                description=description,
            )
        return data.get("result")

    def _parse_result(self, model: type[ModelT], result: Any) -> ModelT:
        try:
            return model.model_validate(result)
        except ValidationError as e:
            raise DeliveryError(
                f"Telegram API returned an unexpected result: {e.error_count()} "
                "validation error(s)"
            ) from e

    async def send(
        self, chat_id: str, text: str, parse_mode: str = "HTML"
    ) -> SentMessage:
        await self._wait_for_rate_limit()

        self._logger.debug(
            "Sending Telegram message",
            extra=with_fields(
                chat_id=chat_id, text_length=len(text), parse_mode=parse_mode
            ),
        )
        try:
            result = await self._call(
                "sendMessage",
                {
                    "chat_id": chat_id,
                    "text": text,
                    "parse_mode": parse_mode,
                    "disable_web_page_preview": False,
                    "disable_notification": False,
                },
            )
            message = self._parse_result(SentMessage, result)
        except DeliveryError as e:
            self._logger.error(
                f"Failed to send Telegram message: {e}",
                extra=with_fields(chat_id=chat_id, text_length=len(text)),
            )
            raise

        self._logger.info(
            "Telegram message sent",
            extra=with_fields(chat_id=chat_id, message_id=message.message_id),
        )
        return message

    async def get_identity(self) -> BotIdentity:
        identity = self._parse_result(BotIdentity, await self._call("getMe"))
        self._logger.info(
            "Bot information retrieved",
            extra=with_fields(bot_id=identity.id, username=identity.username),
        )
        return identity

    async def test_connection(self) -> bool:
        """Call ``getMe``; report the outcome instead of raising."""
        try:
            await self.get_identity()
        except DeliveryError as e:
            self._logger.error(f"Telegram bot connection test failed: {e}")
            return False
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
