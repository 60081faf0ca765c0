"""
Notifier adapters for reminder delivery.

The scheduler only needs four operations: is_available(),
permission_state(), request_permission() and notify(). TelegramNotifier
delivers to a chat through python-telegram-bot; LogNotifier writes to the
log when no chat is configured.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Set

from telegram import Bot
from telegram.error import BadRequest, Forbidden, TelegramError

logger = logging.getLogger(__name__)


class PermissionState(Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class Notifier(ABC):
    """Platform notification facility."""

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def permission_state(self) -> PermissionState:
        ...

    @abstractmethod
    async def request_permission(self) -> PermissionState:
        ...

    @abstractmethod
    def notify(self, title: str, body: str) -> None:
        """Fire-and-forget delivery. Must not block."""
        ...


class LogNotifier(Notifier):
    """Writes reminders to the log. Always available and granted."""

    def is_available(self) -> bool:
        return True

    def permission_state(self) -> PermissionState:
        return PermissionState.GRANTED

    async def request_permission(self) -> PermissionState:
        return PermissionState.GRANTED

    def notify(self, title: str, body: str) -> None:
        logger.info(f"🔔 {title}: {body}")


class TelegramNotifier(Notifier):
    """
    Sends reminders to one Telegram chat.

    Permission starts undetermined; request_permission() probes the chat
    with get_chat() and settles it. Messages are sent as background tasks
    on the running event loop.
    """

    def __init__(self, bot: Optional[Bot], chat_id: Optional[str]):
        self.bot = bot
        self.chat_id = chat_id
        self._permission = PermissionState.UNDETERMINED
        # Keep references so in-flight sends aren't garbage collected
        self._inflight: Set[asyncio.Task] = set()

    def is_available(self) -> bool:
        return self.bot is not None and bool(self.chat_id)

    def permission_state(self) -> PermissionState:
        return self._permission

    async def request_permission(self) -> PermissionState:
        if not self.is_available():
            return PermissionState.DENIED
        try:
            await self.bot.get_chat(self.chat_id)
        except (Forbidden, BadRequest) as e:
            logger.warning(f"Chat {self.chat_id} refused notifications: {e}")
            self._permission = PermissionState.DENIED
        except TelegramError as e:
            logger.warning(f"Could not reach chat {self.chat_id}, permission undetermined: {e}")
            self._permission = PermissionState.UNDETERMINED
        else:
            self._permission = PermissionState.GRANTED
        return self._permission

    def notify(self, title: str, body: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"No running event loop, dropping notification '{title}'")
            return
        task = loop.create_task(
            self.bot.send_message(chat_id=self.chat_id, text=f"🔔 {title}\n{body}")
        )
        self._inflight.add(task)
        task.add_done_callback(self._on_sent)

    def _on_sent(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to send notification to {self.chat_id}: {error}")
