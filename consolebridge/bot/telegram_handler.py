import asyncio
import logging

from telegram import Bot
from telegram.constants import MessageLimit
from telegram.error import Conflict, Forbidden, InvalidToken, NetworkError, RetryAfter, TelegramError

from consolebridge.core.streams import BufferedStream, InboundMessage

logger = logging.getLogger(__name__)

INBOX_BUFFER = 100
# Polling errors after which another get_updates call cannot succeed
FATAL_POLL_ERRORS = (InvalidToken, Forbidden, Conflict)


def build_bot(settings):
    """Bot client for the configured token and (optionally custom) API endpoint."""
    if settings.custom_backend:
        logger.info("Custom backend: %s", settings.api_backend)
    return Bot(token=settings.telegram_token, base_url=settings.base_url)


def to_inbound(update):
    """Update -> InboundMessage, or None for updates that carry no message."""
    msg = update.message
    if msg is None:
        return None
    user = msg.from_user
    return InboundMessage(
        update_id=update.update_id,
        sender_id=user.id if user else 0,
        chat_id=msg.chat_id,
        text=msg.text or "",
        username=(user.username or user.full_name) if user else "",
    )


def _seconds(value):
    # RetryAfter.retry_after is an int or a timedelta depending on the PTB release
    return value.total_seconds() if hasattr(value, "total_seconds") else float(value)


class TelegramInbox:
    """Long-polls getUpdates and feeds InboundMessages into a bounded stream."""

    def __init__(self, bot, poll_timeout=60, maxsize=INBOX_BUFFER, error_pause=1.0):
        self.bot = bot
        self.poll_timeout = poll_timeout
        self.error_pause = error_pause
        self.messages = BufferedStream(maxsize)
        self._task = None

    def start(self):
        self._task = asyncio.create_task(self._poll(), name="telegram-inbox")

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error("[inbox] poller failed: %s", e)
            self._task = None
        self.messages.close()

    async def get(self):
        return await self.messages.get()

    def __aiter__(self):
        return self.messages.__aiter__()

    async def _poll(self):
        offset = None
        try:
            while True:
                try:
                    updates = await self.bot.get_updates(
                        offset=offset,
                        timeout=self.poll_timeout,
                        allowed_updates=["message"],
                    )
                except RetryAfter as e:
                    logger.warning("[inbox] flood control, retrying in %ss", e.retry_after)
                    await asyncio.sleep(_seconds(e.retry_after))
                    continue
                except FATAL_POLL_ERRORS as e:
                    logger.error("[inbox] polling stopped: %s", e)
                    return
                except NetworkError as e:
                    logger.warning("[inbox] poll error: %s", e)
                    await asyncio.sleep(self.error_pause)
                    continue
                except TelegramError as e:
                    logger.warning("[inbox] unexpected poll error: %s", e)
                    await asyncio.sleep(self.error_pause)
                    continue

                for update in updates:
                    offset = update.update_id + 1
                    msg = to_inbound(update)
                    if msg is not None:
                        await self.messages.put(msg)
        finally:
            self.messages.close()


class TelegramTransport:
    """Outbound side: plain text messages to a chat id."""

    def __init__(self, bot):
        self.bot = bot

    async def send(self, chat_id, text):
        if len(text) > MessageLimit.MAX_TEXT_LENGTH:
            text = text[: MessageLimit.MAX_TEXT_LENGTH - 1] + "…"
        await self.bot.send_message(chat_id=chat_id, text=text)
