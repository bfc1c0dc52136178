import asyncio
import unittest
from types import SimpleNamespace

from telegram.constants import MessageLimit
from telegram.error import BadRequest, InvalidToken, NetworkError, RetryAfter, TelegramError

from consolebridge.bot.telegram_handler import TelegramInbox, TelegramTransport, to_inbound
from consolebridge.core.streams import InboundMessage


def update(update_id, text="!list", user_id=1971451950, chat_id=1971451950, username="steve"):
    user = SimpleNamespace(id=user_id, username=username, full_name="Steve")
    msg = SimpleNamespace(from_user=user, chat_id=chat_id, text=text)
    return SimpleNamespace(update_id=update_id, message=msg)


class FakeBot:
    def __init__(self, results=()):
        self.results = list(results)
        self.offsets = []
        self.sent = []

    async def get_updates(self, offset=None, timeout=None, allowed_updates=None):
        self.offsets.append(offset)
        result = self.results.pop(0) if self.results else InvalidToken()
        if isinstance(result, Exception):
            raise result
        return result

    async def send_message(self, chat_id, text):
        self.sent.append((chat_id, text))


class TestToInbound(unittest.TestCase):
    def test_maps_sender_chat_and_text(self) -> None:
        got = to_inbound(update(5, text="!say hi", user_id=42, chat_id=-1001))
        self.assertEqual(got, InboundMessage(5, 42, -1001, "!say hi", "steve"))

    def test_update_without_message(self) -> None:
        self.assertIsNone(to_inbound(SimpleNamespace(update_id=9, message=None)))

    def test_non_text_message_has_empty_text(self) -> None:
        u = update(6)
        u.message.text = None
        self.assertEqual(to_inbound(u).text, "")

    def test_falls_back_to_full_name(self) -> None:
        self.assertEqual(to_inbound(update(7, username=None)).username, "Steve")


class TestTelegramInbox(unittest.IsolatedAsyncioTestCase):
    async def test_polls_past_transient_errors_and_advances_offset(self) -> None:
        bot = FakeBot([
            NetworkError("connection reset"),
            [update(1, "!list"), SimpleNamespace(update_id=2, message=None)],
            RetryAfter(0),
            [update(3, "hello")],
        ])
        inbox = TelegramInbox(bot, poll_timeout=60, error_pause=0)
        inbox.start()

        got = []
        async for msg in inbox:
            got.append(msg)
        await inbox.stop()

        self.assertEqual([(m.update_id, m.text) for m in got], [(1, "!list"), (3, "hello")])
        self.assertEqual(bot.offsets, [None, None, 3, 3, 4])

    async def test_other_telegram_errors_keep_polling(self) -> None:
        bot = FakeBot([
            TelegramError("Invalid server response"),
            BadRequest("Bad Request: wrong offset"),
            [update(8, "!list")],
        ])
        inbox = TelegramInbox(bot, error_pause=0)
        with self.assertLogs("consolebridge.bot.telegram_handler", level="WARNING"):
            inbox.start()
            msg = await asyncio.wait_for(inbox.get(), timeout=5)
        self.assertEqual((msg.update_id, msg.text), (8, "!list"))
        self.assertEqual(bot.offsets[:3], [None, None, None])
        await inbox.stop()

    async def test_stop_after_poller_crash_does_not_raise(self) -> None:
        class BrokenBot(FakeBot):
            async def get_updates(self, **kwargs):
                raise RuntimeError("boom")

        inbox = TelegramInbox(BrokenBot())
        inbox.start()
        self.assertIsNone(await asyncio.wait_for(inbox.get(), timeout=5))
        with self.assertLogs("consolebridge.bot.telegram_handler", level="ERROR"):
            await asyncio.wait_for(inbox.stop(), timeout=1)

    async def test_fatal_error_ends_stream(self) -> None:
        inbox = TelegramInbox(FakeBot([InvalidToken()]), error_pause=0)
        with self.assertLogs("consolebridge.bot.telegram_handler", level="ERROR"):
            inbox.start()
            self.assertIsNone(await asyncio.wait_for(inbox.get(), timeout=5))

    async def test_stop_ends_stream(self) -> None:
        class HangingBot(FakeBot):
            async def get_updates(self, **kwargs):
                await asyncio.sleep(60)

        inbox = TelegramInbox(HangingBot())
        inbox.start()
        await asyncio.sleep(0)
        await asyncio.wait_for(inbox.stop(), timeout=1)
        self.assertIsNone(await asyncio.wait_for(inbox.get(), timeout=1))


class TestTelegramTransport(unittest.IsolatedAsyncioTestCase):
    async def test_sends_plain_text(self) -> None:
        bot = FakeBot()
        await TelegramTransport(bot).send(42, "<steve> hi")
        self.assertEqual(bot.sent, [(42, "<steve> hi")])

    async def test_overlong_line_is_cut_to_message_limit(self) -> None:
        bot = FakeBot()
        await TelegramTransport(bot).send(42, "x" * 5000)
        text = bot.sent[0][1]
        self.assertEqual(len(text), MessageLimit.MAX_TEXT_LENGTH)
        self.assertTrue(text.endswith("…"))


if __name__ == "__main__":
    unittest.main()
