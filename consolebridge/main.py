import asyncio
import logging
import signal
import sys

from telegram.error import TelegramError

from consolebridge.bot.telegram_handler import TelegramInbox, TelegramTransport, build_bot
from consolebridge.config import ConfigError, load_settings
from consolebridge.core.dispatcher import BridgeConfig, Dispatcher
from consolebridge.integrations.log_tail import LogTail
from consolebridge.integrations.session import build_injector

logger = logging.getLogger("consolebridge")

SHUTDOWN_WINDOW = 5.0
SIGNALS = (signal.SIGINT, signal.SIGTERM)


def setup_logging(level):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every getUpdates round trip at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def run(settings):
    """Start both sources, run the dispatcher, and tear everything down. Returns an exit code."""
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in SIGNALS:
        loop.add_signal_handler(sig, shutdown.set)
    try:
        return await _bridge(settings, shutdown)
    finally:
        for sig in SIGNALS:
            loop.remove_signal_handler(sig)


async def _bridge(settings, shutdown):
    tail = LogTail(settings.log_path)
    try:
        await tail.start()
    except FileNotFoundError as e:
        logger.error("ERROR: %s", e)
        return 1

    bot = build_bot(settings)
    try:
        await bot.initialize()
    except TelegramError as e:
        logger.error("ERROR: Telegram login failed: %s", e)
        await tail.stop()
        return 1
    logger.info("Authorized on account %s", bot.username)

    inbox = TelegramInbox(bot, poll_timeout=settings.poll_timeout)
    inbox.start()

    dispatcher = Dispatcher(
        BridgeConfig.from_settings(settings),
        TelegramTransport(bot),
        build_injector(settings),
        tail,
        inbox,
        shutdown,
    )
    logger.info(
        "Bridge running: %s -> %d recipient(s), commands -> %s session %r",
        settings.log_path, len(settings.admin_ids), settings.injector, settings.session_name,
    )
    try:
        reason = await dispatcher.run()
    finally:
        try:
            await asyncio.wait_for(
                asyncio.gather(tail.stop(), inbox.stop()), timeout=SHUTDOWN_WINDOW
            )
        except asyncio.TimeoutError:
            logger.warning("sources did not stop within %ss", SHUTDOWN_WINDOW)
        finally:
            await bot.shutdown()

    return 0 if reason == "shutdown" else 1


def main():
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings.log_level)
    logger.info("Starting consolebridge...")
    sys.exit(asyncio.run(run(settings)))


if __name__ == "__main__":
    main()
