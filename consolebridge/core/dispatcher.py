"""The bridge's single control loop.

Console lines go out to every recipient; admin commands from Telegram go into
the multiplexer session. Both input streams and the shutdown signal are
awaited together and handled one event at a time, so sends and injections
never overlap.
"""

import asyncio
import logging
from dataclasses import dataclass

from consolebridge.core.policy import Blocked, Command, Plain, Restart, Unauthorized, classify
from consolebridge.integrations.session import InjectionError

logger = logging.getLogger(__name__)

SHUTDOWN = "shutdown"
TAIL = "tail"
INBOX = "inbox"


@dataclass(frozen=True)
class BridgeConfig:
    recipients: tuple
    allow_list: frozenset
    session_name: str = "mc"
    reserved_commands: bool = False
    restart_delay: float = 20.0
    start_command: str = ""
    stop_command: str = "stop"

    @classmethod
    def from_settings(cls, settings):
        return cls(
            recipients=tuple(settings.admin_ids),
            allow_list=frozenset(settings.admin_ids),
            session_name=settings.session_name,
            reserved_commands=settings.reserved_commands,
            restart_delay=settings.restart_delay,
            start_command=settings.start_script,
            stop_command=settings.stop_command,
        )


class Dispatcher:
    def __init__(self, config, transport, injector, lines, inbox, shutdown):
        self.config = config
        self.transport = transport
        self.injector = injector
        self.lines = lines
        self.inbox = inbox
        self.shutdown = shutdown

    async def run(self):
        """Loop until shutdown or until either stream ends; returns why it stopped."""
        waiters = {}
        try:
            while True:
                if SHUTDOWN not in waiters:
                    waiters[SHUTDOWN] = asyncio.ensure_future(self.shutdown.wait())
                if TAIL not in waiters:
                    waiters[TAIL] = asyncio.ensure_future(self.lines.get())
                if INBOX not in waiters:
                    waiters[INBOX] = asyncio.ensure_future(self.inbox.get())

                await asyncio.wait(waiters.values(), return_when=asyncio.FIRST_COMPLETED)

                # One event per pass; shutdown first, then whatever else is ready.
                if waiters[SHUTDOWN].done():
                    logger.info("shutting down...")
                    return "shutdown"

                if waiters[TAIL].done():
                    line = waiters.pop(TAIL).result()
                    if line is None:
                        logger.info("tail ended")
                        return "tail ended"
                    await self.broadcast(line)
                    continue

                msg = waiters.pop(INBOX).result()
                if msg is None:
                    logger.info("inbox ended")
                    return "inbox ended"
                await self.handle_message(msg)
        finally:
            for waiter in waiters.values():
                waiter.cancel()

    async def broadcast(self, text):
        for chat_id in self.config.recipients:
            try:
                await self.transport.send(chat_id, text)
            except Exception as e:
                logger.error("send error to %s: %s", chat_id, e)

    async def notify(self, chat_id, text):
        try:
            await self.transport.send(chat_id, text)
        except Exception as e:
            logger.error("send error to %s: %s", chat_id, e)

    async def handle_message(self, msg):
        # Zero-value updates are polling noise, not messages.
        if not msg.update_id or not msg.sender_id or not msg.text:
            return

        decision = classify(
            msg.sender_id, msg.text, self.config.allow_list, reserved=self.config.reserved_commands
        )
        who = f"@{msg.username}" if msg.username else str(msg.sender_id)

        if isinstance(decision, Unauthorized):
            logger.warning("[UNAUTHORIZED] %s: %s", who, msg.text)
        elif isinstance(decision, Plain):
            logger.info("[NOT MATCHED] %s: %s", who, msg.text)
        elif isinstance(decision, Blocked):
            logger.warning("[BLOCKED] %s tried !%s", who, decision.name)
        elif isinstance(decision, Restart):
            logger.info("[MATCHED] %s: %s", who, msg.text)
            await self.restart(msg)
        elif isinstance(decision, Command):
            logger.info("[MATCHED] %s: %s", who, msg.text)
            await self.run_command(msg.chat_id, decision.body)

    async def run_command(self, chat_id, body):
        """Inject one line; on failure tell only the requester. Returns success."""
        try:
            await self.injector.inject(self.config.session_name, body)
        except InjectionError as e:
            logger.error("inject error: %s", e)
            await self.notify(chat_id, f"Error: {e}")
            return False
        return True

    async def restart(self, msg):
        """Stop the server, wait, start it again.

        The wait holds the whole loop: lines and messages queue up behind it.
        A shutdown during the wait abandons the restart.
        """
        if not self.config.start_command:
            await self.notify(msg.chat_id, "Restart unavailable: no start script configured.")
            return

        logger.info("[restart] requested by %s", msg.sender_id)
        if not await self.run_command(msg.chat_id, self.config.stop_command):
            return
        delay = self.config.restart_delay
        await self.notify(msg.chat_id, f"Server stopping, starting again in {delay:g}s...")

        try:
            await asyncio.wait_for(self.shutdown.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        else:
            logger.info("[restart] aborted by shutdown")
            return

        if await self.run_command(msg.chat_id, self.config.start_command):
            logger.info("[restart] start command sent")
