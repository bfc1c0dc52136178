"""Keystroke injection into a running screen/tmux session."""

import asyncio
import logging

logger = logging.getLogger(__name__)

LINE_TERMINATOR = "\r"


class InjectionError(Exception):
    """The multiplexer refused, failed or timed out delivering a line."""


async def _run(argv, timeout):
    """Run one multiplexer command; return its combined output or raise InjectionError."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        raise InjectionError(f"{argv[0]} failed to start: {e}") from e

    try:
        out, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        out, _ = await proc.communicate()
        raise InjectionError(
            f"{argv[0]} timed out after {timeout:g}s; output: {_decode(out)}"
        ) from None

    if proc.returncode != 0:
        raise InjectionError(
            f"{argv[0]} exited with status {proc.returncode}; output: {_decode(out)}"
        )
    return _decode(out)


def _decode(out):
    return (out or b"").decode("utf-8", errors="replace").strip()


class ScreenInjector:
    """`screen -S <session> -p <pane> -X stuff <text>\\r`"""

    def __init__(self, pane="0", timeout=5.0):
        self.pane = str(pane)
        self.timeout = timeout

    async def inject(self, session_name, command_text):
        argv = [
            "screen",
            "-S", session_name,
            "-p", self.pane,
            "-X", "stuff", command_text + LINE_TERMINATOR,
        ]
        await _run(argv, self.timeout)
        logger.debug("[inject] screen %s <- %r", session_name, command_text)


class TmuxInjector:
    """Same contract as ScreenInjector, delivered with `tmux send-keys`."""

    def __init__(self, pane="0", timeout=5.0):
        self.pane = str(pane)
        self.timeout = timeout

    async def inject(self, session_name, command_text):
        target = f"{session_name}:{self.pane}"
        # -l sends the text literally so words like "Enter" are not key names
        if command_text:
            await _run(["tmux", "send-keys", "-t", target, "-l", command_text], self.timeout)
        await _run(["tmux", "send-keys", "-t", target, "Enter"], self.timeout)
        logger.debug("[inject] tmux %s <- %r", target, command_text)


def build_injector(settings):
    if settings.injector == "tmux":
        return TmuxInjector(pane=settings.session_pane, timeout=settings.inject_timeout)
    return ScreenInjector(pane=settings.session_pane, timeout=settings.inject_timeout)
