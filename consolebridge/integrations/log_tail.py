"""Follow a growing log file like `tail -F -n0`, as an asyncio stream of lines.

A watchdog observer wakes the reader when the file's directory changes; the
reader also re-checks every ``poll_interval`` seconds so a missed event only
delays delivery. Truncation and replacement (log rotation) reopen the file
from the start.
"""

import asyncio
import contextlib
import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from consolebridge.core.streams import BufferedStream

logger = logging.getLogger(__name__)

DEFAULT_BUFFER = 256
# Lines read before handing the loop back to the dispatcher during a burst
YIELD_EVERY = 64


class _WakeHandler(FileSystemEventHandler):
    """Runs on the observer thread; pokes the reader on the event loop."""

    def __init__(self, path, loop, wake):
        self.path = os.path.abspath(path)
        self.loop = loop
        self.wake = wake

    def on_any_event(self, event):
        paths = (event.src_path, getattr(event, "dest_path", ""))
        if any(p and os.path.abspath(os.fsdecode(p)) == self.path for p in paths):
            self.loop.call_soon_threadsafe(self.wake.set)


class LogTail:
    def __init__(self, path, maxsize=DEFAULT_BUFFER, poll_interval=1.0):
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.lines = BufferedStream(maxsize)
        self._wake = asyncio.Event()
        self._file = None
        self._inode = None
        self._pending = b""
        self._observer = None
        self._task = None

    async def start(self):
        """Open at end of file and start following. Raises FileNotFoundError if missing."""
        if not self.path.is_file():
            raise FileNotFoundError(f"log file not found: {self.path}")
        self._open(seek_end=True)

        loop = asyncio.get_running_loop()
        self._observer = Observer()
        self._observer.schedule(
            _WakeHandler(self.path, loop, self._wake), str(self.path.parent), recursive=False
        )
        self._observer.start()
        self._task = asyncio.create_task(self._follow(), name="log-tail")
        logger.info("[tail] following %s", self.path)

    async def stop(self):
        """Stop reading, release the file and observer, end the stream. Idempotent."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 2)
            self._observer = None
        self._finish()

    async def get(self):
        """Next line, or None once the stream has ended and the buffer is drained."""
        return await self.lines.get()

    def __aiter__(self):
        return self.lines.__aiter__()

    # --- reader side -----------------------------------------------------

    def _open(self, seek_end):
        self._file = open(self.path, "rb")
        if seek_end:
            self._file.seek(0, os.SEEK_END)
        self._inode = os.fstat(self._file.fileno()).st_ino
        self._pending = b""

    def _finish(self):
        if self._file is not None:
            self._file.close()
            self._file = None
        self.lines.close()

    async def _follow(self):
        try:
            while True:
                self._wake.clear()
                await self._drain()
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._wake.wait(), self.poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[tail] reader crashed; ending stream")
            self._finish()

    async def _drain(self):
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            # Rotated away and not recreated yet: keep draining the old handle.
            await self._read_available()
            return

        if st.st_ino != self._inode:
            await self._read_available()
            logger.info("[tail] %s was replaced, reopening", self.path)
            self._file.close()
            self._open(seek_end=False)
        elif st.st_size < self._file.tell():
            logger.info("[tail] %s was truncated, reading from start", self.path)
            self._file.seek(0)
            self._pending = b""

        await self._read_available()

    async def _read_available(self):
        # Reads are plain blocking reads of a local file; only bursts need yielding.
        count = 0
        while True:
            try:
                chunk = self._file.readline()
            except OSError as e:
                logger.warning("[tail] read error: %s", e)
                return
            if not chunk:
                return
            if not chunk.endswith(b"\n"):
                # Writer is mid-line; keep the fragment for the next pass.
                self._pending += chunk
                return

            raw, self._pending = self._pending + chunk, b""
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                logger.warning("[tail] skipping undecodable line: %s", e)
                continue
            await self.lines.put(line.rstrip("\n").rstrip("\r"))
            count += 1
            if count % YIELD_EVERY == 0:
                await asyncio.sleep(0)
