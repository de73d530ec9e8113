"""Reading and relaying a child process's stderr.

The supervisor reads the client's stderr synchronously until the readiness
marker shows up, then hands the reader to a background relay thread. The
handoff is explicit: an :class:`OwnedStream` gives its reader away exactly
once and refuses every read afterwards, so the two phases can never read the
same pipe concurrently.
"""

import queue
import threading
from collections.abc import Iterator
from typing import IO

from .exceptions import ProcessError
from .logging import get_logger

logger = get_logger(__name__)


def decode_line(raw: bytes | bytearray) -> str:
    return bytes(raw).decode("utf-8", errors="replace")


class LineReader:
    """Reads newline-terminated lines from a binary stream."""

    def __init__(self, stream: IO[bytes]):
        self._stream = stream

    def read_line(self, buffer: bytearray) -> int:
        """Read one line into ``buffer``, replacing its contents.

        The line keeps its terminator; a final line without one is returned
        as-is at end of stream.

        Args:
            buffer: Reusable buffer receiving the line

        Returns:
            Number of bytes read, 0 at end of stream

        Raises:
            OSError: If the underlying read fails
        """
        buffer.clear()
        chunk = self._stream.readline()
        buffer.extend(chunk)
        return len(chunk)

    def __iter__(self) -> Iterator[str]:
        buffer = bytearray()
        while self.read_line(buffer):
            yield decode_line(buffer)

    def close(self) -> None:
        self._stream.close()


class OwnedStream:
    """Exclusive ownership of a :class:`LineReader` until it is transferred."""

    def __init__(self, reader: LineReader):
        self._reader: LineReader | None = reader

    @property
    def transferred(self) -> bool:
        return self._reader is None

    def read_line(self, buffer: bytearray) -> int:
        if self._reader is None:
            raise ProcessError("Stream was handed off and can no longer be read")
        return self._reader.read_line(buffer)

    def transfer(self) -> LineReader:
        """Give the reader away; this owner cannot read from it again."""
        if self._reader is None:
            raise ProcessError("Stream was already handed off")
        reader, self._reader = self._reader, None
        return reader

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None


class RelayChannel:
    """Unbounded FIFO of stderr lines shared by one producer and one consumer."""

    def __init__(self) -> None:
        self._queue: queue.Queue[str] = queue.Queue()

    def put(self, line: str) -> None:
        self._queue.put(line)

    def get(self, timeout: float | None = None) -> str:
        """Block until a line is available.

        Raises:
            queue.Empty: If ``timeout`` expires first
        """
        return self._queue.get(timeout=timeout)

    def drain(self) -> list[str]:
        """Take every line queued right now without blocking."""
        lines = []
        while True:
            try:
                lines.append(self._queue.get_nowait())
            except queue.Empty:
                return lines

    def __len__(self) -> int:
        return self._queue.qsize()


class StderrRelay:
    """Background thread forwarding an adopted reader into a channel.

    The relay owns the reader for the rest of the child's life. It stops at
    end of stream or on a read error; neither is reported to the caller,
    who just stops seeing new lines.
    """

    def __init__(self, reader: LineReader, channel: RelayChannel, name: str = "stderr-relay"):
        self._reader = reader
        self._channel = channel
        self.lines_relayed = 0
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> "StderrRelay":
        self._thread.start()
        return self

    def _run(self) -> None:
        buffer = bytearray()
        try:
            while self._reader.read_line(buffer):
                self._channel.put(decode_line(buffer))
                self.lines_relayed += 1
        except (OSError, ValueError) as e:
            # ValueError: the pipe was closed under us during teardown
            logger.debug("Stderr relay stopped on read error", error=str(e))
        finally:
            try:
                self._reader.close()
            except OSError as e:
                logger.debug("Error closing relayed stream", error=str(e))
        logger.debug("Stderr relay finished", lines=self.lines_relayed)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the relay to finish.

        Returns:
            True if the thread has ended
        """
        self._thread.join(timeout)
        return not self._thread.is_alive()
