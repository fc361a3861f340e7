"""
BytePipe - a synchronous in-memory byte pipe between two threads.

One thread writes, another reads. The pipe holds no buffer of its own:
`write` hands its bytes over and returns only once the reader has taken all
of them, so the writer can never run ahead of the reader. Reads return at
most `size` bytes and block until bytes are offered or the write side is
closed.

Either side can close its end at any time:
- close_write(): the reader drains whatever is on offer, then sees EOF (b"")
- close_read(): a blocked or later write raises PipeClosedError

With a timeout, every blocking wait is bounded by a single deadline fixed at
construction; expiry raises PipeTimeoutError on whichever side is waiting.
"""

import threading
import time
from typing import Optional


class PipeClosedError(BrokenPipeError):
    """Raised when using a pipe end that is closed."""
    pass


class PipeTimeoutError(TimeoutError):
    """Raised when the pipe deadline passes while a side is blocked."""
    pass


_EMPTY = memoryview(b"")


class BytePipe:
    """
    Unbuffered rendezvous pipe for one writer thread and one reader thread.

    The read side is file-like enough for streaming parsers such as
    yaml.safe_load, which only call read(size).

    Usage:
        pipe = BytePipe()
        # producer thread
        pipe.write(b"image: alpine\\n")
        pipe.close_write()
        # consumer thread
        document = yaml.safe_load(pipe)
        pipe.close_read()
    """

    name = "<pipe>"

    def __init__(self, timeout: Optional[float] = None):
        self._cond = threading.Condition()
        self._pending = _EMPTY
        self._write_closed = False
        self._read_closed = False
        self._deadline = None if timeout is None else time.monotonic() + timeout

    @property
    def write_closed(self) -> bool:
        return self._write_closed

    @property
    def read_closed(self) -> bool:
        return self._read_closed

    def _wait(self) -> None:
        """Wait on the condition, honouring the deadline. Caller holds the lock."""
        if self._deadline is None:
            self._cond.wait()
            return
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise PipeTimeoutError("pipe deadline exceeded")
        self._cond.wait(remaining)

    def write(self, data: bytes) -> int:
        """
        Offer bytes to the reader and block until all of them are taken.

        Returns:
            Number of bytes written (always len(data) on success)

        Raises:
            PipeClosedError: If either end is closed before all bytes are taken
            PipeTimeoutError: If the deadline passes first
        """
        with self._cond:
            if self._write_closed:
                raise PipeClosedError("write on closed pipe")
            if self._read_closed:
                raise PipeClosedError("read side of pipe is closed")
            if not data:
                return 0

            self._pending = memoryview(bytes(data))
            self._cond.notify_all()
            try:
                while len(self._pending) and not self._read_closed:
                    self._wait()
            finally:
                unread = len(self._pending)
                self._pending = _EMPTY

            if unread:
                raise PipeClosedError(
                    f"read side of pipe closed with {unread} of {len(data)} bytes unread"
                )
            return len(data)

    def read(self, size: int = -1) -> bytes:
        """
        Read up to `size` bytes; a negative size reads until EOF.

        Returns b"" once the write side is closed and nothing is on offer.

        Raises:
            PipeClosedError: If the read side has been closed
            PipeTimeoutError: If the deadline passes first
        """
        if size is None or size < 0:
            chunks = []
            while True:
                chunk = self.read(65536)
                if not chunk:
                    return b"".join(chunks)
                chunks.append(chunk)

        with self._cond:
            if self._read_closed:
                raise PipeClosedError("read on closed pipe")
            if size == 0:
                return b""
            while not len(self._pending) and not self._write_closed:
                self._wait()
            if not len(self._pending):
                return b""

            chunk = bytes(self._pending[:size])
            self._pending = self._pending[size:]
            if not len(self._pending):
                self._cond.notify_all()
            return chunk

    def close_write(self) -> None:
        """Close the write side. The reader sees EOF after the current offer."""
        with self._cond:
            self._write_closed = True
            self._cond.notify_all()

    def close_read(self) -> None:
        """Close the read side. Pending and future writes fail."""
        with self._cond:
            self._read_closed = True
            self._cond.notify_all()

    def close(self) -> None:
        """Close both sides."""
        with self._cond:
            self._write_closed = True
            self._read_closed = True
            self._cond.notify_all()
