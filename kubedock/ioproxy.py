"""A writer that frames output into the multiplexed stream format."""

from __future__ import annotations

import enum
import threading
from typing import BinaryIO

FLUSH_DELAY = 0.1


class StdType(enum.IntEnum):
    """The standard stream a frame belongs to."""

    STDIN = 0
    STDOUT = 1
    STDERR = 2


class IoProxy:
    """Buffers written data and emits it as framed chunks per line.

    Each chunk is preceded by an 8 byte header: the stream type, three zero
    bytes and the big-endian chunk length. Data without a newline is flushed
    shortly after it was written.
    """

    def __init__(self, out: BinaryIO, prefix: StdType) -> None:
        self._out = out
        self._prefix = StdType(prefix)
        self._buf = bytearray()
        self._flusher = False
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        """Buffer data, emit every complete line and schedule a flush."""
        with self._lock:
            self._buf += data
            while self._process():
                pass
            if self._buf and not self._flusher:
                self._flusher = True
                timer = threading.Timer(FLUSH_DELAY, self.flush)
                timer.daemon = True
                timer.start()
        return len(data)

    def _process(self) -> bool:
        # The final byte is never considered, it stays for the next round.
        if len(self._buf) < 2:
            return False
        pos = self._buf.find(b"\n", 0, len(self._buf) - 1)
        if pos < 0:
            return False
        chunk = bytes(self._buf[: pos + 1])
        del self._buf[: pos + 1]
        self._emit(chunk)
        return True

    def _emit(self, chunk: bytes) -> None:
        header = bytes((self._prefix, 0, 0, 0)) + len(chunk).to_bytes(4, "big")
        self._out.write(header)
        self._out.write(chunk)

    def flush(self) -> None:
        """Emit everything still buffered as one frame."""
        with self._lock:
            chunk = bytes(self._buf)
            self._buf.clear()
            self._flusher = False
            self._emit(chunk)