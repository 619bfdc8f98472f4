import contextlib
import json
import logging
import queue
import zlib
from typing import Any, Iterator, Optional

from .introspector import Snapshot

# zlib window bits that select a gzip header and trailer
_GZIP_WBITS = 16 + zlib.MAX_WBITS

DEFAULT_COMPRESSION_LEVEL = 6

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())


class GzipWriter:
    """
    Gzip compressor that accumulates its output in memory and can be reset
    for reuse instead of being rebuilt.
    """

    def __init__(self, compression_level: int = DEFAULT_COMPRESSION_LEVEL):
        self._template = zlib.compressobj(compression_level, zlib.DEFLATED, _GZIP_WBITS)
        self._compressor = self._template.copy()
        self._buffer = bytearray()
        self.closed = False

    def reset(self) -> None:
        self._compressor = self._template.copy()
        self._buffer.clear()
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to closed GzipWriter")

        self._buffer += self._compressor.compress(data)
        return len(data)

    def close(self) -> None:
        if not self.closed:
            self._buffer += self._compressor.flush(zlib.Z_FINISH)
            self.closed = True

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class GzipWriterPool:
    """
    Thread-safe pool of GzipWriters shared by concurrent requests.
    Writers are reset before each use and always returned afterwards.

    Args:
        max_idle (int, optional): Maximum number of idle writers kept. 0 means no limit.
    """

    def __init__(
        self, max_idle: int = 0, compression_level: int = DEFAULT_COMPRESSION_LEVEL
    ):
        self.compression_level = compression_level
        self._idle: queue.LifoQueue[GzipWriter] = queue.LifoQueue(maxsize=max_idle)

    def take(self) -> GzipWriter:
        try:
            writer = self._idle.get_nowait()
        except queue.Empty:
            _logger.debug("Creating new GzipWriter")
            return GzipWriter(self.compression_level)

        writer.reset()
        return writer

    def give_back(self, writer: GzipWriter) -> None:
        try:
            self._idle.put_nowait(writer)
        except queue.Full:
            pass

    @contextlib.contextmanager
    def borrow(self) -> Iterator[GzipWriter]:
        writer = self.take()
        try:
            yield writer
        finally:
            self.give_back(writer)

    def idle_count(self) -> int:
        return self._idle.qsize()


class ResponseEncoder:
    def __init__(self, pool: Optional[GzipWriterPool] = None):
        self.pool = pool or GzipWriterPool()

    def encode(
        self,
        snapshot: Snapshot,
        compress: bool = False,
        indent: Optional[int] = None,
    ) -> bytes:
        data = self.to_json(snapshot.to_dict(), indent=indent).encode("utf-8")

        if not compress:
            return data

        with self.pool.borrow() as writer:
            writer.write(data)
            writer.close()
            return writer.getvalue()

    @staticmethod
    def to_json(data: Any, indent: Optional[int] = None) -> str:
        # Not HTML-escaped, non-ASCII text is kept as-is
        if indent is None:
            return json.dumps(data, ensure_ascii=False, separators=(",", ":")) + "\n"

        return json.dumps(data, ensure_ascii=False, indent=indent) + "\n"
