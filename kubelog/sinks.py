"""
Log event sinks for Kubelog.

A sink receives the events of one log stream session: raw data chunks in
order, then at most one of error or end. The stream manager calls a sink from
the session's reader thread, one call at a time.

Key Components:
- LogSink: Interface every sink implements
- CallbackSink: Adapts three plain callables (data, error, end)
- QueueSink: Decodes chunks and hands LogEvents to an asyncio.Queue owned by
  an event loop in another thread (used by the WebSocket surface)

Example:
    ```python
    sink = CallbackSink(on_data=print, on_error=lambda e: print("error", e), on_end=lambda: print("end"))
    manager.open("default", "web-0", "app", sink)
    ```
"""

import abc
import asyncio
import codecs
import logging
import threading
from typing import Callable, List, Optional

from .models import LogEvent

log = logging.getLogger('kubelog')


class LogSink(abc.ABC):
    """Receiver of one session's events; subclasses implement all three callbacks."""

    @abc.abstractmethod
    def on_data(self, stream_id: str, chunk: bytes) -> None:
        """One raw chunk, in arrival order."""

    @abc.abstractmethod
    def on_error(self, stream_id: str, error: Exception) -> None:
        """The stream failed; no further calls follow."""

    @abc.abstractmethod
    def on_end(self, stream_id: str) -> None:
        """The remote closed the stream cleanly; no further calls follow."""


class CallbackSink(LogSink):
    """Sink built from three callables; chunks are passed through as bytes."""

    def __init__(
        self,
        on_data: Callable[[bytes], None],
        on_error: Callable[[Exception], None],
        on_end: Callable[[], None],
    ):
        self._on_data = on_data
        self._on_error = on_error
        self._on_end = on_end

    def on_data(self, stream_id: str, chunk: bytes) -> None:
        self._on_data(chunk)

    def on_error(self, stream_id: str, error: Exception) -> None:
        self._on_error(error)

    def on_end(self, stream_id: str) -> None:
        self._on_end()


class QueueSink(LogSink):
    """
    Sink that forwards LogEvents into an asyncio.Queue owned by an event loop.

    Chunks are decoded with an incremental UTF-8 decoder so a multi-byte
    character split across two chunks is emitted whole with the second one.
    Lines are not reassembled.

    A sink created with ``held=True`` buffers events until ``release`` is
    called on the loop thread, which lets the owner queue something (such as
    the response carrying the stream id) ahead of the first event. After
    ``close`` nothing more reaches the queue, including events already
    scheduled on the loop.

    Attributes:
        loop: Event loop that owns the queue
        queue: Destination queue of LogEvent objects
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, held: bool = False):
        self.loop = loop
        self.queue = queue
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._lock = threading.Lock()
        self._held: Optional[List[LogEvent]] = [] if held else None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, event: LogEvent) -> None:
        if not self._closed:
            self.queue.put_nowait(event)

    def _put(self, event: LogEvent) -> None:
        with self._lock:
            if self._held is not None:
                self._held.append(event)
                return
        if self.loop.is_closed():
            log.debug(f"[stream] dropping {event.type} for {event.stream_id}: event loop closed")
            return
        self.loop.call_soon_threadsafe(self._deliver, event)

    def release(self) -> None:
        """Deliver held events and stop holding; call from the loop thread."""
        with self._lock:
            held, self._held = self._held or [], None
        for event in held:
            self._deliver(event)

    def close(self) -> None:
        """Drop every undelivered event; call from the loop thread."""
        with self._lock:
            self._closed = True
            self._held = None

    def _flush(self, stream_id: str) -> None:
        tail = self._decoder.decode(b'', final=True)
        if tail:
            self._put(LogEvent(type='logData', stream_id=stream_id, data=tail))

    def on_data(self, stream_id: str, chunk: bytes) -> None:
        text = self._decoder.decode(chunk)
        if text:
            self._put(LogEvent(type='logData', stream_id=stream_id, data=text))

    def on_error(self, stream_id: str, error: Exception) -> None:
        self._flush(stream_id)
        self._put(LogEvent(type='logError', stream_id=stream_id, error=str(error) or error.__class__.__name__))

    def on_end(self, stream_id: str) -> None:
        self._flush(stream_id)
        self._put(LogEvent(type='logEnd', stream_id=stream_id))
