"""Server-sent event consumption for Langflow stream URLs.

A stream runs on its own daemon thread and outlives the HTTP request that
started it. Each ``StreamHandle`` carries a cancellation event; the
application keeps live handles in a ``StreamRegistry`` and closes them on
shutdown.
"""

from __future__ import annotations

import contextvars
import json
import logging
import re
import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import requests

from .errors import StreamError

logger = logging.getLogger(__name__)

CLOSE_EVENT = "close"
MESSAGE_EVENT = "message"
CLOSE_MESSAGE = "Stream closed"

_LINE_BREAK = re.compile(rb"\r\n|\r|\n")

UpdateCallback = Callable[[Any], None]
CloseCallback = Callable[[str], None]
ErrorCallback = Callable[[Any], None]


@dataclass(slots=True)
class SSEEvent:
    event: str = MESSAGE_EVENT
    data: str = ""
    id: str | None = None


def iter_sse_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Split a raw byte stream into SSE lines.

    Lines end at CRLF, CR or LF and nothing else, and each line is decoded as
    UTF-8 whatever charset the response declares. A CR at the end of a chunk is
    held until the next chunk shows whether an LF follows it.
    """
    buffer = b""
    for chunk in chunks:
        if not chunk:
            continue
        buffer += chunk
        start = 0
        for match in _LINE_BREAK.finditer(buffer):
            if match.group() == b"\r" and match.end() == len(buffer):
                break
            yield buffer[start : match.start()].decode("utf-8", errors="replace")
            start = match.end()
        buffer = buffer[start:]
    if buffer.endswith(b"\r"):
        yield buffer[:-1].decode("utf-8", errors="replace")


def iter_sse_events(lines: Iterable[str | bytes]) -> Iterator[SSEEvent]:
    """Group raw SSE lines into events.

    A blank line dispatches the pending event. ``retry`` and unknown fields are
    ignored, as are ``:`` comment lines. Named events are dispatched even when
    they carry no data. A trailing event without its blank line is dropped.
    """
    event_name: str | None = None
    data_lines: list[str] = []
    last_id: str | None = None

    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        if line == "":
            if data_lines or event_name:
                yield SSEEvent(
                    event=event_name or MESSAGE_EVENT, data="\n".join(data_lines), id=last_id
                )
            event_name = None
            data_lines = []
            continue
        if line.startswith(":"):
            continue

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            last_id = value


class StreamHandle:
    """A single event channel consumed on a background thread."""

    def __init__(
        self,
        stream_url: str,
        on_update: UpdateCallback,
        on_close: CloseCallback,
        on_error: ErrorCallback,
        *,
        connect_timeout: float | None = None,
        headers: dict[str, str] | None = None,
        registry: StreamRegistry | None = None,
    ) -> None:
        self.stream_url = stream_url
        self._on_update = on_update
        self._on_close = on_close
        self._on_error = on_error
        self._connect_timeout = connect_timeout
        self._headers = {"Accept": "text/event-stream", **(headers or {})}
        self._registry = registry
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        # Held while a callback runs so close() cannot interleave with a dispatch
        self._dispatch_lock = threading.RLock()
        self._response: requests.Response | None = None
        # Carries the request id of the request that opened the stream into its log records
        self._context = contextvars.copy_context()
        self._thread = threading.Thread(
            target=self._context.run, args=(self._run,), name="langflow-stream", daemon=True
        )

    @property
    def closed(self) -> bool:
        return self._cancel.is_set()

    def start(self) -> StreamHandle:
        if self._registry is not None:
            self._registry.add(self)
        self._thread.start()
        return self

    def close(self) -> None:
        """Stop the channel. No callback fires after this returns."""
        with self._dispatch_lock:
            self._cancel.set()
        with self._lock:
            response = self._response
        if response is not None:
            response.close()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the consumer thread; return True once it has finished."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        try:
            self._consume()
        finally:
            self._cancel.set()
            if self._registry is not None:
                self._registry.discard(self)

    def _consume(self) -> None:
        try:
            response = requests.get(
                self.stream_url,
                headers=self._headers,
                stream=True,
                # No read timeout: the channel stays open until close, error or cancel
                timeout=(self._connect_timeout, None),
            )
        except requests.RequestException as e:
            self._fail(StreamError(f"Failed to connect to stream {self.stream_url}: {e}"))
            return

        with self._lock:
            self._response = response
        try:
            if self._cancel.is_set():
                return
            if not response.ok:
                self._fail(
                    StreamError(
                        f"{response.status_code} {response.reason} - stream {self.stream_url}"
                    )
                )
                return

            lines = iter_sse_lines(response.iter_content(chunk_size=None))
            for event in iter_sse_events(lines):
                if self._cancel.is_set():
                    return
                if event.event == CLOSE_EVENT:
                    with self._dispatch_lock:
                        if self._cancel.is_set():
                            return
                        self._cancel.set()
                        self._dispatch(self._on_close, CLOSE_MESSAGE)
                    return
                if event.event != MESSAGE_EVENT:
                    logger.debug("Ignoring stream event %r from %s", event.event, self.stream_url)
                    continue
                try:
                    payload = json.loads(event.data)
                except json.JSONDecodeError:
                    logger.warning("Skipping non-JSON stream message: %r", event.data[:200])
                    continue
                with self._dispatch_lock:
                    if self._cancel.is_set():
                        return
                    self._dispatch(self._on_update, payload)

            if not self._cancel.is_set():
                self._fail(StreamError(f"Stream {self.stream_url} ended without a close event"))
        except Exception as e:
            if self._cancel.is_set():
                logger.debug("Stream %s stopped after close: %s", self.stream_url, e)
                return
            self._fail(StreamError(f"Stream transport error: {e}"))
        finally:
            response.close()

    def _fail(self, error: StreamError) -> None:
        with self._dispatch_lock:
            if self._cancel.is_set():
                return
            self._cancel.set()
            logger.error("Stream Error: %s", error)
            self._dispatch(self._on_error, error)

    def _dispatch(self, callback: Callable[[Any], None], value: Any) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("Stream callback %r failed", callback)


class StreamRegistry:
    """Thread-safe set of live stream handles."""

    def __init__(self) -> None:
        self._handles: set[StreamHandle] = set()
        self._lock = threading.Lock()

    def add(self, handle: StreamHandle) -> None:
        with self._lock:
            self._handles.add(handle)

    def discard(self, handle: StreamHandle) -> None:
        with self._lock:
            self._handles.discard(handle)

    def active(self) -> list[StreamHandle]:
        with self._lock:
            return list(self._handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def close_all(self, timeout: float | None = 5.0) -> int:
        """Close every live stream and wait up to ``timeout`` seconds for each."""
        handles = self.active()
        for handle in handles:
            handle.close()
        for handle in handles:
            if not handle.join(timeout):
                logger.warning("Stream %s did not stop within %ss", handle.stream_url, timeout)
        return len(handles)


__all__ = [
    "CLOSE_MESSAGE",
    "SSEEvent",
    "StreamHandle",
    "StreamRegistry",
    "iter_sse_events",
    "iter_sse_lines",
]
