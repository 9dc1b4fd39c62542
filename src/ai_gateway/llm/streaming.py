"""Server-sent-event decoding for streamed chat completions."""

from __future__ import annotations

import codecs
import json
import logging
from enum import Enum
from typing import Callable, Iterable, List

logger = logging.getLogger(__name__)

FRAME_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def extract_delta(payload: str) -> str:
    """Returns the choices[0].delta.content token of one frame, or ''."""
    try:
        parsed = json.loads(payload)
        delta = parsed["choices"][0]["delta"].get("content")
    except (ValueError, KeyError, IndexError, TypeError, AttributeError):
        logger.debug("Skipping malformed stream frame: %.80s", payload)
        return ""
    if not isinstance(delta, str):
        return ""
    return delta


class SSEDecoder:
    """Incremental byte-stream to delta-token decoder.

    Bytes may arrive split anywhere, including inside a UTF-8 sequence or a
    frame line; partial lines are held until their newline arrives.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.finished = False

    def feed(self, data: bytes) -> List[str]:
        if self.finished:
            return []
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return self._process(lines)

    def flush(self) -> List[str]:
        """Processes whatever is left once the input is exhausted."""
        if self.finished:
            return []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._process([tail])

    def _process(self, lines: Iterable[str]) -> List[str]:
        deltas: List[str] = []
        for line in lines:
            line = line.strip()
            if not line.startswith(FRAME_PREFIX):
                continue
            payload = line[len(FRAME_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                self.finished = True
                break
            delta = extract_delta(payload)
            if delta:
                deltas.append(delta)
        return deltas


class StreamState(str, Enum):
    IDLE = "idle"
    READING = "reading"
    COMPLETED = "completed"
    ERRORED = "errored"


class StreamSession:
    """One streaming call: accumulates text and fires the terminal callback once."""

    def __init__(
        self,
        on_chunk: Callable[[str], None],
        on_complete: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self._on_chunk = on_chunk
        self._on_complete = on_complete
        self._on_error = on_error
        self.state = StreamState.IDLE
        self.accumulated_text = ""
        self.error: Exception | None = None

    @property
    def done(self) -> bool:
        return self.state in (StreamState.COMPLETED, StreamState.ERRORED)

    def start(self) -> None:
        if self.state is StreamState.IDLE:
            self.state = StreamState.READING

    def push(self, delta: str) -> None:
        if self.done:
            return
        self.state = StreamState.READING
        self.accumulated_text += delta
        self._on_chunk(delta)

    def complete(self) -> None:
        if self.done:
            return
        self.state = StreamState.COMPLETED
        self._on_complete(self.accumulated_text)

    def fail(self, error: Exception) -> None:
        if self.done:
            return
        self.state = StreamState.ERRORED
        self.error = error
        self._on_error(error)
