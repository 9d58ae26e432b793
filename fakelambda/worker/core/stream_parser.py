"""
Stream Message Parser

Splits a child's stdout into free-form log fragments and the single structured
message the bootstrap program embeds between two sentinels:

    <log text>__FAKE_LAMBDA_START__{"message": "result", ...}__FAKE_LAMBDA_END__<log text>

Chunks arrive with no alignment to lines or messages. Text without a newline is
flushed at once so handler output shows up without delay; only text that holds
(or may be the beginning of) a start sentinel is carried over to the next chunk.
"""

import codecs
import json
from typing import Any, Callable

from .exceptions import MessageParseError

START_SENTINEL = "__FAKE_LAMBDA_START__"
END_SENTINEL = "__FAKE_LAMBDA_END__"

LogCallback = Callable[[str], None]
MessageCallback = Callable[[Any], None]


def _holds_message_start(text: str) -> bool:
    """True if text contains the start sentinel or ends with a partial one."""
    if START_SENTINEL in text:
        return True
    return any(text.endswith(START_SENTINEL[:size]) for size in range(1, len(START_SENTINEL)))


class StreamMessageParser:
    """
    Incremental demultiplexer for one output stream.

    on_log receives log fragments exactly as they appeared in the stream
    (newlines included). on_message receives the decoded JSON document.
    """

    def __init__(self, on_log: LogCallback, on_message: MessageCallback):
        self.on_log = on_log
        self.on_message = on_message
        self._remainder = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> None:
        """Consume a raw chunk read from the stream."""
        self.feed_text(self._decoder.decode(chunk))

    def feed_text(self, text: str) -> None:
        buffer = self._remainder + text
        self._remainder = ""
        if not buffer:
            return

        if "\n" not in buffer:
            if _holds_message_start(buffer):
                self._remainder = buffer
            else:
                self.on_log(buffer)
            return

        lines = buffer.split("\n")
        for line in lines[:-1]:
            self._process_line(line, terminated=True)

        last_line = lines[-1]
        if _holds_message_start(last_line):
            # A message payload may continue in the next chunk.
            self._remainder = last_line
        elif last_line:
            self.on_log(last_line)

    def feed_eof(self) -> None:
        """Flush whatever is still carried over once the stream has ended."""
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self.feed_text(tail)

        remainder, self._remainder = self._remainder, ""
        if remainder:
            self._process_line(remainder, terminated=False)

    def _process_line(self, line: str, terminated: bool) -> None:
        newline = "\n" if terminated else ""
        index = line.find(START_SENTINEL)
        if index == -1:
            self.on_log(line + newline)
            return

        prefix = line[:index]
        if prefix:
            self.on_log(prefix)

        body_start = index + len(START_SENTINEL)
        end_index = line.find(END_SENTINEL, body_start)
        if end_index == -1:
            raise MessageParseError(line[body_start:])

        raw = line[body_start:end_index]
        try:
            message = json.loads(raw.strip())
        except ValueError as e:
            raise MessageParseError(raw, e) from e
        self.on_message(message)

        suffix = line[end_index + len(END_SENTINEL) :]
        if suffix or newline:
            self.on_log(suffix + newline)
