"""
Progress stream decoding
The daemon streams pull/build progress as concatenated JSON objects with no
separators guaranteed between them, split arbitrarily across HTTP chunks.
"""

import json
import logging
from typing import Any, Callable, Iterable, Iterator, List, Optional, Type

from pydantic import ValidationError

from .cancellation import CancelToken
from .exceptions import ProtocolError, RemoteOperationError
from .models import ProgressMessage

logger = logging.getLogger(__name__)

ProgressHandler = Callable[[ProgressMessage], None]

WHITESPACE = b' \t\r\n'
OPENERS = b'{['
CLOSERS = b'}]'
QUOTE = ord('"')
BACKSLASH = ord('\\')


class JSONStreamDecoder:
    """
    Incremental splitter for a sequence of concatenated JSON values.
    
    Tracks bracket depth and string/escape state across feed() calls, so a
    value may be split at any byte, including inside a string or a
    multi-byte UTF-8 character.
    """
    
    def __init__(self):
        self._buffer = bytearray()
        self._pos = 0
        self._start: Optional[int] = None
        self._depth = 0
        self._in_string = False
        self._escaped = False
    
    def feed(self, data: bytes) -> List[Any]:
        """
        Add bytes and return every value completed by them, in order
        
        Raises:
            ProtocolError: On bytes that cannot start or form a JSON value
        """
        self._buffer.extend(data)
        values = []
        buf = self._buffer
        pos = self._pos
        
        while pos < len(buf):
            byte = buf[pos]
            
            if self._start is None:
                if byte in WHITESPACE:
                    pos += 1
                    continue
                if byte not in OPENERS:
                    raise ProtocolError(
                        f"Unexpected byte {bytes([byte])!r} between stream messages")
                self._start = pos
                self._depth = 1
            elif self._in_string:
                if self._escaped:
                    self._escaped = False
                elif byte == BACKSLASH:
                    self._escaped = True
                elif byte == QUOTE:
                    self._in_string = False
            elif byte == QUOTE:
                self._in_string = True
            elif byte in OPENERS:
                self._depth += 1
            elif byte in CLOSERS:
                self._depth -= 1
                if self._depth == 0:
                    values.append(self._decode(bytes(buf[self._start:pos + 1])))
                    self._start = None
            pos += 1
        
        # Drop consumed bytes, keeping any partial value
        consumed = pos if self._start is None else self._start
        del buf[:consumed]
        if self._start is not None:
            self._start = 0
        self._pos = pos - consumed
        return values
    
    @staticmethod
    def _decode(raw: bytes) -> Any:
        try:
            return json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProtocolError(f"Malformed JSON in progress stream: {e}") from e
    
    @property
    def pending(self) -> bool:
        """True while a value has started but not finished"""
        return self._start is not None
    
    def close(self):
        """Signal end of input; fails if a value was left incomplete"""
        if self.pending:
            snippet = bytes(self._buffer[:80])
            raise ProtocolError(f"Progress stream ended inside a message: {snippet!r}")


def iter_json_values(chunks: Iterable[bytes]) -> Iterator[Any]:
    """Decode a chunked byte stream into JSON values, in arrival order"""
    decoder = JSONStreamDecoder()
    for chunk in chunks:
        for value in decoder.feed(chunk):
            yield value
    decoder.close()


def to_progress_message(value: Any) -> ProgressMessage:
    if not isinstance(value, dict):
        raise ProtocolError(f"Expected a JSON object in progress stream, got {type(value).__name__}")
    try:
        return ProgressMessage.model_validate(value)
    except ValidationError as e:
        raise ProtocolError(f"Invalid progress message: {e}") from e


def log_progress(message: ProgressMessage):
    """Default handler: debug-log each message"""
    if message.stream is not None:
        logger.debug(message.stream.rstrip())
    elif message.status is not None:
        if message.id:
            logger.debug(f"{message.id}: {message.status} {message.progress or ''}".rstrip())
        else:
            logger.debug(message.status)


def deliver_progress(chunks: Iterable[bytes], handler: Optional[ProgressHandler] = None,
                     error_class: Type[RemoteOperationError] = RemoteOperationError,
                     token: Optional[CancelToken] = None) -> int:
    """
    Decode progress messages and hand each to handler before reading on
    
    A message carrying an error ends the stream with error_class. Its other
    fields, when present, still reach the handler first; messages delivered
    earlier are never retracted.
    
    Args:
        chunks: Body bytes as they arrive
        handler: Called once per message, in wire order
        error_class: Exception raised for a daemon-reported error
        token: Checked before each delivery; cancelling stops the stream
        
    Returns:
        Number of messages delivered
    """
    if handler is None:
        handler = log_progress
    
    count = 0
    for value in iter_json_values(chunks):
        if token is not None:
            token.raise_if_cancelled()
        message = to_progress_message(value)
        if message.error is not None:
            if message.has_payload():
                handler(message)
                count += 1
            detail = message.error_detail.message if message.error_detail else None
            logger.debug(f"Progress stream reported error: {message.error}")
            raise error_class(message.error, detail=detail)
        handler(message)
        count += 1
    return count
