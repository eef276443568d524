# Streaming XML tokenizer for dump files
# Unlike xml.etree's pull parser it never raises on bad markup and keeps no
# element stack, so a scan can start at any byte offset and find its footing
# at the next well-formed tag.
import bz2
import os
import re
from typing import BinaryIO, Iterator, NamedTuple, Optional

START = "start"
END = "end"
EMPTY = "empty"
TEXT = "text"
CDATA = "cdata"
MALFORMED = "malformed"
EOF = "eof"

CHUNK_SIZE = 64 * 1024
MAX_MARKUP_BYTES = 64 * 1024  # longest tag/comment/declaration we are willing to buffer

_LOOKAHEAD = len(b"<![CDATA[")
_TAG_RE = re.compile(rb"<(/?)([A-Za-z_][-A-Za-z0-9_.:]*)(?:\s[^<>]*?)?(/?)>")


class Event(NamedTuple):
    kind: str
    value: bytes  # local tag name, raw text bytes, or the offending bytes
    offset: int  # absolute byte offset in the file


def open_corpus(path) -> BinaryIO:
    """Open a dump for binary reading; .bz2 dumps are decompressed on the fly."""
    if str(path).endswith(".bz2"):
        return bz2.open(path, "rb")
    return open(path, "rb")


def is_compressed(path) -> bool:
    return str(path).endswith(".bz2")


def corpus_size(path) -> int:
    return os.path.getsize(path)


class Tokenizer:
    """Turn a binary stream into START/END/EMPTY/TEXT/CDATA/MALFORMED events.

    Only the token currently being read is buffered. A text run is held whole
    (it ends at the next '<'), everything else is capped at MAX_MARKUP_BYTES.
    The last event is always EOF.
    """

    def __init__(self, stream: BinaryIO, offset: int = 0, chunk_size: int = CHUNK_SIZE):
        self.stream = stream
        self.chunk_size = chunk_size
        self.buf = bytearray()
        self.pos = 0  # start of the current token inside buf
        self.base = offset  # file offset of buf[0]
        self.eof = False

    def __iter__(self) -> Iterator[Event]:
        while True:
            if self.pos >= len(self.buf) and not self._fill():
                break
            if self.buf[self.pos] == 0x3C:  # '<'
                event = self._markup()
            else:
                event = self._text()
            if event is not None:
                yield event
        yield Event(EOF, b"", self.base + self.pos)

    def _fill(self) -> bool:
        # Drop everything before the current token, then append one chunk
        if self.pos:
            del self.buf[: self.pos]
            self.base += self.pos
            self.pos = 0
        if self.eof:
            return False
        chunk = self.stream.read(self.chunk_size)
        if not chunk:
            self.eof = True
            return False
        self.buf += chunk
        return True

    def _find(self, needle: bytes, skip: int, limit: Optional[int]) -> int:
        """Index in buf of needle at or after pos+skip, or -1 past limit/EOF."""
        seen = skip
        while True:
            idx = self.buf.find(needle, self.pos + seen)
            if idx != -1:
                return idx
            seen = max(skip, len(self.buf) - self.pos - len(needle) + 1)
            if limit is not None and seen > limit:
                return -1
            if not self._fill():
                return -1

    def _emit(self, kind: str, value: bytes, next_pos: int) -> Event:
        event = Event(kind, value, self.base + self.pos)
        self.pos = next_pos
        return event

    def _text(self) -> Event:
        idx = self._find(b"<", 0, None)
        if idx == -1:
            idx = len(self.buf)
        return self._emit(TEXT, bytes(self.buf[self.pos:idx]), idx)

    def _malformed(self) -> Event:
        # Report a little context but only step over the '<' itself
        return self._emit(MALFORMED, bytes(self.buf[self.pos:self.pos + 32]), self.pos + 1)

    def _skip_until(self, terminator: bytes, skip: int) -> Optional[Event]:
        idx = self._find(terminator, skip, MAX_MARKUP_BYTES)
        if idx == -1:
            return self._malformed()
        self.pos = idx + len(terminator)
        return None

    def _markup(self) -> Optional[Event]:
        while len(self.buf) - self.pos < _LOOKAHEAD and self._fill():
            pass
        head = bytes(self.buf[self.pos:self.pos + _LOOKAHEAD])

        if head.startswith(b"<!--"):
            return self._skip_until(b"-->", 4)
        if head.startswith(b"<![CDATA["):
            idx = self._find(b"]]>", _LOOKAHEAD, None)
            if idx == -1:
                return self._malformed()
            return self._emit(CDATA, bytes(self.buf[self.pos + _LOOKAHEAD:idx]), idx + 3)
        if head.startswith(b"<?"):
            return self._skip_until(b"?>", 2)
        if head.startswith(b"<!"):
            return self._skip_until(b">", 2)
        return self._tag()

    def _tag(self) -> Event:
        idx = self._find(b">", 1, MAX_MARKUP_BYTES)
        if idx == -1:
            return self._malformed()
        match = _TAG_RE.match(self.buf, self.pos, idx + 1)
        if match is None:
            return self._malformed()
        closing, name, self_closing = match.group(1, 2, 3)
        if closing and self_closing:
            return self._malformed()
        # Element namespaces are irrelevant here, keep the local part only
        name = bytes(name).rpartition(b":")[2]
        if closing:
            kind = END
        elif self_closing:
            kind = EMPTY
        else:
            kind = START
        return self._emit(kind, name, idx + 1)


def iter_events(stream: BinaryIO, offset: int = 0, chunk_size: int = CHUNK_SIZE) -> Iterator[Event]:
    """Yield tokenizer events for stream, whose current position is file offset `offset`."""
    return iter(Tokenizer(stream, offset, chunk_size))
