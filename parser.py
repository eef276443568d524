# Page state machine: turns tokenizer events into (title, links) records
import re
import sys
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Iterator, Optional, Tuple

from extractor import extract_links
from tokenizer import CDATA, EMPTY, END, EOF, MALFORMED, START, TEXT, Event, iter_events

PAGE_TAG = b"page"
TITLE_TAG = b"title"
TEXT_TAG = b"text"


class ParseState(Enum):
    IDLE = "idle"
    FOUND_PAGE = "found_page"
    FOUND_TITLE_START = "found_title_start"
    FOUND_TITLE_END = "found_title_end"
    FOUND_TEXT = "found_text"
    DONE = "done"


class Action(Enum):
    CONTINUE = "continue"
    RECORD_TITLE = "record_title"
    EMIT = "emit"
    RESYNC = "resync"
    FINISH = "finish"


class InvalidStateTransition(RuntimeError):
    def __init__(self, state: ParseState, event: Event):
        self.state = state
        self.event = event
        super().__init__(
            f"unexpected {event.kind} event {event.value[:40]!r} at byte {event.offset} "
            f"in state {state.name}"
        )

    def __reduce__(self):
        # Keeps the exception intact when a worker process re-raises it in the parent
        return (self.__class__, (self.state, self.event))


class PageEncodingError(ValueError):
    """Title or body of a page is not valid UTF-8."""


@dataclass(frozen=True)
class PageRecord:
    title: str
    links: Tuple[str, ...] = ()


@dataclass
class ScanStats:
    pages: int = 0
    malformed: int = 0
    resyncs: int = 0
    skipped_pages: int = 0


def transition(state: ParseState, event: Event, has_title: bool = True) -> Tuple[ParseState, Action]:
    """Return (next state, action) for every possible state/event pair."""
    kind, name = event.kind, event.value
    if kind == EOF:
        return ParseState.DONE, Action.FINISH
    if state is ParseState.DONE or kind == MALFORMED:
        return state, Action.CONTINUE

    # Lenient states: anything unexpected is just skipped
    if state is ParseState.IDLE:
        if kind == START and name == PAGE_TAG:
            return ParseState.FOUND_PAGE, Action.CONTINUE
        return state, Action.CONTINUE
    if state is ParseState.FOUND_PAGE:
        if kind == START and name == TITLE_TAG:
            return ParseState.FOUND_TITLE_START, Action.CONTINUE
        return state, Action.CONTINUE
    if state is ParseState.FOUND_TITLE_END:
        if kind == START and name == TEXT_TAG:
            return ParseState.FOUND_TEXT, Action.CONTINUE
        if kind == EMPTY and name == TEXT_TAG:
            # <text bytes="0" /> is a page with an empty body
            return ParseState.IDLE, Action.EMIT if has_title else Action.RESYNC
        return state, Action.CONTINUE

    # Strict states: anything unexpected means we lost track of the document
    if state is ParseState.FOUND_TITLE_START:
        if kind in (TEXT, CDATA):
            return state, Action.RECORD_TITLE
        if kind == END and name == TITLE_TAG:
            return ParseState.FOUND_TITLE_END, Action.CONTINUE
        return ParseState.IDLE, Action.RESYNC
    if state is ParseState.FOUND_TEXT:
        if kind in (TEXT, CDATA) or (kind == END and name == TEXT_TAG):
            return ParseState.IDLE, Action.EMIT if has_title else Action.RESYNC
        return ParseState.IDLE, Action.RESYNC
    raise ValueError(f"unknown parse state {state!r}")


# XML's five predefined entities plus character references; HTML names such
# as &nbsp; are not XML and stay literal
_XML_ENTITIES = {"lt": "<", "gt": ">", "amp": "&", "quot": '"', "apos": "'"}
_REFERENCE_RE = re.compile(r"&(lt|gt|amp|quot|apos|#[0-9]+|#[xX][0-9a-fA-F]+);")


def _replace_reference(match: "re.Match[str]") -> str:
    name = match.group(1)
    if name[0] != "#":
        return _XML_ENTITIES[name]
    codepoint = int(name[2:], 16) if name[1] in "xX" else int(name[1:])
    if codepoint > sys.maxunicode or 0xD800 <= codepoint <= 0xDFFF:
        return match.group(0)
    return chr(codepoint)


def _decode(raw: bytes, escaped: bool) -> str:
    text = raw.decode("utf-8")
    # Single pass, so &amp;lt; decodes to &lt; and not to <
    return _REFERENCE_RE.sub(_replace_reference, text) if escaped else text


class PageParser:
    """Feed events in document order, get a PageRecord back whenever a page completes.

    `end` is the partition's end offset: a <page> starting at or after it
    belongs to the next partition, so the scan stops there. With `strict`
    set, invalid transitions and bad UTF-8 raise instead of being skipped.
    """

    def __init__(self, end: Optional[int] = None, strict: bool = False):
        self.end = end
        self.strict = strict
        self.state = ParseState.IDLE
        self.stats = ScanStats()
        self._title: Optional[Event] = None

    @property
    def done(self) -> bool:
        return self.state is ParseState.DONE

    def _past_end(self, event: Event) -> bool:
        return (
            self.end is not None
            and self.state is ParseState.IDLE
            and event.kind == START
            and event.value == PAGE_TAG
            and event.offset >= self.end
        )

    def feed(self, event: Event) -> Optional[PageRecord]:
        if self._past_end(event):
            event = Event(EOF, b"", event.offset)
        if event.kind == MALFORMED:
            self.stats.malformed += 1

        next_state, action = transition(self.state, event, self._title is not None)
        record = None
        if action is Action.RECORD_TITLE:
            self._title = event
        elif action is Action.EMIT:
            record = self._build(event)
            self._title = None
        elif action is Action.RESYNC:
            self._resync(event)
            self._title = None
        self.state = next_state
        return record

    def _resync(self, event: Event) -> None:
        if self.strict:
            raise InvalidStateTransition(self.state, event)
        self.stats.resyncs += 1
        print(
            f"Warning: unexpected {event.kind} event {event.value[:40]!r} at byte {event.offset} "
            f"in state {self.state.name}, skipping to next page"
        )

    def _build(self, event: Event) -> Optional[PageRecord]:
        body = event.value if event.kind in (TEXT, CDATA) else b""
        body_escaped = event.kind != CDATA
        try:
            title = _decode(self._title.value, self._title.kind != CDATA)
            links = tuple(_decode(raw, body_escaped) for raw in extract_links(body))
        except UnicodeDecodeError as exc:
            if self.strict:
                raise PageEncodingError(f"page at byte {event.offset} is not valid UTF-8: {exc}") from exc
            self.stats.skipped_pages += 1
            print(f"Warning: skipping page at byte {event.offset} with invalid UTF-8 ({exc.reason})")
            return None
        self.stats.pages += 1
        return PageRecord(title=title, links=links)


def parse_pages(
    stream: BinaryIO,
    offset: int = 0,
    end: Optional[int] = None,
    strict: bool = False,
    parser: Optional[PageParser] = None,
) -> Iterator[PageRecord]:
    """Yield PageRecords from stream in document order.

    Pass your own `parser` to read its stats once the generator is exhausted.
    """
    if parser is None:
        parser = PageParser(end=end, strict=strict)
    for event in iter_events(stream, offset):
        record = parser.feed(event)
        if record is not None:
            yield record
        if parser.done:
            break
