# Link extraction from raw page body text
from typing import List, Optional, Tuple

import mwparserfromhell

OPEN = 0x5B  # '['


def extract_links(text: bytes) -> List[bytes]:
    """Return the contents of every [[...]] in text, in order.

    One forward pass, no nesting: a token runs from '[[' to the first ']'.
    The byte after a lone '[' is consumed along with it, and a '[[' with no
    closing ']' before the end of text produces nothing. Tokens are returned
    exactly as found, including any '|label' part.
    """
    links = []
    pos = 0
    size = len(text)
    while True:
        start = text.find(b"[", pos)
        if start == -1 or start + 1 >= size:
            break
        if text[start + 1] != OPEN:
            pos = start + 2
            continue
        close = text.find(b"]", start + 2)
        if close == -1:
            break
        links.append(bytes(text[start + 2:close]))
        pos = close + 1
    return links


def split_link(raw: str) -> Tuple[str, Optional[str]]:
    """Split a raw link token into (target, label); label is None when absent."""
    wikilinks = mwparserfromhell.parse(f"[[{raw}]]").filter_wikilinks(recursive=False)
    if len(wikilinks) == 1:
        link = wikilinks[0]
        label = str(link.text) if link.text is not None else None
        return str(link.title).strip(), label
    # Not something mwparserfromhell accepts as a wikilink (e.g. contains a newline)
    target, sep, label = raw.partition("|")
    return target.strip(), label if sep else None
