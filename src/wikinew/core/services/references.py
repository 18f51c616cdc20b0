"""String form of wiki references.

Syntax: ``[wiki:]Space[.SubSpace...][.Page]``. A backslash escapes the next
character, so ``X\\.Y`` is the single segment ``X.Y``. The local form drops
the wiki prefix.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from wikinew.core.domain.entities import WEBHOME, DocRef, SpaceRef, WikiRef

ESCAPE = "\\"
SPACE_SEPARATOR = "."
WIKI_SEPARATOR = ":"
_SPECIAL = (ESCAPE, SPACE_SEPARATOR, WIKI_SEPARATOR)


def escape_segment(segment: str) -> str:
    out = []
    for ch in segment:
        if ch in _SPECIAL:
            out.append(ESCAPE)
        out.append(ch)
    return "".join(out)


def _split_wiki(text: str) -> Tuple[Optional[str], str]:
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == ESCAPE:
            i += 2
            continue
        if ch == WIKI_SEPARATOR:
            return text[:i], text[i + 1 :]
        i += 1
    return None, text


def _split_segments(text: str) -> List[str]:
    segments: List[str] = []
    current: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == ESCAPE:
            if i + 1 < len(text):
                current.append(text[i + 1])
                i += 2
                continue
            current.append(ch)
        elif ch == SPACE_SEPARATOR:
            segments.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    segments.append("".join(current))
    return segments


def _wiki_for(prefix: Optional[str], default: WikiRef) -> WikiRef:
    if prefix is None:
        return default
    if not prefix:
        raise ValueError("Empty wiki name in reference")
    return WikiRef(prefix)


def resolve_space(text: str, wiki: WikiRef) -> SpaceRef:
    """Parse a (possibly nested) space reference relative to ``wiki``."""
    if not text:
        raise ValueError("Empty space reference")
    prefix, rest = _split_wiki(text)
    segments = _split_segments(rest)
    if any(not s for s in segments):
        raise ValueError(f"Empty space name in reference {text!r}")
    return SpaceRef.from_segments(_wiki_for(prefix, wiki), segments)


def resolve_document(
    text: str,
    wiki: WikiRef,
    default_space: Optional[SpaceRef] = None,
) -> DocRef:
    """Parse a document reference.

    A bare name lands in ``default_space``; an empty page name means the
    space homepage.
    """
    if not text:
        raise ValueError("Empty document reference")
    prefix, rest = _split_wiki(text)
    target_wiki = _wiki_for(prefix, wiki)
    segments = _split_segments(rest)
    name = segments[-1] or WEBHOME
    space_segments = segments[:-1]
    if not space_segments:
        if default_space is None:
            raise ValueError(f"No space in document reference {text!r}")
        space = SpaceRef.from_segments(target_wiki, default_space.segments)
    else:
        if any(not s for s in space_segments):
            raise ValueError(f"Empty space name in reference {text!r}")
        space = SpaceRef.from_segments(target_wiki, space_segments)
    return DocRef(space=space, name=name)


def serialize_space(space: Optional[SpaceRef]) -> str:
    """Local form of a space; the top level (None) serializes to ``""``."""
    if space is None:
        return ""
    return SPACE_SEPARATOR.join(escape_segment(s) for s in space.segments)


def serialize_document(doc: DocRef, with_wiki: bool = False) -> str:
    local = f"{serialize_space(doc.space)}{SPACE_SEPARATOR}{escape_segment(doc.name)}"
    if with_wiki:
        return f"{escape_segment(doc.wiki.name)}{WIKI_SEPARATOR}{local}"
    return local
