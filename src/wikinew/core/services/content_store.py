"""File-backed content store.

Each document lives at ``<content_root>/<wiki>/<space>/.../<Page>.md``. The
optional front matter holds an ``objects`` list; ``null`` entries are the
gaps left behind by removed objects.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional

from wikinew.core.domain.entities import ContentSnapshot, DocRef, SpaceRef
from wikinew.core.services.safe_yaml import split_page
from wikinew.core.services.site_config import SiteConfig

PAGE_SUFFIX = ".md"
_FORBIDDEN_SEGMENTS = {"", ".", ".."}


def _check_segment(segment: str) -> str:
    if segment in _FORBIDDEN_SEGMENTS or "/" in segment or "\\" in segment:
        raise ValueError(f"Name cannot be stored as a path segment: {segment!r}")
    return segment


class FileContentStore:
    def __init__(self, config: SiteConfig):
        self._config = config

    def path_for(self, ref: DocRef) -> Path:
        parts = [_check_segment(ref.wiki.name)]
        parts.extend(_check_segment(s) for s in ref.space.segments)
        return self._config.content_dir.joinpath(*parts, _check_segment(ref.name) + PAGE_SUFFIX)

    def exists(self, ref: DocRef) -> bool:
        return self.path_for(ref).is_file()

    def lookup_content(self, ref: DocRef) -> Optional[ContentSnapshot]:
        path = self.path_for(ref)
        if not path.is_file():
            return None
        metadata, body = split_page(path.read_text(encoding="utf-8"))
        raw_objects = metadata.get("objects")
        objects = tuple(raw_objects) if isinstance(raw_objects, list) else ()
        return ContentSnapshot(body=body, objects=objects)

    def iter_documents(self) -> Iterator[DocRef]:
        wiki = self._config.wiki
        wiki_dir = self._config.content_dir / wiki.name
        if not wiki_dir.is_dir():
            return
        for path in sorted(wiki_dir.rglob(f"*{PAGE_SUFFIX}")):
            if not path.is_file():
                continue
            rel_parts = path.relative_to(wiki_dir).parts
            # Pages directly under the wiki directory have no space.
            if len(rel_parts) < 2:
                continue
            space = SpaceRef.from_segments(wiki, rel_parts[:-1])
            yield DocRef(space=space, name=path.name[: -len(PAGE_SUFFIX)])
