from __future__ import annotations

from typing import Callable, Optional

from wikinew.core.domain.entities import Conflict, ContentSnapshot, DocRef
from wikinew.core.services.error_codes import ErrorCode, WikinewError
from wikinew.core.services.observability import log_lookup_failure

ContentLookup = Callable[[DocRef], Optional[ContentSnapshot]]

# Bodies that still count as empty. Kept literal: widening the set changes
# which documents may be overwritten.
EMPTY_BODIES = frozenset({"", "\n", "\\\\"})


def is_empty_content(snapshot: ContentSnapshot) -> bool:
    if snapshot.body not in EMPTY_BODIES:
        return False
    # Removed objects leave None gaps behind; only real objects count.
    return all(obj is None for obj in snapshot.objects)


def check_conflict(target: DocRef, lookup_content: ContentLookup) -> Optional[DocRef]:
    """Return ``target`` if it already holds content, None if it may be created."""
    try:
        snapshot = lookup_content(target)
    except Exception as exc:
        log_lookup_failure("lookup_content", target, exc)
        return None
    if snapshot is None or is_empty_content(snapshot):
        return None
    return target


def conflict_outcome(existing: DocRef) -> Conflict:
    return Conflict(
        existing=existing,
        error=WikinewError(
            code=ErrorCode.DOCUMENT_NOT_EMPTY,
            message=f"Cannot create document {existing} because it already has content",
            details={"existing": str(existing)},
        ),
    )
