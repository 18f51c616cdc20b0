from __future__ import annotations

from typing import Mapping, Optional

from wikinew.core.domain.entities import CanonicalUI, DocRef, InputMode, LegacyUI, NewNode

# Request parameter names.
TOCREATE = "tocreate"
SPACE_REFERENCE = "spaceReference"
NAME = "name"
SPACE = "space"  # deprecated, use spaceReference
PAGE = "page"  # deprecated, use name
TYPE = "type"
TEMPLATE = "template"
TEMPLATE_PROVIDER = "templateprovider"

KNOWN_PARAMETERS = (TOCREATE, SPACE_REFERENCE, NAME, SPACE, PAGE, TYPE, TEMPLATE, TEMPLATE_PROVIDER)


def normalize_input(
    current: DocRef,
    exists: bool,
    params: Mapping[str, Optional[str]],
) -> InputMode:
    """Pick the input mode for a create request.

    A current document that does not exist yet is the target itself. On an
    existing document, the deprecated ``space``/``page`` parameters win over
    ``spaceReference``/``name`` whenever either of them is present.
    """
    if not exists:
        return NewNode(current=current)
    if params.get(SPACE) is not None or params.get(PAGE) is not None:
        return LegacyUI(space_param=params.get(SPACE), page_param=params.get(PAGE))
    return CanonicalUI(space_param=params.get(SPACE_REFERENCE), name_param=params.get(NAME))
