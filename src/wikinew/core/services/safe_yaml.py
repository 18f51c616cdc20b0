import re
from typing import Any, Dict, Tuple

import frontmatter
import yaml

# Opening and closing "---" lines; the body starts right after the closing
# line break and is kept byte for byte.
_FRONT_MATTER = re.compile(
    r"\A---[ \t]*\r?\n(?P<fm>.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)


def _safe_handler() -> frontmatter.YAMLHandler:
    # Page files come from the content tree, so never allow python/object tags.
    handler = frontmatter.YAMLHandler()
    handler.Loader = yaml.SafeLoader
    return handler


def split_page(text: str) -> Tuple[Dict[str, Any], str]:
    """Return the front matter mapping and the untrimmed body of a page.

    Pages without a front matter block yield an empty mapping and the text as
    the body. Whitespace is never stripped from the body, since the conflict
    check compares it literally.
    """
    match = _FRONT_MATTER.match(text)
    if match is None:
        return {}, text
    metadata = _safe_handler().load(match.group("fm"), Loader=yaml.SafeLoader)
    if not isinstance(metadata, dict):
        metadata = {}
    return dict(metadata), text[match.end():]
