"""Template provider records read from the content store.

A template provider is a page holding an object of the provider class::

    objects:
      - class: XWiki.TemplateProviderClass
        template: XWiki.MyTemplate
        spaces: [Main, Projects.Archive]

``spaces`` is the allow-list of scopes; leaving it empty allows every scope.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple

import yaml

from wikinew.core.domain.entities import DocRef, TemplateProviderRecord
from wikinew.core.services.content_store import FileContentStore
from wikinew.core.services.observability import log_lookup_failure
from wikinew.core.services.references import resolve_document
from wikinew.core.services.site_config import SiteConfig

CLASS_PROPERTY = "class"
TEMPLATE_PROPERTY = "template"
SPACES_PROPERTY = "spaces"


def _normalize_scopes(raw: Any) -> Tuple[str, ...]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        return ()
    scopes = []
    for item in raw:
        if isinstance(item, str) and item.strip():
            scopes.append(item.strip())
    return tuple(scopes)


class FileTemplateRegistry:
    def __init__(self, store: FileContentStore, config: SiteConfig):
        self._store = store
        self._config = config
        self._provider_class = resolve_document(config.provider_class, config.wiki)

    def _provider_object(self, ref: DocRef, objects: Tuple[Any, ...]) -> Optional[Mapping[str, Any]]:
        for obj in objects:
            if not isinstance(obj, Mapping):
                continue
            class_name = obj.get(CLASS_PROPERTY)
            if not isinstance(class_name, str) or not class_name:
                continue
            if resolve_document(class_name, ref.wiki, ref.space) == self._provider_class:
                return obj
        return None

    def lookup_provider(self, ref: DocRef) -> Optional[TemplateProviderRecord]:
        snapshot = self._store.lookup_content(ref)
        if snapshot is None:
            return None
        obj = self._provider_object(ref, snapshot.objects)
        if obj is None:
            return None

        template_ref = None
        raw_template = obj.get(TEMPLATE_PROPERTY)
        if isinstance(raw_template, str) and raw_template.strip():
            template_ref = resolve_document(raw_template.strip(), ref.wiki, ref.space)

        return TemplateProviderRecord(
            reference=ref,
            template_ref=template_ref,
            allowed_scopes=_normalize_scopes(obj.get(SPACES_PROPERTY)),
        )

    def list_provider_candidates(self) -> List[Tuple[DocRef, TemplateProviderRecord]]:
        candidates = []
        for ref in self._store.iter_documents():
            try:
                record = self.lookup_provider(ref)
            except (ValueError, yaml.YAMLError) as exc:
                # One malformed page must not hide the other providers.
                log_lookup_failure("lookup_provider", ref, exc)
                continue
            if record is not None:
                candidates.append((ref, record))
        return candidates
