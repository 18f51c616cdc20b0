"""Shared pytest fixtures."""

import pytest

import wikinew.core.services.observability as observability
from wikinew.core.domain.entities import DocRef, SpaceRef, WikiRef


@pytest.fixture(autouse=True)
def isolated_logging(monkeypatch):
    """Keep log settings and the cached run id from leaking between tests."""
    for name in ("WIKINEW_DEBUG", "WIKINEW_LOG_FORMAT", "WIKINEW_LOG_SILENT", "WIKINEW_RUN_ID"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(observability, "_current_run_id", None)
    yield


@pytest.fixture
def wiki():
    return WikiRef("xwiki")


@pytest.fixture
def doc(wiki):
    """Build a document reference from dotted segments, e.g. doc("X.Y.WebHome")."""

    def _doc(path: str) -> DocRef:
        *spaces, name = path.split(".")
        return DocRef(space=SpaceRef.from_segments(wiki, spaces), name=name)

    return _doc
