import pytest

from wikinew.core.domain.entities import (
    CanonicalUI,
    Committed,
    Conflict,
    ContentSnapshot,
    DocRef,
    EditTarget,
    Incomplete,
    IncompleteReason,
    LegacyUI,
    NewNode,
    ScopeViolation,
    SpaceRef,
    TemplateProviderRecord,
)
from wikinew.core.services.error_codes import ErrorCode, WikinewError
from wikinew.core.services.references import resolve_document, resolve_space
from wikinew.core.use_cases.create_request import (
    CreateRequestHandler,
    CreateRequestUseCase,
    build_edit_target,
)


class InMemoryWiki:
    """Content and template providers kept in dictionaries."""

    def __init__(self):
        self.content = {}
        self.providers = {}

    def add_provider(self, ref, template_ref, scopes=()):
        self.providers[ref] = TemplateProviderRecord(
            reference=ref, template_ref=template_ref, allowed_scopes=tuple(scopes)
        )

    def lookup_provider(self, ref):
        return self.providers.get(ref)

    def list_provider_candidates(self):
        return list(self.providers.items())

    def lookup_content(self, ref):
        return self.content.get(ref)

    def handler(self, **kwargs):
        return CreateRequestHandler(
            resolve_space=resolve_space,
            resolve_document=resolve_document,
            lookup_provider=self.lookup_provider,
            list_provider_candidates=self.list_provider_candidates,
            lookup_content=self.lookup_content,
            **kwargs,
        )


@pytest.fixture
def site():
    return InMemoryWiki()


@pytest.fixture
def with_provider(site, doc):
    def _add(scopes=()):
        site.add_provider(doc("XWiki.MyTemplateProvider"), doc("XWiki.MyTemplate"), scopes)

    return _add


def edit_of(result):
    edit = result.edit_target
    return (edit.space_path, edit.page, edit.action, edit.query)


class TestNewNodeRequests:
    def test_terminal_page(self, site, doc):
        result = site.handler().handle(doc("X.Y"), False, {})
        assert result.mode == NewNode(doc("X.Y"))
        assert result.outcome == Committed(target=doc("X.Y"), title="Y")
        assert edit_of(result) == ("X", "Y", "edit", "template=&title=Y")

    def test_nonterminal_page(self, site, doc):
        result = site.handler().handle(doc("X.Y"), False, {"tocreate": "nonterminal"})
        assert result.outcome.target == doc("X.Y.WebHome")
        assert edit_of(result) == ("X.Y", "WebHome", "edit", "template=&title=Y")

    def test_top_level_space_homepage(self, site, doc):
        result = site.handler().handle(doc("X.WebHome"), False, {})
        assert result.outcome == Committed(target=doc("X.WebHome"), title="X")
        assert edit_of(result) == ("X", "WebHome", "edit", "template=&title=X")

    def test_nested_space_homepage(self, site, doc):
        result = site.handler().handle(doc("X.Y.WebHome"), False, {})
        assert edit_of(result) == ("X.Y", "WebHome", "edit", "template=&title=Y")

    def test_nested_space_homepage_as_terminal(self, site, doc):
        result = site.handler().handle(doc("X.Y.WebHome"), False, {"tocreate": "terminal"})
        assert result.outcome.target == doc("X.Y")
        assert edit_of(result) == ("X", "Y", "edit", "template=&title=Y")

    def test_top_level_homepage_as_terminal_needs_a_space(self, site, doc):
        result = site.handler().handle(doc("X.WebHome"), False, {"tocreate": "terminal"})
        assert result.outcome == Incomplete(candidates=[], reason=IncompleteReason.NO_SPACE)
        assert result.edit_target is None


class TestCanonicalRequests:
    def test_existing_document_without_params(self, site, doc):
        result = site.handler().handle(doc("Main.WebHome"), True, {})
        assert result.mode == CanonicalUI()
        assert result.outcome == Incomplete(candidates=[], reason=IncompleteReason.NO_NAME)

    def test_space_and_name(self, site, doc):
        params = {"spaceReference": "X", "name": "Y"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert result.outcome.target == doc("X.Y.WebHome")
        assert edit_of(result) == ("X.Y", "WebHome", "edit", "template=&title=Y")

    def test_nested_space(self, site, doc):
        params = {"spaceReference": "X.Y", "name": "Z"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert result.outcome.target == doc("X.Y.Z.WebHome")
        assert edit_of(result) == ("X.Y.Z", "WebHome", "edit", "template=&title=Z")

    def test_nested_space_terminal(self, site, doc):
        params = {"spaceReference": "X.Y", "name": "Z", "tocreate": "terminal"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert result.outcome.target == doc("X.Y.Z")
        assert edit_of(result) == ("X.Y", "Z", "edit", "template=&title=Z")

    def test_name_only_creates_top_level_space(self, site, doc):
        result = site.handler().handle(doc("Main.WebHome"), True, {"name": "Y"})
        assert result.outcome.target == doc("Y.WebHome")
        assert edit_of(result) == ("Y", "WebHome", "edit", "template=&title=Y")


class TestLegacyRequests:
    def test_space_and_page(self, site, doc):
        result = site.handler().handle(doc("Main.WebHome"), True, {"space": "X", "page": "Y"})
        assert result.mode == LegacyUI(space_param="X", page_param="Y")
        assert edit_of(result) == ("X", "Y", "edit", "template=&title=Y")

    def test_space_with_dot_is_one_segment(self, site, doc, wiki):
        result = site.handler().handle(doc("Main.WebHome"), True, {"space": "X.Y", "page": "Z"})
        assert result.outcome.target == DocRef(space=SpaceRef.top_level("X.Y", wiki), name="Z")
        assert edit_of(result) == ("X\\.Y", "Z", "edit", "template=&title=Z")

    def test_create_space(self, site, doc):
        result = site.handler().handle(doc("Main.WebHome"), True, {"space": "X", "tocreate": "space"})
        assert result.outcome == Committed(target=doc("X.WebHome"), title="X")
        assert edit_of(result) == ("X", "WebHome", "edit", "template=&title=X")

    def test_create_space_ignores_page(self, site, doc):
        params = {"space": "X", "page": "Y", "tocreate": "space"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert edit_of(result) == ("X", "WebHome", "edit", "template=&title=X")

    def test_create_space_with_dot(self, site, doc):
        params = {"space": "X.Y", "tocreate": "space"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert edit_of(result) == ("X\\.Y", "WebHome", "edit", "template=&title=X.Y")


class TestTemplates:
    def test_available_provider_must_be_chosen(self, site, doc, with_provider):
        with_provider()
        params = {"spaceReference": "X", "name": "Y", "tocreate": "terminal"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert result.outcome == Incomplete(
            candidates=[site.providers[doc("XWiki.MyTemplateProvider")]],
            reason=IncompleteReason.TEMPLATE_NOT_CHOSEN,
            target=doc("X.Y"),
        )
        assert result.edit_target is None

    def test_container_default_with_unrestricted_provider_prompts(self, site, doc, with_provider):
        with_provider()
        result = site.handler().handle(doc("Main.WebHome"), True, {"spaceReference": "X", "name": "Y"})
        assert result.outcome == Incomplete(
            candidates=[site.providers[doc("XWiki.MyTemplateProvider")]],
            reason=IncompleteReason.TEMPLATE_NOT_CHOSEN,
            target=doc("X.Y.WebHome"),
        )

    @pytest.mark.parametrize("scopes,prompted", [(["Main"], True), (["X.Y"], False), (["X"], False)])
    def test_offer_follows_the_current_space(self, site, doc, with_provider, scopes, prompted):
        with_provider(scopes)
        result = site.handler().handle(doc("Main.WebHome"), True, {"spaceReference": "X", "name": "Y"})
        assert isinstance(result.outcome, Incomplete) is prompted
        assert isinstance(result.outcome, Committed) is not prompted

    def test_chosen_provider(self, site, doc, with_provider):
        with_provider()
        params = {
            "spaceReference": "X",
            "name": "Y",
            "tocreate": "terminal",
            "templateprovider": "XWiki.MyTemplateProvider",
        }
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert result.outcome == Committed(
            target=doc("X.Y"), template=doc("XWiki.MyTemplate"), title="Y"
        )
        assert edit_of(result) == ("X", "Y", "edit", "template=XWiki.MyTemplate&title=Y")

    def test_provider_allowed_in_scope(self, site, doc, with_provider):
        with_provider(["X"])
        params = {"spaceReference": "X", "name": "Y", "templateprovider": "XWiki.MyTemplateProvider"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert edit_of(result) == ("X.Y", "WebHome", "edit", "template=XWiki.MyTemplate&title=Y")

    def test_provider_not_allowed_in_scope(self, site, doc, with_provider):
        with_provider(["AnythingButX"])
        params = {"spaceReference": "X", "name": "Y", "templateprovider": "XWiki.MyTemplateProvider"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert isinstance(result.outcome, ScopeViolation)
        assert result.outcome.scope == "X"
        assert result.outcome.error.code == ErrorCode.TEMPLATE_NOT_AVAILABLE
        assert result.edit_target is None

    def test_new_node_provider_not_allowed(self, site, doc, with_provider):
        with_provider(["AnythingButX"])
        result = site.handler().handle(
            doc("X.Y"), False, {"templateprovider": "XWiki.MyTemplateProvider"}
        )
        assert isinstance(result.outcome, ScopeViolation)
        assert result.outcome.leaf_name == "Y"

    def test_new_top_level_space_with_dot_checks_top_level_scope(self, site, wiki, with_provider):
        with_provider(["AnythingButX"])
        current = DocRef(space=SpaceRef.top_level("X.Y", wiki), name="WebHome")
        result = site.handler().handle(current, False, {"templateprovider": "XWiki.MyTemplateProvider"})
        assert isinstance(result.outcome, ScopeViolation)
        assert result.outcome.scope == ""
        assert result.outcome.leaf_name == "X.Y"

    def test_explicit_template(self, site, doc):
        params = {"spaceReference": "X", "name": "Y", "template": "XWiki.MyTemplate"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert result.outcome.template == doc("XWiki.MyTemplate")
        assert edit_of(result) == ("X.Y", "WebHome", "edit", "template=XWiki.MyTemplate&title=Y")

    def test_empty_template_is_an_explicit_choice(self, site, doc, with_provider):
        with_provider()
        params = {"spaceReference": "X", "name": "Y", "template": ""}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert result.outcome == Committed(target=doc("X.Y.WebHome"), title="Y")

    def test_placeholder_provider_is_not_offered(self, site, doc):
        site.add_provider(doc("XWiki.TemplateProviderTemplate"), doc("XWiki.Blank"))
        handler = site.handler(placeholder_provider="XWiki.TemplateProviderTemplate")
        result = handler.handle(doc("Main.WebHome"), True, {"spaceReference": "X", "name": "Y"})
        assert isinstance(result.outcome, Committed)


class TestConflicts:
    def test_existing_content_blocks_creation(self, site, doc):
        site.content[doc("Main.WebHome")] = ContentSnapshot(body="Welcome")
        params = {"spaceReference": "Main", "name": "WebHome", "tocreate": "terminal"}
        result = site.handler().handle(doc("Main.WebHome"), True, params)
        assert isinstance(result.outcome, Conflict)
        assert result.outcome.existing == doc("Main.WebHome")
        assert result.outcome.error == WikinewError(
            code=ErrorCode.DOCUMENT_NOT_EMPTY,
            message="Cannot create document xwiki:Main.WebHome because it already has content",
            details={"existing": "xwiki:Main.WebHome"},
        )

    def test_empty_document_can_be_created(self, site, doc):
        site.content[doc("X.Y")] = ContentSnapshot(body="\n", objects=(None,))
        result = site.handler().handle(doc("X.Y"), True, {"spaceReference": "X", "name": "Y", "tocreate": "terminal"})
        assert isinstance(result.outcome, Committed)

    def test_scope_violation_is_reported_before_conflict(self, site, doc, with_provider):
        with_provider(["AnythingButX"])
        site.content[doc("X.Y")] = ContentSnapshot(body="full")
        params = {"templateprovider": "XWiki.MyTemplateProvider"}
        result = site.handler().handle(doc("X.Y"), False, params)
        assert isinstance(result.outcome, ScopeViolation)


class TestContentType:
    def test_required_type_missing(self, site, doc):
        result = site.handler(require_type=True).handle(doc("X.Y"), False, {})
        assert result.outcome == Incomplete(
            candidates=[], reason=IncompleteReason.TYPE_NOT_CHOSEN, target=doc("X.Y")
        )

    def test_type_is_passed_through(self, site, doc):
        result = site.handler(require_type=True).handle(doc("X.Y"), False, {"type": "blank"})
        assert result.outcome.content_type == "blank"


def test_handling_is_repeatable(site, doc, with_provider):
    with_provider()
    handler = site.handler()
    params = {"spaceReference": "X", "name": "Y"}
    first = handler.handle(doc("Main.WebHome"), True, params)
    second = handler.handle(doc("Main.WebHome"), True, params)
    assert first == second
    assert first.outcome.reason == IncompleteReason.TEMPLATE_NOT_CHOSEN
    assert first.outcome.candidates == [site.providers[doc("XWiki.MyTemplateProvider")]]


def test_edit_query_is_url_encoded(doc, wiki):
    outcome = Committed(
        target=DocRef(space=SpaceRef.top_level("X", wiki), name="My Page"),
        template=DocRef(space=SpaceRef.top_level("A.B", wiki), name="T"),
        title="My Page & more",
    )
    assert build_edit_target(outcome) == EditTarget(
        space_path="X",
        page="My Page",
        query="template=A%5C.B.T&title=My%20Page%20%26%20more",
    )


# File-backed use case


def write_page(root, path, text):
    page = root / "pages" / "xwiki" / path
    page.parent.mkdir(parents=True, exist_ok=True)
    page.write_text(text, encoding="utf-8")


PROVIDER_PAGE = """---
objects:
  - class: XWiki.TemplateProviderClass
    template: XWiki.MyTemplate
    spaces: [Projects]
---
"""


@pytest.fixture
def site_root(tmp_path):
    write_page(tmp_path, "Main/WebHome.md", "Welcome\n")
    write_page(tmp_path, "XWiki/MyTemplate.md", "Template body\n")
    write_page(tmp_path, "XWiki/MyTemplateProvider.md", PROVIDER_PAGE)
    write_page(tmp_path, "XWiki/TemplateProviderTemplate.md", PROVIDER_PAGE.replace("[Projects]", "[]"))
    return tmp_path


class TestCreateRequestUseCase:
    def test_detects_existing_current(self, site_root, doc):
        result = CreateRequestUseCase(str(site_root)).execute("Main.WebHome", {})
        assert result.current_exists is True
        assert result.outcome.reason == IncompleteReason.NO_NAME

    def test_missing_current_is_new(self, site_root, doc):
        result = CreateRequestUseCase(str(site_root)).execute("Sandbox.Notes", {})
        assert result.current_exists is False
        assert result.outcome == Committed(target=doc("Sandbox.Notes"), title="Notes")

    def test_exists_override(self, site_root, doc):
        result = CreateRequestUseCase(str(site_root)).execute("Sandbox.Notes", {}, exists=True)
        assert isinstance(result.outcome, Incomplete)

    def test_provider_candidates_come_from_pages(self, site_root, doc):
        use_case = CreateRequestUseCase(str(site_root))
        # A new page under Projects is offered the providers allowed there.
        result = use_case.execute("Projects.Apollo", {})
        assert result.current_exists is False
        assert result.outcome.reason == IncompleteReason.TEMPLATE_NOT_CHOSEN
        assert [c.reference for c in result.outcome.candidates] == [doc("XWiki.MyTemplateProvider")]

    def test_commit_with_provider(self, site_root, doc):
        params = {
            "spaceReference": "Projects",
            "name": "Apollo",
            "templateprovider": "XWiki.MyTemplateProvider",
        }
        result = CreateRequestUseCase(str(site_root)).execute("Main.WebHome", params)
        assert result.outcome.target == doc("Projects.Apollo.WebHome")
        assert result.outcome.template == doc("XWiki.MyTemplate")

    def test_conflict_with_stored_page(self, site_root):
        params = {"spaceReference": "Main", "name": "WebHome", "tocreate": "terminal"}
        result = CreateRequestUseCase(str(site_root)).execute("Main.WebHome", params)
        assert isinstance(result.outcome, Conflict)

    def test_whitespace_only_page_conflicts(self, site_root, doc):
        (site_root / "pages" / "xwiki" / "Main" / "Blank.md").write_text("   \n\t\n\n", encoding="utf-8")
        use_case = CreateRequestUseCase(str(site_root))
        assert use_case.conflict("Main.Blank").existing == doc("Main.Blank")

    def test_invalid_current_reference(self, site_root):
        with pytest.raises(WikinewError) as excinfo:
            CreateRequestUseCase(str(site_root)).execute("NoSpace", {})
        assert excinfo.value.code == ErrorCode.INVALID_REFERENCE

    def test_providers_by_scope(self, site_root, doc):
        use_case = CreateRequestUseCase(str(site_root))
        assert [r.reference for r in use_case.providers("Projects")] == [doc("XWiki.MyTemplateProvider")]
        assert use_case.providers("") == []

    def test_invalid_scope(self, site_root):
        with pytest.raises(WikinewError) as excinfo:
            CreateRequestUseCase(str(site_root)).providers("A..B")
        assert excinfo.value.code == ErrorCode.INVALID_REFERENCE

    def test_conflict_command(self, site_root, doc):
        use_case = CreateRequestUseCase(str(site_root))
        assert use_case.conflict("Main.WebHome").existing == doc("Main.WebHome")
        assert use_case.conflict("Main.Other") is None

    def test_logs_operation(self, site_root, monkeypatch, capsys):
        monkeypatch.setenv("WIKINEW_LOG_FORMAT", "json")
        CreateRequestUseCase(str(site_root)).execute("Sandbox.Notes", {})
        err = capsys.readouterr().err
        assert '"operation":"create_request"' in err
        assert '"outcome":"Committed"' in err
