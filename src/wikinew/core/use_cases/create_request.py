from __future__ import annotations

from typing import Callable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from wikinew.core.domain.entities import (
    Committed,
    Conflict,
    ContentSnapshot,
    CreateRequestResult,
    DocRef,
    EditTarget,
    Incomplete,
    IncompleteReason,
    Outcome,
    Proceed,
    SpaceRef,
    TemplateProviderRecord,
    ToCreate,
    WikiRef,
)
from wikinew.core.services.content_store import FileContentStore
from wikinew.core.services.error_codes import ErrorCode, WikinewError
from wikinew.core.services.observability import (
    get_current_run_id,
    log_debug,
    log_lookup_failure,
    log_operation,
)
from wikinew.core.services.references import (
    resolve_document,
    resolve_space,
    serialize_document,
    serialize_space,
)
from wikinew.core.services.site_config import load_site_config
from wikinew.core.services.template_registry import FileTemplateRegistry
from wikinew.core.use_cases.check_conflict import check_conflict, conflict_outcome
from wikinew.core.use_cases.normalize_input import (
    TEMPLATE,
    TEMPLATE_PROVIDER,
    TOCREATE,
    TYPE,
    normalize_input,
)
from wikinew.core.use_cases.resolve_address import AddressResolver
from wikinew.core.use_cases.template_gate import TemplateGate, compute_target


def build_edit_target(outcome: Committed) -> EditTarget:
    """Edit-view arguments: space path, page, and the template/title query."""
    template = serialize_document(outcome.template) if outcome.template else ""
    title = outcome.title or outcome.target.name
    return EditTarget(
        space_path=serialize_space(outcome.target.space),
        page=outcome.target.name,
        query=f"template={quote(template, safe='')}&title={quote(title, safe='')}",
    )


class CreateRequestHandler:
    """Run one create request through normalize, resolve, gate and conflict check.

    Every lookup goes through the collaborators passed in here, so the handler
    holds no state between requests and never touches global context.
    """

    def __init__(
        self,
        resolve_space: Callable[[str, WikiRef], SpaceRef],
        resolve_document: Callable[[str, WikiRef, Optional[SpaceRef]], DocRef],
        lookup_provider: Callable[[DocRef], Optional[TemplateProviderRecord]],
        list_provider_candidates: Callable[[], Sequence[Tuple[DocRef, TemplateProviderRecord]]],
        lookup_content: Callable[[DocRef], Optional[ContentSnapshot]],
        placeholder_provider: Optional[str] = None,
        require_type: bool = False,
    ):
        self._resolve_space = resolve_space
        self._resolve_document = resolve_document
        self._lookup_provider = lookup_provider
        self._list_provider_candidates = list_provider_candidates
        self._lookup_content = lookup_content
        self._placeholder_provider = placeholder_provider
        self._require_type = require_type

    def template_gate(self, wiki: WikiRef, default_space: Optional[SpaceRef] = None) -> TemplateGate:
        placeholder = None
        if self._placeholder_provider:
            try:
                placeholder = self._resolve_document(self._placeholder_provider, wiki, None)
            except Exception as exc:
                log_lookup_failure("resolve_document", self._placeholder_provider, exc)
        return TemplateGate(
            wiki=wiki,
            lookup_provider=self._lookup_provider,
            list_provider_candidates=self._list_provider_candidates,
            resolve_document=self._resolve_document,
            placeholder=placeholder,
            default_space=default_space,
        )

    def handle(
        self,
        current: DocRef,
        exists: bool,
        params: Mapping[str, Optional[str]],
    ) -> CreateRequestResult:
        wiki = current.wiki
        mode = normalize_input(current, exists, params)
        log_debug(
            operation="debug.input_normalized",
            details={"current": str(current), "exists": exists, "mode": type(mode).__name__},
        )

        to_create = ToCreate.parse(params.get(TOCREATE))
        plan = AddressResolver(wiki, self._resolve_space).resolve(mode, to_create)

        outcome: Outcome
        if not plan.has_target:
            outcome = Incomplete(candidates=[], reason=IncompleteReason.NO_NAME)
        else:
            gate = self.template_gate(wiki, default_space=current.space)
            gate_result = gate.gate(plan, params.get(TEMPLATE_PROVIDER), params.get(TEMPLATE))
            if isinstance(gate_result, Proceed):
                outcome = self._finish(
                    target=compute_target(plan, wiki),
                    title=plan.leaf_name,
                    template=gate_result.template,
                    content_type=params.get(TYPE),
                )
            else:
                outcome = gate_result

        edit_target = build_edit_target(outcome) if isinstance(outcome, Committed) else None
        return CreateRequestResult(
            current=current,
            current_exists=exists,
            mode=mode,
            plan=plan,
            outcome=outcome,
            edit_target=edit_target,
        )

    def _finish(
        self,
        target: Optional[DocRef],
        title: Optional[str],
        template: Optional[DocRef],
        content_type: Optional[str],
    ) -> Outcome:
        if target is None:
            # The gate only proceeds with a computable target.
            raise RuntimeError("Template gate proceeded without a target")

        existing = check_conflict(target, self._lookup_content)
        if existing is not None:
            return conflict_outcome(existing)

        if self._require_type and content_type is None:
            return Incomplete(candidates=[], reason=IncompleteReason.TYPE_NOT_CHOSEN, target=target)

        return Committed(
            target=target,
            template=template,
            title=title,
            content_type=content_type,
        )


class CreateRequestUseCase:
    def __init__(self, root_dir: str):
        self._config = load_site_config(root_dir)
        self.root_dir = self._config.root_dir
        self._store = FileContentStore(self._config)
        self._registry = FileTemplateRegistry(self._store, self._config)
        self._handler = CreateRequestHandler(
            resolve_space=resolve_space,
            resolve_document=resolve_document,
            lookup_provider=self._registry.lookup_provider,
            list_provider_candidates=self._registry.list_provider_candidates,
            lookup_content=self._store.lookup_content,
            placeholder_provider=self._config.placeholder_provider,
            require_type=self._config.require_type,
        )

    def parse_document(self, raw: str) -> DocRef:
        try:
            return resolve_document(raw, self._config.wiki)
        except ValueError as exc:
            raise WikinewError(
                code=ErrorCode.INVALID_REFERENCE,
                message=f"Invalid document reference: {raw!r} ({exc})",
                details={"reference": raw},
            ) from exc

    def parse_space(self, raw: str) -> Optional[SpaceRef]:
        if not raw:
            return None
        try:
            return resolve_space(raw, self._config.wiki)
        except ValueError as exc:
            raise WikinewError(
                code=ErrorCode.INVALID_REFERENCE,
                message=f"Invalid space reference: {raw!r} ({exc})",
                details={"reference": raw},
            ) from exc

    def document_exists(self, ref: DocRef) -> bool:
        try:
            return self._store.exists(ref)
        except Exception as exc:
            log_lookup_failure("document_exists", ref, exc)
            return False

    def execute(
        self,
        current: str,
        params: Mapping[str, Optional[str]],
        exists: Optional[bool] = None,
    ) -> CreateRequestResult:
        with log_operation(
            operation="create_request",
            details={"current": current},
            run_id=get_current_run_id(),
        ) as ctx:
            current_ref = self.parse_document(current)
            current_exists = self.document_exists(current_ref) if exists is None else exists
            result = self._handler.handle(current_ref, current_exists, params)
            ctx["details"]["outcome"] = type(result.outcome).__name__
            if isinstance(result.outcome, Committed):
                ctx["details"]["target"] = str(result.outcome.target)
            return result

    def providers(self, space: str) -> List[TemplateProviderRecord]:
        """Template providers offered when creating inside ``space`` ("" = top level)."""
        scope = serialize_space(self.parse_space(space))
        gate = self._handler.template_gate(self._config.wiki)
        return gate.providers_in_scope(scope)

    def conflict(self, document: str) -> Optional[Conflict]:
        ref = self.parse_document(document)
        existing = check_conflict(ref, self._store.lookup_content)
        return conflict_outcome(existing) if existing is not None else None
