"""Template gate: decide whether a resolved address may be committed.

Address completeness and template completeness are separate checks. A fully
computed address is still not enough to commit while template providers are
available in its scope and the request has not picked one (or explicitly
picked none).
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple

from wikinew.core.domain.entities import (
    WEBHOME,
    CreationPlan,
    DocRef,
    GateResult,
    Incomplete,
    IncompleteReason,
    Proceed,
    ScopeViolation,
    SpaceRef,
    TemplateProviderRecord,
    WikiRef,
)
from wikinew.core.services.error_codes import ErrorCode, WikinewError
from wikinew.core.services.observability import log_lookup_failure
from wikinew.core.services.references import serialize_document, serialize_space

ProviderLookup = Callable[[DocRef], Optional[TemplateProviderRecord]]
CandidateQuery = Callable[[], Sequence[Tuple[DocRef, TemplateProviderRecord]]]
DocumentResolver = Callable[[str, WikiRef, Optional[SpaceRef]], DocRef]


def compute_target(plan: CreationPlan, wiki: WikiRef) -> Optional[DocRef]:
    """Return the document a plan creates, or None when it has no space.

    A container becomes the homepage of a new space nested under the parent
    space, or directly under the wiki at the top level. A terminal document
    needs a concrete parent space.
    """
    if not plan.has_target:
        return None
    if plan.is_container:
        parent = plan.parent_space if plan.parent_space is not None else wiki
        return DocRef(space=SpaceRef(name=plan.leaf_name, parent=parent), name=WEBHOME)
    if plan.parent_space is None:
        return None
    return DocRef(space=plan.parent_space, name=plan.leaf_name)


def creation_scope(plan: CreationPlan) -> str:
    """The scope checked against allow-lists: the space the node is created in."""
    return serialize_space(plan.parent_space)


def template_not_available(
    provider: TemplateProviderRecord, scope: str, leaf_name: str
) -> WikinewError:
    template = serialize_document(provider.template_ref) if provider.template_ref else ""
    return WikinewError(
        code=ErrorCode.TEMPLATE_NOT_AVAILABLE,
        message=(
            f"Template {template} cannot be used in space {scope or '(top level)'} "
            f"when creating page {leaf_name}"
        ),
        details={
            "template": template,
            "scope": scope,
            "leaf_name": leaf_name,
            "allowed_scopes": list(provider.allowed_scopes),
        },
    )


class TemplateGate:
    """Second gate of a create request, run after the address is resolved.

    Args:
        default_space: Space of the document the request was made from. Bare
            references resolve against it, and the providers offered when no
            template was chosen are the ones allowed there. Without it the
            offer uses the creation scope.
    """

    def __init__(
        self,
        wiki: WikiRef,
        lookup_provider: ProviderLookup,
        list_provider_candidates: CandidateQuery,
        resolve_document: DocumentResolver,
        placeholder: Optional[DocRef] = None,
        default_space: Optional[SpaceRef] = None,
    ):
        self._wiki = wiki
        self._lookup_provider = lookup_provider
        self._list_provider_candidates = list_provider_candidates
        self._resolve_document = resolve_document
        self._placeholder = placeholder
        self._default_space = default_space

    def gate(
        self,
        plan: CreationPlan,
        template_provider_param: Optional[str],
        template_param: Optional[str],
    ) -> GateResult:
        target = compute_target(plan, self._wiki)
        if target is None:
            reason = IncompleteReason.NO_SPACE if plan.has_target else IncompleteReason.NO_NAME
            return Incomplete(candidates=[], reason=reason)

        scope = creation_scope(plan)
        offer_scope = serialize_space(self._default_space) if self._default_space else scope

        record = None
        if template_provider_param:
            record = self.lookup_provider(template_provider_param)

        if record is not None:
            template = record.template_ref
            if not record.allows(scope):
                return ScopeViolation(
                    provider=record,
                    scope=scope,
                    leaf_name=plan.leaf_name,
                    error=template_not_available(record, scope, plan.leaf_name),
                )
        else:
            template = self.parse_template(template_param)

        # An empty parameter still counts as a choice ("no template").
        if template_provider_param is None and template_param is None:
            candidates = self.providers_in_scope(offer_scope)
            if candidates:
                return Incomplete(
                    candidates=candidates,
                    reason=IncompleteReason.TEMPLATE_NOT_CHOSEN,
                    target=target,
                )

        return Proceed(template=template)

    def lookup_provider(self, raw: str) -> Optional[TemplateProviderRecord]:
        try:
            ref = self._resolve_document(raw, self._wiki, self._default_space)
            return self._lookup_provider(ref)
        except Exception as exc:
            log_lookup_failure("lookup_provider", raw, exc)
            return None

    def parse_template(self, raw: Optional[str]) -> Optional[DocRef]:
        if not raw:
            return None
        try:
            return self._resolve_document(raw, self._wiki, self._default_space)
        except Exception as exc:
            log_lookup_failure("resolve_document", raw, exc)
            return None

    def providers_in_scope(self, scope: str) -> List[TemplateProviderRecord]:
        """Providers offered in ``scope``: unrestricted ones and those listing it."""
        try:
            candidates = list(self._list_provider_candidates())
        except Exception as exc:
            log_lookup_failure("list_provider_candidates", scope, exc)
            return []

        available = []
        for ref, record in candidates:
            if self._placeholder is not None and ref == self._placeholder:
                continue
            if record.allows(scope):
                available.append(record)
        return available
