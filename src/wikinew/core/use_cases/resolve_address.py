from __future__ import annotations

from typing import Callable, Optional

from wikinew.core.domain.entities import (
    WEBHOME,
    CanonicalUI,
    CreationPlan,
    InputMode,
    LegacyUI,
    NewNode,
    SpaceRef,
    ToCreate,
    WikiRef,
)
from wikinew.core.services.observability import log_debug, log_lookup_failure

SpaceResolver = Callable[[str, WikiRef], SpaceRef]


class AddressResolver:
    """Compute where a new node goes and whether it is a container.

    Args:
        wiki: The wiki of the current request; legacy and top-level
            references are created in it.
        resolve_space: Parser for nested space references such as ``X.Y``.
    """

    def __init__(self, wiki: WikiRef, resolve_space: SpaceResolver):
        self._wiki = wiki
        self._resolve_space = resolve_space

    def resolve(self, mode: InputMode, to_create: Optional[ToCreate]) -> CreationPlan:
        if isinstance(mode, NewNode):
            plan = self._from_new_node(mode, to_create)
        elif isinstance(mode, CanonicalUI):
            plan = self._from_canonical(mode, to_create)
        elif isinstance(mode, LegacyUI):
            plan = self._from_legacy(mode, to_create)
        else:
            raise TypeError(f"Unsupported input mode: {type(mode).__name__}")

        log_debug(
            operation="debug.plan_resolved",
            details={
                "mode": type(mode).__name__,
                "parent_space": str(plan.parent_space) if plan.parent_space else None,
                "leaf_name": plan.leaf_name,
                "is_container": plan.is_container,
            },
        )
        return plan

    def _from_new_node(self, mode: NewNode, to_create: Optional[ToCreate]) -> CreationPlan:
        space = mode.current.space
        name = mode.current.name
        parent: Optional[SpaceRef]

        if name == WEBHOME:
            # A space homepage behaves like a container named after its space.
            is_container = True
            name = space.name
            # None for a top-level space; only explicit input can fill it in.
            parent = space.parent_space
        else:
            is_container = False
            parent = space

        if is_container and to_create is ToCreate.TERMINAL:
            is_container = False
        elif not is_container and to_create is ToCreate.NONTERMINAL:
            is_container = True

        return CreationPlan(parent_space=parent, leaf_name=name, is_container=is_container)

    def _from_canonical(self, mode: CanonicalUI, to_create: Optional[ToCreate]) -> CreationPlan:
        parent: Optional[SpaceRef] = None
        # An empty spaceReference stands for the top level.
        if mode.space_param:
            try:
                parent = self._resolve_space(mode.space_param, self._wiki)
            except Exception as exc:
                log_lookup_failure("resolve_space", mode.space_param, exc)
                parent = None

        return CreationPlan(
            parent_space=parent,
            leaf_name=mode.name_param,
            is_container=to_create is not ToCreate.TERMINAL,
        )

    def _from_legacy(self, mode: LegacyUI, to_create: Optional[ToCreate]) -> CreationPlan:
        # The deprecated space parameter is a plain name, never a nested reference.
        if to_create is ToCreate.SPACE:
            return CreationPlan(parent_space=None, leaf_name=mode.space_param, is_container=True)

        parent = None
        if mode.space_param:
            parent = SpaceRef.top_level(mode.space_param, self._wiki)
        return CreationPlan(parent_space=parent, leaf_name=mode.page_param, is_container=False)
