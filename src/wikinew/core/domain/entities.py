from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple, Union

from wikinew.core.services.error_codes import WikinewError

WEBHOME = "WebHome"


@dataclass(frozen=True)
class WikiRef:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class SpaceRef:
    """A space, nested under a wiki or under another space.

    Equality is structural, so two references built from the same segments in
    the same wiki compare equal.
    """

    name: str
    parent: Union[WikiRef, "SpaceRef"]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Space name must not be empty")

    @classmethod
    def top_level(cls, name: str, wiki: WikiRef) -> "SpaceRef":
        return cls(name=name, parent=wiki)

    @classmethod
    def from_segments(cls, wiki: WikiRef, segments: Iterable[str]) -> "SpaceRef":
        parent: Union[WikiRef, SpaceRef] = wiki
        for segment in segments:
            parent = cls(name=segment, parent=parent)
        if not isinstance(parent, SpaceRef):
            raise ValueError("A space reference needs at least one segment")
        return parent

    @property
    def wiki(self) -> WikiRef:
        node: Union[WikiRef, SpaceRef] = self
        while isinstance(node, SpaceRef):
            node = node.parent
        return node

    @property
    def parent_space(self) -> Optional["SpaceRef"]:
        return self.parent if isinstance(self.parent, SpaceRef) else None

    @property
    def is_top_level(self) -> bool:
        return isinstance(self.parent, WikiRef)

    @property
    def segments(self) -> Tuple[str, ...]:
        names: List[str] = []
        node: Union[WikiRef, SpaceRef] = self
        while isinstance(node, SpaceRef):
            names.append(node.name)
            node = node.parent
        return tuple(reversed(names))

    def child(self, name: str) -> "SpaceRef":
        return SpaceRef(name=name, parent=self)

    def __str__(self) -> str:
        return f"{self.wiki.name}:{'.'.join(self.segments)}"


@dataclass(frozen=True)
class DocRef:
    space: SpaceRef
    name: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Document name must not be empty")

    @property
    def wiki(self) -> WikiRef:
        return self.space.wiki

    @property
    def is_homepage(self) -> bool:
        return self.name == WEBHOME

    def __str__(self) -> str:
        return f"{self.space}.{self.name}"


class ToCreate(str, Enum):
    TERMINAL = "terminal"
    NONTERMINAL = "nonterminal"
    SPACE = "space"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["ToCreate"]:
        """Return the matching member, or None for absent, blank or unknown values."""
        if raw is None or not raw.strip():
            return None
        try:
            return cls(raw)
        except ValueError:
            return None


@dataclass(frozen=True)
class NewNode:
    """The current location does not exist yet; derive the target from it."""

    current: DocRef


@dataclass(frozen=True)
class CanonicalUI:
    space_param: Optional[str] = None
    name_param: Optional[str] = None


@dataclass(frozen=True)
class LegacyUI:
    """Deprecated `space`/`page` parameters; `space` is an unescaped name."""

    space_param: Optional[str] = None
    page_param: Optional[str] = None


InputMode = Union[NewNode, CanonicalUI, LegacyUI]


@dataclass(frozen=True)
class CreationPlan:
    """Where and what to create, before template and conflict checks.

    Attributes:
        parent_space: The space the new node goes into. None means top level,
            which is a meaningful value, not a missing one.
        leaf_name: The new document name, or the new container name when
            is_container is True. May be empty; see has_target.
        is_container: True for a container (space homepage) node, False for a
            terminal document.
    """

    parent_space: Optional[SpaceRef]
    leaf_name: Optional[str]
    is_container: bool

    @property
    def has_target(self) -> bool:
        return bool(self.leaf_name)


@dataclass(frozen=True)
class TemplateProviderRecord:
    """A registry record pairing a template with the scopes where it may be used.

    An empty allowed_scopes tuple means the template is allowed everywhere.
    """

    reference: Optional[DocRef]
    template_ref: Optional[DocRef]
    allowed_scopes: Tuple[str, ...] = ()

    def allows(self, scope: str) -> bool:
        return not self.allowed_scopes or scope in self.allowed_scopes


@dataclass(frozen=True)
class ContentSnapshot:
    body: str
    objects: Tuple[Optional[Any], ...] = ()


class IncompleteReason(str, Enum):
    NO_NAME = "no_name"
    NO_SPACE = "no_space"
    TEMPLATE_NOT_CHOSEN = "template_not_chosen"
    TYPE_NOT_CHOSEN = "type_not_chosen"


@dataclass
class Committed:
    target: DocRef
    template: Optional[DocRef] = None
    title: Optional[str] = None
    content_type: Optional[str] = None


@dataclass
class Incomplete:
    """More input is needed before anything can be created.

    Attributes:
        candidates: Template providers the user may choose from. Empty when the
            missing input is a name, a space or a content type.
        reason: Which piece of input is missing.
        target: The computed target, when one was computable.
    """

    candidates: List[TemplateProviderRecord] = field(default_factory=list)
    reason: IncompleteReason = IncompleteReason.NO_NAME
    target: Optional[DocRef] = None


@dataclass
class ScopeViolation:
    provider: TemplateProviderRecord
    scope: str
    leaf_name: str
    error: Optional[WikinewError] = None

    @property
    def allowed_scopes(self) -> Tuple[str, ...]:
        return self.provider.allowed_scopes


@dataclass
class Conflict:
    existing: DocRef
    error: Optional[WikinewError] = None


@dataclass
class Proceed:
    template: Optional[DocRef] = None


Outcome = Union[Committed, Incomplete, ScopeViolation, Conflict]
GateResult = Union[Proceed, Incomplete, ScopeViolation]


@dataclass(frozen=True)
class EditTarget:
    """Arguments for building the edit-view URL of a committed target."""

    space_path: str
    page: str
    query: str
    action: str = "edit"


@dataclass
class CreateRequestResult:
    """Result of running a create request through the CLI-facing use case.

    Attributes:
        current: The document the request was made from.
        current_exists: Whether that document already exists in the store.
        mode: The input mode selected for the request.
        plan: The resolved creation plan.
        outcome: The final outcome.
        edit_target: Edit-view arguments, only set for a Committed outcome.
    """

    current: DocRef
    current_exists: bool
    mode: InputMode
    plan: CreationPlan
    outcome: Outcome
    edit_target: Optional[EditTarget] = None
