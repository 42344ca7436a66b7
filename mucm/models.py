"""
Core data models for MUCM.

A use case is the root aggregate: it owns its scenarios (which own their
steps), its pre/postconditions, references to other use cases, the set of
enabled methodology views and the custom field values collected for each
methodology.

Design Philosophy:
- Cross-aggregate references are by ID, never by object
- Tagged variants (Actor, condition targets) are plain values, not subclasses
- Serializable: every model converts to/from plain dicts for the repositories
- Forward-compatible: unknown keys land in ``extra`` and are written back
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from mucm.errors import ConflictError, NotFoundError, ValidationError

USE_CASE_ID_PATTERN = re.compile(r"^UC-[A-Z0-9]+-\d{3,}$")
SCENARIO_ID_PATTERN = re.compile(r"^(?P<parent>UC-[A-Z0-9]+-\d{3,})-S(?P<index>\d{2,})$")
ACTOR_ID_PATTERN = re.compile(r"^[a-z0-9]+(?:[-_][a-z0-9]+)*$")

KNOWN_RELATIONSHIPS = (
    "depends_on",
    "requires",
    "extends",
    "includes",
    "precedes",
    "alternative_to",
    "must_complete",
)
DEPENDENCY_RELATIONSHIPS = frozenset({"depends_on", "requires"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError as exc:
            raise ValidationError(f"Invalid timestamp '{value}'") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _split_extra(data: dict, known: Iterable[str]) -> dict:
    known = set(known)
    return {k: v for k, v in data.items() if k not in known}


def validate_use_case_id(value: str) -> str:
    if not isinstance(value, str) or not USE_CASE_ID_PATTERN.match(value):
        raise ValidationError(
            f"Invalid use case ID '{value}'",
            hint="Use case IDs look like UC-SEC-001",
        )
    return value


def validate_scenario_id(value: str, parent_id: Optional[str] = None) -> str:
    match = SCENARIO_ID_PATTERN.match(value) if isinstance(value, str) else None
    if not match:
        raise ValidationError(
            f"Invalid scenario ID '{value}'",
            hint="Scenario IDs look like UC-SEC-001-S01",
        )
    if parent_id is not None and match.group("parent") != parent_id:
        raise ValidationError(f"Scenario '{value}' does not belong to use case '{parent_id}'")
    return value


def scenario_index(scenario_id: str) -> int:
    """Trailing numeric index of a scenario ID (UC-SEC-001-S07 -> 7)."""
    validate_scenario_id(scenario_id)
    return int(SCENARIO_ID_PATTERN.match(scenario_id).group("index"))


def validate_actor_id(value: str) -> str:
    """Check the kebab-case rules for actor and persona IDs."""
    if not value:
        raise ValidationError("Actor ID cannot be empty")
    if value != value.lower():
        raise ValidationError(f"Actor ID '{value}' must be lowercase")
    if not ACTOR_ID_PATTERN.match(value):
        raise ValidationError(
            f"Invalid actor ID '{value}'",
            hint="Use lowercase letters, digits, '-' or '_', without a leading or trailing separator",
        )
    return value


# ============================================================================
# Enumerations
# ============================================================================

class Priority(Enum):
    """How important a use case is."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: Any) -> Priority:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown priority '{value}'",
                hint="Use one of: " + ", ".join(p.value for p in cls),
            ) from None

    @property
    def display_name(self) -> str:
        return self.value.upper()


class Status(Enum):
    """Lifecycle status of a scenario.

    Planned < InProgress < Implemented < Tested < Deployed form a total
    order; Deprecated sits outside it and dominates any aggregate.
    """
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    TESTED = "tested"
    DEPLOYED = "deployed"
    DEPRECATED = "deprecated"

    @classmethod
    def parse(cls, value: Any) -> Status:
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        if key == "inprogress":
            key = "in_progress"
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(
                f"Unknown status '{value}'",
                hint="Use one of: " + ", ".join(s.value for s in cls),
            ) from None

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def display_name(self) -> str:
        return self.value.upper().replace("_", " ")

    @property
    def emoji(self) -> str:
        return _STATUS_EMOJI[self]


_STATUS_RANK = {
    Status.PLANNED: 0,
    Status.IN_PROGRESS: 1,
    Status.IMPLEMENTED: 2,
    Status.TESTED: 3,
    Status.DEPLOYED: 4,
    Status.DEPRECATED: 5,
}

_STATUS_EMOJI = {
    Status.PLANNED: "📋",
    Status.IN_PROGRESS: "🔄",
    Status.IMPLEMENTED: "⚡",
    Status.TESTED: "✅",
    Status.DEPLOYED: "🚀",
    Status.DEPRECATED: "⚠️",
}


def aggregate_status(statuses: Iterable[Status]) -> Status:
    """Collapse scenario statuses into the status of their use case.

    Deprecated anywhere wins; all-Planned (or nothing) is Planned; otherwise
    the least advanced of the non-Planned statuses.
    """
    statuses = list(statuses)
    if Status.DEPRECATED in statuses:
        return Status.DEPRECATED
    active = [s for s in statuses if s is not Status.PLANNED]
    if not active:
        return Status.PLANNED
    return min(active, key=lambda s: s.rank)


class ScenarioType(Enum):
    """Classification of a scenario flow."""
    HAPPY_PATH = "happy_path"
    ALTERNATIVE_FLOW = "alternative_flow"
    EXCEPTION_FLOW = "exception_flow"
    EXTENSION = "extension"

    @classmethod
    def parse(cls, value: Any) -> ScenarioType:
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        key = _SCENARIO_TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(
                f"Unknown scenario type '{value}'",
                hint="Use one of: " + ", ".join(t.value for t in cls),
            ) from None

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


_SCENARIO_TYPE_ALIASES = {
    "happy": "happy_path",
    "main": "happy_path",
    "alternative": "alternative_flow",
    "alt": "alternative_flow",
    "exception": "exception_flow",
    "error": "exception_flow",
    "ext": "extension",
}


class ReferenceType(Enum):
    """What a condition or scenario reference points at."""
    USE_CASE = "use_case"
    SCENARIO = "scenario"

    @classmethod
    def parse(cls, value: Any) -> ReferenceType:
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        key = {"usecase": "use_case", "uc": "use_case", "s": "scenario"}.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unknown reference type '{value}'") from None


def validate_relationship(value: str) -> str:
    if value not in KNOWN_RELATIONSHIPS:
        raise ValidationError(
            f"Unknown relationship '{value}'",
            hint="Use one of: " + ", ".join(KNOWN_RELATIONSHIPS),
        )
    return value


def validate_target(target_type: ReferenceType, target_id: str) -> str:
    if target_type is ReferenceType.USE_CASE:
        return validate_use_case_id(target_id)
    return validate_scenario_id(target_id)


# ============================================================================
# Actors
# ============================================================================

class ActorKind(Enum):
    """Well-known step participants plus a free-form custom kind."""
    USER = "User"
    SYSTEM = "System"
    SERVER = "Server"
    EXTERNAL_API = "ExternalAPI"
    DATABASE = "Database"
    CUSTOM = "Custom"


_ACTOR_ALIASES = {
    "user": ActorKind.USER,
    "system": ActorKind.SYSTEM,
    "server": ActorKind.SERVER,
    "externalapi": ActorKind.EXTERNAL_API,
    "external_api": ActorKind.EXTERNAL_API,
    "api": ActorKind.EXTERNAL_API,
    "database": ActorKind.DATABASE,
    "db": ActorKind.DATABASE,
}


@dataclass(frozen=True)
class Actor:
    """Inline participant of a scenario step.

    Serialized as its display name; anything that is not a well-known kind
    or alias parses to ``Custom(name)``.
    """
    kind: ActorKind
    custom_name: Optional[str] = None

    @classmethod
    def custom(cls, name: str) -> Actor:
        if not name or not name.strip():
            raise ValidationError("Custom actor name cannot be empty")
        # custom actors serialize as their bare name
        if name.strip().lower() in _ACTOR_ALIASES:
            raise ValidationError(
                f"Custom actor name '{name.strip()}' is reserved for a well-known actor",
                hint=f"Use '{_ACTOR_ALIASES[name.strip().lower()].value}' or choose another name",
            )
        return cls(ActorKind.CUSTOM, name.strip())

    @classmethod
    def parse(cls, value: Any) -> Actor:
        if isinstance(value, Actor):
            return value
        if isinstance(value, dict) and len(value) == 1:
            (key, inner), = value.items()
            if key == ActorKind.CUSTOM.value:
                return cls.custom(str(inner or ""))
            return cls.parse(key)
        text = str(value or "").strip()
        if not text:
            raise ValidationError("Actor name cannot be empty")
        kind = _ACTOR_ALIASES.get(text.lower())
        if kind is not None:
            return cls(kind)
        return cls.custom(text)

    @property
    def name(self) -> str:
        if self.kind is ActorKind.CUSTOM:
            return self.custom_name or ""
        return self.kind.value

    @property
    def is_human(self) -> bool:
        return self.kind in (ActorKind.USER, ActorKind.CUSTOM)

    def __str__(self) -> str:
        return self.name


class ActorType(Enum):
    """Type tag of a reusable actor record."""
    PERSONA = "persona"
    SYSTEM = "system"
    EXTERNAL_SERVICE = "external_service"
    DATABASE = "database"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Any) -> ActorType:
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        key = {"externalservice": "external_service", "service": "external_service", "db": "database"}.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValidationError(f"Unknown actor type '{value}'") from None

    @property
    def default_emoji(self) -> str:
        return _ACTOR_EMOJI[self]


_ACTOR_EMOJI = {
    ActorType.PERSONA: "🙂",
    ActorType.SYSTEM: "🖥️",
    ActorType.EXTERNAL_SERVICE: "🌐",
    ActorType.DATABASE: "🗄️",
    ActorType.CUSTOM: "👤",
}


# ============================================================================
# Metadata, conditions and references
# ============================================================================

@dataclass
class Metadata:
    """Creation and last-update timestamps (UTC)."""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def touch(self) -> None:
        now = utc_now()
        if now > self.updated_at:
            self.updated_at = now

    def to_dict(self) -> dict:
        return {
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> Metadata:
        if not d:
            return cls()
        created = _parse_timestamp(d["created_at"]) if d.get("created_at") else utc_now()
        updated = _parse_timestamp(d["updated_at"]) if d.get("updated_at") else created
        return cls(created_at=created, updated_at=updated)


@dataclass
class Condition:
    """A pre- or postcondition, optionally pointing at another use case or scenario."""
    text: str
    target_type: Optional[ReferenceType] = None
    target_id: Optional[str] = None
    relationship: Optional[str] = None

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise ValidationError("Condition text cannot be empty")
        parts = (self.target_type, self.target_id, self.relationship)
        if any(p is not None for p in parts) and not all(p is not None for p in parts):
            raise ValidationError(
                f"Condition '{self.text}' has an incomplete reference",
                hint="A reference needs a target type, a target ID and a relationship",
            )
        if self.target_type is not None:
            self.target_type = ReferenceType.parse(self.target_type)
            validate_target(self.target_type, self.target_id)
            validate_relationship(self.relationship)

    @property
    def has_reference(self) -> bool:
        return self.target_type is not None

    @property
    def is_dependency(self) -> bool:
        return self.relationship in DEPENDENCY_RELATIONSHIPS

    def display(self) -> str:
        if not self.has_reference:
            return self.text
        return f"{self.text} ({self.relationship} {self.target_id})"

    def to_dict(self) -> dict:
        d = {"text": self.text}
        if self.has_reference:
            d.update(
                target_type=self.target_type.value,
                target_id=self.target_id,
                relationship=self.relationship,
            )
        return d

    @classmethod
    def from_dict(cls, d: Any) -> Condition:
        if isinstance(d, str):
            return cls(text=d)
        return cls(
            text=d.get("text", ""),
            target_type=d.get("target_type"),
            target_id=d.get("target_id"),
            relationship=d.get("relationship"),
        )


@dataclass
class UseCaseReference:
    """Relationship-tagged pointer from one use case to another."""
    target_id: str
    relationship: str
    description: Optional[str] = None

    def __post_init__(self):
        validate_use_case_id(self.target_id)
        validate_relationship(self.relationship)

    def to_dict(self) -> dict:
        d = {"target_id": self.target_id, "relationship": self.relationship}
        if self.description is not None:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, d: dict) -> UseCaseReference:
        return cls(
            target_id=d["target_id"],
            relationship=d["relationship"],
            description=d.get("description"),
        )


@dataclass
class ScenarioReference:
    """Pointer from a scenario to a use case or another scenario."""
    ref_type: ReferenceType
    target_id: str
    relationship: str
    description: Optional[str] = None

    def __post_init__(self):
        self.ref_type = ReferenceType.parse(self.ref_type)
        validate_target(self.ref_type, self.target_id)
        validate_relationship(self.relationship)

    def to_dict(self) -> dict:
        d = {
            "ref_type": self.ref_type.value,
            "target_id": self.target_id,
            "relationship": self.relationship,
        }
        if self.description is not None:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ScenarioReference:
        return cls(
            ref_type=d["ref_type"],
            target_id=d["target_id"],
            relationship=d["relationship"],
            description=d.get("description"),
        )


@dataclass
class MethodologyView:
    """A (methodology, level) pair that renders one document for a use case."""
    methodology: str
    level: str
    enabled: bool = True

    @property
    def key(self) -> str:
        return f"{self.methodology}-{self.level}"

    def to_dict(self) -> dict:
        return {"methodology": self.methodology, "level": self.level, "enabled": self.enabled}

    @classmethod
    def from_dict(cls, d: dict) -> MethodologyView:
        return cls(methodology=d["methodology"], level=d["level"], enabled=bool(d.get("enabled", True)))


# ============================================================================
# Scenarios
# ============================================================================

@dataclass
class ScenarioStep:
    """One action inside a scenario. ``order`` is 1-based."""
    order: int
    actor: Actor
    action: str
    description: str = ""
    receiver: Optional[Actor] = None
    notes: Optional[str] = None

    def __post_init__(self):
        self.actor = Actor.parse(self.actor)
        if self.receiver is not None:
            self.receiver = Actor.parse(self.receiver)
        if self.order < 1:
            raise ValidationError(f"Step order must be positive, got {self.order}")

    def to_dict(self) -> dict:
        d = {
            "order": self.order,
            "actor": self.actor.name,
            "action": self.action,
            "description": self.description,
        }
        if self.receiver is not None:
            d["receiver"] = self.receiver.name
        if self.notes is not None:
            d["notes"] = self.notes
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ScenarioStep:
        return cls(
            order=int(d["order"]),
            actor=d["actor"],
            action=d.get("action", ""),
            description=d.get("description", ""),
            receiver=d.get("receiver"),
            notes=d.get("notes"),
        )


_SCENARIO_KEYS = (
    "id", "title", "description", "type", "status", "persona",
    "steps", "references", "metadata",
)


@dataclass
class Scenario:
    """An ordered flow of steps under a use case."""
    id: str
    title: str
    description: str = ""
    scenario_type: ScenarioType = ScenarioType.HAPPY_PATH
    status: Status = Status.PLANNED
    persona: Optional[str] = None
    steps: list[ScenarioStep] = field(default_factory=list)
    references: list[ScenarioReference] = field(default_factory=list)
    metadata: Metadata = field(default_factory=Metadata)
    extra: dict = field(default_factory=dict)

    def __post_init__(self):
        validate_scenario_id(self.id)
        if not self.title or not self.title.strip():
            raise ValidationError(f"Scenario '{self.id}' needs a title")
        self.scenario_type = ScenarioType.parse(self.scenario_type)
        self.status = Status.parse(self.status)

    @property
    def index(self) -> int:
        return scenario_index(self.id)

    def add_step(
        self,
        actor: Any,
        action: str,
        description: str = "",
        receiver: Any = None,
        notes: Optional[str] = None,
    ) -> ScenarioStep:
        step = ScenarioStep(
            order=len(self.steps) + 1,
            actor=actor,
            action=action,
            description=description,
            receiver=receiver,
            notes=notes,
        )
        self.steps.append(step)
        self.metadata.touch()
        return step

    def remove_step(self, order: int) -> ScenarioStep:
        """Remove the step at ``order`` and renumber the rest 1..N."""
        for i, step in enumerate(self.steps):
            if step.order == order:
                removed = self.steps.pop(i)
                for n, remaining in enumerate(self.steps, start=1):
                    remaining.order = n
                self.metadata.touch()
                return removed
        raise NotFoundError(f"Scenario '{self.id}' has no step {order}")

    def set_status(self, status: Any) -> None:
        self.status = Status.parse(status)
        self.metadata.touch()

    def add_reference(self, reference: ScenarioReference) -> None:
        self.references.append(reference)
        self.metadata.touch()

    def remove_reference(self, target_id: str, relationship: Optional[str] = None) -> ScenarioReference:
        for i, ref in enumerate(self.references):
            if ref.target_id == target_id and relationship in (None, ref.relationship):
                self.metadata.touch()
                return self.references.pop(i)
        raise NotFoundError(f"Scenario '{self.id}' has no reference to '{target_id}'")

    def validate(self) -> None:
        orders = [s.order for s in self.steps]
        if orders != list(range(1, len(orders) + 1)):
            raise ValidationError(
                f"Scenario '{self.id}' has step orders {orders}; expected 1..{len(orders)}"
            )

    def to_dict(self) -> dict:
        d = dict(self.extra)
        d.update(
            id=self.id,
            title=self.title,
            description=self.description,
            type=self.scenario_type.value,
            status=self.status.value,
            steps=[s.to_dict() for s in self.steps],
            references=[r.to_dict() for r in self.references],
            metadata=self.metadata.to_dict(),
        )
        if self.persona is not None:
            d["persona"] = self.persona
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Scenario:
        return cls(
            id=d["id"],
            title=d.get("title", ""),
            description=d.get("description", ""),
            scenario_type=d.get("type", ScenarioType.HAPPY_PATH.value),
            status=d.get("status", Status.PLANNED.value),
            persona=d.get("persona") or None,
            steps=[ScenarioStep.from_dict(s) for s in d.get("steps", [])],
            references=[ScenarioReference.from_dict(r) for r in d.get("references", [])],
            metadata=Metadata.from_dict(d.get("metadata")),
            extra=_split_extra(d, _SCENARIO_KEYS),
        )


# ============================================================================
# Use cases
# ============================================================================

_USE_CASE_KEYS = (
    "id", "title", "category", "description", "priority", "scenarios",
    "preconditions", "postconditions", "references", "views",
    "methodology_fields", "metadata", "retired_scenario_ids",
)


@dataclass
class UseCase:
    """The root aggregate: a named capability with its scenarios.

    ``retired_scenario_ids`` remembers deleted scenario IDs so the scenario
    allocator never hands one out twice.

    Usage:
        uc = UseCase(id="UC-SEC-001", title="Login", category="Security")
        uc.add_view(MethodologyView("feature", "normal"))
        uc.status  # aggregate over scenarios
    """
    id: str
    title: str
    category: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    scenarios: list[Scenario] = field(default_factory=list)
    preconditions: list[Condition] = field(default_factory=list)
    postconditions: list[Condition] = field(default_factory=list)
    references: list[UseCaseReference] = field(default_factory=list)
    views: list[MethodologyView] = field(default_factory=list)
    methodology_fields: dict[str, dict[str, Any]] = field(default_factory=dict)
    metadata: Metadata = field(default_factory=Metadata)
    extra: dict = field(default_factory=dict)
    retired_scenario_ids: list[str] = field(default_factory=list)

    def __post_init__(self):
        validate_use_case_id(self.id)
        if not self.title or not self.title.strip():
            raise ValidationError(f"Use case '{self.id}' needs a title")
        if not self.category or not self.category.strip():
            raise ValidationError(f"Use case '{self.id}' needs a category")
        self.priority = Priority.parse(self.priority)

    @property
    def status(self) -> Status:
        return aggregate_status(s.status for s in self.scenarios)

    def touch(self) -> None:
        self.metadata.touch()

    # -- views ---------------------------------------------------------------

    def enabled_views(self) -> list[MethodologyView]:
        return [v for v in self.views if v.enabled]

    def enabled_methodologies(self) -> list[str]:
        seen: list[str] = []
        for view in self.enabled_views():
            if view.methodology not in seen:
                seen.append(view.methodology)
        return seen

    def find_view(self, methodology: str, level: str) -> Optional[MethodologyView]:
        key = f"{methodology}-{level}"
        return next((v for v in self.views if v.key == key), None)

    def add_view(self, view: MethodologyView) -> MethodologyView:
        """Enable a view; a disabled view with the same key is re-enabled."""
        existing = self.find_view(view.methodology, view.level)
        if existing is not None:
            if existing.enabled:
                raise ConflictError(f"View '{view.key}' is already enabled on '{self.id}'")
            existing.enabled = True
            self.touch()
            return existing
        self.views.append(view)
        self.methodology_fields.setdefault(view.methodology, {})
        self.touch()
        return view

    def disable_view(self, methodology: str, level: str) -> MethodologyView:
        view = self.find_view(methodology, level)
        if view is None or not view.enabled:
            raise NotFoundError(f"Use case '{self.id}' has no enabled view '{methodology}-{level}'")
        view.enabled = False
        self.touch()
        return view

    # -- scenarios -----------------------------------------------------------

    def get_scenario(self, scenario_id: str) -> Scenario:
        for scenario in self.scenarios:
            if scenario.id == scenario_id:
                return scenario
        raise NotFoundError(f"Scenario '{scenario_id}' not found in use case '{self.id}'")

    def check_scenario_reference(self, scenario_id: str, reference: ScenarioReference) -> None:
        """Reject a scenario reference that points back at its own scenario.

        Only scenario-to-scenario edges inside this use case are followed;
        targets in other use cases are not loaded here and stay lints.
        """
        if reference.ref_type is not ReferenceType.SCENARIO:
            return
        if reference.target_id == scenario_id:
            raise ValidationError(f"Scenario '{scenario_id}' cannot reference itself")
        graph = {
            s.id: [r.target_id for r in s.references if r.ref_type is ReferenceType.SCENARIO]
            for s in self.scenarios
        }
        visited: set[str] = set()
        stack = [reference.target_id]
        while stack:
            current = stack.pop()
            if current == scenario_id:
                raise ValidationError(
                    f"Reference from {scenario_id} to {reference.target_id} would create a circular dependency"
                )
            if current in visited:
                continue
            visited.add(current)
            stack.extend(graph.get(current, ()))

    def used_scenario_ids(self) -> set[str]:
        return {s.id for s in self.scenarios} | set(self.retired_scenario_ids)

    def add_scenario(self, scenario: Scenario) -> Scenario:
        validate_scenario_id(scenario.id, parent_id=self.id)
        if scenario.id in self.used_scenario_ids():
            raise ConflictError(f"Scenario ID '{scenario.id}' was already used in '{self.id}'")
        self.scenarios.append(scenario)
        self.touch()
        return scenario

    def remove_scenario(self, scenario_id: str) -> Scenario:
        scenario = self.get_scenario(scenario_id)
        self.scenarios.remove(scenario)
        self.retired_scenario_ids.append(scenario_id)
        self.touch()
        return scenario

    def validate(self) -> None:
        """Check the structural invariants before persisting."""
        validate_use_case_id(self.id)
        seen = set()
        for scenario in self.scenarios:
            validate_scenario_id(scenario.id, parent_id=self.id)
            if scenario.id in seen:
                raise ValidationError(f"Duplicate scenario ID '{scenario.id}' in '{self.id}'")
            seen.add(scenario.id)
            scenario.validate()
        keys = [v.key for v in self.views]
        if len(keys) != len(set(keys)):
            raise ValidationError(f"Use case '{self.id}' declares a view twice")

    # -- serialization -------------------------------------------------------

    def to_dict(self) -> dict:
        d = dict(self.extra)
        d.update(
            id=self.id,
            title=self.title,
            category=self.category,
            description=self.description,
            priority=self.priority.value,
            preconditions=[c.to_dict() for c in self.preconditions],
            postconditions=[c.to_dict() for c in self.postconditions],
            references=[r.to_dict() for r in self.references],
            views=[v.to_dict() for v in self.views],
            methodology_fields={m: dict(f) for m, f in self.methodology_fields.items()},
            metadata=self.metadata.to_dict(),
            scenarios=[s.to_dict() for s in self.scenarios],
        )
        if self.retired_scenario_ids:
            d["retired_scenario_ids"] = list(self.retired_scenario_ids)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> UseCase:
        return cls(
            id=d["id"],
            title=d.get("title", ""),
            category=d.get("category", ""),
            description=d.get("description", ""),
            priority=d.get("priority", Priority.MEDIUM.value),
            scenarios=[Scenario.from_dict(s) for s in d.get("scenarios", [])],
            preconditions=[Condition.from_dict(c) for c in d.get("preconditions", [])],
            postconditions=[Condition.from_dict(c) for c in d.get("postconditions", [])],
            references=[UseCaseReference.from_dict(r) for r in d.get("references", [])],
            views=[MethodologyView.from_dict(v) for v in d.get("views", [])],
            methodology_fields={m: dict(f) for m, f in d.get("methodology_fields", {}).items()},
            metadata=Metadata.from_dict(d.get("metadata")),
            extra=_split_extra(d, _USE_CASE_KEYS),
            retired_scenario_ids=list(d.get("retired_scenario_ids", [])),
        )


# ============================================================================
# Reusable actor records
# ============================================================================

_ACTOR_ENTITY_KEYS = (
    "id", "name", "type", "emoji", "description", "goal", "context",
    "tech_level", "usage_frequency", "metadata",
)


@dataclass
class ActorEntity:
    """A reusable participant record (personas, systems, services).

    Scenarios reference personas by ``id``.
    """
    id: str
    name: str
    actor_type: ActorType = ActorType.PERSONA
    emoji: Optional[str] = None
    description: str = ""
    goal: Optional[str] = None
    context: Optional[str] = None
    tech_level: Optional[int] = None
    usage_frequency: Optional[str] = None
    metadata: Metadata = field(default_factory=Metadata)
    extra: dict = field(default_factory=dict)

    def __post_init__(self):
        validate_actor_id(self.id)
        if not self.name or not self.name.strip():
            raise ValidationError(f"Actor '{self.id}' needs a name")
        self.actor_type = ActorType.parse(self.actor_type)
        if self.emoji is None:
            self.emoji = self.actor_type.default_emoji
        if self.tech_level is not None and not 1 <= int(self.tech_level) <= 5:
            raise ValidationError(f"Tech level for '{self.id}' must be between 1 and 5")

    @property
    def is_persona(self) -> bool:
        return self.actor_type is ActorType.PERSONA

    def to_dict(self) -> dict:
        d = dict(self.extra)
        d.update(
            id=self.id,
            name=self.name,
            type=self.actor_type.value,
            emoji=self.emoji,
            description=self.description,
            metadata=self.metadata.to_dict(),
        )
        for key in ("goal", "context", "tech_level", "usage_frequency"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ActorEntity:
        return cls(
            id=d["id"],
            name=d.get("name", ""),
            actor_type=d.get("type", ActorType.PERSONA.value),
            emoji=d.get("emoji"),
            description=d.get("description", ""),
            goal=d.get("goal"),
            context=d.get("context"),
            tech_level=d.get("tech_level"),
            usage_frequency=d.get("usage_frequency"),
            metadata=Metadata.from_dict(d.get("metadata")),
            extra=_split_extra(d, _ACTOR_ENTITY_KEYS),
        )
