"""
Methodology definitions and the registry that loads them.

A methodology lives in ``<template_dir>/<name>/methodology.toml``:

    [methodology]
    name = "feature"
    title = "Feature Documentation"
    description = "..."
    preferred_style = "normal"

    [usage]
    when_to_use = ["..."]
    key_features = ["..."]

    [custom_fields.owner]            # applies to every level
    type = "string"

    [levels.simple]
    abbreviation = "s"
    filename = "simple.tmpl"
    description = "..."
    inherits = []

    [levels.simple.custom_fields.user_story]
    label = "User Story"
    type = "text"
    required = true

Levels keep their declaration order. Inheritance between levels must be
acyclic and may only name levels of the same methodology.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from mucm.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

METHODOLOGY_FILE = "methodology.toml"
FIELD_TYPES = ("string", "number", "boolean", "array", "text")

_TRUE_WORDS = {"true", "yes", "y", "1", "on"}
_FALSE_WORDS = {"false", "no", "n", "0", "off", ""}


@dataclass
class CustomFieldConfig:
    """Declaration of a methodology-specific field."""
    name: str
    field_type: str = "string"
    label: Optional[str] = None
    required: bool = False
    default: Any = None
    description: Optional[str] = None
    example: Optional[str] = None

    def __post_init__(self):
        if self.field_type not in FIELD_TYPES:
            raise ValidationError(
                f"Field '{self.name}' has unknown type '{self.field_type}'",
                hint="Use one of: " + ", ".join(FIELD_TYPES),
            )

    @property
    def display_label(self) -> str:
        return self.label or self.name.replace("_", " ").title()

    def empty_value(self) -> Any:
        if self.default is not None:
            return self.convert(self.default)
        return {"array": [], "number": 0, "boolean": False}.get(self.field_type, "")

    def convert(self, raw: Any) -> Any:
        """Coerce a user-supplied value (often CLI text) to this field's type."""
        if self.field_type == "array":
            if isinstance(raw, (list, tuple)):
                return [str(item) for item in raw]
            return [part.strip() for part in str(raw).split(",") if part.strip()]
        if self.field_type == "number":
            if isinstance(raw, bool):
                raise ValidationError(f"Field '{self.name}' expects a number, got {raw!r}")
            if isinstance(raw, (int, float)):
                return raw
            text = str(raw).strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                return float(text)
            except ValueError:
                raise ValidationError(f"Field '{self.name}' expects a number, got '{raw}'") from None
        if self.field_type == "boolean":
            if isinstance(raw, bool):
                return raw
            word = str(raw).strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
            raise ValidationError(f"Field '{self.name}' expects yes/no, got '{raw}'")
        return "" if raw is None else str(raw)

    def to_dict(self) -> dict:
        d = {"name": self.name, "type": self.field_type, "label": self.display_label, "required": self.required}
        for key in ("default", "description", "example"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        return d

    @classmethod
    def from_dict(cls, name: str, d: dict) -> CustomFieldConfig:
        return cls(
            name=name,
            field_type=d.get("type", "string"),
            label=d.get("label"),
            required=bool(d.get("required", False)),
            default=d.get("default"),
            description=d.get("description"),
            example=d.get("example"),
        )


def _fields_from_table(table: Optional[dict]) -> dict[str, CustomFieldConfig]:
    return {name: CustomFieldConfig.from_dict(name, spec or {}) for name, spec in (table or {}).items()}


@dataclass
class DocumentationLevel:
    """A depth selector within a methodology (simple, normal, detailed)."""
    name: str
    abbreviation: str
    filename: str
    description: str = ""
    inherits: list[str] = field(default_factory=list)
    custom_fields: dict[str, CustomFieldConfig] = field(default_factory=dict)

    @property
    def template_stem(self) -> str:
        return Path(self.filename).stem


@dataclass
class MethodologyDef:
    """A documentation style with its levels and custom fields."""
    name: str
    title: str
    description: str = ""
    when_to_use: list[str] = field(default_factory=list)
    key_features: list[str] = field(default_factory=list)
    preferred_style: Optional[str] = None
    levels: list[DocumentationLevel] = field(default_factory=list)
    custom_fields: dict[str, CustomFieldConfig] = field(default_factory=dict)
    source_dir: Optional[Path] = None

    def __post_init__(self):
        if not self.levels:
            raise ValidationError(f"Methodology '{self.name}' declares no levels")
        names = [lv.name for lv in self.levels]
        abbrevs = [lv.abbreviation for lv in self.levels]
        if len(set(names)) != len(names) or len(set(abbrevs)) != len(abbrevs):
            raise ValidationError(f"Methodology '{self.name}' has duplicate level names or abbreviations")
        for level in self.levels:
            for parent in level.inherits:
                if parent not in names:
                    raise ValidationError(
                        f"Level '{level.name}' of '{self.name}' inherits unknown level '{parent}'"
                    )
            self.inheritance_chain(level.name)
        if self.preferred_style is None or self.find_level(self.preferred_style) is None:
            self.preferred_style = self.levels[0].name

    def find_level(self, key: str) -> Optional[DocumentationLevel]:
        """Look a level up by name or abbreviation (case-insensitive)."""
        key = key.strip().lower()
        for level in self.levels:
            if level.name.lower() == key or level.abbreviation.lower() == key:
                return level
        return None

    def level(self, key: str) -> DocumentationLevel:
        found = self.find_level(key)
        if found is None:
            raise ValidationError(
                f"Unknown level '{key}' for methodology '{self.name}'",
                hint="Available levels: " + ", ".join(lv.name for lv in self.levels),
            )
        return found

    def inheritance_chain(self, level_name: str) -> list[DocumentationLevel]:
        """Levels to visit for ``level_name``: ancestors first, the level itself last."""
        by_name = {lv.name: lv for lv in self.levels}
        order: list[DocumentationLevel] = []
        visiting: set[str] = set()
        done: set[str] = set()

        def visit(name: str) -> None:
            if name in done:
                return
            if name in visiting:
                raise ValidationError(
                    f"Circular inheritance detected in methodology '{self.name}' at level '{name}'"
                )
            visiting.add(name)
            for parent in by_name[name].inherits:
                visit(parent)
            visiting.discard(name)
            done.add(name)
            order.append(by_name[name])

        visit(self.level(level_name).name)
        return order

    def template_path(self, level: DocumentationLevel) -> Optional[Path]:
        if self.source_dir is None:
            return None
        return self.source_dir / level.filename

    @classmethod
    def from_dict(cls, d: dict, source_dir: Optional[Path] = None) -> MethodologyDef:
        info = d.get("methodology") or {}
        usage = d.get("usage") or {}
        name = info.get("name") or (source_dir.name if source_dir else None)
        if not name:
            raise ValidationError("Methodology definition has no name")
        levels = []
        for level_name, spec in (d.get("levels") or {}).items():
            levels.append(DocumentationLevel(
                name=spec.get("name", level_name),
                abbreviation=spec.get("abbreviation", level_name[:1]),
                filename=spec.get("filename", f"{level_name}.tmpl"),
                description=spec.get("description", ""),
                inherits=list(spec.get("inherits", [])),
                custom_fields=_fields_from_table(spec.get("custom_fields")),
            ))
        return cls(
            name=name.lower(),
            title=info.get("title", name.title()),
            description=info.get("description", ""),
            when_to_use=list(usage.get("when_to_use", [])),
            key_features=list(usage.get("key_features", [])),
            preferred_style=info.get("preferred_style"),
            levels=levels,
            custom_fields=_fields_from_table(d.get("custom_fields")),
            source_dir=source_dir,
        )

    @classmethod
    def load(cls, path: Path) -> MethodologyDef:
        path = Path(path)
        try:
            with path.open("rb") as fh:
                data = tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise ValidationError(f"Invalid methodology definition {path}: {exc}") from exc
        return cls.from_dict(data, source_dir=path.parent)


class MethodologyRegistry:
    """All methodologies available to a project.

    Usage:
        registry = MethodologyRegistry.from_directory(template_dir)
        registry.available()                       # ['business', 'feature', ...]
        m, level = registry.resolve_view("feature", "n")
    """

    def __init__(self, definitions: Iterable[MethodologyDef] = ()):
        self._definitions: dict[str, MethodologyDef] = {}
        for definition in definitions:
            self.register(definition)

    @classmethod
    def from_directory(cls, template_dir: Path, only: Optional[Iterable[str]] = None) -> MethodologyRegistry:
        """Load every ``<template_dir>/<name>/methodology.toml``.

        Definitions that fail to load are logged and skipped so one broken
        file does not take the whole project down.
        """
        wanted = {name.lower() for name in only} if only is not None else None
        registry = cls()
        template_dir = Path(template_dir)
        if not template_dir.is_dir():
            logger.warning("Template directory %s does not exist", template_dir)
            return registry
        for path in sorted(template_dir.glob(f"*/{METHODOLOGY_FILE}")):
            if wanted is not None and path.parent.name.lower() not in wanted:
                continue
            try:
                registry.register(MethodologyDef.load(path))
            except ValidationError as exc:
                logger.warning("Skipping methodology in %s: %s", path.parent, exc)
        return registry

    def register(self, definition: MethodologyDef) -> None:
        self._definitions[definition.name.lower()] = definition

    def available(self) -> list[str]:
        return sorted(self._definitions)

    def get(self, name: str) -> Optional[MethodologyDef]:
        return self._definitions.get(name.strip().lower())

    def require(self, name: str) -> MethodologyDef:
        definition = self.get(name)
        if definition is None:
            raise ValidationError(
                f"Unknown methodology '{name}'",
                hint="Available: " + (", ".join(self.available()) or "none"),
            )
        return definition

    def resolve_view(self, methodology: str, level: str) -> tuple[MethodologyDef, DocumentationLevel]:
        definition = self.require(methodology)
        return definition, definition.level(level)

    def default_view(self, methodology: str) -> tuple[str, str]:
        definition = self.require(methodology)
        return definition.name, definition.preferred_style

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __iter__(self) -> Iterator[MethodologyDef]:
        return iter(self._definitions[name] for name in self.available())

    def __len__(self) -> int:
        return len(self._definitions)


def parse_view_spec(spec: str) -> tuple[str, str]:
    """Split ``"methodology:level"`` into its parts."""
    methodology, sep, level = spec.partition(":")
    if not sep or not methodology.strip() or not level.strip():
        raise ValidationError(
            f"Invalid view '{spec}'",
            hint="Views are written as methodology:level, e.g. feature:normal",
        )
    return methodology.strip().lower(), level.strip().lower()


def merge_field(existing: Optional[CustomFieldConfig], incoming: CustomFieldConfig) -> CustomFieldConfig:
    """Later declaration wins; ``required`` is OR-merged."""
    if existing is None:
        return incoming
    return replace(incoming, required=existing.required or incoming.required)


def lookup_methodology(registry: MethodologyRegistry, name: str) -> MethodologyDef:
    definition = registry.get(name)
    if definition is None:
        raise NotFoundError(f"Methodology '{name}' not found")
    return definition
