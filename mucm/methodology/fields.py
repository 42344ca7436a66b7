"""
Field collection across methodology views.

For every selected ``(methodology, level)`` the collector walks the level's
inheritance chain (ancestors first), folding custom fields so that later
declarations override earlier ones while ``required`` is OR-merged. The
union over all views is a FieldSet, which also remembers which
methodologies declared each field.

The same machinery finds orphans: stored methodology values whose
methodology is no longer enabled on the use case, or whose field is no
longer declared by any enabled level.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional

from mucm.errors import ValidationError
from mucm.methodology.registry import CustomFieldConfig, MethodologyRegistry, merge_field
from mucm.models import UseCase


@dataclass
class FieldSet:
    """Mapping field-name -> CustomFieldConfig, plus declaring methodologies."""
    fields: dict[str, CustomFieldConfig] = field(default_factory=dict)
    sources: dict[str, list[str]] = field(default_factory=dict)

    def add(self, config: CustomFieldConfig, methodology: str) -> None:
        self.fields[config.name] = merge_field(self.fields.get(config.name), config)
        owners = self.sources.setdefault(config.name, [])
        if methodology not in owners:
            owners.append(methodology)

    def names(self) -> list[str]:
        return list(self.fields)

    def required_names(self) -> list[str]:
        return [name for name, cfg in self.fields.items() if cfg.required]

    def for_methodology(self, methodology: str) -> dict[str, CustomFieldConfig]:
        return {
            name: cfg for name, cfg in self.fields.items()
            if methodology in self.sources.get(name, [])
        }

    def descriptors(self, values: Optional[Mapping[str, Any]] = None) -> list[dict]:
        """Template-friendly field descriptions, with current values when given."""
        values = values or {}
        out = []
        for name, cfg in self.fields.items():
            d = cfg.to_dict()
            d["value"] = values.get(name)
            out.append(d)
        return out

    def __getitem__(self, name: str) -> CustomFieldConfig:
        return self.fields[name]

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)


class FieldCollector:
    """Resolve custom fields for a set of views.

    Usage:
        collector = FieldCollector(registry)
        fields = collector.collect([("business", "normal"), ("feature", "simple")])
        fields.required_names()
    """

    def __init__(self, registry: MethodologyRegistry):
        self.registry = registry

    def collect(self, views: Iterable[tuple[str, str]]) -> FieldSet:
        result = FieldSet()
        for methodology, level_name in views:
            definition, level = self.registry.resolve_view(methodology, level_name)
            view_fields: dict[str, CustomFieldConfig] = dict(definition.custom_fields)
            for ancestor in definition.inheritance_chain(level.name):
                for name, cfg in ancestor.custom_fields.items():
                    view_fields[name] = merge_field(view_fields.get(name), cfg)
            for cfg in view_fields.values():
                result.add(cfg, definition.name)
        return result

    def collect_for_use_case(self, use_case: UseCase) -> FieldSet:
        return self.collect((v.methodology, v.level) for v in use_case.enabled_views())

    def collect_for_methodology(self, use_case: UseCase, methodology: str) -> FieldSet:
        return self.collect(
            (v.methodology, v.level)
            for v in use_case.enabled_views()
            if v.methodology == methodology
        )

    def build_values(
        self,
        field_set: FieldSet,
        values: Mapping[str, Any],
        methodologies: Iterable[str],
    ) -> dict[str, dict[str, Any]]:
        """Group typed values by declaring methodology.

        Unknown field names are rejected; missing fields fall back to their
        declared default; a required field with neither a value nor a
        default is a validation error.
        """
        unknown = sorted(set(values) - set(field_set.names()))
        if unknown:
            raise ValidationError(
                "Unknown methodology field(s): " + ", ".join(unknown),
                hint="Known fields: " + (", ".join(field_set.names()) or "none"),
            )
        grouped: dict[str, dict[str, Any]] = {m: {} for m in methodologies}
        for name, cfg in field_set.fields.items():
            if name in values and values[name] is not None:
                typed = cfg.convert(values[name])
            elif cfg.default is not None:
                typed = cfg.empty_value()
            elif cfg.required:
                raise ValidationError(f"Required field '{name}' ({cfg.display_label}) has no value")
            else:
                continue
            for methodology in field_set.sources[name]:
                grouped.setdefault(methodology, {})[name] = typed
        return grouped

    def orphans(self, use_case: UseCase) -> list[str]:
        """Orphaned entries of ``use_case.methodology_fields``.

        A whole methodology is reported by name; a stray field inside a
        still-enabled methodology is reported as ``methodology.field``.
        """
        enabled = set(use_case.enabled_methodologies())
        found: list[str] = []
        for methodology, values in use_case.methodology_fields.items():
            if methodology not in enabled:
                found.append(methodology)
                continue
            if methodology not in self.registry:
                continue
            definition = self.registry.get(methodology)
            # levels dropped from the definition declare nothing
            declared = self.collect(
                (v.methodology, v.level)
                for v in use_case.enabled_views()
                if v.methodology == methodology and definition.find_level(v.level) is not None
            )
            found.extend(
                f"{methodology}.{name}"
                for name in values
                if name not in declared and name not in definition.custom_fields
            )
        return found
