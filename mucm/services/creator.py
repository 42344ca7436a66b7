"""
Construction of new use case aggregates.

The creator validates the request, allocates the ID, builds the views and
the initial methodology field values. It never persists; the caller saves
the returned aggregate through a repository.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from mucm.errors import ConflictError, ValidationError
from mucm.ids import next_use_case_id
from mucm.methodology.fields import FieldCollector
from mucm.methodology.registry import MethodologyRegistry, parse_view_spec
from mucm.models import MethodologyView, Priority, UseCase

logger = logging.getLogger(__name__)

ViewSpec = Union[str, tuple[str, str]]


class UseCaseCreator:
    """Usage:
        creator = UseCaseCreator(registry, collector, default_methodology="feature")
        uc = creator.create("Login", "Security", selected_views=["feature:normal"],
                            existing_ids=repo.existing_ids(), on_disk_ids=repo.on_disk_ids())
    """

    def __init__(self, registry: MethodologyRegistry, collector: FieldCollector, default_methodology: str):
        self.registry = registry
        self.collector = collector
        self.default_methodology = default_methodology

    def resolve_views(self, selected_views: Iterable[ViewSpec]) -> list[MethodologyView]:
        views: list[MethodologyView] = []
        for spec in selected_views:
            methodology, level_name = parse_view_spec(spec) if isinstance(spec, str) else spec
            definition, level = self.registry.resolve_view(methodology, level_name)
            view = MethodologyView(methodology=definition.name, level=level.name)
            if any(v.key == view.key for v in views):
                raise ConflictError(f"View '{view.key}' selected twice")
            views.append(view)
        if not views:
            methodology, level_name = self.registry.default_view(self.default_methodology)
            views.append(MethodologyView(methodology=methodology, level=level_name))
            logger.debug("No views selected; using default %s-%s", methodology, level_name)
        return views

    def create(
        self,
        title: str,
        category: str,
        description: str = "",
        priority: Any = Priority.MEDIUM,
        selected_views: Iterable[ViewSpec] = (),
        methodology_field_values: Optional[Mapping[str, Any]] = None,
        existing_ids: Iterable[str] = (),
        on_disk_ids: Iterable[str] = (),
    ) -> UseCase:
        if not title or not title.strip():
            raise ValidationError("Use case title cannot be empty")
        if not category or not category.strip():
            raise ValidationError("Use case category cannot be empty")
        priority = Priority.parse(priority)
        views = self.resolve_views(selected_views)
        methodologies = list(dict.fromkeys(v.methodology for v in views))

        if methodology_field_values:
            field_set = self.collector.collect((v.methodology, v.level) for v in views)
            fields = self.collector.build_values(field_set, methodology_field_values, methodologies)
        else:
            fields = {m: {} for m in methodologies}

        existing_ids = set(existing_ids)
        use_case_id = next_use_case_id(category, existing_ids, on_disk_ids)
        if use_case_id in existing_ids:
            raise ConflictError(f"Use case ID '{use_case_id}' is already in use")

        return UseCase(
            id=use_case_id,
            title=title.strip(),
            category=category.strip(),
            description=description or "",
            priority=priority,
            views=views,
            methodology_fields=fields,
        )
