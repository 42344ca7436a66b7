"""
View materialization: one Markdown document per enabled methodology view.

For each enabled ``MethodologyView`` (in declaration order) the materializer
resolves the level through the registry, builds a context from the use case,
the values stored for that methodology and the flattened field descriptors,
and renders the level's template into ``<id>-<methodology>-<abbrev>.md``.
"""

from __future__ import annotations

import logging
from typing import Optional

from mucm.config import MetadataSettings
from mucm.errors import RenderError, ValidationError
from mucm.methodology.fields import FieldCollector
from mucm.methodology.registry import DocumentationLevel, MethodologyDef, MethodologyRegistry
from mucm.models import MethodologyView, UseCase
from mucm.render.context import use_case_context
from mucm.render.engine import TemplateEngine

logger = logging.getLogger(__name__)


def artifact_name(use_case_id: str, methodology: str, level: DocumentationLevel) -> str:
    return f"{use_case_id}-{methodology}-{level.abbreviation}.md"


class ViewMaterializer:
    """Render every enabled view of a use case.

    Usage:
        materializer = ViewMaterializer(registry, engine, collector)
        for name, content in materializer.materialize(use_case):
            repository.save_rendered(use_case.id, name, content)
    """

    def __init__(
        self,
        registry: MethodologyRegistry,
        engine: TemplateEngine,
        collector: FieldCollector,
        metadata: Optional[MetadataSettings] = None,
    ):
        self.registry = registry
        self.engine = engine
        self.collector = collector
        self.metadata = metadata or MetadataSettings()

    def template_name(self, definition: MethodologyDef, level: DocumentationLevel) -> str:
        return f"{definition.name}/{level.template_stem}"

    def build_context(self, use_case: UseCase, methodology: str, level_name: str) -> dict:
        definition, level = self.registry.resolve_view(methodology, level_name)
        values = use_case.methodology_fields.get(definition.name, {})
        field_set = self.collector.collect([(definition.name, level.name)])

        context = use_case_context(use_case)
        for name, value in values.items():
            context.setdefault(name, value)
        context.update(
            fields=dict(values),
            custom_fields=field_set.descriptors(values),
            methodology={
                "name": definition.name,
                "title": definition.title,
                "description": definition.description,
            },
            level={
                "name": level.name,
                "abbreviation": level.abbreviation,
                "description": level.description,
            },
            show_created=self.metadata.created,
            show_last_updated=self.metadata.last_updated,
        )
        return context

    def resolve(self, use_case: UseCase, view: MethodologyView) -> tuple[MethodologyDef, DocumentationLevel]:
        """Registry lookup for a stored view; a stale view is a render failure of that use case."""
        try:
            return self.registry.resolve_view(view.methodology, view.level)
        except ValidationError as exc:
            raise RenderError(
                f"Cannot render view '{view.key}' of {use_case.id}: {exc.message}",
                hint=exc.hint,
            ) from exc

    def artifact_names(self, use_case: UseCase) -> list[str]:
        names = []
        for view in use_case.enabled_views():
            definition, level = self.resolve(use_case, view)
            names.append(artifact_name(use_case.id, definition.name, level))
        return names

    def materialize(self, use_case: UseCase) -> list[tuple[str, str]]:
        artifacts = []
        for view in use_case.enabled_views():
            definition, level = self.resolve(use_case, view)
            name = self.template_name(definition, level)
            if not self.engine.has_template(name):
                raise RenderError(
                    f"No template '{name}' for view '{view.key}' of {use_case.id}",
                    hint=f"Expected {level.filename} in the '{definition.name}' template directory",
                )
            context = self.build_context(use_case, definition.name, level.name)
            artifacts.append((artifact_name(use_case.id, definition.name, level), self.engine.render(name, context)))
            logger.debug("Rendered %s view %s", use_case.id, view.key)
        return artifacts
