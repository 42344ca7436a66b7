"""
Project overview: one index of every use case grouped by category.
"""

from __future__ import annotations

from collections import Counter
from typing import Optional

from mucm.methodology.registry import MethodologyRegistry
from mucm.models import Status, UseCase
from mucm.render.engine import TemplateEngine
from mucm.render.views import artifact_name
from mucm.utils import to_snake_case

OVERVIEW_TEMPLATE = "overview"


class OverviewGenerator:
    """Build and render the overview document.

    The context only depends on the use cases themselves, so rendering an
    unchanged project twice yields identical output.
    """

    def __init__(
        self,
        engine: TemplateEngine,
        project_name: str,
        project_description: str = "",
        registry: Optional[MethodologyRegistry] = None,
    ):
        self.engine = engine
        self.project_name = project_name
        self.project_description = project_description
        self.registry = registry

    def _documents(self, use_case: UseCase) -> list[dict]:
        if self.registry is None:
            return []
        docs = []
        for view in use_case.enabled_views():
            definition = self.registry.get(view.methodology)
            level = definition.find_level(view.level) if definition else None
            if level is None:
                continue
            name = artifact_name(use_case.id, definition.name, level)
            docs.append({
                "methodology": definition.name,
                "level": level.name,
                "path": f"{to_snake_case(use_case.category)}/{name}",
            })
        return docs

    def build_context(self, use_cases: list[UseCase]) -> dict:
        by_category: dict[str, list[UseCase]] = {}
        for uc in use_cases:
            by_category.setdefault(uc.category, []).append(uc)

        categories = []
        for name in sorted(by_category, key=str.lower):
            entries = []
            for uc in sorted(by_category[name], key=lambda u: u.id):
                status = uc.status
                entries.append({
                    "id": uc.id,
                    "title": uc.title,
                    "priority": uc.priority.display_name,
                    "status": status.value,
                    "status_display": status.display_name,
                    "status_emoji": status.emoji,
                    "scenario_count": len(uc.scenarios),
                    "documents": self._documents(uc),
                })
            categories.append({"category_name": name, "use_cases": entries})

        counts = Counter(uc.status for uc in use_cases)
        last_updated = max((uc.metadata.updated_at for uc in use_cases), default=None)
        return {
            "project_name": self.project_name,
            "project_description": self.project_description,
            "total_use_cases": len(use_cases),
            "total_scenarios": sum(len(uc.scenarios) for uc in use_cases),
            "categories": categories,
            "status_counts": [
                {"status": s.value, "display": s.display_name, "emoji": s.emoji, "count": counts[s]}
                for s in Status if counts[s]
            ],
            "last_updated": last_updated.strftime("%Y-%m-%d") if last_updated else None,
        }

    def render(self, use_cases: list[UseCase]) -> str:
        return self.engine.render(OVERVIEW_TEMPLATE, self.build_context(use_cases))
