"""Rendering: template engine, helpers, view materializer, test skeletons and overview."""

from mucm.render.engine import TemplateEngine
from mucm.render.helpers import has_personas, unique_actors, unique_personas
from mucm.render.overview import OverviewGenerator
from mucm.render.scaffold import ScaffoldGenerator, extract_user_blocks, merge_user_blocks
from mucm.render.views import ViewMaterializer, artifact_name

__all__ = [
    "OverviewGenerator",
    "ScaffoldGenerator",
    "TemplateEngine",
    "ViewMaterializer",
    "artifact_name",
    "extract_user_blocks",
    "has_personas",
    "merge_user_blocks",
    "unique_actors",
    "unique_personas",
]
