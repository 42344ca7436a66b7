"""
Template engine built on Jinja2.

Templates are registered by name (``feature/normal``, ``languages/python/test``,
``overview``) and compiled immediately, so a malformed template fails at
registration. Missing placeholders render as empty text. Templates may
``{% include %}`` or ``{% import %}`` any other registered template.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from jinja2 import ChainableUndefined, DictLoader, Environment, Template, TemplateError, TemplateSyntaxError

from mucm.errors import RenderError
from mucm.render.helpers import HELPERS
from mucm.utils import to_snake_case

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".tmpl"


def _fromjson(value: Any) -> Any:
    if not value:
        return []
    return json.loads(value)


class TemplateEngine:
    """Named templates plus the domain helpers.

    Usage:
        engine = TemplateEngine({"hello": "Hello {{ name }}!"})
        engine.render("hello", {"name": "World"})
    """

    def __init__(self, sources: Optional[Mapping[str, str]] = None):
        self._sources: dict[str, str] = {}
        self._compiled: dict[str, Template] = {}
        self._env = Environment(
            loader=DictLoader(self._sources),
            undefined=ChainableUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self._env.globals.update(HELPERS)
        self._env.filters["fromjson"] = _fromjson
        self._env.filters["snake_case"] = to_snake_case
        for name, body in (sources or {}).items():
            self.register_template(name, body)

    @classmethod
    def from_directory(cls, template_dir: Path) -> TemplateEngine:
        """Register every ``*.tmpl`` under ``template_dir`` by its relative path without suffix."""
        engine = cls()
        template_dir = Path(template_dir)
        if not template_dir.is_dir():
            raise RenderError(
                f"Template directory {template_dir} does not exist",
                hint="Run 'mucm init --force' to restore the default templates",
            )
        for path in sorted(template_dir.rglob(f"*{TEMPLATE_SUFFIX}")):
            name = path.relative_to(template_dir).with_suffix("").as_posix()
            engine.register_template(name, path.read_text(encoding="utf-8"))
        logger.debug("Registered %d templates from %s", len(engine.names()), template_dir)
        return engine

    def register_template(self, name: str, body: str) -> None:
        try:
            compiled = self._env.from_string(body)
        except TemplateSyntaxError as exc:
            raise RenderError(f"Malformed template '{name}' (line {exc.lineno}): {exc.message}") from exc
        self._sources[name] = body
        self._compiled[name] = compiled

    def has_template(self, name: str) -> bool:
        return name in self._compiled

    def names(self) -> list[str]:
        return sorted(self._compiled)

    def render(self, name: str, context: Mapping[str, Any]) -> str:
        template = self._compiled.get(name)
        if template is None:
            raise RenderError(f"Template '{name}' is not registered")
        try:
            return template.render(dict(context))
        except TemplateError as exc:
            raise RenderError(f"Failed to render '{name}': {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise RenderError(f"Helper failed while rendering '{name}': {exc}") from exc
