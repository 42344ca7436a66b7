"""
Language-specific test skeletons with preserved user regions.

Each scenario gets one test function whose body sits between

    START USER IMPLEMENTATION [<scenario-id>]
    END USER IMPLEMENTATION [<scenario-id>]

marker lines (prefixed with the language's comment token). On re-render the
text between matching markers of the previous file is carried over for
scenarios that still exist; blocks of removed scenarios disappear.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from mucm.errors import RenderError
from mucm.languages import LanguageDef, LanguageRegistry
from mucm.models import UseCase
from mucm.render.context import use_case_context
from mucm.render.engine import TemplateEngine
from mucm.utils import to_snake_case

START_MARKER = "START USER IMPLEMENTATION"
END_MARKER = "END USER IMPLEMENTATION"

_START_RE = re.compile(re.escape(START_MARKER) + r" \[(?P<id>[^\]]+)\]")


def _is_end(line: str, block_id: str) -> bool:
    return END_MARKER in line and f"[{block_id}]" in line


def extract_user_blocks(text: str) -> dict[str, list[str]]:
    """Lines between each START/END marker pair, keyed by scenario ID.

    An unterminated block is ignored.
    """
    blocks: dict[str, list[str]] = {}
    current: Optional[str] = None
    buffer: list[str] = []
    for line in text.splitlines():
        if current is None:
            match = _START_RE.search(line)
            if match:
                current = match.group("id")
                buffer = []
        elif _is_end(line, current):
            blocks[current] = buffer
            current = None
        else:
            buffer.append(line)
    return blocks


def merge_user_blocks(rendered: str, blocks: dict[str, list[str]]) -> str:
    """Replace fresh block bodies in ``rendered`` with the preserved ones."""
    out: list[str] = []
    skipping: Optional[str] = None
    for line in rendered.splitlines(keepends=True):
        if skipping is not None:
            if _is_end(line, skipping):
                out.append(line)
                skipping = None
            continue
        out.append(line)
        match = _START_RE.search(line)
        if match and match.group("id") in blocks:
            skipping = match.group("id")
            out.extend(body + "\n" for body in blocks[skipping])
    return "".join(out)


class ScaffoldGenerator:
    """Render test skeletons for use cases.

    Usage:
        scaffolds = ScaffoldGenerator(engine, languages)
        path = scaffolds.test_path(use_case, test_dir, "python")
        content = scaffolds.render(use_case, "python", previous=old_text)
    """

    def __init__(self, engine: TemplateEngine, languages: LanguageRegistry):
        self.engine = engine
        self.languages = languages

    def test_path(self, use_case: UseCase, test_dir: Path, language: str) -> Path:
        lang = self.languages.get(language)
        return Path(test_dir) / to_snake_case(use_case.category) / f"{to_snake_case(use_case.id)}.{lang.extension}"

    def build_context(self, use_case: UseCase, lang: LanguageDef) -> dict:
        context = use_case_context(use_case)
        context.update(
            language=lang.name,
            comment=lang.comment,
            start_marker=START_MARKER,
            end_marker=END_MARKER,
        )
        return context

    def render(self, use_case: UseCase, language: str, previous: Optional[str] = None) -> str:
        lang = self.languages.get(language)
        if not self.engine.has_template(lang.template_name):
            raise RenderError(
                f"No test template for language '{lang.name}'",
                hint=f"Expected {lang.template_name}.tmpl in the template directory",
            )
        rendered = self.engine.render(lang.template_name, self.build_context(use_case, lang))
        if previous:
            live = {s.id for s in use_case.scenarios}
            blocks = {sid: body for sid, body in extract_user_blocks(previous).items() if sid in live}
            rendered = merge_user_blocks(rendered, blocks)
        return rendered
