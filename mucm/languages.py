"""
Test languages supported by the skeleton generator.

Built-in languages are always available. A project can add more by creating
``<template_dir>/languages/<name>/`` with a ``test.tmpl`` and a
``language.toml``:

    extension = "rb"
    comment = "#"
    aliases = ["ruby"]
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

from mucm.errors import ValidationError

logger = logging.getLogger(__name__)

NO_LANGUAGE = "none"
LANGUAGE_FILE = "language.toml"


@dataclass(frozen=True)
class LanguageDef:
    name: str
    extension: str
    comment: str
    aliases: tuple[str, ...] = ()

    @property
    def template_name(self) -> str:
        return f"languages/{self.name}/test"


BUILTIN_LANGUAGES = (
    LanguageDef("python", "py", "#", ("py",)),
    LanguageDef("javascript", "js", "//", ("js", "node")),
    LanguageDef("rust", "rs", "//", ("rs",)),
)


class LanguageRegistry:
    """Lookup of test languages by name or alias.

    Usage:
        languages = LanguageRegistry.from_directory(template_dir)
        languages.get("js").extension   # 'js'
    """

    def __init__(self, languages: Iterable[LanguageDef] = BUILTIN_LANGUAGES):
        self._languages: dict[str, LanguageDef] = {}
        for language in languages:
            self.register(language)

    @classmethod
    def from_directory(cls, template_dir: Optional[Path]) -> LanguageRegistry:
        registry = cls()
        lang_dir = Path(template_dir) / "languages" if template_dir else None
        if lang_dir is None or not lang_dir.is_dir():
            return registry
        for path in sorted(lang_dir.glob(f"*/{LANGUAGE_FILE}")):
            try:
                with path.open("rb") as fh:
                    data = tomllib.load(fh)
                registry.register(LanguageDef(
                    name=path.parent.name.lower(),
                    extension=str(data["extension"]).lstrip("."),
                    comment=str(data.get("comment", "#")),
                    aliases=tuple(str(a).lower() for a in data.get("aliases", [])),
                ))
            except (tomllib.TOMLDecodeError, KeyError) as exc:
                logger.warning("Skipping language definition %s: %s", path, exc)
        return registry

    def register(self, language: LanguageDef) -> None:
        self._languages[language.name] = language

    def names(self) -> list[str]:
        return sorted(self._languages)

    def find(self, name: str) -> Optional[LanguageDef]:
        key = name.strip().lower()
        if key in self._languages:
            return self._languages[key]
        return next((lang for lang in self._languages.values() if key in lang.aliases), None)

    def get(self, name: str) -> LanguageDef:
        language = self.find(name)
        if language is None:
            raise ValidationError(
                f"Unsupported language '{name}'",
                hint="Supported: " + ", ".join(self.names()) + f" (or '{NO_LANGUAGE}')",
            )
        return language

    @staticmethod
    def is_disabled(name: Optional[str]) -> bool:
        return not name or name.strip().lower() == NO_LANGUAGE

    def __iter__(self) -> Iterator[LanguageDef]:
        return iter(self._languages[name] for name in self.names())
