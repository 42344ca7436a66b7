"""
Project initialization for MUCM.

This module creates the project layout and installs the default assets:

1. ``.config/.mucm/mucm.toml`` with the chosen settings
2. Methodology definitions and level templates
3. Language test templates, the overview and persona templates
4. Use case, test and persona directories (and the database for sqlite)

Existing template files are left alone unless ``force`` is set, so local
edits survive a re-initialization.

Functions:
    install_templates: Copy packaged templates into a project
    init_project: Create a new project

Example:
    >>> from mucm.bootstrap import init_project
    >>> config = init_project(Path("."), name="Shop", backend="sqlite")
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, Optional

from mucm.config import (
    DEFAULT_METHODOLOGIES,
    PACKAGE_TEMPLATES,
    SUPPORTED_BACKENDS,
    Config,
    DirectorySettings,
    GenerationSettings,
    ProjectSettings,
    TemplateSettings,
    config_path,
)
from mucm.errors import ConflictError, ValidationError
from mucm.languages import LanguageRegistry
from mucm.methodology.registry import METHODOLOGY_FILE
from mucm.store.migrations import Migrator

logger = logging.getLogger(__name__)

# Top-level packaged templates that are not methodologies
_SHARED_ASSETS = ("languages", "partials", "overview.tmpl", "persona.tmpl")


def packaged_methodologies() -> list[str]:
    return sorted(p.parent.name for p in PACKAGE_TEMPLATES.glob(f"*/{METHODOLOGY_FILE}"))


def _copy_tree(source: Path, target: Path, force: bool) -> list[Path]:
    written = []
    files = [source] if source.is_file() else sorted(p for p in source.rglob("*") if p.is_file())
    for path in files:
        dest = target / path.relative_to(source.parent)
        if dest.exists() and not force:
            logger.debug("Keeping existing %s", dest)
            continue
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(path, dest)
        written.append(dest)
    return written


def install_templates(template_dir: Path, methodologies: Iterable[str], force: bool = False) -> list[Path]:
    """Copy the selected methodologies plus shared templates into ``template_dir``."""
    template_dir = Path(template_dir)
    available = packaged_methodologies()
    written: list[Path] = []
    for name in methodologies:
        if name not in available:
            raise ValidationError(
                f"Unknown methodology '{name}'",
                hint="Available: " + ", ".join(available),
            )
        written += _copy_tree(PACKAGE_TEMPLATES / name, template_dir, force)
    for asset in _SHARED_ASSETS:
        source = PACKAGE_TEMPLATES / asset
        if source.exists():
            written += _copy_tree(source, template_dir, force)
    return written


def init_project(
    root: Path,
    name: Optional[str] = None,
    description: str = "",
    backend: str = "toml",
    methodologies: Optional[list[str]] = None,
    default_methodology: Optional[str] = None,
    test_language: str = "python",
    force: bool = False,
) -> Config:
    root = Path(root).resolve()
    if config_path(root).exists() and not force:
        raise ConflictError(
            f"A project already exists in {root}",
            hint="Use --force to reinitialize it",
        )
    if backend not in SUPPORTED_BACKENDS:
        raise ValidationError(
            f"Unknown storage backend '{backend}'",
            hint="Use one of: " + ", ".join(SUPPORTED_BACKENDS),
        )
    methodologies = list(methodologies or DEFAULT_METHODOLOGIES)
    default_methodology = default_methodology or methodologies[0]
    if default_methodology not in methodologies:
        raise ValidationError(f"Default methodology '{default_methodology}' is not among {methodologies}")
    if not LanguageRegistry.is_disabled(test_language):
        test_language = LanguageRegistry().get(test_language).name

    config = Config(
        project=ProjectSettings(name=name or root.name, description=description),
        directories=DirectorySettings(),
        templates=TemplateSettings(
            methodologies=methodologies,
            default_methodology=default_methodology,
            test_language=test_language,
            storage_backend=backend,
        ),
        generation=GenerationSettings(test_language=test_language),
    )

    written = install_templates(config.template_path(root), methodologies, force=force)
    logger.info("Installed %d template files", len(written))
    for path in (config.use_case_path(root), config.test_path(root), config.persona_path(root)):
        path.mkdir(parents=True, exist_ok=True)
    if backend == "sqlite":
        Migrator(config.database_file(root)).migrate()
    config.save(root)
    return config
