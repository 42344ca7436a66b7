"""
Project configuration and directory layout.

A project is any directory holding ``.config/.mucm/mucm.toml``. The file is
split into sections that map onto the dataclasses below:

    [project]      name, description
    [directories]  use_case_dir, test_dir, persona_dir, template_dir,
                   toml_dir, database_path
    [templates]    methodologies, default_methodology, test_language,
                   storage_backend
    [generation]   test_language, auto_generate_tests,
                   overwrite_test_documentation
    [metadata]     created, last_updated

Unknown sections are kept in ``Config.extra`` and written back on save.

Example:
    >>> from mucm.config import Config, require_project_root
    >>> root = require_project_root()
    >>> config = Config.load(root)
    >>> config.use_case_path(root)
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import tomli_w

from mucm.errors import PersistenceError, PreconditionError, ValidationError
from mucm.utils import atomic_write_text

logger = logging.getLogger(__name__)

# Application name for display
APP_NAME = "MUCM"

# Project-relative configuration directory and file
CONFIG_DIR = Path(".config") / ".mucm"
CONFIG_FILE = "mucm.toml"

DEFAULT_USE_CASE_DIR = "docs/use-cases"
DEFAULT_TEST_DIR = "tests/use-cases"
DEFAULT_PERSONA_DIR = "docs/personas"
DEFAULT_TEMPLATE_DIR = str(CONFIG_DIR / "templates")
DEFAULT_DATABASE_PATH = str(CONFIG_DIR / "mucm.db")

DEFAULT_METHODOLOGIES = ["feature", "business", "developer", "tester"]
DEFAULT_METHODOLOGY = "feature"
DEFAULT_TEST_LANGUAGE = "python"

SUPPORTED_BACKENDS = ("toml", "sqlite")

# Templates and methodology definitions shipped with the package
PACKAGE_TEMPLATES = Path(__file__).resolve().parent / "templates"

_SECTIONS = ("project", "directories", "templates", "generation", "metadata")


@dataclass
class ProjectSettings:
    name: str = "My Project"
    description: str = ""


@dataclass
class DirectorySettings:
    use_case_dir: str = DEFAULT_USE_CASE_DIR
    test_dir: str = DEFAULT_TEST_DIR
    persona_dir: str = DEFAULT_PERSONA_DIR
    template_dir: Optional[str] = None
    toml_dir: Optional[str] = None
    database_path: Optional[str] = None


@dataclass
class TemplateSettings:
    methodologies: list[str] = field(default_factory=lambda: list(DEFAULT_METHODOLOGIES))
    default_methodology: str = DEFAULT_METHODOLOGY
    test_language: Optional[str] = None
    storage_backend: str = "toml"

    def __post_init__(self):
        if self.storage_backend not in SUPPORTED_BACKENDS:
            raise ValidationError(
                f"Unknown storage backend '{self.storage_backend}'",
                hint="Use one of: " + ", ".join(SUPPORTED_BACKENDS),
            )


@dataclass
class GenerationSettings:
    test_language: Optional[str] = None
    auto_generate_tests: bool = False
    overwrite_test_documentation: bool = False


@dataclass
class MetadataSettings:
    """Which timestamps the rendered views show."""
    created: bool = True
    last_updated: bool = True


@dataclass
class Config:
    """Full project configuration.

    Paths are stored as written in the file (relative to the project root)
    and resolved through the ``*_path`` helpers.
    """
    project: ProjectSettings = field(default_factory=ProjectSettings)
    directories: DirectorySettings = field(default_factory=DirectorySettings)
    templates: TemplateSettings = field(default_factory=TemplateSettings)
    generation: GenerationSettings = field(default_factory=GenerationSettings)
    metadata: MetadataSettings = field(default_factory=MetadataSettings)
    extra: dict = field(default_factory=dict)

    @property
    def test_language(self) -> str:
        return (
            self.generation.test_language
            or self.templates.test_language
            or DEFAULT_TEST_LANGUAGE
        )

    @property
    def storage_backend(self) -> str:
        return self.templates.storage_backend

    # -- resolved paths ------------------------------------------------------

    def use_case_path(self, root: Path) -> Path:
        return Path(root) / self.directories.use_case_dir

    def test_path(self, root: Path) -> Path:
        return Path(root) / self.directories.test_dir

    def persona_path(self, root: Path) -> Path:
        return Path(root) / self.directories.persona_dir

    def template_path(self, root: Path) -> Path:
        return Path(root) / (self.directories.template_dir or DEFAULT_TEMPLATE_DIR)

    def toml_path(self, root: Path) -> Path:
        return Path(root) / (self.directories.toml_dir or self.directories.use_case_dir)

    def database_file(self, root: Path) -> Path:
        return Path(root) / (self.directories.database_path or DEFAULT_DATABASE_PATH)

    # -- serialization -------------------------------------------------------

    def to_dict(self) -> dict:
        directories = {
            k: v for k, v in vars(self.directories).items() if v is not None
        }
        templates = {k: v for k, v in vars(self.templates).items() if v is not None}
        generation = {k: v for k, v in vars(self.generation).items() if v is not None}
        d = dict(self.extra)
        d.update(
            project=dict(vars(self.project)),
            directories=directories,
            templates=templates,
            generation=generation,
            metadata=dict(vars(self.metadata)),
        )
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Config:
        def section(name: str, settings_cls):
            values = d.get(name) or {}
            known = settings_cls.__dataclass_fields__
            unknown = sorted(set(values) - set(known))
            if unknown:
                logger.warning("Ignoring unknown keys in [%s]: %s", name, ", ".join(unknown))
            return settings_cls(**{k: v for k, v in values.items() if k in known})

        return cls(
            project=section("project", ProjectSettings),
            directories=section("directories", DirectorySettings),
            templates=section("templates", TemplateSettings),
            generation=section("generation", GenerationSettings),
            metadata=section("metadata", MetadataSettings),
            extra={k: v for k, v in d.items() if k not in _SECTIONS},
        )

    @classmethod
    def load(cls, root: Path) -> Config:
        path = config_path(root)
        if not path.exists():
            raise PreconditionError(
                "No use case manager project found",
                hint="Run 'mucm init' first",
            )
        try:
            with path.open("rb") as fh:
                data = tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise ValidationError(f"Invalid configuration in {path}: {exc}") from exc
        except OSError as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}") from exc
        return cls.from_dict(data)

    def save(self, root: Path) -> Path:
        return atomic_write_text(config_path(root), tomli_w.dumps(self.to_dict()))


def config_path(root: Path) -> Path:
    return Path(root) / CONFIG_DIR / CONFIG_FILE


def find_project_root(start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from ``start`` (default: cwd) to the first directory holding a project config."""
    current = Path(start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if config_path(candidate).is_file():
            return candidate
    return None


def require_project_root(start: Optional[Path] = None) -> Path:
    root = find_project_root(start)
    if root is None:
        raise PreconditionError(
            "No use case manager project found",
            hint="Run 'mucm init' first",
        )
    return root
