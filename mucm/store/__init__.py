"""Storage backends for use cases and actor records."""

from __future__ import annotations

from pathlib import Path

from mucm.config import Config
from mucm.errors import ValidationError
from mucm.store.actors import ActorRepository
from mucm.store.base import UseCaseRepository
from mucm.store.migrations import CURRENT_SCHEMA_VERSION, Migrator
from mucm.store.sqlite_store import SqliteRepository
from mucm.store.toml_store import TomlRepository


def create_repository(config: Config, root: Path) -> UseCaseRepository:
    """Factory for the configured backend.

    The relational store is authoritative whenever it is configured; the
    TOML tree is used otherwise.
    """
    backend = config.storage_backend
    if backend == "sqlite":
        return SqliteRepository(config.database_file(root), config.use_case_path(root))
    if backend == "toml":
        return TomlRepository(config.use_case_path(root), config.toml_path(root))
    raise ValidationError(f"Unknown storage backend '{backend}'")


__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "ActorRepository",
    "Migrator",
    "SqliteRepository",
    "TomlRepository",
    "UseCaseRepository",
    "create_repository",
]
