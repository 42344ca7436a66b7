"""
Repository interface shared by the storage backends.

This module defines:
- UseCaseRepository, the abstract save/load/list/delete contract
- the rendered-artifact writers both backends share (views and overview
  always live as Markdown files under the use case directory)

Design Philosophy:
- Whole-aggregate writes: ``save`` replaces everything stored for a use case
- Eager results: ``load_all`` returns a fully materialized list
- Each call acquires and releases its own files or connection
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from mucm.errors import NotFoundError, PersistenceError
from mucm.ids import scan_on_disk_ids
from mucm.models import UseCase
from mucm.utils import atomic_write_text, to_snake_case

logger = logging.getLogger(__name__)

OVERVIEW_FILE = "README.md"


class UseCaseRepository(ABC):
    """Abstract store of use case aggregates.

    Subclasses implement the four aggregate operations; rendered output
    handling is shared.
    """

    name: str = "base"

    def __init__(self, use_case_dir: Path):
        self.use_case_dir = Path(use_case_dir)

    @abstractmethod
    def save(self, use_case: UseCase) -> None:
        """Persist the whole aggregate atomically."""

    @abstractmethod
    def load_by_id(self, use_case_id: str) -> Optional[UseCase]:
        """Return the stored aggregate, or None."""

    @abstractmethod
    def load_all(self) -> list[UseCase]:
        """Return every stored aggregate in a deterministic order."""

    @abstractmethod
    def _delete_record(self, use_case: UseCase) -> None:
        """Remove the stored aggregate itself."""

    def delete(self, use_case_id: str) -> UseCase:
        """Remove a use case and its rendered views."""
        use_case = self.require(use_case_id)
        self._delete_record(use_case)
        self.prune_rendered(use_case, keep=())
        logger.info("Deleted use case %s", use_case_id)
        return use_case

    def require(self, use_case_id: str) -> UseCase:
        use_case = self.load_by_id(use_case_id)
        if use_case is None:
            raise NotFoundError(
                f"Use case '{use_case_id}' not found",
                hint="Run 'mucm list' to see existing use cases",
            )
        return use_case

    def exists(self, use_case_id: str) -> bool:
        return self.load_by_id(use_case_id) is not None

    def existing_ids(self) -> set[str]:
        return {uc.id for uc in self.load_all()}

    def on_disk_ids(self) -> set[str]:
        return scan_on_disk_ids(self.use_case_dir)

    # -- rendered artifacts ----------------------------------------------------

    def category_dir(self, use_case: UseCase) -> Path:
        return self.use_case_dir / to_snake_case(use_case.category)

    def write_rendered(self, use_case: UseCase, artifact_name: str, content: str) -> Path:
        if "/" in artifact_name or "\\" in artifact_name:
            raise PersistenceError(f"Artifact name '{artifact_name}' must not contain a path")
        return atomic_write_text(self.category_dir(use_case) / artifact_name, content)

    def save_rendered(self, use_case_id: str, artifact_name: str, content: str) -> Path:
        return self.write_rendered(self.require(use_case_id), artifact_name, content)

    def prune_rendered(self, use_case: UseCase, keep: Iterable[str]) -> list[Path]:
        """Delete ``<id>-*.md`` files of ``use_case`` not listed in ``keep``."""
        keep = set(keep)
        removed = []
        folder = self.category_dir(use_case)
        if not folder.is_dir():
            return removed
        for path in folder.glob(f"{use_case.id}-*.md"):
            if path.name not in keep:
                path.unlink()
                removed.append(path)
        return removed

    def save_overview(self, content: str) -> Path:
        return atomic_write_text(self.use_case_dir / OVERVIEW_FILE, content)
