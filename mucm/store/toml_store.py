"""
Flat-file backend: one TOML document per use case.

Layout: ``<toml_dir>/<category>/<id>.toml`` with the rendered views beside it
under the use case directory. ``None`` values are dropped on write since
TOML has no null; every other key, including unknown ones, round-trips.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Optional

import tomli_w

from mucm.errors import MucmError, PersistenceError
from mucm.ids import scan_on_disk_ids
from mucm.models import UseCase, validate_use_case_id
from mucm.store.base import UseCaseRepository
from mucm.utils import atomic_write_text, strip_none, to_snake_case

logger = logging.getLogger(__name__)


class TomlRepository(UseCaseRepository):
    """Use cases as TOML files in a directory tree.

    ``load_all`` walks the tree and returns aggregates in lexicographic
    order of their on-disk paths.
    """

    name = "toml"

    def __init__(self, use_case_dir: Path, toml_dir: Optional[Path] = None):
        super().__init__(use_case_dir)
        self.toml_dir = Path(toml_dir) if toml_dir else self.use_case_dir

    def path_for(self, use_case: UseCase) -> Path:
        return self.toml_dir / to_snake_case(use_case.category) / f"{use_case.id}.toml"

    def _find_file(self, use_case_id: str) -> Optional[Path]:
        if not self.toml_dir.is_dir():
            return None
        matches = sorted(self.toml_dir.rglob(f"{use_case_id}.toml"))
        return matches[0] if matches else None

    def _read(self, path: Path) -> UseCase:
        try:
            with path.open("rb") as fh:
                data = tomllib.load(fh)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise PersistenceError(f"Cannot read use case file {path}: {exc}") from exc
        try:
            return UseCase.from_dict(data)
        except (MucmError, KeyError, TypeError) as exc:
            raise PersistenceError(f"Invalid use case data in {path}: {exc}") from exc

    def save(self, use_case: UseCase) -> None:
        use_case.validate()
        target = self.path_for(use_case)
        previous = self._find_file(use_case.id)
        atomic_write_text(target, tomli_w.dumps(strip_none(use_case.to_dict())))
        if previous is not None and previous.resolve() != target.resolve():
            # category changed: the old document must not shadow the new one
            previous.unlink()
        logger.debug("Saved %s to %s", use_case.id, target)

    def load_by_id(self, use_case_id: str) -> Optional[UseCase]:
        validate_use_case_id(use_case_id)
        path = self._find_file(use_case_id)
        return self._read(path) if path else None

    def load_all(self) -> list[UseCase]:
        if not self.toml_dir.is_dir():
            return []
        use_cases = []
        for path in sorted(self.toml_dir.rglob("UC-*.toml")):
            try:
                use_cases.append(self._read(path))
            except PersistenceError as exc:
                logger.warning("Skipping unreadable use case: %s", exc)
        return use_cases

    def _delete_record(self, use_case: UseCase) -> None:
        path = self._find_file(use_case.id)
        if path is not None:
            try:
                path.unlink()
            except OSError as exc:
                raise PersistenceError(f"Cannot delete {path}: {exc}") from exc

    def on_disk_ids(self) -> set[str]:
        return scan_on_disk_ids(self.use_case_dir, self.toml_dir)
