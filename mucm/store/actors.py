"""
Flat-file store for reusable actor records (personas, systems, services).

Each record is ``<persona_dir>/<id>.toml``; its rendered profile is written
next to it as ``<id>.md``. Both backends keep actors here.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Optional

import tomli_w

from mucm.errors import MucmError, NotFoundError, PersistenceError
from mucm.models import ActorEntity, validate_actor_id
from mucm.utils import atomic_write_text, strip_none

logger = logging.getLogger(__name__)


class ActorRepository:
    """Usage:
        actors = ActorRepository(config.persona_path(root))
        actors.save(ActorEntity(id="power-user", name="Power User"))
    """

    def __init__(self, actor_dir: Path):
        self.actor_dir = Path(actor_dir)

    def path_for(self, actor_id: str) -> Path:
        return self.actor_dir / f"{validate_actor_id(actor_id)}.toml"

    def profile_path(self, actor_id: str) -> Path:
        return self.actor_dir / f"{validate_actor_id(actor_id)}.md"

    def save(self, actor: ActorEntity) -> Path:
        return atomic_write_text(self.path_for(actor.id), tomli_w.dumps(strip_none(actor.to_dict())))

    def save_rendered(self, actor_id: str, content: str) -> Path:
        return atomic_write_text(self.profile_path(actor_id), content)

    def _read(self, path: Path) -> ActorEntity:
        try:
            with path.open("rb") as fh:
                return ActorEntity.from_dict(tomllib.load(fh))
        except (OSError, tomllib.TOMLDecodeError, KeyError, MucmError) as exc:
            raise PersistenceError(f"Cannot read actor file {path}: {exc}") from exc

    def load_by_id(self, actor_id: str) -> Optional[ActorEntity]:
        path = self.path_for(actor_id)
        return self._read(path) if path.exists() else None

    def exists(self, actor_id: str) -> bool:
        return self.path_for(actor_id).exists()

    def load_all(self) -> list[ActorEntity]:
        if not self.actor_dir.is_dir():
            return []
        actors = []
        for path in sorted(self.actor_dir.glob("*.toml")):
            try:
                actors.append(self._read(path))
            except PersistenceError as exc:
                logger.warning("Skipping unreadable actor: %s", exc)
        return actors

    def delete(self, actor_id: str) -> ActorEntity:
        actor = self.load_by_id(actor_id)
        if actor is None:
            raise NotFoundError(f"Persona '{actor_id}' not found")
        for path in (self.path_for(actor_id), self.profile_path(actor_id)):
            if path.exists():
                path.unlink()
        return actor
