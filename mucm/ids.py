"""
Identifier allocation for use cases and scenarios.

Use case IDs are ``UC-<PREFIX>-<NNN>`` where PREFIX is derived from the
category. Allocation checks both the IDs known in memory and the IDs found
on disk, so a file left behind by a crashed run is never silently reused.

Scenario IDs are ``<UseCaseId>-S<NN>`` and grow monotonically: IDs of deleted
scenarios stay retired.

Example:
    >>> category_prefix("Security")
    'SEC'
    >>> next_use_case_id("Security", {"UC-SEC-001"})
    'UC-SEC-002'
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from mucm.errors import PersistenceError
from mucm.models import UseCase, scenario_index

logger = logging.getLogger(__name__)

# Upper bound on candidates tried per prefix; hitting it means the store is corrupt
MAX_ALLOCATION_ATTEMPTS = 100_000

_ON_DISK_ID = re.compile(r"^(UC-[A-Z0-9]+-\d{3,})(?=[-.]|$)")


def category_prefix(category: str) -> str:
    """First three upper-cased alphanumerics of ``category``, padded with X."""
    cleaned = re.sub(r"[^A-Z0-9]", "", category.upper())
    return cleaned[:3].ljust(3, "X")


def next_use_case_id(
    category: str,
    existing_ids: Iterable[str],
    on_disk_ids: Iterable[str] = (),
) -> str:
    prefix = category_prefix(category)
    taken = set(existing_ids) | set(on_disk_ids)
    for n in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
        candidate = f"UC-{prefix}-{n:03d}"
        if candidate not in taken:
            return candidate
    raise PersistenceError(
        f"No free use case ID for prefix '{prefix}' after {MAX_ALLOCATION_ATTEMPTS} attempts",
        hint="The use case store looks corrupted",
    )


def next_scenario_id(use_case: UseCase) -> str:
    highest = max((scenario_index(sid) for sid in use_case.used_scenario_ids()), default=0)
    return f"{use_case.id}-S{highest + 1:02d}"


def scan_on_disk_ids(*roots: Path) -> set[str]:
    """Collect use case IDs from file names (``UC-*.toml``, ``UC-*-*.md``) under ``roots``."""
    found: set[str] = set()
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            continue
        for path in root.rglob("UC-*"):
            match = _ON_DISK_ID.match(path.name)
            if match:
                found.add(match.group(1))
    logger.debug("Found %d use case IDs on disk", len(found))
    return found
