"""
Removal of orphaned methodology field values.

An orphan is a ``methodology_fields`` entry whose methodology is no longer
enabled on the use case, or a field no enabled level of its methodology
declares any more. Per-item failures are collected into the
report instead of aborting the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from mucm.errors import MucmError
from mucm.methodology.fields import FieldCollector
from mucm.models import UseCase
from mucm.store.base import UseCaseRepository

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    """Outcome of a cleanup run.

    Unpacks as ``(cleaned_count, total, details)``.
    """
    cleaned_count: int = 0
    total: int = 0
    details: list[tuple[str, list[str]]] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)
    dry_run: bool = False

    def __iter__(self) -> Iterator:
        return iter((self.cleaned_count, self.total, self.details))


def remove_orphans(use_case: UseCase, orphans: list[str]) -> None:
    for entry in orphans:
        methodology, _, name = entry.partition(".")
        if name:
            use_case.methodology_fields.get(methodology, {}).pop(name, None)
        else:
            use_case.methodology_fields.pop(methodology, None)


class OrphanFieldCleaner:
    """Usage:
        cleaner = OrphanFieldCleaner(repository, collector)
        cleaned, total, details = cleaner.clean(dry_run=True)
    """

    def __init__(self, repository: UseCaseRepository, collector: FieldCollector):
        self.repository = repository
        self.collector = collector

    def clean(self, use_case_id: Optional[str] = None, dry_run: bool = False) -> CleanupReport:
        if use_case_id is not None:
            use_cases = [self.repository.require(use_case_id)]
        else:
            use_cases = self.repository.load_all()

        report = CleanupReport(total=len(use_cases), dry_run=dry_run)
        for use_case in use_cases:
            try:
                orphans = self.collector.orphans(use_case)
            except MucmError as exc:
                logger.warning("Could not inspect %s: %s", use_case.id, exc)
                report.errors.append((use_case.id, str(exc)))
                continue
            if not orphans:
                continue
            report.details.append((use_case.id, orphans))
            if dry_run:
                report.cleaned_count += 1
                continue
            remove_orphans(use_case, orphans)
            use_case.touch()
            try:
                self.repository.save(use_case)
            except MucmError as exc:
                logger.warning("Could not clean %s: %s", use_case.id, exc)
                report.errors.append((use_case.id, str(exc)))
                continue
            report.cleaned_count += 1
            logger.info("Removed orphaned fields from %s: %s", use_case.id, ", ".join(orphans))
        return report
