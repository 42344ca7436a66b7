"""Use case services: creation, orphan cleanup and the application service."""

from mucm.services.application import Lint, ProjectStatus, UseCaseApplicationService
from mucm.services.cleanup import CleanupReport, OrphanFieldCleaner
from mucm.services.creator import UseCaseCreator

__all__ = [
    "CleanupReport",
    "Lint",
    "OrphanFieldCleaner",
    "ProjectStatus",
    "UseCaseApplicationService",
    "UseCaseCreator",
]
