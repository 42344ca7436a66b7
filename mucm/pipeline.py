"""
Regeneration pipeline for MUCM.

This module orchestrates the artifact workflow for a batch of use cases:
1. Materialize every enabled view and write it beside the use case
2. Remove view files that no longer correspond to an enabled view
3. Render or merge the language-specific test skeleton
4. Rebuild the project overview

Design Philosophy:
- Pipeline is configurable via RegenerationConfig
- Progress callbacks for CLI integration
- Batch runs can collect per-use-case render errors instead of stopping
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from mucm.errors import RenderError
from mucm.languages import LanguageRegistry
from mucm.models import UseCase
from mucm.render.overview import OverviewGenerator
from mucm.render.scaffold import ScaffoldGenerator
from mucm.render.views import ViewMaterializer
from mucm.store.base import UseCaseRepository
from mucm.utils import atomic_write_text

logger = logging.getLogger(__name__)

# Type alias for progress callbacks
ProgressCallback = Callable[[str, float], None]


@dataclass
class RegenerationConfig:
    """What a regeneration run produces."""
    generate_tests: bool = False
    overwrite_tests: bool = False
    test_language: str = "python"
    write_overview: bool = True
    fail_fast: bool = True

    def to_dict(self) -> dict:
        return {
            "generate_tests": self.generate_tests,
            "overwrite_tests": self.overwrite_tests,
            "test_language": self.test_language,
            "write_overview": self.write_overview,
            "fail_fast": self.fail_fast,
        }


@dataclass
class RegenerationResult:
    """Files written plus counters and collected errors."""
    files: list[Path] = field(default_factory=list)
    stats: dict = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


class RegenerationPipeline:
    """Render views, test skeletons and the overview.

    Usage:
        pipeline = RegenerationPipeline(repository, materializer, scaffolds, overview,
                                        languages, test_dir, RegenerationConfig())
        result = pipeline.run([use_case], all_use_cases)
    """

    def __init__(
        self,
        repository: UseCaseRepository,
        materializer: ViewMaterializer,
        scaffolds: ScaffoldGenerator,
        overview: OverviewGenerator,
        languages: LanguageRegistry,
        test_dir: Path,
        config: Optional[RegenerationConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.repository = repository
        self.materializer = materializer
        self.scaffolds = scaffolds
        self.overview = overview
        self.languages = languages
        self.test_dir = Path(test_dir)
        self.config = config or RegenerationConfig()
        self.progress_callback = progress_callback or (lambda msg, pct: None)

    def run(self, use_cases: list[UseCase], all_use_cases: Optional[list[UseCase]] = None) -> RegenerationResult:
        result = RegenerationResult(stats={
            "use_cases": 0,
            "views": 0,
            "stale_views_removed": 0,
            "tests_written": 0,
            "tests_skipped": 0,
        })
        total = max(len(use_cases), 1)
        for i, use_case in enumerate(use_cases):
            self.progress_callback(f"Rendering {use_case.id}...", i / total)
            try:
                self._render_use_case(use_case, result)
                result.stats["use_cases"] += 1
            except RenderError as exc:
                if self.config.fail_fast:
                    raise
                logger.warning("Rendering %s failed: %s", use_case.id, exc)
                result.errors.append(f"{use_case.id}: {exc}")

        if self.config.write_overview:
            self.progress_callback("Writing overview...", 0.95)
            everything = all_use_cases if all_use_cases is not None else self.repository.load_all()
            result.files.append(self.repository.save_overview(self.overview.render(everything)))

        self.progress_callback("Complete!", 1.0)
        return result

    def _render_use_case(self, use_case: UseCase, result: RegenerationResult) -> None:
        artifacts = self.materializer.materialize(use_case)
        for name, content in artifacts:
            result.files.append(self.repository.write_rendered(use_case, name, content))
        result.stats["views"] += len(artifacts)
        removed = self.repository.prune_rendered(use_case, keep=[name for name, _ in artifacts])
        result.stats["stale_views_removed"] += len(removed)

        if self.config.generate_tests and not self.languages.is_disabled(self.config.test_language):
            path = self.scaffolds.test_path(use_case, self.test_dir, self.config.test_language)
            if path.exists() and not self.config.overwrite_tests:
                logger.debug("Keeping existing test skeleton %s", path)
                result.stats["tests_skipped"] += 1
                return
            previous = path.read_text(encoding="utf-8") if path.exists() else None
            content = self.scaffolds.render(use_case, self.config.test_language, previous)
            result.files.append(atomic_write_text(path, content))
            result.stats["tests_written"] += 1
