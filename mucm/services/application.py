"""
Application service: the only place that mutates use cases.

Every mutating operation follows the same shape: load the aggregate,
validate the request, mutate, bump metadata, save the whole aggregate and
regenerate that use case's artifacts. Collaborators are plain values passed
in explicitly; ``from_config`` wires the standard set for a project.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from mucm.config import Config
from mucm.errors import ConflictError, NotFoundError, ValidationError
from mucm.ids import next_scenario_id
from mucm.languages import LanguageRegistry
from mucm.methodology.fields import FieldCollector
from mucm.methodology.registry import MethodologyRegistry
from mucm.models import (
    ActorEntity,
    Condition,
    MethodologyView,
    Priority,
    ReferenceType,
    Scenario,
    ScenarioReference,
    ScenarioStep,
    ScenarioType,
    Status,
    UseCase,
    UseCaseReference,
)
from mucm.pipeline import ProgressCallback, RegenerationConfig, RegenerationPipeline, RegenerationResult
from mucm.render.engine import TemplateEngine
from mucm.render.overview import OverviewGenerator
from mucm.render.scaffold import ScaffoldGenerator
from mucm.render.views import ViewMaterializer
from mucm.services.cleanup import CleanupReport, OrphanFieldCleaner
from mucm.services.creator import UseCaseCreator, ViewSpec
from mucm.store import ActorRepository, UseCaseRepository, create_repository

logger = logging.getLogger(__name__)

PERSONA_TEMPLATE = "persona"


@dataclass
class Lint:
    """A dangling reference found by ``lint``."""
    use_case_id: str
    location: str
    target_id: str
    message: str


@dataclass
class ProjectStatus:
    total_use_cases: int = 0
    total_scenarios: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)
    lints: list[Lint] = field(default_factory=list)


class UseCaseApplicationService:
    """Use case operations for one project.

    Usage:
        service = UseCaseApplicationService.from_config(Config.load(root), root)
        uc = service.create_use_case("Login", "Security", views=["feature:normal"])
        sid = service.add_scenario(uc.id, "Valid credentials")
        service.add_step(uc.id, sid, "User", "submits", "the login form")
    """

    def __init__(
        self,
        config: Config,
        root: Path,
        repository: UseCaseRepository,
        actors: ActorRepository,
        registry: MethodologyRegistry,
        engine: TemplateEngine,
        languages: LanguageRegistry,
    ):
        self.config = config
        self.root = Path(root)
        self.repository = repository
        self.actors = actors
        self.registry = registry
        self.engine = engine
        self.languages = languages
        self.collector = FieldCollector(registry)
        self.creator = UseCaseCreator(registry, self.collector, config.templates.default_methodology)
        self.materializer = ViewMaterializer(registry, engine, self.collector, config.metadata)
        self.scaffolds = ScaffoldGenerator(engine, languages)
        self.overview = OverviewGenerator(
            engine, config.project.name, config.project.description, registry
        )
        self.cleaner = OrphanFieldCleaner(repository, self.collector)

    @classmethod
    def from_config(cls, config: Config, root: Path) -> UseCaseApplicationService:
        template_dir = config.template_path(root)
        return cls(
            config=config,
            root=root,
            repository=create_repository(config, root),
            actors=ActorRepository(config.persona_path(root)),
            registry=MethodologyRegistry.from_directory(template_dir, only=config.templates.methodologies),
            engine=TemplateEngine.from_directory(template_dir),
            languages=LanguageRegistry.from_directory(template_dir),
        )

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    def get_use_case(self, use_case_id: str) -> UseCase:
        return self.repository.require(use_case_id)

    def list_use_cases(self, category: Optional[str] = None) -> list[UseCase]:
        use_cases = self.repository.load_all()
        if category:
            use_cases = [uc for uc in use_cases if uc.category.lower() == category.lower()]
        return sorted(use_cases, key=lambda uc: uc.id)

    def find_scenario_by_title(self, use_case_id: str, title: str) -> Scenario:
        use_case = self.get_use_case(use_case_id)
        wanted = title.strip().lower()
        for scenario in use_case.scenarios:
            if scenario.title.strip().lower() == wanted:
                return scenario
        raise NotFoundError(f"No scenario titled '{title}' in use case '{use_case_id}'")

    def use_cases_for_persona(self, persona_id: str) -> list[UseCase]:
        return [
            uc for uc in self.list_use_cases()
            if any(s.persona == persona_id for s in uc.scenarios)
        ]

    # ------------------------------------------------------------------------
    # Use case lifecycle
    # ------------------------------------------------------------------------

    def create_use_case(
        self,
        title: str,
        category: str,
        description: str = "",
        priority: Any = Priority.MEDIUM,
        views: Iterable[ViewSpec] = (),
        field_values: Optional[Mapping[str, Any]] = None,
    ) -> UseCase:
        use_case = self.creator.create(
            title,
            category,
            description=description,
            priority=priority,
            selected_views=views,
            methodology_field_values=field_values,
            existing_ids=self.repository.existing_ids(),
            on_disk_ids=self.repository.on_disk_ids(),
        )
        self.repository.save(use_case)
        logger.info("Created use case %s", use_case.id)
        self._regenerate_one(use_case)
        return use_case

    def delete_use_case(self, use_case_id: str) -> UseCase:
        use_case = self.repository.delete(use_case_id)
        self._write_overview()
        return use_case

    def _commit(self, use_case: UseCase) -> UseCase:
        use_case.touch()
        self.repository.save(use_case)
        self._regenerate_one(use_case)
        return use_case

    # ------------------------------------------------------------------------
    # Scenarios and steps
    # ------------------------------------------------------------------------

    def add_scenario(
        self,
        use_case_id: str,
        title: str,
        description: str = "",
        scenario_type: Any = ScenarioType.HAPPY_PATH,
        persona: Optional[str] = None,
    ) -> str:
        use_case = self.get_use_case(use_case_id)
        if persona and not self.actors.exists(persona):
            raise NotFoundError(
                f"Persona '{persona}' not found",
                hint="Create it with 'mucm persona create'",
            )
        scenario = Scenario(
            id=next_scenario_id(use_case),
            title=title,
            description=description,
            scenario_type=scenario_type,
            persona=persona or None,
        )
        use_case.add_scenario(scenario)
        self._commit(use_case)
        return scenario.id

    def remove_scenario(self, use_case_id: str, scenario_id: str) -> Scenario:
        use_case = self.get_use_case(use_case_id)
        removed = use_case.remove_scenario(scenario_id)
        self._commit(use_case)
        return removed

    def add_step(
        self,
        use_case_id: str,
        scenario_id: str,
        actor: Any,
        action: str,
        description: str = "",
        receiver: Any = None,
        notes: Optional[str] = None,
    ) -> ScenarioStep:
        use_case = self.get_use_case(use_case_id)
        step = use_case.get_scenario(scenario_id).add_step(actor, action, description, receiver, notes)
        self._commit(use_case)
        return step

    def remove_step(self, use_case_id: str, scenario_id: str, order: int) -> ScenarioStep:
        use_case = self.get_use_case(use_case_id)
        step = use_case.get_scenario(scenario_id).remove_step(order)
        self._commit(use_case)
        return step

    def update_scenario_status(self, use_case_id: str, scenario_id: str, status: Any) -> Status:
        status = Status.parse(status)
        use_case = self.get_use_case(use_case_id)
        use_case.get_scenario(scenario_id).set_status(status)
        self._commit(use_case)
        return use_case.status

    def add_scenario_reference(
        self,
        use_case_id: str,
        scenario_id: str,
        ref_type: Any,
        target_id: str,
        relationship: str,
        description: Optional[str] = None,
    ) -> ScenarioReference:
        use_case = self.get_use_case(use_case_id)
        reference = ScenarioReference(ReferenceType.parse(ref_type), target_id, relationship, description)
        scenario = use_case.get_scenario(scenario_id)
        use_case.check_scenario_reference(scenario.id, reference)
        scenario.add_reference(reference)
        self._commit(use_case)
        return reference

    def remove_scenario_reference(
        self, use_case_id: str, scenario_id: str, target_id: str, relationship: Optional[str] = None
    ) -> ScenarioReference:
        use_case = self.get_use_case(use_case_id)
        removed = use_case.get_scenario(scenario_id).remove_reference(target_id, relationship)
        self._commit(use_case)
        return removed

    # ------------------------------------------------------------------------
    # Conditions and references
    # ------------------------------------------------------------------------

    def _add_condition(self, use_case_id: str, which: str, text: str, target_type=None,
                       target_id=None, relationship=None) -> Condition:
        use_case = self.get_use_case(use_case_id)
        condition = Condition(text, target_type, target_id, relationship)
        getattr(use_case, which).append(condition)
        self._commit(use_case)
        return condition

    def _remove_condition(self, use_case_id: str, which: str, index: int) -> Condition:
        use_case = self.get_use_case(use_case_id)
        conditions = getattr(use_case, which)
        if not 1 <= index <= len(conditions):
            raise NotFoundError(f"Use case '{use_case_id}' has no {which[:-1]} #{index}")
        removed = conditions.pop(index - 1)
        self._commit(use_case)
        return removed

    def add_precondition(self, use_case_id: str, text: str, target_type=None, target_id=None,
                         relationship=None) -> Condition:
        return self._add_condition(use_case_id, "preconditions", text, target_type, target_id, relationship)

    def remove_precondition(self, use_case_id: str, index: int) -> Condition:
        return self._remove_condition(use_case_id, "preconditions", index)

    def add_postcondition(self, use_case_id: str, text: str, target_type=None, target_id=None,
                          relationship=None) -> Condition:
        return self._add_condition(use_case_id, "postconditions", text, target_type, target_id, relationship)

    def remove_postcondition(self, use_case_id: str, index: int) -> Condition:
        return self._remove_condition(use_case_id, "postconditions", index)

    def add_reference(self, use_case_id: str, target_id: str, relationship: str,
                      description: Optional[str] = None) -> UseCaseReference:
        if target_id == use_case_id:
            raise ValidationError(f"Use case '{use_case_id}' cannot reference itself")
        use_case = self.get_use_case(use_case_id)
        reference = UseCaseReference(target_id, relationship, description)
        if any(r.target_id == target_id and r.relationship == relationship for r in use_case.references):
            raise ConflictError(f"'{use_case_id}' already {relationship} '{target_id}'")
        use_case.references.append(reference)
        self._commit(use_case)
        return reference

    def remove_reference(self, use_case_id: str, target_id: str,
                         relationship: Optional[str] = None) -> UseCaseReference:
        use_case = self.get_use_case(use_case_id)
        for i, ref in enumerate(use_case.references):
            if ref.target_id == target_id and relationship in (None, ref.relationship):
                removed = use_case.references.pop(i)
                self._commit(use_case)
                return removed
        raise NotFoundError(f"Use case '{use_case_id}' has no reference to '{target_id}'")

    # ------------------------------------------------------------------------
    # Views and methodology fields
    # ------------------------------------------------------------------------

    def add_view(self, use_case_id: str, methodology: str, level: str) -> MethodologyView:
        definition, lv = self.registry.resolve_view(methodology, level)
        use_case = self.get_use_case(use_case_id)
        view = use_case.add_view(MethodologyView(definition.name, lv.name))
        self._commit(use_case)
        return view

    def disable_view(self, use_case_id: str, methodology: str, level: str) -> MethodologyView:
        definition, lv = self.registry.resolve_view(methodology, level)
        use_case = self.get_use_case(use_case_id)
        view = use_case.disable_view(definition.name, lv.name)
        self._commit(use_case)
        return view

    def update_methodology_fields(self, use_case_id: str, methodology: str,
                                  values: Mapping[str, Any]) -> dict[str, Any]:
        use_case = self.get_use_case(use_case_id)
        definition = self.registry.require(methodology)
        if definition.name not in use_case.enabled_methodologies():
            raise ValidationError(
                f"Methodology '{definition.name}' is not enabled on '{use_case_id}'",
                hint="Add a view for it first",
            )
        declared = self.collector.collect_for_methodology(use_case, definition.name)
        unknown = sorted(set(values) - set(declared.names()))
        if unknown:
            raise ValidationError(
                f"Unknown field(s) for '{definition.name}': " + ", ".join(unknown),
                hint="Known fields: " + (", ".join(declared.names()) or "none"),
            )
        stored = use_case.methodology_fields.setdefault(definition.name, {})
        for name, raw in values.items():
            stored[name] = declared[name].convert(raw)
        self._commit(use_case)
        return dict(stored)

    def clean_orphans(self, use_case_id: Optional[str] = None, dry_run: bool = False) -> CleanupReport:
        return self.cleaner.clean(use_case_id, dry_run=dry_run)

    # ------------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------------

    def _pipeline(self, generate_tests: Optional[bool], fail_fast: bool,
                  progress_callback: Optional[ProgressCallback] = None) -> RegenerationPipeline:
        generation = self.config.generation
        config = RegenerationConfig(
            generate_tests=generation.auto_generate_tests if generate_tests is None else generate_tests,
            overwrite_tests=generation.overwrite_test_documentation or bool(generate_tests),
            test_language=self.config.test_language,
            fail_fast=fail_fast,
        )
        return RegenerationPipeline(
            self.repository,
            self.materializer,
            self.scaffolds,
            self.overview,
            self.languages,
            self.config.test_path(self.root),
            config,
            progress_callback,
        )

    def _regenerate_one(self, use_case: UseCase) -> RegenerationResult:
        return self._pipeline(None, fail_fast=True).run([use_case])

    def _write_overview(self) -> None:
        self.repository.save_overview(self.overview.render(self.repository.load_all()))

    def regenerate(
        self,
        use_case_id: Optional[str] = None,
        generate_tests: Optional[bool] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RegenerationResult:
        """Re-render one use case (errors propagate) or all of them (errors are collected).

        ``generate_tests=True`` forces skeletons regardless of configuration.
        """
        everything = self.repository.load_all()
        if use_case_id is not None:
            targets = [self.get_use_case(use_case_id)]
        else:
            targets = everything
        pipeline = self._pipeline(generate_tests, fail_fast=use_case_id is not None,
                                  progress_callback=progress_callback)
        return pipeline.run(targets, everything)

    # ------------------------------------------------------------------------
    # Actors / personas
    # ------------------------------------------------------------------------

    def create_actor(self, actor: ActorEntity) -> ActorEntity:
        if self.actors.exists(actor.id):
            raise ConflictError(f"Persona '{actor.id}' already exists")
        self.actors.save(actor)
        self.render_actor(actor)
        logger.info("Created %s '%s'", actor.actor_type.value, actor.id)
        return actor

    def render_actor(self, actor: ActorEntity) -> Optional[Path]:
        if not self.engine.has_template(PERSONA_TEMPLATE):
            logger.warning("No persona template; skipping profile for %s", actor.id)
            return None
        context = actor.to_dict()
        context.update(
            type_display=actor.actor_type.value.replace("_", " ").title(),
            used_in=[
                {"id": uc.id, "title": uc.title, "scenarios": [s.id for s in uc.scenarios if s.persona == actor.id]}
                for uc in self.use_cases_for_persona(actor.id)
            ],
        )
        return self.actors.save_rendered(actor.id, self.engine.render(PERSONA_TEMPLATE, context))

    def list_actors(self, personas_only: bool = False) -> list[ActorEntity]:
        actors = self.actors.load_all()
        if personas_only:
            actors = [a for a in actors if a.is_persona]
        return actors

    def delete_actor(self, actor_id: str) -> tuple[ActorEntity, list[UseCase]]:
        """Delete a persona; returns it with the use cases that still reference it."""
        actor = self.actors.delete(actor_id)
        referencing = self.use_cases_for_persona(actor_id)
        if referencing:
            logger.warning(
                "Persona '%s' is still referenced by %s",
                actor_id, ", ".join(uc.id for uc in referencing),
            )
        return actor, referencing

    # ------------------------------------------------------------------------
    # Lints and status
    # ------------------------------------------------------------------------

    def lint(self, use_cases: Optional[list[UseCase]] = None) -> list[Lint]:
        use_cases = use_cases if use_cases is not None else self.repository.load_all()
        known_use_cases = {uc.id for uc in use_cases}
        known_scenarios = {s.id for uc in use_cases for s in uc.scenarios}
        known_actors = {a.id for a in self.actors.load_all()}

        def exists(ref_type: ReferenceType, target_id: str) -> bool:
            if ref_type is ReferenceType.USE_CASE:
                return target_id in known_use_cases
            return target_id in known_scenarios

        lints: list[Lint] = []
        for uc in use_cases:
            for which in ("preconditions", "postconditions"):
                for n, cond in enumerate(getattr(uc, which), start=1):
                    if cond.has_reference and not exists(cond.target_type, cond.target_id):
                        lints.append(Lint(uc.id, f"{which[:-1]} #{n}", cond.target_id,
                                          f"{cond.target_type.value} '{cond.target_id}' does not exist"))
            for ref in uc.references:
                if ref.target_id not in known_use_cases:
                    lints.append(Lint(uc.id, "reference", ref.target_id,
                                      f"use case '{ref.target_id}' does not exist"))
            for scenario in uc.scenarios:
                for ref in scenario.references:
                    if not exists(ref.ref_type, ref.target_id):
                        lints.append(Lint(uc.id, scenario.id, ref.target_id,
                                          f"{ref.ref_type.value} '{ref.target_id}' does not exist"))
                if scenario.persona and scenario.persona not in known_actors:
                    lints.append(Lint(uc.id, scenario.id, scenario.persona,
                                      f"persona '{scenario.persona}' does not exist"))
        return lints

    def project_status(self) -> ProjectStatus:
        use_cases = self.list_use_cases()
        return ProjectStatus(
            total_use_cases=len(use_cases),
            total_scenarios=sum(len(uc.scenarios) for uc in use_cases),
            by_status=dict(Counter(uc.status.value for uc in use_cases)),
            by_priority=dict(Counter(uc.priority.value for uc in use_cases)),
            by_category=dict(Counter(uc.category for uc in use_cases)),
            lints=self.lint(use_cases),
        )
