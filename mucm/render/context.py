"""
Template contexts built from the entity model.

Everything handed to a template is plain data (dicts, lists, strings) so
templates and helpers never depend on model classes.
"""

from __future__ import annotations

import re

from mucm.models import Scenario, UseCase
from mucm.utils import to_snake_case


def scenario_test_name(scenario_id: str) -> str:
    """``UC-SEC-001-S01`` -> ``test_uc_sec_001_s01``."""
    return "test_" + re.sub(r"[^a-z0-9]", "_", scenario_id.lower())


def scenario_context(scenario: Scenario) -> dict:
    d = scenario.to_dict()
    d.update(
        test_name=scenario_test_name(scenario.id),
        type_display=scenario.scenario_type.display_name,
        status_display=scenario.status.display_name,
        status_emoji=scenario.status.emoji,
        created=scenario.metadata.created_at.strftime("%Y-%m-%d"),
        updated=scenario.metadata.updated_at.strftime("%Y-%m-%d"),
    )
    for ref, data in zip(scenario.references, d["references"]):
        data["ref_type_display"] = ref.ref_type.value.replace("_", " ")
    return d


def use_case_context(use_case: UseCase) -> dict:
    """Flattened view of a use case shared by every template."""
    d = use_case.to_dict()
    status = use_case.status
    d.update(
        scenarios=[scenario_context(s) for s in use_case.scenarios],
        preconditions=[dict(c.to_dict(), display=c.display()) for c in use_case.preconditions],
        postconditions=[dict(c.to_dict(), display=c.display()) for c in use_case.postconditions],
        status=status.value,
        status_display=status.display_name,
        status_emoji=status.emoji,
        priority_display=use_case.priority.display_name,
        category_dir=to_snake_case(use_case.category),
        snake_id=to_snake_case(use_case.id),
        created=use_case.metadata.created_at.strftime("%Y-%m-%d"),
        updated=use_case.metadata.updated_at.strftime("%Y-%m-%d"),
        dependencies=[c.target_id for c in use_case.preconditions if c.has_reference and c.is_dependency],
    )
    return d
