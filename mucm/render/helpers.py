"""
Domain helpers available inside every template.

Each helper is pure and returns text: JSON arrays for the list helpers so a
template can iterate with ``unique_actors(scenarios) | fromjson``, and
``"true"`` or ``""`` for ``has_personas`` so it works directly in ``{% if %}``.

Scenarios may be plain dicts (the template context) or Scenario objects.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Optional


def _as_mapping(item: Any) -> Optional[Mapping]:
    if isinstance(item, Mapping):
        return item
    to_dict = getattr(item, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return None


def _actor_name(value: Any) -> Optional[str]:
    """Name of an actor given as ``"User"`` or as a single-key object like ``{"Custom": "Admin"}``."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping) and len(value) == 1:
        (key, inner), = value.items()
        if isinstance(inner, str) and inner:
            return inner
        return str(key) if key else None
    return None


def _scenarios(scenarios: Any) -> Iterable[Mapping]:
    if not scenarios or isinstance(scenarios, (str, bytes)):
        return []
    return [m for m in (_as_mapping(s) for s in scenarios) if m is not None]


def unique_actors(scenarios: Any) -> str:
    names = set()
    for scenario in _scenarios(scenarios):
        for step in scenario.get("steps") or []:
            step = _as_mapping(step)
            name = _actor_name(step.get("actor")) if step else None
            if name:
                names.add(name)
    return json.dumps(sorted(names))


def _persona_refs(scenarios: Any) -> list[str]:
    refs = []
    for scenario in _scenarios(scenarios):
        persona = scenario.get("persona")
        if isinstance(persona, str) and persona.strip():
            refs.append(persona.strip())
    return refs


def has_personas(scenarios: Any) -> str:
    return "true" if _persona_refs(scenarios) else ""


def unique_personas(scenarios: Any) -> str:
    return json.dumps(sorted(set(_persona_refs(scenarios))))


HELPERS = {
    "unique_actors": unique_actors,
    "has_personas": has_personas,
    "unique_personas": unique_personas,
}
