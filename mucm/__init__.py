"""
MUCM: Markdown Use Case Manager

A command-line tool that keeps a corpus of use-case documents for a software
project and renders them into Markdown views for different audiences
(business, developer, feature, tester), language-specific test skeletons and
a project overview.

Core pieces:
1. Entity model (use cases, scenarios, steps, actors, conditions, references)
2. Methodology registry and field collector
3. Template engine and view materializer
4. Flat-file (TOML) and relational (SQLite) repositories
"""

__version__ = "0.3.0"

from mucm.models import (
    Actor,
    ActorEntity,
    MethodologyView,
    Priority,
    Scenario,
    ScenarioStep,
    ScenarioType,
    Status,
    UseCase,
    aggregate_status,
)
from mucm.services.application import UseCaseApplicationService

__all__ = [
    "Actor",
    "ActorEntity",
    "MethodologyView",
    "Priority",
    "Scenario",
    "ScenarioStep",
    "ScenarioType",
    "Status",
    "UseCase",
    "UseCaseApplicationService",
    "aggregate_status",
]
