"""
Tests for template rendering: helpers, views, test skeletons and the overview.

Run with: pytest tests/test_render.py -v
"""

import json

import pytest

from mucm.config import PACKAGE_TEMPLATES
from mucm.errors import RenderError
from mucm.languages import LanguageRegistry
from mucm.methodology import FieldCollector, MethodologyRegistry
from mucm.models import MethodologyView, Scenario, Status, UseCase
from mucm.render import (
    OverviewGenerator,
    ScaffoldGenerator,
    TemplateEngine,
    ViewMaterializer,
    extract_user_blocks,
)
from mucm.render.helpers import has_personas, unique_actors, unique_personas


@pytest.fixture(scope="module")
def engine():
    return TemplateEngine.from_directory(PACKAGE_TEMPLATES)


@pytest.fixture(scope="module")
def registry():
    return MethodologyRegistry.from_directory(PACKAGE_TEMPLATES)


@pytest.fixture
def use_case():
    uc = UseCase(id="UC-SEC-001", title="Login", category="Security", description="Sign in")
    uc.add_view(MethodologyView("feature", "normal"))
    uc.methodology_fields["feature"]["user_story"] = "As a user I want to sign in"
    scenario = uc.add_scenario(Scenario(id="UC-SEC-001-S01", title="Valid credentials"))
    scenario.add_step("User", "submits", "the login form", receiver="System")
    scenario.add_step("System", "verifies", "the password")
    uc.add_scenario(Scenario(id="UC-SEC-001-S02", title="Wrong password", scenario_type="exception_flow"))
    return uc


class TestHelpers:
    """Tests for the template helper functions."""

    def test_unique_actors_sorted(self):
        """Actors are collected once and sorted."""
        scenarios = [
            {"steps": [{"actor": "User"}, {"actor": "System"}]},
            {"steps": [{"actor": "Database"}, {"actor": "User"}]},
        ]
        assert json.loads(unique_actors(scenarios)) == ["Database", "System", "User"]

    def test_unique_actors_single_key_form(self):
        """Single-key actor mappings are understood."""
        scenarios = [{"steps": [{"actor": {"Custom": "Admin"}}, {"actor": {"User": None}}]}]
        assert json.loads(unique_actors(scenarios)) == ["Admin", "User"]

    def test_unique_actors_accepts_models(self, use_case):
        """Model objects work as well as plain dicts."""
        assert json.loads(unique_actors(use_case.scenarios)) == ["System", "User"]

    def test_unique_actors_empty(self):
        """No scenarios means no actors."""
        assert unique_actors(None) == "[]"

    def test_personas(self):
        """Personas are collected from scenarios."""
        scenarios = [{"persona": "shopper"}, {"persona": "admin"}, {"persona": "shopper"}, {}]
        assert has_personas(scenarios) == "true"
        assert json.loads(unique_personas(scenarios)) == ["admin", "shopper"]
        assert has_personas([{"persona": ""}]) == ""


class TestTemplateEngine:
    """Tests for the Jinja2 wrapper."""

    def test_malformed_template_fails_at_registration(self):
        """Syntax errors surface when the template is registered."""
        with pytest.raises(RenderError, match="Malformed template"):
            TemplateEngine({"bad": "{% if %}"})

    def test_missing_placeholder_renders_empty(self):
        """Missing context values render as empty text."""
        engine = TemplateEngine({"t": "Hi {{ missing.attr }}!"})
        assert engine.render("t", {}) == "Hi !"

    def test_unknown_template(self):
        """Rendering an unregistered template fails."""
        with pytest.raises(RenderError):
            TemplateEngine().render("nope", {})

    def test_helpers_available_in_templates(self):
        """Helper functions are callable from templates."""
        engine = TemplateEngine({
            "t": "{% for a in unique_actors(scenarios) | fromjson %}{{ a }};{% endfor %}",
        })
        scenarios = [{"steps": [{"actor": "System"}, {"actor": "User"}]}]
        assert engine.render("t", {"scenarios": scenarios}) == "System;User;"

    def test_includes_other_templates(self):
        """Templates can include partials."""
        engine = TemplateEngine({"part": "[{{ x }}]", "main": "{% include 'part' %}"})
        assert engine.render("main", {"x": 1}) == "[1]"

    def test_from_directory_names(self, engine):
        """Directory templates are named by relative path without extension."""
        assert "feature/normal" in engine.names()
        assert engine.has_template("languages/python/test")
        assert engine.has_template("overview")

    def test_missing_directory(self, tmp_path):
        """A missing template directory yields an empty engine."""
        with pytest.raises(RenderError):
            TemplateEngine.from_directory(tmp_path / "missing")


class TestViewMaterializer:
    """Tests for per-view Markdown documents."""

    def test_artifact_names(self, engine, registry, use_case):
        """Artifact names combine the use case ID, methodology and level abbreviation."""
        use_case.add_view(MethodologyView("business", "simple"))
        materializer = ViewMaterializer(registry, engine, FieldCollector(registry))
        names = [name for name, _ in materializer.materialize(use_case)]
        assert names == ["UC-SEC-001-feature-n.md", "UC-SEC-001-business-s.md"]

    def test_disabled_views_are_skipped(self, engine, registry, use_case):
        """Disabled views produce no artifact."""
        use_case.disable_view("feature", "normal")
        materializer = ViewMaterializer(registry, engine, FieldCollector(registry))
        assert materializer.materialize(use_case) == []

    def test_content(self, engine, registry, use_case):
        """Rendered views carry the use case content."""
        materializer = ViewMaterializer(registry, engine, FieldCollector(registry))
        (_, content), = materializer.materialize(use_case)
        assert content.startswith("# Login")
        assert "As a user I want to sign in" in content
        assert "UC-SEC-001-S01" in content

    def test_render_is_deterministic(self, engine, registry, use_case):
        """Rendering an unchanged use case twice is byte-identical."""
        materializer = ViewMaterializer(registry, engine, FieldCollector(registry))
        assert materializer.materialize(use_case) == materializer.materialize(use_case)

    def test_missing_template(self, registry, use_case):
        """A view without a template raises a render error."""
        materializer = ViewMaterializer(registry, TemplateEngine(), FieldCollector(registry))
        with pytest.raises(RenderError, match="No template"):
            materializer.materialize(use_case)


class TestScaffold:
    """Tests for test skeleton generation."""

    def test_path(self, engine, use_case, tmp_path):
        """Test skeletons live in a per-category directory."""
        scaffolds = ScaffoldGenerator(engine, LanguageRegistry())
        assert scaffolds.test_path(use_case, tmp_path, "py") == tmp_path / "security" / "uc_sec_001.py"

    def test_one_block_per_scenario(self, engine, use_case):
        """Every scenario gets its own implementation block."""
        rendered = ScaffoldGenerator(engine, LanguageRegistry()).render(use_case, "python")
        assert "def test_uc_sec_001_s01():" in rendered
        assert set(extract_user_blocks(rendered)) == {"UC-SEC-001-S01", "UC-SEC-001-S02"}

    def test_user_code_is_preserved(self, engine, use_case):
        """Live blocks keep user code, removed scenarios drop theirs, new ones get a stub."""
        scaffolds = ScaffoldGenerator(engine, LanguageRegistry())
        previous = scaffolds.render(use_case, "python")
        edited = previous.replace('pytest.skip("Not implemented yet")', "assert login('alice', 'secret')", 1)

        use_case.remove_scenario("UC-SEC-001-S02")
        use_case.add_scenario(Scenario(id="UC-SEC-001-S03", title="Locked account"))
        merged = scaffolds.render(use_case, "python", previous=edited)

        blocks = extract_user_blocks(merged)
        assert set(blocks) == {"UC-SEC-001-S01", "UC-SEC-001-S03"}
        assert any("assert login('alice', 'secret')" in line for line in blocks["UC-SEC-001-S01"])
        assert any("pytest.skip" in line for line in blocks["UC-SEC-001-S03"])
        assert "UC-SEC-001-S02" not in merged

    def test_other_languages(self, engine, use_case):
        """JavaScript and Rust skeletons use their comment syntax."""
        scaffolds = ScaffoldGenerator(engine, LanguageRegistry())
        assert "// START USER IMPLEMENTATION [UC-SEC-001-S01]" in scaffolds.render(use_case, "javascript")
        assert "// START USER IMPLEMENTATION [UC-SEC-001-S01]" in scaffolds.render(use_case, "rust")


class TestOverview:
    """Tests for the project index."""

    def test_grouped_by_category(self, engine, registry, use_case):
        """The overview groups use cases by category."""
        billing = UseCase(id="UC-BIL-001", title="Pay invoice", category="Billing")
        billing.add_view(MethodologyView("feature", "simple"))
        overview = OverviewGenerator(engine, "Shop", registry=registry)
        content = overview.render([use_case, billing])

        assert content.startswith("# Shop Use Cases")
        assert content.index("## Billing") < content.index("## Security")
        assert "[feature](security/UC-SEC-001-feature-n.md)" in content

    def test_status_counts(self, engine, use_case):
        """The overview counts scenarios by status."""
        use_case.get_scenario("UC-SEC-001-S01").set_status(Status.TESTED)
        context = OverviewGenerator(engine, "Shop").build_context([use_case])
        assert context["total_scenarios"] == 2
        assert [s["status"] for s in context["status_counts"]] == ["tested"]

    def test_empty_project(self, engine):
        """An empty project still renders an overview."""
        content = OverviewGenerator(engine, "Shop").render([])
        assert "No use cases yet" in content
