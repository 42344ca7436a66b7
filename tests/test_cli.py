"""
End-to-end tests for the command-line interface.

Run with: pytest tests/test_cli.py -v
"""

import pytest
from typer.testing import CliRunner

from mucm import __version__
from mucm.cli import app

runner = CliRunner()


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def initialized(workdir):
    result = runner.invoke(app, ["init", "--name", "Shop"])
    assert result.exit_code == 0, result.output
    return workdir


class TestInit:
    """Tests for project initialization."""

    def test_init(self, initialized):
        """init writes the config and the default directories."""
        assert (initialized / ".config" / ".mucm" / "mucm.toml").is_file()
        assert (initialized / ".config" / ".mucm" / "templates" / "feature" / "methodology.toml").is_file()

    def test_init_twice_conflicts(self, initialized):
        """A second init without --force exits with the conflict code."""
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 4
        assert "--force" in result.output

    def test_init_sqlite(self, workdir):
        """--backend sqlite creates the database."""
        result = runner.invoke(app, ["init", "--backend", "sqlite", "--methodologies", "feature,tester"])
        assert result.exit_code == 0, result.output
        assert (workdir / ".config" / ".mucm" / "mucm.db").is_file()
        assert not (workdir / ".config" / ".mucm" / "templates" / "business").exists()

    def test_unknown_backend(self, workdir):
        """Unknown backends exit with the validation code."""
        assert runner.invoke(app, ["init", "--backend", "yaml"]).exit_code == 2

    def test_version(self):
        """--version prints the version and exits."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestUseCaseCommands:
    """Tests for the use case workflow."""

    def test_requires_project(self, workdir):
        """Project commands outside a project exit with the precondition code."""
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 5
        assert "mucm init" in result.output

    def test_create_list_show(self, initialized):
        """A created use case shows up in list and show."""
        result = runner.invoke(app, ["create", "Login", "--category", "Security", "--view", "business:simple"])
        assert result.exit_code == 0, result.output
        assert "UC-SEC-001" in result.output

        assert "UC-SEC-001" in runner.invoke(app, ["list"]).output

        result = runner.invoke(app, ["add-scenario", "UC-SEC-001", "Valid credentials"])
        assert "UC-SEC-001-S01" in result.output
        result = runner.invoke(app, ["add-step", "UC-SEC-001-S01", "User", "submits", "the form"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(app, ["show", "UC-SEC-001"])
        assert "Valid credentials" in result.output
        assert "submits" in result.output
        assert (initialized / "docs" / "use-cases" / "security" / "UC-SEC-001-business-s.md").is_file()

    def test_create_with_fields(self, initialized):
        """--field values land in the stored methodology fields."""
        result = runner.invoke(app, [
            "create", "Checkout", "-c", "Billing", "--view", "feature:simple",
            "--field", "user_story=As a shopper I want to pay",
        ])
        assert result.exit_code == 0, result.output
        view = initialized / "docs" / "use-cases" / "billing" / "UC-BIL-001-feature-s.md"
        assert "As a shopper I want to pay" in view.read_text()

    def test_bad_field_syntax(self, initialized):
        """A --field without '=' is a validation error."""
        result = runner.invoke(app, ["create", "Checkout", "-c", "Billing", "--field", "oops"])
        assert result.exit_code == 2

    def test_update_status(self, initialized):
        """update-status changes a scenario and its aggregate."""
        runner.invoke(app, ["create", "Login", "-c", "Security"])
        runner.invoke(app, ["add-scenario", "UC-SEC-001", "One"])
        result = runner.invoke(app, ["update-status", "UC-SEC-001-S01", "in-progress"])
        assert result.exit_code == 0, result.output
        assert "IN PROGRESS" in result.output

    def test_invalid_scenario_id(self, initialized):
        """Malformed scenario IDs are rejected."""
        assert runner.invoke(app, ["update-status", "S01", "tested"]).exit_code == 2

    def test_missing_use_case(self, initialized):
        """Unknown use cases exit with the not-found code."""
        assert runner.invoke(app, ["show", "UC-SEC-404"]).exit_code == 3

    def test_regenerate_with_tests(self, initialized):
        """regenerate --tests writes a test skeleton."""
        runner.invoke(app, ["create", "Login", "-c", "Security"])
        runner.invoke(app, ["add-scenario", "UC-SEC-001", "One"])
        result = runner.invoke(app, ["regenerate", "--tests"])
        assert result.exit_code == 0, result.output
        assert (initialized / "tests" / "use-cases" / "security" / "uc_sec_001.py").is_file()

    def test_status_and_cleanup(self, initialized):
        """status and cleanup run against a populated project."""
        runner.invoke(app, ["create", "Login", "-c", "Security"])
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0, result.output
        assert "Shop" in result.output
        result = runner.invoke(app, ["cleanup", "--dry-run"])
        assert "Would clean 0 of 1" in result.output


class TestCatalogCommands:
    """Tests for methodology and language listings."""

    def test_methodologies_outside_project(self, workdir):
        """Listing methodologies needs no project."""
        result = runner.invoke(app, ["methodologies"])
        assert result.exit_code == 0
        assert "feature" in result.output

    def test_methodology_info(self, initialized):
        """methodology-info lists levels and fields."""
        result = runner.invoke(app, ["methodology-info", "business"])
        assert result.exit_code == 0
        assert "business_value" in result.output
        assert runner.invoke(app, ["methodology-info", "waterfall"]).exit_code == 3

    def test_languages(self, workdir):
        """languages lists the built-in test languages."""
        result = runner.invoke(app, ["languages"])
        assert "python" in result.output
        assert "rust" in result.output


class TestPersonaCommands:
    """Tests for persona management."""

    def test_create_list_delete(self, initialized):
        """Personas can be created, listed and deleted."""
        result = runner.invoke(app, ["persona", "create", "shopper", "--name", "Shopper", "--tech-level", "3"])
        assert result.exit_code == 0, result.output
        assert "shopper" in runner.invoke(app, ["persona", "list"]).output
        assert runner.invoke(app, ["persona", "create", "shopper", "--name", "Again"]).exit_code == 4
        assert runner.invoke(app, ["persona", "delete", "shopper"]).exit_code == 0
        assert runner.invoke(app, ["persona", "delete", "shopper"]).exit_code == 3

    def test_invalid_id(self, initialized):
        """Persona IDs must be snake_case."""
        assert runner.invoke(app, ["persona", "create", "Bad Id", "--name", "X"]).exit_code == 2
