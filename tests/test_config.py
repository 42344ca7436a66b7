"""
Tests for project configuration and bootstrap.

Run with: pytest tests/test_config.py -v
"""

import pytest

from mucm.bootstrap import init_project, install_templates, packaged_methodologies
from mucm.config import (
    Config,
    GenerationSettings,
    TemplateSettings,
    config_path,
    find_project_root,
    require_project_root,
)
from mucm.errors import ConflictError, PreconditionError, ValidationError


class TestConfig:
    """Tests for loading and saving mucm.toml."""

    def test_defaults(self):
        """A fresh config uses the documented layout."""
        config = Config()
        assert config.directories.use_case_dir == "docs/use-cases"
        assert config.templates.methodologies == ["feature", "business", "developer", "tester"]
        assert config.storage_backend == "toml"
        assert config.test_language == "python"

    def test_round_trip(self, tmp_path):
        """Saved settings load back unchanged."""
        config = Config(templates=TemplateSettings(storage_backend="sqlite", methodologies=["tester"],
                                                   default_methodology="tester"))
        config.project.name = "Shop"
        config.save(tmp_path)
        assert Config.load(tmp_path) == config

    def test_unknown_sections_survive(self, tmp_path):
        """Unknown sections are kept; unknown keys in known sections are dropped."""
        path = config_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text('[project]\nname = "Shop"\ncolour = "blue"\n\n[plugins]\nenabled = ["x"]\n')
        config = Config.load(tmp_path)
        assert config.project.name == "Shop"
        assert config.extra == {"plugins": {"enabled": ["x"]}}
        config.save(tmp_path)
        assert "colour" not in path.read_text()
        assert "[plugins]" in path.read_text()

    def test_generation_language_wins(self):
        """[generation].test_language overrides [templates].test_language."""
        config = Config(
            templates=TemplateSettings(test_language="rust"),
            generation=GenerationSettings(test_language="javascript"),
        )
        assert config.test_language == "javascript"

    def test_unknown_backend(self):
        """Only toml and sqlite are accepted backends."""
        with pytest.raises(ValidationError):
            TemplateSettings(storage_backend="yaml")

    def test_missing_project(self, tmp_path):
        """Loading outside a project points at 'mucm init'."""
        with pytest.raises(PreconditionError) as excinfo:
            Config.load(tmp_path)
        assert "mucm init" in excinfo.value.hint

    def test_invalid_toml(self, tmp_path):
        """A syntactically broken config is a validation error."""
        path = config_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("[project\n")
        with pytest.raises(ValidationError):
            Config.load(tmp_path)


class TestProjectRoot:
    """Tests for locating the project root."""

    def test_walks_up(self, project):
        """Subdirectories resolve to the enclosing project."""
        nested = project / "docs" / "use-cases"
        assert find_project_root(nested) == project.resolve()

    def test_none_outside_project(self, tmp_path):
        """No config anywhere above means no root."""
        assert find_project_root(tmp_path) is None
        with pytest.raises(PreconditionError):
            require_project_root(tmp_path)


class TestInitProject:
    """Tests for project bootstrap."""

    def test_layout(self, project):
        """init creates the directories and copies the templates."""
        assert (project / "docs" / "use-cases").is_dir()
        assert (project / "tests" / "use-cases").is_dir()
        assert (project / "docs" / "personas").is_dir()
        templates = project / ".config" / ".mucm" / "templates"
        assert (templates / "business" / "detailed.tmpl").is_file()
        assert (templates / "languages" / "python" / "test.tmpl").is_file()
        assert (templates / "overview.tmpl").is_file()

    def test_twice_conflicts(self, project):
        """Re-running init without force is refused."""
        with pytest.raises(ConflictError):
            init_project(project)

    def test_force_restores_templates(self, project):
        """force overwrites edited templates; a plain install keeps them."""
        template = project / ".config" / ".mucm" / "templates" / "feature" / "simple.tmpl"
        template.write_text("custom")
        install_templates(template.parent.parent, ["feature"])
        assert template.read_text() == "custom"
        init_project(project, force=True)
        assert template.read_text() != "custom"

    def test_selected_methodologies(self, tmp_path):
        """Only the requested methodologies are installed."""
        config = init_project(tmp_path, methodologies=["tester"])
        assert config.templates.default_methodology == "tester"
        assert not (tmp_path / ".config" / ".mucm" / "templates" / "feature").exists()

    def test_unknown_methodology(self, tmp_path):
        """Methodologies that are not packaged are rejected."""
        with pytest.raises(ValidationError):
            init_project(tmp_path, methodologies=["waterfall"])

    def test_default_must_be_installed(self, tmp_path):
        """The default methodology has to be among the installed ones."""
        with pytest.raises(ValidationError):
            init_project(tmp_path, methodologies=["tester"], default_methodology="feature")

    def test_language_aliases(self, tmp_path):
        """Language aliases are normalized; unknown languages are rejected."""
        assert init_project(tmp_path / "a", test_language="js").test_language == "javascript"
        assert init_project(tmp_path / "b", test_language="none").test_language == "none"
        with pytest.raises(ValidationError):
            init_project(tmp_path / "c", test_language="cobol")

    def test_packaged_methodologies(self):
        """All four default methodologies ship with the package."""
        assert packaged_methodologies() == ["business", "developer", "feature", "tester"]
