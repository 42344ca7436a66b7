"""Shared fixtures: initialized projects and a service bound to them."""

import pytest

from mucm.bootstrap import init_project
from mucm.config import Config
from mucm.services.application import UseCaseApplicationService


@pytest.fixture
def project(tmp_path):
    """An initialized TOML project with all default methodologies."""
    init_project(tmp_path, name="Shop", test_language="python")
    return tmp_path


@pytest.fixture
def service(project):
    return UseCaseApplicationService.from_config(Config.load(project), project)


@pytest.fixture
def sqlite_service(tmp_path):
    init_project(tmp_path, name="Shop", backend="sqlite", test_language="python")
    return UseCaseApplicationService.from_config(Config.load(tmp_path), tmp_path)
