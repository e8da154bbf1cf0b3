"""Project settings import behaviour."""

import importlib

from linkplanner_tool import settings as project_settings


def test_settings_import_without_test_environment(monkeypatch):
    for name in ("DJANGO_SECRET_KEY", "DJANGO_DEBUG", "PYTEST_CURRENT_TEST"):
        monkeypatch.delenv(name, raising=False)
    try:
        reloaded = importlib.reload(project_settings)

        assert reloaded.RUNNING_TESTS
        assert reloaded.DEBUG
    finally:
        monkeypatch.undo()
        importlib.reload(project_settings)
