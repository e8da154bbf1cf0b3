"""Pytest configuration loaded before pytest-django configures Django."""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "linkplanner_tool.settings")
os.environ.setdefault("DJANGO_SECRET_KEY", "test-secret")
os.environ.setdefault("DJANGO_DEBUG", "true")
