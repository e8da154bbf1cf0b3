"""Engine configuration and settings validation tests."""

from __future__ import annotations

from datetime import date

import pytest

from linkplanner.engine.config import (
    BrokenConfig,
    HubsConfig,
    SimilarConfig,
    build_run_config,
    build_settings,
    build_task_configs,
    load_config,
    settings_to_dict,
)
from linkplanner.engine.errors import ValidationError
from linkplanner.engine.types import GlobalSettings


def test_load_config_merges_yaml_over_defaults(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text(
        "context_words: 5\n"
        "settings:\n"
        "  max_links_per_page: 7\n"
        "tasks:\n"
        "  similar:\n"
        "    k_neighbors: 4\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.get("context_words") == 5
    assert config.get("anchor_max_tokens") == 8
    assert config.settings_defaults()["max_links_per_page"] == 7
    assert config.settings_defaults()["min_gap"] == 200
    assert config.task_defaults("similar") == {"prefixes": ["/blog/"], "k_neighbors": 4}


def test_load_config_ignores_missing_file(tmp_path):
    config = load_config(tmp_path / "absent.yaml")

    assert config.settings_defaults()["max_links_per_page"] == 3


def test_load_config_returns_independent_copies():
    first = load_config(None)
    first.raw["settings"]["min_gap"] = 1

    assert load_config(None).settings_defaults()["min_gap"] == 200


def test_build_settings_defaults_match_snapshot_defaults(engine_config):
    assert build_settings(None, config=engine_config) == GlobalSettings()


def test_build_settings_normalises_values(engine_config):
    settings = build_settings(
        {
            "stop_anchors": ["  Click   HERE "],
            "rel_attributes": ["NoFollow", " "],
            "url_pattern": "  ",
            "newer_than": "2024-02-01T00:00:00",
        },
        config=engine_config,
    )

    assert settings.stop_anchors == frozenset({"click here"})
    assert settings.rel_attributes == frozenset({"nofollow"})
    assert settings.url_pattern is None
    assert settings.newer_than == date(2024, 2, 1)


def test_build_settings_collects_every_error(engine_config):
    with pytest.raises(ValidationError) as excinfo:
        build_settings(
            {
                "max_links_per_page": -1,
                "exact_anchor_percent": 150,
                "priorities": ["hubs", "teleport"],
                "old_links_action": "shred",
                "url_pattern": "(unclosed",
                "newer_than": "yesterday",
                "min_gap": True,
            },
            config=engine_config,
        )

    errors = excinfo.value.errors
    assert set(errors) == {
        "max_links_per_page",
        "exact_anchor_percent",
        "priorities",
        "old_links_action",
        "url_pattern",
        "newer_than",
        "min_gap",
    }
    assert "teleport" in errors["priorities"]


def test_build_settings_rejects_repeated_priorities(engine_config):
    with pytest.raises(ValidationError) as excinfo:
        build_settings({"priorities": ["hubs", "hubs"]}, config=engine_config)

    assert excinfo.value.errors == {"priorities": "strategies must not repeat"}


def test_settings_round_trip_to_dict(engine_config):
    settings = build_settings({"newer_than": "2024-01-31"}, config=engine_config)

    data = settings_to_dict(settings)

    assert data["newer_than"] == "2024-01-31"
    assert data["stop_anchors"] == ["click here", "learn more", "read more"]
    assert build_settings(data, config=engine_config) == settings


def test_task_configs_from_names_and_overrides(engine_config, global_settings):
    tasks = build_task_configs(
        {"hubs": {"topology": "ring"}, "similar": {"prefixes": "/blog/, /docs/"}, "broken": None},
        global_settings,
        config=engine_config,
    )

    assert tasks["hubs"] == HubsConfig(topology="ring", restrict_prefix=True)
    assert tasks["similar"] == SimilarConfig(prefixes=("/blog/", "/docs/"), k_neighbors=2)
    assert tasks["broken"] == BrokenConfig(policy="delete")


def test_broken_policy_follows_project_setting(engine_config):
    settings = GlobalSettings(broken_links_action="replace")

    tasks = build_task_configs(["broken"], settings, config=engine_config)

    assert tasks["broken"] == BrokenConfig(policy="replace")


def test_task_configs_reject_unknown_and_invalid(engine_config, global_settings):
    with pytest.raises(ValidationError) as excinfo:
        build_task_configs(
            {"teleport": {}, "fresh": {"days_fresh": 0}, "commerce": {"url_pattern": ""}},
            global_settings,
            config=engine_config,
        )

    assert excinfo.value.errors == {
        "teleport": "unknown strategy",
        "fresh.days_fresh": "must be >= 1",
        "commerce.url_pattern": "a URL pattern is required",
    }


def test_task_configs_need_a_strategy(engine_config, global_settings):
    with pytest.raises(ValidationError) as excinfo:
        build_task_configs([], global_settings, config=engine_config)

    assert "strategies" in excinfo.value.errors


def test_run_config_reports_settings_and_strategy_errors_together(engine_config):
    with pytest.raises(ValidationError) as excinfo:
        build_run_config({"max_links_per_page": -1}, ["teleport"], config=engine_config)

    assert excinfo.value.errors == {
        "max_links_per_page": "must be >= 0",
        "teleport": "unknown strategy",
    }


def test_run_config_returns_settings_and_tasks(engine_config):
    settings, tasks = build_run_config({"min_gap": 0}, ["hubs"], config=engine_config)

    assert settings.min_gap == 0
    assert isinstance(tasks["hubs"], HubsConfig)
