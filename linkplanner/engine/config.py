"""Configuration helpers for the planning engine."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Tuple

import yaml

from .errors import ValidationError
from .types import GlobalSettings, Strategy


@dataclass(frozen=True)
class EngineConfig:
    """Typed wrapper around the engine configuration dictionary."""

    raw: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    def settings_defaults(self) -> Dict[str, Any]:
        return dict(self.raw.get("settings", {}))

    def task_defaults(self, strategy: str) -> Dict[str, Any]:
        tasks = self.raw.get("tasks", {})
        return dict(tasks.get(strategy, {}))


DEFAULTS: Dict[str, Any] = {
    "anchor_max_tokens": 8,
    "context_words": 8,
    "alternate_weight_step": 0.01,
    "settings": {
        "max_links_per_page": 3,
        "priorities": ["hubs", "commerce", "similar", "deep", "fresh", "orphans"],
        "min_gap": 200,
        "exact_anchor_percent": 20,
        "old_links_action": "enrich",
        "broken_links_action": "delete",
        "html_class": "internal-link",
        "link_mode": "append",
        "stop_anchors": ["click here", "read more", "learn more"],
        "rel_attributes": [],
        "target_blank": False,
        "url_pattern": "",
        "newer_than": None,
        "random_sample": 100,
    },
    "tasks": {
        "hubs": {"topology": "star", "restrict_prefix": True},
        "commerce": {"url_pattern": r"/(buy|product|service|pricing)", "limit_prefix": ""},
        "similar": {"prefixes": ["/blog/"], "k_neighbors": 2},
        "deep": {"min_depth": 5, "donors_from_levels": True},
        "fresh": {"days_fresh": 30, "links_per_donor": 1},
        "orphans": {"scope": "entire", "prefix": ""},
        "broken": {"policy": None},
        "regenerate": {"mode": "enrich"},
    },
}


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load configuration from YAML, merging with defaults."""

    data: Dict[str, Any] = copy.deepcopy(DEFAULTS)

    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as stream:
            user = yaml.safe_load(stream) or {}
        merge_into(data, user)

    return EngineConfig(data)


def merge_into(base: Dict[str, Any], override: Mapping[str, Any]) -> None:
    """Recursively merge override into base dict."""

    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            merge_into(base[key], value)
        else:
            base[key] = value


# ---------------------------------------------------------------------------
# Global settings
# ---------------------------------------------------------------------------

OLD_LINKS_ACTIONS = ("enrich", "regenerate", "audit")
BROKEN_LINKS_ACTIONS = ("delete", "replace", "ignore")
LINK_MODES = ("append", "replace")
STRATEGY_NAMES = tuple(strategy.value for strategy in Strategy)


def build_settings(
    values: Mapping[str, Any] | None = None,
    *,
    config: EngineConfig | None = None,
) -> GlobalSettings:
    """Validate raw settings and return an immutable snapshot.

    ``values`` is layered over the configured defaults. Every problem is
    collected so callers can report them all at once.
    """

    engine_config = config or load_config(None)
    data = engine_config.settings_defaults()
    data.update(values or {})
    errors: Dict[str, str] = {}

    max_links = _as_int(data.get("max_links_per_page"), "max_links_per_page", errors, minimum=0)
    min_gap = _as_int(data.get("min_gap"), "min_gap", errors, minimum=0)
    exact_percent = _as_int(
        data.get("exact_anchor_percent"), "exact_anchor_percent", errors, minimum=0, maximum=100
    )
    random_sample = _as_int(data.get("random_sample"), "random_sample", errors, minimum=0, maximum=100)

    priorities = _as_str_list(data.get("priorities"), "priorities", errors)
    if "priorities" not in errors:
        if not priorities:
            errors["priorities"] = "at least one strategy is required"
        elif len(set(priorities)) != len(priorities):
            errors["priorities"] = "strategies must not repeat"
        else:
            unknown = [name for name in priorities if name not in STRATEGY_NAMES]
            if unknown:
                errors["priorities"] = f"unknown strategies: {', '.join(unknown)}"

    old_links_action = _as_choice(data.get("old_links_action"), "old_links_action", OLD_LINKS_ACTIONS, errors)
    broken_links_action = _as_choice(
        data.get("broken_links_action"), "broken_links_action", BROKEN_LINKS_ACTIONS, errors
    )
    link_mode = _as_choice(data.get("link_mode"), "link_mode", LINK_MODES, errors)

    stop_anchors = _as_str_list(data.get("stop_anchors"), "stop_anchors", errors)
    rel_attributes = _as_str_list(data.get("rel_attributes"), "rel_attributes", errors)

    url_pattern = (data.get("url_pattern") or "").strip() or None
    if url_pattern is not None:
        _check_regex(url_pattern, "url_pattern", errors)

    newer_than = _as_date(data.get("newer_than"), "newer_than", errors)

    if errors:
        raise ValidationError(errors)

    return GlobalSettings(
        max_links_per_page=max_links,
        priorities=tuple(priorities),
        min_gap=min_gap,
        exact_anchor_percent=exact_percent,
        old_links_action=old_links_action,
        broken_links_action=broken_links_action,
        html_class=str(data.get("html_class") or ""),
        link_mode=link_mode,
        stop_anchors=frozenset(" ".join(phrase.split()).casefold() for phrase in stop_anchors if phrase.strip()),
        rel_attributes=frozenset(attr.strip().lower() for attr in rel_attributes if attr.strip()),
        target_blank=bool(data.get("target_blank")),
        url_pattern=url_pattern,
        newer_than=newer_than,
        random_sample=random_sample,
    )


def settings_to_dict(settings: GlobalSettings) -> Dict[str, Any]:
    """Return a JSON-friendly representation of a settings snapshot."""

    return {
        "max_links_per_page": settings.max_links_per_page,
        "priorities": list(settings.priorities),
        "min_gap": settings.min_gap,
        "exact_anchor_percent": settings.exact_anchor_percent,
        "old_links_action": settings.old_links_action,
        "broken_links_action": settings.broken_links_action,
        "html_class": settings.html_class,
        "link_mode": settings.link_mode,
        "stop_anchors": sorted(settings.stop_anchors),
        "rel_attributes": sorted(settings.rel_attributes),
        "target_blank": settings.target_blank,
        "url_pattern": settings.url_pattern or "",
        "newer_than": settings.newer_than.isoformat() if settings.newer_than else None,
        "random_sample": settings.random_sample,
    }


# ---------------------------------------------------------------------------
# Task configurations (one variant per strategy)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HubsConfig:
    topology: str = "star"
    restrict_prefix: bool = True


@dataclass(frozen=True)
class CommerceConfig:
    url_pattern: str = r"/(buy|product|service|pricing)"
    limit_prefix: str = ""


@dataclass(frozen=True)
class SimilarConfig:
    prefixes: Tuple[str, ...] = ("/blog/",)
    k_neighbors: int = 2


@dataclass(frozen=True)
class DeepConfig:
    min_depth: int = 5
    donors_from_levels: bool = True


@dataclass(frozen=True)
class FreshConfig:
    days_fresh: int = 30
    links_per_donor: int = 1


@dataclass(frozen=True)
class OrphansConfig:
    scope: str = "entire"
    prefix: str = ""


@dataclass(frozen=True)
class BrokenConfig:
    policy: str = "delete"


@dataclass(frozen=True)
class RegenerateConfig:
    mode: str = "enrich"


TaskConfig = (
    HubsConfig
    | CommerceConfig
    | SimilarConfig
    | DeepConfig
    | FreshConfig
    | OrphansConfig
    | BrokenConfig
    | RegenerateConfig
)


def build_task_configs(
    enabled: Mapping[str, Mapping[str, Any] | None] | Iterable[str],
    settings: GlobalSettings,
    *,
    config: EngineConfig | None = None,
) -> Dict[str, TaskConfig]:
    """Validate the enabled strategies and their per-task options.

    ``enabled`` is either a list of strategy names or a mapping of strategy
    name to overrides for that task's defaults.
    """

    engine_config = config or load_config(None)
    if isinstance(enabled, Mapping):
        requested = {name: dict(options or {}) for name, options in enabled.items()}
    else:
        requested = {name: {} for name in enabled}

    errors: Dict[str, str] = {}
    if not requested:
        errors["strategies"] = "enable at least one strategy"

    tasks: Dict[str, TaskConfig] = {}
    for name in sorted(requested):
        if name not in STRATEGY_NAMES:
            errors[name] = "unknown strategy"
            continue
        options = engine_config.task_defaults(name)
        options.update(requested[name])
        task = _build_task(name, options, settings, errors)
        if task is not None:
            tasks[name] = task

    if errors:
        raise ValidationError(errors)
    return tasks


def build_run_config(
    values: Mapping[str, Any] | None,
    enabled: Mapping[str, Mapping[str, Any] | None] | Iterable[str],
    *,
    config: EngineConfig | None = None,
) -> Tuple[GlobalSettings, Dict[str, TaskConfig]]:
    """Validate settings and enabled strategies together.

    Raises a single :class:`ValidationError` holding the errors of both.
    Strategies are still checked when the settings are invalid, against the
    default settings.
    """

    errors: Dict[str, str] = {}
    try:
        settings = build_settings(values, config=config)
    except ValidationError as exc:
        errors.update(exc.errors)
        settings = GlobalSettings()
    try:
        tasks = build_task_configs(enabled, settings, config=config)
    except ValidationError as exc:
        errors.update(exc.errors)
        tasks = {}
    if errors:
        raise ValidationError(errors)
    return settings, tasks


def _build_task(
    name: str,
    options: Dict[str, Any],
    settings: GlobalSettings,
    errors: Dict[str, str],
) -> TaskConfig | None:
    before = len(errors)
    key = name

    if name == Strategy.HUBS.value:
        topology = _as_choice(options.get("topology"), f"{key}.topology", ("star", "ring", "wheel"), errors)
        task: TaskConfig = HubsConfig(topology=topology, restrict_prefix=bool(options.get("restrict_prefix")))
    elif name == Strategy.COMMERCE.value:
        pattern = str(options.get("url_pattern") or "").strip()
        if not pattern:
            errors[f"{key}.url_pattern"] = "a URL pattern is required"
        else:
            _check_regex(pattern, f"{key}.url_pattern", errors)
        task = CommerceConfig(url_pattern=pattern, limit_prefix=str(options.get("limit_prefix") or ""))
    elif name == Strategy.SIMILAR.value:
        prefixes = options.get("prefixes")
        if isinstance(prefixes, str):
            prefixes = [piece.strip() for piece in prefixes.split(",")]
        prefix_list = _as_str_list(prefixes, f"{key}.prefixes", errors)
        k = _as_int(options.get("k_neighbors"), f"{key}.k_neighbors", errors, minimum=1)
        task = SimilarConfig(prefixes=tuple(p for p in prefix_list if p), k_neighbors=k)
    elif name == Strategy.DEEP.value:
        min_depth = _as_int(options.get("min_depth"), f"{key}.min_depth", errors, minimum=0)
        task = DeepConfig(min_depth=min_depth, donors_from_levels=bool(options.get("donors_from_levels")))
    elif name == Strategy.FRESH.value:
        days = _as_int(options.get("days_fresh"), f"{key}.days_fresh", errors, minimum=1)
        per_donor = _as_int(options.get("links_per_donor"), f"{key}.links_per_donor", errors, minimum=1)
        task = FreshConfig(days_fresh=days, links_per_donor=per_donor)
    elif name == Strategy.ORPHANS.value:
        scope = _as_choice(options.get("scope"), f"{key}.scope", ("entire", "prefix"), errors)
        task = OrphansConfig(scope=scope, prefix=str(options.get("prefix") or ""))
    elif name == Strategy.BROKEN.value:
        policy = options.get("policy") or settings.broken_links_action
        policy = _as_choice(policy, f"{key}.policy", BROKEN_LINKS_ACTIONS, errors)
        task = BrokenConfig(policy=policy)
    else:
        mode = _as_choice(options.get("mode"), f"{key}.mode", ("enrich", "regenerate"), errors)
        task = RegenerateConfig(mode=mode)

    if len(errors) != before:
        return None
    return task


def task_config_to_dict(task: TaskConfig) -> Dict[str, Any]:
    return {
        key: list(value) if isinstance(value, tuple) else value
        for key, value in task.__dict__.items()
    }


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _as_int(
    value: Any,
    key: str,
    errors: Dict[str, str],
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    if isinstance(value, bool):
        errors[key] = "must be an integer"
        return 0
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors[key] = "must be an integer"
        return 0
    if minimum is not None and number < minimum:
        errors[key] = f"must be >= {minimum}"
    elif maximum is not None and number > maximum:
        errors[key] = f"must be <= {maximum}"
    return number


def _as_choice(value: Any, key: str, choices: Tuple[str, ...], errors: Dict[str, str]) -> str:
    text = str(value or "").strip().lower()
    if text not in choices:
        errors[key] = f"must be one of {', '.join(choices)}"
    return text


def _as_str_list(value: Any, key: str, errors: Dict[str, str]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        errors[key] = "must be a list of strings"
        return []
    items = []
    for item in value:
        if not isinstance(item, str):
            errors[key] = "must be a list of strings"
            return []
        items.append(item.strip())
    return items


def _as_date(value: Any, key: str, errors: Dict[str, str]) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        errors[key] = "must be an ISO date (YYYY-MM-DD)"
        return None


def _check_regex(pattern: str, key: str, errors: Dict[str, str]) -> None:
    try:
        re.compile(pattern)
    except re.error as exc:
        errors[key] = f"invalid regular expression: {exc}"
