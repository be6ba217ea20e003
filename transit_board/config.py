"""Configuration loader for the transit board."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Any

from dotenv import load_dotenv
import yaml

from transit_board.data.feed_client import STOP_MONITORING_URL
from transit_board.data.models import StopQuery
from transit_board.data.refresher import DEFAULT_REFRESH_INTERVAL_SECONDS

API_KEY_ENV = "TRANSIT_API_KEY"


@dataclass(frozen=True)
class AgencySection:
    """A layout section listing one agency's lines in one direction."""

    agency: str
    direction: str


@dataclass(frozen=True)
class TextSection:
    """A layout section holding a static heading."""

    text: str


Section = AgencySection | TextSection


@dataclass(frozen=True)
class LayoutConfig:
    """Screen size and the sections shown in each column."""

    width: int
    height: int
    left: tuple[Section, ...]
    right: tuple[Section, ...]


@dataclass(frozen=True)
class FeedConfig:
    """Upstream feed settings."""

    base_url: str = STOP_MONITORING_URL
    timeout_seconds: float = 10
    refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS


@dataclass(frozen=True)
class CacheConfig:
    """Where snapshot files live."""

    dir: str = "."


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    log_dir: str | None = None


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    api_key: str
    stops: tuple[StopQuery, ...]
    layout: LayoutConfig
    destination_subs: dict[str, str] = field(default_factory=dict)
    feed: FeedConfig = FeedConfig()
    cache: CacheConfig = CacheConfig()
    log: LoggingConfig = LoggingConfig()


def _require_key(mapping: dict[str, Any], key: str, context: str) -> Any:
    if key not in mapping:
        raise ValueError(f"Missing required key '{key}' in {context} config")
    return mapping[key]


def _optional_mapping(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' config must be a mapping")
    return value


def _parse_prefix_subs(value: Any, context: str) -> tuple[tuple[str, str], ...]:
    if value is None:
        return ()
    if isinstance(value, dict):
        pairs = list(value.items())
    elif isinstance(value, list):
        pairs = []
        for item in value:
            if not isinstance(item, (list, tuple)) or len(item) != 2:
                raise ValueError(f"'line_prefix_subs' entries in {context} must be [prefix, replacement] pairs")
            pairs.append((item[0], item[1]))
    else:
        raise ValueError(f"'line_prefix_subs' in {context} must be a mapping or a list of pairs")
    return tuple((str(prefix), str(replacement)) for prefix, replacement in pairs)


def _parse_stops(value: Any) -> tuple[StopQuery, ...]:
    if not isinstance(value, list) or not value:
        raise ValueError("'stops' config must be a non-empty list")

    queries: list[StopQuery] = []
    seen: set[str] = set()
    for index, entry in enumerate(value):
        context = f"stops[{index}]"
        if not isinstance(entry, dict):
            raise ValueError(f"'{context}' config must be a mapping")
        agency = str(_require_key(entry, "agency", context))
        if agency in seen:
            raise ValueError(f"Agency '{agency}' is configured more than once")
        seen.add(agency)

        stop_ids = _require_key(entry, "stops", context)
        if not isinstance(stop_ids, list):
            raise ValueError(f"'stops' in {context} must be a list")

        queries.append(
            StopQuery(
                agency=agency,
                stops=frozenset(str(stop_id) for stop_id in stop_ids),
                line_prefix_subs=_parse_prefix_subs(entry.get("line_prefix_subs"), context),
            )
        )
    return tuple(queries)


def _parse_sections(side: Any, context: str) -> tuple[Section, ...]:
    if not isinstance(side, dict):
        raise ValueError(f"'{context}' config must be a mapping")
    sections = side.get("sections") or []
    if not isinstance(sections, list):
        raise ValueError(f"'sections' in {context} must be a list")

    parsed: list[Section] = []
    for index, section in enumerate(sections):
        section_context = f"{context}.sections[{index}]"
        if not isinstance(section, dict):
            raise ValueError(f"'{section_context}' config must be a mapping")
        if "text" in section:
            parsed.append(TextSection(text=str(section["text"])))
        else:
            parsed.append(
                AgencySection(
                    agency=str(_require_key(section, "agency", section_context)),
                    direction=str(_require_key(section, "direction", section_context)),
                )
            )
    return tuple(parsed)


def _parse_layout(value: Any) -> LayoutConfig:
    if not isinstance(value, dict):
        raise ValueError("'layout' config must be a mapping")
    return LayoutConfig(
        width=int(_require_key(value, "width", "layout")),
        height=int(_require_key(value, "height", "layout")),
        left=_parse_sections(_require_key(value, "left", "layout"), "layout.left"),
        right=_parse_sections(_require_key(value, "right", "layout"), "layout.right"),
    )


def load_config(path: str = "stops.yml") -> AppConfig:
    """Load application configuration from a YAML file."""
    load_dotenv()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ValueError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Config file is not valid YAML: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping at the top level")

    api_key = os.environ.get(API_KEY_ENV, "").strip() or str(data.get("api_key") or "").strip()
    if not api_key:
        raise ValueError(f"No API key: set {API_KEY_ENV} or 'api_key' in config")

    destination_subs = _optional_mapping(data, "destination_subs")
    feed_section = _optional_mapping(data, "feed")
    cache_section = _optional_mapping(data, "cache")
    logging_section = _optional_mapping(data, "logging")

    feed = FeedConfig(
        base_url=str(feed_section.get("base_url", STOP_MONITORING_URL)),
        timeout_seconds=float(feed_section.get("timeout_seconds", 10)),
        refresh_interval_seconds=float(
            feed_section.get("refresh_interval_seconds", DEFAULT_REFRESH_INTERVAL_SECONDS)
        ),
    )
    if feed.timeout_seconds <= 0 or feed.refresh_interval_seconds <= 0:
        raise ValueError("'feed' timeout and refresh interval must be positive")

    logging = LoggingConfig(
        level=str(logging_section.get("level", "INFO")).upper(),
        log_dir=logging_section.get("log_dir"),
    )

    return AppConfig(
        api_key=api_key,
        stops=_parse_stops(_require_key(data, "stops", "top-level")),
        layout=_parse_layout(_require_key(data, "layout", "top-level")),
        destination_subs={str(k): str(v) for k, v in destination_subs.items()},
        feed=feed,
        cache=CacheConfig(dir=str(cache_section.get("dir", "."))),
        log=logging,
    )


__all__ = [
    "AgencySection",
    "AppConfig",
    "CacheConfig",
    "FeedConfig",
    "LayoutConfig",
    "LoggingConfig",
    "TextSection",
    "load_config",
]
