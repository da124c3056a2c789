"""Configuration loading for depcheck (.depcheck.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import yaml

from .errors import ConfigurationError
from .logging import get_logger

CONFIG_FILENAME = ".depcheck.yml"
DEFAULT_DATA_DIRECTORY = Path("~/.depcheck")
DEFAULT_FEED_URL = "https://nvd.nist.gov/feeds/xml/cve/nvdcve-2.0-{feed_id}.xml.gz"
DEFAULT_PRIOR_FEED_URL = "https://nvd.nist.gov/feeds/xml/cve/nvdcve-{feed_id}.xml.gz"
DEFAULT_VERSION_CHECK_URL = "https://jeremylong.github.io/DependencyCheck/current.txt"

_logger = get_logger("config")
_T = TypeVar("_T")


@dataclass
class FeedSettings:
    """Feed download and ingestion policy."""

    staleness_hours: float = 4.0
    max_workers: int = 4
    retries: int = 2
    timeout: float = 60.0
    url_template: str = DEFAULT_FEED_URL
    prior_url_template: Optional[str] = DEFAULT_PRIOR_FEED_URL
    start_year: int = 2002
    feeds: Dict[str, str] = field(default_factory=dict)
    prior_feeds: Dict[str, str] = field(default_factory=dict)


@dataclass
class MatcherSettings:
    """Weights and limits applied when querying the product catalog."""

    weighting_boost: float = 5.0
    version_boost: float = 0.7
    weighted_version_boost: float = 0.2
    result_limit: int = 10
    version_family_products: List[str] = field(default_factory=lambda: ["apache:struts"])


@dataclass
class AnalyzerSettings:
    """Analyzer enablement."""

    enabled: List[str] = field(default_factory=list)


@dataclass
class Settings:
    """Represents the settings defined in .depcheck.yml."""

    root: Path
    data_directory: Path = field(default_factory=lambda: DEFAULT_DATA_DIRECTORY.expanduser())
    database_url: Optional[str] = None
    deep_scan: bool = False
    auto_update: bool = True
    engine_version: Optional[str] = None
    version_check_url: Optional[str] = DEFAULT_VERSION_CHECK_URL
    feeds: FeedSettings = field(default_factory=FeedSettings)
    matcher: MatcherSettings = field(default_factory=MatcherSettings)
    analyzers: AnalyzerSettings = field(default_factory=AnalyzerSettings)

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_directory / 'depcheck.db'}"


def load_settings(config_path: Path) -> Settings:
    """Load settings from disk, falling back to defaults for invalid values."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)

    settings = Settings(root=root)

    data_dir = _as_str(data.get("data_directory"))
    if data_dir:
        candidate = Path(data_dir).expanduser()
        settings.data_directory = candidate if candidate.is_absolute() else root / candidate
    settings.database_url = _as_str(data.get("database_url"))
    settings.deep_scan = _setting(data, "deep_scan", _as_bool, settings.deep_scan)
    settings.auto_update = _setting(data, "auto_update", _as_bool, settings.auto_update)
    settings.engine_version = _as_str(data.get("engine_version"))
    if "version_check_url" in data:
        settings.version_check_url = _as_str(data.get("version_check_url"))

    feed_data = _as_dict(data.get("feeds"))
    feeds = settings.feeds
    if feed_data:
        feeds.staleness_hours = _setting(
            feed_data, "staleness_hours", _as_positive_float, feeds.staleness_hours, "feeds."
        )
        feeds.max_workers = _setting(
            feed_data, "max_workers", _as_positive_int, feeds.max_workers, "feeds."
        )
        feeds.retries = _setting(feed_data, "retries", _as_non_negative_int, feeds.retries, "feeds.")
        feeds.timeout = _setting(feed_data, "timeout", _as_positive_float, feeds.timeout, "feeds.")
        feeds.url_template = _setting(
            feed_data, "url_template", _as_template, feeds.url_template, "feeds."
        )
        if "prior_url_template" in feed_data and feed_data["prior_url_template"] is None:
            feeds.prior_url_template = None
        else:
            feeds.prior_url_template = _setting(
                feed_data, "prior_url_template", _as_template, feeds.prior_url_template, "feeds."
            )
        feeds.start_year = _setting(
            feed_data, "start_year", _as_positive_int, feeds.start_year, "feeds."
        )
        feeds.feeds = _as_str_dict(feed_data.get("urls"))
        feeds.prior_feeds = _as_str_dict(feed_data.get("prior_urls"))

    matcher_data = _as_dict(data.get("matcher"))
    matcher = settings.matcher
    if matcher_data:
        matcher.weighting_boost = _setting(
            matcher_data, "weighting_boost", _as_positive_float, matcher.weighting_boost, "matcher."
        )
        matcher.version_boost = _setting(
            matcher_data, "version_boost", _as_positive_float, matcher.version_boost, "matcher."
        )
        matcher.weighted_version_boost = _setting(
            matcher_data,
            "weighted_version_boost",
            _as_positive_float,
            matcher.weighted_version_boost,
            "matcher.",
        )
        matcher.result_limit = _setting(
            matcher_data, "result_limit", _as_positive_int, matcher.result_limit, "matcher."
        )
        if "version_family_products" in matcher_data:
            matcher.version_family_products = [
                item.lower() for item in _as_str_list(matcher_data.get("version_family_products"))
            ]

    analyzer_data = _as_dict(data.get("analyzers"))
    if analyzer_data:
        settings.analyzers.enabled = _as_str_list(analyzer_data.get("enabled"))

    _apply_environment(settings)
    return settings


def _apply_environment(settings: Settings) -> None:
    database_url = os.environ.get("DEPCHECK_DATABASE_URL")
    if database_url:
        settings.database_url = database_url
    data_dir = os.environ.get("DEPCHECK_DATA_DIR")
    if data_dir:
        settings.data_directory = Path(data_dir).expanduser()


def _setting(
    data: Dict[str, Any],
    key: str,
    convert: Callable[[Any], Optional[_T]],
    default: _T,
    prefix: str = "",
) -> _T:
    if key not in data or data[key] is None:
        return default
    value = convert(data[key])
    if value is None:
        error = ConfigurationError(
            f"Invalid value {data[key]!r} for '{prefix}{key}'; using default {default!r}"
        )
        _logger.warning("%s", error)
        return default
    return value


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"{path.name} must contain a mapping at the root")
    return loaded


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_template(value: Any) -> Optional[str]:
    text = _as_str(value)
    if text is None or "{feed_id}" not in text:
        return None
    return text


def _as_positive_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if number > 0 else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_positive_int(value: Any) -> Optional[int]:
    number = _as_int(value)
    return number if number is not None and number > 0 else None


def _as_non_negative_int(value: Any) -> Optional[int]:
    number = _as_int(value)
    return number if number is not None and number >= 0 else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


def _as_str_dict(value: Any) -> Dict[str, str]:
    return {
        str(key): str(item)
        for key, item in _as_dict(value).items()
        if isinstance(item, str) and item.strip()
    }


__all__ = [
    "AnalyzerSettings",
    "CONFIG_FILENAME",
    "FeedSettings",
    "MatcherSettings",
    "Settings",
    "load_settings",
]
