"""Tests for depcheck.config."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from depcheck.config import FeedSettings, MatcherSettings, Settings, load_settings
from depcheck.errors import ConfigurationError


def test_load_settings_returns_defaults_when_missing(tmp_path: Path) -> None:
    settings = load_settings(tmp_path)

    assert isinstance(settings, Settings)
    assert settings.root == tmp_path.resolve()
    assert settings.database_url is None
    assert settings.auto_update is True
    assert settings.deep_scan is False
    assert settings.feeds == FeedSettings()
    assert settings.matcher == MatcherSettings()
    assert settings.matcher.version_family_products == ["apache:struts"]
    assert settings.analyzers.enabled == []
    assert settings.resolved_database_url.endswith("depcheck.db")


def test_load_settings_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".depcheck.yml"
    config_file.write_text(
        """
data_directory: "kb"
deep_scan: true
auto_update: "no"
engine_version: "0.3.9"
version_check_url: null
feeds:
  staleness_hours: 12
  max_workers: 2
  retries: 0
  timeout: 15.5
  url_template: "https://mirror.example/nvd-{feed_id}.xml.gz"
  prior_url_template: null
  start_year: 2010
  urls:
    "2013": "https://mirror.example/2013.xml"
matcher:
  weighting_boost: 4
  result_limit: 5
  version_family_products: ["Apache:Struts", "spring:framework"]
analyzers:
  enabled: ["cpe", "vulnerabilities"]
""",
        encoding="utf-8",
    )

    settings = load_settings(config_file)

    assert settings.data_directory == tmp_path.resolve() / "kb"
    assert settings.resolved_database_url == f"sqlite:///{tmp_path.resolve() / 'kb' / 'depcheck.db'}"
    assert settings.deep_scan is True
    assert settings.auto_update is False
    assert settings.engine_version == "0.3.9"
    assert settings.version_check_url is None
    assert settings.feeds.staleness_hours == 12.0
    assert settings.feeds.max_workers == 2
    assert settings.feeds.retries == 0
    assert settings.feeds.timeout == 15.5
    assert settings.feeds.url_template == "https://mirror.example/nvd-{feed_id}.xml.gz"
    assert settings.feeds.prior_url_template is None
    assert settings.feeds.start_year == 2010
    assert settings.feeds.feeds == {"2013": "https://mirror.example/2013.xml"}
    assert settings.matcher.weighting_boost == 4.0
    assert settings.matcher.version_boost == 0.7
    assert settings.matcher.result_limit == 5
    assert settings.matcher.version_family_products == ["apache:struts", "spring:framework"]
    assert settings.analyzers.enabled == ["cpe", "vulnerabilities"]


def test_invalid_values_fall_back_to_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / ".depcheck.yml").write_text(
        """
deep_scan: "sometimes"
feeds:
  max_workers: 0
  staleness_hours: "soon"
  url_template: "https://mirror.example/missing-placeholder.xml"
matcher:
  version_boost: -1
""",
        encoding="utf-8",
    )

    monkeypatch.setattr(logging.getLogger("depcheck"), "propagate", True)
    with caplog.at_level(logging.WARNING, logger="depcheck.config"):
        settings = load_settings(tmp_path)

    assert settings.deep_scan is False
    assert settings.feeds.max_workers == 4
    assert settings.feeds.staleness_hours == 4.0
    assert settings.feeds.url_template == FeedSettings().url_template
    assert settings.matcher.version_boost == 0.7
    assert "feeds.max_workers" in caplog.text
    assert "matcher.version_boost" in caplog.text


def test_unparsable_config_raises_configuration_error(tmp_path: Path) -> None:
    (tmp_path / ".depcheck.yml").write_text("feeds: [unterminated\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings(tmp_path)


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    (tmp_path / ".depcheck.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings(tmp_path)


def test_environment_overrides_storage_location(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / ".depcheck.yml").write_text("database_url: sqlite:///ignored.db\n", encoding="utf-8")
    monkeypatch.setenv("DEPCHECK_DATABASE_URL", "sqlite:///override.db")
    monkeypatch.setenv("DEPCHECK_DATA_DIR", str(tmp_path / "data"))

    settings = load_settings(tmp_path)

    assert settings.resolved_database_url == "sqlite:///override.db"
    assert settings.data_directory == tmp_path / "data"
