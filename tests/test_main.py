"""Tests for command line handling."""

import pytest

from main import apply_overrides, build_settings, parse_args, read_seeds, split_keywords
from sitecrawl.exceptions import ConfigurationError
from sitecrawl.utils.config import ConfigManager, Settings


def test_no_url_and_no_site_section_reuses_stored_settings():
    config = ConfigManager.from_dict({})

    assert build_settings(config, parse_args([])) is None


def test_flags_override_site_section(tmp_path):
    rules = tmp_path / "rules.yaml"
    rules.write_text("rules:\n  - name: title\n    selector: h1\n")
    config = ConfigManager.from_dict({'site': {'base_url': 'http://x.test', 'keywords_to_exclude': ['a']}})

    settings = build_settings(config, parse_args([
        '--exclude', 'logout, /admin', '--include', '/blog/', '--query', '--rules', str(rules)
    ]))

    assert settings == Settings(
        base_url='http://x.test',
        extraction_rules=rules.read_text(),
        keywords_to_exclude=['logout', '/admin'],
        keywords_to_include=['/blog/'],
        allow_query_parameters=True
    )


def test_url_flag_creates_settings():
    settings = build_settings(ConfigManager.from_dict({}), parse_args(['--url', 'http://x.test', '--no-follow']))

    assert settings == Settings(base_url='http://x.test', dont_follow_links=True)


def test_instance_overrides_are_validated():
    config = apply_overrides(ConfigManager.from_dict({}), parse_args(['--workers', '3', '--proxy']))
    assert config.crawler.max_workers == 3
    assert config.crawler.use_proxy

    with pytest.raises(ConfigurationError):
        apply_overrides(ConfigManager.from_dict({}), parse_args(['--workers', '0']))


def test_read_seeds_skips_blank_lines(tmp_path):
    seeds = tmp_path / "seeds.txt"
    seeds.write_text("http://x.test/a\n\n  http://x.test/b  \n")

    assert read_seeds(str(seeds)) == ["http://x.test/a", "http://x.test/b"]


def test_split_keywords():
    assert split_keywords(" a, ,b ") == ["a", "b"]


def test_site_flags_without_base_settings_are_rejected():
    config = ConfigManager.from_dict({})

    with pytest.raises(ConfigurationError, match="--exclude, --no-follow"):
        build_settings(config, parse_args(['--exclude', 'logout', '--no-follow']))


def test_pluck_is_an_alias_for_rules():
    assert parse_args(['--pluck', 'rules.yaml']).rules == 'rules.yaml'


def test_json_logs_flag():
    assert parse_args(['--json-logs']).json_logs
    assert not parse_args([]).json_logs
