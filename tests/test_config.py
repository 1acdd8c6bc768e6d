import pytest

from flow_insights.config import DEFAULT_IGNORED_DOMAINS, InsightsConfig


def test_defaults():
    config = InsightsConfig()
    assert config.min_support == 3
    assert (config.min_sequence_length, config.max_sequence_length) == (3, 5)
    assert config.max_gap_seconds == 300.0
    assert config.buffer_size == 50
    assert config.ignored_domains == DEFAULT_IGNORED_DOMAINS
    assert config.ignored_domains is not DEFAULT_IGNORED_DOMAINS


def test_from_env(monkeypatch):
    monkeypatch.setenv("FLOW_INSIGHTS_DB", "/tmp/insights.db")
    monkeypatch.setenv("FLOW_INSIGHTS_MIN_SUPPORT", "5")
    monkeypatch.setenv("FLOW_INSIGHTS_FRICTION_THRESHOLD", "0.75")
    monkeypatch.setenv("FLOW_INSIGHTS_IGNORED_DOMAINS", "localhost, intranet.example.com ,")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    config = InsightsConfig.from_env()
    assert config.db_path == "/tmp/insights.db"
    assert config.min_support == 5
    assert config.friction_threshold == 0.75
    assert config.ignored_domains == ["localhost", "intranet.example.com"]
    assert config.goal_api_key == "sk-test"


def test_invalid_env_value_names_variable(monkeypatch):
    monkeypatch.setenv("FLOW_INSIGHTS_LOOKBACK_DAYS", "a week")
    with pytest.raises(ValueError, match="FLOW_INSIGHTS_LOOKBACK_DAYS"):
        InsightsConfig.from_env()
