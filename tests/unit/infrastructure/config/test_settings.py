import os

import pytest

from callguard.infrastructure.config import settings
from callguard.infrastructure.config.settings import (
    ResilienceSettings, env_key_for, get_claude_api_key, get_config, get_monday_api_token,
    load_configuration, load_resilience_settings, set_config_for_testing,
)


@pytest.fixture
def clean_env(mocker, monkeypatch):
    """Isolates os.environ and the module-level configuration store."""
    mocker.patch.dict(os.environ, clear=False)
    for name in ("CLAUDE_API_KEY", "MONDAY_API_TOKEN", "CLAUDE_MAX_RETRIES", "RESILIENCE_MAX_RETRIES",
                 "MONDAY_MAX_RETRIES", "CLAUDE_RATE_LIMIT_MAX_REQUESTS", "LOGGING_LEVEL"):
        os.environ.pop(name, None)
    monkeypatch.setattr(settings, "_config", {})
    monkeypatch.setattr(settings, "_loaded", False)


@pytest.fixture
def config_files(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "claude:\n"
        "  api_url: https://yaml.test/v1/messages\n"
        "  max_retries: 4\n"
        "resilience:\n"
        "  queue_capacity: 50\n"
        "logging:\n"
        "  level: DEBUG\n"
    )
    env_file = tmp_path / ".env"
    env_file.write_text("CLAUDE_API_KEY=from-dotenv\n")
    return config_file, env_file


def test_env_key_for():
    assert env_key_for("claude.api_key") == "CLAUDE_API_KEY"
    assert env_key_for("monday.rate-limit") == "MONDAY_RATE_LIMIT"


def test_yaml_and_dotenv_are_loaded(clean_env, config_files):
    config_file, env_file = config_files

    load_configuration(config_file=config_file, env_file=env_file)

    assert get_config("claude.api_url") == "https://yaml.test/v1/messages"
    assert get_config("logging.level") == "DEBUG"
    assert get_claude_api_key() == "from-dotenv"
    assert get_monday_api_token() is None


def test_environment_overrides_dotenv_and_yaml(clean_env, config_files):
    config_file, env_file = config_files
    os.environ["CLAUDE_API_KEY"] = "from-env"
    os.environ["CLAUDE_MAX_RETRIES"] = "6"

    load_configuration(config_file=config_file, env_file=env_file)

    assert get_claude_api_key() == "from-env"
    assert get_config("claude.max_retries") == 6


def test_missing_yaml_falls_back_to_defaults(clean_env, tmp_path):
    load_configuration(config_file=tmp_path / "absent.yaml", env_file=tmp_path / "absent.env")

    assert get_config("claude.api_url", "default-url") == "default-url"


def test_test_overrides_win(clean_env):
    os.environ["CLAUDE_API_KEY"] = "from-env"
    set_config_for_testing({"claude.api_key": "from-test"})

    assert get_claude_api_key() == "from-test"


def test_resilience_defaults():
    defaults = ResilienceSettings()

    assert defaults.rate_limit_max_requests == 10
    assert defaults.rate_limit_window_s == 60.0
    assert defaults.breaker_failure_threshold == 3
    assert defaults.breaker_cooldown_s == 60.0
    assert defaults.queue_capacity == 100
    assert defaults.queue_concurrency == 1
    assert defaults.queue_cooldown_s == 0.2
    assert defaults.max_retries == 3
    assert defaults.shrink_ratio == 0.8
    assert defaults.shrink_floor == 100


def test_per_upstream_lookup_order(clean_env, config_files):
    config_file, env_file = config_files
    load_configuration(config_file=config_file, env_file=env_file)
    os.environ["MONDAY_MAX_RETRIES"] = "2"

    claude = load_resilience_settings("claude")
    monday = load_resilience_settings("monday")

    assert claude.max_retries == 4
    assert claude.queue_capacity == 50
    assert claude.backoff_base_s == 1.0
    assert monday.max_retries == 2
    assert monday.queue_capacity == 50
    assert monday.backoff_base_s == 0.1
    assert monday.backoff_max_s == 5.0
    assert monday.request_timeout_s == 10.0


@pytest.mark.parametrize("overrides", [
    {"shrink_ratio": 1.0},
    {"shrink_ratio": 0},
    {"queue_capacity": 0},
    {"max_retries": -1},
    {"rate_limit_window_s": 0},
])
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValueError):
        ResilienceSettings(**overrides)


def test_invalid_configured_value_is_rejected(clean_env):
    set_config_for_testing({"claude.shrink_ratio": 2})

    with pytest.raises(ValueError):
        load_resilience_settings("claude")
