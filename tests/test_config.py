"""Tests for taskbridge.config: credential loading and validation.

test_config_loader.py covers YAML discovery and test_config_schema.py the
pydantic models. This module covers validate_config() and load_config().
"""

import pytest

from taskbridge.config import Config, load_config, validate_config

DB_ID = "0123456789abcdef0123456789abcdef"

_ENV_KEYS = (
    "NOTION_TOKEN",
    "NOTION_DATABASE_ID",
    "TODOIST_TOKEN",
    "TODOIST_PROJECT",
    "TASKBRIDGE_DIRECTION",
    "TASKBRIDGE_MAX_ATTEMPTS",
    "TASKBRIDGE_BATCH_SIZE",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def creds_env(clean_env):
    clean_env.setenv("NOTION_TOKEN", "secret_notion")
    clean_env.setenv("NOTION_DATABASE_ID", DB_ID)
    clean_env.setenv("TODOIST_TOKEN", "todoist-token")
    return clean_env


def _config(**overrides) -> Config:
    values = {
        "notion_token": "secret_notion",
        "database_id": DB_ID,
        "todoist_token": "todoist-token",
    }
    values.update(overrides)
    return Config(**values)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    def test_valid_config(self):
        validate_config(_config())

    def test_dashed_database_id(self):
        config = _config(database_id=" 01234567-89ab-cdef-0123-456789abcdef ")
        validate_config(config)
        assert config.database_id == "01234567-89ab-cdef-0123-456789abcdef"

    def test_short_database_id(self):
        with pytest.raises(ValueError, match="Invalid Notion database id"):
            validate_config(_config(database_id="abc123"))

    @pytest.mark.parametrize(
        "field, message",
        [
            ("notion_token", "Notion token cannot be empty"),
            ("todoist_token", "Todoist token cannot be empty"),
            ("project", "project name cannot be empty"),
        ],
    )
    def test_blank_values(self, field, message):
        with pytest.raises(ValueError, match=message):
            validate_config(_config(**{field: "   "}))

    def test_unknown_direction(self):
        with pytest.raises(ValueError, match="Invalid direction 'sideways'"):
            validate_config(_config(direction="sideways"))

    @pytest.mark.parametrize("direction", ["two-way", "a-to-b", "b-to-a"])
    def test_known_directions(self, direction):
        validate_config(_config(direction=direction))


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    def test_from_env(self, creds_env):
        config = load_config()

        assert config.notion_token == "secret_notion"
        assert config.database_id == DB_ID
        assert config.todoist_token == "todoist-token"
        assert config.project == "Notion Tasks"
        assert config.direction == "two-way"
        assert config.profile == "default"
        assert config.max_attempts == 4
        assert config.max_batch_size == 100

    def test_tokens_are_stripped(self, creds_env):
        creds_env.setenv("TODOIST_TOKEN", "  padded  ")
        assert load_config().todoist_token == "padded"

    @pytest.mark.parametrize(
        "missing, message",
        [
            ("NOTION_TOKEN", "Notion token not found"),
            ("NOTION_DATABASE_ID", "Notion database id not found"),
            ("TODOIST_TOKEN", "Todoist token not found"),
        ],
    )
    def test_missing_credentials(self, creds_env, missing, message):
        creds_env.delenv(missing)
        with pytest.raises(ValueError, match=message):
            load_config()

    def test_cli_beats_env(self, creds_env):
        creds_env.setenv("TODOIST_PROJECT", "From Env")
        creds_env.setenv("TASKBRIDGE_DIRECTION", "b-to-a")

        config = load_config(
            project="From CLI", direction="a-to-b", profile="work"
        )

        assert config.project == "From CLI"
        assert config.direction == "a-to-b"
        assert config.profile == "work"

    def test_env_direction(self, creds_env):
        creds_env.setenv("TASKBRIDGE_DIRECTION", "b-to-a")
        assert load_config().direction == "b-to-a"

    def test_invalid_env_direction(self, creds_env):
        creds_env.setenv("TASKBRIDGE_DIRECTION", "both")
        with pytest.raises(ValueError, match="Invalid direction"):
            load_config()

    def test_attempts_and_batch_size_from_env(self, creds_env):
        creds_env.setenv("TASKBRIDGE_MAX_ATTEMPTS", "7")
        creds_env.setenv("TASKBRIDGE_BATCH_SIZE", "25")

        config = load_config()

        assert config.max_attempts == 7
        assert config.max_batch_size == 25

    @pytest.mark.parametrize(
        "key, value",
        [
            ("TASKBRIDGE_MAX_ATTEMPTS", "0"),
            ("TASKBRIDGE_MAX_ATTEMPTS", "21"),
            ("TASKBRIDGE_MAX_ATTEMPTS", "many"),
            ("TASKBRIDGE_BATCH_SIZE", "101"),
            ("TASKBRIDGE_BATCH_SIZE", "0"),
        ],
    )
    def test_out_of_range_numbers(self, creds_env, key, value):
        creds_env.setenv(key, value)
        with pytest.raises(ValueError, match=f"Invalid {key} '{value}'"):
            load_config()


class TestYamlFallbacks:
    FALLBACKS = {
        "notion_token": "yaml_notion",
        "database_id": DB_ID,
        "todoist_token": "yaml_todoist",
        "project": "Yaml Project",
        "direction": "a-to-b",
        "profile": "home",
        "state_dir": "/var/lib/taskbridge",
        "conflict_strategy": "b-wins",
        "max_attempts": 9,
        "max_batch_size": 50,
        "interval_minutes": 5,
    }

    def test_yaml_used_when_env_unset(self, clean_env):
        config = load_config(yaml_fallbacks=self.FALLBACKS)

        assert config.notion_token == "yaml_notion"
        assert config.todoist_token == "yaml_todoist"
        assert config.project == "Yaml Project"
        assert config.direction == "a-to-b"
        assert config.profile == "home"
        assert config.state_dir == "/var/lib/taskbridge"
        assert config.conflict_strategy == "b-wins"
        assert config.max_attempts == 9
        assert config.max_batch_size == 50
        assert config.interval_minutes == 5

    def test_env_beats_yaml(self, creds_env):
        creds_env.setenv("TASKBRIDGE_BATCH_SIZE", "10")

        config = load_config(yaml_fallbacks=self.FALLBACKS)

        assert config.notion_token == "secret_notion"
        assert config.todoist_token == "todoist-token"
        assert config.max_batch_size == 10
        assert config.max_attempts == 9
