"""Tests for the unified config schema and the Config adapter."""

import pytest
from pydantic import ValidationError

from taskbridge.config_schema import (
    LoggingConfig,
    NotionConfig,
    SyncConfig,
    TodoistConfig,
    UnifiedConfig,
    build_config,
    to_legacy_config,
)


class TestUnifiedConfig:
    def test_zero_config_defaults(self):
        config = UnifiedConfig()

        assert config.notion.token is None
        assert config.notion.due_property == "Do Date"
        assert config.notion.status_type == "status"
        assert config.notion.priority_names["high"] == "🟠 High"
        assert config.todoist.project == "Notion Tasks"
        assert config.sync.direction == "two-way"
        assert config.sync.conflict_strategy == "latest-wins"
        assert config.sync.max_batch_size == 100
        assert config.logging.level == "INFO"
        assert config.logging.file is None

    def test_full_config(self):
        config = UnifiedConfig(
            notion={
                "token": "secret_x",
                "database_id": "db",
                "status_type": "checkbox",
                "status_property": "Done",
                "tags_property": None,
            },
            todoist={"token": "t", "project": "Errands"},
            sync={"direction": "b-to-a", "interval_minutes": 60},
            logging={"level": "DEBUG", "file": "/tmp/tb.log"},
        )

        assert config.notion.status_type == "checkbox"
        assert config.notion.tags_property is None
        assert config.todoist.project == "Errands"
        assert config.sync.direction == "b-to-a"
        assert config.sync.interval_minutes == 60
        assert config.logging.file == "/tmp/tb.log"

    def test_frozen(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.sync = SyncConfig()


class TestSectionValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"direction": "sideways"},
            {"conflict_strategy": "newest"},
            {"max_attempts": 0},
            {"max_attempts": 21},
            {"max_batch_size": 101},
            {"interval_minutes": 0},
        ],
    )
    def test_sync_rejects(self, kwargs):
        with pytest.raises(ValidationError):
            SyncConfig(**kwargs)

    def test_notion_status_type(self):
        with pytest.raises(ValidationError):
            NotionConfig(status_type="multi_select")

    def test_negative_rate(self):
        with pytest.raises(ValidationError):
            TodoistConfig(requests_per_second=-1)

    def test_logging_defaults(self):
        assert LoggingConfig().level == "INFO"


class TestBuildConfig:
    def test_empty(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        config = build_config({"todoist": {"project": "Home"}})

        assert config.todoist.project == "Home"
        assert config.notion == NotionConfig()

    def test_invalid_section(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"direction": "nowhere"}})


class TestToLegacyConfig:
    def test_values_copied(self):
        unified = build_config(
            {
                "notion": {"token": "n", "database_id": "db"},
                "todoist": {"token": "t", "project": "Home"},
                "sync": {
                    "profile": "home",
                    "conflict_strategy": "a-wins",
                    "max_attempts": 2,
                    "max_batch_size": 40,
                    "interval_minutes": 30,
                    "state_dir": "state",
                },
            }
        )

        config = to_legacy_config(unified)

        assert config.notion_token == "n"
        assert config.database_id == "db"
        assert config.todoist_token == "t"
        assert config.project == "Home"
        assert config.profile == "home"
        assert config.conflict_strategy == "a-wins"
        assert config.max_attempts == 2
        assert config.max_batch_size == 40
        assert config.interval_minutes == 30
        assert config.state_dir == "state"

    def test_missing_credentials_become_empty(self):
        config = to_legacy_config(UnifiedConfig())

        assert config.notion_token == ""
        assert config.database_id == ""
        assert config.todoist_token == ""

    def test_cli_overrides_win(self):
        unified = build_config({"todoist": {"project": "Home"}})

        config = to_legacy_config(
            unified,
            cli_overrides={
                "project": "Work",
                "direction": "a-to-b",
                "profile": "work",
                "database_id": None,
            },
        )

        assert config.project == "Work"
        assert config.direction == "a-to-b"
        assert config.profile == "work"
        assert config.database_id == ""
