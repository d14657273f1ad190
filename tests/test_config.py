"""Unit tests for taskvars.config workflow loading."""

from pathlib import Path

import pytest

from taskvars.config import (
    TaskConfig,
    load_config,
    parse_config,
    validate_workflow_file,
)
from taskvars.errors import ConfigError
from taskvars.store import MissingVariablePolicy

WORKFLOW_YAML = """
type: task-workflow
version: 1
name: Orders
missing_variables: throw_error
max_workers: 4
clear_on_finish: true
connections:
  main:
    driver: sqlite3
    options:
      database: ":memory:"
vars:
  Env.Region: eu
tasks:
  - id: load
    type: json_file
    file: orders.json
  - id: fanout
    type: parallel
    tasks:
      - type: set
        var: A
        value: "1"
      - id: b
        type: set
        scope: Shared
        var: B
        value: "2"
        on_error: continue
"""


def write_workflow(tmp_path: Path, text: str = WORKFLOW_YAML) -> Path:
    path = tmp_path / "workflow.yml"
    path.write_text(text)
    return path


class TestValidateWorkflowFile:
    """Tests for validate_workflow_file()."""

    def test_valid(self, tmp_path: Path) -> None:
        assert validate_workflow_file(write_workflow(tmp_path)) == (True, None)

    def test_missing_file(self, tmp_path: Path) -> None:
        ok, error = validate_workflow_file(tmp_path / "absent.yml")
        assert not ok
        assert "File not found" in error

    def test_directory(self, tmp_path: Path) -> None:
        ok, error = validate_workflow_file(tmp_path)
        assert not ok
        assert "Not a file" in error

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        ok, error = validate_workflow_file(write_workflow(tmp_path, "a: [unclosed"))
        assert not ok
        assert "Invalid YAML" in error

    def test_not_a_dictionary(self, tmp_path: Path) -> None:
        ok, error = validate_workflow_file(write_workflow(tmp_path, "- a\n- b\n"))
        assert not ok
        assert "dictionary" in error

    def test_wrong_type(self, tmp_path: Path) -> None:
        ok, error = validate_workflow_file(write_workflow(tmp_path, "type: other\nversion: 1\n"))
        assert not ok
        assert "'type'" in error

    def test_wrong_version(self, tmp_path: Path) -> None:
        text = "type: task-workflow\nversion: 2\n"
        ok, error = validate_workflow_file(write_workflow(tmp_path, text))
        assert not ok
        assert "'version'" in error


class TestLoadConfig:
    """Tests for load_config()."""

    def test_load_full_workflow(self, tmp_path: Path) -> None:
        config = load_config(write_workflow(tmp_path))

        assert config.name == "Orders"
        assert config.missing_variables is MissingVariablePolicy.THROW_ERROR
        assert config.max_workers == 4
        assert config.clear_on_finish is True
        assert config.vars == {"Env.Region": "eu"}

        main = config.connections["main"]
        assert main.driver == "sqlite3"
        assert main.options == {"database": ":memory:"}

        load, fanout = config.tasks
        assert load.id == "load"
        assert load.settings == {"file": "orders.json"}
        assert load.effective_scope == "Taskload"

        nested = fanout.tasks
        assert nested[0].id == "2_1"
        assert nested[0].effective_scope == "Task2_1"
        assert nested[1].effective_scope == "Shared"
        assert nested[1].on_error == "continue"

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yml")

    def test_load_invalid_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(write_workflow(tmp_path, "type: other\n"))


class TestParseConfig:
    """Tests for parse_config()."""

    def test_defaults(self) -> None:
        config = parse_config({"tasks": [{"type": "set", "var": "A", "value": 1}]})
        assert config.name == "Workflow"
        assert config.missing_variables is MissingVariablePolicy.KEEP_AS_IS
        assert config.max_workers is None
        assert config.clear_on_finish is False
        assert config.connections == {}
        assert config.tasks[0].id == "1"
        assert config.tasks[0].display_name == "set #1"

    def test_task_requires_type(self) -> None:
        with pytest.raises(ConfigError, match="requires 'type'"):
            parse_config({"tasks": [{"id": "x"}]})

    def test_task_must_be_dict(self) -> None:
        with pytest.raises(ConfigError, match="must be a dictionary"):
            parse_config({"tasks": ["set"]})

    def test_tasks_must_be_list(self) -> None:
        with pytest.raises(ConfigError, match="'tasks' must be a list"):
            parse_config({"tasks": {"type": "set"}})

    def test_invalid_on_error(self) -> None:
        with pytest.raises(ConfigError, match="invalid on_error"):
            parse_config({"tasks": [{"type": "set", "on_error": "retry"}]})

    def test_duplicate_ids(self) -> None:
        with pytest.raises(ConfigError, match="Duplicate task ids: a"):
            parse_config({"tasks": [{"id": "a", "type": "set"}, {"id": "a", "type": "if"}]})

    def test_invalid_policy(self) -> None:
        with pytest.raises(ConfigError, match="Invalid missing variable policy"):
            parse_config({"missing_variables": "explode"})

    def test_vars_must_be_dict(self) -> None:
        with pytest.raises(ConfigError, match="'vars' must be a dictionary"):
            parse_config({"vars": ["Env.A"]})

    def test_connection_requires_driver(self) -> None:
        with pytest.raises(ConfigError, match="requires 'driver'"):
            parse_config({"connections": {"main": {"options": {}}}})

    def test_display_name_prefers_name(self) -> None:
        task = TaskConfig(id="1", type="set", name="Set region")
        assert task.display_name == "Set region"
