"""Configuration dataclasses and YAML loading for task workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigError
from .store import MissingVariablePolicy

WORKFLOW_TYPE = "task-workflow"
WORKFLOW_VERSION = 1


@dataclass
class ConnectionConfig:
    """A named DB-API connection.

    driver is the importable DB-API module (e.g. 'pymysql', 'oracledb');
    options are passed to its connect() function.
    """

    name: str
    driver: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TaskConfig:
    """A single workflow task.

    Fields shared by every task type are explicit; everything else stays in
    'settings' and is validated by the task implementation.
    """

    id: str
    type: str
    name: Optional[str] = None
    scope: Optional[str] = None
    when: Optional[str] = None
    on_error: str = "stop"
    settings: Dict[str, Any] = field(default_factory=dict)
    tasks: Optional[List[TaskConfig]] = None  # Nested tasks for parallel

    @property
    def effective_scope(self) -> str:
        """Scope the task writes its outputs under (Task<id> by default)."""
        return self.scope or f"Task{self.id}"

    @property
    def display_name(self) -> str:
        return self.name or f"{self.type} #{self.id}"


@dataclass
class WorkflowConfig:
    """Complete workflow configuration."""

    name: str
    tasks: List[TaskConfig]
    missing_variables: MissingVariablePolicy = MissingVariablePolicy.KEEP_AS_IS
    max_workers: Optional[int] = None
    clear_on_finish: bool = False
    connections: Dict[str, ConnectionConfig] = field(default_factory=dict)
    vars: Dict[str, Any] = field(default_factory=dict)


_TASK_FIELDS = {"id", "type", "name", "scope", "when", "on_error", "tasks"}


def _parse_task(task_data: Dict[str, Any], position: str) -> TaskConfig:
    """Parse a task dictionary into a TaskConfig.

    Handles recursive parsing for nested tasks (parallel).
    """
    if not isinstance(task_data, dict):
        raise ConfigError(f"Task {position} must be a dictionary")
    if "type" not in task_data:
        raise ConfigError(f"Task {position} requires 'type' field")

    on_error = task_data.get("on_error", "stop")
    if on_error not in ("stop", "continue"):
        raise ConfigError(
            f"Task {position}: invalid on_error '{on_error}'. Valid: continue, stop"
        )

    nested: Optional[List[TaskConfig]] = None
    if task_data.get("tasks"):
        nested = [
            _parse_task(t, f"{position}_{i + 1}")
            for i, t in enumerate(task_data["tasks"])
        ]

    return TaskConfig(
        id=str(task_data.get("id", position)),
        type=str(task_data["type"]),
        name=task_data.get("name"),
        scope=task_data.get("scope"),
        when=task_data.get("when"),
        on_error=on_error,
        settings={k: v for k, v in task_data.items() if k not in _TASK_FIELDS},
        tasks=nested,
    )


def _parse_connections(data: Dict[str, Any]) -> Dict[str, ConnectionConfig]:
    connections: Dict[str, ConnectionConfig] = {}
    for name, conn_data in (data or {}).items():
        if not isinstance(conn_data, dict) or not conn_data.get("driver"):
            raise ConfigError(f"Connection '{name}' requires 'driver' field")
        connections[name] = ConnectionConfig(
            name=name,
            driver=conn_data["driver"],
            options=conn_data.get("options") or {},
        )
    return connections


def parse_config(data: Dict[str, Any]) -> WorkflowConfig:
    """Build a WorkflowConfig from an already-loaded YAML dictionary.

    Raises:
        ConfigError: If any section is invalid
    """
    tasks_data = data.get("tasks") or []
    if not isinstance(tasks_data, list):
        raise ConfigError("'tasks' must be a list")
    tasks = [_parse_task(t, str(i + 1)) for i, t in enumerate(tasks_data)]

    ids = [t.id for t in tasks]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate task ids: {', '.join(duplicates)}")

    try:
        policy = MissingVariablePolicy.parse(data.get("missing_variables", "keep_as_is"))
    except ValueError as e:
        raise ConfigError(str(e)) from e

    variables = data.get("vars") or {}
    if not isinstance(variables, dict):
        raise ConfigError("'vars' must be a dictionary of Scope.Key: value")

    return WorkflowConfig(
        name=data.get("name", "Workflow"),
        tasks=tasks,
        missing_variables=policy,
        max_workers=data.get("max_workers"),
        clear_on_finish=data.get("clear_on_finish", False),
        connections=_parse_connections(data.get("connections") or {}),
        vars=variables,
    )


def load_config(workflow_file: Union[str, Path]) -> WorkflowConfig:
    """Load and parse a workflow YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file is not a valid workflow
    """
    workflow_path = Path(workflow_file)
    is_valid, error = validate_workflow_file(workflow_path)
    if not is_valid:
        if not workflow_path.exists():
            raise FileNotFoundError(f"Workflow file not found at:\n  {workflow_path}")
        raise ConfigError(error)

    with open(workflow_path, "r") as f:
        data = yaml.safe_load(f)

    return parse_config(data)


def validate_workflow_file(file_path: Path) -> tuple[bool, Optional[str]]:
    """Validate that a file is a workflow with the required type and version.

    Args:
        file_path: Path to the workflow file

    Returns:
        Tuple of (is_valid, error_message). If valid, error_message is None.
    """
    if not file_path.exists():
        return False, f"File not found: {file_path}"

    if not file_path.is_file():
        return False, f"Not a file: {file_path}"

    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        return False, f"Invalid YAML: {e}"

    if not isinstance(data, dict):
        return False, "Workflow file must contain a YAML dictionary"

    if data.get("type") != WORKFLOW_TYPE:
        return False, f"Missing or invalid 'type' field (must be '{WORKFLOW_TYPE}')"

    if data.get("version") != WORKFLOW_VERSION:
        return False, f"Missing or invalid 'version' field (must be {WORKFLOW_VERSION})"

    return True, None
