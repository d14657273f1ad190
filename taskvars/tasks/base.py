"""Base task abstraction for workflow tasks."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

if TYPE_CHECKING:
    from ..config import TaskConfig
    from ..store import VariableStore


@dataclass
class TaskResult:
    """Result of task execution."""

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    goto_task: Optional[str] = None


@dataclass
class TaskRuntime:
    """Services the runner shares with every task.

    Attributes:
        base_path: Directory relative file paths are resolved against
        connections: Connection name -> zero-argument factory returning an
            open DB-API connection
        max_workers: Thread pool size for parallel tasks (None = default)
        run_nested: Callback executing a nested task (set by the runner)
    """

    base_path: Path = field(default_factory=Path.cwd)
    connections: Dict[str, Callable[[], Any]] = field(default_factory=dict)
    max_workers: Optional[int] = None
    run_nested: Optional[Callable[["TaskConfig"], TaskResult]] = None

    def connect(self, name: str) -> Any:
        """Open a connection by name.

        Raises:
            ValueError: If no connection with that name is configured
        """
        if name not in self.connections:
            available = ", ".join(self.connections) or "none"
            raise ValueError(f"Unknown connection: {name}. Available: {available}")
        return self.connections[name]()

    def resolve_path(self, path: str) -> Path:
        resolved = Path(path)
        if not resolved.is_absolute():
            resolved = self.base_path / resolved
        return resolved


class BaseTask(ABC):
    """Abstract base class for all workflow tasks.

    To add a new task type:
    1. Create a new class inheriting from BaseTask
    2. Implement the name property, execute method, and validate method
    3. Register the task in tasks/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Task type used in YAML (e.g., 'set', 'json_file')."""
        pass

    @abstractmethod
    def validate(self, task: "TaskConfig") -> None:
        """Validate task configuration.

        Args:
            task: Parsed task configuration

        Raises:
            ValueError: If configuration is invalid
        """
        pass

    @abstractmethod
    def execute(
        self,
        task: "TaskConfig",
        store: "VariableStore",
        runtime: TaskRuntime,
    ) -> TaskResult:
        """Execute the task, writing its outputs under task.effective_scope.

        Args:
            task: Parsed task configuration
            store: Shared variable store
            runtime: Connections, paths and nested execution

        Returns:
            TaskResult with success status and optional output/error
        """
        pass
