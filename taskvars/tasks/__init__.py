"""Task registry and exports for workflow tasks."""

from typing import Dict, List

from .base import BaseTask, TaskResult, TaskRuntime
from .if_task import IfTask
from .json_file import JsonFileTask
from .parallel import ParallelTask
from .set import SetTask
from .stored_procedure import StoredProcedureTask
from .variables import VariablesTask


class TaskRegistry:
    """Registry for available workflow tasks.

    Tasks are registered at module load time.
    """

    _tasks: Dict[str, BaseTask] = {}

    @classmethod
    def register(cls, task: BaseTask) -> None:
        """Register a task instance."""
        cls._tasks[task.name] = task

    @classmethod
    def get(cls, name: str) -> BaseTask:
        """Get a task implementation by type name.

        Args:
            name: Task type (e.g., 'set', 'stored_procedure')

        Returns:
            The registered task instance

        Raises:
            ValueError: If task type is not registered
        """
        if name not in cls._tasks:
            available = ", ".join(sorted(cls._tasks))
            raise ValueError(f"Unknown task type: {name}. Available: {available}")
        return cls._tasks[name]

    @classmethod
    def available(cls) -> List[str]:
        """List all registered task types."""
        return list(cls._tasks.keys())


# Auto-register built-in tasks
TaskRegistry.register(SetTask())
TaskRegistry.register(VariablesTask())
TaskRegistry.register(IfTask())
TaskRegistry.register(JsonFileTask())
TaskRegistry.register(StoredProcedureTask())
TaskRegistry.register(ParallelTask())


__all__ = [
    "BaseTask",
    "TaskResult",
    "TaskRuntime",
    "TaskRegistry",
    "SetTask",
    "VariablesTask",
    "IfTask",
    "JsonFileTask",
    "StoredProcedureTask",
    "ParallelTask",
]
