"""Variables task for removing, clearing and exporting stored variables."""

import json
from typing import TYPE_CHECKING, List

from ..stringify import json_default
from .base import BaseTask, TaskResult, TaskRuntime

if TYPE_CHECKING:
    from ..config import TaskConfig
    from ..store import VariableStore


class VariablesTask(BaseTask):
    """Store maintenance operations.

    Supports:
    - action: remove - Remove the listed base variables
    - action: clear - Remove every variable
    - action: export - Save the store to a JSON file (for debugging)
    """

    ACTIONS = ("clear", "export", "remove")

    @property
    def name(self) -> str:
        return "variables"

    def validate(self, task: "TaskConfig") -> None:
        """Validate variables task configuration."""
        action = task.settings.get("action")
        if not action:
            raise ValueError("Variables task requires 'action' field")

        if action not in self.ACTIONS:
            raise ValueError(
                f"Invalid action '{action}'. Valid: {', '.join(self.ACTIONS)}"
            )

        if action == "remove":
            names = task.settings.get("names")
            if not isinstance(names, list):
                raise ValueError("Variables 'remove' action requires a 'names' list")

        elif action == "export":
            if "file" not in task.settings:
                raise ValueError("Variables 'export' action requires 'file' field")

    def execute(
        self,
        task: "TaskConfig",
        store: "VariableStore",
        runtime: TaskRuntime,
    ) -> TaskResult:
        """Execute store operation."""
        action = task.settings["action"]

        if action == "remove":
            removed: List[str] = [
                name for name in task.settings["names"] if store.remove(name)
            ]
            return TaskResult(
                success=True,
                output=f"Removed {len(removed)} variable(s): {', '.join(removed)}",
            )

        if action == "clear":
            count = len(store)
            store.clear()
            return TaskResult(success=True, output=f"Cleared {count} variable(s)")

        file_path = runtime.resolve_path(store.resolve_variables(str(task.settings["file"])))
        export_data = store.snapshot()
        try:
            with open(file_path, "w") as f:
                json.dump(export_data, f, indent=2, default=json_default)
        except OSError as e:
            return TaskResult(success=False, error=f"Failed to export variables: {e}")

        return TaskResult(
            success=True,
            output=f"Exported {len(export_data)} variable(s) to {file_path}",
        )
