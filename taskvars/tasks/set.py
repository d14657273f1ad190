"""Set task implementation for variable assignment."""

from typing import TYPE_CHECKING, Any

from ..store import parse_json, parse_xml
from .base import BaseTask, TaskResult, TaskRuntime

if TYPE_CHECKING:
    from ..config import TaskConfig
    from ..store import VariableStore


class SetTask(BaseTask):
    """Store a value in the variable store.

    The value is interpolated when it is a string. With format 'json' or
    'xml' the interpolated text is parsed first, so later tasks can drill
    into it. A plain 'var' is stored under the task scope; a dotted
    'Scope.Key' var names the target explicitly.
    """

    FORMATS = ("text", "json", "xml")

    @property
    def name(self) -> str:
        return "set"

    def validate(self, task: "TaskConfig") -> None:
        """Validate set task configuration."""
        if not task.settings.get("var"):
            raise ValueError("Set task requires 'var' field")
        if "value" not in task.settings:
            raise ValueError("Set task requires 'value' field")

        fmt = task.settings.get("format", "text")
        if fmt not in self.FORMATS:
            raise ValueError(
                f"Invalid format '{fmt}'. Valid: {', '.join(self.FORMATS)}"
            )

    def execute(
        self,
        task: "TaskConfig",
        store: "VariableStore",
        runtime: TaskRuntime,
    ) -> TaskResult:
        """Execute variable assignment."""
        var_name = str(task.settings["var"])
        raw_value = task.settings["value"]
        fmt = task.settings.get("format", "text")

        value: Any = raw_value
        if isinstance(raw_value, str):
            value = store.resolve_variables(raw_value)

        try:
            if fmt == "json" and isinstance(value, str):
                value = parse_json(value)
            elif fmt == "xml":
                value = parse_xml(str(value))
        except ValueError as e:
            return TaskResult(success=False, error=f"Cannot parse {fmt} value: {e}")

        if "." in var_name or "[" in var_name:
            store.set(var_name, value)
            target = var_name
        else:
            store.set_scoped(task.effective_scope, var_name, value)
            target = f"{task.effective_scope}.{var_name}"

        return TaskResult(success=True, output=f"Set {target}")
