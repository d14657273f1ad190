"""IF task: evaluates grouped conditions and optionally branches."""

from typing import TYPE_CHECKING

from ..conditions import ConditionError, ConditionEvaluator, IfSettings
from .base import BaseTask, TaskResult, TaskRuntime

if TYPE_CHECKING:
    from ..config import TaskConfig
    from ..store import VariableStore


class IfTask(BaseTask):
    """Evaluate an IF condition and store the outcome as <Scope>.Result.

    When 'on_true' / 'on_false' name a task id, execution jumps there.
    """

    @property
    def name(self) -> str:
        return "if"

    def validate(self, task: "TaskConfig") -> None:
        """Validate if task configuration."""
        if "groups" not in task.settings:
            raise ValueError("If task requires 'groups' field")
        try:
            IfSettings.from_dict(task.settings)
        except ConditionError as e:
            raise ValueError(str(e)) from e

    def execute(
        self,
        task: "TaskConfig",
        store: "VariableStore",
        runtime: TaskRuntime,
    ) -> TaskResult:
        """Evaluate the condition and record the result."""
        try:
            settings = IfSettings.from_dict(task.settings)
            result = ConditionEvaluator(store).evaluate(settings)
        except ConditionError as e:
            return TaskResult(success=False, error=f"Condition error: {e}")

        store.set_scoped(task.effective_scope, "Result", result.satisfied)

        branch = "on_true" if result.satisfied else "on_false"
        target = task.settings.get(branch)

        return TaskResult(
            success=True,
            output=f"{str(result.satisfied).lower()}: {result.reason}",
            goto_task=str(target) if target is not None else None,
        )
