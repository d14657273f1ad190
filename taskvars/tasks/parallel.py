"""Parallel task: runs nested tasks concurrently against the shared store."""

import concurrent.futures
from typing import TYPE_CHECKING, List

from .base import BaseTask, TaskResult, TaskRuntime

if TYPE_CHECKING:
    from ..config import TaskConfig
    from ..store import VariableStore


class ParallelTask(BaseTask):
    """Run the nested 'tasks' list on a thread pool.

    Nested tasks share the variable store. Goto targets returned by
    nested tasks are ignored. The task fails if a nested task with
    on_error 'stop' failed.
    """

    @property
    def name(self) -> str:
        return "parallel"

    def validate(self, task: "TaskConfig") -> None:
        """Validate parallel task configuration."""
        if not task.tasks:
            raise ValueError("Parallel task requires a non-empty 'tasks' list")

    def execute(
        self,
        task: "TaskConfig",
        store: "VariableStore",
        runtime: TaskRuntime,
    ) -> TaskResult:
        """Run nested tasks and wait for all of them."""
        if runtime.run_nested is None:
            return TaskResult(success=False, error="Parallel task requires a runner")

        nested = task.tasks or []
        failures: List[str] = []

        with concurrent.futures.ThreadPoolExecutor(max_workers=runtime.max_workers) as pool:
            futures = {pool.submit(runtime.run_nested, child): child for child in nested}
            for future in concurrent.futures.as_completed(futures):
                child = futures[future]
                try:
                    child_result = future.result()
                except Exception as e:
                    failures.append(f"{child.display_name}: {e}")
                    continue
                if not child_result.success and child.on_error == "stop":
                    failures.append(f"{child.display_name}: {child_result.error}")

        if failures:
            return TaskResult(
                success=False,
                error=f"{len(failures)} of {len(nested)} task(s) failed: " + "; ".join(sorted(failures)),
            )

        return TaskResult(success=True, output=f"Completed {len(nested)} task(s)")
