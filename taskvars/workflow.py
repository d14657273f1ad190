"""Workflow runner that executes tasks against a shared variable store."""

import dataclasses
import importlib
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import ConnectionConfig, TaskConfig, WorkflowConfig
from .display import get_display
from .errors import VariableStoreError
from .store import PLACEHOLDER_PATTERN, VariableStore
from .stringify import stringify
from .tasks import TaskRegistry, TaskResult, TaskRuntime

logger = logging.getLogger(__name__)

FALSY_WHEN_VALUES = ("", "false", "0", "no", "null", "none")


class TaskError(Exception):
    """Raised when a task fails and on_error is 'stop'."""

    pass


@dataclasses.dataclass
class WorkflowResult:
    """Outcome of a workflow run."""

    success: bool
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    error: Optional[str] = None
    variables: Dict[str, Any] = dataclasses.field(default_factory=dict)


def connection_factory(
    connection: ConnectionConfig, store: VariableStore
) -> Callable[[], Any]:
    """Build a factory opening a DB-API connection from its driver module.

    String options are interpolated when the connection is opened, so
    credentials can come from workflow variables.
    """

    def connect() -> Any:
        module = importlib.import_module(connection.driver)
        options = {
            key: store.resolve_variables(value) if isinstance(value, str) else value
            for key, value in connection.options.items()
        }
        logger.debug("Opening connection %s via %s", connection.name, connection.driver)
        return module.connect(**options)

    return connect


class WorkflowRunner:
    """Orchestrates workflow execution with task dispatch."""

    def __init__(
        self,
        config: WorkflowConfig,
        store: Optional[VariableStore] = None,
        connections: Optional[Dict[str, Callable[[], Any]]] = None,
        base_path: Optional[Path] = None,
    ) -> None:
        self.config = config
        if store is None:
            store = VariableStore(config.missing_variables)
        else:
            store.missing_policy = config.missing_variables
        self.store = store

        skipped = self.store.update(config.vars)
        if skipped:
            logger.warning("Ignored malformed workflow vars: %s", ", ".join(skipped))

        factories = {
            name: connection_factory(conn, self.store)
            for name, conn in config.connections.items()
        }
        factories.update(connections or {})

        self.runtime = TaskRuntime(
            base_path=base_path or Path.cwd(),
            connections=factories,
            max_workers=config.max_workers,
        )

        self.completed_tasks = 0
        self.failed_tasks = 0
        self.skipped_tasks = 0
        self._counter_lock = threading.Lock()

        self._display = get_display()

    def validate(self) -> None:
        """Validate every task (including nested ones) before running.

        Raises:
            TaskError: If a task type is unknown or its settings are invalid
        """

        def check(tasks: List[TaskConfig]) -> None:
            for task in tasks:
                try:
                    TaskRegistry.get(task.type).validate(task)
                except ValueError as e:
                    raise TaskError(f"Task '{task.display_name}': {e}") from e
                if task.tasks:
                    check(task.tasks)

        check(self.config.tasks)

    def _skip_reason(self, task: TaskConfig) -> Optional[str]:
        """Evaluate the task's 'when' guard; a reason means skip."""
        if task.when is None:
            return None

        if isinstance(task.when, bool):
            return None if task.when else "when: false"

        expression = str(task.when).strip()
        single = PLACEHOLDER_PATTERN.fullmatch(expression)
        if single:
            value = stringify(self.store.get(single.group(1)))
        else:
            value = self.store.resolve_variables(expression) or ""

        if value.strip().lower() in FALSY_WHEN_VALUES:
            return f"when: {expression} -> '{value}'"
        return None

    def _count(self, attribute: str) -> None:
        with self._counter_lock:
            setattr(self, attribute, getattr(self, attribute) + 1)

    def _execute_task(self, task: TaskConfig, depth: int = 0) -> TaskResult:
        """Execute one task and report it.

        Store errors raised while interpolating become task failures. The
        on_error policy is applied by the caller.
        """
        reason: Optional[str] = None
        guard_error: Optional[str] = None
        try:
            reason = self._skip_reason(task)
        except VariableStoreError as e:
            guard_error = f"when: {e}"

        if reason:
            self._display.print_task_skipped(task, reason, depth)
            self._count("skipped_tasks")
            logger.info("Skipped task %s (%s)", task.id, reason)
            return TaskResult(success=True, output="skipped")

        self._display.print_task_start(task, depth)
        started = time.time()

        if guard_error:
            result = TaskResult(success=False, error=guard_error)
        else:
            runtime = dataclasses.replace(
                self.runtime,
                run_nested=lambda child: self._execute_task(child, depth + 1),
            )
            try:
                result = TaskRegistry.get(task.type).execute(task, self.store, runtime)
            except VariableStoreError as e:
                result = TaskResult(success=False, error=str(e))

        duration = time.time() - started
        self._display.print_task_result(
            task, result.success, duration, result.output, result.error, depth
        )

        if result.success:
            self._count("completed_tasks")
            logger.info("Task %s done in %.3fs", task.id, duration)
        else:
            self._count("failed_tasks")
            logger.error("Task %s failed: %s", task.id, result.error)

        return result

    def _run_tasks(self) -> None:
        """Run top-level tasks in order with goto support."""
        index_map = {task.id: idx for idx, task in enumerate(self.config.tasks)}

        idx = 0
        total = len(self.config.tasks)

        while idx < total:
            task = self.config.tasks[idx]
            result = self._execute_task(task)

            if not result.success and task.on_error == "stop":
                raise TaskError(
                    f"Task '{task.display_name}' failed: {result.error or 'Task failed'}"
                )

            if result.goto_task:
                if result.goto_task not in index_map:
                    raise TaskError(
                        f"Goto target task '{result.goto_task}' not found. "
                        f"Available tasks: {list(index_map)}"
                    )
                idx = index_map[result.goto_task]
            else:
                idx += 1

    def run(self) -> WorkflowResult:
        """Run the complete workflow and return a summary."""
        self._display.print_header(self.config)
        started = time.time()
        error: Optional[str] = None

        try:
            self.validate()
            self._run_tasks()
        except TaskError as e:
            error = str(e)
            self._display.print_error(error)
        except KeyboardInterrupt:
            error = "interrupted"
            self._display.print_interrupted()
        except Exception as e:
            logger.exception("Unexpected error while running workflow")
            error = f"Unexpected error: {e}"
            self._display.print_error(error)

        result = WorkflowResult(
            success=error is None,
            completed=self.completed_tasks,
            failed=self.failed_tasks,
            skipped=self.skipped_tasks,
            error=error,
            variables=self.store.snapshot(),
        )

        self._display.print_summary(
            result.completed, result.failed, result.skipped, time.time() - started
        )

        if self.config.clear_on_finish:
            self.store.clear()

        return result
