"""Stored procedure task: calls a procedure over a named connection."""

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from ..procedures import (
    ProcedureParam,
    StoredProcedureSettings,
    executor_for_type,
    publish_result,
)
from .base import BaseTask, TaskResult, TaskRuntime

if TYPE_CHECKING:
    from ..config import TaskConfig
    from ..store import VariableStore

logger = logging.getLogger(__name__)


class StoredProcedureTask(BaseTask):
    """Execute a stored procedure and publish its results.

    OUT parameters land under <Scope>.<ParamName> (and their alias),
    result sets under <Scope>.ResultSet and the summed DML row count
    under <Scope>.UpdateCount.
    """

    @property
    def name(self) -> str:
        return "stored_procedure"

    def validate(self, task: "TaskConfig") -> None:
        """Validate stored_procedure task configuration."""
        if not task.settings.get("procedure"):
            raise ValueError("Stored procedure task requires 'procedure' field")
        if not task.settings.get("connection"):
            raise ValueError("Stored procedure task requires 'connection' field")

        params = task.settings.get("params", [])
        if not isinstance(params, list):
            raise ValueError("Stored procedure task 'params' must be a list")
        for param in params:
            if not isinstance(param, dict):
                raise ValueError("Each stored procedure param must be a dictionary")
            ProcedureParam.from_dict(param)

    def _build_settings(
        self, task: "TaskConfig", store: "VariableStore"
    ) -> StoredProcedureSettings:
        params: List[ProcedureParam] = []
        for raw in task.settings.get("params", []):
            data: Dict[str, Any] = dict(raw)
            if isinstance(data.get("value"), str):
                data["value"] = store.resolve_variables(data["value"])
            params.append(ProcedureParam.from_dict(data))

        return StoredProcedureSettings(
            name=store.resolve_variables(str(task.settings["procedure"])),
            schema=task.settings.get("schema"),
            database_type=task.settings.get("database_type"),
            params=params,
        )

    def execute(
        self,
        task: "TaskConfig",
        store: "VariableStore",
        runtime: TaskRuntime,
    ) -> TaskResult:
        """Call the procedure and store OUT values and result sets."""
        try:
            settings = self._build_settings(task, store)
        except ValueError as e:
            return TaskResult(success=False, error=str(e))

        executor = executor_for_type(settings.database_type)
        commit = task.settings.get("commit", True)

        try:
            connection = runtime.connect(str(task.settings["connection"]))
        except ValueError as e:
            return TaskResult(success=False, error=str(e))
        except Exception as e:
            return TaskResult(success=False, error=f"Connection failed: {e}")

        try:
            result = executor.execute(connection, settings)
            if commit:
                connection.commit()
        except Exception as e:
            logger.error("SP failed sp=%s: %s", settings.qualified_name, e)
            rollback = getattr(connection, "rollback", None)
            if rollback is not None:
                rollback()
            return TaskResult(success=False, error=f"Procedure {settings.qualified_name} failed: {e}")
        finally:
            connection.close()

        publish_result(store, task.effective_scope, result)

        return TaskResult(
            success=True,
            output=(
                f"{settings.qualified_name}: {len(result.result_sets)} result set(s), "
                f"{len(result.out_params)} out value(s), update count {result.update_count}"
            ),
        )
