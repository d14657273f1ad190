"""JSON file task: reads JSON/JSONL records into the variable store."""

import json
from typing import TYPE_CHECKING

from ..readers import JsonFileReader, JsonFileSettings
from .base import BaseTask, TaskResult, TaskRuntime

if TYPE_CHECKING:
    from ..config import TaskConfig
    from ..store import VariableStore


class JsonFileTask(BaseTask):
    """Read a JSON or JSONL file.

    Rows are stored under <Scope>.<output> (default 'Rows'). With
    keep_document, the parsed file is also stored as <Scope>.Document
    (not available for JSONL files).
    """

    DEFAULT_BATCH_SIZE = 1000

    @property
    def name(self) -> str:
        return "json_file"

    def validate(self, task: "TaskConfig") -> None:
        """Validate json_file task configuration."""
        if not task.settings.get("file"):
            raise ValueError("JSON file task requires 'file' field")

        columns = task.settings.get("columns")
        if columns is not None and not isinstance(columns, list):
            raise ValueError("JSON file task 'columns' must be a list")

        if task.settings.get("keep_document") and task.settings.get("jsonl"):
            raise ValueError("JSON file task cannot keep_document for JSONL files")

        batch_size = task.settings.get("batch_size", self.DEFAULT_BATCH_SIZE)
        if not isinstance(batch_size, int) or batch_size < 1:
            raise ValueError("JSON file task 'batch_size' must be a positive integer")

    def execute(
        self,
        task: "TaskConfig",
        store: "VariableStore",
        runtime: TaskRuntime,
    ) -> TaskResult:
        """Read all records and store them."""
        path = runtime.resolve_path(store.resolve_variables(str(task.settings["file"])))
        settings = JsonFileSettings(
            file_path=path,
            jsonl=bool(task.settings.get("jsonl", False)),
            json_array_path=task.settings.get("json_array_path"),
            columns=task.settings.get("columns"),
        )
        batch_size = task.settings.get("batch_size", self.DEFAULT_BATCH_SIZE)
        output = str(task.settings.get("output", "Rows"))

        try:
            with JsonFileReader(settings) as reader:
                rows = reader.read_all(batch_size)

            if task.settings.get("keep_document"):
                with open(path, "r", encoding=settings.encoding) as f:
                    store.set_scoped(task.effective_scope, "Document", json.load(f))
        except FileNotFoundError:
            return TaskResult(success=False, error=f"File not found: {path}")
        except (OSError, ValueError) as e:
            return TaskResult(success=False, error=f"Failed to read {path}: {e}")

        store.set_scoped(task.effective_scope, output, rows)
        return TaskResult(
            success=True,
            output=f"Read {len(rows)} row(s) into {task.effective_scope}.{output}",
        )
