"""Unit tests for the built-in workflow tasks."""

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from taskvars.config import TaskConfig
from taskvars.navigation import is_xml
from taskvars.store import MissingVariablePolicy, VariableStore
from taskvars.tasks import (
    BaseTask,
    IfTask,
    JsonFileTask,
    ParallelTask,
    SetTask,
    StoredProcedureTask,
    TaskRegistry,
    TaskResult,
    TaskRuntime,
    VariablesTask,
)


def make_task(
    task_type: str,
    task_id: str = "1",
    scope: Optional[str] = None,
    tasks: Optional[List[TaskConfig]] = None,
    on_error: str = "stop",
    **settings: Any,
) -> TaskConfig:
    return TaskConfig(
        id=task_id,
        type=task_type,
        scope=scope,
        on_error=on_error,
        settings=settings,
        tasks=tasks,
    )


@pytest.fixture
def runtime(tmp_path: Path) -> TaskRuntime:
    return TaskRuntime(base_path=tmp_path)


class TestTaskRegistry:
    """Tests for TaskRegistry."""

    def test_builtins_registered(self) -> None:
        assert set(TaskRegistry.available()) >= {
            "set",
            "variables",
            "if",
            "json_file",
            "stored_procedure",
            "parallel",
        }

    def test_get_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown task type: nope"):
            TaskRegistry.get("nope")

    def test_register_custom(self) -> None:
        class EchoTask(BaseTask):
            @property
            def name(self) -> str:
                return "echo_test"

            def validate(self, task: TaskConfig) -> None:
                pass

            def execute(self, task, store, runtime) -> TaskResult:
                return TaskResult(success=True, output="echo")

        TaskRegistry.register(EchoTask())
        try:
            assert TaskRegistry.get("echo_test").name == "echo_test"
        finally:
            TaskRegistry._tasks.pop("echo_test", None)


class TestTaskRuntime:
    """Tests for TaskRuntime helpers."""

    def test_connect_unknown(self, runtime: TaskRuntime) -> None:
        with pytest.raises(ValueError, match="Unknown connection: main. Available: none"):
            runtime.connect("main")

    def test_connect_uses_factory(self, runtime: TaskRuntime) -> None:
        connection = MagicMock()
        runtime.connections["main"] = lambda: connection
        assert runtime.connect("main") is connection

    def test_resolve_path(self, runtime: TaskRuntime, tmp_path: Path) -> None:
        assert runtime.resolve_path("data.json") == tmp_path / "data.json"
        assert runtime.resolve_path("/abs/data.json") == Path("/abs/data.json")


class TestSetTask:
    """Tests for SetTask."""

    def test_validate_requires_var_and_value(self) -> None:
        with pytest.raises(ValueError, match="'var'"):
            SetTask().validate(make_task("set", value="x"))
        with pytest.raises(ValueError, match="'value'"):
            SetTask().validate(make_task("set", var="A"))

    def test_validate_format(self) -> None:
        with pytest.raises(ValueError, match="Invalid format"):
            SetTask().validate(make_task("set", var="A", value="x", format="csv"))

    def test_set_under_task_scope(self, store: VariableStore, runtime: TaskRuntime) -> None:
        store.set("Env.Region", "eu")
        result = SetTask().execute(
            make_task("set", var="Greeting", value="hi ${Env.Region}"), store, runtime
        )
        assert result.success
        assert result.output == "Set Task1.Greeting"
        assert store.get("Task1.Greeting") == "hi eu"

    def test_set_explicit_name(self, store: VariableStore, runtime: TaskRuntime) -> None:
        SetTask().execute(make_task("set", var="Shared.Limit", value=10), store, runtime)
        assert store.get("Shared.Limit") == 10

    def test_set_json(self, store: VariableStore, runtime: TaskRuntime) -> None:
        store.set("Env.Id", 7)
        task = make_task("set", scope="Req", var="Body", value='{"id": ${Env.Id}}', format="json")
        SetTask().execute(task, store, runtime)
        assert store.get("${Req.Body.id}") == 7

    def test_set_xml(self, store: VariableStore, runtime: TaskRuntime) -> None:
        task = make_task("set", var="Xml", value="<r><a>1</a><a>2</a></r>", format="xml")
        SetTask().execute(task, store, runtime)
        assert is_xml(store.get("Task1.Xml"))
        assert store.get("Task1.Xml[//a]") == ["1", "2"]

    def test_set_invalid_json(self, store: VariableStore, runtime: TaskRuntime) -> None:
        task = make_task("set", var="Body", value="{nope", format="json")
        result = SetTask().execute(task, store, runtime)
        assert not result.success
        assert "Cannot parse json" in result.error


class TestVariablesTask:
    """Tests for VariablesTask."""

    @pytest.mark.parametrize(
        "settings,message",
        [
            ({}, "requires 'action'"),
            ({"action": "drop"}, "Invalid action"),
            ({"action": "remove"}, "'names' list"),
            ({"action": "export"}, "'file'"),
        ],
    )
    def test_validate(self, settings: Dict[str, Any], message: str) -> None:
        with pytest.raises(ValueError, match=message):
            VariablesTask().validate(make_task("variables", **settings))

    def test_remove(self, store: VariableStore, runtime: TaskRuntime) -> None:
        store.update({"Task1.A": 1, "Task1.B": 2})
        task = make_task("variables", action="remove", names=["Task1.A", "Task1.Z"])
        result = VariablesTask().execute(task, store, runtime)
        assert result.output == "Removed 1 variable(s): Task1.A"
        assert store.names() == ["Task1.B"]

    def test_clear(self, store: VariableStore, runtime: TaskRuntime) -> None:
        store.update({"Task1.A": 1, "Task1.B": 2})
        result = VariablesTask().execute(make_task("variables", action="clear"), store, runtime)
        assert result.output == "Cleared 2 variable(s)"
        assert len(store) == 0

    def test_export(self, store: VariableStore, runtime: TaskRuntime, tmp_path: Path) -> None:
        store.update({"Task1.A": 1, "Task1.When": "x"})
        store.set("Task1.Obj", object())
        task = make_task("variables", action="export", file="vars-${Task1.When}.json")
        result = VariablesTask().execute(task, store, runtime)

        assert result.success
        data = json.loads((tmp_path / "vars-x.json").read_text())
        assert data["Task1.A"] == 1
        assert data["Task1.Obj"].startswith("<object object")


class TestIfTask:
    """Tests for IfTask."""

    @pytest.fixture
    def groups(self) -> List[Dict[str, Any]]:
        return [
            {
                "conditions": [
                    {"first_value": "${Task1.Code}", "operator": "equals", "second_value": "200"}
                ]
            }
        ]

    def test_validate_requires_groups(self) -> None:
        with pytest.raises(ValueError, match="'groups'"):
            IfTask().validate(make_task("if"))

    def test_validate_bad_operator(self) -> None:
        task = make_task("if", groups=[{"conditions": [{"first_value": "a", "operator": "gt"}]}])
        with pytest.raises(ValueError, match="Unknown operator"):
            IfTask().validate(task)

    def test_true_branch(self, store: VariableStore, runtime: TaskRuntime, groups) -> None:
        store.set("Task1.Code", 200)
        task = make_task("if", task_id="check", groups=groups, on_true="ok", on_false="retry")
        result = IfTask().execute(task, store, runtime)

        assert result.success
        assert result.goto_task == "ok"
        assert store.get("Taskcheck.Result") is True
        assert result.output.startswith("true")

    def test_false_branch_without_target(
        self, store: VariableStore, runtime: TaskRuntime, groups
    ) -> None:
        store.set("Task1.Code", 500)
        result = IfTask().execute(make_task("if", scope="Check", groups=groups), store, runtime)

        assert result.goto_task is None
        assert store.get("Check.Result") is False


class TestJsonFileTask:
    """Tests for JsonFileTask."""

    @pytest.fixture
    def data_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "orders.json"
        path.write_text(json.dumps({"orders": [{"id": 1, "total": 9.5}, {"id": 2, "total": 3}]}))
        return path

    def test_validate(self) -> None:
        with pytest.raises(ValueError, match="'file'"):
            JsonFileTask().validate(make_task("json_file"))
        with pytest.raises(ValueError, match="'columns' must be a list"):
            JsonFileTask().validate(make_task("json_file", file="a.json", columns="id"))
        with pytest.raises(ValueError, match="keep_document"):
            JsonFileTask().validate(
                make_task("json_file", file="a.jsonl", jsonl=True, keep_document=True)
            )
        with pytest.raises(ValueError, match="batch_size"):
            JsonFileTask().validate(make_task("json_file", file="a.json", batch_size=0))

    def test_reads_rows(self, store: VariableStore, runtime: TaskRuntime, data_file: Path) -> None:
        store.set("Env.Name", "orders")
        task = make_task(
            "json_file",
            scope="Orders",
            file="${Env.Name}.json",
            json_array_path="orders",
            columns=["id"],
            keep_document=True,
        )
        result = JsonFileTask().execute(task, store, runtime)

        assert result.success
        assert result.output == "Read 2 row(s) into Orders.Rows"
        assert store.get("Orders.Rows[1].id") == "2"
        assert store.get("Orders.Document.orders[0].total") == 9.5

    def test_custom_output(self, store: VariableStore, runtime: TaskRuntime, data_file: Path) -> None:
        task = make_task("json_file", file=str(data_file), json_array_path="orders", output="Items")
        JsonFileTask().execute(task, store, runtime)
        assert store.get("Task1.Items[0].total") == 9.5

    def test_missing_file(self, store: VariableStore, runtime: TaskRuntime) -> None:
        result = JsonFileTask().execute(make_task("json_file", file="absent.json"), store, runtime)
        assert not result.success
        assert "File not found" in result.error

    def test_invalid_json(self, store: VariableStore, runtime: TaskRuntime, tmp_path: Path) -> None:
        (tmp_path / "bad.json").write_text("{oops")
        result = JsonFileTask().execute(make_task("json_file", file="bad.json"), store, runtime)
        assert not result.success
        assert "Failed to read" in result.error


class TestStoredProcedureTask:
    """Tests for StoredProcedureTask."""

    @pytest.fixture
    def connection(self) -> MagicMock:
        cursor = MagicMock()
        cursor.description = [("ID", None)]
        cursor.fetchall.return_value = [(5,)]
        cursor.rowcount = -1
        cursor.nextset.return_value = None
        cursor.callproc.return_value = ["eu", "OK"]

        connection = MagicMock()
        connection.cursor.return_value = cursor
        return connection

    @pytest.fixture
    def task(self) -> TaskConfig:
        return make_task(
            "stored_procedure",
            scope="Proc",
            procedure="load_orders",
            schema="app",
            connection="main",
            params=[
                {"name": "Region", "direction": "IN", "value": "${Env.Region}"},
                {"name": "@P_RESPONSECODE", "direction": "OUT", "datatype": "VARCHAR"},
            ],
        )

    def test_validate(self) -> None:
        with pytest.raises(ValueError, match="'procedure'"):
            StoredProcedureTask().validate(make_task("stored_procedure", connection="main"))
        with pytest.raises(ValueError, match="'connection'"):
            StoredProcedureTask().validate(make_task("stored_procedure", procedure="p"))
        with pytest.raises(ValueError, match="Unknown param type"):
            StoredProcedureTask().validate(
                make_task(
                    "stored_procedure",
                    procedure="p",
                    connection="main",
                    params=[{"name": "x", "direction": "sideways"}],
                )
            )

    def test_execute_and_publish(
        self, store: VariableStore, runtime: TaskRuntime, connection: MagicMock, task: TaskConfig
    ) -> None:
        store.set("Env.Region", "eu")
        runtime.connections["main"] = lambda: connection

        result = StoredProcedureTask().execute(task, store, runtime)

        assert result.success, result.error
        connection.cursor.return_value.callproc.assert_called_once_with(
            "app.load_orders", ["eu", None]
        )
        connection.commit.assert_called_once()
        connection.close.assert_called_once()
        assert store.get("Proc.ResponseCode") == "OK"
        assert store.get("${Proc.ResultSet[0][0].ID}") == 5
        assert store.get("Proc.UpdateCount") == 0

    def test_no_commit(
        self, store: VariableStore, runtime: TaskRuntime, connection: MagicMock, task: TaskConfig
    ) -> None:
        task.settings["commit"] = False
        runtime.connections["main"] = lambda: connection
        StoredProcedureTask().execute(task, store, runtime)
        connection.commit.assert_not_called()

    def test_failure_rolls_back_and_closes(
        self, store: VariableStore, runtime: TaskRuntime, connection: MagicMock, task: TaskConfig
    ) -> None:
        connection.cursor.return_value.callproc.side_effect = RuntimeError("ORA-00942")
        runtime.connections["main"] = lambda: connection

        result = StoredProcedureTask().execute(task, store, runtime)

        assert not result.success
        assert "ORA-00942" in result.error
        connection.rollback.assert_called_once()
        connection.close.assert_called_once()
        assert not store.has("Proc", "ResultSet")

    def test_unknown_connection(
        self, store: VariableStore, runtime: TaskRuntime, task: TaskConfig
    ) -> None:
        result = StoredProcedureTask().execute(task, store, runtime)
        assert not result.success
        assert "Unknown connection: main" in result.error

    def test_connection_factory_error(
        self, store: VariableStore, runtime: TaskRuntime, task: TaskConfig
    ) -> None:
        def refuse():
            raise OSError("refused")

        runtime.connections["main"] = refuse
        result = StoredProcedureTask().execute(task, store, runtime)
        assert result.error == "Connection failed: refused"

    def test_throw_policy_surfaces_missing_param_variable(
        self, runtime: TaskRuntime, task: TaskConfig
    ) -> None:
        store = VariableStore(MissingVariablePolicy.THROW_ERROR)
        with pytest.raises(KeyError):
            StoredProcedureTask().execute(task, store, runtime)


class TestParallelTask:
    """Tests for ParallelTask."""

    def test_validate_requires_nested(self) -> None:
        with pytest.raises(ValueError, match="non-empty 'tasks'"):
            ParallelTask().validate(make_task("parallel"))

    def test_requires_runner(self, store: VariableStore, runtime: TaskRuntime) -> None:
        task = make_task("parallel", tasks=[make_task("set", var="A", value=1)])
        result = ParallelTask().execute(task, store, runtime)
        assert not result.success

    def test_runs_all_nested(self, store: VariableStore, runtime: TaskRuntime) -> None:
        seen: List[str] = []
        lock = threading.Lock()

        def run_nested(child: TaskConfig) -> TaskResult:
            with lock:
                seen.append(child.id)
            return TaskResult(success=True)

        runtime.run_nested = run_nested
        children = [make_task("set", task_id=str(i)) for i in range(5)]
        result = ParallelTask().execute(make_task("parallel", tasks=children), store, runtime)

        assert result.success
        assert result.output == "Completed 5 task(s)"
        assert sorted(seen) == ["0", "1", "2", "3", "4"]

    def test_failures(self, store: VariableStore, runtime: TaskRuntime) -> None:
        def run_nested(child: TaskConfig) -> TaskResult:
            if child.id == "boom":
                raise RuntimeError("exploded")
            return TaskResult(success=False, error=f"{child.id} failed")

        runtime.run_nested = run_nested
        children = [
            make_task("set", task_id="bad"),
            make_task("set", task_id="soft", on_error="continue"),
            make_task("set", task_id="boom"),
        ]
        result = ParallelTask().execute(make_task("parallel", tasks=children), store, runtime)

        assert not result.success
        assert result.error.startswith("2 of 3 task(s) failed")
        assert "exploded" in result.error
        assert "soft" not in result.error
