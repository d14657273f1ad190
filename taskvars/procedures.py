"""Stored procedure execution over DB-API 2.0 connections.

The executor calls a procedure with cursor.callproc(), collects every result
set it returns, sums update counts and reads OUT/INOUT parameters back from
the parameter sequence callproc() returns. publish_result() then writes the
outcome into a VariableStore under the task's scope:

    Task3.<OutParam>        each OUT/INOUT parameter (and its alias)
    Task3.ResponseBody      mirrored from P_RESPONSEBODY (also header/code)
    Task3.ResultSet         list of result sets; ${Task3.ResultSet[0][0].Name}
    Task3.UpdateCount       summed update count
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

from .store import VariableStore, rows_from_cursor

logger = logging.getLogger(__name__)

DIRECTIONS = ("IN", "OUT", "INOUT")

RESPONSE_MIRRORS = (
    ("P_RESPONSEHEADER", "ResponseHeader"),
    ("P_RESPONSEBODY", "ResponseBody"),
    ("P_RESPONSECODE", "ResponseCode"),
)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid numeric value: {value!r}") from e


def _to_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _build_converters() -> Dict[str, Callable[[Any], Any]]:
    groups = (
        (("VARCHAR", "VARCHAR2", "NVARCHAR", "NVARCHAR2", "CHAR", "NCHAR", "CLOB", "NCLOB"), str),
        (("INT", "INTEGER", "BIGINT"), int),
        (("NUMBER", "NUMERIC", "DECIMAL"), _to_decimal),
        (("FLOAT", "DOUBLE"), float),
        (("BIT", "BOOLEAN"), _to_bool),
        (("DATE",), _to_date),
        (("DATETIME", "TIMESTAMP"), _to_datetime),
    )
    return {name: converter for names, converter in groups for name in names}


# Declared SQL type -> converter applied to configured IN values
_TYPE_CONVERTERS = _build_converters()


def coerce_value(datatype: Optional[str], value: Any) -> Any:
    """Convert a configured parameter value to the Python type for datatype.

    None stays None; unknown datatypes leave the value unchanged.

    Raises:
        ValueError: If the value cannot be converted
    """
    if value is None or not datatype:
        return value
    converter = _TYPE_CONVERTERS.get(datatype.strip().upper())
    if converter is None:
        return value
    return converter(value)


@dataclass
class ProcedureParam:
    """A single stored procedure parameter."""

    name: str
    direction: str = "IN"
    datatype: Optional[str] = None
    value: Any = None
    alias: Optional[str] = None

    def __post_init__(self) -> None:
        self.direction = (self.direction or "IN").strip().upper()
        if self.direction not in DIRECTIONS:
            raise ValueError(
                f"Unknown param type '{self.direction}' for '{self.name}'. "
                f"Valid: {', '.join(DIRECTIONS)}"
            )

    @property
    def is_output(self) -> bool:
        return self.direction in ("OUT", "INOUT")

    @property
    def output_name(self) -> str:
        """Parameter name without a leading @."""
        return normalize_name(self.name)

    @property
    def output_alias(self) -> Optional[str]:
        """Extra name the OUT value is published under, if any."""
        if self.alias and self.alias.strip():
            return self.alias.strip()
        if self.direction == "OUT" and isinstance(self.value, str) and self.value.strip():
            return self.value.strip()
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcedureParam":
        if not data.get("name"):
            raise ValueError("Procedure parameter requires 'name' field")
        return cls(
            name=str(data["name"]),
            direction=data.get("direction") or data.get("type") or "IN",
            datatype=data.get("datatype"),
            value=data.get("value"),
            alias=data.get("alias"),
        )


@dataclass
class StoredProcedureSettings:
    """What to call and with which parameters."""

    name: str
    schema: Optional[str] = None
    database_type: Optional[str] = None
    params: List[ProcedureParam] = field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        if self.schema and self.schema.strip():
            return f"{self.schema.strip()}.{self.name}"
        return self.name


@dataclass
class StoredProcResult:
    """Everything a procedure call produced."""

    out_params: Dict[str, Any] = field(default_factory=dict)
    result_sets: List[List[Dict[str, Any]]] = field(default_factory=list)
    update_count: int = 0


def normalize_name(name: Optional[str]) -> str:
    """Strip a leading @ from a parameter name (@Status -> Status)."""
    if not name:
        return ""
    return name[1:] if name.startswith("@") else name


class GenericStoredProcedureExecutor:
    """Executes stored procedures through any DB-API 2.0 driver."""

    def __init__(self, database_type: Optional[str] = None) -> None:
        self.database_type = database_type

    def build_args(self, settings: StoredProcedureSettings) -> List[Any]:
        """Build the positional argument list for callproc().

        OUT parameters are passed as None placeholders.
        """
        args: List[Any] = []
        for idx, param in enumerate(settings.params, start=1):
            if param.direction == "OUT":
                logger.debug("Reg  OUT idx=%d name=%s type=%s", idx, param.name, param.datatype)
                args.append(None)
            else:
                value = coerce_value(param.datatype, param.value)
                logger.debug(
                    "Bind %s idx=%d name=%s type=%s val=%r",
                    param.direction, idx, param.name, param.datatype, value,
                )
                args.append(value)
        return args

    def execute(self, connection: Any, settings: StoredProcedureSettings) -> StoredProcResult:
        """Call the procedure and collect its result sets and OUT values.

        Args:
            connection: An open DB-API connection (not closed here)
            settings: Procedure name, schema and parameters

        Returns:
            StoredProcResult with out params, result sets and update count
        """
        result = StoredProcResult()
        args = self.build_args(settings)

        logger.info(
            "SP start dbType=%s sp=%s params=%d",
            self.database_type, settings.qualified_name, len(args),
        )

        cursor = connection.cursor()
        try:
            returned = cursor.callproc(settings.qualified_name, args)
            self._collect_result_sets(cursor, result)
            self.collect_out_params(settings, returned, result)
            self.after_execute(cursor, settings, result)
        finally:
            cursor.close()

        logger.info(
            "SP done dbType=%s sp=%s totalUpdateCount=%d rsCount=%d outCount=%d",
            self.database_type,
            settings.qualified_name,
            result.update_count,
            len(result.result_sets),
            len(result.out_params),
        )
        return result

    def _collect_result_sets(self, cursor: Any, result: StoredProcResult) -> None:
        while True:
            if cursor.description is not None:
                rows = rows_from_cursor(cursor)
                result.result_sets.append(rows)
                logger.debug("Captured ResultSet[%d] rows=%d", len(result.result_sets) - 1, len(rows))
            elif cursor.rowcount is not None and cursor.rowcount >= 0:
                result.update_count += cursor.rowcount
                logger.debug("DML updateCount += %d", cursor.rowcount)

            next_set = getattr(cursor, "nextset", None)
            if next_set is None or not next_set():
                break

    def collect_out_params(
        self,
        settings: StoredProcedureSettings,
        returned: Optional[List[Any]],
        result: StoredProcResult,
    ) -> None:
        """Read OUT/INOUT values from the sequence callproc() returned."""
        if returned is None:
            return
        values = list(returned)
        for idx, param in enumerate(settings.params):
            if not param.is_output or idx >= len(values):
                continue
            value = values[idx]
            result.out_params[param.output_name] = value
            alias = param.output_alias
            if alias:
                result.out_params[alias] = value
            logger.debug("OUT collected name=%s alias=%s -> %r", param.output_name, alias, value)

    def after_execute(
        self, cursor: Any, settings: StoredProcedureSettings, result: StoredProcResult
    ) -> None:
        """Database-specific hook run after results are collected."""
        pass


def executor_for_type(database_type: Optional[str]) -> GenericStoredProcedureExecutor:
    """Return an executor for a database type (oracle, mysql, sqlserver, ...)."""
    normalized = database_type.strip().lower() if database_type else None
    return GenericStoredProcedureExecutor(normalized)


def publish_result(store: VariableStore, scope: str, result: StoredProcResult) -> None:
    """Write a procedure result into the store under scope."""
    for name, value in result.out_params.items():
        store.set_scoped(scope, name, value)

    for param_name, canonical in RESPONSE_MIRRORS:
        value = result.out_params.get(param_name)
        if value is not None:
            store.set_scoped(scope, canonical, value)

    store.set_scoped(scope, "ResultSet", result.result_sets)
    store.set_scoped(scope, "UpdateCount", result.update_count)
