"""JSON and JSONL file reader producing row dictionaries.

Three modes are supported:
- JSONL: one JSON value per line; arrays are flattened into records
- Array at path: the dotted json_array_path is followed from the root and the
  array found there (or the single value) provides the records
- Streaming: the file is decoded incrementally in chunks; a top-level array
  yields its object elements one at a time, otherwise each top-level value
  in the file is one record

Each record becomes a row holding only the requested columns. A column is a
dotted path into the record; the special column [CompleteJSONRecordAsText]
holds the whole record as compact JSON.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, TextIO, Union

from .stringify import to_json

logger = logging.getLogger(__name__)

COMPLETE_JSON_COLUMN = "[CompleteJSONRecordAsText]"
CHUNK_SIZE = 64 * 1024

_MISSING = object()


@dataclass
class JsonFileSettings:
    """Settings for reading one JSON or JSONL file."""

    file_path: Union[str, Path]
    jsonl: bool = False
    json_array_path: Optional[str] = None
    columns: Optional[List[str]] = None
    encoding: str = "utf-8"

    def __post_init__(self) -> None:
        if self.json_array_path is not None:
            self.json_array_path = self.json_array_path.strip() or None


def navigate(node: Any, path: str) -> Any:
    """Follow a dotted path through nested objects; missing parts give _MISSING."""
    return _follow(node, path.split("."))


def _follow(node: Any, parts: List[str]) -> Any:
    current = node
    for part in parts:
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _column_value(node: Any) -> Optional[str]:
    if node is _MISSING or node is None:
        return None
    if isinstance(node, (dict, list)):
        return to_json(node)
    if isinstance(node, bool):
        return "true" if node else "false"
    return str(node)


class JsonFileReader:
    """Reads records from a JSON/JSONL file in batches.

    Usage:
        with JsonFileReader(settings) as reader:
            for batch in reader.iter_batches(500):
                ...
    """

    def __init__(self, settings: JsonFileSettings, chunk_size: int = CHUNK_SIZE) -> None:
        self.settings = settings
        self.chunk_size = chunk_size
        self._compiled: Dict[str, List[str]] = {}
        self._records: Optional[Iterator[Any]] = None
        self._handle: Optional[TextIO] = None

    def open(self) -> "JsonFileReader":
        """Open the file and prepare the record iterator.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not valid JSON (json_array_path mode;
                the other modes raise it while reading)
        """
        self._compile_columns()
        path = Path(self.settings.file_path)

        if self.settings.jsonl:
            self._handle = open(path, "r", encoding=self.settings.encoding)
            self._records = self._jsonl_records(self._handle)
            logger.info(
                "JsonFileReader opened in JSONL mode. path='%s', json_array_path='%s'",
                path,
                self.settings.json_array_path,
            )
        elif self.settings.json_array_path:
            records = self._records_at_path(path)
            self._records = iter(records)
            logger.info(
                "JsonFileReader opened with json_array_path='%s'. records=%d",
                self.settings.json_array_path,
                len(records),
            )
        else:
            self._handle = open(path, "r", encoding=self.settings.encoding)
            self._records = self._streamed_records(
                _JsonStream(self._handle, str(path), self.chunk_size)
            )
            logger.info("JsonFileReader opened in streaming mode. path='%s'", path)
        return self

    def _compile_columns(self) -> None:
        self._compiled = {
            col: col.split(".")
            for col in self.settings.columns or []
            if col != COMPLETE_JSON_COLUMN
        }
        if self.settings.columns:
            logger.info("Compiled %d JSON column paths", len(self._compiled))

    def _records_at_path(self, path: Path) -> List[Any]:
        with open(path, "r", encoding=self.settings.encoding) as f:
            root = json.load(f)
        node = navigate(root, self.settings.json_array_path or "")
        if node is _MISSING:
            return []
        if isinstance(node, list):
            return list(node)
        return [node]

    def _jsonl_records(self, handle: TextIO) -> Iterator[Any]:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                root = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON on line {line_no}: {e}") from e

            node = root
            if self.settings.json_array_path:
                node = navigate(root, self.settings.json_array_path)
                if node is _MISSING:
                    continue

            if isinstance(node, list):
                yield from node
            else:
                yield node

    def _streamed_records(self, stream: "_JsonStream") -> Iterator[Any]:
        if stream.peek() == "[":
            # Top-level array: elements are decoded one at a time and only
            # objects are records
            stream.advance()
            if stream.peek() == "]":
                return
            while True:
                item = stream.decode()
                if isinstance(item, dict):
                    yield item
                separator = stream.peek()
                if separator == "]":
                    return
                if separator != ",":
                    raise stream.expected("',' or ']'")
                stream.advance()

        while stream.peek():
            yield stream.decode()

    def extract_row(self, node: Any) -> Dict[str, Any]:
        """Build a row from one record, keeping only the configured columns."""
        if not self.settings.columns:
            if isinstance(node, dict):
                return dict(node)
            return {"value": node}

        row: Dict[str, Any] = {}
        for col in self.settings.columns:
            if col == COMPLETE_JSON_COLUMN:
                row[col] = to_json(node)
                continue
            row[col] = _column_value(_follow(node, self._compiled[col]))
        return row

    def read_batch(self, batch_size: int) -> List[Dict[str, Any]]:
        """Read up to batch_size rows. Returns an empty list when exhausted."""
        if self._records is None:
            raise RuntimeError("Reader is not open")
        batch: List[Dict[str, Any]] = []
        for node in self._records:
            batch.append(self.extract_row(node))
            if len(batch) >= batch_size:
                break
        return batch

    def iter_batches(self, batch_size: int) -> Iterator[List[Dict[str, Any]]]:
        """Yield batches until the file is exhausted."""
        while True:
            batch = self.read_batch(batch_size)
            if not batch:
                return
            yield batch

    def read_all(self, batch_size: int = 1000) -> List[Dict[str, Any]]:
        """Read every remaining row."""
        rows: List[Dict[str, Any]] = []
        for batch in self.iter_batches(batch_size):
            rows.extend(batch)
        return rows

    def close(self) -> None:
        """Release the file handle (JSONL and streaming modes)."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self._records = None

    def __enter__(self) -> "JsonFileReader":
        return self.open()

    def __exit__(self, *exc: Any) -> None:
        self.close()


class _JsonStream:
    """Decodes consecutive JSON values from a text handle, chunk by chunk."""

    def __init__(self, handle: TextIO, name: str, chunk_size: int) -> None:
        self._handle = handle
        self._name = name
        self._chunk_size = chunk_size
        self._decoder = json.JSONDecoder()
        self._buffer = ""
        self._pos = 0
        self._eof = False

    def _fill(self) -> bool:
        if self._eof:
            return False
        chunk = self._handle.read(self._chunk_size)
        if not chunk:
            self._eof = True
            return False
        self._buffer = self._buffer[self._pos :] + chunk
        self._pos = 0
        return True

    def peek(self) -> str:
        """Return the next non-whitespace character, or "" at end of input."""
        while True:
            while self._pos < len(self._buffer) and self._buffer[self._pos].isspace():
                self._pos += 1
            if self._pos < len(self._buffer):
                return self._buffer[self._pos]
            if not self._fill():
                return ""

    def advance(self) -> None:
        self._pos += 1

    def decode(self) -> Any:
        """Decode the next value, reading more input until it is complete."""
        self.peek()
        while True:
            try:
                value, end = self._decoder.raw_decode(self._buffer, self._pos)
            except json.JSONDecodeError as e:
                if self._fill():
                    continue
                raise ValueError(f"Invalid JSON in {self._name}: {e}") from e
            # A value ending at the buffer edge (e.g. a number) may continue.
            if end < len(self._buffer) or not self._fill():
                self._pos = end
                return value

    def expected(self, what: str) -> ValueError:
        return ValueError(f"Invalid JSON in {self._name}: expected {what}")
