from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Any

from firehose_output.models import Record, RecordValue

LOGGER = logging.getLogger(__name__)

MAXIMUM_RECORD_SIZE = 1_024_000
TRUNCATED_SUFFIX = b"[Truncated...]"
DEFAULT_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

_DIRECTIVE_PATTERN = re.compile(r"%(.)")
# Conversions understood by the C strftime family plus %L (milliseconds) and %f (microseconds).
_SUPPORTED_DIRECTIVES = frozenset("aAbBcCdDeFGgHIjklmMnprRsStTuUVwWxXyYzZ%Lf")
_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


class EncodeError(ValueError):
    """Raised when a single record cannot be turned into a payload."""


class TimestampFormatter:
    def __init__(self, fmt: str = DEFAULT_TIME_FORMAT) -> None:
        if not fmt:
            fmt = DEFAULT_TIME_FORMAT
        if "%" in _DIRECTIVE_PATTERN.sub("", fmt):
            raise ValueError(f"Dangling '%' in time format {fmt!r}")
        for directive in _DIRECTIVE_PATTERN.findall(fmt):
            if directive not in _SUPPORTED_DIRECTIVES:
                raise ValueError(f"Unsupported directive %{directive} in time format {fmt!r}")
        self._fmt = fmt

    @property
    def fmt(self) -> str:
        return self._fmt

    def format(self, timestamp: datetime) -> str:
        millis = f"{timestamp.microsecond // 1000:03d}"
        expanded = _DIRECTIVE_PATTERN.sub(
            lambda m: millis if m.group(1) == "L" else m.group(0),
            self._fmt,
        )
        return timestamp.strftime(expanded)


class RecordEncoder:
    """Turns one structured log record into a newline-terminated payload."""

    def __init__(
        self,
        *,
        delivery_stream: str,
        data_keys: str | None = None,
        log_key: str | None = None,
        replace_dots: str | None = None,
        plugin_id: int = 0,
    ) -> None:
        self._delivery_stream = delivery_stream
        self._data_keys = _parse_data_keys(data_keys)
        self._log_key = log_key or None
        self._replace_dots = replace_dots or None
        self._plugin_id = plugin_id

    def encode(self, record: Record) -> bytes:
        if self._data_keys:
            record = select_data_keys(record, self._data_keys)

        record = decode_bytes(record)

        if self._replace_dots is not None:
            record = replace_dots(record, self._replace_dots)

        if self._log_key is not None:
            data = encode_log_key(extract_log_key(record, self._log_key))
        else:
            data = _dump_json(record)

        data += b"\n"

        if len(data) > MAXIMUM_RECORD_SIZE:
            LOGGER.warning(
                "firehose_record_truncated",
                extra={
                    "plugin_id": self._plugin_id,
                    "record_size": len(data),
                    "delivery_stream": self._delivery_stream,
                },
            )
            data = truncate_record(data)

        return data


def _parse_data_keys(data_keys: str | None) -> tuple[str, ...]:
    if not data_keys:
        return ()
    return tuple(key.strip() for key in data_keys.split(",") if key.strip())


def select_data_keys(record: Record, keys: tuple[str, ...]) -> Record:
    return {key: value for key, value in record.items() if _as_text(key) in keys}


def decode_bytes(value: Any) -> Any:
    """Recursively turn byte strings (keys and values) into text."""
    if isinstance(value, (bytes, bytearray)):
        return _as_text(value)
    if isinstance(value, dict):
        return {_as_text(k): decode_bytes(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [decode_bytes(v) for v in value]
    return value


def replace_dots(record: dict[str, RecordValue], replacement: str) -> dict[str, RecordValue]:
    replaced: dict[str, RecordValue] = {}
    for key, value in record.items():
        if isinstance(value, dict):
            value = replace_dots(value, replacement)
        if isinstance(key, str):
            key = key.replace(".", replacement)
        replaced[key] = value
    return replaced


def extract_log_key(record: Record, log_key: str) -> RecordValue:
    if log_key not in record:
        raise EncodeError(f"Failed to find key {log_key} specified by log_key option in log record")
    return record[log_key]


def encode_log_key(value: RecordValue) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return _dump_json(value)


def truncate_record(data: bytes, max_size: int = MAXIMUM_RECORD_SIZE) -> bytes:
    if len(data) <= max_size:
        return data
    return data[: max_size - len(TRUNCATED_SUFFIX)] + TRUNCATED_SUFFIX


def _as_text(value: Any) -> Any:
    if not isinstance(value, (bytes, bytearray)):
        return value
    try:
        return bytes(value).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EncodeError(f"Failed to decode record bytes as UTF-8: {exc}") from exc


def _dump_json(value: Any) -> bytes:
    """Compact JSON with sorted keys and HTML-safe escapes for <, > and &."""
    try:
        text = json.dumps(
            _stringify_keys(value),
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
            sort_keys=True,
        )
        return text.translate(_HTML_ESCAPES).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise EncodeError(f"Failed to marshal record: {exc}") from exc


def _stringify_keys(value: Any) -> Any:
    # Scalar keys become JSON object keys up front so mixed key types still sort.
    if isinstance(value, dict):
        return {
            key if isinstance(key, str) else _scalar_key(key): _stringify_keys(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(item) for item in value]
    return value


def _scalar_key(key: Any) -> str:
    if key is None or isinstance(key, (bool, int, float)):
        return json.dumps(key)
    raise TypeError(f"keys must be str, int, float, bool or None, not {type(key).__name__}")
