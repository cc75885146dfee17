# -*- coding: utf-8 -*-
#
# Type preserving json encoding
#
# Values that have no native json representation are encoded as strings and annotated in
# meta.serialization, using the SuperJSON layout so javascript clients can restore them:
#
#   {"values": {"data.attributes.createdAt": ["Date"], "data.attributes.price": [["custom", "Decimal"]]}}
#
# Paths are dotted, dots and backslashes in keys are escaped with a backslash.
#
import base64
import datetime
import decimal
from typing import Any, Dict, List, Optional, Tuple

import sarest
from .config import get_config
from .errors import ValidationError

DATE = "Date"
BIGINT = "bigint"
DECIMAL = ["custom", "Decimal"]
BYTES = ["custom", "Bytes"]


class BigInt(int):
    """
    Marker for values of BigInt fields, these are always sent as strings
    """


def escape_key(key: str) -> str:
    return str(key).replace("\\", "\\\\").replace(".", "\\.")


def split_path(path: str) -> List[str]:
    """
    "a.b\\.c" => ["a", "b.c"]
    """
    result = []
    current = ""
    escaped = False
    for char in path:
        if escaped:
            current += char
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == ".":
            result.append(current)
            current = ""
        else:
            current += char
    result.append(current)
    return result


def format_datetime(value: datetime.date) -> str:
    """
    ISO 8601 in UTC with millisecond precision, the format of javascript Date.toISOString()
    Naive datetimes are considered to be UTC
    """
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_datetime(value: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))


def _encode(value: Any, path: Tuple[str, ...], annotations: Dict[str, list]) -> Any:
    def annotate(annotation):
        annotations[".".join(escape_key(key) for key in path)] = [annotation]

    if isinstance(value, dict):
        return {key: _encode(item, path + (key,), annotations) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item, path + (str(i),), annotations) for i, item in enumerate(value)]
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, BigInt) or (isinstance(value, int) and abs(value) > get_config("MAX_SAFE_INTEGER")):
        annotate(BIGINT)
        return str(int(value))
    if isinstance(value, (datetime.datetime, datetime.date)):
        annotate(DATE)
        return format_datetime(value)
    if isinstance(value, decimal.Decimal):
        annotate(DECIMAL)
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        annotate(BYTES)
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def serialize(value: Any) -> Tuple[Any, Optional[Dict[str, Any]]]:
    """
    :param value: json-like structure that may contain datetime, Decimal, bytes and BigInt values
    :return: (json encodable value, serialization meta or None when no value was annotated)
    """
    annotations: Dict[str, list] = {}
    result = _encode(value, (), annotations)
    return result, ({"values": annotations} if annotations else None)


def _decode_value(annotation: Any, value: Any) -> Any:
    if value is None:
        return None
    if annotation == DATE:
        return parse_datetime(value)
    if annotation == BIGINT:
        return int(value)
    if annotation == DECIMAL:
        return decimal.Decimal(value)
    if annotation == BYTES:
        return base64.b64decode(value)
    sarest.log.warning(f"Unsupported serialization annotation {annotation}")
    return value


def _copy(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _copy(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy(item) for item in value]
    return value


def deserialize(value: Any, meta: Optional[Dict[str, Any]]) -> Any:
    """
    Restore the annotated values of a request payload

    :param value: json value, eg. the "data" member of a request document
    :param meta: serialization meta, {"values": {path: [annotation]}}, paths are relative to value
    :return: a copy of value with the annotated values restored
    """
    if not meta or not meta.get("values"):
        return value
    result = _copy(value)
    for path, annotations in meta["values"].items():
        keys = split_path(path)
        annotation = annotations[0] if isinstance(annotations, list) and annotations else annotations
        parent = result
        try:
            for key in keys[:-1]:
                parent = parent[int(key)] if isinstance(parent, list) else parent[key]
            last = int(keys[-1]) if isinstance(parent, list) else keys[-1]
            parent[last] = _decode_value(annotation, parent[last])
        except (KeyError, IndexError, TypeError, ValueError, decimal.InvalidOperation) as exc:
            raise ValidationError(f'Invalid serialization meta for "{path}": {exc}')
    return result
