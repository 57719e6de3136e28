"""
Row encoder: coerce record values into SQL literals and build batched INSERTs.

Every mapped column contributes exactly one position to a row tuple: the coerced
literal, or DEFAULT when the record lacks the property, holds null, or carries a
value that cannot be coerced. Whatever was not placed in a dedicated column is
serialized as JSON into the extra column, so no property is ever dropped.

Quoting goes through `psycopg.sql`: `Identifier` for table and column names and
`Literal` for values. With a live connection the server's escaping rules apply;
without one (tests, `pgflex sql`) libpq's standalone escaping is used.
"""

from __future__ import annotations

import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from psycopg import sql

from pgflex.domain import CoercionError, ColumnKind, ColumnType, Schema, ValueKind, value_kind
from pgflex.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT = "DEFAULT"
# Year is rendered separately: %Y is not zero-padded below 1000 on glibc.
_TIME_FORMAT = "%m-%d %H:%M:%S.%f %z"

Quote = Callable[[str], str]
EventTime = Any  # datetime, or Unix epoch seconds
Row = Tuple[EventTime, Dict[str, Any]]

_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+(?:_[0-9]+)*)")
_LEADING_FLOAT = re.compile(r"\s*([+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)")
_RFC3339 = re.compile(
    r"[0-9]{4}-[0-9]{2}-[0-9]{2}[Tt ][0-9]{2}:[0-9]{2}:[0-9]{2}(?:\.[0-9]+)?(?:[Zz]|[+-][0-9]{2}:[0-9]{2})"
)
_TRUE_STRINGS = frozenset({"t", "true"})


def literal_quoter(context: Any = None) -> Quote:
    """Return a function quoting a Python string as a SQL string literal."""

    def quote(text: str) -> str:
        return sql.Literal(text).as_string(context)

    return quote


def dumps(value: Any) -> str:
    """Compact, strict JSON (no NaN/Infinity tokens)."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def format_timestamp(moment: datetime) -> str:
    """Render an aware datetime in UTC with microseconds and zone offset."""
    moment = moment.astimezone(timezone.utc)
    return f"{moment.year:04d}-" + moment.strftime(_TIME_FORMAT)


def format_event_time(event_time: EventTime) -> str:
    """
    Format the record's event time for the time column.

    Accepts a datetime (naive values are taken as UTC) or Unix epoch seconds.
    """
    if isinstance(event_time, datetime):
        if event_time.tzinfo is None:
            event_time = event_time.replace(tzinfo=timezone.utc)
        return format_timestamp(event_time)
    if isinstance(event_time, (int, float)) and not isinstance(event_time, bool):
        return format_timestamp(datetime.fromtimestamp(event_time, tz=timezone.utc))
    raise TypeError(f"event time must be a datetime or epoch seconds, got {type(event_time).__name__}")


def parse_rfc3339(text: str) -> datetime:
    """Parse an RFC 3339 date-time; a zone offset is mandatory."""
    text = text.strip()
    if not _RFC3339.fullmatch(text):
        raise CoercionError(f"not an RFC 3339 timestamp: {text!r}")
    normalized = text[:10] + "T" + text[11:]
    if normalized[-1] == "z":
        normalized = normalized[:-1] + "Z"
    try:
        return datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise CoercionError(f"not a valid timestamp: {text!r}") from exc


def _reject(value: Any, column_type: ColumnType) -> CoercionError:
    return CoercionError(f"cannot coerce {value_kind(value).value} {value!r} to {column_type}")


def _to_timestamp(value: Any, kind: ValueKind, column_type: ColumnType, quote: Quote) -> str:
    if kind is ValueKind.STRING:
        moment = parse_rfc3339(value)
        try:
            return quote(format_timestamp(moment))
        except (OverflowError, ValueError) as exc:
            raise CoercionError(f"timestamp out of range in UTC: {value!r}") from exc
    if kind is ValueKind.NUMBER:
        try:
            moment = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise CoercionError(f"epoch seconds out of range: {value!r}") from exc
        return quote(format_timestamp(moment))
    raise _reject(value, column_type)


def _to_json_text(value: Any, kind: ValueKind, column_type: ColumnType, quote: Quote) -> str:
    try:
        return quote(dumps(value))
    except (TypeError, ValueError) as exc:
        raise CoercionError(f"cannot serialize {value!r} as JSON: {exc}") from exc


def _to_boolean(value: Any, kind: ValueKind, column_type: ColumnType, quote: Quote) -> str:
    if kind is ValueKind.BOOLEAN:
        truth = value
    elif kind is ValueKind.STRING:
        truth = value.lower() in _TRUE_STRINGS
    elif kind is ValueKind.NUMBER:
        truth = value != 0
    else:
        raise _reject(value, column_type)
    return "true" if truth else "false"


def parse_leading_int(text: str) -> int:
    """Decimal integer prefix of `text`; 0 when there is none."""
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def parse_leading_float(text: str) -> float:
    """Decimal float prefix of `text`; 0.0 when there is none."""
    match = _LEADING_FLOAT.match(text)
    return float(match.group(1)) if match else 0.0


def _to_integer(value: Any, kind: ValueKind, column_type: ColumnType, quote: Quote) -> str:
    if kind is ValueKind.BOOLEAN:
        return "1" if value else "0"
    if kind is ValueKind.STRING:
        return str(parse_leading_int(value))
    if kind is ValueKind.NUMBER:
        if isinstance(value, int):
            return str(value)
        try:
            return str(math.floor(value))
        except (OverflowError, ValueError) as exc:
            raise CoercionError(f"{value!r} has no integer value") from exc
    raise _reject(value, column_type)


def _float_literal(number: float, quote: Quote) -> str:
    if math.isnan(number):
        return quote("NaN")
    if math.isinf(number):
        return quote("Infinity" if number > 0 else "-Infinity")
    return repr(number)


def _to_float(value: Any, kind: ValueKind, column_type: ColumnType, quote: Quote) -> str:
    if kind is ValueKind.NUMBER:
        if isinstance(value, int):
            return str(value)
        return _float_literal(float(value), quote)
    if kind is ValueKind.STRING:
        return _float_literal(parse_leading_float(value), quote)
    raise _reject(value, column_type)


def _to_enum(value: Any, kind: ValueKind, column_type: ColumnType, quote: Quote) -> str:
    if kind is ValueKind.STRING and column_type.accepts_label(value):
        return quote(value)
    raise _reject(value, column_type)


_COERCERS = {
    ColumnKind.TIMESTAMP: _to_timestamp,
    ColumnKind.TEXT: _to_json_text,
    ColumnKind.BOOLEAN: _to_boolean,
    ColumnKind.INTEGER: _to_integer,
    ColumnKind.FLOAT: _to_float,
    ColumnKind.JSON: _to_json_text,
    ColumnKind.ENUM: _to_enum,
}


def coerce_value(value: Any, column_type: ColumnType, quote: Optional[Quote] = None) -> str:
    """
    Convert one record value to a SQL literal for a column of `column_type`.

    Null always becomes DEFAULT. Raises CoercionError when the value cannot be
    represented in the column.
    """
    kind = value_kind(value)
    if kind is ValueKind.NULL:
        return DEFAULT
    return _COERCERS[column_type.kind](value, kind, column_type, quote or literal_quoter())


def _sanitize(value: Any) -> Any:
    """Replace what strict JSON cannot hold with its string form."""
    kind = value_kind(value)
    if kind is ValueKind.MAPPING:
        return {str(k): _sanitize(v) for k, v in value.items()}
    if kind is ValueKind.SEQUENCE:
        return [_sanitize(v) for v in value]
    if kind is ValueKind.NUMBER and isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if kind is ValueKind.OTHER:
        return str(value)
    return value


def render_target(schema: Schema, context: Any = None) -> str:
    if schema.table_schema:
        return sql.Identifier(schema.table_schema, schema.table).as_string(context)
    return sql.Identifier(schema.table).as_string(context)


def render_column_list(schema: Schema, context: Any = None) -> str:
    """`("time","col",...,"extra")` with every name identifier-quoted."""
    return "(" + ",".join(sql.Identifier(name).as_string(context) for name in schema.column_names) + ")"


class RowEncoder:
    """
    Turn (event time, record) pairs into SQL value tuples for one Schema.

    Build one encoder per resolved schema; the quoted table name and column list
    are computed once here.
    """

    def __init__(self, schema: Schema, context: Any = None) -> None:
        self.schema = schema
        self._quote = literal_quoter(context)
        self.target = render_target(schema, context)
        self.column_list = render_column_list(schema, context)

    def split_record(self, record: Dict[str, Any]) -> Tuple[List[str], Dict[str, Any]]:
        """
        Coerce the mapped columns of `record`.

        Returns the direct-field literals (one per mapped column, in schema order)
        and the residual properties destined for the extra column. `record` is not
        modified.
        """
        direct: List[str] = []
        mapped = set()
        for column in self.schema.columns:
            if column.name not in record:
                direct.append(DEFAULT)
                continue
            value = record[column.name]
            try:
                literal = coerce_value(value, column.type, self._quote)
            except CoercionError as exc:
                log.warning(
                    "Could not coerce value %r to required type %s: %s",
                    value,
                    column.type,
                    exc,
                    extra={"column": column.name},
                )
                direct.append(DEFAULT)
                continue
            direct.append(literal)
            mapped.add(column.name)

        residual = {key: value for key, value in record.items() if key not in mapped}
        return direct, residual

    def encode_extra(self, residual: Dict[str, Any]) -> str:
        try:
            payload = dumps(residual)
        except (TypeError, ValueError) as exc:
            log.warning(
                "Extra column payload is not strict JSON (%s); storing string forms",
                exc,
                extra={"column": self.schema.extra_column},
            )
            payload = dumps(_sanitize(residual))
        return self._quote(payload)

    def encode_row(self, event_time: EventTime, record: Dict[str, Any]) -> str:
        """Encode one record as `(time, <mapped columns>, extra)`."""
        direct, residual = self.split_record(record)
        time_literal = self._quote(format_event_time(event_time))
        return "(" + ",".join([time_literal, *direct, self.encode_extra(residual)]) + ")"

    def encode_batch(self, rows: Iterable[Row]) -> str:
        """Comma-joined value tuples for every row."""
        return ",".join(self.encode_row(event_time, record) for event_time, record in rows)

    def build_insert(self, rows: Iterable[Row]) -> str:
        """A single multi-row INSERT for the batch."""
        values = self.encode_batch(rows)
        if not values:
            raise ValueError("cannot build an INSERT for an empty batch")
        return f"INSERT INTO {self.target} {self.column_list} VALUES {values}"


__all__ = [
    "DEFAULT",
    "RowEncoder",
    "coerce_value",
    "dumps",
    "format_event_time",
    "literal_quoter",
    "parse_leading_float",
    "parse_leading_int",
    "parse_rfc3339",
    "render_column_list",
    "render_target",
]
