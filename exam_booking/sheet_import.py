from __future__ import annotations

import re
from typing import IO, Any, Mapping

import pandas as pd

HEADER_ALIASES = {
    "exam": "name",
    "exam_name": "name",
    "subject": "name",
    "title": "name",
    "room": "venue",
    "location": "venue",
    "hall": "venue",
    "venue_name": "venue",
    "start": "start_time",
    "from": "start_time",
    "starts_at": "start_time",
    "begin": "start_time",
    "end": "end_time",
    "to": "end_time",
    "ends_at": "end_time",
    "finish": "end_time",
    "class": "group",
    "team": "group",
    "cohort": "group",
    "group_name": "group",
    "exam_date": "date",
    "day": "date",
    "equipment": "resource_count",
    "resources": "resource_count",
    "resource": "resource_count",
    "row": "row_index",
    "row_number": "row_index",
}

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_WORD_RE = re.compile(r"[^a-z0-9]+")
_TIME_WITH_SECONDS_RE = re.compile(r"^(\d{1,2}:\d{2}):\d{2}(\.\d+)?$")
_DATE_WITH_TIME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T]\d{2}:\d{2}(:\d{2})?$")


def normalize_header(header: Any) -> str:
    text = _CAMEL_RE.sub("_", str(header).strip())
    text = _NON_WORD_RE.sub("_", text.lower()).strip("_")
    return HEADER_ALIASES.get(text, text)


def normalize_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Map an imported row onto canonical field names and tidy its values.

    The first column that maps onto a canonical name wins; later duplicates
    are ignored.
    """
    normalized: dict[str, Any] = {}
    for key, value in row.items():
        field_name = normalize_header(key)
        if not field_name or field_name in normalized:
            continue
        if isinstance(value, str):
            value = value.strip()
        normalized[field_name] = value

    for time_field in ("start_time", "end_time"):
        value = normalized.get(time_field)
        if isinstance(value, str):
            match = _TIME_WITH_SECONDS_RE.match(value)
            if match:
                normalized[time_field] = match.group(1)

    date_value = normalized.get("date")
    if isinstance(date_value, str):
        match = _DATE_WITH_TIME_RE.match(date_value)
        if match:
            normalized["date"] = match.group(1)
    return normalized


def read_rows_from_csv(stream: IO[Any]) -> list[dict[str, Any]]:
    frame = pd.read_csv(stream, dtype=str, keep_default_na=False, skip_blank_lines=True)
    rows: list[dict[str, Any]] = []
    for position, raw in enumerate(frame.to_dict(orient="records")):
        row = normalize_row(raw)
        if not any(str(value).strip() for key, value in row.items() if key != "row_index"):
            continue
        if row.get("row_index") in (None, ""):
            # header occupies line 1
            row["row_index"] = position + 2
        rows.append(row)
    return rows
