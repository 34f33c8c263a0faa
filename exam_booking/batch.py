from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping

from .booking import ExamReservation, parse_time_to_minutes
from .clash import Clash, find_clashes

REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("name", "Exam name is required."),
    ("date", "Date is required."),
    ("start_time", "Start time is required."),
    ("end_time", "End time is required."),
    ("venue", "Venue is required."),
    ("group", "Group is required."),
)
START_FORMAT_ERROR = "Start time must be in HH:MM format."
END_FORMAT_ERROR = "End time must be in HH:MM format."
TIME_ORDER_ERROR = "End time must be after start time."
RESOURCE_COUNT_ERROR = "Resource count must be a non-negative whole number."


@dataclass(frozen=True)
class ExamCandidate:
    """One exam request as submitted, before any id has been assigned."""

    name: str = ""
    date: str = ""
    start_time: str = ""
    end_time: str = ""
    venue: str = ""
    group: str = ""
    resource_count: Any = 0
    row_index: Any = None

    @staticmethod
    def from_mapping(data: Mapping[str, Any], row_index: Any = None) -> "ExamCandidate":
        def text(key: str) -> str:
            return _field_text(data.get(key))

        supplied_index = data.get("row_index")
        return ExamCandidate(
            name=text("name"),
            date=text("date"),
            start_time=text("start_time"),
            end_time=text("end_time"),
            venue=text("venue"),
            group=text("group"),
            resource_count=data.get("resource_count", 0),
            row_index=supplied_index if supplied_index not in (None, "") else row_index,
        )

    def to_reservation(self) -> ExamReservation:
        return ExamReservation(
            name=_field_text(self.name),
            date=_field_text(self.date),
            start_time=_field_text(self.start_time),
            end_time=_field_text(self.end_time),
            venue=_field_text(self.venue),
            group=_field_text(self.group),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "name": self.name,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "venue": self.venue,
            "group": self.group,
            "resource_count": parse_resource_count(self.resource_count),
        }


def _field_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_resource_count(value: Any) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int):
        return value if value >= 0 else None

    text = str(value).strip()
    if text.endswith(".0"):
        text = text[:-2]
    if not text.isdigit():
        return None
    return int(text)


@dataclass(frozen=True)
class BatchClash:
    row_index: Any
    name: str
    venue: str
    date: str
    start_time: str
    end_time: str
    group: str

    @staticmethod
    def of(row_index: Any, reservation: ExamReservation) -> "BatchClash":
        return BatchClash(
            row_index=row_index,
            name=reservation.name,
            venue=reservation.venue,
            date=reservation.date,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            group=reservation.group,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "name": self.name,
            "venue": self.venue,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "group": self.group,
        }


@dataclass
class ValidationResult:
    row_index: Any
    valid: bool = False
    errors: list[str] = field(default_factory=list)
    clashes_with_existing: list[Clash] = field(default_factory=list)
    clashes_with_batch: list[BatchClash] = field(default_factory=list)

    @property
    def has_clashes(self) -> bool:
        return bool(self.clashes_with_existing or self.clashes_with_batch)

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "valid": self.valid,
            "errors": list(self.errors),
            "clashes_with_existing": [clash.to_dict() for clash in self.clashes_with_existing],
            "clashes_with_batch": [clash.to_dict() for clash in self.clashes_with_batch],
        }


@dataclass(frozen=True)
class BatchSummary:
    total_rows: int
    valid_rows: int
    invalid_rows: int
    clashing_rows: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "clashing_rows": self.clashing_rows,
        }


@dataclass(frozen=True)
class BatchValidation:
    results: list[ValidationResult]
    summary: BatchSummary

    def valid_row_indexes(self) -> list[Any]:
        return [result.row_index for result in self.results if result.valid]

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [result.to_dict() for result in self.results],
            "summary": self.summary.to_dict(),
        }


def validate_fields(candidate: ExamCandidate) -> list[str]:
    """Return every field and time-format problem with the candidate, in a fixed order."""
    errors: list[str] = []
    for attribute, message in REQUIRED_FIELDS:
        if not _field_text(getattr(candidate, attribute)):
            errors.append(message)

    start_raw = _field_text(candidate.start_time)
    end_raw = _field_text(candidate.end_time)
    start = parse_time_to_minutes(start_raw)
    end = parse_time_to_minutes(end_raw)
    if start_raw and start is None:
        errors.append(START_FORMAT_ERROR)
    if end_raw and end is None:
        errors.append(END_FORMAT_ERROR)
    if start is not None and end is not None and end <= start:
        errors.append(TIME_ORDER_ERROR)

    if parse_resource_count(candidate.resource_count) is None:
        errors.append(RESOURCE_COUNT_ERROR)
    return errors


def coerce_candidates(rows: Iterable[ExamCandidate | Mapping[str, Any]]) -> list[ExamCandidate]:
    candidates: list[ExamCandidate] = []
    for position, row in enumerate(rows):
        if isinstance(row, ExamCandidate):
            candidates.append(ExamCandidate.from_mapping(asdict(row), row_index=position))
        else:
            candidates.append(ExamCandidate.from_mapping(row, row_index=position))
    return candidates


def validate_batch(
    candidates: Iterable[ExamCandidate | Mapping[str, Any]],
    existing: Iterable[Any],
) -> BatchValidation:
    """Validate an ordered batch against stored exams and against itself.

    A clash between two rows of the batch is recorded on both of them, so a
    row that looked clean when it was reached can pick up clashes from rows
    further down. Validity and the summary are therefore computed only
    after every pair has been compared.
    """
    rows = coerce_candidates(candidates)
    snapshot = list(existing)

    results: list[ValidationResult] = []
    checked: list[tuple[int, ExamReservation]] = []
    for position, candidate in enumerate(rows):
        result = ValidationResult(row_index=candidate.row_index, errors=validate_fields(candidate))
        results.append(result)
        if result.errors:
            continue

        reservation = candidate.to_reservation()
        result.clashes_with_existing = find_clashes(reservation, snapshot)

        for earlier_position, earlier in checked:
            if reservation.clashes_with(earlier):
                result.clashes_with_batch.append(BatchClash.of(results[earlier_position].row_index, earlier))
                results[earlier_position].clashes_with_batch.append(BatchClash.of(result.row_index, reservation))
        checked.append((position, reservation))

    for result in results:
        result.valid = not result.errors and not result.has_clashes

    summary = BatchSummary(
        total_rows=len(results),
        valid_rows=sum(1 for result in results if result.valid),
        invalid_rows=sum(1 for result in results if result.errors),
        clashing_rows=sum(1 for result in results if result.has_clashes),
    )
    return BatchValidation(results=results, summary=summary)
