from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Mapping
import random
import re
import shutil

import holidays as pyholidays
import yaml

from .batch import ExamCandidate, coerce_candidates, parse_resource_count, validate_fields
from .clash import Clash, find_clashes
from .venues import VenueCatalog

HOLIDAY_COUNTRY = "GB"
EXAM_DAY_START_HOUR = 9
EXAM_DAY_END_HOUR = 17
SAMPLE_WINDOW_DAYS = 30
SAMPLE_GROUPS = ["Year 10", "Year 11", "Year 12", "Year 13", "Resit"]
SAMPLE_SUBJECTS = ["Mathematics", "Physics", "Chemistry", "Biology", "History", "Geography", "English", "French"]
EMPTY_YAML_LIST = "[]\n"

EVENT_EXAM_CREATED = "EXAM_CREATED"
EVENT_EXAM_DELETED = "EXAM_DELETED"
EVENT_EXAMS_CLEARED = "EXAMS_CLEARED"
EVENT_BATCH_SAVED = "BATCH_SAVED"
EVENT_ROW_SKIPPED = "EXAM_ROW_SKIPPED"
EVENT_YAML_RECOVERED = "YAML_RECOVERED"
EVENT_SCHEMA_MIGRATED = "SCHEMA_MIGRATED"
EVENT_SAMPLE_DATA_GENERATED = "SAMPLE_DATA_GENERATED"

_HOLIDAY_CACHE: dict[tuple[str, int], set[date]] = {}
_LEGACY_KEY_ALIASES = {
    "room": "venue",
    "location": "venue",
    "class": "group",
    "team": "group",
    "equipment": "resource_count",
    "resources": "resource_count",
}
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SHORT_TIME_RE = re.compile(r"^(\d):(\d{2})$")


@dataclass(frozen=True)
class ExamRecord:
    id: int
    name: str
    date: str
    start_time: str
    end_time: str
    venue: str
    group: str
    resource_count: int = 0
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "venue": self.venue,
            "group": self.group,
            "resource_count": self.resource_count,
        }
        if self.created_at is not None:
            payload["created_at"] = self.created_at
        return payload

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "ExamRecord":
        resource_count = parse_resource_count(data.get("resource_count", 0))
        if resource_count is None:
            raise ValueError("resource_count must be a non-negative integer")
        return ExamRecord(
            id=int(data["id"]),
            name=str(data["name"]),
            date=str(data["date"]),
            start_time=str(data["start_time"]),
            end_time=str(data["end_time"]),
            venue=str(data["venue"]),
            group=str(data.get("group") or ""),
            resource_count=resource_count,
            created_at=(str(data["created_at"]) if data.get("created_at") is not None else None),
        )

    @staticmethod
    def from_candidate(candidate: ExamCandidate, exam_id: int, created_at: datetime) -> "ExamRecord":
        reservation = candidate.to_reservation()
        return ExamRecord(
            id=exam_id,
            name=reservation.name,
            date=reservation.date,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            venue=reservation.venue,
            group=reservation.group,
            resource_count=parse_resource_count(candidate.resource_count) or 0,
            created_at=created_at.isoformat(timespec="seconds"),
        )


class ExamStorageError(RuntimeError):
    pass


class ExamYamlRepository:
    """Exam rows kept in ``exams.yaml`` with an append-only ``exam_events.yaml`` log."""

    def __init__(self, base_dir: str | Path = "data", holiday_country: str = HOLIDAY_COUNTRY) -> None:
        self.base_dir = Path(base_dir)
        self.exams_file = self.base_dir / "exams.yaml"
        self.log_file = self.base_dir / "exam_events.yaml"
        self.holiday_country = holiday_country
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.exams_file, self.log_file):
            if not path.exists():
                path.write_text(EMPTY_YAML_LIST, encoding="utf-8")

    def _load_rows(self, path: Path) -> list[Any]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text(EMPTY_YAML_LIST, encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._quarantine(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._quarantine(path, ValueError("top-level YAML is not a list"))
            return []
        return payload

    def _read_mappings(self, path: Path) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for index, row in enumerate(self._load_rows(path)):
            if isinstance(row, dict):
                rows.append(row)
            else:
                self._skip_row(path, index, "row is not a mapping")
        return rows

    def _save_rows(self, path: Path, rows: list[dict[str, Any]]) -> None:
        staging = path.with_suffix(path.suffix + ".tmp")
        try:
            staging.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            staging.replace(path)
        except OSError as error:
            raise ExamStorageError(f"Could not save {path.name}: {error}") from error
        finally:
            staging.unlink(missing_ok=True)

    def _quarantine(self, path: Path, error: Exception) -> None:
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{stamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
            path.write_text(EMPTY_YAML_LIST, encoding="utf-8")
        except OSError:
            return

        # the event log cannot record its own recovery
        if path != self.log_file:
            self._log_event(
                EVENT_YAML_RECOVERED,
                {"file": path.name, "backup": backup_path.name, "reason": str(error)},
            )

    def _skip_row(self, path: Path, index: int, reason: str) -> None:
        self._log_event(EVENT_ROW_SKIPPED, {"file": path.name, "index": index, "reason": reason})

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        events = self._read_mappings(self.log_file)
        events.append(
            {
                "event_time": (event_time or datetime.now()).isoformat(timespec="seconds"),
                "event_type": event_type,
                "payload": payload,
            }
        )
        self._save_rows(self.log_file, events)

    def get_events(self) -> list[dict[str, Any]]:
        return self._read_mappings(self.log_file)

    def list_all(self) -> list[ExamRecord]:
        records: list[ExamRecord] = []
        for index, row in enumerate(self._read_mappings(self.exams_file)):
            try:
                records.append(ExamRecord.from_dict(row))
            except (KeyError, TypeError, ValueError) as error:
                self._skip_row(self.exams_file, index, str(error) or error.__class__.__name__)
        return records

    def get(self, exam_id: int) -> ExamRecord | None:
        for record in self.list_all():
            if record.id == exam_id:
                return record
        return None

    def next_id(self, now: datetime | None = None) -> int:
        base = int((now or datetime.now()).timestamp() * 1000)
        highest = max((record.id for record in self.list_all()), default=0)
        return max(base, highest + 1)

    def append(self, record: ExamRecord, now: datetime | None = None) -> ExamRecord:
        rows = self._read_mappings(self.exams_file)
        rows.append(record.to_dict())
        self._save_rows(self.exams_file, rows)

        self._log_event(
            EVENT_EXAM_CREATED,
            {
                "id": record.id,
                "name": record.name,
                "venue": record.venue,
                "date": record.date,
                "start_time": record.start_time,
                "end_time": record.end_time,
            },
            now,
        )
        return record

    def append_batch(self, records: list[ExamRecord], now: datetime | None = None) -> int:
        if not records:
            return 0

        rows = self._read_mappings(self.exams_file)
        rows.extend(record.to_dict() for record in records)
        self._save_rows(self.exams_file, rows)

        self._log_event(
            EVENT_BATCH_SAVED,
            {
                "count": len(records),
                "first_id": records[0].id,
                "last_id": records[-1].id,
            },
            now,
        )
        return len(records)

    def delete_by_id(self, exam_id: int, now: datetime | None = None) -> bool:
        rows = self._read_mappings(self.exams_file)
        remaining = [row for row in rows if str(row.get("id")) != str(exam_id)]
        if len(remaining) == len(rows):
            return False

        self._save_rows(self.exams_file, remaining)
        self._log_event(EVENT_EXAM_DELETED, {"id": exam_id, "removed": len(rows) - len(remaining)}, now)
        return True

    def delete_all(self, now: datetime | None = None) -> int:
        rows = self._read_mappings(self.exams_file)
        self._save_rows(self.exams_file, [])
        self._log_event(EVENT_EXAMS_CLEARED, {"removed": len(rows)}, now)
        return len(rows)

    def migrate_schema(self, now: datetime | None = None) -> int:
        """Upgrade rows written by older versions to the current field layout."""
        effective_now = now or datetime.now()
        rows = self._read_mappings(self.exams_file)
        next_id = int(effective_now.timestamp() * 1000)
        used_ids = {str(row.get("id")) for row in rows if row.get("id") not in (None, "")}

        migrated_rows: list[dict[str, Any]] = []
        changed = 0
        for row in rows:
            migrated = _migrate_row(row)
            if migrated.get("id") in (None, ""):
                while str(next_id) in used_ids:
                    next_id += 1
                migrated["id"] = next_id
                used_ids.add(str(next_id))
                next_id += 1
            if migrated != row:
                changed += 1
            migrated_rows.append(migrated)

        if changed:
            self._save_rows(self.exams_file, migrated_rows)
            self._log_event(EVENT_SCHEMA_MIGRATED, {"rows": len(rows), "changed": changed}, effective_now)
        return changed

    def seed_sample_data(
        self,
        catalog: VenueCatalog | None = None,
        now: datetime | None = None,
        count: int = 20,
        overwrite: bool = True,
    ) -> list[ExamRecord]:
        effective_now = now or datetime.now()
        existing = [] if overwrite else self.list_all()
        generated = generate_sample_exams(
            catalog if catalog is not None else VenueCatalog(),
            start_date=effective_now.date(),
            count=count,
            first_id=self.next_id(effective_now),
            existing=existing,
            created_at=effective_now,
            holiday_country=self.holiday_country,
        )

        if overwrite:
            self._save_rows(self.exams_file, [])

        rows = self._read_mappings(self.exams_file)
        rows.extend(record.to_dict() for record in generated)
        self._save_rows(self.exams_file, rows)

        self._log_event(
            EVENT_SAMPLE_DATA_GENERATED,
            {
                "count": len(generated),
                "date_window_days": SAMPLE_WINDOW_DAYS,
                "holiday_country": self.holiday_country,
                "exam_hours": f"{EXAM_DAY_START_HOUR:02d}:00-{EXAM_DAY_END_HOUR:02d}:00",
                "overwrite": overwrite,
            },
            effective_now,
        )
        return generated


@dataclass(frozen=True)
class SubmissionResult:
    ok: bool
    exam: ExamRecord | None = None
    errors: list[str] = field(default_factory=list)
    clashes: list[Clash] = field(default_factory=list)
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": self.ok}
        if self.exam is not None:
            payload["exam"] = self.exam.to_dict()
        if self.errors:
            payload["errors"] = list(self.errors)
        if self.clashes:
            payload["clashes"] = [clash.to_dict() for clash in self.clashes]
        if self.message is not None:
            payload["message"] = self.message
        return payload


@dataclass(frozen=True)
class BatchCommitResult:
    saved: int
    failed: int
    failed_rows: list[Any] = field(default_factory=list)
    exams: list[ExamRecord] = field(default_factory=list)
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ok": self.saved > 0 or self.failed == 0,
            "saved": self.saved,
            "failed": self.failed,
            "failed_rows": list(self.failed_rows),
            "exams": [record.to_dict() for record in self.exams],
        }
        if self.message is not None:
            payload["message"] = self.message
        return payload


def submit_exam(
    repository: ExamYamlRepository,
    candidate: ExamCandidate | Mapping[str, Any],
    now: datetime | None = None,
) -> SubmissionResult:
    """Validate one exam, check it against stored exams, and save it if it is clear.

    Nothing serializes the check and the write, so two concurrent callers
    can both pass the clash check for the same slot.
    """
    if not isinstance(candidate, ExamCandidate):
        candidate = ExamCandidate.from_mapping(candidate)
    effective_now = now or datetime.now()

    errors = validate_fields(candidate)
    if errors:
        return SubmissionResult(ok=False, errors=errors, message="The exam request has invalid fields.")

    try:
        clashes = find_clashes(candidate.to_reservation(), repository.list_all())
        if clashes:
            return SubmissionResult(ok=False, clashes=clashes, message="The requested slot clashes with existing exams.")

        record = ExamRecord.from_candidate(candidate, repository.next_id(effective_now), effective_now)
        repository.append(record, now=effective_now)
    except ExamStorageError as error:
        return SubmissionResult(ok=False, message=str(error))
    return SubmissionResult(ok=True, exam=record)


def commit_batch(
    repository: ExamYamlRepository,
    rows: Iterable[ExamCandidate | Mapping[str, Any]],
    now: datetime | None = None,
) -> BatchCommitResult:
    """Save the rows a caller chose to keep, in one write.

    Ids come from one shared base plus the row position so they stay unique
    inside the batch. Rows are not re-checked for clashes here.
    """
    effective_now = now or datetime.now()
    candidates = coerce_candidates(rows)

    try:
        base_id = repository.next_id(effective_now)
    except ExamStorageError as error:
        return BatchCommitResult(
            saved=0,
            failed=len(candidates),
            failed_rows=[candidate.row_index for candidate in candidates],
            message=str(error),
        )

    records: list[ExamRecord] = []
    failed_rows: list[Any] = []
    for position, candidate in enumerate(candidates):
        if validate_fields(candidate):
            failed_rows.append(candidate.row_index)
            continue
        records.append(ExamRecord.from_candidate(candidate, base_id + position, effective_now))

    try:
        saved = repository.append_batch(records, now=effective_now)
    except ExamStorageError as error:
        return BatchCommitResult(
            saved=0,
            failed=len(candidates),
            failed_rows=[candidate.row_index for candidate in candidates],
            message=str(error),
        )

    return BatchCommitResult(
        saved=saved,
        failed=len(failed_rows),
        failed_rows=failed_rows,
        exams=records,
    )


def generate_sample_exams(
    catalog: VenueCatalog,
    start_date: date,
    count: int = 20,
    first_id: int = 1,
    existing: Iterable[ExamRecord] = (),
    created_at: datetime | None = None,
    holiday_country: str = HOLIDAY_COUNTRY,
) -> list[ExamRecord]:
    if count <= 0:
        raise ValueError("count must be greater than zero")
    venues = catalog.names()
    if not venues:
        raise ValueError("catalog must contain at least one venue")

    exam_days = _collect_exam_days(start_date, start_date + timedelta(days=SAMPLE_WINDOW_DAYS), holiday_country)
    if not exam_days:
        raise ValueError("No exam days available in the sample window.")

    rng = random.Random(f"sample:{start_date.isoformat()}:{count}")
    stamp = (created_at or datetime.now()).isoformat(timespec="seconds")
    placed: list[ExamRecord] = list(existing)
    records: list[ExamRecord] = []

    attempts = 0
    while len(records) < count and attempts < count * 20:
        attempts += 1
        day = rng.choice(exam_days)
        start_minutes = rng.randrange(EXAM_DAY_START_HOUR * 60, (EXAM_DAY_END_HOUR - 1) * 60 + 1, 30)
        duration = rng.choice([60, 90, 120, 180])
        end_minutes = min(start_minutes + duration, EXAM_DAY_END_HOUR * 60)

        record = ExamRecord(
            id=first_id + len(records),
            name=rng.choice(SAMPLE_SUBJECTS),
            date=day.isoformat(),
            start_time=f"{start_minutes // 60:02d}:{start_minutes % 60:02d}",
            end_time=f"{end_minutes // 60:02d}:{end_minutes % 60:02d}",
            venue=rng.choice(venues),
            group=rng.choice(SAMPLE_GROUPS),
            resource_count=rng.randint(0, 5),
            created_at=stamp,
        )
        if find_clashes(record, placed):
            continue

        placed.append(record)
        records.append(record)

    return records


def _migrate_row(row: Mapping[str, Any]) -> dict[str, Any]:
    migrated: dict[str, Any] = {}
    for key, value in row.items():
        name = _CAMEL_RE.sub("_", str(key)).lower()
        name = _LEGACY_KEY_ALIASES.get(name, name)
        if name not in migrated:
            migrated[name] = value

    for time_field in ("start_time", "end_time"):
        value = migrated.get(time_field)
        # unquoted 10:30 loads as the YAML 1.1 sexagesimal int 630
        if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 24 * 60:
            migrated[time_field] = f"{value // 60:02d}:{value % 60:02d}"
        elif isinstance(value, str):
            match = _SHORT_TIME_RE.match(value.strip())
            if match:
                migrated[time_field] = f"0{match.group(1)}:{match.group(2)}"
    migrated.setdefault("resource_count", 0)
    migrated.setdefault("group", "")
    return migrated


def _collect_exam_days(start_inclusive: date, end_exclusive: date, country: str = HOLIDAY_COUNTRY) -> list[date]:
    cursor = start_inclusive
    exam_days: list[date] = []
    while cursor < end_exclusive:
        if _is_exam_day(cursor, country):
            exam_days.append(cursor)
        cursor += timedelta(days=1)
    return exam_days


def _is_exam_day(target_date: date, country: str = HOLIDAY_COUNTRY) -> bool:
    return target_date.weekday() < 5 and not _is_public_holiday(target_date, country)


def _is_public_holiday(target_date: date, country: str = HOLIDAY_COUNTRY) -> bool:
    key = (country, target_date.year)
    if key not in _HOLIDAY_CACHE:
        holiday_map = pyholidays.country_holidays(country, years=[target_date.year])
        _HOLIDAY_CACHE[key] = set(holiday_map.keys())
    return target_date in _HOLIDAY_CACHE[key]
