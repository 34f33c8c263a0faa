from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from .booking import classify_overlap, has_time_overlap, parse_time_to_minutes


@dataclass(frozen=True)
class Clash:
    id: int | None
    name: str
    venue: str
    date: str
    start_time: str
    end_time: str
    group: str
    overlap_type: str

    def message(self) -> str:
        return (
            f"{self.venue} is already booked on {self.date} "
            f"from {self.start_time} to {self.end_time} for {self.name} ({self.group or 'no group'})."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "venue": self.venue,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "group": self.group,
            "overlap_type": self.overlap_type,
            "message": self.message(),
        }


def find_clashes(candidate: Any, existing: Iterable[Any]) -> list[Clash]:
    """Return every existing exam that overlaps the candidate in the same venue and date.

    Stored rows whose times do not parse are skipped; rejecting them is the
    job of whoever validated them. Input order is preserved.
    """
    new_start = parse_time_to_minutes(candidate.start_time)
    new_end = parse_time_to_minutes(candidate.end_time)
    if new_start is None or new_end is None:
        return []

    clashes: list[Clash] = []
    for record in existing:
        if record.venue != candidate.venue or record.date != candidate.date:
            continue

        exist_start = parse_time_to_minutes(record.start_time)
        exist_end = parse_time_to_minutes(record.end_time)
        if exist_start is None or exist_end is None:
            continue

        if has_time_overlap(new_start, new_end, exist_start, exist_end):
            clashes.append(
                Clash(
                    id=getattr(record, "id", None),
                    name=record.name,
                    venue=record.venue,
                    date=record.date,
                    start_time=record.start_time,
                    end_time=record.end_time,
                    group=getattr(record, "group", ""),
                    overlap_type=classify_overlap(new_start, new_end, exist_start, exist_end),
                )
            )
    return clashes
