import re
from dataclasses import dataclass
from typing import Any

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})$")


def parse_time_to_minutes(value: Any) -> int | None:
    """Parse an ``HH:MM`` time of day into minutes since midnight.

    Returns None for anything that is not a real 24-hour time so every
    caller can treat "unparseable" the same way.
    """
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if match is None:
        return None

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    if hour > 23 or minute > 59:
        return None
    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class TimeInterval:
    start: int
    end: int

    def __post_init__(self) -> None:
        if not (0 <= self.start < MINUTES_PER_DAY) or not (0 < self.end <= MINUTES_PER_DAY):
            raise ValueError("Interval bounds must fall within a single day.")
        if self.start >= self.end:
            raise ValueError("Interval start must be earlier than end.")

    @staticmethod
    def parse(start_time: Any, end_time: Any) -> "TimeInterval | None":
        start = parse_time_to_minutes(start_time)
        end = parse_time_to_minutes(end_time)
        if start is None or end is None or start >= end:
            return None
        return TimeInterval(start, end)

    def overlaps(self, other: "TimeInterval") -> bool:
        return has_time_overlap(self.start, self.end, other.start, other.end)

    def to_dict(self) -> dict[str, str]:
        return {"start_time": format_minutes(self.start), "end_time": format_minutes(self.end)}


def has_time_overlap(new_start: int, new_end: int, exist_start: int, exist_end: int) -> bool:
    """Return True when two minute intervals overlap by even one minute.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 09:00-10:00 and 10:00-11:00) do not overlap.
    """
    return new_start < exist_end and new_end > exist_start


def classify_overlap(new_start: int, new_end: int, exist_start: int, exist_end: int) -> str:
    """Describe how a candidate interval sits against an existing one.

    Only meaningful for pairs that already overlap; the label feeds
    conflict messages and never decides whether a clash exists.
    """
    if new_start == exist_start:
        return "exact"
    if exist_start <= new_start < exist_end:
        return "starts-during"
    if exist_start < new_end <= exist_end:
        return "ends-during"
    if new_start < exist_start and new_end > exist_end:
        return "encompasses"
    return "overlaps"


@dataclass(frozen=True)
class ExamReservation:
    """The fields every conflict check looks at, in canonical string form."""

    name: str
    date: str
    start_time: str
    end_time: str
    venue: str
    group: str = ""

    def interval(self) -> TimeInterval | None:
        return TimeInterval.parse(self.start_time, self.end_time)

    def same_slot_scope(self, other: "ExamReservation") -> bool:
        return self.venue == other.venue and self.date == other.date

    def clashes_with(self, other: "ExamReservation") -> bool:
        if not self.same_slot_scope(other):
            return False
        mine = self.interval()
        theirs = other.interval()
        if mine is None or theirs is None:
            return False
        return mine.overlaps(theirs)
