from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from .booking import parse_time_to_minutes
from .clash import Clash, find_clashes
from .venues import VenueCatalog


@dataclass(frozen=True)
class VenueAvailability:
    name: str
    capacity: int
    available: bool
    has_enough_seats: bool
    conflicting_reservations: list[Clash] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "capacity": self.capacity,
            "available": self.available,
            "has_enough_seats": self.has_enough_seats,
            "conflicting_reservations": [clash.to_dict() for clash in self.conflicting_reservations],
        }


@dataclass(frozen=True)
class AvailabilityReport:
    ok: bool
    venues: list[VenueAvailability] = field(default_factory=list)
    message: str | None = None

    @staticmethod
    def failure(message: str) -> "AvailabilityReport":
        return AvailabilityReport(ok=False, message=message)

    def bookable(self) -> list[VenueAvailability]:
        return [venue for venue in self.venues if venue.available and venue.has_enough_seats]

    def to_dict(self) -> dict[str, Any]:
        if not self.ok:
            return {"ok": False, "message": self.message}
        return {"ok": True, "venues": [venue.to_dict() for venue in self.venues]}


@dataclass(frozen=True)
class _RequestedSlot:
    name: str
    date: str
    start_time: str
    end_time: str
    venue: str


def check_availability(
    date: Any,
    start_time: Any,
    end_time: Any,
    seats_required: Any,
    existing: Iterable[Any],
    catalog: VenueCatalog | None = None,
) -> AvailabilityReport:
    """Report, for every catalog venue, whether the slot is free and big enough.

    Time conflicts and seat capacity are reported independently so the
    caller can decide which combination it accepts.
    """
    if not isinstance(date, str) or not date.strip():
        return AvailabilityReport.failure("Date is required.")
    start = parse_time_to_minutes(start_time)
    if start is None:
        return AvailabilityReport.failure("Start time must be in HH:MM format.")
    end = parse_time_to_minutes(end_time)
    if end is None:
        return AvailabilityReport.failure("End time must be in HH:MM format.")
    if end <= start:
        return AvailabilityReport.failure("End time must be after start time.")
    if isinstance(seats_required, bool) or not isinstance(seats_required, int) or seats_required < 1:
        return AvailabilityReport.failure("Seats required must be a whole number of at least 1.")

    catalog = catalog if catalog is not None else VenueCatalog()
    snapshot = list(existing)
    date = date.strip()

    venues: list[VenueAvailability] = []
    for venue in catalog:
        requested = _RequestedSlot("", date, start_time.strip(), end_time.strip(), venue.name)
        conflicts = find_clashes(requested, snapshot)
        venues.append(
            VenueAvailability(
                name=venue.name,
                capacity=venue.capacity,
                available=not conflicts,
                has_enough_seats=venue.capacity >= seats_required,
                conflicting_reservations=conflicts,
            )
        )
    return AvailabilityReport(ok=True, venues=venues)
