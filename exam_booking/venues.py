from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import yaml


@dataclass(frozen=True)
class Venue:
    name: str
    capacity: int
    color: str = "#9e9e9e"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "capacity": self.capacity, "color": self.color}


DEFAULT_VENUES: tuple[Venue, ...] = (
    Venue("Main Hall", 200, "#1f77b4"),
    Venue("Sports Hall", 150, "#ff7f0e"),
    Venue("Library Reading Room", 60, "#2ca02c"),
    Venue("Lecture Theatre 1", 90, "#d62728"),
    Venue("Computer Lab A", 32, "#9467bd"),
    Venue("Computer Lab B", 32, "#8c564b"),
    Venue("Seminar Room 101", 24, "#e377c2"),
)


class VenueCatalog:
    """Fixed set of bookable venues, keyed by name, in declaration order."""

    def __init__(self, venues: list[Venue] | tuple[Venue, ...] = DEFAULT_VENUES) -> None:
        self._venues: dict[str, Venue] = {}
        for venue in venues:
            name = venue.name.strip() if isinstance(venue.name, str) else ""
            if not name:
                raise ValueError("Venue name must not be empty.")
            if isinstance(venue.capacity, bool) or not isinstance(venue.capacity, int) or venue.capacity <= 0:
                raise ValueError(f"Venue capacity must be a positive integer: {name}")
            if name in self._venues:
                raise ValueError(f"Duplicate venue name: {name}")
            self._venues[name] = Venue(name, venue.capacity, venue.color)

    def __iter__(self) -> Iterator[Venue]:
        return iter(self._venues.values())

    def __len__(self) -> int:
        return len(self._venues)

    def __contains__(self, name: object) -> bool:
        return name in self._venues

    def names(self) -> list[str]:
        return list(self._venues)

    def get(self, name: str) -> Venue | None:
        return self._venues.get(name)

    def capacity_of(self, name: str) -> int | None:
        venue = self._venues.get(name)
        return venue.capacity if venue is not None else None

    def to_list(self) -> list[dict[str, Any]]:
        return [venue.to_dict() for venue in self]


def load_venue_catalog(path: str | Path | None = None) -> VenueCatalog:
    if path is None:
        return VenueCatalog()

    payload = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict) and "venues" in payload:
        payload = payload["venues"]

    venues: list[Venue] = []
    if isinstance(payload, dict):
        for name, capacity in payload.items():
            venues.append(Venue(str(name), _coerce_capacity(capacity, name)))
    elif isinstance(payload, list):
        for index, row in enumerate(payload):
            if not isinstance(row, dict):
                raise ValueError(f"Venue entry #{index} is not a mapping.")
            name = str(row.get("name", "")).strip()
            color = row.get("color")
            venues.append(
                Venue(
                    name,
                    _coerce_capacity(row.get("capacity"), name),
                    str(color) if color else Venue.color,
                )
            )
    else:
        raise ValueError("Venue file must hold a list of venues or a name-to-capacity mapping.")

    return VenueCatalog(venues)


def _coerce_capacity(value: Any, name: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Venue capacity must be a positive integer: {name}") from None
