from __future__ import annotations

from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from exam_booking import (
    ExamRecord,
    ExamStorageError,
    ExamYamlRepository,
    VenueCatalog,
    check_availability,
    submit_exam,
    validate_batch,
)
from exam_booking.sheet_import import normalize_row

mcp = FastMCP(
    "Exam Booking MCP Server",
    instructions="Check venue availability and validate exam bookings from the exam_booking project.",
    json_response=True,
)

DATA_DIR = Path(__file__).parent / "data"
REPOSITORY = ExamYamlRepository(DATA_DIR)
CATALOG = VenueCatalog()


def _stored_exams() -> list[ExamRecord]:
    try:
        return REPOSITORY.list_all()
    except ExamStorageError:
        return []


@mcp.resource("exam://venues")
async def list_venues() -> list[dict[str, Any]]:
    """List bookable venues with their seat capacity."""
    return CATALOG.to_list()


@mcp.tool()
def list_exams(venue: str | None = None, date: str | None = None) -> list[dict[str, Any]]:
    """Return stored exams, optionally filtered by venue and date."""
    records = _stored_exams()
    filtered = [
        record
        for record in records
        if (venue is None or record.venue == venue) and (date is None or record.date == date)
    ]
    return [record.to_dict() for record in filtered]


@mcp.tool()
def check_venue_availability(date: str, start_time: str, end_time: str, seats_required: int = 1) -> dict[str, Any]:
    """Report which venues are free and large enough for the requested slot."""
    report = check_availability(date, start_time, end_time, seats_required, _stored_exams(), CATALOG)
    return report.to_dict()


@mcp.tool()
def validate_exam_batch(rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Validate a batch of exam rows against stored exams and each other without saving."""
    validation = validate_batch([normalize_row(row) for row in rows], _stored_exams())
    return validation.to_dict()


@mcp.tool()
def submit_exam_request(
    name: str,
    date: str,
    start_time: str,
    end_time: str,
    venue: str,
    group: str,
    resource_count: int = 0,
) -> dict[str, Any]:
    """Book one exam if it does not clash with any stored exam."""
    result = submit_exam(
        REPOSITORY,
        {
            "name": name,
            "date": date,
            "start_time": start_time,
            "end_time": end_time,
            "venue": venue,
            "group": group,
            "resource_count": resource_count,
        },
    )
    return result.to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
