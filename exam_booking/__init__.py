from .booking import ExamReservation, TimeInterval, classify_overlap, has_time_overlap, parse_time_to_minutes
from .clash import Clash, find_clashes
from .availability import AvailabilityReport, VenueAvailability, check_availability
from .batch import BatchClash, BatchSummary, BatchValidation, ExamCandidate, ValidationResult, validate_batch, validate_fields
from .venues import DEFAULT_VENUES, Venue, VenueCatalog, load_venue_catalog
from .yaml_store import (
	BatchCommitResult,
	ExamRecord,
	ExamStorageError,
	ExamYamlRepository,
	SubmissionResult,
	commit_batch,
	generate_sample_exams,
	submit_exam,
)

__all__ = [
	"ExamReservation",
	"TimeInterval",
	"classify_overlap",
	"has_time_overlap",
	"parse_time_to_minutes",
	"Clash",
	"find_clashes",
	"AvailabilityReport",
	"VenueAvailability",
	"check_availability",
	"BatchClash",
	"BatchSummary",
	"BatchValidation",
	"ExamCandidate",
	"ValidationResult",
	"validate_batch",
	"validate_fields",
	"DEFAULT_VENUES",
	"Venue",
	"VenueCatalog",
	"load_venue_catalog",
	"BatchCommitResult",
	"ExamRecord",
	"ExamStorageError",
	"ExamYamlRepository",
	"SubmissionResult",
	"commit_batch",
	"generate_sample_exams",
	"submit_exam",
]
