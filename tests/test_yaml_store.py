import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from unittest import mock

import yaml

from exam_booking import (
    ExamRecord,
    ExamStorageError,
    ExamYamlRepository,
    Venue,
    VenueCatalog,
    commit_batch,
    find_clashes,
    generate_sample_exams,
    submit_exam,
)
from exam_booking.yaml_store import (
    EVENT_EXAM_CREATED,
    EVENT_EXAM_DELETED,
    EVENT_EXAMS_CLEARED,
    _collect_exam_days,
)

NOW = datetime(2024, 2, 26, 9, 0)


def _exam(**overrides):
    payload = {
        "name": "Maths",
        "date": "2024-03-01",
        "start_time": "09:00",
        "end_time": "11:00",
        "venue": "Hall",
        "group": "Year 11",
        "resource_count": 2,
    }
    payload.update(overrides)
    return payload


class TestExamYamlRepository(unittest.TestCase):
    def test_append_list_and_delete(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            first = ExamRecord(1, "Maths", "2024-03-01", "09:00", "11:00", "Hall", "Year 11")
            second = ExamRecord(2, "Physics", "2024-03-01", "13:00", "15:00", "Hall", "Year 10", 3)
            repo.append(first, now=NOW)
            repo.append(second, now=NOW)

            self.assertEqual(repo.list_all(), [first, second])
            self.assertEqual(repo.get(2), second)
            self.assertTrue(repo.delete_by_id(1, now=NOW))
            self.assertFalse(repo.delete_by_id(1, now=NOW))
            self.assertEqual(repo.list_all(), [second])
            self.assertEqual(repo.delete_all(now=NOW), 1)
            self.assertEqual(repo.list_all(), [])

    def test_append_batch_writes_once(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            records = [
                ExamRecord(10, "Maths", "2024-03-01", "09:00", "11:00", "Hall", "Year 11"),
                ExamRecord(11, "Physics", "2024-03-01", "09:00", "11:00", "Lab", "Year 11"),
            ]
            with mock.patch.object(repo, "_save_rows", wraps=repo._save_rows) as writer:
                saved = repo.append_batch(records, now=NOW)
                exam_writes = [call for call in writer.call_args_list if call.args[0] == repo.exams_file]

            self.assertEqual(saved, 2)
            self.assertEqual(len(exam_writes), 1)
            self.assertEqual(len(repo.list_all()), 2)

    def test_logs_events(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            repo.append(ExamRecord(1, "Maths", "2024-03-01", "09:00", "11:00", "Hall", "Year 11"), now=NOW)
            repo.delete_by_id(1, now=NOW)
            repo.delete_all(now=NOW)

            event_types = [event["event_type"] for event in repo.get_events()]
            self.assertEqual(event_types, [EVENT_EXAM_CREATED, EVENT_EXAM_DELETED, EVENT_EXAMS_CLEARED])
            self.assertEqual(event_types, ["EXAM_CREATED", "EXAM_DELETED", "EXAMS_CLEARED"])

    def test_skips_malformed_rows_and_keeps_the_rest(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            rows = [
                {"id": 1, "name": "Maths", "date": "2024-03-01", "start_time": "09:00", "end_time": "10:00", "venue": "Hall"},
                {"id": 2, "name": "Broken", "date": "2024-03-01"},
                "not a mapping",
                {"id": 3, "name": "Physics", "date": "2024-03-01", "start_time": "10:00", "end_time": "11:00", "venue": "Hall", "group": "Y10"},
            ]
            repo.exams_file.write_text(yaml.safe_dump(rows), encoding="utf-8")

            records = repo.list_all()

            self.assertEqual([record.id for record in records], [1, 3])
            skipped = [event for event in repo.get_events() if event["event_type"] == "EXAM_ROW_SKIPPED"]
            self.assertEqual(len(skipped), 2)

    def test_recovers_corrupted_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = ExamYamlRepository(data_dir)
            repo.exams_file.write_text("- id: [unclosed\n", encoding="utf-8")

            self.assertEqual(repo.list_all(), [])
            self.assertEqual(len(list(data_dir.glob("exams.corrupt.*.yaml"))), 1)
            self.assertIn("YAML_RECOVERED", [event["event_type"] for event in repo.get_events()])

    def test_non_list_file_is_recovered(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            repo.exams_file.write_text("id: 1\n", encoding="utf-8")
            self.assertEqual(repo.list_all(), [])
            self.assertEqual(repo.exams_file.read_text(encoding="utf-8"), "[]\n")

    def test_next_id_is_time_based_and_increasing(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            base = int(NOW.timestamp() * 1000)
            self.assertEqual(repo.next_id(NOW), base)

            repo.append(ExamRecord(base + 50, "Maths", "2024-03-01", "09:00", "11:00", "Hall", "Y11"), now=NOW)
            self.assertEqual(repo.next_id(NOW), base + 51)

    def test_migrate_schema_upgrades_legacy_rows(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            legacy = [
                {"id": 5, "name": "Maths", "date": "2024-03-01", "startTime": "9:00", "endTime": "10:30", "room": "Hall", "class": "Y11"},
                {"name": "Physics", "date": "2024-03-01", "start_time": "11:00", "end_time": "12:00", "location": "Lab", "team": "Y10", "equipment": 4},
                {"id": 7, "name": "Art", "date": "2024-03-02", "start_time": "09:00", "end_time": "10:00", "venue": "Studio", "group": "Y9", "resource_count": 0},
            ]
            repo.exams_file.write_text(yaml.safe_dump(legacy), encoding="utf-8")

            changed = repo.migrate_schema(now=NOW)
            records = repo.list_all()

            self.assertEqual(changed, 2)
            self.assertEqual(len(records), 3)
            self.assertEqual(records[0].start_time, "09:00")
            self.assertEqual(records[0].venue, "Hall")
            self.assertEqual(records[0].group, "Y11")
            self.assertEqual(records[1].id, int(NOW.timestamp() * 1000))
            self.assertEqual(records[1].resource_count, 4)
            self.assertEqual(repo.migrate_schema(now=NOW), 0)

    def test_migrate_schema_restores_unquoted_times(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            repo.exams_file.write_text(
                "- id: 1\n  name: Maths\n  date: '2024-03-01'\n  start_time: 10:30\n  end_time: 11:45\n"
                "  venue: Hall\n  group: Y11\n  resource_count: 0\n",
                encoding="utf-8",
            )

            self.assertEqual(repo.migrate_schema(now=NOW), 1)
            record = repo.list_all()[0]
            self.assertEqual((record.start_time, record.end_time), ("10:30", "11:45"))

    def test_seed_sample_data_has_no_clashes(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            generated = repo.seed_sample_data(now=NOW, count=15)

            self.assertGreater(len(generated), 0)
            self.assertEqual(repo.list_all(), generated)
            for index, record in enumerate(generated):
                self.assertLess(date.fromisoformat(record.date).weekday(), 5)
                self.assertEqual(find_clashes(record, generated[:index]), [])

    def test_seed_with_empty_catalog_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            with self.assertRaisesRegex(ValueError, "at least one venue"):
                repo.seed_sample_data(VenueCatalog([]), now=NOW)
            self.assertEqual(repo.list_all(), [])

    def test_seed_uses_repository_holiday_country(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data", holiday_country="US")
            generated = repo.seed_sample_data(VenueCatalog([Venue("Hall", 100)]), now=datetime(2024, 7, 1, 9, 0), count=40)

            self.assertNotIn("2024-07-04", {record.date for record in generated})
            seeded = [event for event in repo.get_events() if event["event_type"] == "SAMPLE_DATA_GENERATED"]
            self.assertEqual(seeded[-1]["payload"]["holiday_country"], "US")


class TestGenerateSampleExams(unittest.TestCase):
    def test_rejects_invalid_parameters(self) -> None:
        with self.assertRaises(ValueError):
            generate_sample_exams(VenueCatalog(), date(2024, 2, 26), count=0)

    def test_skips_public_holidays(self) -> None:
        catalog = VenueCatalog([Venue("Hall", 100)])
        records = generate_sample_exams(catalog, date(2024, 12, 20), count=30)
        dates = {record.date for record in records}
        self.assertNotIn("2024-12-25", dates)
        self.assertNotIn("2024-12-26", dates)

    def test_holiday_country_decides_which_days_are_skipped(self) -> None:
        week = (date(2024, 7, 1), date(2024, 7, 8))
        self.assertIn(date(2024, 7, 4), _collect_exam_days(*week, "GB"))
        self.assertNotIn(date(2024, 7, 4), _collect_exam_days(*week, "US"))

        catalog = VenueCatalog([Venue("Hall", 100)])
        records = generate_sample_exams(catalog, date(2024, 7, 1), count=40, holiday_country="US")
        self.assertNotIn("2024-07-04", {record.date for record in records})


class TestSubmitExam(unittest.TestCase):
    def test_saves_when_slot_is_free(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            result = submit_exam(repo, _exam(), now=NOW)

            self.assertTrue(result.ok)
            self.assertEqual(result.exam.id, int(NOW.timestamp() * 1000))
            self.assertEqual(result.exam.resource_count, 2)
            self.assertEqual(repo.list_all(), [result.exam])

    def test_reports_clash_with_classification(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            submit_exam(repo, _exam(), now=NOW)
            result = submit_exam(repo, _exam(name="Physics", start_time="10:00", end_time="12:00"), now=NOW)

            self.assertFalse(result.ok)
            self.assertEqual(len(result.clashes), 1)
            self.assertEqual(result.clashes[0].overlap_type, "starts-during")
            self.assertEqual(len(repo.list_all()), 1)

    def test_back_to_back_is_saved(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            first = submit_exam(repo, _exam(), now=NOW)
            second = submit_exam(repo, _exam(start_time="11:00", end_time="12:00"), now=NOW)

            self.assertTrue(second.ok)
            self.assertEqual(second.exam.id, first.exam.id + 1)

    def test_capacity_is_not_checked_on_submit(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            result = submit_exam(repo, _exam(venue="Seminar Room 101", resource_count=500), now=NOW)
            self.assertTrue(result.ok)

    def test_reports_field_errors(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            result = submit_exam(repo, _exam(group="", end_time="08:00"), now=NOW)

            self.assertFalse(result.ok)
            self.assertEqual(result.errors, ["Group is required.", "End time must be after start time."])
            self.assertEqual(repo.list_all(), [])

    def test_storage_failure_is_reported(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            with mock.patch.object(repo, "_save_rows", side_effect=ExamStorageError("disk full")):
                result = submit_exam(repo, _exam(), now=NOW)

            self.assertFalse(result.ok)
            self.assertEqual(result.message, "disk full")
            self.assertEqual(result.to_dict(), {"ok": False, "message": "disk full"})


class TestCommitBatch(unittest.TestCase):
    def test_assigns_ids_from_shared_base(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            rows = [
                dict(_exam(), row_index=2),
                dict(_exam(venue=""), row_index=3),
                dict(_exam(venue="Lab"), row_index=4),
            ]
            result = commit_batch(repo, rows, now=NOW)
            base = int(NOW.timestamp() * 1000)

            self.assertEqual(result.saved, 2)
            self.assertEqual(result.failed, 1)
            self.assertEqual(result.failed_rows, [3])
            self.assertEqual([record.id for record in result.exams], [base, base + 2])
            self.assertEqual([record.id for record in repo.list_all()], [base, base + 2])

    def test_storage_failure_fails_every_row(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            rows = [dict(_exam(), row_index=0), dict(_exam(venue="Lab"), row_index=1)]
            with mock.patch.object(repo, "append_batch", side_effect=ExamStorageError("read-only")):
                result = commit_batch(repo, rows, now=NOW)

            self.assertEqual(result.saved, 0)
            self.assertEqual(result.failed, 2)
            self.assertEqual(result.failed_rows, [0, 1])
            self.assertFalse(result.to_dict()["ok"])

    def test_empty_batch(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = ExamYamlRepository(Path(temp_dir) / "data")
            result = commit_batch(repo, [], now=NOW)
            self.assertEqual((result.saved, result.failed), (0, 0))
            self.assertTrue(result.to_dict()["ok"])


if __name__ == "__main__":
    unittest.main()
