from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, render_template, request

from .availability import check_availability
from .batch import validate_batch
from .sheet_import import normalize_row, read_rows_from_csv
from .venues import load_venue_catalog
from .yaml_store import ExamStorageError, ExamYamlRepository, commit_batch, submit_exam


def create_app(
    data_dir: str | Path = "data",
    venues_file: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
) -> Flask:
    app = Flask(__name__)
    repository = ExamYamlRepository(data_dir)
    catalog = load_venue_catalog(venues_file)
    clock: Callable[[], datetime] = now_provider or datetime.now

    def _snapshot() -> list[Any]:
        try:
            return repository.list_all()
        except ExamStorageError:
            return []

    def _rows_from_payload(payload: dict[str, Any]) -> list[dict[str, Any]] | None:
        rows = payload.get("rows")
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            return None
        return [normalize_row(row) for row in rows]

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.get("/")
    def index() -> str:
        return render_template("index.html", venues=catalog.to_list())

    @app.get("/api/venues")
    def get_venues() -> Any:
        return jsonify({"ok": True, "venues": catalog.to_list()})

    @app.get("/api/exams")
    def get_exams() -> Any:
        exams = sorted(_snapshot(), key=lambda record: (record.date, record.start_time, record.venue))
        return jsonify({"ok": True, "exams": [record.to_dict() for record in exams]})

    @app.post("/api/exams")
    def create_exam() -> Any:
        payload = normalize_row(_json_object())
        result = submit_exam(repository, payload, now=clock())
        if result.ok:
            return jsonify(result.to_dict())
        if result.clashes:
            return jsonify(result.to_dict()), 409
        if result.errors:
            return jsonify(result.to_dict()), 400
        return jsonify(result.to_dict()), 503

    @app.post("/api/exams/delete")
    def delete_exam() -> Any:
        payload = _json_object()
        try:
            exam_id = int(str(payload.get("id", "")).strip())
        except ValueError:
            return jsonify({"ok": False, "message": "A numeric exam id is required."}), 400

        try:
            deleted = repository.delete_by_id(exam_id, now=clock())
        except ExamStorageError as error:
            return jsonify({"ok": False, "message": str(error)}), 503
        if not deleted:
            return jsonify({"ok": False, "message": "Exam not found."}), 404
        return jsonify({"ok": True, "id": exam_id})

    @app.post("/api/exams/clear")
    def clear_exams() -> Any:
        try:
            removed = repository.delete_all(now=clock())
        except ExamStorageError as error:
            return jsonify({"ok": False, "message": str(error)}), 503
        return jsonify({"ok": True, "removed": removed})

    @app.post("/api/availability")
    def availability() -> Any:
        payload = normalize_row(_json_object())
        report = check_availability(
            payload.get("date"),
            payload.get("start_time"),
            payload.get("end_time"),
            _coerce_int(payload.get("seats_required")),
            _snapshot(),
            catalog,
        )
        if not report.ok:
            return jsonify(report.to_dict()), 400
        return jsonify(report.to_dict())

    @app.post("/api/batch/validate")
    def batch_validate() -> Any:
        rows = _rows_from_payload(_json_object())
        if rows is None:
            return jsonify({"ok": False, "message": "rows must be a list of objects."}), 400

        validation = validate_batch(rows, _snapshot())
        return jsonify({"ok": True, **validation.to_dict()})

    @app.post("/api/batch/upload")
    def batch_upload() -> Any:
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return jsonify({"ok": False, "message": "A CSV file is required."}), 400

        try:
            rows = read_rows_from_csv(upload.stream)
        except (ValueError, UnicodeDecodeError) as error:
            return jsonify({"ok": False, "message": f"Could not read the uploaded file: {error}"}), 400

        validation = validate_batch(rows, _snapshot())
        return jsonify({"ok": True, "rows": rows, **validation.to_dict()})

    @app.post("/api/batch/commit")
    def batch_commit() -> Any:
        rows = _rows_from_payload(_json_object())
        if rows is None:
            return jsonify({"ok": False, "message": "rows must be a list of objects."}), 400

        result = commit_batch(repository, rows, now=clock())
        status = 503 if result.message is not None else 200
        return jsonify(result.to_dict()), status

    return app


def _json_object() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _coerce_int(value: Any) -> Any:
    if isinstance(value, bool) or isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return value


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
