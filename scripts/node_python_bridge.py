from __future__ import annotations

import json
from pathlib import Path
import sys


def _read_payload() -> dict:
    raw = sys.stdin.read().strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
        if isinstance(data, dict):
            return data
        return {}
    except json.JSONDecodeError:
        return {}


def _emit(status_code: int, payload: dict) -> None:
    print(json.dumps({"status": status_code, "json": payload}))


ROUTES = {
    "venues": ("GET", "/api/venues"),
    "exams": ("GET", "/api/exams"),
    "submit": ("POST", "/api/exams"),
    "delete": ("POST", "/api/exams/delete"),
    "availability": ("POST", "/api/availability"),
    "validate": ("POST", "/api/batch/validate"),
    "commit": ("POST", "/api/batch/commit"),
}


def main() -> int:
    if len(sys.argv) < 2:
        print("missing action", file=sys.stderr)
        return 2

    action = sys.argv[1]
    if action not in ROUTES:
        print(f"unsupported action: {action}", file=sys.stderr)
        return 2
    payload = _read_payload()

    workspace_root = Path(__file__).resolve().parent.parent
    if str(workspace_root) not in sys.path:
        sys.path.insert(0, str(workspace_root))

    from exam_booking.web_app import create_app

    app = create_app("data")
    client = app.test_client()

    method, path = ROUTES[action]
    if method == "GET":
        response = client.get(path)
    else:
        response = client.post(path, json=payload)
    _emit(response.status_code, response.get_json() or {})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
