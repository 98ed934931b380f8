import json
import threading
from typing import Union

from pydantic import ValidationError as SchemaValidationError

from prothomuse.errors import DecodeError
from prothomuse.schemas import TelemetryRecord


def decode_frame(raw: Union[str, bytes]) -> TelemetryRecord:
    """
    Parse one inbound frame into a TelemetryRecord.

    Expected shape:
    {"projectId", "route", "method", "statusCode", "responseTime", "timestamp"}
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as exc:
        raise DecodeError(f"Frame is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise DecodeError("Frame must be a JSON object")

    try:
        return TelemetryRecord.model_validate(payload)
    except SchemaValidationError as exc:
        raise DecodeError(f"Frame has invalid fields: {exc.error_count()} error(s)") from exc


class TelemetryBuffer:
    """
    Append-only in-memory record of everything ingested since startup.

    Shared by all streaming connections and the live read endpoints. A single
    lock covers each append and each snapshot so readers never see a torn
    append. Growth is unbounded; the database is the system of record and
    this is a fast debugging view.
    """

    def __init__(self):
        self._records: list[TelemetryRecord] = []
        self._lock = threading.Lock()

    def append(self, record: TelemetryRecord) -> None:
        with self._lock:
            self._records.append(record)

    def all(self) -> list[TelemetryRecord]:
        """Snapshot in insertion order."""
        with self._lock:
            return list(self._records)

    def by_project(self, project_id: str) -> list[TelemetryRecord]:
        # Linear scan; no per-project index
        return [record for record in self.all() if record.project_id == project_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
