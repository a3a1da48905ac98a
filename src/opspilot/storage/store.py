"""Incident and audit storage: in-memory with optional file persistence."""

import json
import logging
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from opspilot.errors import IncidentStateError
from opspilot.models import AuditEntry, Incident, IncidentStatus, utc_now

logger = logging.getLogger(__name__)

_INCIDENTS_FILE = "incidents.json"
_AUDIT_FILE = "audit_trail.json"
_TERMINAL_STATUSES = {s.value for s in IncidentStatus if s.is_terminal}


class _JsonFileBacked:
    """
    In-memory list of records. If data_dir is set, records are loaded on init
    and saved after each mutation.
    """

    filename = ""

    def __init__(self, data_dir: str | None = None) -> None:
        self._data_dir = Path(data_dir) if data_dir else None
        self._records: list[dict] = []
        self._lock = threading.Lock()
        if self._data_dir and self._data_dir.is_dir():
            self._load()

    def _load(self) -> None:
        path = self._data_dir / self.filename
        if not path.is_file():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load %s: %s", path, e)
            return
        if isinstance(data, list):
            self._records = data

    def _save(self) -> None:
        if not self._data_dir:
            return
        self._data_dir.mkdir(parents=True, exist_ok=True)
        path = self._data_dir / self.filename
        try:
            path.write_text(json.dumps(self._records, indent=0), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write %s: %s", path, e)


class IncidentStore(_JsonFileBacked):
    """Incidents keyed by id; `update_status` also records `updated_at` and details."""

    filename = _INCIDENTS_FILE

    def _index(self, incident_id: str) -> int | None:
        for i, record in enumerate(self._records):
            if record.get("id") == incident_id:
                return i
        return None

    def save(self, incident: Incident) -> None:
        """Insert or replace an incident. Resolved and failed records are never replaced."""
        payload = incident.model_dump(mode="json")
        with self._lock:
            i = self._index(incident.id)
            if i is None:
                self._records.append(payload)
            else:
                stored = self._records[i].get("status")
                if stored in _TERMINAL_STATUSES:
                    raise IncidentStateError(f"Incident {incident.id} is already {stored}")
                self._records[i] = payload
            self._save()

    def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        details: dict[str, Any] | None = None,
    ) -> None:
        with self._lock:
            i = self._index(incident_id)
            if i is None:
                raise KeyError(f"Unknown incident {incident_id}")
            record = self._records[i]
            record["status"] = IncidentStatus(status).value
            record["updated_at"] = utc_now().isoformat()
            if details:
                record["status_details"] = details
            self._save()

    def get(self, incident_id: str) -> Incident | None:
        """Return a stored incident by id, or None (also None if the record is invalid)."""
        with self._lock:
            i = self._index(incident_id)
            record = self._records[i] if i is not None else None
        if record is None:
            return None
        try:
            return Incident.model_validate(record)
        except ValidationError:
            logger.warning("Stored incident %s is invalid", incident_id)
            return None

    def list_open(self) -> list[Incident]:
        with self._lock:
            records = list(self._records)
        incidents = []
        for record in records:
            try:
                incident = Incident.model_validate(record)
            except ValidationError:
                continue
            if not incident.status.is_terminal:
                incidents.append(incident)
        return incidents


class AuditLog(_JsonFileBacked):
    """Append-only audit trail."""

    filename = _AUDIT_FILE

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._records.append(entry.model_dump(mode="json"))
            self._save()

    def get_trail(self, incident_id: str) -> list[AuditEntry]:
        """Entries for the incident, oldest first."""
        with self._lock:
            records = [r for r in self._records if r.get("incident_id") == incident_id]
        entries = [AuditEntry.model_validate(r) for r in records]
        entries.sort(key=lambda e: e.timestamp)
        return entries
