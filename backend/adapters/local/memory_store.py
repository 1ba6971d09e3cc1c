"""InMemoryStore: dict-backed persistence for development and tests."""

import copy
import logging
import threading
import uuid
from typing import Any, Optional

from errors import NotFoundError
from ports.persistence import PersistencePort

logger = logging.getLogger(__name__)

SESSION_FIELDS = (
    "mode", "roleIdentificationJson", "tagCounts", "pcitCoding", "overallScore", "competencyAnalysis",
)
UTTERANCE_STAGE_FIELDS = ("role", "tag", "tagLabel", "feedback")


class InMemoryStore(PersistencePort):
    """Keeps sessions and utterances in memory. Every call returns copies."""

    def __init__(self):
        self._lock = threading.RLock()
        self._sessions: dict[str, dict[str, Any]] = {}
        self._utterances: dict[str, dict[str, Any]] = {}

    def add_session(self, session_id: str, mode: Optional[str] = None, **fields: Any) -> dict[str, Any]:
        """Seed a session record. Not part of the port: sessions are owned elsewhere."""
        with self._lock:
            record = {name: None for name in SESSION_FIELDS}
            record.update(fields)
            record["id"] = session_id
            record["mode"] = mode
            self._sessions[session_id] = record
            return copy.deepcopy(record)

    def get_session(self, session_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            record = self._sessions.get(session_id)
            return copy.deepcopy(record) if record is not None else None

    def patch_session(self, session_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                raise NotFoundError(f"Session {session_id} not found", session_id=session_id)
            record.update(copy.deepcopy(fields))
            return copy.deepcopy(record)

    def get_utterances(self, session_id: str) -> list[dict[str, Any]]:
        with self._lock:
            records = [u for u in self._utterances.values() if u["sessionId"] == session_id]
            records.sort(key=lambda u: u.get("order", 0))
            return copy.deepcopy(records)

    def create_utterances(self, session_id: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        with self._lock:
            created = []
            for record in records:
                stored = {name: None for name in UTTERANCE_STAGE_FIELDS}
                stored.update(copy.deepcopy(record))
                stored["id"] = stored.get("id") or uuid.uuid4().hex
                stored["sessionId"] = session_id
                self._utterances[stored["id"]] = stored
                created.append(copy.deepcopy(stored))
            logger.debug(f"Created {len(created)} utterances for session {session_id}")
            return created

    def patch_utterances_by_speaker(self, session_id: str, speaker_id: str, fields: dict[str, Any]) -> int:
        with self._lock:
            count = 0
            for record in self._utterances.values():
                if record["sessionId"] == session_id and record.get("speakerId") == speaker_id:
                    record.update(copy.deepcopy(fields))
                    count += 1
            return count

    def patch_utterance(self, utterance_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            record = self._utterances.get(utterance_id)
            if record is None:
                raise NotFoundError(f"Utterance {utterance_id} not found")
            record.update(copy.deepcopy(fields))
            return copy.deepcopy(record)
