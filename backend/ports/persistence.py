"""PersistencePort: abstract interface for the session and utterance store.

Records are plain dicts with the store's camelCase field names
(``speakerId``, ``startTime``, ``roleIdentificationJson``...). The store
offers no transactions across calls.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class PersistencePort(ABC):
    @abstractmethod
    def get_session(self, session_id: str) -> Optional[dict[str, Any]]:
        """Return the session record, or None if it does not exist."""

    @abstractmethod
    def patch_session(self, session_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Update the given session fields. Returns the updated record."""

    @abstractmethod
    def get_utterances(self, session_id: str) -> list[dict[str, Any]]:
        """Return the session's utterance records ordered by ``order``."""

    @abstractmethod
    def create_utterances(self, session_id: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert utterance records. Returns them with their assigned ids."""

    @abstractmethod
    def patch_utterances_by_speaker(self, session_id: str, speaker_id: str, fields: dict[str, Any]) -> int:
        """Update every utterance of one speaker. Returns the number updated."""

    @abstractmethod
    def patch_utterance(self, utterance_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Update one utterance by id. Returns the updated record."""
