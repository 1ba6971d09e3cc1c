"""ProgressPort: where pipeline stages announce how far along they are."""

from abc import ABC, abstractmethod
from typing import Optional


class ProgressPort(ABC):
    @abstractmethod
    def report(
        self,
        session_id: str,
        stage: str,
        progress: float = 0.0,
        detail: Optional[str] = None,
    ) -> None:
        """Record that ``stage`` of ``session_id`` reached ``progress`` (0.0-1.0).

        Stages: ingesting, role_identification, tag_assignment. A stage
        reports 0.0 when it starts and 1.0 once it has committed.
        """

    @abstractmethod
    def fail(self, session_id: str, stage: str, detail: Optional[str] = None) -> None:
        """Record that ``stage`` of ``session_id`` ended without committing."""
