"""Progress adapters that need no external service."""

import logging
import time
from typing import Optional

from ports.progress import ProgressPort

logger = logging.getLogger(__name__)


class LogProgressAdapter(ProgressPort):
    """Logs stage starts and completions at INFO, intermediate steps at DEBUG.

    Completion lines include the time since the stage started.
    """

    def __init__(self):
        self._started: dict[tuple[str, str], float] = {}

    def report(
        self,
        session_id: str,
        stage: str,
        progress: float = 0.0,
        detail: Optional[str] = None,
    ) -> None:
        key = (session_id, stage)
        prefix = f"[{session_id[:8]}] {stage}"
        suffix = f": {detail}" if detail else ""

        if progress <= 0.0:
            self._started[key] = time.monotonic()
            logger.info(f"{prefix} started{suffix}")
        elif progress >= 1.0:
            started = self._started.pop(key, None)
            elapsed = f" in {time.monotonic() - started:.1f}s" if started is not None else ""
            logger.info(f"{prefix} finished{elapsed}{suffix}")
        else:
            logger.debug(f"{prefix} {progress:.0%}{suffix}")

    def fail(self, session_id: str, stage: str, detail: Optional[str] = None) -> None:
        started = self._started.pop((session_id, stage), None)
        elapsed = f" after {time.monotonic() - started:.1f}s" if started is not None else ""
        logger.warning(f"[{session_id[:8]}] {stage} failed{elapsed}" + (f": {detail}" if detail else ""))


class NullProgressAdapter(ProgressPort):
    """Discards progress reports."""

    def report(self, session_id, stage, progress=0.0, detail=None) -> None:
        return None

    def fail(self, session_id, stage, detail=None) -> None:
        return None
