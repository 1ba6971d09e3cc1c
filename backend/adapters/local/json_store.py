"""JsonFileStore: persists sessions and utterances in a single JSON file.

The file is re-read before and rewritten after every call, so several
processes (e.g. a retry run from the CLI) see each other's writes.
Layout: {"sessions": {id: record}, "utterances": {id: record}}.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from adapters.local.memory_store import InMemoryStore

logger = logging.getLogger(__name__)


class JsonFileStore(InMemoryStore):
    def __init__(self, path: str = "./data/store.json"):
        super().__init__()
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.debug(f"Store file {self._path} not found, starting empty")
            data = {}
        self._sessions = data.get("sessions", {})
        self._utterances = data.get("utterances", {})

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(
                    {"sessions": self._sessions, "utterances": self._utterances},
                    f, ensure_ascii=False, indent=2,
                )
            os.replace(tmp_path, self._path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _read(self, method, *args):
        with self._lock:
            self._load()
            return method(*args)

    def _write(self, method, *args):
        with self._lock:
            self._load()
            result = method(*args)
            self._save()
            return result

    def add_session(self, session_id: str, mode: Optional[str] = None, **fields: Any) -> dict[str, Any]:
        with self._lock:
            self._load()
            result = super().add_session(session_id, mode, **fields)
            self._save()
            return result

    def get_session(self, session_id: str) -> Optional[dict[str, Any]]:
        return self._read(super().get_session, session_id)

    def patch_session(self, session_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return self._write(super().patch_session, session_id, fields)

    def get_utterances(self, session_id: str) -> list[dict[str, Any]]:
        return self._read(super().get_utterances, session_id)

    def create_utterances(self, session_id: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return self._write(super().create_utterances, session_id, records)

    def patch_utterances_by_speaker(self, session_id: str, speaker_id: str, fields: dict[str, Any]) -> int:
        return self._write(super().patch_utterances_by_speaker, session_id, speaker_id, fields)

    def patch_utterance(self, utterance_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return self._write(super().patch_utterance, utterance_id, fields)
