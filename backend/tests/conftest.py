import sys
from pathlib import Path
from typing import Optional

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from adapters.local.memory_store import InMemoryStore  # noqa: E402
from ports.classification import ClassificationPort  # noqa: E402
from ports.progress import ProgressPort  # noqa: E402


class ScriptedClassifier(ClassificationPort):
    """Returns queued responses in order and records every request."""

    def __init__(self, responses=None, configured: bool = True):
        self.responses = list(responses or [])
        self.calls = []
        self.configured = configured

    def classify(self, prompt: str, system_prompt: Optional[str] = None, max_tokens: int = 2048,
                 temperature: float = 0.0) -> str:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "temperature": temperature})
        if not self.responses:
            raise AssertionError("classifier called more times than scripted")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def is_configured(self) -> bool:
        return self.configured

    def model_name(self) -> str:
        return "scripted"


class RecordingProgress(ProgressPort):
    def __init__(self):
        self.events = []
        self.failures = []

    def report(self, session_id, stage, progress=0.0, detail=None):
        self.events.append((session_id, stage, progress, detail))

    def fail(self, session_id, stage, detail=None):
        self.failures.append((session_id, stage, detail))


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setenv("DEBUG", "0")


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def progress() -> RecordingProgress:
    return RecordingProgress()


@pytest.fixture
def make_classifier():
    def _make(*responses, configured: bool = True) -> ScriptedClassifier:
        return ScriptedClassifier(responses, configured=configured)
    return _make


@pytest.fixture
def seeded_session(store: InMemoryStore) -> str:
    """A CDI session with four utterances from a child and a parent."""
    session_id = "session-0001"
    store.add_session(session_id, mode="CDI")
    store.create_utterances(session_id, [
        {"speakerId": "speaker_0", "text": "I want the red block.", "startTime": 0.0, "endTime": 1.5, "order": 0},
        {"speakerId": "speaker_1", "text": "You want the red block.", "startTime": 1.6, "endTime": 3.0, "order": 1},
        {"speakerId": "speaker_1", "text": "Great job stacking them!", "startTime": 3.2, "endTime": 4.4, "order": 2},
        {"speakerId": "speaker_0", "text": "Look!", "startTime": 4.5, "endTime": 5.0, "order": 3},
    ])
    return session_id
