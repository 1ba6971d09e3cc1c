"""Framework-agnostic domain models for session analysis.

Recognition tokens come in, utterances go out of the segmenter and into the
persistence port, statistics are derived views. Persistence records and
classification payloads stay at the boundary (see ``mappers`` and
``models``).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class TokenKind(str, Enum):
    WORD = "word"
    SPACING = "spacing"


class Role(str, Enum):
    CHILD = "child"
    PARENT = "parent"
    UNKNOWN = "unknown"


class SessionMode(str, Enum):
    CDI = "CDI"
    PDI = "PDI"


@dataclass(frozen=True)
class Token:
    """A single timestamped unit of recognition output."""
    text: str
    kind: TokenKind
    speaker_id: Optional[str]
    start: float
    end: float


@dataclass
class TokenStream:
    """Ordered tokens for one session plus recognition metadata."""
    tokens: list[Token] = field(default_factory=list)
    language_code: Optional[str] = None


@dataclass
class Utterance:
    """A contiguous span of text attributed to one speaker."""
    speaker_id: str
    text: str
    start_time: float
    end_time: float
    id: Optional[str] = None
    order: int = 0
    role: Optional[Role] = None
    tag: Optional[str] = None
    tag_label: Optional[str] = None
    feedback: Optional[str] = None


@dataclass
class SpeakerStatistics:
    speaker_id: str
    utterance_count: int = 0
    total_duration_seconds: float = 0.0
    character_count: int = 0
    avg_utterance_duration_seconds: float = 0.0


@dataclass
class SilentSlot:
    """A gap without speech. ``after_index`` is -1 for leading silence."""
    start: float
    end: float
    duration: float
    after_index: int


@dataclass
class Session:
    """The slice of the external session entity the pipeline reads and patches."""
    id: str
    mode: Optional[str] = None
    role_identification_json: Optional[dict[str, Any]] = None
    tag_counts: Optional[dict[str, int]] = None
    pcit_coding: Optional[dict[str, Any]] = None
    overall_score: Optional[int] = None
    competency_analysis: Optional[dict[str, Any]] = None
