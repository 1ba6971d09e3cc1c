from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from domain.models import Role


class ElevenLabsWord(BaseModel):
    """A word entry from an ElevenLabs speech-to-text response"""
    text: str
    type: str = "word"
    speaker_id: Optional[str] = None
    start: float = 0.0
    end: float = 0.0


class ElevenLabsTranscript(BaseModel):
    language_code: Optional[str] = None
    words: List[ElevenLabsWord] = []


class AssemblyAIWord(BaseModel):
    """A word entry from an AssemblyAI transcript. Times are milliseconds."""
    text: str
    speaker: Optional[str] = None
    start: int = 0
    end: int = 0
    confidence: Optional[float] = None


class AssemblyAITranscript(BaseModel):
    language_code: Optional[str] = None
    words: List[AssemblyAIWord] = []


_ROLE_ALIASES = {
    "child": Role.CHILD,
    "parent": Role.PARENT,
    "adult": Role.PARENT,
    "unknown": Role.UNKNOWN,
}


class SpeakerRole(BaseModel):
    """Role assigned to one speaker by the classifier."""
    role: Role
    confidence: float = Field(ge=0.0, le=1.0)
    utterance_count: Optional[int] = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, value):
        if not isinstance(value, str):
            raise ValueError("role must be a string")
        role = _ROLE_ALIASES.get(value.strip().lower())
        if role is None:
            raise ValueError(f"unknown role label {value!r}")
        return role


class RoleIdentification(BaseModel):
    speaker_identification: Dict[str, SpeakerRole]

    @field_validator("speaker_identification")
    @classmethod
    def _not_empty(cls, value):
        if not value:
            raise ValueError("speaker_identification is empty")
        return value


class TagAssignment(BaseModel):
    """One coded utterance. ``id`` is the index inside the request batch."""
    id: int = Field(ge=0)
    code: str = Field(min_length=1)
    feedback: Optional[str] = None

    @field_validator("code")
    @classmethod
    def _strip_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("code is blank")
        return value
