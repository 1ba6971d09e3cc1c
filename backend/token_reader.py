"""Token Stream Reader: normalises raw recognition output into tokens.

Supported providers:
    elevenlabs: word/spacing/audio_event entries, times in seconds.
    assemblyai: word entries with letter speakers, times in milliseconds.
"""

import logging
from typing import Any, Dict

from pydantic import ValidationError

from domain.models import Token, TokenKind, TokenStream
from errors import TokenFormatError
from models import AssemblyAITranscript, ElevenLabsTranscript

logger = logging.getLogger(__name__)

PROVIDERS = ("elevenlabs", "assemblyai")


def _assemblyai_speaker(label: str | None) -> str:
    """A -> speaker_0, B -> speaker_1, ..."""
    label = (label or "").strip()
    if not label:
        return "speaker_0"
    return f"speaker_{ord(label[0].upper()) - ord('A')}"


def _read_elevenlabs(payload: Dict[str, Any]) -> TokenStream:
    transcript = ElevenLabsTranscript.model_validate(payload)
    tokens = []
    for word in transcript.words:
        kind = TokenKind.SPACING if word.type == "spacing" else TokenKind.WORD
        tokens.append(Token(
            text=word.text,
            kind=kind,
            speaker_id=word.speaker_id,
            start=word.start,
            end=word.end,
        ))
    return TokenStream(tokens=tokens, language_code=transcript.language_code)


def _read_assemblyai(payload: Dict[str, Any]) -> TokenStream:
    transcript = AssemblyAITranscript.model_validate(payload)
    tokens = [
        Token(
            text=word.text,
            kind=TokenKind.WORD,
            speaker_id=_assemblyai_speaker(word.speaker),
            start=word.start / 1000,
            end=word.end / 1000,
        )
        for word in transcript.words
    ]
    return TokenStream(tokens=tokens, language_code=transcript.language_code)


_READERS = {
    "elevenlabs": _read_elevenlabs,
    "assemblyai": _read_assemblyai,
}


def read_token_stream(payload: Dict[str, Any], provider: str = "elevenlabs") -> TokenStream:
    """Read a provider response into an ordered TokenStream.

    Token order is the order of the provider's word list.

    Raises:
        ValueError: unknown provider.
        TokenFormatError: the payload does not match the provider format.
    """
    reader = _READERS.get(provider)
    if reader is None:
        raise ValueError(f"Unknown provider: {provider!r}. Valid options: {', '.join(PROVIDERS)}")
    if not isinstance(payload, dict):
        raise TokenFormatError(f"{provider} payload must be a JSON object, got {type(payload).__name__}")

    try:
        stream = reader(payload)
    except ValidationError as e:
        raise TokenFormatError(f"Malformed {provider} transcript: {e}") from e

    logger.info(f"Read {len(stream.tokens)} tokens from {provider} (language={stream.language_code})")
    return stream
