"""Utterance segmentation for recognition token streams.

Tokens are folded into utterances with an explicit accumulator. A boundary
is placed on a speaker change or after a token that ends with
sentence-terminal punctuation. Output order always equals token order.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple

from domain.models import Token, TokenKind, Utterance
from errors import EmptyInputError

logger = logging.getLogger(__name__)

SENTENCE_TERMINALS = (".", "!", "?", "。", "！", "？")
UNKNOWN_SPEAKER = "speaker_unknown"

# Sound effects and background noises, e.g. "(laughter)".
_ANNOTATION_PATTERN = re.compile(r"\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class _Accumulator:
    speaker: Optional[str] = None
    text: str = ""
    start: Optional[float] = None
    end: Optional[float] = None

    def has_text(self) -> bool:
        return bool(self.text.strip())


_EMPTY = _Accumulator()


def _is_cjk(char: str) -> bool:
    code = ord(char)
    return (
        0x3000 <= code <= 0x303F      # CJK symbols and punctuation
        or 0x3040 <= code <= 0x30FF   # kana
        or 0x3400 <= code <= 0x4DBF
        or 0x4E00 <= code <= 0x9FFF
        or 0xF900 <= code <= 0xFAFF
        or 0xFF00 <= code <= 0xFFEF   # full-width forms
    )


def _join(text: str, piece: str) -> str:
    """Append a token's text, separating with a space only between non-CJK words."""
    if not text or not piece:
        return text + piece
    first, last = piece[0], text[-1]
    if last.isspace() or first.isspace():
        return text + piece
    if unicodedata.category(first).startswith("P") and first not in "([{\"'":
        return text + piece
    if _is_cjk(last) or _is_cjk(first):
        return text + piece
    return f"{text} {piece}"


def _step(acc: _Accumulator, token: Token) -> Tuple[_Accumulator, List[_Accumulator]]:
    """Fold one token into the accumulator. Returns (next accumulator, completed spans)."""
    if token.kind is TokenKind.SPACING:
        return acc, []

    completed: List[_Accumulator] = []

    if acc.speaker is None:
        acc = replace(acc, speaker=token.speaker_id, start=token.start)

    if token.speaker_id != acc.speaker and acc.has_text():
        completed.append(replace(acc, end=token.start))
        acc = _Accumulator(speaker=token.speaker_id, start=token.start)

    acc = replace(acc, text=_join(acc.text, token.text), end=token.end)

    if token.text.endswith(SENTENCE_TERMINALS) and acc.has_text():
        completed.append(acc)
        acc = _EMPTY

    return acc, completed


def remove_annotations(text: str) -> str:
    """Drop parenthesised annotations and collapse whitespace.

    "Hello (laughter) there" -> "Hello there"
    """
    return _WHITESPACE.sub(" ", _ANNOTATION_PATTERN.sub("", text)).strip()


def segment_utterances(tokens: Iterable[Token], strip_annotations: bool = True) -> List[Utterance]:
    """Group an ordered token sequence into utterances.

    Args:
        tokens: Tokens for one session, in stream order.
        strip_annotations: Remove "(...)" annotations from utterance text.
            Utterances left with no text are dropped.

    Returns:
        Utterances in token order, ``order`` numbered from 0.

    Raises:
        EmptyInputError: the token sequence is empty.
    """
    tokens = list(tokens)
    if not tokens:
        raise EmptyInputError("No tokens to segment")

    acc = _EMPTY
    spans: List[_Accumulator] = []
    for token in tokens:
        acc, completed = _step(acc, token)
        spans.extend(completed)
    if acc.has_text():
        spans.append(acc)

    utterances: List[Utterance] = []
    for span in spans:
        text = remove_annotations(span.text) if strip_annotations else span.text.strip()
        if not text:
            logger.debug(f"Dropping annotation-only span at {span.start:.2f}s: {span.text!r}")
            continue
        start = span.start if span.start is not None else 0.0
        end = span.end if span.end is not None else start
        utterances.append(Utterance(
            speaker_id=span.speaker or UNKNOWN_SPEAKER,
            text=text,
            start_time=start,
            end_time=max(start, end),
            order=len(utterances),
        ))

    logger.info(f"Segmented {len(tokens)} tokens into {len(utterances)} utterances")
    return utterances


def format_utterances_as_text(utterances: List[Utterance]) -> str:
    """Render utterances as numbered transcript lines for storage or prompts."""
    lines = []
    for idx, utt in enumerate(utterances, start=1):
        time_range = f"{utt.start_time:.2f}-{utt.end_time:.2f}s"
        lines.append(f"[{idx:02d}] {utt.speaker_id} | {time_range:<14} | {utt.text}")
    return "\n".join(lines)
