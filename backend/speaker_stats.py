"""Derived per-speaker views over a session's utterances.

Nothing here is persisted; every function can be re-run on the current
utterance set at any time.
"""

import logging
from typing import Dict, List, Optional, Sequence

from domain.models import SilentSlot, SpeakerStatistics, Utterance
from segmentation import SENTENCE_TERMINALS

logger = logging.getLogger(__name__)

DEFAULT_SILENCE_THRESHOLD = 3.0


def _character_count(text: str) -> int:
    return sum(1 for ch in text if ch not in SENTENCE_TERMINALS)


def compute_speaker_statistics(utterances: Sequence[Utterance]) -> Dict[str, SpeakerStatistics]:
    """Compute utterance count, talk time and character count per speaker.

    Averages are filled in after every utterance has been folded in.
    Keys follow the order in which speakers first appear.
    """
    stats: Dict[str, SpeakerStatistics] = {}

    for utt in utterances:
        entry = stats.get(utt.speaker_id)
        if entry is None:
            entry = stats[utt.speaker_id] = SpeakerStatistics(speaker_id=utt.speaker_id)
        entry.utterance_count += 1
        entry.total_duration_seconds += utt.end_time - utt.start_time
        entry.character_count += _character_count(utt.text)

    for entry in stats.values():
        entry.avg_utterance_duration_seconds = entry.total_duration_seconds / entry.utterance_count

    return stats


def extract_silent_slots(
    utterances: Sequence[Utterance],
    threshold: float = DEFAULT_SILENCE_THRESHOLD,
    recording_duration: Optional[float] = None,
) -> List[SilentSlot]:
    """Find stretches without speech of at least ``threshold`` seconds.

    Args:
        utterances: Utterances sorted by start time.
        threshold: Minimum gap length in seconds.
        recording_duration: Total recording length; enables trailing silence.

    Returns:
        Silent slots in time order. ``after_index`` is the index of the
        utterance preceding the gap, -1 for leading silence.
    """
    slots: List[SilentSlot] = []
    if not utterances:
        return slots

    first = utterances[0]
    if first.start_time > threshold:
        slots.append(SilentSlot(start=0.0, end=first.start_time, duration=first.start_time, after_index=-1))

    for i in range(len(utterances) - 1):
        gap_start = utterances[i].end_time
        gap_end = utterances[i + 1].start_time
        if gap_end - gap_start >= threshold:
            slots.append(SilentSlot(start=gap_start, end=gap_end, duration=gap_end - gap_start, after_index=i))

    if recording_duration:
        last_end = utterances[-1].end_time
        trailing = recording_duration - last_end
        if trailing >= threshold:
            slots.append(SilentSlot(
                start=last_end, end=recording_duration, duration=trailing, after_index=len(utterances) - 1,
            ))

    logger.info(f"Found {len(slots)} silent slots (threshold: {threshold}s)")
    return slots
