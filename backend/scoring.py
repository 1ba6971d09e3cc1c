"""Tag counting and overall session scores.

Tag values are DPICS codes. CDI sessions are scored with the shield model
(PEN skills build a shield that negatives chip away at); PDI sessions are
scored by the share of effective (direct) commands.
"""

from typing import Dict, Iterable, Optional, Tuple

from domain.models import SessionMode

DPICS_TAG_LABELS: Dict[str, str] = {
    "RF": "Echo",              # reflection
    "RQ": "Echo",              # reflective question
    "LP": "Labeled Praise",
    "UP": "Unlabeled Praise",
    "BD": "Narration",         # behavioral description
    "DC": "Command",           # direct command
    "IC": "Command",           # indirect command
    "Q": "Question",
    "NTA": "Criticism",        # negative talk
    "ID": "Neutral",           # informational description
    "AK": "Neutral",           # acknowledgement
}

# code -> counters it increments
_CODE_COUNTERS: Dict[str, Tuple[str, ...]] = {
    "RF": ("echo",),
    "RQ": ("echo",),
    "LP": ("labeled_praise", "praise"),
    "UP": ("unlabeled_praise",),
    "BD": ("narration",),
    "DC": ("direct_command", "command"),
    "IC": ("indirect_command", "command"),
    "Q": ("question",),
    "NTA": ("criticism",),
    "ID": ("neutral",),
    "AK": ("neutral",),
}

TAG_COUNTERS = (
    "echo", "labeled_praise", "unlabeled_praise", "praise", "narration",
    "direct_command", "indirect_command", "command", "question", "criticism", "neutral",
)

# CDI shield model
BASE_SCORE = 60
MAX_SHIELD_POINTS = 40
SKILL_POINTS_FOR_MAX_SHIELD = 30
SKILL_TARGET = 10
MAX_DONTS = 3
PASS_CAP = 100
FAIL_CAP = 89

PDI_PASS_PERCENT = 75


def tag_label(code: str) -> str:
    """Display name for a DPICS code; unknown codes are shown as-is."""
    return DPICS_TAG_LABELS.get(code, code)


def count_tags(codes: Iterable[str]) -> Dict[str, int]:
    counts = {name: 0 for name in TAG_COUNTERS}
    for code in codes:
        for counter in _CODE_COUNTERS.get(code, ()):
            counts[counter] += 1
    return counts


def calculate_cdi_score(tag_counts: Dict[str, int]) -> Tuple[int, bool]:
    praise = tag_counts.get("praise", 0)
    echo = tag_counts.get("echo", 0)
    narration = tag_counts.get("narration", 0)
    negatives = tag_counts.get("question", 0) + tag_counts.get("command", 0) + tag_counts.get("criticism", 0)

    effective = min(praise, SKILL_TARGET) + min(echo, SKILL_TARGET) + min(narration, SKILL_TARGET)
    shield = effective * (MAX_SHIELD_POINTS / SKILL_POINTS_FOR_MAX_SHIELD)
    damage_per_hit = SKILL_TARGET / 3
    hits_to_break = shield / damage_per_hit

    if negatives <= hits_to_break:
        raw = BASE_SCORE + shield - negatives * damage_per_hit
    else:
        # shield broken: back to base, one point per remaining negative
        raw = BASE_SCORE - (negatives - hits_to_break)

    passed = (
        praise >= SKILL_TARGET
        and echo >= SKILL_TARGET
        and narration >= SKILL_TARGET
        and negatives <= MAX_DONTS
    )
    score = min(raw, PASS_CAP if passed else FAIL_CAP)
    return round(max(score, 0)), passed


def calculate_pdi_score(tag_counts: Dict[str, int]) -> Tuple[int, bool]:
    total = (
        tag_counts.get("direct_command", 0)
        + tag_counts.get("indirect_command", 0)
        + tag_counts.get("vague_command", 0)
        + tag_counts.get("chained_command", 0)
    )
    effective = tag_counts.get("direct_command", 0)
    score = round(effective / total * 100) if total else 0
    return score, score >= PDI_PASS_PERCENT


def calculate_score(tag_counts: Dict[str, int], mode: Optional[str]) -> Tuple[int, bool]:
    """Return (score 0-100, passed). Any mode other than CDI is scored as PDI."""
    if mode == SessionMode.CDI.value:
        return calculate_cdi_score(tag_counts)
    return calculate_pdi_score(tag_counts)
