"""Domain <-> store record mappers.

Store records use the persisted camelCase field names; the domain side is
the dataclasses in ``domain.models``.
"""

from typing import Any

from domain.models import Role, Session, Utterance


def _role(value: Any):
    if value is None:
        return None
    try:
        return Role(str(value).lower())
    except ValueError:
        return Role.UNKNOWN


def utterance_to_record(utt: Utterance) -> dict[str, Any]:
    """Convert a domain Utterance to a store record."""
    record = {
        "speakerId": utt.speaker_id,
        "text": utt.text,
        "startTime": utt.start_time,
        "endTime": utt.end_time,
        "order": utt.order,
        "role": utt.role.value if utt.role else None,
        "tag": utt.tag,
        "tagLabel": utt.tag_label,
        "feedback": utt.feedback,
    }
    if utt.id is not None:
        record["id"] = utt.id
    return record


def record_to_utterance(record: dict[str, Any]) -> Utterance:
    """Convert a store record to a domain Utterance."""
    return Utterance(
        id=record.get("id"),
        speaker_id=record["speakerId"],
        text=record.get("text") or "",
        start_time=float(record.get("startTime") or 0.0),
        end_time=float(record.get("endTime") or 0.0),
        order=int(record.get("order") or 0),
        role=_role(record.get("role")),
        tag=record.get("tag"),
        tag_label=record.get("tagLabel"),
        feedback=record.get("feedback"),
    )


def utterances_to_records(utterances: list[Utterance]) -> list[dict[str, Any]]:
    return [utterance_to_record(u) for u in utterances]


def records_to_utterances(records: list[dict[str, Any]]) -> list[Utterance]:
    return [record_to_utterance(r) for r in records]


def record_to_session(record: dict[str, Any]) -> Session:
    return Session(
        id=record["id"],
        mode=record.get("mode"),
        role_identification_json=record.get("roleIdentificationJson"),
        tag_counts=record.get("tagCounts"),
        pcit_coding=record.get("pcitCoding"),
        overall_score=record.get("overallScore"),
        competency_analysis=record.get("competencyAnalysis"),
    )
