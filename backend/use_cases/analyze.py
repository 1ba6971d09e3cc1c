"""AnalyzeSessionUseCase: runs the classification stages over one session.

Stages run in a fixed order (role identification, then tag assignment).
Each stage re-reads the session and its utterances from the persistence
port, so any stage can be re-run on its own after a failure.

A stage writes its utterance patches as one concurrent batch and only then
patches the session. The session patch is the commit marker: a stage that
failed part way leaves the session field from the previous successful run,
and tag assignment refuses to run over utterance roles that do not match it.
"""

import json
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from domain.models import Role, Session, Utterance
from errors import (
    AnalysisError, ConfigurationError, EmptyInputError, IncompleteStageError, NotFoundError,
)
from mappers import record_to_session, records_to_utterances
from models import TagAssignment
from ports.classification import ClassificationPort
from ports.persistence import PersistencePort
from ports.progress import ProgressPort
from prompts import render_prompt
from response_parsing import parse_role_payload, parse_tag_assignments
from scoring import calculate_score, count_tags, tag_label

logger = logging.getLogger(__name__)

STAGE_ROLE_IDENTIFICATION = "role_identification"
STAGE_TAG_ASSIGNMENT = "tag_assignment"
STAGES = (STAGE_ROLE_IDENTIFICATION, STAGE_TAG_ASSIGNMENT)


@dataclass
class AnalysisOptions:
    """Tunables for a pipeline run."""
    role_sample_size: int = 40
    tag_batch_size: int = 200
    patch_workers: int = 8
    max_tokens: int = 8192
    role_temperature: float = 0.3
    tag_temperature: float = 0.0


@dataclass
class StageOutcome:
    stage: str
    run_id: str
    patched: int = 0
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineResult:
    session_id: str
    stages: list[StageOutcome] = field(default_factory=list)

    @property
    def completed(self) -> list[str]:
        return [outcome.stage for outcome in self.stages]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _role_value(utt: Utterance) -> Optional[str]:
    return utt.role.value if utt.role else None


class AnalyzeSessionUseCase:
    def __init__(
        self,
        persistence: PersistencePort,
        classifier: ClassificationPort,
        progress: ProgressPort,
        options: Optional[AnalysisOptions] = None,
    ):
        self._persistence = persistence
        self._classifier = classifier
        self._progress = progress
        self._options = options or AnalysisOptions()
        self._stages: dict[str, Callable[[Session, list[Utterance]], StageOutcome]] = {
            STAGE_ROLE_IDENTIFICATION: self._identify_roles,
            STAGE_TAG_ASSIGNMENT: self._assign_tags,
        }

    def run(self, session_id: str, start_stage: str = STAGE_ROLE_IDENTIFICATION) -> PipelineResult:
        """Run every stage from ``start_stage`` to the end of the sequence."""
        if start_stage not in STAGES:
            raise ValueError(f"Unknown stage {start_stage!r}; expected one of {', '.join(STAGES)}")

        result = PipelineResult(session_id=session_id)
        for stage in STAGES[STAGES.index(start_stage):]:
            result.stages.append(self.run_stage(session_id, stage))
        logger.info(f"[{session_id[:8]}] Pipeline finished: {', '.join(result.completed)}")
        return result

    def run_stage(self, session_id: str, stage_name: str) -> StageOutcome:
        """Run exactly one stage against the currently persisted state."""
        handler = self._stages.get(stage_name)
        if handler is None:
            raise ValueError(f"Unknown stage {stage_name!r}; expected one of {', '.join(STAGES)}")

        try:
            session, utterances = self._load(session_id)
            self._progress.report(session_id, stage_name, detail=f"{len(utterances)} utterances")
            outcome = handler(session, utterances)
        except AnalysisError as e:
            e.with_context(session_id=session_id, stage=stage_name)
            logger.error(f"Stage failed: {e}")
            self._progress.fail(session_id, stage_name, detail=type(e).__name__)
            raise
        except Exception as e:
            logger.error(f"[{session_id[:8]}] {stage_name} failed unexpectedly: {e}")
            self._progress.fail(session_id, stage_name, detail=type(e).__name__)
            raise AnalysisError(
                f"{stage_name} failed: {e}", session_id=session_id, stage=stage_name,
            ) from e

        self._progress.report(session_id, stage_name, progress=1.0, detail=f"done (run {outcome.run_id[:8]})")
        return outcome

    def _load(self, session_id: str) -> tuple[Session, list[Utterance]]:
        record = self._persistence.get_session(session_id)
        if record is None:
            raise NotFoundError(f"Session {session_id} not found")

        utterances = records_to_utterances(self._persistence.get_utterances(session_id))
        if not utterances:
            raise EmptyInputError(f"Session {session_id} has no utterances")

        if not self._classifier.is_configured():
            raise ConfigurationError("Classification service credentials are not configured")

        return record_to_session(record), utterances

    def _run_batch(self, session_id: str, stage: str, calls: list[tuple[Callable, tuple]]) -> list[Any]:
        """Issue independent patch calls concurrently.

        Every call is awaited; if any failed, the first failure (in submission
        order) is raised once the whole batch has settled.
        """
        if not calls:
            return []

        results: list[Any] = []
        errors: list[Exception] = []
        workers = max(1, min(self._options.patch_workers, len(calls)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(fn, *args) for fn, args in calls]
            for future in futures:
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.warning(f"[{session_id[:8]}] {stage} patch failed: {e}")
                    errors.append(e)

        if errors:
            logger.error(f"[{session_id[:8]}] {stage}: {len(errors)}/{len(calls)} patches failed, stage not committed")
            raise errors[0]
        return results

    # ---- Role identification ----

    def _identify_roles(self, session: Session, utterances: list[Utterance]) -> StageOutcome:
        sample = utterances[:self._options.role_sample_size]
        turns = [
            {"speaker": u.speaker_id, "text": u.text, "start": round(u.start_time, 2), "end": round(u.end_time, 2)}
            for u in sample
        ]
        prompt = render_prompt(
            "role_identification",
            UTTERANCE_COUNT=len(turns),
            UTTERANCES_JSON=json.dumps(turns, ensure_ascii=False, indent=2),
        )

        logger.info(f"[{session.id[:8]}] Identifying roles from {len(sample)}/{len(utterances)} utterances")
        raw = self._classifier.classify(
            prompt, max_tokens=self._options.max_tokens, temperature=self._options.role_temperature,
        )
        payload, identification = parse_role_payload(raw)
        labelled = identification.speaker_identification

        speakers = list(dict.fromkeys(u.speaker_id for u in utterances))
        role_map = {
            speaker: (labelled[speaker].role if speaker in labelled else Role.UNKNOWN).value
            for speaker in speakers
        }
        unlabelled = [s for s in speakers if s not in labelled]
        if unlabelled:
            logger.warning(f"[{session.id[:8]}] No role returned for {', '.join(unlabelled)}; marking unknown")

        run_id = uuid.uuid4().hex
        self._progress.report(
            session.id, STAGE_ROLE_IDENTIFICATION, progress=0.5, detail=f"patching {len(role_map)} speakers",
        )
        counts = self._run_batch(session.id, STAGE_ROLE_IDENTIFICATION, [
            (self._persistence.patch_utterances_by_speaker, (session.id, speaker, {"role": role}))
            for speaker, role in role_map.items()
        ])

        self._persistence.patch_session(session.id, {
            "roleIdentificationJson": {
                **payload,
                "runId": run_id,
                "roleMap": role_map,
                "model": self._classifier.model_name(),
                "identifiedAt": _now(),
            },
        })
        logger.info(f"[{session.id[:8]}] Roles committed: {role_map}")
        return StageOutcome(
            stage=STAGE_ROLE_IDENTIFICATION, run_id=run_id, patched=sum(counts), detail={"roles": role_map},
        )

    # ---- Tag assignment ----

    def _committed_roles(self, session: Session, utterances: list[Utterance]) -> dict[str, str]:
        """Return the committed role map, or raise if utterances disagree with it."""
        role_json = session.role_identification_json or {}
        role_map = role_json.get("roleMap")
        if not role_map:
            raise IncompleteStageError(
                "Role identification has not been committed for this session; run role_identification first"
            )

        mismatched = [
            u for u in utterances
            if role_map.get(u.speaker_id) is None or _role_value(u) != role_map[u.speaker_id]
        ]
        if mismatched:
            raise IncompleteStageError(
                f"{len(mismatched)} utterances do not carry the roles of run {role_json.get('runId')}; "
                "re-run role_identification"
            )
        return role_map

    def _classify_tags(self, session: Session, utterances: list[Utterance]) -> dict[str, TagAssignment]:
        """Classify utterances batch by batch. Returns assignments keyed by utterance id."""
        size = max(1, self._options.tag_batch_size)
        batches = [utterances[i:i + size] for i in range(0, len(utterances), size)]
        system_prompt = render_prompt("tag_assignment_system", MODE=session.mode or "CDI")

        assignments: dict[str, TagAssignment] = {}
        for n, batch in enumerate(batches, start=1):
            self._progress.report(
                session.id, STAGE_TAG_ASSIGNMENT,
                progress=0.1 + 0.8 * (n - 1) / len(batches),
                detail=f"batch {n}/{len(batches)}",
            )
            items = [
                {"id": idx, "role": _role_value(u) or Role.UNKNOWN.value, "text": u.text}
                for idx, u in enumerate(batch)
            ]
            prompt = render_prompt(
                "tag_assignment",
                UTTERANCE_COUNT=len(items),
                UTTERANCES_JSON=json.dumps(items, ensure_ascii=False, indent=2),
            )
            raw = self._classifier.classify(
                prompt,
                system_prompt=system_prompt,
                max_tokens=self._options.max_tokens,
                temperature=self._options.tag_temperature,
            )
            for assignment in parse_tag_assignments(raw):
                if assignment.id >= len(batch):
                    logger.warning(f"[{session.id[:8]}] Ignoring tag for unknown id {assignment.id} in batch {n}")
                    continue
                assignments[batch[assignment.id].id] = assignment

        return assignments

    def _assign_tags(self, session: Session, utterances: list[Utterance]) -> StageOutcome:
        role_map = self._committed_roles(session, utterances)
        assignments = self._classify_tags(session, utterances)
        if not assignments:
            logger.warning(f"[{session.id[:8]}] Classifier returned no tags")

        calls = []
        for utt in utterances:
            assignment = assignments.get(utt.id)
            if assignment is not None:
                fields = {"tag": assignment.code, "tagLabel": tag_label(assignment.code), "feedback": assignment.feedback}
            elif utt.tag is not None:
                # tag left over from an earlier run
                fields = {"tag": None, "tagLabel": None, "feedback": None}
            else:
                continue
            calls.append((self._persistence.patch_utterance, (utt.id, fields)))

        run_id = uuid.uuid4().hex
        self._progress.report(session.id, STAGE_TAG_ASSIGNMENT, progress=0.9, detail=f"patching {len(calls)} utterances")
        self._run_batch(session.id, STAGE_TAG_ASSIGNMENT, calls)

        tag_counts = count_tags(a.code for a in assignments.values())
        score, passed = calculate_score(tag_counts, session.mode)
        self._persistence.patch_session(session.id, {
            "tagCounts": tag_counts,
            "pcitCoding": {
                "runId": run_id,
                "roleRunId": (session.role_identification_json or {}).get("runId"),
                "adultSpeakers": [s for s, role in role_map.items() if role == Role.PARENT.value],
                "codingResults": [
                    {"utteranceId": utt_id, "code": a.code, "feedback": a.feedback}
                    for utt_id, a in assignments.items()
                ],
                "passed": passed,
                "model": self._classifier.model_name(),
                "analyzedAt": _now(),
            },
            "overallScore": score,
        })
        logger.info(f"[{session.id[:8]}] Tags committed: {len(assignments)} coded, score {score} (passed={passed})")
        return StageOutcome(
            stage=STAGE_TAG_ASSIGNMENT, run_id=run_id, patched=len(calls),
            detail={"tag_counts": tag_counts, "overall_score": score, "passed": passed},
        )
