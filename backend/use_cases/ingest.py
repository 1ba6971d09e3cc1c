"""IngestTranscriptUseCase: recognition output -> stored utterances."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from adapters.local.log_progress import NullProgressAdapter
from domain.models import SpeakerStatistics, Utterance
from errors import AnalysisError, NotFoundError
from mappers import records_to_utterances, utterances_to_records
from ports.persistence import PersistencePort
from ports.progress import ProgressPort
from segmentation import segment_utterances
from speaker_stats import compute_speaker_statistics
from token_reader import read_token_stream

logger = logging.getLogger(__name__)

STAGE_INGEST = "ingesting"


@dataclass
class IngestResult:
    session_id: str
    utterances: list[Utterance] = field(default_factory=list)
    statistics: dict[str, SpeakerStatistics] = field(default_factory=dict)
    language_code: Optional[str] = None


class IngestTranscriptUseCase:
    def __init__(
        self,
        persistence: PersistencePort,
        progress: Optional[ProgressPort] = None,
        strip_annotations: bool = True,
    ):
        self._persistence = persistence
        self._progress = progress or NullProgressAdapter()
        self._strip_annotations = strip_annotations

    def execute(self, session_id: str, payload: dict[str, Any], provider: str = "elevenlabs") -> IngestResult:
        """Segment a recognition payload and store its utterances on the session.

        A session is ingested once; there is no delete operation on the
        store to replace existing utterances.
        """
        if self._persistence.get_session(session_id) is None:
            raise NotFoundError(f"Session {session_id} not found", session_id=session_id, stage=STAGE_INGEST)

        existing = self._persistence.get_utterances(session_id)
        if existing:
            raise AnalysisError(
                f"Session already has {len(existing)} utterances", session_id=session_id, stage=STAGE_INGEST,
            )

        self._progress.report(session_id, STAGE_INGEST, detail=provider)
        try:
            stream = read_token_stream(payload, provider)
            self._progress.report(session_id, STAGE_INGEST, progress=0.3, detail=f"{len(stream.tokens)} tokens ({provider})")
            utterances = segment_utterances(stream.tokens, strip_annotations=self._strip_annotations)
        except AnalysisError as e:
            e.with_context(session_id=session_id, stage=STAGE_INGEST)
            self._progress.fail(session_id, STAGE_INGEST, detail=type(e).__name__)
            raise

        created = self._persistence.create_utterances(session_id, utterances_to_records(utterances))
        stored = records_to_utterances(created)
        statistics = compute_speaker_statistics(stored)
        self._progress.report(session_id, STAGE_INGEST, progress=1.0, detail=f"{len(stored)} utterances from {len(statistics)} speakers")

        logger.info(f"[{session_id[:8]}] Ingested {len(stored)} utterances (language={stream.language_code})")
        return IngestResult(
            session_id=session_id,
            utterances=stored,
            statistics=statistics,
            language_code=stream.language_code,
        )
