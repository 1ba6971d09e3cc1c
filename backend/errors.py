"""Error taxonomy for ingestion and the analysis pipeline.

Every error carries optional ``session_id`` and ``stage`` attributes. The
orchestrator fills them in before re-raising so a caller can retry the
failed stage for the right session.
"""

from typing import Optional


class AnalysisError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.stage = stage

    def with_context(self, session_id: Optional[str] = None, stage: Optional[str] = None) -> "AnalysisError":
        """Attach session/stage context without overwriting what is already set."""
        if self.session_id is None:
            self.session_id = session_id
        if self.stage is None:
            self.stage = stage
        return self

    def __str__(self) -> str:
        context = []
        if self.session_id:
            context.append(f"session={self.session_id}")
        if self.stage:
            context.append(f"stage={self.stage}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class EmptyInputError(AnalysisError):
    """No tokens to segment or no utterances to analyze."""


class NotFoundError(AnalysisError):
    """A referenced session or utterance does not exist."""


class ConfigurationError(AnalysisError):
    """A required credential or setting is missing."""


class UpstreamServiceError(AnalysisError):
    """The classification service failed or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class ResponseParseError(AnalysisError):
    """A classification payload is not the structured data we expect."""

    def __init__(self, message: str, raw: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.raw = raw


class IncompleteStageError(AnalysisError):
    """A prerequisite stage has not been committed for the session."""


class TokenFormatError(AnalysisError):
    """Raw recognition output could not be read as tokens."""
