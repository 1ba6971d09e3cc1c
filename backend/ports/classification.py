"""ClassificationPort: abstract interface for the remote classification service."""

from abc import ABC, abstractmethod
from typing import Optional


class ClassificationPort(ABC):
    @abstractmethod
    def classify(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 2048,
        temperature: float = 0.0,
    ) -> str:
        """Send a prompt and return the raw text payload.

        Raises UpstreamServiceError on a failed or unreachable service.
        """

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the credentials needed to call the service are present."""

    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier recorded alongside results."""
