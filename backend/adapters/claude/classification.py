"""ClaudeClassificationAdapter: classification via the Anthropic Messages API.

The SDK's built-in retries are disabled: a failed call surfaces immediately
as UpstreamServiceError and retrying is left to whoever re-runs the stage.
"""

import logging
from typing import Optional

import anthropic

from errors import ConfigurationError, UpstreamServiceError
from ports.classification import ClassificationPort

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class ClaudeClassificationAdapter(ClassificationPort):
    def __init__(self, api_key: Optional[str], model: str = DEFAULT_MODEL, timeout: Optional[float] = None):
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client: Optional[anthropic.Anthropic] = None

    def _get_client(self) -> anthropic.Anthropic:
        if not self._api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not configured")
        if self._client is None:
            kwargs = {"api_key": self._api_key, "max_retries": 0}
            if self._timeout is not None:
                kwargs["timeout"] = self._timeout
            self._client = anthropic.Anthropic(**kwargs)
        return self._client

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def model_name(self) -> str:
        return self._model

    def classify(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 2048,
        temperature: float = 0.0,
    ) -> str:
        client = self._get_client()
        request = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            request["system"] = system_prompt

        try:
            response = client.messages.create(**request)
        except anthropic.APIStatusError as e:
            logger.error(f"Classification request rejected ({e.status_code}): {e.message}")
            raise UpstreamServiceError(
                f"Classification service error ({e.status_code}): {e.message}", status_code=e.status_code,
            ) from e
        except anthropic.APIConnectionError as e:
            logger.error(f"Classification service unreachable: {e}")
            raise UpstreamServiceError(f"Classification service unreachable: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()
        if not text:
            raise UpstreamServiceError("Classification service returned an empty response")

        logger.debug(f"Classification response: {len(text)} chars, stop_reason={response.stop_reason}")
        return text
