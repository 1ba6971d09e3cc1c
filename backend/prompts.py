"""Prompt templates for the classification stages.

Templates live in ``prompt_templates/<name>.txt`` and use ``{{VARIABLE}}``
placeholders.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

from errors import ConfigurationError

logger = logging.getLogger(__name__)

PROMPT_DIR = Path(__file__).parent / "prompt_templates"

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@lru_cache(maxsize=None)
def load_template(name: str) -> str:
    path = PROMPT_DIR / f"{name}.txt"
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationError(f"Prompt template not found: {path}") from e


def render_prompt(name: str, **variables) -> str:
    """Fill a template's placeholders. Every placeholder must be supplied."""
    template = load_template(name)
    missing = sorted(set(_PLACEHOLDER.findall(template)) - set(variables))
    if missing:
        raise ValueError(f"Prompt {name!r} is missing variables: {', '.join(missing)}")

    prompt = _PLACEHOLDER.sub(lambda m: str(variables[m.group(1)]), template)
    logger.debug(f"Rendered prompt {name!r}: {len(prompt)} chars")
    return prompt
