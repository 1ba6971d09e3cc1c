"""Anthropic Claude adapter for utterance classification."""

from .classification import ClaudeClassificationAdapter

__all__ = ["ClaudeClassificationAdapter"]
