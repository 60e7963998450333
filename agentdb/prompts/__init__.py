"""Prompt templates and loader."""

from agentdb.prompts.loader import PromptLoader

__all__ = ["PromptLoader"]
