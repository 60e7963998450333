"""
ContextBuilder

Renders the system prompt that grounds the model in the connected
database. The schema part is the schema engine's context summary, used
verbatim; the surrounding instructions come from the packaged
``system/agent.md`` template.
"""

import logging

from agentdb.prompts.loader import PromptLoader
from agentdb.schema.engine import SchemaEngine

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_TEMPLATE = "system/agent.md"


class ContextBuilder:
    """
    Builds the model's system prompt from the current schema graph.

    Usage:
        builder = ContextBuilder(schema_engine)
        client.set_system_prompt(builder.build_system_prompt(read_only=True))
    """

    def __init__(
        self,
        schema_engine: SchemaEngine,
        response_language: str = "English",
        prompts: PromptLoader | None = None,
    ):
        self.schema_engine = schema_engine
        self.response_language = response_language
        self.prompts = prompts or PromptLoader()

    def build_system_prompt(self, read_only: bool = True) -> str:
        summary = self.schema_engine.generate_context_summary()
        prompt = self.prompts.render(
            SYSTEM_PROMPT_TEMPLATE,
            schema_summary=summary,
            response_language=self.response_language,
            read_only=read_only,
        )
        logger.debug(
            "Built system prompt",
            extra={"prompt_chars": len(prompt), "summary_chars": len(summary)},
        )
        return prompt
