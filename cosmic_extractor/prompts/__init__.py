"""Prompt templates for every LLM call in the pipeline."""

from cosmic_extractor.prompts.system_prompt import COSMIC_SYSTEM_PROMPT
from cosmic_extractor.prompts.understanding_prompt import (
    UNDERSTANDING_SYSTEM_PROMPT,
    build_understanding_prompt,
    render_understanding_context,
)
from cosmic_extractor.prompts.splitting_prompt import (
    ALL_DONE_MARKER,
    build_first_round_prompt,
    build_followup_round_prompt,
    truncate_document,
)
from cosmic_extractor.prompts.batch_prompt import build_batch_prompt, extract_keywords
from cosmic_extractor.prompts.function_list_prompt import (
    FUNCTION_LIST_SYSTEM_PROMPT,
    build_function_list_prompt,
    build_additional_functions_prompt,
)

__all__ = [
    # Shared
    "COSMIC_SYSTEM_PROMPT",
    "truncate_document",
    # Understanding
    "UNDERSTANDING_SYSTEM_PROMPT",
    "build_understanding_prompt",
    "render_understanding_context",
    # Rounds
    "ALL_DONE_MARKER",
    "build_first_round_prompt",
    "build_followup_round_prompt",
    # Batches
    "build_batch_prompt",
    "extract_keywords",
    # Function list
    "FUNCTION_LIST_SYSTEM_PROMPT",
    "build_function_list_prompt",
    "build_additional_functions_prompt",
]
