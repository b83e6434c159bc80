"""Agents for the extraction pipeline.

Each agent makes one kind of LLM call and turns the reply into typed data.
None of them keep state between calls.
"""

from cosmic_extractor.agents.understanding_agent import run_understanding
from cosmic_extractor.agents.function_list_agent import extract_additional_functions, extract_function_list
from cosmic_extractor.agents.splitter_agent import SplitReply, request_split, split_batch

__all__ = [
    # Understanding
    "run_understanding",
    # Function list
    "extract_function_list",
    "extract_additional_functions",
    # Splitting
    "SplitReply",
    "request_split",
    "split_batch",
]
