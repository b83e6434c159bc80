"""Function-list agent: extracts the inventory of functions a user reviews
and confirms before batch splitting.

Models answer this prompt with fenced JSON, bare JSON, truncated JSON or a
plain bulleted list, depending on the day. The reply goes through the
ResponseParser cascade, ending in heuristic line scanning, so some list
comes back whenever the text has anything list-like in it.
"""

import logging
import re

from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.config import LLMConfig
from cosmic_extractor.core.errors import RunIssue, malformed_output_issue
from cosmic_extractor.core.llm_client import ProviderClient
from cosmic_extractor.core.response_parser import parse_function_list_payload
from cosmic_extractor.pydantic_models.records import FunctionDescriptor, FunctionList
from cosmic_extractor.prompts.function_list_prompt import (
    FUNCTION_LIST_SYSTEM_PROMPT,
    build_additional_functions_prompt,
    build_function_list_prompt,
)

logger = logging.getLogger(__name__)

_EMPTY_ARRAY = re.compile(r"\s*(?:```(?:json)?\s*)?\[\s*\]\s*(?:```)?\s*", re.IGNORECASE)


async def extract_function_list(
    client: ProviderClient,
    document: str,
    cancel: CancellationToken | None = None,
) -> tuple[FunctionList, list[RunIssue]]:
    """Extract the function list of ``document``.

    Returns:
        (function_list, issues). An unparseable reply gives an empty list
        and one malformed-output issue; it never raises.

    Raises:
        ExhaustedAllModelsError: Every model failed.
        RunCancelledError: ``cancel`` fired.
    """
    completion = await client.complete(
        system_prompt=FUNCTION_LIST_SYSTEM_PROMPT,
        user_prompt=build_function_list_prompt(document),
        stage="function_list",
        temperature=LLMConfig.EXTRACTION_TEMPERATURE,
        cancel=cancel,
    )

    outcome = parse_function_list_payload(completion.text)
    if not outcome.ok:
        logger.warning("Function list reply could not be parsed")
        return FunctionList(), [malformed_output_issue(
            "Function list reply contained no usable structure",
            stage="function_list",
            raw_text=completion.text,
            attempts=outcome.diagnostics(),
        )]

    function_list = FunctionList.from_payload(outcome.value)
    logger.info(f"Function list parsed via {outcome.stage}: {function_list.function_count} functions")
    return function_list, []


def _overlaps(name: str, existing: list[str]) -> bool:
    lowered = name.lower()
    return any(lowered in other.lower() or other.lower() in lowered for other in existing if other.strip())


async def extract_additional_functions(
    client: ProviderClient,
    description: str,
    existing: list[str] | None = None,
    document: str = "",
    cancel: CancellationToken | None = None,
) -> tuple[list[FunctionDescriptor], list[RunIssue]]:
    """Functions a user's free-text request adds to an existing list.

    A candidate whose name contains, or is contained in, an existing name
    (case-insensitive) is dropped. Ids restart at 1; the caller renumbers
    when appending.

    Raises:
        ValueError: ``description`` is blank.
        ExhaustedAllModelsError: Every model failed.
        RunCancelledError: ``cancel`` fired.
    """
    if not description or not description.strip():
        raise ValueError("description must not be empty")
    existing = existing or []

    completion = await client.complete(
        system_prompt=FUNCTION_LIST_SYSTEM_PROMPT,
        user_prompt=build_additional_functions_prompt(description, existing, document),
        stage="additional_functions",
        temperature=LLMConfig.EXTRACTION_TEMPERATURE,
        cancel=cancel,
    )

    if _EMPTY_ARRAY.fullmatch(completion.text or ""):
        logger.info("No additional functions identified")
        return [], []

    outcome = parse_function_list_payload(completion.text)
    if not outcome.ok:
        logger.warning("Additional functions reply could not be parsed")
        return [], [malformed_output_issue(
            "Additional functions reply contained no usable structure",
            stage="additional_functions",
            raw_text=completion.text,
            attempts=outcome.diagnostics(),
        )]

    identified = FunctionList.from_payload(outcome.value).descriptors()
    fresh = [d for d in identified if not _overlaps(d.name, existing)]
    for position, descriptor in enumerate(fresh, start=1):
        descriptor.id = position
    logger.info(f"Identified {len(identified)} functions, {len(fresh)} new")
    return fresh, []
