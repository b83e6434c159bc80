"""Understanding agent: one call that reads the whole document before any
splitting, so later rounds know the module list and the expected number of
processes.

The result is prompt context only. Callers treat a failure here as
non-fatal and carry on without it.
"""

from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.config import LLMConfig
from cosmic_extractor.core.llm_client import ProviderClient
from cosmic_extractor.pydantic_models.understanding_models import DocumentUnderstanding
from cosmic_extractor.prompts.understanding_prompt import (
    UNDERSTANDING_SYSTEM_PROMPT,
    build_understanding_prompt,
)


async def run_understanding(
    client: ProviderClient,
    document: str,
    cancel: CancellationToken | None = None,
) -> DocumentUnderstanding:
    """Ask the model for a DocumentUnderstanding of ``document``.

    Args:
        client: Provider client to call.
        document: Full document text (truncated inside the prompt).
        cancel: Optional cancellation token.

    Returns:
        Validated DocumentUnderstanding.

    Raises:
        MalformedOutputError: The reply never yielded a valid understanding.
        ExhaustedAllModelsError: Every model failed.
        RunCancelledError: ``cancel`` fired.
    """
    return await client.complete_structured(
        system_prompt=UNDERSTANDING_SYSTEM_PROMPT,
        user_prompt=build_understanding_prompt(document),
        response_model=DocumentUnderstanding,
        stage="understanding",
        temperature=LLMConfig.UNDERSTANDING_TEMPERATURE,
        cancel=cancel,
    )
