"""Splitter agent: one splitting call and the parse of its table.

Used for every round of the multi-round loop and for every batch of
confirmed functions. Returns what the model said and the records found in
it; merging and termination are the caller's business.
"""

from dataclasses import dataclass, field

from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.config import LLMConfig
from cosmic_extractor.core.llm_client import Completion, ProviderClient
from cosmic_extractor.core.normalizer import complete_groups
from cosmic_extractor.core.table_parser import parse_table
from cosmic_extractor.pydantic_models.records import FunctionDescriptor, Record
from cosmic_extractor.prompts.batch_prompt import build_batch_prompt
from cosmic_extractor.prompts.system_prompt import COSMIC_SYSTEM_PROMPT


@dataclass
class SplitReply:
    """A splitting call's reply and the records parsed from it."""

    completion: Completion
    records: list[Record] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.completion.text

    @property
    def table_found(self) -> bool:
        return bool(self.records)

    @property
    def process_names(self) -> list[str]:
        return [r.functional_process for r in self.records if r.functional_process]


async def request_split(
    client: ProviderClient,
    user_prompt: str,
    stage: str,
    fill_missing_movements: bool = True,
    temperature: float = LLMConfig.TEMPERATURE,
    cancel: CancellationToken | None = None,
) -> SplitReply:
    """Send one splitting prompt and parse the table in the reply.

    Args:
        client: Provider client.
        user_prompt: Round or batch prompt.
        stage: "round" or "batch", for usage tracking.
        fill_missing_movements: Add missing E/R/W/X rows to every group.
        temperature: Sampling temperature.
        cancel: Optional cancellation token.
    """
    completion = await client.complete(
        system_prompt=COSMIC_SYSTEM_PROMPT,
        user_prompt=user_prompt,
        stage=stage,
        temperature=temperature,
        cancel=cancel,
    )
    records = parse_table(completion.text)
    if fill_missing_movements and records:
        records = complete_groups(records)
    return SplitReply(completion=completion, records=records)


async def split_batch(
    client: ProviderClient,
    functions: list[FunctionDescriptor],
    document: str = "",
    fill_missing_movements: bool = True,
    cancel: CancellationToken | None = None,
) -> SplitReply:
    """Ask for exactly four rows for each of ``functions``."""
    return await request_split(
        client,
        build_batch_prompt(functions, document),
        stage="batch",
        fill_missing_movements=fill_missing_movements,
        temperature=LLMConfig.EXTRACTION_TEMPERATURE,
        cancel=cancel,
    )
