"""Run orchestrator - drives one extraction run through its phases.

States::

    INIT -> UNDERSTANDING (optional) -> SPLITTING (round 1..max_rounds)
         -> DONE | CANCELLED | FAILED

Phases are separate classes so each one can be tested in isolation. Between
phases, data flows through RoundState (see phase_base.py): understanding
writes its summary, splitting merges records round after round.

Only three things reach the caller as exceptions: ConfigurationError (no
usable provider), RunCancelledError (the token fired) and asyncio
cancellation. Provider exhaustion mid-run ends in FAILED with a partial
result; unparseable replies are zero-progress rounds.

The module also exposes the service operations built on top of the
orchestrator: extract(), extract_functions(), extract_additional_functions(),
split_confirmed_functions() and parse_table().
"""

import asyncio
import math
from collections.abc import AsyncIterator
from pathlib import Path

from cosmic_extractor.agents.function_list_agent import extract_additional_functions as _additional_functions
from cosmic_extractor.agents.function_list_agent import extract_function_list
from cosmic_extractor.agents.understanding_agent import run_understanding
from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.chunker import Chunk, chunk_document
from cosmic_extractor.core.config import ChunkingConfig, LLMConfig, RoundConfig
from cosmic_extractor.core.cost_tracker import CostTracker
from cosmic_extractor.core.errors import (
    ExhaustedAllModelsError,
    MalformedOutputError,
    RunCancelledError,
    RunIssue,
    RunIssues,
    cancelled_issue,
)
from cosmic_extractor.core.llm_client import ProviderClient
from cosmic_extractor.core.normalizer import Deduplicator, validate_records
from cosmic_extractor.core.pipeline_logger import get_logger
from cosmic_extractor.core.provider_registry import ClientRegistry
from cosmic_extractor.core.table_parser import parse_table as _parse_table
from cosmic_extractor.phases import (
    BatchSplitter,
    PhaseContext,
    RoundState,
    RunConfig,
    RunResources,
    SplittingPhase,
    UnderstandingPhase,
)
from cosmic_extractor.pydantic_models.output import (
    BatchResult,
    ExtractionMode,
    ExtractionResult,
    RoundReport,
    RunState,
    TerminationReason,
)
from cosmic_extractor.pydantic_models.records import FunctionDescriptor, FunctionList, Record
from cosmic_extractor.pydantic_models.understanding_models import DocumentUnderstanding


def resolve_client(
    client: ProviderClient | None = None,
    registry: ClientRegistry | None = None,
    provider: str | None = None,
    cost_tracker: CostTracker | None = None,
) -> ProviderClient:
    """Return ``client``, or build one from ``registry`` (default: the environment).

    Raises:
        ConfigurationError: No configured provider.
    """
    if client is not None:
        if client.cost_tracker is None and cost_tracker is not None:
            client.cost_tracker = cost_tracker
        return client
    registry = registry or ClientRegistry.from_env()
    return ProviderClient(registry.get(provider), cost_tracker=cost_tracker)


class ExtractionOrchestrator:
    """One extraction run over one document."""

    def __init__(
        self,
        document: str,
        target: int = RoundConfig.DEFAULT_TARGET,
        client: ProviderClient | None = None,
        registry: ClientRegistry | None = None,
        provider: str | None = None,
        mode: ExtractionMode | str = ExtractionMode.QUANTITY,
        guidelines: str | None = None,
        use_understanding: bool = True,
        understanding: DocumentUnderstanding | None = None,
        fill_missing_movements: bool = True,
        max_rounds: int | None = None,
        stall_limit: int | None = None,
        round_delay: float | None = None,
        cancel: CancellationToken | None = None,
        cost_tracker: CostTracker | None = None,
        verbose: bool = False,
        log_dir: str | Path | None = None,
        source: str = "document",
    ):
        """Initialize the orchestrator.

        Args:
            document: Plain document text.
            target: Number of functional processes to aim for.
            client: Provider client. Built from ``registry`` when omitted.
            registry: Provider registry. Defaults to ClientRegistry.from_env().
            provider: Provider kind to take from the registry.
            mode: "quantity" or "quality".
            guidelines: Free-text splitting rules injected into round 1.
            use_understanding: Run the understanding call first.
            understanding: Precomputed understanding; skips the understanding call.
            fill_missing_movements: Complete every group to E, R, W, X.
            max_rounds: Override the mode's round limit.
            stall_limit: Override the mode's no-progress limit.
            round_delay: Seconds between rounds.
            cancel: Cancellation token. One is created when omitted.
            cost_tracker: Usage tracker. Defaults to the client's, or a new one.
            verbose: Show DEBUG logs on the console.
            log_dir: Directory for the run log file.
            source: Name used in logs.

        Raises:
            ValueError: target below 1.
            ConfigurationError: No configured provider.
        """
        if target < 1:
            raise ValueError("target must be at least 1")

        self.document = document
        self.source = source
        self.logger = get_logger(verbose=verbose, log_dir=log_dir)
        tracker = cost_tracker or (client.cost_tracker if client else None) or CostTracker()
        client = resolve_client(client, registry, provider, tracker)

        resources = RunResources(
            client=client,
            logger=self.logger,
            cost_tracker=client.cost_tracker or tracker,
            cancel=cancel or CancellationToken(),
        )
        config = RunConfig.for_mode(
            mode,
            target=target,
            guidelines=guidelines,
            use_understanding=use_understanding and understanding is None,
            fill_missing_movements=fill_missing_movements,
            max_rounds=max_rounds,
            stall_limit=stall_limit,
            round_delay=round_delay,
        )
        state = RoundState(understanding=understanding)

        self.context = PhaseContext(resources=resources, config=config, state=state)
        self._started = False

    @property
    def state(self) -> RoundState:
        """Run state. After cancellation it holds every completed round."""
        return self.context.state

    def cancel(self) -> None:
        self.context.cancel.cancel()

    async def iter_rounds(self) -> AsyncIterator[RoundReport]:
        """Run the extraction, yielding one RoundReport per splitting round.

        The final report carries the termination reason. Call result()
        afterwards for the merged ExtractionResult.

        Raises:
            ConfigurationError: Provider configuration is unusable.
            RunCancelledError: The cancellation token fired.
            RuntimeError: The orchestrator was already run.
        """
        if self._started:
            raise RuntimeError("An ExtractionOrchestrator runs only once")
        self._started = True

        ctx = self.context
        state = ctx.state
        self.logger.start_run(self.source, target=ctx.target, mode=ctx.mode.value)

        try:
            if ctx.config.use_understanding:
                await UnderstandingPhase(ctx, self.document).run()
            async for report in SplittingPhase(ctx, self.document).rounds():
                yield report
        except (RunCancelledError, asyncio.CancelledError):
            self._mark_cancelled()
            raise
        except Exception as e:
            state.run_state = RunState.FAILED
            self.logger.error("Run failed", exc=e)
            self.logger.end_run(state.run_state.value, stats=self.get_stats())
            raise

        if state.termination == TerminationReason.PROVIDER_EXHAUSTED:
            state.run_state = RunState.FAILED
        else:
            state.run_state = RunState.DONE
        state.issues.extend(validate_records(state.records))
        self.logger.end_run(state.run_state.value, stats=self.get_stats())

    def _mark_cancelled(self) -> None:
        state = self.context.state
        stage = "round" if state.run_state == RunState.SPLITTING else state.run_state.value
        state.run_state = RunState.CANCELLED
        state.termination = TerminationReason.CANCELLED
        state.issues.add(cancelled_issue(stage, state.round_number or None))
        self.logger.milestone("Run cancelled", rounds=state.round_number, processes=state.unique_count)

    async def run(self) -> ExtractionResult:
        """Run to completion and return the merged result."""
        async for _ in self.iter_rounds():
            pass
        return self.result()

    def result(self) -> ExtractionResult:
        """Snapshot of the run as an ExtractionResult."""
        state = self.context.state
        return ExtractionResult(
            records=list(state.records),
            unique_process_count=state.unique_count,
            target=self.context.target,
            rounds=state.round_number,
            mode=self.context.mode,
            state=state.run_state,
            termination=state.termination,
            under_target=state.unique_count < self.context.target,
            understanding=state.understanding,
            issues=state.issues.to_dict(),
            usage=self.context.cost_tracker.to_dict(),
            failure=state.failure,
        )

    def get_stats(self) -> dict:
        state = self.context.state
        return {
            "rounds": state.round_number,
            "processes": f"{state.unique_count}/{self.context.target}",
            "rows": len(state.records),
            "termination": state.termination.value if state.termination else None,
            "errors": state.issues.summary(),
            "usage": {
                "calls": self.context.cost_tracker.call_count,
                "tokens": self.context.cost_tracker.total_tokens,
                "fallbacks": self.context.cost_tracker.fallback_count,
            },
        }


# =============================================================================
# Chunked extraction
# =============================================================================


def chunk_prompt_text(chunk: Chunk) -> str:
    """Chunk content plus the read-only preview of the next chunk."""
    if not chunk.overlap_with_next:
        return chunk.content
    return (
        f"{chunk.content}\n\n"
        f"（以下为下一部分的开头，仅供理解上下文，不要拆分其中的功能）\n"
        f"{chunk.overlap_with_next}"
    )


def chunk_targets(chunks: list[Chunk], target: int) -> list[int]:
    """Split ``target`` across chunks in proportion to their size, at least 1 each."""
    total = sum(c.size for c in chunks) or 1
    return [max(1, math.ceil(target * c.size / total)) for c in chunks]


async def _understand_once(client: ProviderClient, document: str, cancel: CancellationToken) -> DocumentUnderstanding | None:
    logger = get_logger()
    try:
        return await run_understanding(client, document, cancel=cancel)
    except (MalformedOutputError, ExhaustedAllModelsError) as e:
        logger.warning(f"Understanding skipped: {e}")
        return None


def merge_results(results: list[ExtractionResult], target: int, usage: dict | None = None) -> ExtractionResult:
    """Merge per-chunk results in chunk order with the usual dedup rule."""
    dedup = Deduplicator()
    issues = RunIssues()
    for result in results:
        dedup.merge(result.records)
    merged_issues = {
        "errors": [e for r in results for e in r.issues.get("errors", [])],
        "warnings": [
            w for r in results for w in r.issues.get("warnings", [])
            if w.get("category") != "validation"
        ],
    }
    issues.extend(validate_records(dedup.records))
    merged_issues["warnings"].extend(i.to_dict() for i in issues.warnings)
    merged_issues["summary"] = {
        "total_errors": len(merged_issues["errors"]),
        "total_warnings": len(merged_issues["warnings"]),
        "chunks": len(results),
    }

    failures = [r.failure for r in results if r.failure]
    if dedup.unique_count >= target:
        termination = TerminationReason.TARGET_REACHED
    elif failures:
        termination = TerminationReason.PROVIDER_EXHAUSTED
    else:
        termination = results[-1].termination if results else None

    all_failed = bool(results) and all(r.state == RunState.FAILED for r in results)
    return ExtractionResult(
        records=dedup.records,
        unique_process_count=dedup.unique_count,
        target=target,
        rounds=sum(r.rounds for r in results),
        mode=results[0].mode if results else ExtractionMode.QUANTITY,
        state=RunState.FAILED if all_failed else RunState.DONE,
        termination=termination,
        under_target=dedup.unique_count < target,
        understanding=next((r.understanding for r in results if r.understanding), None),
        issues=merged_issues,
        usage=usage or {},
        failure=failures[0] if failures else None,
    )


async def extract_document(
    text: str,
    target: int = RoundConfig.DEFAULT_TARGET,
    client: ProviderClient | None = None,
    registry: ClientRegistry | None = None,
    provider: str | None = None,
    mode: ExtractionMode | str = ExtractionMode.QUANTITY,
    guidelines: str | None = None,
    use_understanding: bool = True,
    max_chars: int = ChunkingConfig.MAX_CHUNK_CHARS,
    max_concurrent: int = LLMConfig.MAX_CONCURRENT_CHUNKS,
    cancel: CancellationToken | None = None,
    cost_tracker: CostTracker | None = None,
    source: str = "document",
    **run_options,
) -> ExtractionResult:
    """Extract from a document of any size.

    Documents up to ``max_chars`` run as one orchestration. Larger ones are
    chunked; chunk runs proceed concurrently (at most ``max_concurrent`` at
    once), each with a share of ``target`` proportional to its size, and
    their records are merged in chunk order. Understanding, when enabled,
    is computed once for the whole document and shared.
    """
    tracker = cost_tracker or (client.cost_tracker if client else None) or CostTracker()
    client = resolve_client(client, registry, provider, tracker)
    cancel = cancel or CancellationToken()
    chunks = chunk_document(text, max_chars=max_chars)

    if len(chunks) == 1:
        return await ExtractionOrchestrator(
            text, target=target, client=client, mode=mode, guidelines=guidelines,
            use_understanding=use_understanding, cancel=cancel, source=source, **run_options,
        ).run()

    logger = get_logger()
    logger.start_stage("Chunks", total=len(chunks))
    understanding = await _understand_once(client, text, cancel) if use_understanding else None
    targets = chunk_targets(chunks, target)
    semaphore = asyncio.Semaphore(max_concurrent)

    async def run_chunk(chunk: Chunk, chunk_target: int) -> ExtractionResult:
        async with semaphore:
            orchestrator = ExtractionOrchestrator(
                chunk_prompt_text(chunk),
                target=chunk_target,
                client=client,
                mode=mode,
                guidelines=guidelines,
                use_understanding=False,
                understanding=understanding,
                cancel=cancel,
                source=f"{source} chunk {chunk.index + 1}/{chunk.total_chunks}",
                **run_options,
            )
            result = await orchestrator.run()
            logger.tick(f"chunk {chunk.index + 1}: {result.unique_process_count} processes")
            return result

    results = await asyncio.gather(*(run_chunk(c, t) for c, t in zip(chunks, targets)))
    merged = merge_results(list(results), target, usage=(client.cost_tracker or tracker).to_dict())
    logger.stage_result(
        f"{merged.unique_process_count}/{target} processes",
        chunks=len(chunks),
        rows=merged.total_rows,
    )
    return merged


# =============================================================================
# Service operations
# =============================================================================


async def extract(
    document_text: str,
    target_count: int = RoundConfig.DEFAULT_TARGET,
    guidelines: str | None = None,
    **options,
) -> ExtractionResult:
    """Extract functional processes from ``document_text``.

    For round-by-round streaming use ExtractionOrchestrator.iter_rounds().
    """
    return await extract_document(document_text, target=target_count, guidelines=guidelines, **options)


async def extract_functions(
    document_text: str,
    client: ProviderClient | None = None,
    registry: ClientRegistry | None = None,
    provider: str | None = None,
    cancel: CancellationToken | None = None,
) -> tuple[FunctionList, list[RunIssue]]:
    """Extract the function list users confirm before batch splitting."""
    client = resolve_client(client, registry, provider, CostTracker())
    return await extract_function_list(client, document_text, cancel=cancel)


async def extract_additional_functions(
    description: str,
    existing: list[str] | None = None,
    document: str = "",
    client: ProviderClient | None = None,
    registry: ClientRegistry | None = None,
    provider: str | None = None,
    cancel: CancellationToken | None = None,
) -> tuple[list[FunctionDescriptor], list[RunIssue]]:
    """Functions a user's free-text request adds to a confirmed list.

    Candidates overlapping an ``existing`` name are dropped.
    """
    client = resolve_client(client, registry, provider, CostTracker())
    return await _additional_functions(client, description, existing, document, cancel=cancel)


async def split_confirmed_functions(
    function_list: list[FunctionDescriptor],
    previous_records: list[Record] | None = None,
    processed_index: int = 0,
    client: ProviderClient | None = None,
    registry: ClientRegistry | None = None,
    provider: str | None = None,
    document: str = "",
    **splitter_options,
) -> BatchResult:
    """Split the next batch of a confirmed function list.

    Persist ``next_processed_index`` from the result and pass it back as
    ``processed_index`` on the next call.
    """
    client = resolve_client(client, registry, provider, CostTracker())
    splitter = BatchSplitter(client, document=document, **splitter_options)
    return await splitter.split(function_list, previous_records, processed_index)


def parse_table(markdown_text: str) -> list[Record]:
    """Parse a Markdown decomposition table into Records."""
    return _parse_table(markdown_text)
