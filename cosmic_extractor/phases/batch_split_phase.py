"""Batch split phase - decomposes a confirmed function list in fixed-size
batches behind a resumable cursor.

The splitter keeps no state between calls. The caller persists
``next_processed_index`` and sends it back; concurrent calls with the same
stale cursor duplicate work, and avoiding that is the caller's job.

    splitter = BatchSplitter(client, document=text)
    result = await splitter.split(functions, previous_records=[], processed_index=0)
    while not result.is_done:
        result = await splitter.split(functions, result.records, result.next_processed_index)
"""

import logging
import re

from cosmic_extractor.agents.splitter_agent import split_batch
from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.config import BatchConfig
from cosmic_extractor.core.llm_client import ProviderClient
from cosmic_extractor.core.normalizer import Deduplicator, name_key
from cosmic_extractor.core.pipeline_logger import PipelineLogger
from cosmic_extractor.pydantic_models.output import BatchResult
from cosmic_extractor.pydantic_models.records import FunctionDescriptor, Record

logger = logging.getLogger(__name__)

_TOKEN_SPLIT = re.compile(r"[\s\W_]+|数据|功能|处理|计算|评估|分析|查询|汇总|导出|导入")


def keyword_tokens(name: str) -> list[str]:
    """Tokens of a function name used for omission matching.

    Splits on whitespace, punctuation and generic action words and keeps
    tokens longer than one character. A name with no such token is its
    own single token.
    """
    tokens = [t for t in _TOKEN_SPLIT.split(name) if len(t) > 1]
    return tokens or [name.strip()]


def is_covered(
    function: FunctionDescriptor,
    output_names: list[str],
    ratio: float = BatchConfig.KEYWORD_MATCH_RATIO,
) -> bool:
    """True when some output process name matches ``function``.

    A match is an exact (case-insensitive, trimmed) name, or an output name
    containing at least ``ratio`` of the function's keyword tokens.
    """
    key = name_key(function.name)
    if any(name_key(n) == key for n in output_names):
        return True
    tokens = keyword_tokens(function.name)
    for name in output_names:
        hits = sum(1 for token in tokens if token in name)
        if hits / len(tokens) >= ratio:
            return True
    return False


def find_missed(batch: list[FunctionDescriptor], output_names: list[str]) -> list[FunctionDescriptor]:
    return [f for f in batch if not is_covered(f, output_names)]


class BatchSplitter:
    """Splits confirmed functions ``batch_size`` at a time.

    Only ``selected`` descriptors take part; the cursor indexes the selected
    sub-list.
    """

    name = "BatchSplit"

    def __init__(
        self,
        client: ProviderClient,
        document: str = "",
        batch_size: int = BatchConfig.BATCH_SIZE,
        fill_missing_movements: bool = True,
        logger: PipelineLogger | None = None,
        cancel: CancellationToken | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.client = client
        self.document = document
        self.batch_size = batch_size
        self.fill_missing_movements = fill_missing_movements
        self.run_logger = logger
        self.cancel = cancel

    async def split(
        self,
        functions: list[FunctionDescriptor],
        previous_records: list[Record] | None = None,
        processed_index: int = 0,
    ) -> BatchResult:
        """Split the batch starting at ``processed_index``.

        Args:
            functions: Ordered confirmed function list.
            previous_records: Records from earlier batches, merged into the result.
            processed_index: Cursor returned by the previous call (0 at first).

        Returns:
            BatchResult whose ``next_processed_index`` is the new cursor.

        Raises:
            ValueError: Negative cursor.
            ExhaustedAllModelsError: Every model failed. The cursor does not move.
            RunCancelledError: The cancellation token fired.
        """
        if processed_index < 0:
            raise ValueError("processed_index must not be negative")

        selected = [f for f in functions if f.selected]
        total = len(selected)
        dedup = Deduplicator(previous_records or [])

        if processed_index >= total:
            return BatchResult(
                records=dedup.records,
                processed_index=processed_index,
                next_processed_index=max(processed_index, total),
                total_functions=total,
                is_done=True,
            )

        batch = selected[processed_index:processed_index + self.batch_size]
        logger.info(f"Splitting functions {processed_index + 1}-{processed_index + len(batch)} of {total}")

        reply = await split_batch(
            self.client,
            batch,
            document=self.document,
            fill_missing_movements=self.fill_missing_movements,
            cancel=self.cancel,
        )
        added = dedup.merge(reply.records)
        missed = find_missed(batch, reply.process_names)

        next_index = min(processed_index + self.batch_size, total)
        is_done = processed_index + self.batch_size >= total

        if missed:
            names = "、".join(f.name for f in missed)
            logger.warning(f"Batch at {processed_index} missed {len(missed)} functions: {names}")
            if self.run_logger:
                self.run_logger.warning(f"[{self.name}] missed functions", count=len(missed), names=names)
        if self.run_logger:
            self.run_logger.info(
                f"[{self.name}] {next_index}/{total} functions",
                added_rows=len(added),
                processes=dedup.unique_count,
            )

        return BatchResult(
            records=dedup.records,
            new_records=added,
            processed_index=processed_index,
            next_processed_index=next_index,
            total_functions=total,
            is_done=is_done,
            missed_functions=missed,
            model=reply.completion.model,
            used_fallback=reply.completion.used_fallback,
        )

    async def split_all(
        self,
        functions: list[FunctionDescriptor],
        previous_records: list[Record] | None = None,
        supplemental_pass: bool = True,
    ) -> BatchResult:
        """Drive the cursor to the end, then optionally retry the misses once.

        The supplemental pass sends every missed descriptor, across all
        batches, as one additional batch. It is best effort: what it still
        misses is reported in ``missed_functions``.
        """
        records = list(previous_records or [])
        missed: list[FunctionDescriptor] = []
        new_records: list[Record] = []
        index = 0

        result = await self.split(functions, records, index)
        while True:
            records = result.records
            new_records.extend(result.new_records)
            missed.extend(result.missed_functions)
            if result.is_done:
                break
            index = result.next_processed_index
            result = await self.split(functions, records, index)

        if supplemental_pass and missed:
            logger.info(f"Supplemental pass over {len(missed)} missed functions")
            retry = [f.model_copy(update={"selected": True}) for f in missed]
            single_batch = BatchSplitter(
                self.client,
                document=self.document,
                batch_size=len(retry),
                fill_missing_movements=self.fill_missing_movements,
                logger=self.run_logger,
                cancel=self.cancel,
            )
            extra = await single_batch.split(retry, records, 0)
            records = extra.records
            new_records.extend(extra.new_records)
            merged = Deduplicator(records)
            missed = [f for f in extra.missed_functions if not merged.contains(f.name)]

        return result.model_copy(update={
            "records": records,
            "new_records": new_records,
            "missed_functions": missed,
        })
