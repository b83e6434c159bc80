"""Base classes for run phases.

The context is split into three parts so responsibilities are clear:
- **RunResources** (frozen): collaborators created once per run: provider
  client, logger, cost tracker, cancellation token.
- **RunConfig** (frozen): caller-chosen settings that never change mid-run:
  target, mode, limits, guidelines, feature flags.
- **RoundState** (mutable): what accumulates as rounds complete: the
  deduplicated records, the stall counter, the understanding, the issues.

PhaseContext wraps all three and exposes convenience properties so phases can
write ``ctx.client`` instead of ``ctx.resources.client``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.config import LLMConfig, RoundConfig
from cosmic_extractor.core.cost_tracker import CostTracker
from cosmic_extractor.core.errors import RunIssues
from cosmic_extractor.core.llm_client import ProviderClient
from cosmic_extractor.core.normalizer import Deduplicator
from cosmic_extractor.core.pipeline_logger import PipelineLogger
from cosmic_extractor.pydantic_models.output import ExtractionMode, RunState, TerminationReason
from cosmic_extractor.pydantic_models.records import Record
from cosmic_extractor.pydantic_models.understanding_models import DocumentUnderstanding


@dataclass(frozen=True)
class RunResources:
    """Shared resources - created once, never modified."""

    client: ProviderClient
    logger: PipelineLogger
    cost_tracker: CostTracker
    cancel: CancellationToken


@dataclass(frozen=True)
class RunConfig:
    """Configuration - set at init, never modified.

    Limits default per mode (see RoundConfig); pass explicit values to
    override them.
    """

    target: int = RoundConfig.DEFAULT_TARGET
    mode: ExtractionMode = ExtractionMode.QUANTITY
    max_rounds: int = RoundConfig.QUANTITY_MAX_ROUNDS
    stall_limit: int = RoundConfig.QUANTITY_STALL_LIMIT
    hard_stall_limit: int = RoundConfig.HARD_STALL_LIMIT
    round_delay: float = RoundConfig.INTER_ROUND_DELAY_SECONDS
    temperature: float = LLMConfig.TEMPERATURE
    guidelines: str | None = None
    use_understanding: bool = True
    fill_missing_movements: bool = True

    @classmethod
    def for_mode(cls, mode: ExtractionMode | str = ExtractionMode.QUANTITY, **overrides) -> RunConfig:
        """Config with the round and stall limits of ``mode``.

        None-valued overrides are ignored so callers can pass optional
        arguments straight through.
        """
        mode = ExtractionMode(mode)
        if mode == ExtractionMode.QUALITY:
            defaults = {
                "max_rounds": RoundConfig.QUALITY_MAX_ROUNDS,
                "stall_limit": RoundConfig.QUALITY_STALL_LIMIT,
            }
        else:
            defaults = {
                "max_rounds": RoundConfig.QUANTITY_MAX_ROUNDS,
                "stall_limit": RoundConfig.QUANTITY_STALL_LIMIT,
            }
        defaults.update({k: v for k, v in overrides.items() if v is not None})
        return cls(mode=mode, **defaults)

    @property
    def completion_markers(self) -> tuple[str, ...]:
        if self.mode == ExtractionMode.QUALITY:
            return RoundConfig.QUALITY_COMPLETION_MARKERS
        return RoundConfig.QUANTITY_COMPLETION_MARKERS


@dataclass
class RoundState:
    """Mutable state owned by one run.

    Written only by the run's own loop after each round's parse and merge.
    On cancellation it holds everything merged up to the last completed
    round.
    """

    round_number: int = 0
    dedup: Deduplicator = field(default_factory=Deduplicator)
    no_progress_rounds: int = 0
    understanding: DocumentUnderstanding | None = None
    run_state: RunState = RunState.INIT
    termination: TerminationReason | None = None
    failure: dict | None = None
    issues: RunIssues = field(default_factory=RunIssues)

    @property
    def records(self) -> list[Record]:
        return self.dedup.records

    @property
    def process_names(self) -> list[str]:
        return self.dedup.process_names

    @property
    def unique_count(self) -> int:
        return self.dedup.unique_count


class PhaseContext:
    """Slim context holding references to the three component contexts."""

    def __init__(self, resources: RunResources, config: RunConfig, state: RoundState):
        self.resources = resources
        self.config = config
        self.state = state

    # -- Resource properties (read-only) --

    @property
    def client(self) -> ProviderClient:
        return self.resources.client

    @property
    def logger(self) -> PipelineLogger:
        return self.resources.logger

    @property
    def cost_tracker(self) -> CostTracker:
        return self.resources.cost_tracker

    @property
    def cancel(self) -> CancellationToken:
        return self.resources.cancel

    # -- Config properties (read-only) --

    @property
    def target(self) -> int:
        return self.config.target

    @property
    def mode(self) -> ExtractionMode:
        return self.config.mode

    # -- State properties --

    @property
    def issues(self) -> RunIssues:
        return self.state.issues

    @property
    def understanding(self) -> DocumentUnderstanding | None:
        return self.state.understanding

    @understanding.setter
    def understanding(self, value: DocumentUnderstanding | None) -> None:
        self.state.understanding = value


T = TypeVar("T")


class PhaseRunner(ABC, Generic[T]):
    """Base class for run phases.

    Each phase:
    - Has a name for logging
    - Takes a PhaseContext with shared state
    - Produces a typed result
    """

    name: str = "unnamed"

    def __init__(self, context: PhaseContext):
        self.context = context
        self.logger = context.logger

    @abstractmethod
    async def run(self) -> T:
        """Execute the phase."""

    def log(self, message: str, level: str = "info", **data):
        """Log a message with phase context."""
        if level == "debug":
            self.logger.debug(f"[{self.name}] {message}", **data)
        elif level == "warning":
            self.logger.warning(f"[{self.name}] {message}", **data)
        elif level == "error":
            self.logger.error(f"[{self.name}] {message}", **data)
        else:
            self.logger.info(f"[{self.name}] {message}", **data)

    def start(self, total: int = 0, model: str = ""):
        """Signal phase start."""
        self.logger.start_stage(self.name, total, model)

    def end(self, message: str = "", **metrics):
        """Signal phase end."""
        self.logger.stage_result(message or "complete", **metrics)
