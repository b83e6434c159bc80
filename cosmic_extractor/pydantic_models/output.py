"""Result schemas returned to callers: per-round reports, run results and
batch-split results."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cosmic_extractor.pydantic_models.records import FunctionDescriptor, Record, records_to_markdown
from cosmic_extractor.pydantic_models.understanding_models import DocumentUnderstanding


class ExtractionMode(str, Enum):
    """quantity: stop as soon as the model says it is done.
    quality: keep going until the target is met or the loop stalls."""
    QUANTITY = "quantity"
    QUALITY = "quality"


class RunState(str, Enum):
    INIT = "init"
    UNDERSTANDING = "understanding"
    SPLITTING = "splitting"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class TerminationReason(str, Enum):
    TARGET_REACHED = "target_reached"
    COMPLETION_MARKER = "completion_marker"
    NO_TABLE = "no_table"
    SHORT_REPLY = "short_reply"
    STALLED = "stalled"
    MAX_ROUNDS = "max_rounds"
    PROVIDER_EXHAUSTED = "provider_exhausted"
    CANCELLED = "cancelled"


class RoundReport(BaseModel):
    """What one splitting round produced. Yielded by iter_rounds()."""

    round_number: int
    new_records: list[Record] = Field(default_factory=list)
    new_process_names: list[str] = Field(default_factory=list)
    unique_process_count: int = 0
    no_progress_rounds: int = 0
    model: str = ""
    used_fallback: bool = False
    table_found: bool = False
    termination: TerminationReason | None = None


class ExtractionResult(BaseModel):
    """Merged, deduplicated output of one extraction run."""

    model_config = ConfigDict(frozen=True)

    records: list[Record] = Field(default_factory=list)
    unique_process_count: int = 0
    target: int = 0
    rounds: int = 0
    mode: ExtractionMode = ExtractionMode.QUANTITY
    state: RunState = RunState.DONE
    termination: TerminationReason | None = None
    under_target: bool = False
    understanding: DocumentUnderstanding | None = None
    issues: dict = Field(default_factory=dict)
    usage: dict = Field(default_factory=dict)
    failure: dict | None = None

    @property
    def total_rows(self) -> int:
        return len(self.records)

    @property
    def process_names(self) -> list[str]:
        return [r.functional_process for r in self.records if r.functional_process]

    def to_markdown(self) -> str:
        return records_to_markdown(self.records)


class BatchResult(BaseModel):
    """Outcome of one BatchSplitter call.

    ``next_processed_index`` is authoritative: persist it and send it back on
    the next call.
    """

    records: list[Record] = Field(default_factory=list, description="Previous records plus this batch, deduplicated")
    new_records: list[Record] = Field(default_factory=list, description="Rows this batch added")
    processed_index: int = 0
    next_processed_index: int = 0
    total_functions: int = 0
    is_done: bool = False
    missed_functions: list[FunctionDescriptor] = Field(default_factory=list)
    model: str = ""
    used_fallback: bool = False
