"""Pydantic models for the extraction pipeline.

Modules:
- records: Record (one table row), FunctionDescriptor, FunctionList
- understanding_models: DocumentUnderstanding from the optional first call
- output: RoundReport, ExtractionResult, BatchResult and run enums
"""

from cosmic_extractor.pydantic_models.records import (
    MovementType,
    MOVEMENT_ORDER,
    TriggerType,
    Record,
    TABLE_HEADER,
    records_to_markdown,
    FunctionDescriptor,
    ModuleFunctions,
    TimedTask,
    FunctionList,
)
from cosmic_extractor.pydantic_models.understanding_models import (
    ModuleEstimate,
    FunctionBreakdown,
    DocumentUnderstanding,
)
from cosmic_extractor.pydantic_models.output import (
    ExtractionMode,
    RunState,
    TerminationReason,
    RoundReport,
    ExtractionResult,
    BatchResult,
)

__all__ = [
    # Records
    "MovementType",
    "MOVEMENT_ORDER",
    "TriggerType",
    "Record",
    "TABLE_HEADER",
    "records_to_markdown",
    "FunctionDescriptor",
    "ModuleFunctions",
    "TimedTask",
    "FunctionList",
    # Understanding
    "ModuleEstimate",
    "FunctionBreakdown",
    "DocumentUnderstanding",
    # Output
    "ExtractionMode",
    "RunState",
    "TerminationReason",
    "RoundReport",
    "ExtractionResult",
    "BatchResult",
]
