"""COSMIC functional-decomposition extractor.

Turns a natural-language requirements document into a COSMIC table: one
group of E/R/W/X rows per functional process, produced by a bounded,
multi-round conversation with an LLM and deduplicated across rounds.

Architecture:
    core/             - config, errors, provider client, retry, parsing, normalization
    prompts/          - LLM prompt templates
    agents/           - one kind of LLM call each (understanding, function list, splitting)
    phases/           - phase runners (understanding, round loop, batch splitting)
    pydantic_models/  - records, descriptors and results

Usage:
    from cosmic_extractor import ExtractionOrchestrator

    orchestrator = ExtractionOrchestrator(document_text, target=30)
    async for report in orchestrator.iter_rounds():
        print(report.round_number, report.unique_process_count)
    result = orchestrator.result()

CLI:
    cosmic-extract extract requirements.md --target 30
"""

from cosmic_extractor.orchestrator import (
    ExtractionOrchestrator,
    extract,
    extract_document,
    extract_functions,
    extract_additional_functions,
    split_confirmed_functions,
    parse_table,
)
from cosmic_extractor.phases import BatchSplitter
from cosmic_extractor.core import (
    CancellationToken,
    ClientRegistry,
    ProviderClient,
    ProviderConfig,
    ConfigurationError,
    ExhaustedAllModelsError,
    RunCancelledError,
)
from cosmic_extractor.pydantic_models import (
    Record,
    MovementType,
    FunctionDescriptor,
    FunctionList,
    DocumentUnderstanding,
    ExtractionMode,
    ExtractionResult,
    RoundReport,
    BatchResult,
)

__all__ = [
    # Entry points
    "ExtractionOrchestrator",
    "BatchSplitter",
    "extract",
    "extract_document",
    "extract_functions",
    "extract_additional_functions",
    "split_confirmed_functions",
    "parse_table",
    # Providers
    "CancellationToken",
    "ClientRegistry",
    "ProviderClient",
    "ProviderConfig",
    # Errors
    "ConfigurationError",
    "ExhaustedAllModelsError",
    "RunCancelledError",
    # Models
    "Record",
    "MovementType",
    "FunctionDescriptor",
    "FunctionList",
    "DocumentUnderstanding",
    "ExtractionMode",
    "ExtractionResult",
    "RoundReport",
    "BatchResult",
]
