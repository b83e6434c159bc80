"""Core utilities for the extraction pipeline."""

from cosmic_extractor.core.config import (
    COSMIC_PROVIDER,
    PROVIDER_PRIORITY,
    API_KEY_ENV_VARS,
    ChunkingConfig,
    RoundConfig,
    BatchConfig,
    RetryConfig,
    LLMConfig,
    AttributeConfig,
    NameQualityConfig,
    TriggerConfig,
)
from cosmic_extractor.core.errors import (
    ErrorKind,
    CosmicExtractorError,
    ConfigurationError,
    RunCancelledError,
    MalformedOutputError,
    ProviderError,
    TransientProviderError,
    RateLimitedError,
    ServerError,
    NetworkError,
    TokenLimitExceededError,
    AuthError,
    ExhaustedAllModelsError,
    ErrorSeverity,
    ErrorCategory,
    RunIssue,
    RunIssues,
    provider_issue,
    malformed_output_issue,
    validation_warning,
    cancelled_issue,
)
from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.pipeline_logger import PipelineLogger, get_logger, reset_logger
from cosmic_extractor.core.cost_tracker import CostTracker, CallUsage
from cosmic_extractor.core.chunker import Chunk, chunk_document
from cosmic_extractor.core.retry_policy import RetryAction, RetryDecision, RetryPolicy, classify_error
from cosmic_extractor.core.provider_registry import CallStyle, ClientRegistry, ProviderConfig, ProviderKind
from cosmic_extractor.core.llm_client import Completion, ProviderClient
from cosmic_extractor.core.response_parser import (
    ParseOutcome,
    parse_json,
    parse_function_list_payload,
    repair_truncated_json,
)
from cosmic_extractor.core.normalizer import (
    Deduplicator,
    complete_groups,
    expand_generic_name,
    normalize_attributes,
    validate_records,
)
from cosmic_extractor.core.table_parser import parse_table, has_table
from cosmic_extractor.core.collaborators import DocumentSource, SpreadsheetSink, PlainTextSource

__all__ = [
    # Config
    "COSMIC_PROVIDER",
    "PROVIDER_PRIORITY",
    "API_KEY_ENV_VARS",
    "ChunkingConfig",
    "RoundConfig",
    "BatchConfig",
    "RetryConfig",
    "LLMConfig",
    "AttributeConfig",
    "NameQualityConfig",
    "TriggerConfig",
    # Errors
    "ErrorKind",
    "CosmicExtractorError",
    "ConfigurationError",
    "RunCancelledError",
    "MalformedOutputError",
    "ProviderError",
    "TransientProviderError",
    "RateLimitedError",
    "ServerError",
    "NetworkError",
    "TokenLimitExceededError",
    "AuthError",
    "ExhaustedAllModelsError",
    "ErrorSeverity",
    "ErrorCategory",
    "RunIssue",
    "RunIssues",
    "provider_issue",
    "malformed_output_issue",
    "validation_warning",
    "cancelled_issue",
    # Run plumbing
    "CancellationToken",
    "PipelineLogger",
    "get_logger",
    "reset_logger",
    "CostTracker",
    "CallUsage",
    # Chunking
    "Chunk",
    "chunk_document",
    # Providers
    "RetryAction",
    "RetryDecision",
    "RetryPolicy",
    "classify_error",
    "CallStyle",
    "ClientRegistry",
    "ProviderConfig",
    "ProviderKind",
    "Completion",
    "ProviderClient",
    # Parsing and normalization
    "ParseOutcome",
    "parse_json",
    "parse_function_list_payload",
    "repair_truncated_json",
    "Deduplicator",
    "complete_groups",
    "expand_generic_name",
    "normalize_attributes",
    "validate_records",
    "parse_table",
    "has_table",
    # Collaborators
    "DocumentSource",
    "SpreadsheetSink",
    "PlainTextSource",
]
