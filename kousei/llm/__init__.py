"""
LLM side of the pipeline: client, health check, output validation, anchor
reconciliation, analysis and streaming.
"""
from .llm_client import LLMClient
from .llm_health import LLMHealthChecker
from .reconciler import (
    AnchorSpec,
    IndexMap,
    ResolvedRange,
    normalize_with_index_map,
    resolve_anchor,
    extract_anchor,
)
from .schema_validator import (
    LLMIssuePayload,
    SchemaLimits,
    SchemaValidator,
    ValidationResult,
    safe_fallback,
)
from .analyzer import LLMAnalyzer, LLMAnalysisResult, Passage, client_call
from .streaming import (
    CancellationToken,
    RetryPolicy,
    StreamEvent,
    StreamEventType,
    StreamingSuggester,
    split_into_chunks,
)

__all__ = [
    "LLMClient",
    "LLMHealthChecker",
    "AnchorSpec",
    "IndexMap",
    "ResolvedRange",
    "normalize_with_index_map",
    "resolve_anchor",
    "extract_anchor",
    "LLMIssuePayload",
    "SchemaLimits",
    "SchemaValidator",
    "ValidationResult",
    "safe_fallback",
    "LLMAnalyzer",
    "LLMAnalysisResult",
    "Passage",
    "client_call",
    "CancellationToken",
    "RetryPolicy",
    "StreamEvent",
    "StreamEventType",
    "StreamingSuggester",
    "split_into_chunks",
]
