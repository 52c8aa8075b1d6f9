"""Error codes and exceptions raised across the proofreading core."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    RULE_COMPILE_ERROR = "RULE_COMPILE_ERROR"
    RULE_FILE_ERROR = "RULE_FILE_ERROR"
    TIMEOUT_EXCEEDED = "TIMEOUT_EXCEEDED"
    SECRET_DETECTED = "SECRET_DETECTED"
    PROMPT_THREAT_DETECTED = "PROMPT_THREAT_DETECTED"
    SCHEMA_VALIDATION_FAILURE = "SCHEMA_VALIDATION_FAILURE"
    STALE_RANGE = "STALE_RANGE"
    NOT_APPLICABLE = "NOT_APPLICABLE"
    INVALID_RANGE = "INVALID_RANGE"
    LLM_CONFIG_ERROR = "LLM_CONFIG_ERROR"
    LLM_REQUEST_FAILED = "LLM_REQUEST_FAILED"


class KouseiError(RuntimeError):
    """Base error; `code` is one of ErrorCode."""
    code: ErrorCode = ErrorCode.LLM_REQUEST_FAILED

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": str(self), "details": self.details}


class RuleFileError(KouseiError):
    """Raised when a rule file cannot be read or is structurally invalid."""
    code = ErrorCode.RULE_FILE_ERROR

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, details={"errors": list(errors or [])})
        self.errors = list(errors or [])


class SecretDetectedError(KouseiError):
    """Raised (fail-closed) when outbound text contains a credential-like string."""
    code = ErrorCode.SECRET_DETECTED

    def __init__(self, secret_types: List[str]):
        # Only the labels are kept; the secret values never leave the guard.
        super().__init__(
            "入力内に機密らしき文字列が含まれます。修正して再送してください。",
            details={"secret_types": list(secret_types)},
        )
        self.secret_types = list(secret_types)


class LLMConfigError(KouseiError):
    """Raised when the LLM configuration is invalid (missing API key/model/endpoint)."""
    code = ErrorCode.LLM_CONFIG_ERROR


class LLMRequestError(KouseiError):
    """Raised when the LLM endpoint cannot be reached or answers with an error."""
    code = ErrorCode.LLM_REQUEST_FAILED
