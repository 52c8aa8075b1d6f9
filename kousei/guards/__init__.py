"""
Guards applied to raw text before it may reach the LLM.
"""
from .models import SecretMatch, PIIMatch, MaskedText
from .secret_guard import SecretGuard, luhn_valid
from .pii_masker import PIIMasker
from .prompt_sanitizer import PromptSanitizer, SanitizedPrompt

__all__ = [
    "SecretMatch",
    "PIIMatch",
    "MaskedText",
    "SecretGuard",
    "luhn_valid",
    "PIIMasker",
    "PromptSanitizer",
    "SanitizedPrompt",
]
