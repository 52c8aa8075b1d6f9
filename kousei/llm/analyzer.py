"""
LLM analysis pipeline.

    passages -> SecretGuard (fail-closed) -> PIIMasker (optional) -> PromptSanitizer
             -> injected LLM call -> JSON extraction -> SchemaValidator -> anchor reconciliation

The LLM call is a collaborator: any `async (messages) -> str` callable. Use
`client_call(LLMClient())` for the real endpoint.

Issues come back in document offsets. Anchors are always resolved against the
original passage text, never against the masked or sanitized prompt.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..analyzers.models import Issue, Source, TextRange
from ..config.settings import settings
from ..guards.models import PIIMatch
from ..guards.pii_masker import PIIMasker
from ..guards.prompt_sanitizer import PromptSanitizer, SanitizedPrompt
from ..guards.secret_guard import SecretGuard
from ..utils.helpers import extract_json_from_llm_response, preview
from ..utils.prompt_loader import load_prompt
from .llm_client import LLMClient, Message
from .reconciler import AnchorSpec, normalize_with_index_map, resolve_anchor
from .schema_validator import LLMIssuePayload, SchemaValidator, safe_fallback

logger = logging.getLogger(__name__)

LLMCall = Callable[[List[Message]], Awaitable[str]]

STYLES = ("blog", "business", "academic")
LOW_CONFIDENCE_CAP = 0.3
PASSAGE_SEPARATOR = "\n"


@dataclass(frozen=True)
class Passage:
    """A slice of the document; `range` locates it in the session text."""
    text: str
    range: Optional[TextRange] = None


@dataclass
class LLMAnalysisResult:
    issues: List[Issue] = field(default_factory=list)
    elapsed_ms: float = 0.0
    threats: List[str] = field(default_factory=list)
    pii_matches: List[PIIMatch] = field(default_factory=list)
    fallback: bool = False
    errors: List[str] = field(default_factory=list)

    def extend(self, other: "LLMAnalysisResult") -> None:
        self.issues.extend(other.issues)
        self.threats.extend(t for t in other.threats if t not in self.threats)
        self.pii_matches.extend(other.pii_matches)
        self.fallback = self.fallback or other.fallback
        self.errors.extend(other.errors)

    def to_dict(self) -> Dict[str, object]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "elapsedMs": self.elapsed_ms,
            "threats": list(self.threats),
            "piiMatches": [m.to_dict() for m in self.pii_matches],
            "fallback": self.fallback,
        }


def client_call(client: LLMClient) -> LLMCall:
    """Adapt the blocking requests-based client to the async LLM call contract."""
    async def _call(messages: List[Message]) -> str:
        return await asyncio.to_thread(client.chat, messages, json_mode=True)
    return _call


def join_passages(passages: Sequence[Passage]) -> Tuple[str, List[Tuple[int, int, int]]]:
    """
    Join passage texts with PASSAGE_SEPARATOR.

    Returns:
        (joined text, [(joined_start, joined_end, document_start)] per passage)
    """
    parts: List[str] = []
    spans: List[Tuple[int, int, int]] = []
    pos = 0
    doc_pos = 0
    for idx, p in enumerate(passages):
        if idx:
            pos += len(PASSAGE_SEPARATOR)
            doc_pos += len(PASSAGE_SEPARATOR)
        doc_start = p.range.start if p.range is not None else doc_pos
        spans.append((pos, pos + len(p.text), doc_start))
        parts.append(p.text)
        pos += len(p.text)
        doc_pos = doc_start + len(p.text)
    return PASSAGE_SEPARATOR.join(parts), spans


def to_document_range(start: int, end: int, spans: Sequence[Tuple[int, int, int]]) -> Optional[Tuple[int, int, int]]:
    """Map a joined-text range to (doc_start, doc_end, passage index), clipped to its passage."""
    for idx, (j_start, j_end, doc_start) in enumerate(spans):
        if j_start <= start < j_end:
            end = min(end, j_end)
            return doc_start + (start - j_start), doc_start + (end - j_start), idx
    return None


class LLMAnalyzer:
    def __init__(self, llm_call: LLMCall, *,
                 secret_guard: Optional[SecretGuard] = None,
                 pii_masker: Optional[PIIMasker] = None,
                 sanitizer: Optional[PromptSanitizer] = None,
                 validator: Optional[SchemaValidator] = None,
                 mask_pii: Optional[bool] = None,
                 sanitize_prompts: Optional[bool] = None,
                 max_suggestions: Optional[int] = None,
                 timeout_secs: Optional[float] = None):
        self.llm_call = llm_call
        self.secret_guard = secret_guard or SecretGuard()
        self.pii_masker = pii_masker or PIIMasker()
        self.sanitizer = sanitizer or PromptSanitizer()
        self.validator = validator or SchemaValidator()
        self.mask_pii = settings.pii_masking_enabled if mask_pii is None else mask_pii
        self.sanitize_prompts = settings.prompt_sanitizer_enabled if sanitize_prompts is None else sanitize_prompts
        self.max_suggestions = max_suggestions or settings.llm_max_suggestions
        self.timeout_secs = timeout_secs or settings.llm_timeout_secs

    def system_instructions(self, style: str) -> str:
        if style not in STYLES:
            raise ValueError(f"Unknown style {style!r}; expected one of {', '.join(STYLES)}")
        base = load_prompt("proofread_system.txt").replace("{{MAX_SUGGESTIONS}}", str(self.max_suggestions))
        return f"{base}\n{load_prompt(f'style_{style}.txt')}"

    def ensure_no_secrets(self, passages: Sequence[Passage]) -> None:
        """Raises SecretDetectedError before anything is sent."""
        for p in passages:
            self.secret_guard.ensure_no_secrets(p.text)

    def build_prompt(self, text: str, style: str) -> Tuple[SanitizedPrompt, List[PIIMatch]]:
        masked = self.pii_masker.mask(text)
        outbound = masked.masked_text if self.mask_pii else text
        system = self.system_instructions(style)
        if self.sanitize_prompts:
            prompt = self.sanitizer.sanitize(outbound, system)
        else:
            prompt = PromptSanitizer.wrap(outbound, system)
        return prompt, masked.matches

    async def analyze(self, passages: Sequence[Passage], style: str = "business") -> LLMAnalysisResult:
        """
        Analyze one batch of passages with a single LLM call.

        Raises:
            SecretDetectedError: a passage contains a secret (nothing is sent)
            LLMConfigError / LLMRequestError / asyncio.TimeoutError: from the LLM call
        """
        t0 = time.perf_counter()
        self.ensure_no_secrets(passages)

        text, spans = join_passages(passages)
        if not text.strip():
            return LLMAnalysisResult()
        prompt, pii_matches = self.build_prompt(text, style)
        logger.info("LLM analysis: %d passage(s), %d chars, pii=%d, threats=%s",
                    len(passages), len(text), len(pii_matches), prompt.threats or "none")
        logger.debug("LLM input preview (masked): %s", preview(self.pii_masker.mask_for_logging(text)))

        messages: List[Message] = [
            {"role": "system", "content": prompt.system_prefix},
            {"role": "user", "content": prompt.user_content},
        ]
        raw = await asyncio.wait_for(self.llm_call(messages), timeout=self.timeout_secs)

        payload = extract_json_from_llm_response(raw)
        validation = self.validator.validate(payload)
        result = LLMAnalysisResult(threats=list(prompt.threats), pii_matches=pii_matches,
                                   errors=list(validation.errors))
        if not validation.is_usable:
            result.issues = [self._fallback(passages, spans)]
            result.fallback = True
        else:
            result.issues = self.reconcile(text, spans, validation.issues)

        result.elapsed_ms = round((time.perf_counter() - t0) * 1000, 3)
        logger.info("LLM analysis done: %d issue(s) in %.1f ms (fallback=%s)",
                    len(result.issues), result.elapsed_ms, result.fallback)
        return result

    def reconcile(self, text: str, spans: Sequence[Tuple[int, int, int]],
                  payloads: Sequence[LLMIssuePayload]) -> List[Issue]:
        """Resolve anchors against `text` and translate to document offsets."""
        imap = normalize_with_index_map(text)
        issues: List[Issue] = []
        seen_ids = set()
        for payload in payloads:
            resolved = resolve_anchor(text, AnchorSpec.from_payload(payload.anchor_dict()), imap)
            located = to_document_range(resolved.start, resolved.end, spans)
            if located is None:
                # Resolved onto a separator; attach to the start of the next passage.
                located = self._nearest_passage(resolved.start, spans)
            doc_start, doc_end, p_idx = located
            j_start = spans[p_idx][0] + (doc_start - spans[p_idx][2])
            original_text = text[j_start:j_start + (doc_end - doc_start)]

            issue_id = f"llm_{payload.id}_{doc_start}_{doc_end}"
            n = 1
            while issue_id in seen_ids:
                n += 1
                issue_id = f"llm_{payload.id}_{doc_start}_{doc_end}_{n}"
            seen_ids.add(issue_id)

            confidence = payload.confidence
            if resolved.low_confidence:
                confidence = min(confidence, LOW_CONFIDENCE_CAP)
            issues.append(Issue(
                id=issue_id,
                source=Source.LLM,
                severity=payload.severity,
                category=payload.category,
                message=payload.message,
                range=TextRange(doc_start, doc_end),
                suggestions=payload.suggestions,
                metadata={
                    "original_text": original_text,
                    "auto_fix": False,
                    "confidence": confidence,
                    "llm_generated": True,
                    "anchor_strategy": resolved.strategy,
                    "low_confidence": resolved.low_confidence,
                },
            ))
        return issues

    @staticmethod
    def _nearest_passage(pos: int, spans: Sequence[Tuple[int, int, int]]) -> Tuple[int, int, int]:
        for idx, (j_start, j_end, doc_start) in enumerate(spans):
            if pos < j_end or idx == len(spans) - 1:
                length = 1 if j_end > j_start else 0
                return doc_start, doc_start + length, idx
        return 0, 0, 0

    @staticmethod
    def _fallback(passages: Sequence[Passage], spans: Sequence[Tuple[int, int, int]]) -> Issue:
        issue = safe_fallback(passages[0].text if passages else "")
        if spans and spans[0][2]:
            issue = issue.evolve(range=issue.range.shifted(spans[0][2]))
        return issue
