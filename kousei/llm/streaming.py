"""
Streaming suggestions with cancellation.

Passages are packed into chunks of bounded length and analyzed one chunk at a
time. Each chunk call has its own timeout; transient failures are retried with
capped exponential backoff. A chunk that still fails is reported as a
`chunk_failed` event and the stream moves on. The stream always ends with
exactly one terminal event: `complete` or `cancelled`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, List, Optional, Sequence

from ..analyzers.models import Issue, TextRange
from ..config.settings import settings
from ..errors import LLMConfigError, LLMRequestError, SecretDetectedError
from .analyzer import LLMAnalysisResult, LLMAnalyzer, Passage

logger = logging.getLogger(__name__)

_SENTENCE_BREAKS = ("\n", "。", "！", "？", "!", "?")


class StreamEventType(str, Enum):
    CHUNK = "chunk"
    CHUNK_FAILED = "chunk_failed"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass
class StreamEvent:
    type: StreamEventType
    chunk_index: int
    total_chunks: int
    issues: List[Issue] = field(default_factory=list)
    error: Optional[str] = None
    attempts: int = 0
    failed_chunks: List[int] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.type in (StreamEventType.COMPLETE, StreamEventType.CANCELLED)

    def to_dict(self):
        return {
            "type": self.type.value,
            "chunkIndex": self.chunk_index,
            "totalChunks": self.total_chunks,
            "issues": [i.to_dict() for i in self.issues],
            "error": self.error,
            "attempts": self.attempts,
            "failedChunks": list(self.failed_chunks),
        }


class StreamCancelled(Exception):
    """Raised internally when the token is cancelled during a retry wait."""


class CancellationToken:
    """Cooperative cancellation shared between the caller and a running stream."""

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to `delay` seconds; return True if cancelled meanwhile."""
        if self._cancelled:
            return True
        if self._event is None:
            self._event = asyncio.Event()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        return self._cancelled


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0

    def delay(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


def split_passage(passage: Passage, chunk_size: int) -> List[Passage]:
    """Cut an over-long passage, preferring sentence ends, keeping document ranges."""
    text = passage.text
    if len(text) <= chunk_size:
        return [passage]
    base = passage.range.start if passage.range is not None else None
    pieces: List[Passage] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            cut = max(text.rfind(ch, start, end) for ch in _SENTENCE_BREAKS)
            if cut > start + chunk_size // 2:
                end = cut + 1
        rng = TextRange(base + start, base + end) if base is not None else None
        pieces.append(Passage(text[start:end], rng))
        start = end
    return pieces


def split_into_chunks(passages: Sequence[Passage], chunk_size: int) -> List[List[Passage]]:
    """Pack passages in order so that no chunk exceeds `chunk_size` characters."""
    chunks: List[List[Passage]] = []
    current: List[Passage] = []
    length = 0
    for passage in passages:
        for piece in split_passage(passage, chunk_size):
            if current and length + len(piece.text) > chunk_size:
                chunks.append(current)
                current, length = [], 0
            current.append(piece)
            length += len(piece.text)
    if current:
        chunks.append(current)
    return chunks


def with_document_ranges(passages: Sequence[Passage]) -> List[Passage]:
    """Give every passage an explicit range so that splitting keeps offsets."""
    out: List[Passage] = []
    pos = 0
    for idx, p in enumerate(passages):
        if idx:
            pos += 1
        if p.range is None:
            p = Passage(p.text, TextRange(pos, pos + len(p.text)))
        out.append(p)
        pos = p.range.start + len(p.text)
    return out


class StreamingSuggester:
    def __init__(self, analyzer: LLMAnalyzer, *,
                 chunk_size: Optional[int] = None,
                 timeout_secs: Optional[float] = None,
                 retry: Optional[RetryPolicy] = None):
        self.analyzer = analyzer
        self.chunk_size = chunk_size or settings.streaming_chunk_size
        self.timeout_secs = timeout_secs or settings.streaming_timeout_secs
        self.retry = retry or RetryPolicy(
            max_retries=settings.streaming_max_retries,
            base_delay=settings.streaming_retry_delay_secs,
            max_delay=settings.streaming_max_retry_delay_secs,
        )

    async def stream(self, passages: Sequence[Passage], style: str = "business",
                     token: Optional[CancellationToken] = None) -> AsyncIterator[StreamEvent]:
        """
        Yield one event per chunk, then a terminal event.

        Raises:
            SecretDetectedError: before the first event if any passage holds a secret
            LLMConfigError: the LLM is not configured (retrying cannot help)
        """
        token = token or CancellationToken()
        self.analyzer.ensure_no_secrets(passages)

        chunks = split_into_chunks(with_document_ranges(passages), self.chunk_size)
        total = len(chunks)
        collected: List[Issue] = []
        failed: List[int] = []
        logger.info("Streaming %d passage(s) in %d chunk(s) (chunk_size=%d)", len(passages), total, self.chunk_size)

        for idx, chunk in enumerate(chunks):
            if token.cancelled:
                logger.info("Stream cancelled before chunk %d/%d", idx + 1, total)
                yield StreamEvent(StreamEventType.CANCELLED, idx, total, issues=list(collected), failed_chunks=failed)
                return
            try:
                result, attempts = await self._run_chunk(chunk, style, token)
            except StreamCancelled:
                logger.info("Stream cancelled while retrying chunk %d/%d", idx + 1, total)
                yield StreamEvent(StreamEventType.CANCELLED, idx, total, issues=list(collected), failed_chunks=failed)
                return
            except (SecretDetectedError, LLMConfigError):
                raise
            except Exception as e:
                failed.append(idx)
                attempts = self.retry.max_retries + 1
                logger.warning("Chunk %d/%d failed after %d attempt(s): %s", idx + 1, total, attempts, e)
                yield StreamEvent(StreamEventType.CHUNK_FAILED, idx, total, error=str(e) or type(e).__name__,
                                  attempts=attempts)
                continue

            collected.extend(result.issues)
            yield StreamEvent(StreamEventType.CHUNK, idx, total, issues=list(result.issues), attempts=attempts)

        yield StreamEvent(StreamEventType.COMPLETE, total, total, issues=list(collected), failed_chunks=failed)

    async def _run_chunk(self, chunk: Sequence[Passage], style: str,
                         token: CancellationToken) -> "tuple[LLMAnalysisResult, int]":
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await asyncio.wait_for(self.analyzer.analyze(chunk, style), timeout=self.timeout_secs)
                return result, attempt
            except (LLMRequestError, asyncio.TimeoutError) as e:
                if attempt > self.retry.max_retries:
                    raise
                delay = self.retry.delay(attempt)
                logger.info("Retry %d/%d in %.2fs: %s", attempt, self.retry.max_retries, delay,
                            e if str(e) else type(e).__name__)
                if await token.sleep(delay):
                    raise StreamCancelled() from e

    async def collect(self, passages: Sequence[Passage], style: str = "business",
                      token: Optional[CancellationToken] = None) -> List[StreamEvent]:
        return [event async for event in self.stream(passages, style, token)]
