"""
Simple LLM health check.

Tries a 1-token ping through LLMClient and reports success/failure.
`ensure_checked()` is the async entry point: concurrent first callers share one
in-flight probe, and a successful result is memoized.

Run:
    python -m kousei.llm.llm_health
"""

import asyncio
import logging
import sys
import time
from typing import Any, Dict, Optional

from ..errors import LLMConfigError, LLMRequestError
from .llm_client import LLMClient

logger = logging.getLogger(__name__)

HealthResult = Dict[str, Any]


class LLMHealthChecker:
    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient()
        self._result: Optional[HealthResult] = None
        self._inflight: Optional["asyncio.Future[HealthResult]"] = None
        self.probe_count = 0

    @property
    def result(self) -> Optional[HealthResult]:
        return self._result

    def check(self) -> HealthResult:
        """Perform a minimal health check against the configured LLM endpoint."""
        self.probe_count += 1
        # Log what we are about to use (without exposing secrets)
        logger.info("LLM Provider: %s | Model: %s | Endpoint: %s | API key: %s",
                    self.client.provider, self.client.model, self.client.endpoint,
                    "set" if self.client.api_key else "missing")

        t0 = time.time()
        try:
            self.client.chat(
                [{"role": "system", "content": "ping"}, {"role": "user", "content": "ping"}],
                max_tokens=1,
            )
        except LLMConfigError:
            logger.error("LLM config invalid, missing key(s).")
            return {"status": "fail", "reason": "invalid_config"}
        except LLMRequestError as e:
            reason = e.details.get("reason", "request_failed")
            logger.error("LLM health check failed: %s", reason)
            return {"status": "fail", "reason": reason}

        latency_ms = int((time.time() - t0) * 1000)
        logger.info("LLM connectivity OK (provider=%s, model=%s, %d ms)",
                    self.client.provider, self.client.model, latency_ms)
        return {"status": "success", "latency_ms": latency_ms}

    async def ensure_checked(self) -> HealthResult:
        """Run the probe at most once at a time; reuse a successful result."""
        if self._result is not None:
            return self._result
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._probe())
        return await asyncio.shield(self._inflight)

    async def _probe(self) -> HealthResult:
        try:
            result = await asyncio.to_thread(self.check)
        finally:
            self._inflight = None
        if result.get("status") == "success":
            self._result = result
        return result

    def reset(self) -> None:
        self._result = None


def main():
    from ..utils.logging_setup import setup_logging

    setup_logging()
    result = LLMHealthChecker().check()
    logger.info("Health result: %s", result)
    sys.exit(0 if result["status"] == "success" else 1)


if __name__ == "__main__":
    main()
