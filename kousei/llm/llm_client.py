"""
Minimal LLM client using unified settings (Gemini / Azure / OpenAI-compatible).

- For provider='gemini', calls models/{model}:generateContent with the 'x-goog-api-key' header
- For provider='azure', uses the Azure Chat Completions path and 'api-key' header
- For provider='openai' (or others), uses the raw endpoint + Bearer header

Errors are raised, not swallowed: LLMConfigError for an incomplete
configuration, LLMRequestError for transport/HTTP failures.
"""

import logging
import time
import requests
from typing import Any, Dict, List, Optional

from ..config.settings import Settings, settings as default_settings
from ..errors import LLMConfigError, LLMRequestError

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class LLMClient:
    def __init__(self, config: Optional[Settings] = None):
        cfg = config or default_settings
        self.config = cfg
        self.provider = (cfg.llm_provider or "").lower().strip()
        self.endpoint = cfg.llm_api_endpoint or ""
        self.api_key = cfg.llm_api_key
        self.model = cfg.llm_model
        # Azure specifics
        self.deployment = self.model
        self.api_version = cfg.llm_api_version
        # Misc
        self.temperature = float(cfg.llm_temperature)
        self.timeout = float(cfg.llm_timeout_secs)

    def _url(self) -> str:
        base = self.endpoint.rstrip("/")
        if self.provider == "gemini":
            return f"{base}/v1beta/models/{self.model}:generateContent"
        if self.provider == "azure":
            return f"{base}/openai/deployments/{self.deployment}/chat/completions?api-version={self.api_version}"
        # OpenAI-style (expects a full /v1/chat/completions endpoint in settings)
        return self.endpoint

    def _headers(self) -> Dict[str, str]:
        if self.provider == "gemini":
            return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        if self.provider == "azure":
            return {"api-key": self.api_key, "Content-Type": "application/json"}
        # Default to OpenAI-compatible header
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _payload(self, messages: List[Message], max_tokens: Optional[int], json_mode: bool) -> Dict[str, Any]:
        if self.provider == "gemini":
            system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
            contents = [
                {"role": "model" if m.get("role") == "assistant" else "user", "parts": [{"text": m["content"]}]}
                for m in messages if m.get("role") != "system"
            ]
            generation: Dict[str, Any] = {"temperature": self.temperature}
            if max_tokens is not None:
                generation["maxOutputTokens"] = max_tokens
            if json_mode:
                generation["responseMimeType"] = "application/json"
            payload: Dict[str, Any] = {"contents": contents, "generationConfig": generation}
            if system:
                payload["systemInstruction"] = {"parts": [{"text": system}]}
            return payload

        # For Azure, the "model" field should be the deployment name; harmless for others
        payload = {
            "model": self.deployment if self.provider == "azure" else self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _content(self, data: Dict[str, Any]) -> Optional[str]:
        if self.provider == "gemini":
            candidates = data.get("candidates") or [{}]
            parts = (candidates[0].get("content") or {}).get("parts") or []
            texts = [p.get("text") for p in parts if isinstance(p, dict) and p.get("text") is not None]
            return "".join(texts) if texts else None
        return (data.get("choices") or [{}])[0].get("message", {}).get("content")

    def chat(self, messages: List[Message], *, max_tokens: Optional[int] = None,
             json_mode: bool = False) -> str:
        """
        Send a chat request and return the text content.

        Raises:
            LLMConfigError: if API key, model or endpoint is missing
            LLMRequestError: on timeout, connection error, non-200 status or empty content
        """
        missing = self.config.missing_llm_keys()
        if missing:
            logger.error("LLM config invalid: missing %s", ", ".join(missing))
            raise LLMConfigError(f"Invalid LLM configuration: set {', '.join(missing)}.",
                                 details={"missing": missing})

        url = self._url()
        payload = self._payload(messages, max_tokens, json_mode)

        t0 = time.time()
        try:
            resp = requests.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.Timeout as e:
            logger.error("LLM request timed out at %s", url)
            raise LLMRequestError("LLM request timed out", details={"reason": "timeout"}) from e
        except requests.ConnectionError as e:
            logger.error("LLM connection error at %s: %s", url, e)
            raise LLMRequestError("LLM connection error", details={"reason": "connection_error"}) from e
        except requests.RequestException as e:
            logger.error("LLM call failed: %s", e)
            raise LLMRequestError(f"LLM call failed: {e}", details={"reason": type(e).__name__}) from e

        latency_ms = int((time.time() - t0) * 1000)
        if resp.status_code != 200:
            # Log a short snippet of body for debugging
            body_snip = resp.text[:300].replace("\n", " ")
            logger.error("LLM HTTP %s at %s: %s", resp.status_code, url, body_snip)
            raise LLMRequestError(f"LLM responded with HTTP {resp.status_code}",
                                  details={"reason": f"http_{resp.status_code}"})

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMRequestError("LLM response is not JSON", details={"reason": "malformed_response"}) from e

        content = self._content(data)
        if content is None:
            logger.error("LLM 200 OK but no content in response")
            raise LLMRequestError("LLM response has no content", details={"reason": "malformed_response"})
        logger.info("LLM OK (provider=%s, model=%s, %d ms)", self.provider, self.model, latency_ms)
        return content


def main():
    """Quick CLI test."""
    from ..utils.logging_setup import setup_logging

    setup_logging()
    client = LLMClient()
    try:
        result = client.chat([{"role": "user", "content": "「こんにちは」を一語で返してください"}])
    except (LLMConfigError, LLMRequestError) as e:
        logger.error("LLM test failed: %s", e)
        result = None
    print("Response:", result or "FAIL")


if __name__ == "__main__":
    main()
