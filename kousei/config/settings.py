"""
Provider-agnostic settings for the proofreading core.

ONE LLM config:
  LLM_PROVIDER, LLM_API_KEY, LLM_MODEL, LLM_API_ENDPOINT

plus the analysis, guard, schema, streaming and history limits used as
defaults by the service objects. Every class in the package accepts explicit
parameters; `settings` is only read to fill in what the caller left out.

CLI:
  python -m kousei.config.settings --verbose
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_ROOT = Path(__file__).resolve().parents[1]
ENV_EXAMPLE = PROJECT_ROOT / ".env.example"
if ENV_EXAMPLE.exists():
    load_dotenv(ENV_EXAMPLE, override=False)
    logger.debug("Loaded defaults from %s (override=False)", ENV_EXAMPLE)

DEFAULT_ENDPOINTS = {
    "gemini": "https://generativelanguage.googleapis.com",
    "openai": "https://api.openai.com/v1/chat/completions",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, populate_by_name=True, extra="ignore")

    # App
    app_name: str = Field(default="kousei", alias="APP_NAME")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # SINGLE LLM CONFIG
    llm_enabled: bool = Field(default=True, alias="LLM_ENABLED")
    llm_provider: str = Field(default="gemini", alias="LLM_PROVIDER")
    llm_api_key: str = Field(default="", alias="LLM_API_KEY")
    llm_model: str = Field(default="gemini-2.5-flash", alias="LLM_MODEL")
    llm_api_endpoint: str = Field(default=DEFAULT_ENDPOINTS["gemini"], alias="LLM_API_ENDPOINT")
    llm_api_version: str = Field(default="2024-12-01-preview", alias="LLM_API_VERSION")
    llm_timeout_secs: float = Field(default=30.0, alias="LLM_TIMEOUT_SECS")
    llm_temperature: float = Field(default=0.2, alias="LLM_TEMPERATURE")
    llm_max_suggestions: int = Field(default=3, alias="LLM_MAX_SUGGESTIONS")

    # Rule analysis
    analysis_max_issues: int = Field(default=100, alias="ANALYSIS_MAX_ISSUES")
    analysis_timeout_ms: int = Field(default=5000, alias="ANALYSIS_TIMEOUT_MS")
    rules_preset: str = Field(default="standard", alias="RULES_PRESET")
    rules_dir: str = Field(default=str(PACKAGE_ROOT / "rules" / "presets"), alias="RULES_DIR")
    prompts_dir: Optional[str] = Field(default=None, alias="PROMPTS_DIR")

    # Guards
    pii_masking_enabled: bool = Field(default=False, alias="PII_MASKING_ENABLED")
    prompt_sanitizer_enabled: bool = Field(default=True, alias="PROMPT_SANITIZER_ENABLED")
    prompt_max_length: int = Field(default=1000, alias="PROMPT_MAX_LENGTH")

    # LLM output schema limits
    schema_max_issues: int = Field(default=30, alias="SCHEMA_MAX_ISSUES")
    schema_max_suggestions: int = Field(default=3, alias="SCHEMA_MAX_SUGGESTIONS")
    schema_max_text_length: int = Field(default=1000, alias="SCHEMA_MAX_TEXT_LENGTH")
    schema_max_suggestion_length: int = Field(default=200, alias="SCHEMA_MAX_SUGGESTION_LENGTH")

    # Streaming
    streaming_chunk_size: int = Field(default=1000, alias="STREAMING_CHUNK_SIZE")
    streaming_timeout_secs: float = Field(default=30.0, alias="STREAMING_TIMEOUT_SECS")
    streaming_max_retries: int = Field(default=3, alias="STREAMING_MAX_RETRIES")
    streaming_retry_delay_secs: float = Field(default=1.0, alias="STREAMING_RETRY_DELAY_SECS")
    streaming_max_retry_delay_secs: float = Field(default=8.0, alias="STREAMING_MAX_RETRY_DELAY_SECS")

    # History
    history_max_entries: int = Field(default=50, alias="HISTORY_MAX_ENTRIES")

    # helpers
    def get_log_level(self) -> int:
        """
        Convert string log level to logging constant.

        Returns:
            logging level constant (e.g., logging.INFO)
        """
        level_map = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }
        return level_map.get(self.log_level.upper(), logging.INFO)

    def missing_llm_keys(self) -> List[str]:
        missing = []
        if not (self.llm_api_key or "").strip():
            missing.append("LLM_API_KEY")
        if not (self.llm_model or "").strip():
            missing.append("LLM_MODEL")
        if not (self.llm_api_endpoint or "").strip():
            missing.append("LLM_API_ENDPOINT")
        return missing

    def validate_llm_config(self) -> bool:
        return not self.missing_llm_keys()

    def log_summary(self) -> None:
        logger.info("App: %s | Env: %s", self.app_name, self.environment)
        logger.info("Rules preset: %s | Rules dir: %s", self.rules_preset, self.rules_dir)
        logger.info("Analysis: max_issues=%d timeout_ms=%d", self.analysis_max_issues, self.analysis_timeout_ms)

        logger.info("LLM enabled: %s", self.llm_enabled)
        logger.info("LLM Provider: %s", self.llm_provider)
        logger.info("LLM Model: %s", self.llm_model)
        logger.info("LLM Endpoint: %s", self.llm_api_endpoint)
        logger.info("LLM API key set: %s", "yes" if self.llm_api_key else "no")
        ok = self.validate_llm_config()
        logger.info("LLM config valid: %s", ok)
        if not ok:
            logger.warning("Missing LLM keys: %s", ", ".join(self.missing_llm_keys()) or "unknown")

        logger.info("PII masking: %s | Prompt sanitizer: %s (max %d chars)",
                    self.pii_masking_enabled, self.prompt_sanitizer_enabled, self.prompt_max_length)
        logger.info("Streaming: chunk=%d retries=%d timeout=%.1fs",
                    self.streaming_chunk_size, self.streaming_max_retries, self.streaming_timeout_secs)


settings = Settings()


# CLI self-test
def _parse_args():
    import argparse
    ap = argparse.ArgumentParser(description="Settings self-test")
    ap.add_argument("--verbose", action="store_true", help="DEBUG logs")
    return ap.parse_args()


def main():
    from ..utils.logging_setup import setup_logging

    args = _parse_args()
    setup_logging(logging.DEBUG if args.verbose else settings.get_log_level())

    logger.info("PROJECT_ROOT=%s | .env.example exists=%s", PROJECT_ROOT, ENV_EXAMPLE.exists())
    settings.log_summary()


if __name__ == "__main__":
    main()
