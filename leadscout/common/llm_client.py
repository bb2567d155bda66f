"""
Provider-agnostic async LLM client for LeadScout.

Supports Anthropic, OpenAI, and Google Gemini with a shared completion
interface. Every call goes through bounded retry with backoff.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

from .config import RetryConfig
from .retry import retry_async

logger = logging.getLogger("leadscout.common.llm_client")

_JSON_SUFFIX = "\n\nRespond with a single valid JSON object and nothing else."


class LLMClient:
    """Unified async text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        retry: Optional[RetryConfig] = None,
        timeout: float = 30.0,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.retry = retry or RetryConfig()
        self.timeout = timeout
        self._client = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.AsyncAnthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._google_models = {}  # Cache models by system prompt hash
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, llm_config, retry_config: Optional[RetryConfig] = None) -> "LLMClient":
        model = {
            "anthropic": llm_config.anthropic_model,
            "openai": llm_config.openai_model,
            "google": llm_config.google_model,
        }.get((llm_config.provider or "").lower(), "")
        return cls(
            provider=llm_config.provider,
            model=model,
            anthropic_api_key=llm_config.anthropic_api_key or None,
            openai_api_key=llm_config.openai_api_key or None,
            google_api_key=llm_config.google_api_key or None,
            retry=retry_config,
            timeout=llm_config.timeout_seconds,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> str:
        """Generate text with retries. Raises UpstreamServiceError on failure."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        return await retry_async(
            lambda: self.generate(
                prompt,
                system=system,
                max_tokens=max_tokens,
                temperature=temperature,
                json_mode=json_mode,
            ),
            name=f"{self.provider} completion",
            max_attempts=self.retry.max_attempts,
            base_delay=self.retry.base_delay_seconds,
            max_delay=self.retry.max_delay_seconds,
            jitter_ratio=self.retry.jitter_ratio,
        )

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> str:
        """Single provider call, no retry."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt + (_JSON_SUFFIX if json_mode else "")}],
                timeout=self.timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            kwargs = {}
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = await self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=messages,
                timeout=self.timeout,
                **kwargs,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            cache_key = hashlib.md5((system or "").encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
            model = self._google_models[cache_key]
            generation_config = {"max_output_tokens": max_tokens, "temperature": temperature}
            if json_mode:
                generation_config["response_mime_type"] = "application/json"
            response = await model.generate_content_async(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": self.timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")
