"""
Provider-agnostic LLM client for Huddle.

Supports OpenAI, Anthropic, and Google Gemini with a shared text-generation
interface. Each provider is configured with a fast and an advanced model;
callers pick one per request through an effort tier.
"""

from __future__ import annotations

import hashlib
import logging
from enum import Enum
from typing import Dict, Iterator, List, Optional

logger = logging.getLogger("huddle.common.llm_client")


class EffortTier(str, Enum):
    """How much model capability a request gets"""
    FAST = "fast"
    ADVANCED = "advanced"


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        advanced_model: str = "",
        openai_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.advanced_model = advanced_model or model
        self._client = None
        self._google_models: Dict[str, object] = {}

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build a client for the configured provider"""
        provider = (llm_config.provider or "openai").lower()
        models = {
            "openai": (llm_config.openai_model, llm_config.openai_advanced_model),
            "anthropic": (llm_config.anthropic_model, llm_config.anthropic_advanced_model),
            "google": (llm_config.google_model, llm_config.google_advanced_model),
        }
        model, advanced = models.get(provider, ("", ""))
        return cls(
            provider=provider,
            model=model,
            advanced_model=advanced,
            openai_api_key=llm_config.openai_api_key or None,
            anthropic_api_key=llm_config.anthropic_api_key or None,
            google_api_key=llm_config.google_api_key or None,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def model_for(self, effort: EffortTier = EffortTier.FAST) -> str:
        return self.advanced_model if effort == EffortTier.ADVANCED else self.model

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        effort: EffortTier = EffortTier.FAST,
        max_tokens: int = 1024,
        timeout: float = 30.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        model = self.model_for(effort)

        if self.provider == "openai":
            response = self._client.chat.completions.create(
                model=model,
                max_completion_tokens=max_tokens,
                messages=self._openai_messages(prompt, system, history),
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                messages=_chat_messages(prompt, history),
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "google":
            response = self._google_model(model, system).generate_content(
                _google_contents(prompt, history),
                generation_config={"max_output_tokens": max_tokens},
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    def stream(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        history: Optional[List[Dict[str, str]]] = None,
        effort: EffortTier = EffortTier.FAST,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ) -> Iterator[str]:
        """Yield text deltas as the provider produces them."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        model = self.model_for(effort)

        if self.provider == "openai":
            response = self._client.chat.completions.create(
                model=model,
                max_completion_tokens=max_tokens,
                messages=self._openai_messages(prompt, system, history),
                timeout=timeout,
                stream=True,
            )
            for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
            return

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            with self._client.messages.stream(
                model=model,
                max_tokens=max_tokens,
                messages=_chat_messages(prompt, history),
                timeout=timeout,
                **kwargs,
            ) as stream:
                for text in stream.text_stream:
                    yield text
            return

        if self.provider == "google":
            response = self._google_model(model, system).generate_content(
                _google_contents(prompt, history),
                generation_config={"max_output_tokens": max_tokens},
                request_options={"timeout": timeout},
                stream=True,
            )
            for chunk in response:
                if chunk.text:
                    yield chunk.text
            return

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    @staticmethod
    def _openai_messages(prompt: str, system: Optional[str], history: Optional[List[Dict[str, str]]] = None) -> list:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(_chat_messages(prompt, history))
        return messages

    def _google_model(self, model: str, system: Optional[str]):
        # Gemini binds the system instruction at model construction
        cache_key = hashlib.md5(f"{model}|{system or ''}".encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        return self._google_models[cache_key]


def _chat_messages(prompt: str, history: Optional[List[Dict[str, str]]]) -> list:
    """Earlier turns ({role, content}, oldest first) followed by the prompt as a user turn"""
    messages = [{"role": m["role"], "content": m["content"]} for m in history or []]
    messages.append({"role": "user", "content": prompt})
    return messages


def _google_contents(prompt: str, history: Optional[List[Dict[str, str]]]):
    if not history:
        return prompt
    # Gemini names the assistant role "model"
    return [
        {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
        for m in _chat_messages(prompt, history)
    ]
