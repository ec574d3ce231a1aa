"""
LLM Client Infrastructure
==========================

Wrapper for LLM providers (any OpenAI-compatible API, Z.AI) providing a
clean interface for the ticket classifier.

This module abstracts the LLM client implementation following the
Dependency Inversion Principle - the triage layer depends on abstractions,
not concrete implementations.
"""

import asyncio
import json
import time
from typing import List, Optional
from abc import ABC, abstractmethod

from openai import AsyncOpenAI
from zai import ZaiClient

from ticketmate.config import Settings
from ticketmate.core import LLMException, ConfigurationException
from ticketmate.shared.infrastructure.grafana import GrafanaOTLPExporter
from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """
    Interface for LLM client operations.

    Following Interface Segregation Principle - only methods
    actually needed by the application are defined.
    """

    model: str = "unknown"

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate chat completion."""


class _MeteredClient(ILLMClient):
    """Shared metrics export for real providers."""

    def __init__(self, model: str, metrics: Optional[GrafanaOTLPExporter] = None):
        self.model = model
        self._metrics = metrics

    async def _export(self, result: ChatCompletionResult, operation: str) -> None:
        if self._metrics and self._metrics.is_enabled():
            await self._metrics.export_llm_metrics(
                model=result.model,
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
                latency_ms=result.latency_ms,
                operation=operation
            )


class OpenAILLMClient(_MeteredClient):
    """
    OpenAI-compatible client implementation.

    Works against OpenAI itself or any provider exposing the same API
    (Gemini's OpenAI endpoint, Groq: https://api.groq.com/openai/v1) by
    passing `base_url`.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: Optional[str] = None,
        metrics: Optional[GrafanaOTLPExporter] = None,
    ):
        if not api_key:
            raise ConfigurationException("LLM API key not configured")
        super().__init__(model, metrics)
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation type for metrics (ticket_analysis, ...)

        Returns:
            ChatCompletionResult with generated text

        Raises:
            LLMException: If completion fails
        """
        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        usage = response.usage

        result = ChatCompletionResult(
            content=response.choices[0].message.content or "",
            model=self.model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=latency_ms
        )
        await self._export(result, operation)
        return result


class ZAIILLMClient(_MeteredClient):
    """
    Z.AI SDK client implementation for GLM models.

    The SDK is synchronous, so calls run in a worker thread.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        metrics: Optional[GrafanaOTLPExporter] = None,
    ):
        if not api_key:
            raise ConfigurationException("Z.AI API key not configured")
        super().__init__(model, metrics)
        self._client = ZaiClient(api_key=api_key)

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        start_time = time.perf_counter()

        try:
            response = await asyncio.to_thread(
                self._client.chat.completions.create,
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        content = response.choices[0].message.content or ""

        # Z.AI doesn't return token usage, so we estimate
        result = ChatCompletionResult(
            content=content,
            model=self.model,
            prompt_tokens=len(str(messages)),
            completion_tokens=len(content),
            latency_ms=latency_ms
        )
        await self._export(result, operation)
        return result


MOCK_ANALYSIS = {
    "summary": "User cannot complete the requested action.",
    "priority": "medium",
    "helpfulNotes": "Mock: reproduce the issue and check recent deployments.",
    "relatedSkills": ["Node.js"],
    "replySuggestions": [
        "Thanks for reporting this, we are looking into it.",
        "Could you share the exact error message you see?",
    ],
}


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for testing.

    Returns predictable responses without calling external APIs. Pass
    `content` to script the raw reply, or `error` to make every call fail.
    """

    model = "mock-model"

    def __init__(self, content: Optional[str] = None, error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: List[List[dict]] = []

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Return the scripted response, or a fenced analysis JSON."""
        self.calls.append(messages)
        if self.error is not None:
            raise self.error

        content = self.content
        if content is None:
            content = f"```json\n{json.dumps(MOCK_ANALYSIS, indent=2)}\n```"

        return ChatCompletionResult(
            content=content,
            model=self.model,
            prompt_tokens=100,
            completion_tokens=len(content.split()),
            latency_ms=100
        )


def create_llm_client(
    settings: Settings,
    metrics: Optional[GrafanaOTLPExporter] = None,
) -> Optional[ILLMClient]:
    """
    Build the classifier client for the configured provider.

    Returns None when the provider needs a key that is not configured; the
    triage workflow then falls back to the default classification.
    """
    provider = settings.llm_provider
    if provider == "mock":
        return MockLLMClient()

    try:
        if provider == "zai":
            client: ILLMClient = ZAIILLMClient(settings.llm_api_key, settings.llm_model, metrics)
        else:
            client = OpenAILLMClient(
                settings.llm_api_key,
                settings.llm_model,
                base_url=settings.llm_base_url,
                metrics=metrics,
            )
    except ConfigurationException as e:
        logger.warning(
            "LLM client not configured, triage will use the fallback classification",
            extra={"provider": provider, "error": e.message}
        )
        return None

    logger.info("LLM client initialized", extra={"provider": provider, "model": settings.llm_model})
    return client
