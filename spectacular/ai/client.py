"""Generation service backed by the Claude API."""

from __future__ import annotations

import os
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional, Sequence, Type

import anthropic

from spectacular.ai.types import (
    CompletionResult,
    GenerationError,
    GenerationValidationError,
    Message,
)
from spectacular.machine import CancelSignal, run_cancellable
from spectacular.streaming import TextStream
from spectacular.utils.logging import get_logger

if TYPE_CHECKING:
    from spectacular.config import AiConfig

logger = get_logger("ai.client")

DEFAULT_MODEL = "claude-sonnet-4-20250514"
WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 3}


def _as_params(messages: Sequence[Message]) -> list[dict[str, Any]]:
    return [message.to_dict() for message in messages]


class GenerationService:
    """
    Thin async wrapper around the Anthropic Messages API.

    Every call accepts an optional CancelSignal; an aborted signal cancels
    the in-flight request and raises InvocationCancelled. SDK errors are
    re-raised as GenerationError. Retries are left to the SDK's own
    ``max_retries`` setting.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        max_tokens: int = 8192,
        temperature: float = 0.2,
        max_retries: int = 2,
        timeout: float = 120.0,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY)
            model: Claude model to use
            base_url: Optional gateway URL in front of the API
            max_tokens: Output token limit per call
            temperature: Default sampling temperature
            max_retries: SDK-level retries for transient failures
            timeout: Request timeout in seconds
            client: Preconfigured client (mainly for tests)
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: "AiConfig") -> "GenerationService":
        return cls(
            api_key=config.api_key,
            model=config.model,
            base_url=config.gateway_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    def _get_client(self) -> anthropic.AsyncAnthropic:
        """Get or create the Anthropic client."""
        if self._client is None:
            if not self.api_key:
                raise GenerationError("ANTHROPIC_API_KEY not set")

            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                base_url=self.base_url,
                max_retries=self.max_retries,
                timeout=self.timeout,
            )

        return self._client

    async def _create(self, signal: Optional[CancelSignal], **params: Any) -> Any:
        client = self._get_client()
        params.setdefault("model", self.model)
        params.setdefault("max_tokens", self.max_tokens)
        try:
            response = await run_cancellable(client.messages.create(**params), signal)
        except anthropic.APIError as e:
            logger.error("model_request_failed", model=params["model"], error=str(e))
            raise GenerationError(f"Model request failed: {e}") from e

        logger.debug(
            "model_request_completed",
            model=params["model"],
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return response

    async def generate_structured(
        self,
        messages: Sequence[Message],
        schema: dict[str, Any],
        *,
        system: str,
        tool_name: str,
        description: str = "",
        temperature: Optional[float] = None,
        signal: Optional[CancelSignal] = None,
    ) -> dict[str, Any]:
        """
        Produce a JSON object matching ``schema`` by forcing a tool call.

        Args:
            messages: Conversation so far
            schema: JSON schema of the expected object
            system: System prompt
            tool_name: Name of the forced tool
            description: Tool description shown to the model
            temperature: Sampling temperature override
            signal: Cancellation signal

        Returns:
            The tool input produced by the model
        """
        response = await self._create(
            signal,
            system=system,
            messages=_as_params(messages),
            temperature=self.temperature if temperature is None else temperature,
            tools=[{"name": tool_name, "description": description, "input_schema": schema}],
            tool_choice={"type": "tool", "name": tool_name},
        )

        for block in response.content:
            if block.type == "tool_use" and block.name == tool_name:
                if not isinstance(block.input, dict):
                    raise GenerationValidationError(f"Tool '{tool_name}' input is not an object")
                return dict(block.input)

        raise GenerationValidationError(f"Model did not call tool '{tool_name}'")

    async def classify(
        self,
        messages: Sequence[Message],
        verdicts: Type[Enum],
        *,
        system: str,
        temperature: Optional[float] = None,
        signal: Optional[CancelSignal] = None,
    ) -> tuple[Enum, str]:
        """
        Classify a conversation into one member of ``verdicts``.

        Returns:
            Tuple of (verdict, reasoning)

        Raises:
            GenerationValidationError: If the model names an unknown verdict
        """
        schema = {
            "type": "object",
            "properties": {
                "reasoning": {
                    "type": "string",
                    "description": "A brief explanation of your reasoning for the classification.",
                },
                "next_step": {
                    "type": "string",
                    "enum": [member.value for member in verdicts],
                },
            },
            "required": ["reasoning", "next_step"],
        }
        data = await self.generate_structured(
            messages,
            schema,
            system=system,
            tool_name="classify",
            description="Record the classification of the conversation.",
            temperature=temperature,
            signal=signal,
        )

        raw = data.get("next_step")
        try:
            verdict = verdicts(raw)
        except ValueError as e:
            raise GenerationValidationError(f"Unknown verdict from classifier: {raw!r}") from e

        logger.info("classified", verdict=verdict.value)
        return verdict, str(data.get("reasoning", ""))

    def generate_text(
        self,
        messages: Sequence[Message],
        *,
        system: str,
        temperature: Optional[float] = None,
        signal: Optional[CancelSignal] = None,
    ) -> TextStream:
        """
        Stream a free-form assistant reply.

        The request is sent when the returned stream is first iterated.
        """
        client = self._get_client()
        params = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": _as_params(messages),
            "temperature": self.temperature if temperature is None else temperature,
        }

        async def fragments() -> AsyncIterator[str]:
            try:
                async with client.messages.stream(**params) as stream:
                    async for text in stream.text_stream:
                        if signal is not None and signal.aborted:
                            break
                        yield text
            except anthropic.APIError as e:
                logger.error("model_stream_failed", model=self.model, error=str(e))
                raise GenerationError(f"Model stream failed: {e}") from e

        return TextStream(fragments())

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        web_search: bool = False,
        temperature: Optional[float] = None,
        signal: Optional[CancelSignal] = None,
    ) -> CompletionResult:
        """
        Run a single-turn free-form completion.

        Args:
            prompt: User prompt
            system: Optional system prompt
            web_search: Allow the model to use the server-side web search tool
            temperature: Sampling temperature override
            signal: Cancellation signal

        Returns:
            CompletionResult with the concatenated text and cited URLs
        """
        params: dict[str, Any] = {
            "messages": [Message.user(prompt).to_dict()],
            "temperature": self.temperature if temperature is None else temperature,
        }
        if system:
            params["system"] = system
        if web_search:
            params["tools"] = [WEB_SEARCH_TOOL]

        response = await self._create(signal, **params)

        texts: list[str] = []
        sources: list[str] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "web_search_tool_result" and isinstance(block.content, list):
                sources.extend(item.url for item in block.content if getattr(item, "url", None))

        return CompletionResult(text="".join(texts), sources=sources)
