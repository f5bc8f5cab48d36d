"""Anthropic LLM provider using the anthropic SDK."""

from __future__ import annotations

import logging

import anthropic

from crewdispatch.models.provider import LLMConfig, LLMMessage, LLMResponse

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-haiku-latest"


class AnthropicProvider:
    """LLM provider using the Anthropic API."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "",
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key or None)
        self._default_model = model or DEFAULT_MODEL

    @staticmethod
    def _convert_messages(messages: list[LLMMessage]) -> tuple[str | None, list[dict]]:
        """Split out the system prompt; Anthropic takes it separately."""
        system_prompt = None
        converted = []
        for msg in messages:
            if msg.role == "system":
                system_prompt = msg.content
            else:
                converted.append({"role": msg.role, "content": msg.content})
        return system_prompt, converted

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        config = config or LLMConfig()
        system_prompt, converted = self._convert_messages(messages)

        kwargs: dict = {
            "model": config.model or self._default_model,
            "max_tokens": config.max_tokens,
            "messages": converted,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature

        response = await self._client.messages.create(**kwargs)

        content_text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        return LLMResponse(
            content=content_text,
            model=response.model,
            finish_reason=response.stop_reason or "",
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )
