"""OpenAI-compatible LLM provider (Chat Completions API).

One adapter serves every backend that speaks ``/chat/completions``: OpenAI
itself, OpenRouter, Groq, DeepSeek and local OpenAI-compatible servers. They
differ only in base URL, key and model naming.
"""

from typing import Any, Dict, Iterator, List, Optional

from autonomy.core.cancellation import CancelContext, CancelledError
from autonomy.llm.tool_choice import ToolChoiceMode
from autonomy.models.conversation import AIResponse, Message, PromptData, ToolCall
from .base import (
    ErrorClass,
    LLMProvider,
    ModelInfo,
    ProviderCapabilities,
    ProviderError,
    RetryConfig,
    error_from_message,
    error_from_status,
    parse_retry_after,
)

# Reasoning models that reject the tools parameter.
_NO_NATIVE_TOOL_MODELS = ("o1", "o1-mini", "o1-preview")

_BACKEND_DESCRIPTIONS = {
    "openai": "OpenAI",
    "openrouter": "OpenRouter",
    "groq": "Groq",
    "deepseek": "DeepSeek",
    "local": "local OpenAI-compatible server",
}


class OpenAIProvider(LLMProvider):
    """OpenAI (and OpenAI-compatible) LLM provider."""

    name = "openai"
    default_max_tokens = 4096
    default_context_window = 128000

    def __init__(self, config, classifier=None):
        super().__init__(config, classifier)
        self._client = None

    def _get_client(self):
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            import openai

            self._client = openai.OpenAI(
                # Local servers accept any key but the SDK insists on one.
                api_key=self.config.api_key or "not-needed",
                base_url=self.config.base_url or None,
                max_retries=0,
                timeout=self.config.timeout,
            )
        return self._client

    def supports_native_tools(self, model: str) -> bool:
        """OpenRouter's anthropic/* routes and o1-family models get the textual format."""
        model = (model or "").lower()
        if model.startswith("anthropic/"):
            return False
        for unsupported in _NO_NATIVE_TOOL_MODELS:
            if model == unsupported or model.startswith(unsupported + "-"):
                return False
        return True

    def _convert_messages(self, prompt: PromptData) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []
        if prompt.system_prompt:
            converted.append({"role": "system", "content": prompt.system_prompt})

        for msg in prompt.sendable_messages():
            converted.append(self._convert_message(msg))
        return converted

    @staticmethod
    def _convert_message(msg: Message) -> Dict[str, Any]:
        if msg.role == "tool":
            return {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}
        if msg.role == "assistant" and msg.tool_calls:
            return {
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments_json()},
                    }
                    for call in msg.tool_calls
                ],
            }
        return {"role": msg.role, "content": msg.content}

    def _build_request(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.config.model,
            "messages": self._convert_messages(prompt),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if prompt.tools:
            params["tools"] = [tool.to_openai() for tool in prompt.tools]
            params["tool_choice"] = "required" if tool_choice is ToolChoiceMode.FORCE_TOOL else "auto"
        return params

    def _convert_response(self, response: Any) -> AIResponse:
        choices = getattr(response, "choices", None)
        if not choices:
            raise ProviderError(ErrorClass.EMPTY_RESPONSE, f"{self.name} returned no choices")

        message = getattr(choices[0], "message", None)
        if message is None:
            raise ProviderError(ErrorClass.MALFORMED_RESPONSE, f"{self.name} choice has no message")

        tool_calls = [
            ToolCall.from_raw(call.function.name, call.function.arguments, getattr(call, "id", None))
            for call in (getattr(message, "tool_calls", None) or [])
        ]

        usage = {}
        raw_usage = getattr(response, "usage", None)
        if raw_usage is not None:
            usage = {
                "prompt": getattr(raw_usage, "prompt_tokens", 0) or 0,
                "completion": getattr(raw_usage, "completion_tokens", 0) or 0,
                "total": getattr(raw_usage, "total_tokens", 0) or 0,
            }

        return AIResponse(content=message.content or "", tool_calls=tool_calls, usage=usage)

    def _chat(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode], ctx: CancelContext) -> AIResponse:
        client = self._get_client()
        params = self._build_request(prompt, tool_choice)
        response = client.chat.completions.create(timeout=self.request_timeout(ctx), **params)
        return self._convert_response(response)

    def _stream(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode],
                ctx: CancelContext) -> Iterator[str]:
        client = self._get_client()
        params = self._build_request(prompt, tool_choice)
        stream = client.chat.completions.create(stream=True, **params)

        unregister = ctx.on_cancel(stream.close)
        try:
            for chunk in stream:
                if ctx.cancelled:
                    raise CancelledError(ctx.reason or "stream cancelled")
                if not chunk.choices:
                    continue
                delta = getattr(chunk.choices[0], "delta", None)
                text = getattr(delta, "content", None) if delta is not None else None
                if text:
                    yield text
        finally:
            unregister()

    def classify_error(self, error: BaseException) -> ProviderError:
        if isinstance(error, ProviderError):
            return error

        status_code = getattr(error, "status_code", None)
        body = getattr(error, "body", None)
        error_type = ""
        message = str(error)
        if isinstance(body, dict):
            detail = body.get("error") if isinstance(body.get("error"), dict) else body
            error_type = str(detail.get("code") or detail.get("type") or "")
            message = str(detail.get("message") or message)

        if status_code is None:
            return error_from_message(error)

        headers = getattr(getattr(error, "response", None), "headers", None) or {}
        return error_from_status(
            status_code,
            message,
            error_type=error_type,
            retry_after=parse_retry_after(headers.get("retry-after")),
            original_error=error,
        )

    def get_retry_config(self) -> RetryConfig:
        config = super().get_retry_config()
        # 5xx from compatible gateways is retried as well.
        config.retry_on.append(ErrorClass.SERVER_ERROR)
        return config

    def get_model(self) -> ModelInfo:
        backend = _BACKEND_DESCRIPTIONS.get(self.name, self.name)
        return ModelInfo(
            id=self.config.model,
            provider=self.name,
            context_window=self.default_context_window,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            description=f"{backend} via the Chat Completions API",
        )

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_tools=self.supports_native_tools(self.config.model),
            supports_images=self.name in ("openai", "openrouter"),
            supports_system_prompt=True,
        )
