"""Ollama LLM provider implementation (native ``/api/chat``)."""

import json
from typing import Any, Dict, Iterator, List, Optional

import requests

from autonomy.core.cancellation import CancelContext, CancelledError
from autonomy.llm.tool_choice import ToolChoiceMode
from autonomy.models.conversation import AIResponse, PromptData, ToolCall
from .base import (
    ErrorClass,
    LLMProvider,
    ModelInfo,
    ProviderCapabilities,
    ProviderError,
    error_from_message,
    error_from_status,
    parse_retry_after,
)

# Context window requested from the server (num_ctx).
OLLAMA_NUM_CTX = 16384


class OllamaHTTPError(Exception):
    """Non-2xx reply from an Ollama server."""

    def __init__(self, status_code: int, message: str, retry_after: Optional[float] = None):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.retry_after = retry_after


def _error_message(response) -> str:
    try:
        data = response.json()
    except ValueError:
        return (response.text or "").strip()[:500]
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return json.dumps(data)[:500]


class OllamaProvider(LLMProvider):
    """Ollama LLM provider.

    Ollama takes tool-call arguments as objects rather than JSON strings and
    does not assign call ids, so ids are synthesized on the way back.
    """

    name = "ollama"
    default_max_tokens = 4096
    default_context_window = OLLAMA_NUM_CTX

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _convert_messages(self, prompt: PromptData) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []
        if prompt.system_prompt:
            converted.append({"role": "system", "content": prompt.system_prompt})

        for msg in prompt.sendable_messages():
            entry: Dict[str, Any] = {"role": msg.role, "content": msg.content}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {"function": {
                        "name": call.name,
                        "arguments": call.args if not call.has_raw_arguments else {"raw_arguments": call.arguments},
                    }}
                    for call in msg.tool_calls
                ]
            converted.append(entry)
        return converted

    def _build_payload(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode],
                       stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": self._convert_messages(prompt),
            "stream": stream,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
                "num_ctx": OLLAMA_NUM_CTX,
            },
        }
        if prompt.tools:
            payload["tools"] = [tool.to_openai() for tool in prompt.tools]
            payload["tool_choice"] = "required" if tool_choice is ToolChoiceMode.FORCE_TOOL else "auto"
        return payload

    def _post(self, payload: Dict[str, Any], ctx: CancelContext, stream: bool = False):
        response = requests.post(
            f"{self.config.base_url}/api/chat",
            json=payload,
            headers=self._headers(),
            timeout=self.request_timeout(ctx),
            stream=stream,
        )
        if response.status_code >= 400:
            message = _error_message(response)
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            response.close()
            raise OllamaHTTPError(response.status_code, message, retry_after)
        return response

    def _convert_response(self, data: Any) -> AIResponse:
        if not isinstance(data, dict):
            raise ProviderError(ErrorClass.MALFORMED_RESPONSE, "Ollama returned a non-object body")
        if data.get("error"):
            raise ProviderError(ErrorClass.SERVER_ERROR, str(data["error"]))

        message = data.get("message")
        if not isinstance(message, dict):
            raise ProviderError(ErrorClass.EMPTY_RESPONSE, "Ollama reply has no message")

        tool_calls = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function") or {}
            if not function.get("name"):
                continue
            tool_calls.append(ToolCall.from_raw(function["name"], function.get("arguments"), raw.get("id")))

        prompt_tokens = data.get("prompt_eval_count") or 0
        completion_tokens = data.get("eval_count") or 0
        return AIResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            usage={
                "prompt": prompt_tokens,
                "completion": completion_tokens,
                "total": prompt_tokens + completion_tokens,
            },
        )

    def _chat(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode], ctx: CancelContext) -> AIResponse:
        response = self._post(self._build_payload(prompt, tool_choice, stream=False), ctx)
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(ErrorClass.MALFORMED_RESPONSE, f"Invalid JSON from Ollama: {e}",
                                original_error=e) from e
        return self._convert_response(data)

    def _stream(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode],
                ctx: CancelContext) -> Iterator[str]:
        response = self._post(self._build_payload(prompt, tool_choice, stream=True), ctx, stream=True)
        unregister = ctx.on_cancel(response.close)
        try:
            for line in response.iter_lines():
                if ctx.cancelled:
                    raise CancelledError(ctx.reason or "stream cancelled")
                if not line:
                    continue
                try:
                    chunk = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if chunk.get("error"):
                    raise ProviderError(ErrorClass.SERVER_ERROR, str(chunk["error"]))
                content = (chunk.get("message") or {}).get("content")
                if content:
                    yield content
                if chunk.get("done"):
                    break
        finally:
            unregister()
            response.close()

    def classify_error(self, error: BaseException) -> ProviderError:
        if isinstance(error, ProviderError):
            return error
        if isinstance(error, OllamaHTTPError):
            return error_from_status(
                error.status_code,
                error.message,
                retry_after=error.retry_after,
                original_error=error,
            )
        if isinstance(error, requests.exceptions.Timeout):
            return ProviderError(ErrorClass.TIMEOUT, str(error), original_error=error)
        if isinstance(error, requests.exceptions.ConnectionError):
            return ProviderError(
                ErrorClass.NETWORK_ERROR,
                f"Cannot reach Ollama at {self.config.base_url}: {error}",
                original_error=error,
            )
        return error_from_message(error)

    def get_model(self) -> ModelInfo:
        return ModelInfo(
            id=self.config.model,
            provider=self.name,
            context_window=OLLAMA_NUM_CTX,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            description="Ollama native chat API",
        )

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_tools=True,
            supports_images=False,
            supports_system_prompt=True,
        )
