"""Anthropic LLM provider implementation (Messages API)."""

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
    error_from_message,
    error_from_status,
    parse_retry_after,
)

_CONTEXT_WINDOW = 200000


class AnthropicProvider(LLMProvider):
    """Anthropic (Claude) LLM provider.

    Tool calls travel as ``tool_use`` blocks on assistant turns; tool results
    go back as ``tool_result`` blocks inside user turns since the Messages API
    has no tool role. Consecutive same-role turns are merged because the API
    requires strict user/assistant alternation.
    """

    name = "anthropic"
    default_max_tokens = 8192
    default_context_window = _CONTEXT_WINDOW

    def __init__(self, config, classifier=None):
        super().__init__(config, classifier)
        self._client = None

    def _get_client(self):
        """Lazy initialization of the Anthropic client."""
        if self._client is None:
            import anthropic

            kwargs: Dict[str, Any] = {
                "api_key": self.config.api_key,
                # Retries are handled by RetryHandler so they honor cancellation.
                "max_retries": 0,
                "timeout": self.config.timeout,
            }
            if self.config.base_url:
                kwargs["base_url"] = self.config.base_url
            self._client = anthropic.Anthropic(**kwargs)
        return self._client

    def _convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                continue

            if msg.role == "assistant":
                role = "assistant"
                blocks: List[Dict[str, Any]] = []
                if msg.content.strip():
                    blocks.append({"type": "text", "text": msg.content})
                for call in msg.tool_calls:
                    tool_input = call.args if not call.has_raw_arguments else {"raw_arguments": call.arguments}
                    blocks.append({
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": tool_input,
                    })
            elif msg.role == "tool":
                role = "user"
                blocks = [{
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content or "(no output)",
                }]
            else:
                role = "user"
                blocks = [{"type": "text", "text": msg.content}]

            if converted and converted[-1]["role"] == role:
                converted[-1]["content"].extend(blocks)
            else:
                converted.append({"role": role, "content": blocks})

        return converted

    def _build_request(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.config.model,
            "messages": self._convert_messages(prompt.sendable_messages()),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if prompt.system_prompt:
            params["system"] = prompt.system_prompt
        if prompt.tools:
            params["tools"] = [tool.to_anthropic() for tool in prompt.tools]
            if tool_choice is ToolChoiceMode.FORCE_TOOL:
                params["tool_choice"] = {"type": "any"}
            else:
                params["tool_choice"] = {"type": "auto"}
        return params

    def _convert_response(self, response: Any) -> AIResponse:
        blocks = getattr(response, "content", None)
        if not blocks:
            raise ProviderError(ErrorClass.EMPTY_RESPONSE, "Anthropic returned no content blocks")

        texts: List[str] = []
        tool_calls: List[ToolCall] = []
        for block in blocks:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                texts.append(block.text)
            elif block_type == "tool_use":
                tool_calls.append(ToolCall.from_raw(block.name, block.input, block.id))

        usage = {}
        if getattr(response, "usage", None) is not None:
            prompt_tokens = response.usage.input_tokens or 0
            completion_tokens = response.usage.output_tokens or 0
            usage = {
                "prompt": prompt_tokens,
                "completion": completion_tokens,
                "total": prompt_tokens + completion_tokens,
            }

        return AIResponse(content="\n".join(t for t in texts if t), tool_calls=tool_calls, usage=usage)

    def _chat(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode], ctx: CancelContext) -> AIResponse:
        client = self._get_client()
        params = self._build_request(prompt, tool_choice)
        response = client.messages.create(timeout=self.request_timeout(ctx), **params)
        return self._convert_response(response)

    def _stream(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode],
                ctx: CancelContext) -> Iterator[str]:
        client = self._get_client()
        params = self._build_request(prompt, tool_choice)

        with client.messages.stream(**params) as stream:
            unregister = ctx.on_cancel(stream.close)
            try:
                for text in stream.text_stream:
                    if ctx.cancelled:
                        raise CancelledError(ctx.reason or "stream cancelled")
                    yield text
            finally:
                unregister()

    def classify_error(self, error: BaseException) -> ProviderError:
        """Classify by HTTP status and the ``error.type`` field of the body."""
        if isinstance(error, ProviderError):
            return error

        status_code = getattr(error, "status_code", None)
        body = getattr(error, "body", None)
        error_type = ""
        message = str(error)
        if isinstance(body, dict):
            detail = body.get("error") if isinstance(body.get("error"), dict) else body
            error_type = str(detail.get("type", "") or "")
            message = str(detail.get("message") or message)

        if status_code is None and not error_type:
            return error_from_message(error)

        headers = getattr(getattr(error, "response", None), "headers", None) or {}
        return error_from_status(
            status_code,
            message,
            error_type=error_type,
            retry_after=parse_retry_after(headers.get("retry-after")),
            original_error=error,
        )

    def get_model(self) -> ModelInfo:
        return ModelInfo(
            id=self.config.model,
            provider=self.name,
            context_window=_CONTEXT_WINDOW,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            description="Anthropic Claude via the Messages API",
        )

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_tools=True,
            supports_images=True,
            supports_system_prompt=True,
        )
