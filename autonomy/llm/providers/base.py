"""Base interface for LLM providers.

Every adapter turns a backend-neutral :class:`PromptData` into its backend's
wire format and back. The shared flow lives here: tool forcing, retry with
backoff, the textual-tools fallback and the streaming producer. Adapters only
implement the per-backend hooks (``_chat``, ``_stream``, ``classify_error``,
``get_model``, ``get_capabilities``).
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from autonomy.config import ProviderConfig
from autonomy.core.cancellation import CancelContext, CancelledError, run_interruptible
from autonomy.debug_logger import get_logger
from autonomy.llm.streaming import StreamChannel
from autonomy.llm.tool_call_parser import build_tools_system_message, flatten_tool_turns, parse_text_envelope
from autonomy.llm.tool_choice import ToolChoiceClassifier, ToolChoiceMode, default_classifier
from autonomy.models.conversation import AIResponse, Message, PromptData

TEXT_CHANNEL_SIZE = 100
ERROR_CHANNEL_SIZE = 1


class ErrorClass(Enum):
    """Standardized error categories across all providers."""
    RATE_LIMIT = "rate_limit"
    OVERLOADED = "overloaded"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    INVALID_REQUEST = "invalid_request"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    AUTH_ERROR = "auth_error"
    PERMISSION_ERROR = "permission_error"
    MODEL_NOT_FOUND = "model_not_found"
    MALFORMED_RESPONSE = "malformed_response"
    EMPTY_RESPONSE = "empty_response"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


FATAL_ERROR_CLASSES = frozenset({
    ErrorClass.AUTH_ERROR,
    ErrorClass.PERMISSION_ERROR,
    ErrorClass.MODEL_NOT_FOUND,
    ErrorClass.CONFIGURATION,
})

_RETRYABLE_ERROR_CLASSES = frozenset({
    ErrorClass.RATE_LIMIT,
    ErrorClass.OVERLOADED,
    ErrorClass.SERVER_ERROR,
    ErrorClass.TIMEOUT,
    ErrorClass.NETWORK_ERROR,
})


class ProviderError(Exception):
    """Standardized, classified provider failure."""

    def __init__(
        self,
        error_class: ErrorClass,
        message: str,
        retryable: Optional[bool] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.error_class = error_class
        self.message = message
        self.retryable = error_class in _RETRYABLE_ERROR_CLASSES if retryable is None else retryable
        self.status_code = status_code
        self.retry_after = retry_after  # Seconds to wait before retry
        self.original_error = original_error

    @property
    def fatal(self) -> bool:
        """Errors that no amount of retrying or rephrasing will fix."""
        return self.error_class in FATAL_ERROR_CLASSES

    def __str__(self) -> str:
        if self.status_code:
            return f"{self.error_class.value} (HTTP {self.status_code}): {self.message}"
        return f"{self.error_class.value}: {self.message}"


class ConfigurationError(ProviderError):
    """Missing or invalid provider configuration, raised before any network call."""

    def __init__(self, message: str):
        super().__init__(ErrorClass.CONFIGURATION, message, retryable=False)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int
    base_backoff: float  # seconds
    max_backoff: float  # seconds
    exponential: bool = True
    retry_on: List[ErrorClass] = field(default_factory=lambda: [
        ErrorClass.RATE_LIMIT,
        ErrorClass.OVERLOADED,
    ])


@dataclass(frozen=True)
class ModelInfo:
    id: str
    provider: str
    context_window: int
    max_tokens: int
    temperature: float
    description: str = ""


@dataclass(frozen=True)
class ProviderCapabilities:
    supports_tools: bool = True
    supports_images: bool = False
    supports_system_prompt: bool = True
    supports_streaming: bool = True


def error_from_status(
    status_code: Optional[int],
    message: str,
    error_type: str = "",
    retry_after: Optional[float] = None,
    original_error: Optional[BaseException] = None,
) -> ProviderError:
    """Classify an HTTP failure by status code and backend error type string."""
    error_type = (error_type or "").lower()
    lowered = message.lower()

    if error_type in ("rate_limit_error", "rate_limit_exceeded") or status_code == 429:
        error_class = ErrorClass.RATE_LIMIT
    elif error_type == "overloaded_error" or status_code in (503, 529):
        error_class = ErrorClass.OVERLOADED
    elif error_type == "authentication_error" or status_code == 401:
        error_class = ErrorClass.AUTH_ERROR
    elif error_type == "permission_error" or status_code == 403:
        error_class = ErrorClass.PERMISSION_ERROR
    elif error_type == "not_found_error" or status_code == 404:
        error_class = ErrorClass.MODEL_NOT_FOUND
    elif status_code == 408:
        error_class = ErrorClass.TIMEOUT
    elif status_code in (400, 413, 422) or error_type == "invalid_request_error":
        if any(k in lowered for k in ("context length", "context_length", "too long", "maximum context")):
            error_class = ErrorClass.CONTEXT_LENGTH_EXCEEDED
        else:
            error_class = ErrorClass.INVALID_REQUEST
    elif error_type == "api_error" or (status_code is not None and status_code >= 500):
        error_class = ErrorClass.SERVER_ERROR
    else:
        error_class = ErrorClass.UNKNOWN

    return ProviderError(
        error_class,
        message,
        status_code=status_code,
        retry_after=retry_after,
        original_error=original_error,
    )


def error_from_message(error: BaseException) -> ProviderError:
    """Heuristic classification for errors that carry no HTTP status."""
    error_str = str(error).lower()
    error_type = type(error).__name__.lower()

    if "timeout" in error_type or "timed out" in error_str or "timeout" in error_str:
        error_class = ErrorClass.TIMEOUT
    elif "connection" in error_type or any(
        k in error_str for k in ("connection", "network", "unreachable", "refused")
    ):
        error_class = ErrorClass.NETWORK_ERROR
    elif "rate limit" in error_str or "too many requests" in error_str:
        error_class = ErrorClass.RATE_LIMIT
    elif isinstance(error, (ValueError, KeyError, TypeError)):
        error_class = ErrorClass.MALFORMED_RESPONSE
    else:
        error_class = ErrorClass.UNKNOWN

    return ProviderError(error_class, str(error), original_error=error)


def parse_retry_after(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    Instances hold only construction-time configuration and may be shared by
    concurrent sessions.
    """

    name = "base"
    default_max_tokens = 4096
    default_context_window = 128000

    def __init__(self, config: ProviderConfig, classifier: Optional[ToolChoiceClassifier] = None):
        self.config = config
        self.name = config.provider or self.name
        self._classifier = classifier

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def generate_code(self, prompt: PromptData, ctx: Optional[CancelContext] = None) -> AIResponse:
        """Send the conversation and return the normalized model turn.

        Raises:
            ProviderError: classified backend failure after retries
            CancelledError: if ``ctx`` is cancelled
        """
        ctx = ctx or CancelContext.background()
        debug_logger = get_logger()

        if prompt.tools and not self.supports_native_tools(self.config.model):
            debug_logger.log("llm", "TEXTUAL_TOOLS", {
                "provider": self.name,
                "model": self.config.model,
                "reason": "model has no native tool calling",
            })
            return self._generate_with_textual_tools(prompt, ctx)

        tool_choice = self.determine_tool_choice(prompt)
        debug_logger.log_llm_request(
            self.name, self.config.model, prompt.messages, prompt.tools,
            tool_choice.value if tool_choice else None,
        )

        try:
            response = self._retry_handler().execute_with_retry(
                ctx, run_interruptible, ctx, self._chat, prompt, tool_choice, ctx
            )
        except ProviderError as e:
            if prompt.tools and e.error_class is ErrorClass.INVALID_REQUEST and e.status_code == 400:
                debug_logger.log("llm", "TEXTUAL_TOOLS", {
                    "provider": self.name,
                    "model": self.config.model,
                    "reason": str(e),
                }, "WARNING")
                return self._generate_with_textual_tools(prompt, ctx)
            debug_logger.log_error("llm", e, {"provider": self.name, "model": self.config.model})
            raise

        debug_logger.log_llm_response(self.name, self.config.model, response)
        return response

    def generate_code_stream(
        self, prompt: PromptData, ctx: Optional[CancelContext] = None
    ) -> Tuple[StreamChannel, StreamChannel]:
        """Start streaming; return ``(text_channel, error_channel)``.

        One daemon producer thread closes both channels exactly once. On
        cancellation buffered text is discarded and no error is emitted.
        """
        stream_ctx = (ctx or CancelContext.background()).child()
        text_channel = StreamChannel(TEXT_CHANNEL_SIZE)
        error_channel = StreamChannel(ERROR_CHANNEL_SIZE)

        def close_on_cancel():
            text_channel.close(discard=True)
            error_channel.close()

        unregister = stream_ctx.on_cancel(close_on_cancel)

        def produce():
            try:
                self._produce_stream(prompt, stream_ctx, text_channel)
            except CancelledError:
                pass
            except Exception as e:
                if not stream_ctx.cancelled:
                    error = e if isinstance(e, ProviderError) else self.classify_error(e)
                    get_logger().log_error("llm", error, {"provider": self.name, "stream": True})
                    error_channel.send(error, stream_ctx)
            finally:
                unregister()
                text_channel.close(discard=stream_ctx.cancelled)
                error_channel.close()
                stream_ctx.release()

        producer = threading.Thread(target=produce, name=f"{self.name}-stream", daemon=True)
        producer.start()
        return text_channel, error_channel

    def complete_prompt(self, text: str, ctx: Optional[CancelContext] = None) -> str:
        """One-shot completion of a single user prompt, no tools."""
        response = self.generate_code(PromptData(messages=[Message.user(text)]), ctx)
        return response.content

    def count_tokens(self, messages: Sequence[Message], ctx: Optional[CancelContext] = None) -> int:
        """Character-based estimate: roughly 4 characters per token."""
        if ctx is not None:
            ctx.raise_if_cancelled()
        total_chars = 0
        for message in messages:
            total_chars += len(message.content) + 16  # role overhead
            for call in message.tool_calls:
                total_chars += len(call.name) + len(call.arguments_json())
        return total_chars // 4

    def determine_tool_choice(self, prompt: PromptData) -> Optional[ToolChoiceMode]:
        """Forcing mode for this turn; None when no tools are offered."""
        if not prompt.tools:
            return None
        classifier = self._classifier or default_classifier()
        return classifier.determine_mode(prompt.last_user_visible_text())

    def supports_native_tools(self, model: str) -> bool:
        return True

    def validate_config(self) -> None:
        """Raise ConfigurationError when the adapter cannot be used as configured."""
        if self.config.requires_api_key and not self.config.api_key:
            raise ConfigurationError(f"No API key configured for provider '{self.name}'")
        if not self.config.model:
            raise ConfigurationError(f"No model configured for provider '{self.name}'")

    def get_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.config.max_retries,
            base_backoff=self.config.base_backoff,
            max_backoff=self.config.max_backoff,
        )

    @property
    def max_tokens(self) -> int:
        return self.config.max_tokens if self.config.max_tokens > 0 else self.default_max_tokens

    @property
    def temperature(self) -> float:
        return self.config.effective_temperature

    def request_timeout(self, ctx: CancelContext) -> float:
        remaining = ctx.remaining()
        if remaining is None:
            return self.config.timeout
        return max(0.1, min(self.config.timeout, remaining))

    def get_model(self) -> ModelInfo:
        return ModelInfo(
            id=self.config.model,
            provider=self.name,
            context_window=self.default_context_window,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def get_capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(supports_tools=self.supports_native_tools(self.config.model))

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _chat(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode], ctx: CancelContext) -> AIResponse:
        """Perform one non-streaming call and normalize the response."""

    @abstractmethod
    def _stream(self, prompt: PromptData, tool_choice: Optional[ToolChoiceMode],
                ctx: CancelContext) -> Iterator[str]:
        """Yield text deltas. Must stop promptly once ``ctx`` is cancelled."""

    @abstractmethod
    def classify_error(self, error: BaseException) -> ProviderError:
        """Classify a raw backend exception."""

    # ------------------------------------------------------------------
    # Shared machinery
    # ------------------------------------------------------------------

    def _retry_handler(self):
        from autonomy.llm.retry import RetryHandler

        return RetryHandler(self.get_retry_config(), self.classify_error, self.name)

    @staticmethod
    def _textual_prompt(prompt: PromptData) -> PromptData:
        """Move the tool set into the system prompt and flatten tool turns to text."""
        catalogue = build_tools_system_message(prompt.tools)
        system_prompt = f"{prompt.system_prompt}\n\n{catalogue}" if prompt.system_prompt else catalogue
        return PromptData(
            system_prompt=system_prompt,
            messages=flatten_tool_turns(prompt.messages),
            tools=[],
        )

    def _generate_with_textual_tools(self, prompt: PromptData, ctx: CancelContext) -> AIResponse:
        textual_prompt = self._textual_prompt(prompt)
        get_logger().log_llm_request(self.name, self.config.model, textual_prompt.messages)

        raw = self._retry_handler().execute_with_retry(
            ctx, run_interruptible, ctx, self._chat, textual_prompt, None, ctx
        )
        content, tool_calls = parse_text_envelope(raw.content)
        response = AIResponse(content=content, tool_calls=tool_calls, usage=raw.usage)
        get_logger().log_llm_response(self.name, self.config.model, response, fallback=True)
        return response

    def _produce_stream(self, prompt: PromptData, ctx: CancelContext, channel: StreamChannel) -> None:
        handler = self._retry_handler()
        if prompt.tools and not self.supports_native_tools(self.config.model):
            get_logger().log("llm", "TEXTUAL_TOOLS", {
                "provider": self.name,
                "model": self.config.model,
                "reason": "model has no native tool calling",
                "stream": True,
            })
            prompt = self._textual_prompt(prompt)
        tool_choice = self.determine_tool_choice(prompt)
        get_logger().log_llm_request(
            self.name, self.config.model, prompt.messages, prompt.tools,
            tool_choice.value if tool_choice else None,
        )

        attempt = 1
        while True:
            ctx.raise_if_cancelled()
            delivered = False
            try:
                for delta in self._stream(prompt, tool_choice, ctx):
                    if not delta:
                        continue
                    delivered = True
                    if not channel.send(delta, ctx):
                        return
                return
            except CancelledError:
                raise
            except Exception as e:
                if ctx.cancelled:
                    raise CancelledError(ctx.reason or "stream cancelled") from e
                error = handler.to_provider_error(e)
                # Never replay a stream the consumer has already seen part of.
                if delivered or not handler.should_retry(error, attempt):
                    if error is e:
                        raise
                    raise error from e
                handler.wait_before_retry(ctx, attempt, error)
                attempt += 1

    def __str__(self) -> str:
        return f"{self.__class__.__name__}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', model='{self.config.model}')"
