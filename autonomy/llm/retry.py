#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Retry logic for LLM provider requests."""

from typing import Any, Callable, Optional

from autonomy.core.cancellation import CancelContext, CancelledError
from autonomy.debug_logger import get_logger
from autonomy.llm.providers.base import ErrorClass, ProviderError, RetryConfig


Classifier = Callable[[BaseException], ProviderError]


class RetryHandler:
    """Exponential backoff driven by error classification.

    Only errors whose class is listed in ``RetryConfig.retry_on`` are retried;
    everything else is raised after the first attempt. Backoff sleeps end
    immediately when the context is cancelled.
    """

    def __init__(self, config: RetryConfig, classify: Optional[Classifier] = None, provider_name: str = ""):
        """Initialize retry handler.

        Args:
            config: Retry configuration
            classify: Maps a raw exception to a ProviderError
            provider_name: Used in log events only
        """
        self.config = config
        self.classify = classify or _unknown_error
        self.provider_name = provider_name

    def should_retry(self, error: ProviderError, attempt: int) -> bool:
        """Determine if an operation should be retried.

        Args:
            error: The classified error
            attempt: Number of attempts made so far (1-indexed)
        """
        logger = get_logger()

        if attempt > self.config.max_retries:
            logger.info(f"Max retries ({self.config.max_retries}) exceeded")
            return False

        if error.error_class not in self.config.retry_on:
            logger.info(f"Error class {error.error_class.value} not in retry list")
            return False

        return True

    def get_backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Calculate backoff delay for retry.

        Args:
            attempt: Current attempt number (1-indexed)
            retry_after: Optional explicit delay from a Retry-After header

        Returns:
            Delay in seconds
        """
        if retry_after is not None and retry_after > 0:
            return min(retry_after, self.config.max_backoff)

        if self.config.exponential:
            # base * 2^(attempt-1)
            delay = self.config.base_backoff * (2 ** (attempt - 1))
        else:
            delay = self.config.base_backoff

        return min(delay, self.config.max_backoff)

    def to_provider_error(self, error: BaseException) -> ProviderError:
        if isinstance(error, ProviderError):
            return error
        return self.classify(error)

    def wait_before_retry(self, ctx: CancelContext, attempt: int, error: ProviderError) -> None:
        """Sleep for the backoff delay; raise CancelledError if cancelled meanwhile."""
        delay = self.get_backoff_delay(attempt, error.retry_after)
        get_logger().log_retry(self.provider_name, attempt, delay, error)
        if ctx.wait(delay):
            raise CancelledError(ctx.reason or "cancelled during backoff")

    def execute_with_retry(self, ctx: CancelContext, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Call ``func`` until it succeeds, a non-retryable error occurs or retries run out.

        Raises:
            ProviderError: the classified last error
            CancelledError: if ``ctx`` is cancelled before or between attempts
        """
        attempt = 1
        while True:
            ctx.raise_if_cancelled()
            try:
                result = func(*args, **kwargs)
                if attempt > 1:
                    get_logger().info(f"Retry successful on attempt {attempt}")
                return result
            except CancelledError:
                raise
            except Exception as e:
                if ctx.cancelled:
                    raise CancelledError(ctx.reason or "context cancelled") from e
                error = self.to_provider_error(e)
                if not self.should_retry(error, attempt):
                    if error is e:
                        raise
                    raise error from e
                self.wait_before_retry(ctx, attempt, error)
                attempt += 1


def _unknown_error(error: BaseException) -> ProviderError:
    return ProviderError(ErrorClass.UNKNOWN, str(error), retryable=False, original_error=error)
