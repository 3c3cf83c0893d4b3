"""Exception taxonomy and error-handling decorators.

Every domain exception carries the HTTP status the API layer answers with.
"""

import time
from functools import wraps
from typing import Any, Callable, Type

from loguru import logger


# Exceptions

class ClauseGuardError(Exception):
    """Base exception for all ClauseGuard errors."""
    http_status = 500


class UnsupportedFormatError(ClauseGuardError):
    """Raised when a declared document format has no extractor."""
    http_status = 400


class ExtractionExhaustedError(ClauseGuardError):
    """Raised when every applicable extraction strategy was insufficient."""
    http_status = 422


class DocumentParsingError(ClauseGuardError):
    """Raised when a single-strategy reader (docx, text, OCR) fails."""
    pass


class AnalysisFailedError(ClauseGuardError):
    """Raised when structured AI analysis or its response parsing fails."""
    http_status = 502


class AnalysisNotReadyError(ClauseGuardError):
    """Raised when an operation needs extraction data that is not ready yet."""
    http_status = 409


class RuleEvaluationError(ClauseGuardError):
    """Raised inside a single compliance rule check; never escapes the engine."""
    pass


class InvalidStateTransitionError(ClauseGuardError):
    """Raised when the extraction state machine rejects a transition."""
    http_status = 409

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid extraction status transition: {current} -> {target}")


class TaskQueueFullError(ClauseGuardError):
    """Raised when the background analysis pool is at capacity."""
    http_status = 503


class LLMError(ClauseGuardError):
    """Raised when the language model is not configured or the call fails."""
    http_status = 502


class RecordNotFoundError(ClauseGuardError):
    """Raised when a document, rule or chat message does not exist."""
    http_status = 404


class StoreError(ClauseGuardError):
    """Raised when the record store fails."""
    pass


class ValidationError(ClauseGuardError):
    """Raised for invalid caller input."""
    http_status = 400


# Retry and error decorators

class RetryConfig:
    """Exponential backoff policy: ``initial_delay * exp_base ** attempt``, capped."""

    def __init__(
        self,
        attempts: int = 3,
        exp_base: int = 2,
        initial_delay: float = 1.0,
        max_delay: float = 30.0
    ):
        self.attempts = attempts
        self.exp_base = exp_base
        self.initial_delay = initial_delay
        self.max_delay = max_delay

    def calculate_delay(self, attempt: int) -> float:
        """Delay after the 0-indexed ``attempt`` failed."""
        return min(self.initial_delay * (self.exp_base ** attempt), self.max_delay)


# Interactive chat calls only; background analysis is never retried.
CHAT_RETRY_CONFIG = RetryConfig(attempts=3, exp_base=2, initial_delay=1.0, max_delay=10.0)


def retry_with_backoff(
    config: RetryConfig = CHAT_RETRY_CONFIG,
    exceptions: tuple[Type[Exception], ...] = (Exception,)
) -> Callable:
    """Retry the wrapped call on ``exceptions``, sleeping between attempts.

    The last exception is re-raised once ``config.attempts`` calls failed.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            for attempt in range(config.attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == config.attempts - 1:
                        logger.error(
                            f"{func.__name__} gave up after {config.attempts} attempts",
                            error=str(e),
                            error_type=type(e).__name__
                        )
                        raise

                    delay = config.calculate_delay(attempt)
                    logger.warning(
                        f"{func.__name__} attempt {attempt + 1}/{config.attempts} failed, "
                        f"retrying in {delay}s",
                        error=str(e)
                    )
                    time.sleep(delay)

        return wrapper
    return decorator


def handle_errors(error_type: Type[ClauseGuardError]) -> Callable:
    """Wrap unexpected exceptions of the decorated call in ``error_type``.

    ClauseGuardError subclasses pass through unchanged.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except ClauseGuardError:
                raise
            except Exception as e:
                logger.error(f"{func.__name__} failed", error=str(e), error_type=type(e).__name__)
                raise error_type(f"{func.__name__}: {str(e)}") from e

        return wrapper
    return decorator


def insufficient_on_error(layer_name: str) -> Callable:
    """Make a cascade layer return ``None`` instead of raising.

    Args:
        layer_name: Layer name used in log messages

    Returns:
        Decorated function that never raises
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"Layer {layer_name} failed, treating as insufficient",
                    error=str(e),
                    error_type=type(e).__name__
                )
                return None

        return wrapper
    return decorator
