from typing import Callable, TypeVar, Optional, Type, Tuple, Any
from functools import wraps
import random
import asyncio
from dataclasses import dataclass, field

from sqelf_ci.common.exceptions.pipeline_exceptions import TransientPublishError
from sqelf_ci.common.config.logging_config import get_logger


logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class RetryConfig:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1
    retryable_exceptions: Tuple[Type[Exception], ...] = field(
        default_factory=lambda: (TransientPublishError, ConnectionError, TimeoutError)
    )


def calculate_delay(
    attempt: int,
    config: RetryConfig,
) -> float:
    delay = config.initial_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_range = delay * config.jitter_factor
        delay = delay + random.uniform(-jitter_range, jitter_range)

    return max(0.0, delay)


def should_retry(
    exception: Exception,
    attempt: int,
    config: RetryConfig,
) -> bool:
    if attempt >= config.max_retries:
        return False
    return isinstance(exception, config.retryable_exceptions)


def async_retry(
    max_retries: Optional[int] = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    max_retries_attr: Optional[str] = None,
) -> Callable[[F], F]:
    """Retry a coroutine function on transient errors.

    When ``max_retries_attr`` is given and the wrapped function is a method,
    the retry budget is read from that attribute of ``self`` on each call.
    """
    base_config = RetryConfig(
        max_retries=max_retries if max_retries is not None else 3,
        initial_delay=initial_delay,
        max_delay=max_delay,
        exponential_base=exponential_base,
        jitter=jitter,
    )
    if retryable_exceptions is not None:
        base_config.retryable_exceptions = retryable_exceptions

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            config = base_config
            if max_retries_attr and args:
                budget = getattr(args[0], max_retries_attr, None)
                if budget is not None:
                    config = RetryConfig(
                        max_retries=budget,
                        initial_delay=base_config.initial_delay,
                        max_delay=base_config.max_delay,
                        exponential_base=base_config.exponential_base,
                        jitter=base_config.jitter,
                        retryable_exceptions=base_config.retryable_exceptions,
                    )

            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not should_retry(e, attempt, config):
                        raise

                    delay = calculate_delay(attempt, config)

                    logger.warning(
                        f"Async retry attempt {attempt + 1}/{config.max_retries} for {func.__name__} "
                        f"after {delay:.2f}s delay. Error: {str(e)}"
                    )

                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper  # type: ignore

    return decorator
