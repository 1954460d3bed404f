"""
Fetch-or-fallback helpers shared by generation, image and weather lookups.

``with_fallback`` runs a primary coroutine factory and ``call_with_fallback`` a
plain callable; when the primary raises, the error is classified and either the
fallback value is produced or the error propagates.
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Type, TypeVar, Union

from errors import LLMNotConfiguredError, LLMTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Recoverability(str, Enum):
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


Classifier = Callable[[Exception], Recoverability]


def recover_always(error: Exception) -> Recoverability:
    return Recoverability.RECOVERABLE


def recover_on_timeout_or_unconfigured(error: Exception) -> Recoverability:
    if isinstance(error, (asyncio.TimeoutError, LLMTimeoutError, LLMNotConfiguredError)):
        return Recoverability.RECOVERABLE
    return Recoverability.FATAL


def recover_on(*error_types: Type[Exception]) -> Classifier:
    """Classifier that recovers from the given error types only."""
    def classify(error: Exception) -> Recoverability:
        if isinstance(error, error_types):
            return Recoverability.RECOVERABLE
        return Recoverability.FATAL
    return classify


def _recover(error: Exception, classify: Classifier, label: str) -> None:
    if classify(error) is Recoverability.FATAL:
        raise error
    logger.warning(f"{label} failed ({type(error).__name__}: {error}); using fallback")


async def with_fallback(primary: Callable[[], Awaitable[T]],
                        fallback: Callable[[], Union[T, Awaitable[T]]],
                        classify: Classifier = recover_always,
                        label: str = "operation") -> T:
    try:
        return await primary()
    except Exception as e:
        _recover(e, classify, label)
    result = fallback()
    if asyncio.iscoroutine(result):
        result = await result
    return result


def call_with_fallback(primary: Callable[[], T],
                       fallback: Callable[[], T],
                       classify: Classifier = recover_always,
                       label: str = "operation") -> T:
    try:
        return primary()
    except Exception as e:
        _recover(e, classify, label)
    return fallback()
