"""Strategies for repeating an operation until it succeeds or gives up.

A retryable reports each attempt as a ``(should_retry, error)`` pair, where
``error`` is ``None`` on success. A strategy keeps attempting while
``should_retry`` is true and its own limit allows. Once it stops, ``run()``
raises the error of the last attempt, if there was one.
"""

from __future__ import annotations

import abc
import itertools
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Iterator, Optional, Tuple

AttemptResult = Tuple[bool, Optional[BaseException]]


class Retryable(abc.ABC):
    """An operation that reports whether it should be tried again."""

    @abc.abstractmethod
    def attempt(self) -> AttemptResult:
        """Run once and return ``(should_retry, error)``."""


class FunctionRetryable(Retryable):
    """A retryable whose attempt is a plain callable."""

    def __init__(self, attempt_func: Callable[[], AttemptResult]) -> None:
        self._attempt_func = attempt_func

    def attempt(self) -> AttemptResult:
        return self._attempt_func()


def new_retryable(attempt_func: Callable[[], AttemptResult]) -> FunctionRetryable:
    """Wrap a callable returning ``(should_retry, error)`` as a retryable."""
    return FunctionRetryable(attempt_func)


class Clock(abc.ABC):
    """Source of the current time and of waiting, in seconds."""

    @abc.abstractmethod
    def sleep(self, seconds: float) -> None:
        """Wait for the given number of seconds."""

    @abc.abstractmethod
    def now(self) -> float:
        """Return the current time in seconds."""


class SystemClock(Clock):
    """The real, monotonic clock."""

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def now(self) -> float:
        return time.monotonic()


def _debug(logger: Any, tag: str, msg: str, *args: Any) -> None:
    if logger is not None:
        logger.debug(tag, msg, *args)


def _describe(retryable: Retryable) -> str:
    return type(retryable).__qualname__


def _raise_if(error: Optional[BaseException]) -> None:
    if error is not None:
        raise error


@dataclass
class AttemptRetryStrategy:
    """Attempt at most ``max_attempts`` times, waiting ``delay`` seconds after each retry."""

    max_attempts: int
    delay: float
    retryable: Retryable
    logger: Any = None
    sleep: Callable[[float], None] = time.sleep

    _log_tag: ClassVar[str] = "attemptRetryStrategy"

    def run(self) -> None:
        error: Optional[BaseException] = None
        for number in range(self.max_attempts):
            _debug(
                self.logger,
                self._log_tag,
                "Making attempt #%d for %s",
                number,
                _describe(self.retryable),
            )
            should_retry, error = self.retryable.attempt()
            if not should_retry:
                break
            self.sleep(self.delay)
        _raise_if(error)


class _JitteredBackoff:
    """Exponentially growing, randomly jittered delays between two bounds."""

    def __init__(self, minimum: float, maximum: float, factor: float = 2.0) -> None:
        self.minimum = minimum if minimum > 0 else 0.1
        self.maximum = maximum if maximum > 0 else 10.0
        self.factor = factor if factor > 0 else 2.0

    def delays(self) -> Iterator[float]:
        for number in itertools.count():
            yield self._for_attempt(number)

    def _for_attempt(self, number: int) -> float:
        if self.minimum >= self.maximum:
            return self.maximum
        try:
            grown = self.minimum * self.factor**number
        except OverflowError:
            return self.maximum
        jittered = random.random() * (grown - self.minimum) + self.minimum
        return min(max(jittered, self.minimum), self.maximum)


@dataclass
class BackoffWithJitterRetryStrategy:
    """Attempt at most ``max_attempts`` times with jittered exponential waits.

    Non-positive bounds fall back to 0.1 and 10 seconds.
    """

    max_attempts: int
    min_delay: float
    max_delay: float
    retryable: Retryable
    logger: Any = None
    sleep: Callable[[float], None] = time.sleep

    _log_tag: ClassVar[str] = "backoffWithJitterRetryStrategy"

    def run(self) -> None:
        delays = _JitteredBackoff(self.min_delay, self.max_delay).delays()
        error: Optional[BaseException] = None
        for number in range(self.max_attempts):
            _debug(
                self.logger,
                self._log_tag,
                "Making attempt #%d for %s",
                number,
                _describe(self.retryable),
            )
            should_retry, error = self.retryable.attempt()
            if not should_retry:
                break
            self.sleep(next(delays))
        _raise_if(error)


@dataclass
class TimeoutRetryStrategy:
    """Keep attempting until another wait would pass the ``timeout``."""

    timeout: float
    delay: float
    retryable: Retryable
    clock: Clock = field(default_factory=SystemClock)
    logger: Any = None

    _log_tag: ClassVar[str] = "timeoutRetryStrategy"

    def run(self) -> None:
        deadline_minus_delay = self.clock.now() + self.timeout - self.delay
        for number in itertools.count():
            _debug(self.logger, self._log_tag, "Making attempt #%d", number)
            should_retry, error = self.retryable.attempt()
            if not should_retry or self.clock.now() > deadline_minus_delay:
                _raise_if(error)
                return
            self.clock.sleep(self.delay)


@dataclass
class UnlimitedRetryStrategy:
    """Keep attempting, waiting ``delay`` seconds between attempts, for as long as asked."""

    delay: float
    retryable: Retryable
    logger: Any = None
    sleep: Callable[[float], None] = time.sleep

    _log_tag: ClassVar[str] = "unlimitedRetryStrategy"

    def run(self) -> None:
        for number in itertools.count():
            _debug(self.logger, self._log_tag, "Making attempt #%d", number)
            should_retry, error = self.retryable.attempt()
            if not should_retry:
                _raise_if(error)
                return
            self.sleep(self.delay)