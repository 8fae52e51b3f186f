"""Clients that retry requests through another client."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Tuple

import requests

from boshutils.client import Client
from boshutils.request_retryable import (
    AttemptableCheck,
    RequestRetryable,
    RetryableRequestError,
)
from boshutils.retrystrategy import AttemptRetryStrategy

_IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})
_GATEWAY_STATUSES = frozenset({502, 503, 504})


class RetryClient(Client):
    """Sends each request up to max_attempts times, waiting retry_delay seconds between tries.

    When the final attempt fails the error is raised; its ``response``
    attribute holds the last response, if one arrived.
    """

    def __init__(
        self,
        delegate: Client,
        max_attempts: int,
        retry_delay: float,
        logger: Any = None,
        is_response_attemptable: Optional[AttemptableCheck] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.delegate = delegate
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.logger = logger
        self.is_response_attemptable = is_response_attemptable
        self.sleep = sleep

    def do(self, request: requests.Request) -> Optional[requests.Response]:
        retryable = RequestRetryable(
            request, self.delegate, self.logger, self.is_response_attemptable
        )
        strategy = AttemptRetryStrategy(
            self.max_attempts, self.retry_delay, retryable, self.logger, self.sleep
        )
        try:
            strategy.run()
        except Exception as err:
            if getattr(err, "response", False) is None:
                err.response = retryable.response()
            raise
        return retryable.response()


def _network_safe_attemptable(
    response: Optional[requests.Response], error: Optional[BaseException]
) -> Tuple[bool, Optional[BaseException]]:
    if error is not None or (
        response.request.method in _IDEMPOTENT_METHODS
        and response.status_code in _GATEWAY_STATUSES
    ):
        return True, RetryableRequestError("Retry", error, response=response)
    return False, None


def new_retry_client(
    delegate: Client, max_attempts: int, retry_delay: float, logger: Any = None
) -> RetryClient:
    """Retry on transport errors and on any status outside 2xx."""
    return RetryClient(delegate, max_attempts, retry_delay, logger)


def new_network_safe_retry_client(
    delegate: Client, max_attempts: int, retry_delay: float, logger: Any = None
) -> RetryClient:
    """Retry on transport errors, and on gateway failures of GET and HEAD only."""
    return RetryClient(
        delegate, max_attempts, retry_delay, logger, _network_safe_attemptable
    )