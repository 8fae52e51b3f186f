"""One HTTP request that can be attempted repeatedly by a retry strategy."""

from __future__ import annotations

import contextlib
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import requests

from boshutils.client import Client
from boshutils.retrystrategy import Retryable

AttemptableCheck = Callable[
    [Optional[requests.Response], Optional[BaseException]],
    Tuple[bool, Optional[BaseException]],
]


class RetryableRequestError(Exception):
    """A failure while preparing, sending or judging a retryable request."""

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        response: Optional[requests.Response] = None,
    ) -> None:
        super().__init__(f"{message}: {cause}" if cause is not None else message)
        self.cause = cause
        self.response = response


@dataclass
class ReplayableBody:
    """The body a request was created with and a way to obtain it afresh."""

    original: Any
    reopen: Callable[[], Any]


def _is_seekable(body: Any) -> bool:
    seekable = getattr(body, "seekable", None)
    if callable(seekable):
        try:
            return bool(seekable())
        except (OSError, ValueError):
            return False
    return callable(getattr(body, "seek", None))


def make_replayable(request: requests.Request) -> Optional[ReplayableBody]:
    """Make a streamed request body resendable.

    Plain values are already resendable and give None. A seekable stream is
    rewound for each send; any other stream is read into memory once.
    """
    body = request.data
    if not callable(getattr(body, "read", None)):
        return None

    if _is_seekable(body):

        def reopen() -> Any:
            try:
                body.seek(0)
            except (OSError, ValueError) as err:
                raise RetryableRequestError(
                    "Seeking to beginning of seekable request body", err
                ) from err
            return body

    else:
        try:
            content = body.read()
        except (OSError, ValueError) as err:
            raise RetryableRequestError("Buffering request body", err) from err

        def reopen() -> Any:
            return content

    request.data = reopen()
    return ReplayableBody(body, reopen)


def default_is_attemptable(
    response: Optional[requests.Response], error: Optional[BaseException]
) -> Tuple[bool, Optional[BaseException]]:
    """Retry on any error and on any status outside 2xx."""
    if error is not None:
        return True, error
    return not (200 <= response.status_code < 300), None


def format_request(request: Optional[requests.Request]) -> str:
    if request is None:
        return "Request(None)"
    return f"Request{{ Method: '{request.method}', URL: '{request.url}' }}"


class RequestRetryable(Retryable):
    """Sends a request once per attempt, replaying its body each time."""

    _log_tag = "clientRetryable"

    def __init__(
        self,
        request: requests.Request,
        delegate: Client,
        logger: Any = None,
        is_response_attemptable: Optional[AttemptableCheck] = None,
    ) -> None:
        self.request = request
        self.delegate = delegate
        self.logger = logger
        self.is_response_attemptable = is_response_attemptable or default_is_attemptable
        self.request_id: Optional[str] = None
        self.attempts = 0
        self._replay: Optional[ReplayableBody] = None
        self._original_closed = False
        self._response: Optional[requests.Response] = None

    def attempt(self) -> Tuple[bool, Optional[BaseException]]:
        if self.request_id is None:
            self.request_id = str(uuid.uuid4())

        if self.attempts == 0:
            try:
                self._replay = make_replayable(self.request)
            except RetryableRequestError as err:
                return False, RetryableRequestError("Ensuring request can be retried", err)
        elif self._replay is not None:
            try:
                self.request.data = self._replay.reopen()
            except RetryableRequestError as err:
                self._close_original()
                return False, RetryableRequestError("Updating request body for retry", err)

        if self._response is not None:
            self._discard(self._response)

        self.attempts += 1
        if self.logger is not None:
            self.logger.debug(
                self._log_tag,
                "[requestID=%s] Requesting (attempt=%d): %s",
                self.request_id,
                self.attempts,
                format_request(self.request),
            )

        error: Optional[BaseException] = None
        try:
            self._response = self.delegate.do(self.request)
        except (requests.RequestException, OSError) as err:
            self._response = None
            error = err

        attemptable, error = self.is_response_attemptable(self._response, error)
        if not attemptable:
            self._close_original()
        return attemptable, error

    def response(self) -> Optional[requests.Response]:
        """The response of the latest attempt, or None if it failed to arrive."""
        return self._response

    def _close_original(self) -> None:
        if self._replay is None or self._original_closed:
            return
        self._original_closed = True
        close = getattr(self._replay.original, "close", None)
        if callable(close):
            with contextlib.suppress(OSError, ValueError):
                close()

    @staticmethod
    def _discard(response: requests.Response) -> None:
        # Drain before closing so the connection is released cleanly.
        with contextlib.suppress(requests.RequestException, OSError, ValueError):
            _ = response.content
        with contextlib.suppress(OSError, ValueError):
            response.close()