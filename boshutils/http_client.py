"""A thin HTTP client that logs requests without leaking query values or credentials."""

from __future__ import annotations

import re
from typing import Any, Callable, Optional
from urllib.parse import quote_plus, unquote_to_bytes, urlsplit, urlunsplit

import requests

from boshutils.client import Client

Customizer = Callable[[requests.Request], None]

_REDACTED = "<redacted>"
_PARSE_FAILURE = "error occurred parsing endpoing"
_USERINFO_PATTERN = re.compile(r"(https?://.*:).*@")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class HTTPClientError(Exception):
    """Raised when a request cannot be created or sent."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"{message}: {cause}" if cause is not None else message)
        self.cause = cause


def _query_unescape(text: str) -> str:
    if _BAD_ESCAPE.search(text):
        raise ValueError(f"invalid URL escape in {text!r}")
    return unquote_to_bytes(text.replace("+", " ")).decode("utf-8", errors="replace")


def _query_keys(raw_query: str) -> list[str]:
    """Keys of a query string, skipping pairs that cannot be decoded."""
    keys = set()
    for pair in raw_query.split("&"):
        if not pair or ";" in pair:
            continue
        key, _, value = pair.partition("=")
        try:
            decoded_key = _query_unescape(key)
            _query_unescape(value)
        except ValueError:
            continue
        keys.add(decoded_key)
    return sorted(keys)


def scrub_endpoint_query(endpoint: str) -> str:
    """Replace every query value in endpoint with "<redacted>"."""
    try:
        parts = urlsplit(endpoint)
    except ValueError:
        return _PARSE_FAILURE
    if any(_BAD_ESCAPE.search(piece) for piece in (parts.netloc, parts.path, parts.fragment)):
        return _PARSE_FAILURE

    query = "&".join(
        f"{quote_plus(key)}={quote_plus(_REDACTED)}" for key in _query_keys(parts.query)
    )
    rebuilt = urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))
    try:
        return _query_unescape(rebuilt)
    except ValueError:
        return ""


def scrub_error_output(message: str) -> str:
    """Hide the password of any http(s) URL with credentials in message."""
    return _USERINFO_PATTERN.sub(r"\1" + _REDACTED + "@", message)


class HTTPClient:
    """Sends simple requests through a Client, logging each endpoint at debug level."""

    _log_tag = "httpClient"

    def __init__(
        self, client: Client, logger: Any = None, *, no_redact_url_query: bool = False
    ) -> None:
        self.client = client
        self.logger = logger
        self.no_redact_url_query = no_redact_url_query

    def post(self, endpoint: str, payload: bytes) -> requests.Response:
        return self.post_customized(endpoint, payload, None)

    def post_customized(
        self, endpoint: str, payload: bytes, customize: Optional[Customizer]
    ) -> requests.Response:
        self._log("Sending POST request to endpoint '%s'", endpoint)
        return self._send("POST", endpoint, payload, customize, scrub=True)

    def put(self, endpoint: str, payload: bytes) -> requests.Response:
        return self.put_customized(endpoint, payload, None)

    def put_customized(
        self, endpoint: str, payload: bytes, customize: Optional[Customizer]
    ) -> requests.Response:
        self._log("Sending PUT request to endpoint '%s'", endpoint)
        return self._send("PUT", endpoint, payload, customize, scrub=True)

    def get(self, endpoint: str) -> requests.Response:
        return self.get_customized(endpoint, None)

    def get_customized(
        self, endpoint: str, customize: Optional[Customizer]
    ) -> requests.Response:
        self._log("Sending GET request to endpoint '%s'", endpoint)
        return self._send("GET", endpoint, None, customize, scrub=True)

    def delete(self, endpoint: str) -> requests.Response:
        return self.delete_customized(endpoint, None)

    def delete_customized(
        self, endpoint: str, customize: Optional[Customizer]
    ) -> requests.Response:
        self._log("Sending DELETE request with endpoint %s", endpoint)
        return self._send("DELETE", endpoint, None, customize, scrub=False)

    def _log(self, msg: str, endpoint: str) -> None:
        if self.logger is None:
            return
        shown = endpoint if self.no_redact_url_query else scrub_endpoint_query(endpoint)
        self.logger.debug(self._log_tag, msg, shown)

    def _send(
        self,
        method: str,
        endpoint: str,
        payload: Optional[bytes],
        customize: Optional[Customizer],
        *,
        scrub: bool,
    ) -> requests.Response:
        try:
            urlsplit(endpoint)
        except ValueError as err:
            raise HTTPClientError(f"Creating {method} request", err) from err
        request = requests.Request(method, endpoint, data=payload)

        if customize is not None:
            customize(request)

        try:
            return self.client.do(request)
        except Exception as err:
            cause: BaseException = err
            if scrub:
                cause = Exception(scrub_error_output(str(err)))
            raise HTTPClientError(f"Performing {method} request", cause) from err