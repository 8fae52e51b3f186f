# boshutils

Small building blocks for deployment tooling:

- **`boshutils.logger`**: a levelled, tagged logger (`DEBUG`, `INFO`, `WARN`,
  `ERROR`, `NONE`) writing lines such as
  `[TAG] 2024/01/02 15:04:05 INFO - message`, with per-tag level overrides,
  a forced-debug switch, optional RFC 3339 timestamps and an asynchronous
  variant whose writes never wait for the underlying stream.
- **`boshutils.logfile`**: a logger that appends to a file.
- **`boshutils.retrystrategy`**: retry loops bounded by attempt count, by a
  timeout, by exponential backoff with jitter, or unbounded.
- **`boshutils.property`**: turns loosely typed nested data (such as parsed
  YAML) into property trees whose map keys are always strings.
- **`boshutils.client`**, **`boshutils.request_retryable`**,
  **`boshutils.retry_clients`**, **`boshutils.http_client`**: HTTP clients
  built on `requests`, automatic retries that replay the request body, and
  request logging that redacts query values and credentials.

## Installation

```
pip install boshutils
```

For running the tests:

```
pip install "boshutils[test]"
pytest
```

## Logging

```python
import sys

from boshutils.logger import levelify, new_writer_logger

logger = new_writer_logger(levelify("info"), sys.stderr)
logger.info("deployer", "uploading %s", "release.tgz")
logger.debug("deployer", "not shown at INFO level")

logger.toggle_forced_debug()
logger.debug("deployer", "shown now")
```

Messages are `%`-formatted with the extra arguments. `levelify` accepts level
names in any case and raises `ValueError` for unknown names; `as_string` goes
the other way and gives `"DEBUG"` for an unknown level.

- `use_tags([LogTag("ForwardHandler", LogLevel.DEBUG)])` gives a tag its own
  level.
- `use_rfc3339_timestamps()` switches to timestamps like
  `2024-01-02T15:04:05.123456789Z`.
- `debug_with_details` and `error_with_details` append the last argument as a
  block framed by lines of asterisks.
- `handle_panic(tag)` is a context manager: an exception escaping its block
  is logged with its traceback and the program exits with status 2.

`new_async_writer_logger(level, writer)` returns an `AsyncLogger` that queues
lines and writes them from a background thread. `flush()` waits until
everything queued so far is written; `flush_timeout(seconds)` waits at most
that long and raises `TimeoutError` otherwise.

To log to a file:

```python
from boshutils.logfile import new_file_logger
from boshutils.logger import LogLevel

logger, log_file = new_file_logger(LogLevel.DEBUG, "/tmp/deploy.log", 0o666)
try:
    logger.warn("deployer", "disk is %d%% full", 91)
finally:
    log_file.close()
```

If the file cannot be opened, `new_file_logger` raises `OSError` naming the
file.

## Retrying

```python
from boshutils.logger import LogLevel, new_logger
from boshutils.retrystrategy import AttemptRetryStrategy, new_retryable

calls = []

def ping():
    calls.append(1)
    ready = len(calls) >= 3
    return (not ready, None if ready else RuntimeError("service not ready"))

strategy = AttemptRetryStrategy(5, 0.5, new_retryable(ping), new_logger(LogLevel.NONE))
strategy.run()
```

An attempt returns `(should_retry, error)`. A strategy stops as soon as
`should_retry` is false or its limit is reached, and `run()` then raises the
last attempt's error, if any. The strategies are `AttemptRetryStrategy`,
`BackoffWithJitterRetryStrategy`, `TimeoutRetryStrategy` (which takes a
`Clock`; `SystemClock` is the real one) and `UnlimitedRetryStrategy`.
Subclass `Retryable` or wrap a callable with `new_retryable`.

## Properties

```python
from boshutils.property import map_from_yaml

props = map_from_yaml("""
foo:
  bar:
    - baz
    - asdf
""")
assert props == {"foo": {"bar": ["baz", "asdf"]}}
```

`build`, `build_map` and `build_list` convert already-parsed data and raise
`PropertyError` when a map has a key that is not a string.

## HTTP

```python
from boshutils.client import create_default_client
from boshutils.logger import LogLevel, new_logger
from boshutils.retry_clients import new_network_safe_retry_client

client = new_network_safe_retry_client(
    create_default_client(None), 3, 1.0, new_logger(LogLevel.NONE)
)
```

Clients take `requests.Request` objects in `do()`. `create_default_client`,
`create_external_default_client` and `create_keep_alive_default_client` verify
certificates (optionally against a CA bundle path); the first two send
`Connection: close`. `create_default_client_insecure_skip_verify` skips
verification, and `DEFAULT_CLIENT` is such a client. `new_mutual_tls_client`
presents a client certificate, trusts only the given CA bundle and checks the
given server name. When `BOSH_ALL_PROXY` is set, its value is used as the
proxy for HTTP and HTTPS unless `NO_PROXY` (or `no_proxy`) excludes the host.

`new_retry_client` retries transport errors and any non-2xx response. The
network-safe variant retries transport errors for every method, and 502, 503
and 504 responses only for `GET` and `HEAD`. When the last attempt fails, the
error is raised with the last response, if any, in its `response` attribute.

`HTTPClient` wraps any client with `get`, `post`, `put` and `delete` helpers
(and `*_customized` variants that let a callable adjust the request) that log
each endpoint at debug level with query values replaced by `<redacted>`, and
raise `HTTPClientError` on failure. `scrub_endpoint_query` and
`scrub_error_output` are available on their own.

## What is not included

- There is no command-line tool; in particular, the package does not create
  or verify file digests.
- `BOSH_ALL_PROXY` values starting with `ssh+` (SSH-tunnelled proxies) are
  not supported: requests through such a client raise
  `requests.exceptions.ProxyError`.