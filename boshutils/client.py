"""HTTP clients with the connection settings used for internal and external services."""

from __future__ import annotations

import abc
import os
from typing import Any, Dict, Optional, Tuple, Union

import requests
from requests.adapters import HTTPAdapter
from requests.utils import should_bypass_proxies

CertSpec = Union[str, Tuple[str, str]]
Timeout = Union[float, Tuple[float, Optional[float]]]

_CONNECT_TIMEOUT = 30.0
_MUTUAL_TLS_TIMEOUT = 10.0
_MUTUAL_TLS_POOL_SIZE = 100
_DEFAULT_POOL_SIZE = 10
_SSH_PROXY_PREFIX = "ssh+"


class Client(abc.ABC):
    """Anything that can send a request and return its response."""

    @abc.abstractmethod
    def do(self, request: requests.Request) -> requests.Response:
        """Send the request and return the response, raising on transport failure."""


class _ServerNameAdapter(HTTPAdapter):
    """An adapter that presents and verifies a fixed TLS server name."""

    def __init__(self, server_name: Optional[str], **kwargs: Any) -> None:
        self.server_name = server_name
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        if self.server_name is not None:
            pool_kwargs.setdefault("server_hostname", self.server_name)
            pool_kwargs.setdefault("assert_hostname", self.server_name)
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)


def _environment_proxies(url: str) -> Optional[Dict[str, str]]:
    """Proxies selected by BOSH_ALL_PROXY, honouring NO_PROXY."""
    all_proxy = os.environ.get("BOSH_ALL_PROXY", "")
    if not all_proxy:
        return None
    if all_proxy.startswith(_SSH_PROXY_PREFIX):
        raise requests.exceptions.ProxyError(
            "Creating SOCKS5 dialer: SSH-tunnelled proxies are not supported"
        )
    no_proxy = os.environ.get("NO_PROXY") or os.environ.get("no_proxy")
    if no_proxy and should_bypass_proxies(url, no_proxy=no_proxy):
        return None
    return {"http": all_proxy, "https": all_proxy}


class SessionClient(Client):
    """A client sending requests through a requests session with fixed settings."""

    def __init__(
        self,
        *,
        verify: Union[bool, str] = True,
        cert: Optional[CertSpec] = None,
        keep_alive: bool = True,
        timeout: Optional[Timeout] = None,
        server_name: Optional[str] = None,
        pool_maxsize: int = _DEFAULT_POOL_SIZE,
    ) -> None:
        self.verify = verify
        self.cert = cert
        self.keep_alive = keep_alive
        self.timeout = timeout
        self.server_name = server_name
        self.session = requests.Session()
        self.session.mount("https://", _ServerNameAdapter(server_name, pool_maxsize=pool_maxsize))
        self.session.mount("http://", HTTPAdapter(pool_maxsize=pool_maxsize))

    def do(self, request: requests.Request) -> requests.Response:
        prepared = self.session.prepare_request(request)
        if not self.keep_alive:
            prepared.headers["Connection"] = "close"
        settings = self.session.merge_environment_settings(
            prepared.url,
            _environment_proxies(prepared.url) or {},
            None,
            self.verify,
            self.cert,
        )
        return self.session.send(
            prepared, timeout=self.timeout, allow_redirects=True, **settings
        )


def _default_client(
    *, insecure_skip_verify: bool, keep_alive: bool, cert_pool: Optional[str]
) -> SessionClient:
    if insecure_skip_verify:
        verify: Union[bool, str] = False
    else:
        verify = cert_pool if cert_pool is not None else True
    return SessionClient(
        verify=verify, keep_alive=keep_alive, timeout=(_CONNECT_TIMEOUT, None)
    )


def create_default_client(cert_pool: Optional[str] = None) -> SessionClient:
    """A verifying client for internal services; cert_pool is a CA bundle path."""
    return _default_client(insecure_skip_verify=False, keep_alive=False, cert_pool=cert_pool)


def create_external_default_client(cert_pool: Optional[str] = None) -> SessionClient:
    """A verifying client for external services, without connection reuse."""
    return _default_client(insecure_skip_verify=False, keep_alive=False, cert_pool=cert_pool)


def create_keep_alive_default_client(cert_pool: Optional[str] = None) -> SessionClient:
    """A verifying client for external services that reuses connections."""
    return _default_client(insecure_skip_verify=False, keep_alive=True, cert_pool=cert_pool)


def create_default_client_insecure_skip_verify() -> SessionClient:
    """A client that does not verify server certificates."""
    return _default_client(insecure_skip_verify=True, keep_alive=False, cert_pool=None)


def new_mutual_tls_client(
    identity: CertSpec, ca_cert_pool: str, server_name: str
) -> SessionClient:
    """A client authenticating with identity and trusting only ca_cert_pool.

    identity is a combined certificate file or a (certificate, key) pair of paths.
    """
    return SessionClient(
        verify=ca_cert_pool,
        cert=identity,
        keep_alive=True,
        timeout=_MUTUAL_TLS_TIMEOUT,
        server_name=server_name,
        pool_maxsize=_MUTUAL_TLS_POOL_SIZE,
    )


DEFAULT_CLIENT = create_default_client_insecure_skip_verify()