import dataclasses as dc
import logging
from collections.abc import Callable
from typing import Self

import httpx

from unireq._http._transport import (
    TransportOptions,
    create_transport,
    environment_proxies,
    parse_proxy_url,
)

logger = logging.getLogger(__name__)

TransportFactory = Callable[[TransportOptions], httpx.AsyncBaseTransport]


def _base_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=100,
        max_keepalive_connections=20,
        keepalive_expiry=15,
    )


def _default_headers() -> dict[str, str]:
    return {
        'Accept-Encoding': 'identity',
    }


@dc.dataclass(slots=True)
class ClientConfig:
    '''
    Configuration shared by every client of a pool.
    Good defaults are provided for most use cases.

    Attributes
    ----------
    - connect_timeout: Seconds allowed to establish a connection, None waits
    forever. The other phases are only bounded by the per-request timeout.

    - limits: Connection pool limits of each transport.

    - http2: Negotiate HTTP/2 when the server offers it.

    - trust_env: Route requests without an explicit proxy through the
    `*_PROXY` environment variables.

    - chunk_size: Read size used when sending file object bodies.
    '''
    connect_timeout: float | None = 1.0
    limits: httpx.Limits = dc.field(default_factory=_base_limits)
    http2: bool = True
    trust_env: bool = True
    chunk_size: int = 16_384

    def get_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(None, connect=self.connect_timeout)

    def with_connect_timeout(self, seconds: float | None) -> Self:
        return dc.replace(self, connect_timeout=seconds)


class ClientPool:
    '''
    Owns one `httpx.AsyncClient` per `(proxy, insecure)` pair, so neither
    the proxy nor the TLS verification setting of one request can leak
    into another. Closing the pool closes every client it created.
    '''
    __slots__ = (
        '_config',
        '_factory',
        '_clients',
    )

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._config: ClientConfig = config or ClientConfig()
        self._factory: TransportFactory = transport_factory or create_transport
        self._clients: dict[tuple[str | None, bool], httpx.AsyncClient] = {}

    @property
    def config(self) -> ClientConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._clients)

    def _transport_options(
        self,
        proxy: httpx.URL | None,
        insecure: bool
    ) -> TransportOptions:
        return TransportOptions(
            proxy=proxy,
            insecure=insecure,
            http2=self._config.http2,
            limits=self._config.limits,
        )

    def _environment_mounts(
        self,
        insecure: bool
    ) -> dict[str, httpx.AsyncBaseTransport | None]:
        mounts: dict[str, httpx.AsyncBaseTransport | None] = {}
        for pattern, url in environment_proxies().items():
            if url is None:
                mounts[pattern] = None
                continue
            options = self._transport_options(parse_proxy_url(url), insecure)
            mounts[pattern] = self._factory(options)
        return mounts

    def create_client(
        self,
        *,
        proxy: httpx.URL | None = None,
        insecure: bool = False,
    ) -> httpx.AsyncClient:
        transport = self._factory(self._transport_options(proxy, insecure))

        mounts = None
        if proxy is None and self._config.trust_env:
            mounts = self._environment_mounts(insecure)

        return httpx.AsyncClient(
            transport=transport,
            mounts=mounts,
            timeout=self._config.get_timeout(),
            headers=_default_headers(),
            follow_redirects=False,
            trust_env=False,
        )

    def get_client(
        self,
        *,
        proxy: httpx.URL | None = None,
        insecure: bool = False,
    ) -> httpx.AsyncClient:
        '''
        Return the pooled client for this proxy and TLS setting, creating
        it on first use.

        Parameters
        ----------
        proxy : httpx.URL | None, optional
        insecure : bool, optional

        Returns
        -------
        httpx.AsyncClient
        '''
        key = (str(proxy) if proxy is not None else None, insecure)
        if (client := self._clients.get(key)) is not None:
            return client

        logger.debug(f'Creating client proxy={key[0]} insecure={insecure}')
        client = self.create_client(proxy=proxy, insecure=insecure)
        self._clients[key] = client
        return client

    async def aclose(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()
