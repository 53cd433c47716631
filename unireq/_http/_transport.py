import contextlib
import dataclasses as dc
import ipaddress
import logging
import socket
import ssl
import urllib.request

import httpx

from unireq._errors import ConfigurationError

logger = logging.getLogger(__name__)

PROXY_SCHEMES = frozenset({'http', 'https', 'socks5', 'socks5h'})


def default_socket_options() -> list[tuple]:
    '''
    cross platform socket options for TCP connections

    Returns
    -------
    list[SockOpt]
    '''
    opts = []

    if hasattr(socket, "TCP_NODELAY"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_NODELAY, 1))

    if hasattr(socket, "SO_KEEPALIVE"):
        opts.append((socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1))

    if hasattr(socket, "TCP_KEEPIDLE"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60))

    if hasattr(socket, "TCP_KEEPINTVL"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 10))

    return opts


TLS_1_3_CIPHERS = [
    "TLS_AES_128_GCM_SHA256",
    "TLS_AES_256_GCM_SHA384",
    "TLS_CHACHA20_POLY1305_SHA256",
]
TLS_1_2_CIPHERS = [
    "ECDHE-ECDSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES128-GCM-SHA256",
    "ECDHE-ECDSA-CHACHA20-POLY1305",
    "ECDHE-RSA-CHACHA20-POLY1305",
    "ECDHE-ECDSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES256-GCM-SHA384",
]


def create_ssl_context(*, insecure: bool = False, http2: bool = True) -> ssl.SSLContext:
    '''
    creates the SSL context used by a transport, allowing TLS 1.2 and 1.3
    with modern cipher suites.

    - certificate and hostname verification are on unless `insecure`
    - ALPN offers h2 only when http2 is enabled

    Parameters
    ----------
    insecure : bool, optional
        Skip certificate chain and hostname verification, by default False
    http2 : bool, optional
        by default True

    Returns
    -------
    ssl.SSLContext
    '''
    ctx = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH)

    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.maximum_version = ssl.TLSVersion.MAXIMUM_SUPPORTED

    if insecure:
        # check_hostname has to be cleared before verify_mode
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    else:
        ctx.verify_mode = ssl.CERT_REQUIRED
        ctx.check_hostname = True

    protocols = ["h2", "http/1.1"] if http2 else ["http/1.1"]
    with contextlib.suppress(NotImplementedError):
        ctx.set_alpn_protocols(protocols)

    ctx.options |= ssl.OP_NO_COMPRESSION

    set_ciphersuites = getattr(ctx, "set_ciphersuites", None)
    if callable(set_ciphersuites):
        with contextlib.suppress(ssl.SSLError):
            set_ciphersuites(":".join(TLS_1_3_CIPHERS))

    ctx.set_ciphers(":".join(TLS_1_2_CIPHERS))
    return ctx


def parse_proxy_url(proxy: str) -> httpx.URL:
    '''
    Parse and validate a proxy URL.

    Parameters
    ----------
    proxy : str

    Returns
    -------
    httpx.URL

    Raises
    ------
    ConfigurationError
        If the URL cannot be parsed, has no host, or uses an unsupported scheme.
    '''
    try:
        url = httpx.URL(proxy)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise ConfigurationError(f'Malformed proxy URL {proxy!r}: {exc}', err=exc) from exc

    if url.scheme not in PROXY_SCHEMES:
        raise ConfigurationError(f'Unsupported proxy URL scheme: {url.scheme!r}')

    if not url.host:
        raise ConfigurationError(f'Proxy URL {proxy!r} has no host')

    return url


@dc.dataclass(frozen=True, slots=True)
class TransportOptions:
    '''
    What a transport factory needs to know to build one transport.
    '''
    proxy: httpx.URL | None = None
    insecure: bool = False
    http2: bool = True
    limits: httpx.Limits = dc.field(default_factory=httpx.Limits)


def create_transport(options: TransportOptions) -> httpx.AsyncBaseTransport:
    '''
    The default transport factory. Transport level retries are disabled,
    a failed request is never sent twice.
    '''
    logger.debug(
        f'Creating transport proxy={options.proxy} insecure={options.insecure}'
    )
    return httpx.AsyncHTTPTransport(
        verify=create_ssl_context(insecure=options.insecure, http2=options.http2),
        http2=options.http2,
        limits=options.limits,
        proxy=httpx.Proxy(options.proxy) if options.proxy else None,
        socket_options=default_socket_options(),
        retries=0,
    )


def _no_proxy_pattern(hostname: str) -> str:
    if '://' in hostname:
        return hostname

    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        address = None

    if address is not None and address.version == 6:
        return f'all://[{hostname}]'

    if address is not None or hostname.lower() == 'localhost':
        return f'all://{hostname}'

    return f'all://*{hostname}'


def environment_proxies() -> dict[str, str | None]:
    '''
    Read the `*_proxy` environment variables into httpx mount patterns.
    A `None` value routes matching hosts around the proxy (`NO_PROXY`).

    Returns
    -------
    dict[str, str | None]
    '''
    # httpx ignores trust_env once a custom transport is passed
    proxies = urllib.request.getproxies()
    mounts: dict[str, str | None] = {}

    for scheme in ('http', 'https', 'all'):
        url = proxies.get(scheme)
        if not url:
            continue
        mounts[f'{scheme}://'] = url if '://' in url else f'http://{url}'

    no_proxy = [host.strip() for host in proxies.get('no', '').split(',')]
    for hostname in no_proxy:
        if hostname == '*':
            return {}
        if hostname:
            mounts[_no_proxy_pattern(hostname)] = None

    return mounts
