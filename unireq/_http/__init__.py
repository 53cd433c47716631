'''
**unireq._http**
---------

The transport layer behind `RequestExecutor`: SSL context creation, socket
options, environment proxy discovery and the `ClientPool` that owns one
httpx client per proxy and TLS setting. Pass your own `transport_factory`
to route requests through any `httpx.AsyncBaseTransport`.
'''
from unireq._http._pool import ClientConfig, ClientPool, TransportFactory
from unireq._http._transport import (
    TransportOptions,
    create_ssl_context,
    create_transport,
    default_socket_options,
    environment_proxies,
    parse_proxy_url,
)

__all__ = [
    "ClientConfig",
    "ClientPool",
    "TransportFactory",
    "TransportOptions",
    "create_ssl_context",
    "create_transport",
    "default_socket_options",
    "environment_proxies",
    "parse_proxy_url",
]
