'''
**unireq**
---------

A convenience HTTP client built on httpx. Describe a request field by
field with `Request`, then send it with `RequestExecutor.execute`, which
adds header sugar, body coercion (text, bytes, streams, JSON, forms),
query strings, transparent compression, proxies, a redirect limit, basic
auth and a per-request timeout.

    async with RequestExecutor() as executor:
        request = Request(url='https://httpbin.org/get', accept='application/json')
        async with await executor.execute(request) as response:
            data = await response.body.json()
'''
from unireq._compression import Compression
from unireq._errors import (
    CompressionError,
    ConfigurationError,
    DeserializationError,
    ExecutionError,
    RedirectLimitError,
    SerializationError,
    TransportError,
)
from unireq._executor import RequestExecutor
from unireq._http import ClientConfig, ClientPool, TransportOptions, create_transport
from unireq._request import Header, QueryEncodable, Request
from unireq._response import Response, ResponseBody

__all__ = [
    'Compression',
    'CompressionError',
    'ConfigurationError',
    'DeserializationError',
    'ExecutionError',
    'RedirectLimitError',
    'SerializationError',
    'TransportError',
    'RequestExecutor',
    'ClientConfig',
    'ClientPool',
    'TransportOptions',
    'create_transport',
    'Header',
    'QueryEncodable',
    'Request',
    'Response',
    'ResponseBody',
]
