'''
**unireq._executor**
---------

`RequestExecutor` turns a `Request` descriptor into an httpx request, sends
it through a pooled client and wraps the raw response in a `Response`.

The pipeline, in order:

1. default the method to GET
2. pick the pooled client for the proxy and TLS setting
3. coerce the body (text, bytes, stream, JSON or form)
4. append the query string
5. compress the body when a codec is set
6. build the request with header sugar, explicit headers and basic auth
7. send it, following at most `max_redirects` redirects, under the
   optional timeout
8. layer the codec's decoder over the response stream when the server
   used the same encoding

Nothing is retried, every failure is raised as an `ExecutionError`.
'''
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Self

import httpcore
import httpx

from unireq._compression import Compression
from unireq._errors import (
    CompressionError,
    ConfigurationError,
    RedirectLimitError,
    TransportError,
)
from unireq._http import ClientConfig, ClientPool, TransportFactory, parse_proxy_url
from unireq._payload import FORM_CONTENT_TYPE, Payload, compress_body, prepare_body, prepare_form
from unireq._request import Request, append_query
from unireq._response import Response

logger = logging.getLogger(__name__)

REQUEST_SCHEMES = frozenset({'http', 'https'})
FRAMING_HEADERS = frozenset({'host', 'content-length', 'transfer-encoding'})


def is_timeout_error(exc: BaseException | None) -> bool:
    '''
    Walk the exception chain looking for a timeout raised by httpx,
    httpcore or the socket layer.
    '''
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, (httpx.TimeoutException, httpcore.TimeoutException, TimeoutError)):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False


def build_header_list(request: Request, content_type: str) -> list[tuple[str, str]]:
    '''
    Header sugar first, then the explicit headers. Nothing is replaced,
    a sugar field and an explicit header of the same name are both sent.
    '''
    headers: list[tuple[str, str]] = []
    if request.user_agent:
        headers.append(('User-Agent', request.user_agent))
    if content_type:
        headers.append(('Content-Type', content_type))
    if request.accept:
        headers.append(('Accept', request.accept))
    if request.host:
        headers.append(('Host', request.host))

    if request.compression is not None:
        headers.append(('Content-Encoding', request.compression.content_encoding))
        headers.append(('Accept-Encoding', request.compression.content_encoding))

    headers.extend((header.name, header.value) for header in request.headers)
    return headers


def build_redirect_request(
    previous: httpx.Request,
    upcoming: httpx.Request,
    *,
    defaults: httpx.Headers,
    copy_headers: bool,
) -> httpx.Request:
    '''
    Rebuild the redirect request httpx prepared so that the caller's
    headers are either copied from the previous hop or dropped. Framing
    headers always follow the upcoming request.

    Parameters
    ----------
    previous : httpx.Request
        The request that received the redirect.
    upcoming : httpx.Request
        The request httpx built for the redirect target.
    defaults : httpx.Headers
        The client's default headers, kept when headers are dropped.
    copy_headers : bool

    Returns
    -------
    httpx.Request
    '''
    source = previous.headers if copy_headers else defaults
    headers = [
        (name, value) for name, value in source.multi_items()
        if name.lower() not in FRAMING_HEADERS
    ]
    headers.extend(
        (name, value) for name, value in upcoming.headers.multi_items()
        if name.lower() in FRAMING_HEADERS
    )
    return httpx.Request(
        upcoming.method,
        upcoming.url,
        headers=headers,
        stream=upcoming.stream,
        extensions=upcoming.extensions,
    )


class _Deadline:
    '''
    A one-shot timer cancelling a single task.
    '''

    def __init__(self, seconds: float, task: asyncio.Task) -> None:
        self.fired = False
        self._task = task
        self._handle = asyncio.get_running_loop().call_later(seconds, self._fire)

    def _fire(self) -> None:
        self.fired = self._task.cancel()
        if self.fired:
            logger.debug('Request timed out, cancelling it')

    def disarm(self) -> None:
        self._handle.cancel()


class RequestExecutor:
    '''
    Executes `Request` descriptors. The executor owns the httpx clients it
    sends through, close it (or use it as an async context manager) when
    done.

    Parameters
    ----------
    config : ClientConfig | None, optional
        Shared client configuration, by default `ClientConfig()`
    transport_factory : TransportFactory | None, optional
        Builds the transport for each proxy/TLS combination, by default
        `create_transport`
    '''

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._pool = ClientPool(config, transport_factory=transport_factory)

    @property
    def pool(self) -> ClientPool:
        return self._pool

    async def aclose(self) -> None:
        await self._pool.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def execute(self, request: Request) -> Response:
        '''
        Send the request and return the decorated response. The descriptor
        is left untouched.

        Parameters
        ----------
        request : Request

        Returns
        -------
        Response
            The caller owns the response and must close its body.

        Raises
        ------
        ConfigurationError
            Malformed proxy or request URL.
        SerializationError
            The body cannot be serialised.
        CompressionError
            The body cannot be compressed, or the decoder cannot be created.
        RedirectLimitError
            More redirects than `max_redirects`, carries the last response.
        TransportError
            The exchange failed, check `timeout` to tell timeouts apart.
        '''
        method = (request.method or 'GET').upper()

        proxy = parse_proxy_url(request.proxy) if request.proxy else None
        client = self._pool.get_client(proxy=proxy, insecure=request.insecure)

        payload = prepare_body(request.body, chunk_size=self._pool.config.chunk_size)
        content_type = request.content_type
        if payload is None and request.form is not None:
            payload = prepare_form(request.form)
            content_type = content_type or FORM_CONTENT_TYPE

        url = append_query(request.url, request.querystring)

        if payload is not None and request.compression is not None:
            payload = await compress_body(payload, request.compression)

        http_request = self._build_request(
            client, method, url, payload, build_header_list(request, content_type)
        )

        auth = None
        if request.basic_auth_username:
            auth = httpx.BasicAuth(request.basic_auth_username, request.basic_auth_password)

        logger.debug(f'Sending request: {method} {http_request.url}')
        response = await self._send_with_deadline(
            self._send(client, http_request, request, auth),
            request.timeout,
        )
        return await self._decorate(response, request.compression)

    def _build_request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        payload: Payload | None,
        headers: list[tuple[str, str]],
    ) -> httpx.Request:
        try:
            http_request = client.build_request(
                method,
                url,
                content=payload,
                headers=headers,
            )
        except (httpx.InvalidURL, TypeError, ValueError) as exc:
            raise ConfigurationError(f'Invalid request {method} {url!r}: {exc}', err=exc) from exc

        if http_request.url.scheme not in REQUEST_SCHEMES:
            raise ConfigurationError(f'Unsupported request URL {url!r}')

        return http_request

    async def _send_with_deadline(
        self,
        call: Awaitable[httpx.Response],
        timeout: float,
    ) -> httpx.Response:
        if not timeout or timeout <= 0:
            return await call

        task = asyncio.ensure_future(call)
        deadline = _Deadline(timeout, task)
        try:
            return await task
        except asyncio.CancelledError as exc:
            if not deadline.fired:
                raise
            err = TimeoutError(f'request cancelled after {timeout}s')
            raise TransportError(
                f'Request timed out after {timeout}s', err=err, timeout=True
            ) from exc
        finally:
            deadline.disarm()

    async def _send(
        self,
        client: httpx.AsyncClient,
        http_request: httpx.Request,
        request: Request,
        auth: httpx.Auth | None,
    ) -> httpx.Response:
        response = await self._send_single(client, http_request, auth=auth)
        redirects = 0
        try:
            while response.next_request is not None:
                if redirects >= request.max_redirects:
                    raise RedirectLimitError(
                        f'Error redirecting. MaxRedirects reached ({request.max_redirects})',
                        response=Response.from_httpx(response),
                    )

                next_request = build_redirect_request(
                    response.request,
                    response.next_request,
                    defaults=client.headers,
                    copy_headers=request.redirect_headers,
                )
                await response.aclose()

                redirects += 1
                logger.debug(
                    f'Following redirect {redirects}/{request.max_redirects}: '
                    f'{response.status_code} -> {next_request.url}'
                )
                response = await self._send_single(client, next_request)
        except RedirectLimitError:
            raise
        except BaseException:
            await response.aclose()
            raise

        return response

    async def _send_single(
        self,
        client: httpx.AsyncClient,
        http_request: httpx.Request,
        *,
        auth: httpx.Auth | None = None,
    ) -> httpx.Response:
        try:
            return await client.send(
                http_request,
                auth=auth,
                stream=True,
                follow_redirects=False,
            )
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportError(
                f'{http_request.method} {http_request.url} failed: {exc}',
                err=exc,
                timeout=is_timeout_error(exc),
            ) from exc

    async def _decorate(
        self,
        response: httpx.Response,
        compression: Compression | None,
    ) -> Response:
        if compression is None or not compression.matches(response.headers.get('Content-Encoding')):
            return Response.from_httpx(response)

        try:
            decoded = compression.decoder(response.stream)  # type: ignore[arg-type]
        except Exception as exc:
            await response.aclose()
            raise CompressionError(
                f'Failed to create {compression.content_encoding} decoder: {exc}',
                err=exc,
            ) from exc

        return Response.from_httpx(response, decoded)
