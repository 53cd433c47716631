'''
The response handed back by `RequestExecutor.execute`.
'''
from __future__ import annotations

import dataclasses as dc
import json
from collections.abc import AsyncIterator
from typing import Any, Self

import httpx

from unireq._errors import DeserializationError


class ResponseBody:
    '''
    A lazily read response body. When a decoder is layered on top of the
    raw stream every read goes through the decoder, the raw stream is only
    touched by it.
    '''

    def __init__(
        self,
        stream: httpx.AsyncByteStream,
        decoded: httpx.AsyncByteStream | None = None,
    ) -> None:
        self._stream = stream
        self._decoded = decoded
        self._chunks: AsyncIterator[bytes] | None = None
        self._buffer = bytearray()
        self._exhausted = False

    @property
    def is_decoded(self) -> bool:
        return self._decoded is not None

    def _iterator(self) -> AsyncIterator[bytes]:
        if self._chunks is None:
            source = self._decoded if self._decoded is not None else self._stream
            self._chunks = source.__aiter__()
        return self._chunks

    async def _fill(self, size: int) -> None:
        chunks = self._iterator()
        while not self._exhausted and (size < 0 or len(self._buffer) < size):
            try:
                chunk = await anext(chunks)
            except StopAsyncIteration:
                self._exhausted = True
                break
            self._buffer.extend(chunk)

    async def read(self, size: int = -1) -> bytes:
        '''
        Read up to `size` bytes, everything left when `size` is negative.
        Returns `b''` once the body is exhausted.

        Parameters
        ----------
        size : int, optional
            by default -1

        Returns
        -------
        bytes
        '''
        await self._fill(size)
        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
            return data

        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._buffer:
            data = bytes(self._buffer)
            self._buffer.clear()
            yield data

        if self._exhausted:
            return

        async for chunk in self._iterator():
            yield chunk
        self._exhausted = True

    async def aclose(self) -> None:
        '''
        Close the raw stream and the decoder. Both are always closed, when
        both fail the raw stream's error is raised.
        '''
        first_error: Exception | None = None
        try:
            await self._stream.aclose()
        except Exception as exc:
            first_error = exc

        if self._decoded is not None:
            try:
                await self._decoded.aclose()
            except Exception as exc:
                if first_error is None:
                    first_error = exc

        if first_error is not None:
            raise first_error

    async def text(self, encoding: str = 'utf-8') -> str:
        return (await self.read()).decode(encoding)

    async def json(self) -> Any:
        '''
        Read the whole body and parse it as JSON.

        Raises
        ------
        DeserializationError
            If the body is not valid JSON.
        '''
        content = await self.read()
        try:
            return json.loads(content)
        except ValueError as exc:
            raise DeserializationError(
                f'Response body is not valid JSON: {exc}', err=exc
            ) from exc


@dc.dataclass(slots=True)
class Response:
    '''
    Status, length and headers always come from the raw response, even
    when the body is decompressed. `content_length` is None when the
    server did not send a usable `Content-Length`.
    '''
    status_code: int
    content_length: int | None
    headers: httpx.Headers
    body: ResponseBody

    @classmethod
    def from_httpx(
        cls,
        response: httpx.Response,
        decoded: httpx.AsyncByteStream | None = None,
    ) -> Self:
        return cls(
            status_code=response.status_code,
            content_length=parse_content_length(response.headers),
            headers=response.headers,
            body=ResponseBody(response.stream, decoded),  # type: ignore[arg-type]
        )

    async def aclose(self) -> None:
        await self.body.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()


def parse_content_length(headers: httpx.Headers) -> int | None:
    value = headers.get('Content-Length')
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None
