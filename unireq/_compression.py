'''
Content-encoding codecs for request and response bodies.

A `Compression` pairs a writer factory (wraps a binary buffer, compresses
what is written into it) with a reader factory (wraps an httpx byte stream,
decompresses what is read from it). Both work incrementally on top of
`zlib`, the `wbits` value selecting the container format.
'''
from __future__ import annotations

import dataclasses as dc
import io
import zlib
from collections.abc import AsyncIterator, Callable
from typing import BinaryIO

import httpx

from unireq._errors import CompressionError

GZIP_WBITS = 31
ZLIB_WBITS = 15
DEFLATE_WBITS = -15


class CompressingWriter(io.RawIOBase):
    '''
    A write-only file object compressing everything written to it into
    the wrapped buffer. Closing it flushes the compressor but leaves the
    buffer open.
    '''

    def __init__(self, buffer: BinaryIO, wbits: int) -> None:
        super().__init__()
        self._buffer = buffer
        self._compressor = zlib.compressobj(wbits=wbits)

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self.closed:
            raise ValueError('write to closed compressing writer')
        view = memoryview(data)
        self._buffer.write(self._compressor.compress(view))
        return view.nbytes

    def close(self) -> None:
        if not self.closed:
            self._buffer.write(self._compressor.flush())
        super().close()


class DecompressingStream(httpx.AsyncByteStream):
    '''
    Decompresses an upstream httpx byte stream chunk by chunk.

    Concatenated gzip members are decoded one after the other. A body
    that ends before the end of the compressed stream raises
    `CompressionError`, an empty body decodes to nothing.

    Closing it does not close the upstream stream, the owner of the
    upstream stream is expected to close it separately.
    '''

    def __init__(self, upstream: httpx.AsyncByteStream, wbits: int) -> None:
        self._upstream = upstream
        self._wbits = wbits
        self._multistream = wbits == GZIP_WBITS
        self._decompressor = zlib.decompressobj(wbits=wbits)
        self._received = False
        self._closed = False

    def _decompress(self, chunk: bytes) -> bytes:
        output = []
        while chunk:
            if self._decompressor.eof:
                # trailing bytes after a zlib/deflate stream are ignored
                if not self._multistream:
                    break
                self._decompressor = zlib.decompressobj(wbits=self._wbits)
            try:
                output.append(self._decompressor.decompress(chunk))
            except zlib.error as exc:
                raise CompressionError(
                    f'Failed to decompress response body: {exc}', err=exc
                ) from exc
            chunk = self._decompressor.unused_data
        return b''.join(output)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._closed:
            raise CompressionError('read from closed decompressing stream')

        async for chunk in self._upstream:
            if not chunk:
                continue
            self._received = True
            data = self._decompress(chunk)
            if data:
                yield data

        if self._received and not self._decompressor.eof:
            raise CompressionError(
                'Compressed response body ended before the end of the stream'
            )

    async def aclose(self) -> None:
        self._closed = True


Encoder = Callable[[BinaryIO], BinaryIO]
Decoder = Callable[[httpx.AsyncByteStream], httpx.AsyncByteStream]


def _zlib_encoder(wbits: int) -> Encoder:
    def encoder(buffer: BinaryIO) -> BinaryIO:
        return CompressingWriter(buffer, wbits)  # type: ignore[return-value]
    return encoder


def _zlib_decoder(wbits: int) -> Decoder:
    def decoder(stream: httpx.AsyncByteStream) -> httpx.AsyncByteStream:
        return DecompressingStream(stream, wbits)
    return decoder


@dc.dataclass(frozen=True, slots=True)
class Compression:
    '''
    A stateless codec, safe to share between requests.

    Attributes
    ----------
    - encoder: wraps a binary buffer in a writer that compresses into it.

    - decoder: wraps a raw response stream in a decompressing stream.

    - content_encoding: the label sent in `Content-Encoding` and
    `Accept-Encoding`, and looked for in the response `Content-Encoding`.
    '''
    encoder: Encoder
    decoder: Decoder
    content_encoding: str

    @classmethod
    def gzip(cls) -> Compression:
        return cls(
            encoder=_zlib_encoder(GZIP_WBITS),
            decoder=_zlib_decoder(GZIP_WBITS),
            content_encoding='gzip',
        )

    @classmethod
    def deflate(cls) -> Compression:
        '''
        Raw deflate (RFC 1951) without a zlib header.
        '''
        return cls(
            encoder=_zlib_encoder(DEFLATE_WBITS),
            decoder=_zlib_decoder(DEFLATE_WBITS),
            content_encoding='deflate',
        )

    @classmethod
    def zlib(cls) -> Compression:
        '''
        zlib wrapped deflate (RFC 1950). Shares the `deflate` label with
        `Compression.deflate()` for compatibility with existing peers.
        '''
        return cls(
            encoder=_zlib_encoder(ZLIB_WBITS),
            decoder=_zlib_decoder(ZLIB_WBITS),
            content_encoding='deflate',
        )

    def matches(self, content_encoding: str | None) -> bool:
        return bool(content_encoding) and self.content_encoding in content_encoding
