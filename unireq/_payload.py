'''
Turns request bodies into something httpx can send, and compresses
them when a codec is configured.
'''
from __future__ import annotations

import asyncio
import io
import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, BinaryIO

from unireq._compression import Compression
from unireq._errors import CompressionError, SerializationError
from unireq._request import QueryValues, encode_query

FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded'

Payload = bytes | AsyncIterable[bytes]


def is_file_like(value: Any) -> bool:
    return callable(getattr(value, 'read', None))


async def iter_file(fileobj: BinaryIO, chunk_size: int) -> AsyncIterator[bytes]:
    while chunk := await asyncio.to_thread(fileobj.read, chunk_size):
        if isinstance(chunk, str):
            chunk = chunk.encode('utf-8')
        yield chunk


def prepare_body(body: Any, *, chunk_size: int = 16_384) -> Payload | None:
    '''
    Coerce a request body into bytes or an async byte stream.

    - `None` -> no body
    - `str` -> utf-8 bytes
    - bytes-like -> bytes
    - async iterable -> passed through unchanged
    - file object -> read in `chunk_size` chunks
    - anything else -> JSON

    Parameters
    ----------
    body : Any
    chunk_size : int, optional
        Read size for file objects, by default 16_384

    Returns
    -------
    Payload | None

    Raises
    ------
    SerializationError
        If the value cannot be serialised as JSON.
    '''
    if body is None:
        return None

    if isinstance(body, str):
        return body.encode('utf-8')

    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)

    if isinstance(body, AsyncIterable):
        return body

    if is_file_like(body):
        return iter_file(body, chunk_size)

    try:
        return json.dumps(body).encode('utf-8')
    except (TypeError, ValueError) as exc:
        raise SerializationError(
            f'Failed to serialise request body of type {type(body).__name__}: {exc}',
            err=exc,
        ) from exc


def prepare_form(form: QueryValues) -> bytes:
    return encode_query(form).encode('ascii')


async def compress_body(payload: Payload, compression: Compression) -> bytes:
    '''
    Pipe the payload through the codec's encoder into an in-memory buffer.

    Parameters
    ----------
    payload : Payload
    compression : Compression

    Returns
    -------
    bytes
        The compressed body.

    Raises
    ------
    CompressionError
        If the encoder cannot be created or a write fails.
    '''
    buffer = io.BytesIO()
    try:
        writer = compression.encoder(buffer)
    except Exception as exc:
        raise CompressionError(
            f'Failed to create {compression.content_encoding} encoder: {exc}',
            err=exc,
        ) from exc

    try:
        if isinstance(payload, bytes):
            writer.write(payload)
        else:
            async for chunk in payload:
                writer.write(chunk)
    except CompressionError:
        raise
    except Exception as exc:
        raise CompressionError(
            f'Failed to compress request body: {exc}', err=exc
        ) from exc
    finally:
        writer.close()

    return buffer.getvalue()
