'''
The error types raised by `RequestExecutor.execute` and `ResponseBody`.

Every error wraps the underlying exception (`err`, also chained as
`__cause__`) and exposes a `timeout` predicate. Only transport errors
can be timeouts, so check the predicate rather than the class.
'''
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from unireq._response import Response


class ExecutionError(Exception):
    '''
    Base class for every error raised while executing a request.

    Parent: Exception
    '''

    def __init__(
        self,
        message: str,
        *,
        err: BaseException | None = None,
        timeout: bool = False,
    ) -> None:
        super().__init__(message)
        self.err = err
        self._timeout = timeout

    @property
    def timeout(self) -> bool:
        return self._timeout


class ConfigurationError(ExecutionError, ValueError):
    '''
    Raised when the proxy URL or the request URL is malformed.

    Parent: ExecutionError, ValueError
    '''


class SerializationError(ExecutionError, ValueError):
    '''
    Raised when the request body cannot be turned into bytes.

    Parent: ExecutionError, ValueError
    '''


class CompressionError(ExecutionError):
    '''
    Raised when a codec fails to encode the request body or decode
    the response body.

    Parent: ExecutionError
    '''


class TransportError(ExecutionError):
    '''
    Raised when the exchange itself fails (connection, DNS, TLS, timeout).

    Parent: ExecutionError
    '''


class RedirectLimitError(TransportError):
    '''
    Raised when the server redirects more often than `max_redirects` allows.
    The last received response is kept on `response` and its body can still
    be read; the caller owns closing it.

    Parent: TransportError
    '''

    def __init__(
        self,
        message: str,
        *,
        response: Response,
        err: BaseException | None = None,
    ) -> None:
        super().__init__(message, err=err)
        self.response = response


class DeserializationError(ExecutionError, ValueError):
    '''
    Raised when a response body is not valid JSON.

    Parent: ExecutionError, ValueError
    '''
