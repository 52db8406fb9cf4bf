"""
HTTP transport for the Docker daemon
Pooled http.client connections over TCP or a Unix socket, with abortable
in-flight requests
"""

import http.client
import json
import logging
import queue
import select
import socket
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union
from urllib.parse import urlencode

from .cancellation import CancelToken
from .config import Endpoint
from .exceptions import CancelledError, DockerConnectionError

logger = logging.getLogger(__name__)

# Marker for "use the transport's default timeout"; None means block forever
DEFAULT_TIMEOUT = object()

CHUNK_SIZE = 8192

Params = Union[Dict[str, Any], Iterable[Tuple[str, Any]]]


class UnixHTTPConnection(http.client.HTTPConnection):
    """HTTP connection over Unix socket"""
    
    def __init__(self, socket_path: str, timeout=None):
        super().__init__('localhost', timeout=timeout)
        self.socket_path = socket_path
    
    def connect(self):
        """Connect to Unix socket"""
        self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.sock.settimeout(self.timeout)
        self.sock.connect(self.socket_path)


def encode_param(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


class Request:
    """A single daemon call. Query parameters keep their order and may repeat."""
    
    def __init__(self, method: str, path: str, params: Optional[Params] = None,
                 body: Optional[bytes] = None, headers: Optional[Dict[str, str]] = None):
        self.method = method
        self.path = path
        self.params: List[Tuple[str, str]] = []
        self.body = body
        self.headers = dict(headers or {})
        
        if params:
            items = params.items() if isinstance(params, dict) else params
            for key, value in items:
                if value is not None:
                    self.params.append((key, encode_param(value)))
        
        if body is not None and 'Content-Length' not in self.headers:
            self.headers['Content-Length'] = str(len(body))
    
    @property
    def target(self) -> str:
        if not self.params:
            return self.path
        return f"{self.path}?{urlencode(self.params)}"
    
    def __repr__(self):
        return f"<Request: {self.method} {self.target}>"


class Response:
    """
    Daemon response whose body is read either whole (read) or incrementally
    (iter_chunks). Closing it hands the connection back to the pool when the
    body was fully consumed.
    """
    
    def __init__(self, raw: http.client.HTTPResponse, connection, pool: 'ConnectionPool',
                 token: Optional[CancelToken] = None, unregister=None):
        self.status = raw.status
        self.reason = raw.reason
        self.headers = raw.headers
        self._raw = raw
        self._connection = connection
        self._pool = pool
        self._token = token
        self._unregister = unregister
        self._exhausted = False
        self._broken = False
        self._closed = False
    
    def _failed(self, error: Exception) -> Exception:
        self._broken = True
        self.close()
        if self._token is not None and self._token.cancelled:
            return CancelledError("Operation cancelled while reading response")
        return DockerConnectionError(f"Connection to Docker daemon dropped: {error}")
    
    def _check_eof(self):
        # An aborted socket reads as a clean EOF on length-delimited bodies
        if self._token is not None and self._token.cancelled:
            self._broken = True
            self.close()
            raise CancelledError("Operation cancelled while reading response")
    
    def read(self) -> bytes:
        """
        Read the whole body and release the connection
        
        A token cancelled while the body was being read wins: the call fails
        with CancelledError even if the body arrived complete.
        """
        try:
            data = self._raw.read()
        except (OSError, http.client.HTTPException) as e:
            raise self._failed(e) from e
        self._check_eof()
        self._exhausted = True
        self.close()
        return data
    
    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        """Yield body bytes as they arrive"""
        try:
            while True:
                try:
                    chunk = self._raw.read1(chunk_size)
                except (OSError, http.client.HTTPException) as e:
                    raise self._failed(e) from e
                if not chunk:
                    self._check_eof()
                    self._exhausted = True
                    return
                yield chunk
        finally:
            self.close()
    
    def close(self):
        if self._closed:
            return
        self._closed = True
        if self._unregister is not None:
            self._unregister()
        
        reusable = self._exhausted and not self._broken and not self._raw.will_close
        self._raw.close()
        if reusable:
            self._pool.release(self._connection)
        else:
            self._pool.discard(self._connection)
    
    def __enter__(self):
        return self
    
    def __exit__(self, *exc_info):
        self.close()
    
    def __repr__(self):
        return f"<Response: {self.status} {self.reason}>"


class ConnectionPool:
    """Idle keep-alive connections to one endpoint"""
    
    def __init__(self, endpoint: Endpoint, maxsize: int = 4, timeout: Optional[float] = 60):
        self.endpoint = endpoint
        self.timeout = timeout
        self._idle: queue.LifoQueue = queue.LifoQueue(maxsize=maxsize)
        self._closed = False
    
    def new_connection(self) -> http.client.HTTPConnection:
        if self.endpoint.is_unix:
            return UnixHTTPConnection(self.endpoint.socket_path, timeout=self.timeout)
        return http.client.HTTPConnection(self.endpoint.host, self.endpoint.port,
                                          timeout=self.timeout)
    
    def acquire(self) -> http.client.HTTPConnection:
        """Return an idle connection the daemon has not hung up on, or a new one"""
        while True:
            try:
                connection = self._idle.get_nowait()
            except queue.Empty:
                return self.new_connection()
            if _is_stale(connection):
                logger.debug("Dropping idle connection closed by the daemon")
                connection.close()
                continue
            return connection
    
    def release(self, connection):
        if self._closed or connection.sock is None:
            connection.close()
            return
        try:
            self._idle.put_nowait(connection)
        except queue.Full:
            connection.close()
    
    def discard(self, connection):
        connection.close()
    
    def close(self):
        self._closed = True
        while True:
            try:
                self._idle.get_nowait().close()
            except queue.Empty:
                break


def _is_stale(connection) -> bool:
    # An idle keep-alive socket has nothing to read unless the peer hung up
    sock = connection.sock
    if sock is None:
        return True
    try:
        readable, _, _ = select.select([sock], [], [], 0)
    except (OSError, ValueError):
        return True
    return bool(readable)


def _abort(connection):
    """Wake a thread blocked on this connection's socket"""
    sock = connection.sock
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # already closed
        pass


class Transport:
    """Sends requests to the daemon. Never retries a request."""
    
    def __init__(self, endpoint: Endpoint, timeout: Optional[float] = 60, pool_size: int = 4):
        self.endpoint = endpoint
        self.timeout = timeout
        self.pool = ConnectionPool(endpoint, maxsize=pool_size, timeout=timeout)
    
    def send(self, request: Request, token: Optional[CancelToken] = None,
             timeout=DEFAULT_TIMEOUT) -> Response:
        """
        Send a request and return once response headers have arrived
        
        Args:
            request: Request to send
            token: Cancellation token; cancelling it aborts the call
            timeout: Socket timeout in seconds, None to block until the daemon answers
            
        Returns:
            Response with an unread body
            
        Raises:
            DockerConnectionError: Daemon unreachable or connection dropped
            CancelledError: Token cancelled before or during the call
        """
        if timeout is DEFAULT_TIMEOUT:
            timeout = self.timeout
        if token is not None:
            token.raise_if_cancelled()
        
        connection = self.pool.acquire()
        try:
            return self._send(connection, request, token, timeout)
        except (OSError, http.client.HTTPException) as e:
            raise self._wrap(request, e, token) from e
    
    def _send(self, connection, request: Request, token: Optional[CancelToken],
              timeout) -> Response:
        connection.timeout = timeout
        if connection.sock is not None:
            connection.sock.settimeout(timeout)
        
        unregister = None
        try:
            # Connect first so a cancel always has a socket to shut down
            if connection.sock is None:
                connection.connect()
            if token is not None:
                unregister = token.on_cancel(lambda: _abort(connection))
                token.raise_if_cancelled()
            logger.debug(f"Sending {request!r} to {self.endpoint.url}")
            connection.request(request.method, request.target, body=request.body,
                               headers=request.headers)
            if token is not None:
                token.raise_if_cancelled()
            raw = connection.getresponse()
        except BaseException:
            if unregister is not None:
                unregister()
            self.pool.discard(connection)
            raise
        
        return Response(raw, connection, self.pool, token=token, unregister=unregister)
    
    def _wrap(self, request: Request, error: Exception,
              token: Optional[CancelToken]) -> Exception:
        if token is not None and token.cancelled:
            return CancelledError(f"{request.method} {request.path} cancelled")
        return DockerConnectionError(
            f"Error talking to Docker daemon at {self.endpoint.url}: {error}")
    
    def close(self):
        self.pool.close()
