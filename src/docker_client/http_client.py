"""
HTTP Client for the Docker daemon
Synchronous calls with typed error mapping, and streamed progress calls
"""

import json
import logging
from typing import Any, Callable, Dict, Optional, Type, Union
from urllib.parse import quote

from pydantic import ValidationError

from .cancellation import CancelToken
from .config import Endpoint
from .exceptions import ProtocolError, RemoteOperationError, raise_for_status
from .streaming import ProgressHandler, deliver_progress
from .transport import DEFAULT_TIMEOUT, Params, Request, Transport

logger = logging.getLogger(__name__)


def quote_arg(value: str) -> str:
    """Quote an id or name for interpolation into a path; keeps repo/name:tag intact"""
    return quote(value, safe='/:@')


class DockerHTTPClient:
    """HTTP client for Docker daemon"""
    
    def __init__(self, base_url: Union[str, Endpoint, None] = None, timeout: Optional[float] = 60,
                 pool_size: int = 4):
        """
        Initialize Docker HTTP client
        
        Args:
            base_url: Endpoint or host specification (default: from environment)
            timeout: Request timeout in seconds
            pool_size: Idle connections kept for reuse
        """
        if base_url is None:
            endpoint = Endpoint.from_env()
        elif isinstance(base_url, Endpoint):
            endpoint = base_url
        else:
            endpoint = Endpoint.parse(base_url)
        
        self.endpoint = endpoint
        self.timeout = timeout
        self.transport = Transport(endpoint, timeout=timeout, pool_size=pool_size)
    
    @staticmethod
    def _build_request(method: str, path: str, data: Any, params: Optional[Params],
                       headers: Optional[Dict[str, str]]) -> Request:
        req_headers = dict(headers or {})
        body = None
        if data is not None:
            if isinstance(data, bytes):
                # Raw bytes data (e.g., tar archive)
                body = data
            else:
                body = json.dumps(data).encode('utf-8')
                req_headers['Content-Type'] = 'application/json'
        return Request(method, path, params=params, body=body, headers=req_headers)
    
    def request(self, method: str, path: str, data: Any = None,
                params: Optional[Params] = None, headers: Optional[Dict[str, str]] = None,
                context: Optional[str] = None, decoder: Optional[Callable[[Any], Any]] = None,
                token: Optional[CancelToken] = None, timeout=DEFAULT_TIMEOUT) -> Any:
        """
        Make a synchronous request to the Docker daemon
        
        Args:
            method: HTTP method (GET, POST, DELETE, etc.)
            path: API path
            data: JSON data for request body, or raw bytes
            params: URL query parameters, a dict or ordered (key, value) pairs
            headers: HTTP headers
            context: Resource kind addressed, used to type 404 errors
            decoder: Converts the parsed JSON body into the result
            token: Cancellation token
            timeout: Socket timeout override; None blocks until the daemon answers
            
        Returns:
            Decoded result, parsed JSON, raw text, or None for an empty body
        """
        request = self._build_request(method, path, data, params, headers)
        response = self.transport.send(request, token=token, timeout=timeout)
        body = response.read()
        
        if not 200 <= response.status < 300:
            logger.debug(f"{method} {path} failed with {response.status}")
        raise_for_status(response.status, body, context)
        
        if not body:
            result = None
        else:
            try:
                result = json.loads(body.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError):
                if decoder is not None:
                    raise ProtocolError(f"Expected JSON from {method} {path}, got {body[:80]!r}")
                return body.decode('utf-8', errors='replace')
        
        if decoder is None:
            return result
        try:
            return decoder(result)
        except ValidationError as e:
            raise ProtocolError(f"Unexpected response from {method} {path}: {e}") from e
    
    def stream(self, method: str, path: str, handler: Optional[ProgressHandler] = None,
               data: Any = None, params: Optional[Params] = None,
               headers: Optional[Dict[str, str]] = None, context: Optional[str] = None,
               error_class: Type[RemoteOperationError] = RemoteOperationError,
               token: Optional[CancelToken] = None, timeout=None) -> int:
        """
        Make a request whose response is a progress stream
        
        Each message is handed to handler as soon as it is decoded, before
        the next one is read.
        
        Returns:
            Number of messages delivered
        """
        request = self._build_request(method, path, data, params, headers)
        response = self.transport.send(request, token=token, timeout=timeout)
        with response:
            if not 200 <= response.status < 300:
                body = response.read()
                logger.debug(f"{method} {path} failed with {response.status}")
                raise_for_status(response.status, body, context)
            return deliver_progress(response.iter_chunks(), handler, error_class, token=token)
    
    def get(self, path: str, **kwargs) -> Any:
        """Make GET request"""
        return self.request('GET', path, **kwargs)
    
    def post(self, path: str, **kwargs) -> Any:
        """Make POST request"""
        return self.request('POST', path, **kwargs)
    
    def delete(self, path: str, **kwargs) -> Any:
        """Make DELETE request"""
        return self.request('DELETE', path, **kwargs)
    
    def close(self):
        self.transport.close()
