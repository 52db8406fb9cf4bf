"""
Docker API Exceptions
"""

import json
from typing import Optional, Type


class DockerException(Exception):
    """Base Docker exception"""
    pass


class DockerConnectionError(DockerException):
    """Daemon unreachable, or connection dropped before a response arrived"""
    pass


class ProtocolError(DockerException):
    """Response body could not be decoded"""
    pass


class CancelledError(DockerException):
    """Operation aborted by a cancellation request"""
    pass


class APIError(DockerException):
    """Docker API error"""
    
    def __init__(self, message, status_code=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
    
    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and 500 <= self.status_code < 600


class NotFound(APIError):
    """Resource not found"""
    pass


class ImageNotFound(NotFound):
    """Image not found"""
    pass


class ContainerNotFound(NotFound):
    """Container not found"""
    pass


class Conflict(APIError):
    """Request conflicts with daemon state (e.g. name already in use)"""
    pass


class ServerError(APIError):
    """Daemon failed to handle the request"""
    pass


class RemoteOperationError(DockerException):
    """Daemon reported a failure inside a progress stream"""
    
    def __init__(self, message, detail=None):
        super().__init__(message)
        self.detail = detail


class PullError(RemoteOperationError):
    """Image pull error"""
    pass


class BuildError(RemoteOperationError):
    """Image build error"""
    pass


NOT_FOUND_BY_CONTEXT = {
    'container': ContainerNotFound,
    'image': ImageNotFound,
}


def classify(status_code: int, context: Optional[str] = None) -> Optional[Type[APIError]]:
    """
    Map an HTTP status code to an error class
    
    Args:
        status_code: Response status
        context: Kind of resource the request addressed ('container', 'image')
        
    Returns:
        Exception class, or None for a successful status
    """
    if 200 <= status_code < 300:
        return None
    if status_code == 404:
        return NOT_FOUND_BY_CONTEXT.get(context, NotFound)
    if status_code == 409:
        return Conflict
    if 500 <= status_code < 600:
        return ServerError
    return APIError


def explain(body: bytes) -> str:
    """Extract the daemon's error message from a response body"""
    text = body.decode('utf-8', errors='replace').strip()
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if isinstance(data, dict) and data.get('message'):
        return str(data['message'])
    return text


def raise_for_status(status_code: int, body: bytes, context: Optional[str] = None):
    """Raise the mapped error for a non-2xx response, attaching status and body"""
    error_class = classify(status_code, context)
    if error_class is None:
        return
    raise error_class(
        f"Docker API error ({status_code}): {explain(body)}",
        status_code=status_code,
        body=body
    )
