"""
Docker Engine API client
Talks to the Docker daemon over TCP or a Unix socket
"""

import logging

from .cancellation import CancelToken
from .client import DockerClient
from .config import Endpoint
from .exceptions import (
    APIError,
    BuildError,
    CancelledError,
    Conflict,
    ContainerNotFound,
    DockerConnectionError,
    DockerException,
    ImageNotFound,
    NotFound,
    ProtocolError,
    PullError,
    RemoteOperationError,
    ServerError,
)
from .images import BuildParameter
from .models import (
    Container,
    ContainerConfig,
    ContainerCreation,
    ContainerExit,
    ContainerInfo,
    Image,
    ImageInfo,
    ProgressMessage,
    RemovedImage,
    RemovedImageType,
    Version,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    'DockerClient',
    'Endpoint',
    'CancelToken',
    'BuildParameter',
    'DockerException',
    'DockerConnectionError',
    'ProtocolError',
    'CancelledError',
    'APIError',
    'NotFound',
    'ImageNotFound',
    'ContainerNotFound',
    'Conflict',
    'ServerError',
    'RemoteOperationError',
    'PullError',
    'BuildError',
    'Container',
    'ContainerConfig',
    'ContainerCreation',
    'ContainerExit',
    'ContainerInfo',
    'Image',
    'ImageInfo',
    'ProgressMessage',
    'RemovedImage',
    'RemovedImageType',
    'Version',
]

__version__ = '1.0.0'
