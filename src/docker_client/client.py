"""
Docker Client - Main API entry point
"""

import logging
from typing import Any, Dict, List, Optional, Union

from .cancellation import CancelToken
from .config import Endpoint
from .containers import ContainerCollection
from .http_client import DockerHTTPClient
from .images import BuildParameter, ImageCollection
from .models import (Container, ContainerConfig, ContainerCreation, ContainerExit,
                     ContainerInfo, Image, ImageInfo, RemovedImage, Version)
from .streaming import ProgressHandler

logger = logging.getLogger(__name__)


class DockerClient:
    """
    Docker API Client
    
    Safe to share between threads: calls keep no per-call state on the
    client, only the connection pool is shared.
    
    Example:
        >>> client = DockerClient('tcp://127.0.0.1:2375')
        >>> client.pull('busybox')
        >>> creation = client.create_container(
        ...     ContainerConfig(image='busybox', cmd=['sh', '-c', 'sleep 60']), name='demo')
        >>> client.start_container(creation.id)
    """
    
    def __init__(self, base_url: Union[str, Endpoint, None] = None,
                 timeout: Optional[float] = 60, pool_size: int = 4):
        """
        Initialize Docker client
        
        Args:
            base_url: Endpoint or '[scheme://]host[:port]' (default: DOCKER_HOST or local socket)
            timeout: Request timeout in seconds
            pool_size: Idle connections kept for reuse
        """
        self.http = DockerHTTPClient(base_url=base_url, timeout=timeout, pool_size=pool_size)
        self.images = ImageCollection(self)
        self.containers = ContainerCollection(self)
    
    @property
    def endpoint(self) -> Endpoint:
        return self.http.endpoint
    
    def version(self) -> Version:
        """Get Docker version info"""
        return self.http.get('/version', decoder=Version.model_validate)
    
    def info(self) -> Dict[str, Any]:
        """Get Docker system info"""
        return self.http.get('/info')
    
    def ping(self) -> str:
        """Ping Docker daemon"""
        return self.http.get('/_ping')
    
    # Images
    
    def pull(self, image: str, handler: Optional[ProgressHandler] = None,
             token: Optional[CancelToken] = None):
        return self.images.pull(image, handler, token=token)
    
    def build(self, path: str, name: Optional[str] = None,
              handler: Optional[ProgressHandler] = None, *parameters: BuildParameter,
              dockerfile: Optional[str] = None,
              token: Optional[CancelToken] = None) -> Optional[str]:
        return self.images.build(path, name, handler, *parameters, dockerfile=dockerfile,
                                 token=token)
    
    def tag(self, image: str, name: str, force: bool = False):
        return self.images.tag(image, name, force=force)
    
    def inspect_image(self, name: str) -> ImageInfo:
        return self.images.inspect(name)
    
    def list_images(self, all: bool = False) -> List[Image]:
        return self.images.list(all=all)
    
    def remove_image(self, image: str, force: bool = False,
                     noprune: bool = False) -> List[RemovedImage]:
        return self.images.remove(image, force=force, noprune=noprune)
    
    # Containers
    
    def list_containers(self, all: bool = False) -> List[Container]:
        return self.containers.list(all=all)
    
    def create_container(self, config: ContainerConfig,
                         name: Optional[str] = None) -> ContainerCreation:
        return self.containers.create(config, name=name)
    
    def inspect_container(self, container_id: str) -> ContainerInfo:
        return self.containers.inspect(container_id)
    
    def start_container(self, container_id: str):
        return self.containers.start(container_id)
    
    def stop_container(self, container_id: str, timeout: int = 10):
        return self.containers.stop(container_id, timeout=timeout)
    
    def kill_container(self, container_id: str, signal: Optional[str] = None):
        return self.containers.kill(container_id, signal=signal)
    
    def remove_container(self, container_id: str, force: bool = False, volumes: bool = False):
        return self.containers.remove(container_id, force=force, volumes=volumes)
    
    def wait_container(self, container_id: str,
                       token: Optional[CancelToken] = None) -> ContainerExit:
        return self.containers.wait(container_id, token=token)
    
    def close(self):
        """Close pooled connections"""
        self.http.close()
    
    def __enter__(self):
        return self
    
    def __exit__(self, *exc_info):
        self.close()
    
    def __repr__(self):
        return f"<DockerClient: {self.endpoint.url}>"
