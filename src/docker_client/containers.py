"""
Docker Containers API
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter

from .cancellation import CancelToken
from .http_client import quote_arg
from .models import Container, ContainerConfig, ContainerCreation, ContainerExit, ContainerInfo

logger = logging.getLogger(__name__)

CONTAINER_LIST = TypeAdapter(List[Container])


class ContainerCollection:
    """Docker Containers collection"""
    
    def __init__(self, client):
        self.client = client
    
    def list(self, all: bool = False, limit: Optional[int] = None,
             filters: Optional[Dict[str, Any]] = None) -> List[Container]:
        """
        List containers
        
        Args:
            all: Show all containers (including stopped)
            limit: Maximum number of containers to return
            filters: Filters to apply
            
        Returns:
            List of Container records
        """
        params = {'all': all, 'limit': limit, 'filters': filters}
        return self.client.http.get('/containers/json', params=params,
                                    decoder=CONTAINER_LIST.validate_python)
    
    def inspect(self, container_id: str) -> ContainerInfo:
        """
        Get container by ID or name
        
        Raises:
            ContainerNotFound: If container not found
        """
        return self.client.http.get(f'/containers/{quote_arg(container_id)}/json',
                                    context='container', decoder=ContainerInfo.model_validate)
    
    def create(self, config: ContainerConfig, name: Optional[str] = None) -> ContainerCreation:
        """
        Create container
        
        Args:
            config: Container configuration
            name: Container name
            
        Returns:
            ContainerCreation with the new id and daemon warnings
            
        Raises:
            ImageNotFound: If the configured image is not present
            Conflict: If the name is already in use
        """
        creation = self.client.http.post('/containers/create', params={'name': name},
                                         data=config.to_json(), context='image',
                                         decoder=ContainerCreation.model_validate)
        logger.info(f"Container {name or creation.id[:12]} created")
        return creation
    
    def start(self, container_id: str):
        """Start container"""
        self.client.http.post(f'/containers/{quote_arg(container_id)}/start',
                              context='container')
        logger.info(f"Container {container_id} started")
    
    def stop(self, container_id: str, timeout: int = 10):
        """Stop container, killing it after timeout seconds"""
        # The daemon holds the response until the container is down
        self.client.http.post(f'/containers/{quote_arg(container_id)}/stop',
                              params={'t': timeout}, context='container',
                              timeout=self._grace(timeout))
        logger.info(f"Container {container_id} stopped")
    
    def kill(self, container_id: str, signal: Optional[str] = None):
        """Kill container"""
        self.client.http.post(f'/containers/{quote_arg(container_id)}/kill',
                              params={'signal': signal}, context='container')
        logger.info(f"Container {container_id} killed")
    
    def remove(self, container_id: str, force: bool = False, volumes: bool = False):
        """Remove container"""
        params = {'force': force, 'v': volumes}
        self.client.http.delete(f'/containers/{quote_arg(container_id)}', params=params,
                                context='container')
        logger.info(f"Container {container_id} removed")
    
    def wait(self, container_id: str, token: Optional[CancelToken] = None) -> ContainerExit:
        """
        Block until the container exits
        
        Args:
            container_id: Container ID or name
            token: Cancelling it aborts the wait with CancelledError
            
        Returns:
            ContainerExit with the exit status
        """
        return self.client.http.post(f'/containers/{quote_arg(container_id)}/wait',
                                     context='container', token=token, timeout=None,
                                     decoder=ContainerExit.model_validate)
    
    def _grace(self, timeout: int) -> Optional[float]:
        if self.client.http.timeout is None:
            return None
        return self.client.http.timeout + timeout
