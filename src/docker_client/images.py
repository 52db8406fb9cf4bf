"""
Docker Images API
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydantic import TypeAdapter

from .cancellation import CancelToken
from .exceptions import BuildError, PullError
from .http_client import quote_arg
from .models import Image, ImageInfo, ProgressMessage, RemovedImage
from .streaming import ProgressHandler, log_progress
from .tar_utils import create_build_context

logger = logging.getLogger(__name__)

IMAGE_LIST = TypeAdapter(List[Image])
REMOVED_IMAGES = TypeAdapter(List[RemovedImage])


class BuildParameter(Enum):
    """Build flags, each a fixed query parameter"""
    
    QUIET = ('q', 'true')
    NO_CACHE = ('nocache', 'true')
    NO_RM = ('rm', 'false')
    FORCE_RM = ('forcerm', 'true')
    PULL_NEWER_IMAGE = ('pull', 'true')
    
    def __init__(self, key: str, flag: str):
        self.key = key
        self.flag = flag


def build_query(parameters: Iterable[BuildParameter]) -> List[Tuple[str, str]]:
    """Union of the parameters' query pairs, in first-seen order"""
    query = []
    for parameter in parameters:
        pair = (parameter.key, parameter.flag)
        if pair not in query:
            query.append(pair)
    return query


def split_repository_tag(name: str) -> Tuple[str, Optional[str]]:
    """
    Split 'repo:tag' into its parts
    
    A colon before the last slash belongs to a registry port
    ('localhost:5000/app'), and digest references ('repo@sha256:...') keep
    their digest in the repository part.
    """
    if '@' in name:
        return name, None
    slash = name.rfind('/')
    colon = name.rfind(':')
    if colon > slash:
        return name[:colon], name[colon + 1:]
    return name, None


class ImageCollection:
    """Docker Images collection"""
    
    def __init__(self, client):
        self.client = client
    
    def list(self, all: bool = False) -> List[Image]:
        """
        List images
        
        Args:
            all: Show all images (including intermediates)
        """
        return self.client.http.get('/images/json', params={'all': all},
                                    decoder=IMAGE_LIST.validate_python)
    
    def inspect(self, name: str) -> ImageInfo:
        """
        Get image details by name or ID
        
        Raises:
            ImageNotFound: If image not found
        """
        return self.client.http.get(f'/images/{quote_arg(name)}/json', context='image',
                                    decoder=ImageInfo.model_validate)
    
    def pull(self, image: str, handler: Optional[ProgressHandler] = None,
             token: Optional[CancelToken] = None):
        """
        Pull image from registry
        
        Args:
            image: Image name, optionally with ':tag' (default tag: latest)
            handler: Receives each progress message
            token: Cancellation token
            
        Raises:
            ImageNotFound: If the repository is unknown
            PullError: If the daemon reports a failure mid-stream
        """
        repository, tag = split_repository_tag(image)
        params = [('fromImage', repository)]
        if '@' not in image:
            params.append(('tag', tag or 'latest'))
        
        logger.info(f"Pulling image {image}")
        self.client.http.stream('POST', '/images/create', handler, params=params,
                                context='image', error_class=PullError, token=token)
        logger.info(f"Image pulled successfully: {image}")
    
    def build(self, path: str, name: Optional[str] = None,
              handler: Optional[ProgressHandler] = None, *parameters: BuildParameter,
              dockerfile: Optional[str] = None,
              token: Optional[CancelToken] = None) -> Optional[str]:
        """
        Build image from Dockerfile
        
        Args:
            path: Build context directory
            name: Tag for the image
            handler: Receives each progress message
            *parameters: BuildParameter flags
            dockerfile: Dockerfile path inside the context
            token: Cancellation token
            
        Returns:
            Id of the built image as announced in the stream, or None
            
        Raises:
            BuildError: If the daemon reports a failure mid-stream
        """
        tar_data = create_build_context(path, dockerfile=dockerfile)
        
        params = []
        if name:
            params.append(('t', name))
        if dockerfile:
            params.append(('dockerfile', dockerfile))
        params.extend(build_query(parameters))
        
        downstream = handler or log_progress
        image_ids = []
        
        def capture(message: ProgressMessage):
            image_id = message.build_image_id
            if image_id is not None:
                image_ids.append(image_id)
            downstream(message)
        
        logger.info(f"Building image {name or '<untagged>'} from {path}")
        self.client.http.stream('POST', '/build', capture, data=tar_data, params=params,
                                headers={'Content-Type': 'application/x-tar'},
                                error_class=BuildError, token=token)
        
        image_id = image_ids[-1] if image_ids else None
        logger.info(f"Image built successfully: {name or image_id}")
        return image_id
    
    def tag(self, image: str, name: str, force: bool = False):
        """
        Tag an image into a repository
        
        Args:
            image: Source image name or ID
            name: New 'repo[:tag]'
            force: Move the tag if it already exists
        """
        repository, tag = split_repository_tag(name)
        params = [('repo', repository), ('tag', tag), ('force', force)]
        self.client.http.post(f'/images/{quote_arg(image)}/tag', params=params,
                              context='image')
        logger.info(f"Tagged {image} as {name}")
    
    def remove(self, image: str, force: bool = False, noprune: bool = False) -> List[RemovedImage]:
        """
        Remove image
        
        Args:
            image: Image name or ID
            force: Force removal
            noprune: Don't delete untagged parents
            
        Returns:
            Untag and delete records in the order the daemon reported them
        """
        params = {'force': force, 'noprune': noprune}
        removed = self.client.http.delete(f'/images/{quote_arg(image)}', params=params,
                                          context='image', decoder=REMOVED_IMAGES.validate_python)
        logger.info(f"Removed image {image}: {len(removed)} entries")
        return removed
