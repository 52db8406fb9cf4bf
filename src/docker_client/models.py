"""
Value records exchanged with the Docker daemon
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

BUILD_SUCCESS_PATTERN = re.compile(r'^Successfully built ([0-9a-fA-F]+)\s*$')


class DockerModel(BaseModel):
    """Immutable record; fields accept either the daemon's key or the python name"""
    
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')
    
    def to_json(self) -> Dict[str, Any]:
        """Serialize with daemon key names, leaving out unset fields"""
        return self.model_dump(by_alias=True, exclude_none=True)


class ContainerConfig(DockerModel):
    """Container creation settings (POST /containers/create body)"""
    
    hostname: Optional[str] = Field(None, alias='Hostname')
    domainname: Optional[str] = Field(None, alias='Domainname')
    user: Optional[str] = Field(None, alias='User')
    memory: Optional[int] = Field(None, alias='Memory')
    memory_swap: Optional[int] = Field(None, alias='MemorySwap')
    cpu_shares: Optional[int] = Field(None, alias='CpuShares')
    cpuset: Optional[str] = Field(None, alias='Cpuset')
    attach_stdin: Optional[bool] = Field(None, alias='AttachStdin')
    attach_stdout: Optional[bool] = Field(None, alias='AttachStdout')
    attach_stderr: Optional[bool] = Field(None, alias='AttachStderr')
    exposed_ports: Optional[Dict[str, Dict[str, Any]]] = Field(None, alias='ExposedPorts')
    tty: Optional[bool] = Field(None, alias='Tty')
    open_stdin: Optional[bool] = Field(None, alias='OpenStdin')
    stdin_once: Optional[bool] = Field(None, alias='StdinOnce')
    env: Optional[List[str]] = Field(None, alias='Env')
    cmd: Optional[List[str]] = Field(None, alias='Cmd')
    image: Optional[str] = Field(None, alias='Image')
    volumes: Optional[Dict[str, Dict[str, Any]]] = Field(None, alias='Volumes')
    working_dir: Optional[str] = Field(None, alias='WorkingDir')
    entrypoint: Optional[List[str]] = Field(None, alias='Entrypoint')
    network_disabled: Optional[bool] = Field(None, alias='NetworkDisabled')
    on_build: Optional[List[str]] = Field(None, alias='OnBuild')
    labels: Optional[Dict[str, str]] = Field(None, alias='Labels')
    host_config: Optional[Dict[str, Any]] = Field(None, alias='HostConfig')


class ContainerCreation(DockerModel):
    id: str = Field(alias='Id')
    warnings: Optional[List[str]] = Field(None, alias='Warnings')


class ContainerExit(DockerModel):
    status_code: int = Field(alias='StatusCode')


class ContainerState(DockerModel):
    status: Optional[str] = Field(None, alias='Status')
    running: Optional[bool] = Field(None, alias='Running')
    paused: Optional[bool] = Field(None, alias='Paused')
    restarting: Optional[bool] = Field(None, alias='Restarting')
    pid: Optional[int] = Field(None, alias='Pid')
    exit_code: Optional[int] = Field(None, alias='ExitCode')
    started_at: Optional[str] = Field(None, alias='StartedAt')
    finished_at: Optional[str] = Field(None, alias='FinishedAt')
    error: Optional[str] = Field(None, alias='Error')


class ContainerInfo(DockerModel):
    """Result of GET /containers/{id}/json"""
    
    id: str = Field(alias='Id')
    created: Optional[str] = Field(None, alias='Created')
    path: Optional[str] = Field(None, alias='Path')
    args: Optional[List[str]] = Field(None, alias='Args')
    config: Optional[ContainerConfig] = Field(None, alias='Config')
    state: Optional[ContainerState] = Field(None, alias='State')
    image: Optional[str] = Field(None, alias='Image')
    network_settings: Optional[Dict[str, Any]] = Field(None, alias='NetworkSettings')
    resolv_conf_path: Optional[str] = Field(None, alias='ResolvConfPath')
    hostname_path: Optional[str] = Field(None, alias='HostnamePath')
    hosts_path: Optional[str] = Field(None, alias='HostsPath')
    name: Optional[str] = Field(None, alias='Name')
    driver: Optional[str] = Field(None, alias='Driver')
    host_config: Optional[Dict[str, Any]] = Field(None, alias='HostConfig')
    mounts: Optional[List[Dict[str, Any]]] = Field(None, alias='Mounts')


class Container(DockerModel):
    """Entry of GET /containers/json"""
    
    id: str = Field(alias='Id')
    names: Optional[List[str]] = Field(None, alias='Names')
    image: Optional[str] = Field(None, alias='Image')
    command: Optional[str] = Field(None, alias='Command')
    created: Optional[int] = Field(None, alias='Created')
    state: Optional[str] = Field(None, alias='State')
    status: Optional[str] = Field(None, alias='Status')
    ports: Optional[List[Dict[str, Any]]] = Field(None, alias='Ports')
    labels: Optional[Dict[str, str]] = Field(None, alias='Labels')
    size_rw: Optional[int] = Field(None, alias='SizeRw')
    size_root_fs: Optional[int] = Field(None, alias='SizeRootFs')


class ImageInfo(DockerModel):
    """Result of GET /images/{name}/json"""
    
    id: str = Field(alias='Id')
    parent: Optional[str] = Field(None, alias='Parent')
    comment: Optional[str] = Field(None, alias='Comment')
    created: Optional[str] = Field(None, alias='Created')
    container: Optional[str] = Field(None, alias='Container')
    container_config: Optional[ContainerConfig] = Field(None, alias='ContainerConfig')
    docker_version: Optional[str] = Field(None, alias='DockerVersion')
    author: Optional[str] = Field(None, alias='Author')
    config: Optional[ContainerConfig] = Field(None, alias='Config')
    architecture: Optional[str] = Field(None, alias='Architecture')
    os: Optional[str] = Field(None, alias='Os')
    size: Optional[int] = Field(None, alias='Size')
    repo_tags: Optional[List[str]] = Field(None, alias='RepoTags')


class Image(DockerModel):
    """Entry of GET /images/json"""
    
    id: str = Field(alias='Id')
    parent_id: Optional[str] = Field(None, alias='ParentId')
    repo_tags: Optional[List[str]] = Field(None, alias='RepoTags')
    created: Optional[int] = Field(None, alias='Created')
    size: Optional[int] = Field(None, alias='Size')
    virtual_size: Optional[int] = Field(None, alias='VirtualSize')


class Version(DockerModel):
    """Result of GET /version; every field is a non-blank string"""
    
    api_version: str = Field(alias='ApiVersion', min_length=1)
    arch: str = Field(alias='Arch', min_length=1)
    git_commit: str = Field(alias='GitCommit', min_length=1)
    go_version: str = Field(alias='GoVersion', min_length=1)
    kernel_version: str = Field(alias='KernelVersion', min_length=1)
    os: str = Field(alias='Os', min_length=1)
    version: str = Field(alias='Version', min_length=1)


class RemovedImageType(str, Enum):
    UNTAGGED = 'Untagged'
    DELETED = 'Deleted'


class RemovedImage(DockerModel):
    """
    One entry of DELETE /images/{name}: either a removed tag or a deleted
    image/layer digest
    """
    
    kind: RemovedImageType
    image_id: str
    
    @model_validator(mode='before')
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        # {"Untagged": "busybox:latest"} / {"Deleted": "sha256:..."}
        if isinstance(data, dict) and 'kind' not in data:
            for kind in RemovedImageType:
                if kind.value in data:
                    return {'kind': kind, 'image_id': data[kind.value]}
        return data
    
    def __repr__(self):
        return f"RemovedImage({self.kind.value}, {self.image_id!r})"


class ProgressDetail(DockerModel):
    current: Optional[int] = None
    total: Optional[int] = None
    start: Optional[int] = None


class ErrorDetail(DockerModel):
    code: Optional[int] = None
    message: Optional[str] = None


class ProgressMessage(DockerModel):
    """One decoded event of a pull or build stream"""
    
    id: Optional[str] = None
    status: Optional[str] = None
    stream: Optional[str] = None
    error: Optional[str] = None
    progress: Optional[str] = None
    progress_detail: Optional[ProgressDetail] = Field(None, alias='progressDetail')
    error_detail: Optional[ErrorDetail] = Field(None, alias='errorDetail')
    aux: Optional[Dict[str, Any]] = None
    
    @property
    def build_image_id(self) -> Optional[str]:
        """Image id announced by a 'Successfully built <id>' stream line"""
        if self.stream is None:
            return None
        match = BUILD_SUCCESS_PATTERN.match(self.stream)
        return match.group(1) if match else None
    
    def has_payload(self) -> bool:
        """True when any field other than the error ones is set"""
        return any(value is not None for value in (
            self.id, self.status, self.stream, self.progress,
            self.progress_detail, self.aux,
        ))
