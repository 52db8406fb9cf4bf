"""
Daemon endpoint configuration
Resolves host specifications like 'tcp://10.0.0.5:2375', ':2375' or
'unix:///var/run/docker.sock'
"""

import logging
import os
import platform
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_PORT = 2375
DEFAULT_HOST = 'localhost'
DEFAULT_SOCKET_PATH = '/var/run/docker.sock'

TCP_SCHEMES = ('', 'tcp', 'http')


class Endpoint:
    """Daemon address: either a TCP host/port or a Unix socket path"""
    
    __slots__ = ('host', 'port', 'socket_path')
    
    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 socket_path: Optional[str] = None):
        if socket_path is None and host is None:
            raise ValueError("Endpoint needs a host or a socket path")
        object.__setattr__(self, 'host', host)
        object.__setattr__(self, 'port', port)
        object.__setattr__(self, 'socket_path', socket_path)
    
    def __setattr__(self, name, value):
        raise AttributeError("Endpoint is immutable")
    
    @classmethod
    def parse(cls, spec: str, default_port: int = DEFAULT_PORT) -> 'Endpoint':
        """
        Parse a host specification of the form [scheme://]host[:port]
        
        Args:
            spec: Host specification
            default_port: Port used when the specification has none
            
        Returns:
            Endpoint
            
        Raises:
            ValueError: If the specification is malformed
        """
        spec = spec.strip()
        scheme = ''
        if '://' in spec:
            scheme, spec = spec.split('://', 1)
            scheme = scheme.lower()
        
        if scheme == 'unix':
            if not spec:
                raise ValueError("Empty socket path in unix:// endpoint")
            # unix:///var/run/docker.sock and unix://var/run/docker.sock
            return cls(socket_path='/' + spec.lstrip('/'))
        
        if scheme not in TCP_SCHEMES:
            raise ValueError(f"Unsupported endpoint scheme: {scheme}")
        
        spec = spec.rstrip('/')
        host, port = spec, default_port
        if spec.startswith('['):
            # [::1]:2375
            closing = spec.find(']')
            if closing < 0:
                raise ValueError(f"Malformed IPv6 address: {spec}")
            host = spec[1:closing]
            rest = spec[closing + 1:]
            if rest:
                port = cls._parse_port(rest.lstrip(':'))
        elif spec.count(':') == 1:
            host, raw_port = spec.split(':')
            port = cls._parse_port(raw_port)
        
        return cls(host=host or DEFAULT_HOST, port=port)
    
    @staticmethod
    def _parse_port(raw: str) -> int:
        if not raw.isdigit():
            raise ValueError(f"Invalid port: {raw!r}")
        port = int(raw)
        if not 0 < port < 65536:
            raise ValueError(f"Port out of range: {port}")
        return port
    
    @classmethod
    def from_env(cls, environ=None) -> 'Endpoint':
        """
        Resolve the endpoint from DOCKER_HOST / DOCKER_PORT, falling back to
        the local daemon socket
        """
        environ = os.environ if environ is None else environ
        default_port = int(environ.get('DOCKER_PORT') or DEFAULT_PORT)
        host = environ.get('DOCKER_HOST')
        if host:
            return cls.parse(host, default_port=default_port)
        
        # Auto-detect Docker socket
        socket_path = DEFAULT_SOCKET_PATH
        if platform.system() == "Darwin":
            desktop_socket = os.path.expanduser('~/.docker/run/docker.sock')
            if os.path.exists(desktop_socket):
                socket_path = desktop_socket
        logger.debug(f"DOCKER_HOST not set, using socket {socket_path}")
        return cls(socket_path=socket_path)
    
    @property
    def is_unix(self) -> bool:
        return self.socket_path is not None
    
    @property
    def url(self) -> str:
        if self.is_unix:
            return f"unix://{self.socket_path}"
        host = f"[{self.host}]" if ':' in self.host else self.host
        return f"http://{host}:{self.port}"
    
    def __eq__(self, other):
        if not isinstance(other, Endpoint):
            return NotImplemented
        return (self.host, self.port, self.socket_path) == (other.host, other.port, other.socket_path)
    
    def __hash__(self):
        return hash((self.host, self.port, self.socket_path))
    
    def __repr__(self):
        return f"<Endpoint: {self.url}>"
