"""
Shared fixtures: an in-process fake Docker daemon
"""

import hashlib
import io
import json
import re
import tarfile
import threading
import uuid
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qsl, unquote, urlsplit

import pytest

from docker_client import DockerClient

VERSION = {
    'ApiVersion': '1.41',
    'Arch': 'amd64',
    'GitCommit': 'a224086',
    'GoVersion': 'go1.13.15',
    'KernelVersion': '5.10.0',
    'Os': 'linux',
    'Version': '20.10.5',
}


def digest(text: str) -> str:
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def is_true(value) -> bool:
    return value in ('1', 'true', 'True')


class QuietServer(ThreadingHTTPServer):
    """Silences handler errors from clients that hung up mid-response"""
    
    def handle_error(self, request, client_address):
        pass


class FakeDaemon:
    """Minimal stateful stand-in for the Docker Engine API"""
    
    def __init__(self):
        self.lock = threading.Lock()
        self.images = {}
        self.containers = {}
        self.build_cache = set()
        self.requests = []
        self.wait_started = threading.Event()
        self.stream_paused = threading.Event()
        self.release_stream = threading.Event()
        self.stopping = threading.Event()
        self.server = QuietServer(('127.0.0.1', 0), make_handler(self))
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
    
    @property
    def url(self) -> str:
        host, port = self.server.server_address[:2]
        return f"tcp://{host}:{port}"
    
    def start(self):
        self.thread.start()
    
    def stop(self):
        self.stopping.set()
        self.release_stream.set()
        self.server.shutdown()
        self.server.server_close()
    
    def last_request(self, method, prefix):
        for entry in reversed(self.requests):
            if entry[0] == method and entry[1].startswith(prefix):
                return entry
        return None
    
    # Images
    
    def find_image(self, ref):
        ref = unquote(ref)
        candidates = [ref] if ':' in ref.split('/')[-1] else [ref, f"{ref}:latest"]
        for image in self.images.values():
            if image['Id'] == ref or image['Id'].startswith(ref) and len(ref) >= 12:
                return image, None
            for candidate in candidates:
                if candidate in image['RepoTags']:
                    return image, candidate
        return None, None
    
    def add_image(self, name, layers=2):
        image_id = digest(name)
        parents = [digest(f"{name}/{i}") for i in range(layers)]
        image = self.images.get(image_id)
        if image is None:
            image = {
                'Id': image_id,
                'Parent': parents[0] if parents else '',
                'Comment': '',
                'Created': '2014-10-01T20:46:08.914288461Z',
                'Container': digest(f"{name}/container"),
                'ContainerConfig': {'Image': name, 'Cmd': ['/bin/sh']},
                'DockerVersion': '1.3.0',
                'Author': 'Jerome Petazzoni',
                'Config': {'Image': name, 'Cmd': ['/bin/sh']},
                'Architecture': 'amd64',
                'Os': 'linux',
                'Size': 0,
                'RepoTags': [],
                'Layers': parents,
            }
            self.images[image_id] = image
        if name not in image['RepoTags']:
            image['RepoTags'].append(name)
        return image


def make_handler(daemon: FakeDaemon):
    
    class Handler(BaseHTTPRequestHandler):
        protocol_version = 'HTTP/1.1'
        
        def log_message(self, format, *args):
            pass
        
        # Plumbing
        
        def read_body(self) -> bytes:
            length = int(self.headers.get('Content-Length') or 0)
            return self.rfile.read(length) if length else b''
        
        def send_json(self, status, payload=None):
            body = b'' if payload is None else json.dumps(payload).encode('utf-8')
            self.send_response(status)
            if body:
                self.send_header('Content-Type', 'application/json')
            self.send_header('Content-Length', str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        
        def send_error_json(self, status, message):
            self.send_json(status, {'message': message})
        
        def start_stream(self):
            self.send_response(200)
            self.send_header('Content-Type', 'application/json')
            self.send_header('Transfer-Encoding', 'chunked')
            self.end_headers()
        
        def write_chunk(self, data: bytes):
            self.wfile.write(f"{len(data):x}\r\n".encode('ascii') + data + b"\r\n")
            self.wfile.flush()
        
        def write_message(self, message, separator=b''):
            # Split every message across two chunks
            data = json.dumps(message).encode('utf-8') + separator
            half = len(data) // 2
            self.write_chunk(data[:half])
            self.write_chunk(data[half:])
        
        def end_stream(self):
            self.wfile.write(b"0\r\n\r\n")
            self.wfile.flush()
        
        def dispatch(self, method):
            url = urlsplit(self.path)
            params = parse_qsl(url.query, keep_blank_values=True)
            body = self.read_body()
            with daemon.lock:
                daemon.requests.append((method, url.path, params))
            query = dict(params)
            for pattern, route_method, handler in ROUTES:
                if route_method != method:
                    continue
                match = re.match(pattern, url.path)
                if match:
                    handler(self, query, body, *[unquote(g) for g in match.groups()])
                    return
            self.send_error_json(404, f"page not found: {url.path}")
        
        def do_GET(self):
            self.dispatch('GET')
        
        def do_POST(self):
            self.dispatch('POST')
        
        def do_DELETE(self):
            self.dispatch('DELETE')
        
        # System
        
        def version(self, query, body):
            self.send_json(200, VERSION)
        
        def ping(self, query, body):
            payload = b'OK'
            self.send_response(200)
            self.send_header('Content-Type', 'text/plain')
            self.send_header('Content-Length', str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)
        
        # Images
        
        def pull(self, query, body):
            repository = query.get('fromImage', '')
            tag = query.get('tag') or 'latest'
            if repository == 'nonexistent':
                self.send_error_json(404, f"repository {repository} not found")
                return
            
            name = f"{repository}:{tag}"
            layers = [digest(f"{name}/{i}") for i in range(2)]
            self.start_stream()
            self.write_message({'status': f"Pulling repository {repository}"})
            
            if repository == 'slow':
                daemon.stream_paused.set()
                daemon.release_stream.wait(10)
                if daemon.stopping.is_set():
                    return
            
            for layer in layers:
                self.write_message({'status': 'Pulling fs layer', 'id': layer[:12],
                                    'progressDetail': {}})
                self.write_message({'status': 'Downloading', 'id': layer[:12],
                                    'progress': '[=====>    ] 1 B/2 B',
                                    'progressDetail': {'current': 1, 'total': 2}})
                if repository == 'broken':
                    self.write_message({'error': 'unexpected EOF',
                                        'errorDetail': {'message': 'unexpected EOF'}})
                    self.end_stream()
                    return
                self.write_message({'status': 'Download complete', 'id': layer[:12],
                                    'progressDetail': {}})
            with daemon.lock:
                daemon.add_image(name)
            self.write_message({'status': f"Status: Downloaded newer image for {name}"})
            self.end_stream()
        
        def inspect_image(self, query, body, name):
            with daemon.lock:
                image, _ = daemon.find_image(name)
                if image is None:
                    self.send_error_json(404, f"No such image: {name}")
                    return
                payload = {k: v for k, v in image.items() if k != 'Layers'}
            self.send_json(200, payload)
        
        def list_images(self, query, body):
            with daemon.lock:
                payload = [{'Id': image['Id'], 'RepoTags': list(image['RepoTags']),
                            'ParentId': image['Parent'], 'Size': 0, 'Created': 1412196368}
                           for image in daemon.images.values()]
            self.send_json(200, payload)
        
        def tag_image(self, query, body, name):
            with daemon.lock:
                image, _ = daemon.find_image(name)
                if image is None:
                    self.send_error_json(404, f"No such image: {name}")
                    return
                new_tag = f"{query['repo']}:{query.get('tag') or 'latest'}"
                if new_tag not in image['RepoTags']:
                    image['RepoTags'].append(new_tag)
            self.send_json(201)
        
        def remove_image(self, query, body, name):
            with daemon.lock:
                image, tag = daemon.find_image(name)
                if image is None:
                    self.send_error_json(404, f"No such image: {name}")
                    return
                removed = []
                tags = [tag] if tag else list(image['RepoTags'])
                for each in tags:
                    image['RepoTags'].remove(each)
                    removed.append({'Untagged': each})
                if not image['RepoTags']:
                    del daemon.images[image['Id']]
                    removed.append({'Deleted': image['Id']})
                    if not is_true(query.get('noprune')):
                        removed.extend({'Deleted': layer} for layer in image['Layers'])
            self.send_json(200, removed)
        
        def build(self, query, body):
            with tarfile.open(fileobj=io.BytesIO(body), mode='r') as tar:
                names = tar.getnames()
                dockerfile_name = query.get('dockerfile') or 'Dockerfile'
                if dockerfile_name not in names:
                    dockerfile = None
                else:
                    dockerfile = tar.extractfile(dockerfile_name).read().decode('utf-8')
            
            self.start_stream()
            if dockerfile is None:
                self.write_message({'error': 'Cannot locate specified Dockerfile: Dockerfile',
                                    'errorDetail': {'message': 'Cannot locate Dockerfile'}},
                                   b'\r\n')
                self.end_stream()
                return
            
            nocache = is_true(query.get('nocache'))
            remove = query.get('rm', 'true') != 'false'
            lines = [line.strip() for line in dockerfile.splitlines()
                     if line.strip() and not line.startswith('#')]
            key = ''
            for step, line in enumerate(lines, 1):
                self.write_message({'stream': f"Step {step} : {line}\n"}, b'\r\n')
                key = digest(key + line)
                if step == 1:
                    self.write_message({'stream': f" ---> {key[:12]}\n"}, b'\r\n')
                    continue
                with daemon.lock:
                    cached = key in daemon.build_cache
                    daemon.build_cache.add(key)
                if cached and not nocache:
                    self.write_message({'stream': " ---> Using cache\n"}, b'\r\n')
                else:
                    container = uuid.uuid4().hex[:12]
                    self.write_message({'stream': f" ---> Running in {container}\n"}, b'\r\n')
                    if remove:
                        self.write_message(
                            {'stream': f"Removing intermediate container {container}\n"},
                            b'\r\n')
                self.write_message({'stream': f" ---> {key[:12]}\n"}, b'\r\n')
            
            with daemon.lock:
                image = daemon.add_image(query.get('t') or key, layers=0)
                if not query.get('t'):
                    image['RepoTags'].clear()
            self.write_message({'stream': f"Successfully built {image['Id'][:12]}\n"}, b'\r\n')
            self.end_stream()
        
        # Containers
        
        def find_container(self, ref):
            for container in daemon.containers.values():
                if ref in (container['Id'], container['Name'], container['Name'].lstrip('/')):
                    return container
                if len(ref) >= 12 and container['Id'].startswith(ref):
                    return container
            return None
        
        def create_container(self, query, body):
            config = json.loads(body.decode('utf-8'))
            name = query.get('name')
            with daemon.lock:
                image, _ = daemon.find_image(config.get('Image', ''))
                if image is None:
                    self.send_error_json(404, f"No such image: {config.get('Image')}")
                    return
                if name and self.find_container(name) is not None:
                    self.send_error_json(
                        409, f'Conflict. The name "/{name}" is already in use')
                    return
                container_id = uuid.uuid4().hex + uuid.uuid4().hex
                daemon.containers[container_id] = {
                    'Id': container_id,
                    'Name': f"/{name or container_id[:12]}",
                    'Created': '2014-10-01T20:46:08.914288461Z',
                    'Path': (config.get('Cmd') or [''])[0],
                    'Args': (config.get('Cmd') or [''])[1:],
                    'Config': config,
                    'State': {'Running': False, 'ExitCode': 0, 'Pid': 0},
                    'Image': image['Id'],
                    'exited': threading.Event(),
                }
            self.send_json(201, {'Id': container_id, 'Warnings': None})
        
        def container_payload(self, container):
            return {k: v for k, v in container.items() if k != 'exited'}
        
        def inspect_container(self, query, body, ref):
            with daemon.lock:
                container = self.find_container(ref)
                payload = container and self.container_payload(container)
            if payload is None:
                self.send_error_json(404, f"No such container: {ref}")
                return
            self.send_json(200, payload)
        
        def list_containers(self, query, body):
            show_all = is_true(query.get('all'))
            with daemon.lock:
                payload = [{
                    'Id': container['Id'],
                    'Names': [container['Name']],
                    'Image': container['Config'].get('Image'),
                    'Command': ' '.join(container['Config'].get('Cmd') or []),
                    'Created': 1412196368,
                    'Status': 'Up' if container['State']['Running'] else 'Exited',
                } for container in daemon.containers.values()
                    if show_all or container['State']['Running']]
            self.send_json(200, payload)
        
        def start_container(self, query, body, ref):
            with daemon.lock:
                container = self.find_container(ref)
                if container is not None:
                    container['State'] = {'Running': True, 'ExitCode': 0, 'Pid': 4242}
            if container is None:
                self.send_error_json(404, f"No such container: {ref}")
                return
            self.send_json(204)
        
        def kill_container(self, query, body, ref):
            with daemon.lock:
                container = self.find_container(ref)
                running = container is not None and container['State']['Running']
                if running:
                    container['State'] = {'Running': False, 'ExitCode': 137, 'Pid': 0}
                    container['exited'].set()
            if container is None:
                self.send_error_json(404, f"No such container: {ref}")
            elif not running:
                self.send_error_json(409, f"Container {ref} is not running")
            else:
                self.send_json(204)
        
        def remove_container(self, query, body, ref):
            with daemon.lock:
                container = self.find_container(ref)
                if container is None:
                    status, message = 404, f"No such container: {ref}"
                elif container['State']['Running'] and not is_true(query.get('force')):
                    status, message = 409, "You cannot remove a running container"
                else:
                    del daemon.containers[container['Id']]
                    container['exited'].set()
                    status, message = 204, None
            if message:
                self.send_error_json(status, message)
            else:
                self.send_json(status)
        
        def wait_container(self, query, body, ref):
            with daemon.lock:
                container = self.find_container(ref)
            if container is None:
                self.send_error_json(404, f"No such container: {ref}")
                return
            daemon.wait_started.set()
            while not container['exited'].wait(0.05):
                if daemon.stopping.is_set():
                    return
            self.send_json(200, {'StatusCode': container['State']['ExitCode']})
    
    ROUTES = [
        (r'^/version$', 'GET', Handler.version),
        (r'^/_ping$', 'GET', Handler.ping),
        (r'^/images/create$', 'POST', Handler.pull),
        (r'^/images/json$', 'GET', Handler.list_images),
        (r'^/images/(.+)/json$', 'GET', Handler.inspect_image),
        (r'^/images/(.+)/tag$', 'POST', Handler.tag_image),
        (r'^/images/(.+)$', 'DELETE', Handler.remove_image),
        (r'^/build$', 'POST', Handler.build),
        (r'^/containers/create$', 'POST', Handler.create_container),
        (r'^/containers/json$', 'GET', Handler.list_containers),
        (r'^/containers/([^/]+)/json$', 'GET', Handler.inspect_container),
        (r'^/containers/([^/]+)/start$', 'POST', Handler.start_container),
        (r'^/containers/([^/]+)/kill$', 'POST', Handler.kill_container),
        (r'^/containers/([^/]+)/wait$', 'POST', Handler.wait_container),
        (r'^/containers/([^/]+)$', 'DELETE', Handler.remove_container),
    ]
    
    return Handler


@pytest.fixture
def daemon():
    fake = FakeDaemon()
    fake.start()
    yield fake
    fake.stop()


@pytest.fixture
def client(daemon):
    with DockerClient(daemon.url, timeout=5) as docker:
        yield docker


@pytest.fixture
def docker_directory(tmp_path):
    """Build context equivalent to a two-step Dockerfile"""
    context = tmp_path / 'dockerDirectory'
    context.mkdir()
    (context / 'Dockerfile').write_text('FROM busybox\nCMD ["echo", "hello"]\n')
    return context
