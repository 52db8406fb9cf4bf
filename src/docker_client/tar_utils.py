"""
TAR Archive utilities for Docker build contexts
"""

import fnmatch
import io
import logging
import os
import tarfile
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

DOCKERIGNORE = '.dockerignore'


def read_dockerignore(dir_path: str) -> List[Tuple[str, bool]]:
    """
    Read exclusion rules from a .dockerignore file
    
    Args:
        dir_path: Build context directory
        
    Returns:
        List of (pattern, is_exception) in file order; '!' marks an exception
    """
    ignore_path = os.path.join(dir_path, DOCKERIGNORE)
    if not os.path.isfile(ignore_path):
        return []
    
    rules = []
    with open(ignore_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            exception = line.startswith('!')
            if exception:
                line = line[1:].strip()
            pattern = os.path.normpath(line.lstrip('/')).replace(os.sep, '/')
            if pattern.startswith('./'):
                pattern = pattern[2:]
            rules.append((pattern, exception))
    return rules


def _match(parts: List[str], pattern: List[str]) -> bool:
    # Wildcards stay within one path segment; '**' spans any number of them
    if not pattern:
        return not parts
    if pattern[0] == '**':
        return any(_match(parts[i:], pattern[1:]) for i in range(len(parts) + 1))
    if not parts or not fnmatch.fnmatchcase(parts[0], pattern[0]):
        return False
    return _match(parts[1:], pattern[1:])


def is_excluded(rel_path: str, rules: List[Tuple[str, bool]]) -> bool:
    """
    Whether a context-relative path is excluded; the last matching rule wins
    and a rule matching a parent directory matches everything below it
    """
    parts = rel_path.split('/')
    prefixes = [parts[:i] for i in range(1, len(parts) + 1)]
    
    excluded = False
    for pattern, exception in rules:
        pattern_parts = pattern.split('/')
        if any(_match(prefix, pattern_parts) for prefix in prefixes):
            excluded = not exception
    return excluded


def create_build_context(dir_path: str, dockerfile: Optional[str] = None) -> bytes:
    """
    Create tar archive of a build context directory
    
    Paths are stored relative to dir_path. Files matched by .dockerignore are
    left out, except the Dockerfile and .dockerignore themselves.
    
    Args:
        dir_path: Build context directory
        dockerfile: Dockerfile path relative to dir_path (default: Dockerfile)
        
    Returns:
        Tar archive as bytes
    """
    if not os.path.isdir(dir_path):
        raise NotADirectoryError(f"Build context is not a directory: {dir_path}")
    
    rules = read_dockerignore(dir_path)
    always_included = {DOCKERIGNORE, (dockerfile or 'Dockerfile').replace(os.sep, '/')}
    
    tar_stream = io.BytesIO()
    count = 0
    with tarfile.open(fileobj=tar_stream, mode='w') as tar:
        for root, dirs, files in os.walk(dir_path):
            dirs.sort()
            for file in sorted(files):
                file_path = os.path.join(root, file)
                arcname = os.path.relpath(file_path, dir_path).replace(os.sep, '/')
                if arcname not in always_included and is_excluded(arcname, rules):
                    continue
                tar.add(file_path, arcname=arcname, recursive=False)
                count += 1
    
    logger.debug(f"Packed {count} files from {dir_path} into build context")
    return tar_stream.getvalue()
