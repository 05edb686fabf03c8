"""
Docker API wrapper and backend operations.

This module provides the only interface the rest of bctop has to the Docker
engine, via the docker-py library. It exposes exactly the operations the
dashboard needs:
  - Listing containers (including stopped ones) as raw summaries
  - One-shot resource statistics for a container
  - Incremental logs since a timestamp
  - Inspect, stop and pause/unpause
  - Creating and attaching an interactive exec session

All methods are blocking; async callers run them with asyncio.to_thread.

Key Classes:
  - DockerBackend: wrapper around one long-lived docker.DockerClient
  - ExecChannel: bidirectional text channel to an attached exec session

Error Handling:
  - Daemon errors, connection errors and malformed payloads are transient:
    @docker_safe logs them and returns a default value so that only the
    single operation is skipped
  - Anything else is a programming fault and propagates to the caller

Dependencies:
  - docker>=7.0.0 (docker-py client)
"""

import functools
import logging
import socket
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import docker
from docker.errors import DockerException

from .model import ContainerStatus
from .stats import StatsSample, parse_stats

logger = logging.getLogger(__name__)

# requests' connection errors derive from OSError, malformed payloads raise ValueError
TRANSIENT_ERRORS = (DockerException, OSError, ValueError)


def docker_safe(default_return: Any = None) -> Callable:
    """
    Decorator for Docker API methods that ensures safe error handling.

    Catches transient daemon errors, logs them, and returns a default value
    so one failed call never takes down a polling loop or the UI.

    Args:
        default_return: Value to return if a transient error occurs

    Usage:
        @docker_safe(default_return=None)
        def list_containers(self) -> Optional[List[dict]]:
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except TRANSIENT_ERRORS as e:
                logger.error(f"Docker operation failed in {func.__name__}: {e}", exc_info=True)
                return default_return
        return wrapper
    return decorator


class ExecChannel:
    """Text channel over the raw socket of an attached exec session."""

    def __init__(self, sock: Any, exec_id: str = ""):
        self.exec_id = exec_id
        self._wrapper = sock
        # docker-py hands back a SocketIO wrapper; writes need the real socket
        self._sock = getattr(sock, '_sock', sock)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, text: str) -> None:
        self._sock.sendall(text.encode('utf-8'))

    def recv(self, size: int = 4096) -> str:
        """Next chunk of remote output; empty string once the remote hung up."""
        data = self._sock.recv(size)
        return data.decode('utf-8', errors='replace')

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        for s in (self._sock, self._wrapper):
            try:
                s.close()
            except OSError as e:
                logger.debug(f"Error closing exec socket: {e}")


class DockerBackend:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None,
                 stop_timeout: int = 10):
        self.stop_timeout = stop_timeout
        kwargs: Dict[str, Any] = {}
        if timeout is not None:
            kwargs['timeout'] = timeout
        try:
            if base_url:
                self.client = docker.DockerClient(base_url=base_url, **kwargs)
            else:
                self.client = docker.from_env(**kwargs)
        except DockerException as e:
            logger.error(f"Could not connect to Docker daemon: {e}")
            self.client = None

    @property
    def connected(self) -> bool:
        return self.client is not None

    def close(self) -> None:
        if self.client is None:
            return
        try:
            self.client.close()
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Error closing Docker client: {e}")
        self.client = None

    @docker_safe(default_return=None)
    def list_containers(self, all: bool = True) -> Optional[List[Dict[str, Any]]]:
        if not self.client: return None
        return self.client.api.containers(all=all)

    @docker_safe(default_return=None)
    def container_stats(self, container_id: str) -> Optional[StatsSample]:
        if not self.client: return None
        payload = self.client.api.stats(container_id, stream=False)
        return parse_stats(payload)

    @docker_safe(default_return=None)
    def container_logs(self, container_id: str, since: Optional[datetime] = None,
                       tail: str = "all") -> Optional[List[str]]:
        if not self.client: return None
        kwargs: Dict[str, Any] = {
            'stdout': True,
            'stderr': True,
            'stream': False,
            'follow': False,
            'tail': tail,
        }
        if since is not None:
            kwargs['since'] = since
        raw = self.client.api.logs(container_id, **kwargs)
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8', errors='replace')
        return raw.splitlines()

    @docker_safe(default_return=None)
    def inspect_container(self, container_id: str) -> Optional[Dict[str, Any]]:
        if not self.client: return None
        return self.client.api.inspect_container(container_id)

    @docker_safe(default_return=None)
    def stop_container(self, container_id: str) -> None:
        """Stop a running container, remove an exited or created one."""
        if not self.client: return
        container = self.client.containers.get(container_id)
        status = ContainerStatus.parse(container.status)
        if status is ContainerStatus.RUNNING:
            container.stop(timeout=self.stop_timeout)
            logger.info(f"Stopped container {container_id[:12]}")
        elif status in (ContainerStatus.EXITED, ContainerStatus.CREATED):
            container.remove(force=True)
            logger.info(f"Removed container {container_id[:12]}")
        else:
            logger.warning(f"Container {container_id[:12]} in invalid status for stop: {container.status}")

    @docker_safe(default_return=None)
    def pause_container(self, container_id: str) -> None:
        """Pause a running container, unpause a paused one."""
        if not self.client: return
        container = self.client.containers.get(container_id)
        status = ContainerStatus.parse(container.status)
        if status is ContainerStatus.RUNNING:
            container.pause()
            logger.info(f"Paused container {container_id[:12]}")
        elif status is ContainerStatus.PAUSED:
            container.unpause()
            logger.info(f"Unpaused container {container_id[:12]}")
        else:
            logger.debug(f"Container {container_id[:12]} is not running or paused: {container.status}")

    @docker_safe(default_return=None)
    def open_exec(self, container_id: str, cmd: Sequence[str] = ("/bin/sh",)) -> Optional[ExecChannel]:
        if not self.client: return None
        exec_id = self.client.api.exec_create(
            container_id,
            list(cmd),
            stdout=True,
            stderr=True,
            stdin=True,
            tty=True,
        )['Id']
        sock = self.client.api.exec_start(exec_id, tty=True, socket=True)
        logger.info(f"Opened exec session {exec_id[:12]} in {container_id[:12]}")
        return ExecChannel(sock, exec_id)
