import asyncio
import logging
import os
import threading
from typing import Optional

import docker
from docker import errors

from pinas.config import config
from pinas.packages.errors import ContainerRuntimeError, ContainerRuntimeUnavailable
from pinas.packages.models import ContainerConfig

logger = logging.getLogger(__name__)

# Tried in order when DOCKER_HOST is not set or unreachable.
SOCKET_CANDIDATES = [
    "unix:///var/run/docker.sock",
    "unix:///storage/.pinas/docker/docker.sock",
    "unix:///run/docker.sock",
]

RESTART_POLICIES = {"no", "always", "unless-stopped", "on-failure"}


class DockerRuntime:
    """Container runtime adapter used by the container install steps.

    The daemon is probed once, on first use. When it cannot be reached every
    call raises ContainerRuntimeUnavailable instead of crashing the engine.
    """

    def __init__(self, client=None, stop_timeout: int = 10):
        self._client = client
        self._probed = client is not None
        self._unavailable_reason = ""
        self._probe_lock = threading.Lock()
        self.stop_timeout = stop_timeout

    def _probe(self):
        self._probed = True
        candidates = []
        if os.getenv("DOCKER_HOST"):
            candidates.append(None)
        candidates.extend(SOCKET_CANDIDATES)

        for base_url in candidates:
            try:
                if base_url is None:
                    client = docker.from_env()
                else:
                    client = docker.DockerClient(base_url=base_url)
                client.ping()
            except errors.DockerException as e:
                self._unavailable_reason = str(e)
                continue
            logger.info(f"Connected to Docker at {base_url or os.getenv('DOCKER_HOST')}")
            self._client = client
            return

        logger.warning(f"Docker daemon unreachable: {self._unavailable_reason}")

    @property
    def client(self):
        with self._probe_lock:
            if not self._probed:
                self._probe()
        if self._client is None:
            raise ContainerRuntimeUnavailable(self._unavailable_reason)
        return self._client

    def is_available(self) -> bool:
        try:
            self.client
        except ContainerRuntimeUnavailable:
            return False
        return True

    def _call(self, func, *args, **kwargs):
        return func(self.client, *args, **kwargs)

    async def _run(self, description: str, func, *args, **kwargs):
        # First use also probes the daemon.
        try:
            return await asyncio.to_thread(self._call, func, *args, **kwargs)
        except errors.DockerException as e:
            raise ContainerRuntimeError(f"{description} failed: {e}") from e

    async def pull(self, image: str):
        logger.info(f"Pulling Docker image: {image}")
        return await self._run(f"Pull of {image}", _pull_image, image)

    async def create(self, config: ContainerConfig, default_image: Optional[str] = None) -> str:
        image = config.image or default_image
        if not image:
            raise ContainerRuntimeError(f"Image is required to create container {config.name}")
        logger.info(f"Creating Docker container: {config.name}")
        return await self._run(
            f"Create of container {config.name}", _create_container, image, config
        )

    async def start(self, ref: str):
        logger.info(f"Starting Docker container: {ref}")
        await self._run(f"Start of container {ref}", _start_container, ref)

    async def stop(self, ref: str, timeout: Optional[int] = None):
        logger.info(f"Stopping Docker container: {ref}")
        grace = self.stop_timeout if timeout is None else timeout
        await self._run(f"Stop of container {ref}", _stop_container, ref, grace)

    async def remove(self, ref: str, force: bool = True):
        logger.info(f"Removing Docker container: {ref}")
        await self._run(f"Removal of container {ref}", _remove_container, ref, force)


def _pull_image(client, image: str):
    return client.images.pull(image)


def build_create_kwargs(config: ContainerConfig) -> dict:
    """Translate a manifest container config into docker SDK create() kwargs."""
    environment = [f"{item.name}={item.value}" for item in config.environment]

    port_bindings = {}
    for port in config.ports:
        port_bindings[f"{port.container}/{port.protocol}"] = ("0.0.0.0", port.host)

    volumes = {}
    for volume in config.volumes:
        volumes[volume.host] = {
            "bind": volume.container,
            "mode": "ro" if volume.readonly else "rw",
        }

    devices = []
    for device in config.devices:
        parts = device.split(":")
        host_path = parts[0]
        container_path = parts[1] if len(parts) > 1 and parts[1] else host_path
        devices.append(f"{host_path}:{container_path}:rwm")

    labels = dict(config.labels)
    labels["managed-by"] = "pinas"

    kwargs = {
        "name": config.name,
        "environment": environment,
        "ports": port_bindings,
        "volumes": volumes,
        "labels": labels,
        "privileged": config.privileged,
        "detach": True,
    }
    if devices:
        kwargs["devices"] = devices
    if config.hostname:
        kwargs["hostname"] = config.hostname
    if config.network:
        kwargs["network"] = config.network
    if config.restart:
        policy = config.restart if config.restart in RESTART_POLICIES else "no"
        kwargs["restart_policy"] = {"Name": policy}
    return kwargs


def _create_container(client, image: str, config: ContainerConfig) -> str:
    container = client.containers.create(image, **build_create_kwargs(config))
    return container.id


def _start_container(client, ref: str):
    client.containers.get(ref).start()


def _stop_container(client, ref: str, timeout: int):
    client.containers.get(ref).stop(timeout=timeout)


def _remove_container(client, ref: str, force: bool):
    client.containers.get(ref).remove(force=force)


_runtime: Optional[DockerRuntime] = None


def get_docker_runtime() -> DockerRuntime:
    """Process wide runtime, so the daemon is probed only once."""
    global _runtime
    if _runtime is None:
        _runtime = DockerRuntime(stop_timeout=config.container_stop_timeout)
    return _runtime
