# core/engine.py
from typing import Any, List, Optional

from docker.errors import BuildError, DockerException, NotFound
from loguru import logger as default_logger

from core.errors import ImageBuildError, LaunchError, RuntimeQueryError
from core.network import parse_docker_port_mapping
from core.schemas import ImageRef, RunningInstance

MANAGED_BY = "easy-deploy"


def _build_output(e: BuildError) -> str:
    lines = []
    for chunk in e.build_log or []:
        if isinstance(chunk, dict):
            text = chunk.get("stream") or chunk.get("error") or ""
        else:
            text = str(chunk)
        if text:
            lines.append(text.rstrip("\n"))
    return "\n".join(lines)


def image_repository(reference: str) -> str:
    """Strip the tag or digest from an image reference, keeping a registry port."""
    reference = reference.split("@", 1)[0]
    head, sep, tail = reference.rpartition(":")
    if sep and "/" not in tail:
        return head
    return reference


def _started_from(container, image_name: str) -> bool:
    labels = getattr(container, "labels", None) or {}
    if labels.get("app") == image_name:
        return True
    attrs = getattr(container, "attrs", None) or {}
    reference = (attrs.get("Config") or {}).get("Image") or ""
    return image_repository(reference) == image_name


def _bound_port(container) -> int:
    port = parse_docker_port_mapping(getattr(container, "ports", None))
    if port is None:
        raise RuntimeQueryError(f"container {container.id} has no bound host port")
    return port


class ContainerEngine:
    """Builds images and manages containers through the Docker SDK."""

    def __init__(self, client: Optional[Any] = None, logger=None):
        self._client = client
        self.logger = (logger or default_logger).bind(component="engine")

    def _ensure_client(self):
        if self._client is None:
            import docker

            self._client = docker.from_env()
        return self._client

    @property
    def client(self):
        return self._ensure_client()

    @client.setter
    def client(self, value):
        self._client = value

    def build_image(self, path: str, image: ImageRef) -> str:
        tag = image.full
        self.logger.info(f"Building Docker image {tag}")
        try:
            self.client.images.build(path=path, tag=tag, rm=True)
        except BuildError as e:
            raise ImageBuildError(f"failed to build Docker image {tag}", output=_build_output(e)) from e
        except DockerException as e:
            raise ImageBuildError(f"failed to build Docker image {tag}", output=str(e)) from e
        self.logger.info(f"Docker image built {tag}")
        return tag

    def list_containers(self, image_name: str) -> List[Any]:
        """
        Running containers started from any tag of ``image_name``, newest first.

        The daemon's ``ancestor`` filter resolves a bare name to ``:latest``,
        which is never built here, so matching is done on the image reference
        each container was created from, or on the ``app`` label.
        """
        try:
            containers = self.client.containers.list(ignore_removed=True)
        except DockerException as e:
            raise RuntimeQueryError(
                f"failed to check if container is running for {image_name}", output=str(e)
            ) from e
        return [c for c in containers if _started_from(c, image_name)]

    def get_bound_port(self, container_id: str) -> int:
        try:
            container = self.client.containers.get(container_id)
        except DockerException as e:
            raise RuntimeQueryError(
                f"failed to get container port for {container_id}", output=str(e)
            ) from e
        return _bound_port(container)

    def find_running(self, image_name: str) -> List[RunningInstance]:
        # ports come from the listed objects; a second lookup could race an exit
        return [
            RunningInstance(container_id=c.id, host_port=_bound_port(c))
            for c in self.list_containers(image_name)
        ]

    def remove_container(self, container_id: str):
        self.logger.info(f"Removing container {container_id[:12]}")
        try:
            self.client.containers.get(container_id).remove(force=True)
        except NotFound:
            # already gone, which is the state we wanted
            self.logger.warning(f"Container {container_id[:12]} disappeared before removal")
        except DockerException as e:
            raise RuntimeQueryError(
                f"failed to remove container {container_id}", output=str(e)
            ) from e

    def run_container(self, image: ImageRef, host_port: int, container_port: int = 80) -> str:
        self.logger.info(f"Running Docker container {image.full} on port {host_port}")
        try:
            container = self.client.containers.run(
                image.full,
                detach=True,
                ports={f"{container_port}/tcp": host_port},
                labels={"app": image.name, "managed_by": MANAGED_BY},
            )
        except DockerException as e:
            raise LaunchError(f"failed to run Docker container {image.full}", output=str(e)) from e
        return container.id
