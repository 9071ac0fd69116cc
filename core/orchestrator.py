# core/orchestrator.py
"""The deploy pipeline.

fetch -> validate -> build -> reconcile -> launch, strictly in that order.
The first failing stage raises and nothing after it runs; the workspace is
removed on every exit path.
"""
import threading
from contextlib import contextmanager
from typing import Dict

from loguru import logger as default_logger

from core.config import Settings
from core.engine import ContainerEngine
from core.git_manager import GitManager
from core.network import PortManager
from core.protocols import ContainerRuntime, PortAllocator, VersionControl
from core.schemas import DeployRequest, Deployment, ImageRef


class ProjectLocks:
    """One lock per image name, dropped once nobody holds or waits for it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self):
        return len(self._locks)

    @contextmanager
    def hold(self, name: str):
        with self._guard:
            lock = self._locks.setdefault(name, threading.Lock())
            self._users[name] = self._users.get(name, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[name] -= 1
                if not self._users[name]:
                    del self._users[name]
                    del self._locks[name]


class DeployOrchestrator:
    def __init__(
        self,
        settings: Settings,
        vcs: VersionControl,
        runtime: ContainerRuntime,
        ports: PortAllocator,
        logger=None,
    ):
        self.settings = settings
        self.vcs = vcs
        self.runtime = runtime
        self.ports = ports
        self.logger = (logger or default_logger).bind(component="orchestrator")
        self.locks = ProjectLocks()

    @classmethod
    def from_settings(cls, settings: Settings, logger=None) -> "DeployOrchestrator":
        logger = logger or default_logger
        return cls(
            settings,
            vcs=GitManager(
                prefix=settings.workspace_prefix,
                build_descriptor=settings.build_descriptor,
                logger=logger,
            ),
            runtime=ContainerEngine(logger=logger),
            ports=PortManager(settings.port_range_start, settings.port_range_end, logger=logger),
            logger=logger,
        )

    def deploy(self, request: DeployRequest) -> Deployment:
        log = self.logger.bind(repo_url=request.url)

        with self.vcs.workspace(request.url, branch=request.branch) as ws:
            self.vcs.validate(ws)

            image = ImageRef.from_url(request.url, ws.revision)
            log = log.bind(image=image.full)
            self.runtime.build_image(ws.path, image)

            with self.locks.hold(image.name):
                host_port, replaced = self._reconcile(image, log)
                container_id = self.runtime.run_container(
                    image, host_port, container_port=self.settings.container_port
                )

        log.bind(port=host_port, container_id=container_id).info(
            f"Successfully ran Docker container on port {host_port}"
        )
        return Deployment(
            host_port=host_port, image=image, container_id=container_id, replaced=replaced
        )

    def _reconcile(self, image: ImageRef, log):
        """Pick the host port for ``image`` and retire whatever is running under its name."""
        log.info("Checking if container is running")
        running = self.runtime.find_running(image.name)

        if not running:
            log.info("Container is not running, searching for free port")
            port = self.ports.find_free_port()
            log.bind(port=port).info(f"Found free port {port}")
            return port, []

        # newest first; it owns the port the new container inherits
        port = running[0].host_port
        if len(running) > 1:
            log.warning(
                f"{len(running)} containers running for {image.name}, keeping port {port}"
            )
        replaced = []
        for instance in running:
            log.bind(container_id=instance.container_id).info(
                f"Container is running on port {instance.host_port}"
            )
            self.runtime.remove_container(instance.container_id)
            replaced.append(instance.container_id)
        return port, replaced
