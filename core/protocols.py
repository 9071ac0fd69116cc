"""Capabilities the orchestrator needs from its collaborators.

GitManager, ContainerEngine and PortManager are the stock implementations;
anything with the same methods can stand in for them.
"""
from contextlib import AbstractContextManager
from pathlib import Path
from typing import List, Optional, Protocol

from core.schemas import ImageRef, RunningInstance


class SourceWorkspace(Protocol):
    path: str
    revision: str


class VersionControl(Protocol):
    def workspace(
        self, repo_url: str, branch: Optional[str] = None
    ) -> AbstractContextManager[SourceWorkspace]: ...

    def validate(self, workspace: SourceWorkspace) -> Path: ...


class ContainerRuntime(Protocol):
    def build_image(self, path: str, image: ImageRef) -> str: ...

    def find_running(self, image_name: str) -> List[RunningInstance]: ...

    def remove_container(self, container_id: str) -> None: ...

    def run_container(self, image: ImageRef, host_port: int, container_port: int = 80) -> str: ...


class PortAllocator(Protocol):
    def find_free_port(self) -> int: ...
