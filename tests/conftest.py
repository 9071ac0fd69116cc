# tests/conftest.py
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.config import Settings  # noqa: E402
from core.schemas import ImageRef, RunningInstance  # noqa: E402


# ---------------------------------------------------------------------------
# Never contact a real Docker daemon from unit tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def patch_docker_from_env(request):
    if request.node.get_closest_marker("integration"):
        yield
        return
    fake_client = MagicMock()
    with patch("docker.from_env", return_value=fake_client):
        yield fake_client


@pytest.fixture
def settings():
    return Settings(port_range_start=3000, port_range_end=3010)


# ---------------------------------------------------------------------------
# In-memory collaborators for the orchestrator
# ---------------------------------------------------------------------------
class FakeWorkspace:
    def __init__(self, path, revision):
        self.path = path
        self.revision = revision


class FakeRuntime:
    """Container runtime that keeps its state in a dict: id -> (ImageRef, port)."""

    def __init__(self):
        self.containers = {}
        self.built = []
        self.calls = []
        self._next = 0

    def start(self, image: ImageRef, port: int) -> str:
        self._next += 1
        cid = f"c{self._next:04d}"
        self.containers[cid] = (image, port)
        return cid

    def build_image(self, path, image):
        self.calls.append("build")
        self.built.append(image)
        return image.full

    def find_running(self, image_name):
        self.calls.append("find")
        return [
            RunningInstance(container_id=cid, host_port=port)
            for cid, (image, port) in reversed(list(self.containers.items()))
            if image.name == image_name
        ]

    def remove_container(self, container_id):
        self.calls.append("remove")
        self.containers.pop(container_id, None)

    def run_container(self, image, host_port, container_port=80):
        self.calls.append("run")
        return self.start(image, host_port)


@pytest.fixture
def fake_runtime():
    return FakeRuntime()
