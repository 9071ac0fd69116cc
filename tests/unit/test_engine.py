"""Tests for ContainerEngine against a mocked Docker client."""
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, BuildError, NotFound

from core.engine import MANAGED_BY, ContainerEngine, image_repository
from core.errors import ImageBuildError, LaunchError, RuntimeQueryError
from core.schemas import ImageRef, RunningInstance

IMAGE = ImageRef(name="github.com/test/app", tag="abc1234")


@pytest.fixture
def mock_docker_client():
    client = MagicMock()
    client.containers.list.return_value = []
    client.images.build.return_value = (MagicMock(), iter([{"stream": "built"}]))
    return client


@pytest.fixture
def engine(mock_docker_client):
    return ContainerEngine(client=mock_docker_client)


def _container(cid, host_port, image="github.com/test/app:0ld0000", labels=None):
    c = MagicMock()
    c.id = cid
    c.ports = {"80/tcp": [{"HostIp": "0.0.0.0", "HostPort": str(host_port)}]}
    c.labels = labels or {}
    c.attrs = {"Config": {"Image": image}}
    return c


class TestDockerClient:
    def test_lazy_client_from_env(self, patch_docker_from_env):
        engine = ContainerEngine()
        assert engine.client is patch_docker_from_env

    def test_client_setter(self):
        engine = ContainerEngine()
        replacement = MagicMock()
        engine.client = replacement
        assert engine.client is replacement


class TestBuildImage:
    def test_build_image_success(self, engine):
        tag = engine.build_image("/path/to/app", IMAGE)

        engine.client.images.build.assert_called_once_with(
            path="/path/to/app", tag="github.com/test/app:abc1234", rm=True
        )
        assert tag == "github.com/test/app:abc1234"

    def test_build_error_keeps_log(self, engine):
        engine.client.images.build.side_effect = BuildError(
            "The command '/bin/sh -c make' returned a non-zero code: 2",
            [{"stream": "Step 1/2 : FROM nginx\n"}, {"error": "make: *** no rule"}],
        )

        with pytest.raises(ImageBuildError) as exc_info:
            engine.build_image("/path/to/app", IMAGE)

        assert exc_info.value.stage == "build"
        assert "Step 1/2" in exc_info.value.output
        assert "no rule" in exc_info.value.output

    def test_build_api_error(self, engine):
        engine.client.images.build.side_effect = APIError("daemon unavailable")

        with pytest.raises(ImageBuildError, match="daemon unavailable"):
            engine.build_image("/path/to/app", IMAGE)


class TestImageRepository:
    def test_strips_tag(self):
        assert image_repository("github.com/test/app:abc1234") == "github.com/test/app"

    def test_keeps_registry_port(self):
        assert image_repository("git.local:8443/g/p:abc1234") == "git.local:8443/g/p"
        assert image_repository("git.local:8443/g/p") == "git.local:8443/g/p"

    def test_strips_digest(self):
        assert image_repository("nginx@sha256:deadbeef") == "nginx"


class TestProbe:
    def test_lists_running_containers_without_ancestor_filter(self, engine):
        engine.list_containers("github.com/test/app")

        engine.client.containers.list.assert_called_once_with(ignore_removed=True)

    def test_find_running_none(self, engine):
        assert engine.find_running("github.com/test/app") == []

    def test_finds_container_of_previous_revision(self, engine):
        # built and started under an older tag than the revision being deployed
        old = _container("old456", 3000, image="github.com/test/app:0ld0000")
        engine.client.containers.list.return_value = [old]

        assert engine.find_running(IMAGE.name) == [
            RunningInstance(container_id="old456", host_port=3000)
        ]

    def test_matches_on_app_label(self, engine):
        c = _container("lbl123", 3003, image="sha256:1234abcd", labels={"app": IMAGE.name})
        engine.client.containers.list.return_value = [c]

        assert [r.container_id for r in engine.find_running(IMAGE.name)] == ["lbl123"]

    def test_ignores_other_images(self, engine):
        engine.client.containers.list.return_value = [
            _container("a", 3000, image="github.com/test/app-other:abc"),
            _container("b", 3001, image="github.com/test/app/sub:abc"),
            _container("c", 3002, image="nginx:latest"),
        ]

        assert engine.find_running(IMAGE.name) == []

    def test_find_running_reports_ports_in_order(self, engine):
        newer, older = _container("new123", 3001), _container("old456", 3000)
        engine.client.containers.list.return_value = [newer, older]

        assert engine.find_running("github.com/test/app") == [
            RunningInstance(container_id="new123", host_port=3001),
            RunningInstance(container_id="old456", host_port=3000),
        ]

    def test_find_running_does_not_look_containers_up_again(self, engine):
        engine.client.containers.list.return_value = [_container("old456", 3000)]
        engine.client.containers.get.side_effect = NotFound("No such container")

        assert engine.find_running(IMAGE.name) == [
            RunningInstance(container_id="old456", host_port=3000)
        ]
        engine.client.containers.get.assert_not_called()

    def test_find_running_unbound_port(self, engine):
        c = _container("old456", 3000)
        c.ports = {"80/tcp": None}
        engine.client.containers.list.return_value = [c]

        with pytest.raises(RuntimeQueryError, match="no bound host port"):
            engine.find_running(IMAGE.name)

    def test_list_failure(self, engine):
        engine.client.containers.list.side_effect = APIError("cannot connect")

        with pytest.raises(RuntimeQueryError, match="failed to check if container is running"):
            engine.find_running("github.com/test/app")


class TestContainerOperations:
    def test_remove_container(self, engine):
        mock_container = MagicMock()
        engine.client.containers.get.return_value = mock_container

        engine.remove_container("abc123")

        engine.client.containers.get.assert_called_with("abc123")
        mock_container.remove.assert_called_once_with(force=True)

    def test_remove_container_already_gone(self, engine):
        engine.client.containers.get.side_effect = NotFound("No such container")

        engine.remove_container("abc123")

    def test_remove_container_failure(self, engine):
        engine.client.containers.get.return_value.remove.side_effect = APIError("busy")

        with pytest.raises(RuntimeQueryError, match="failed to remove container"):
            engine.remove_container("abc123")

    def test_run_container(self, engine):
        engine.client.containers.run.return_value = MagicMock(id="new789")

        cid = engine.run_container(IMAGE, 3000, container_port=80)

        assert cid == "new789"
        engine.client.containers.run.assert_called_once_with(
            "github.com/test/app:abc1234",
            detach=True,
            ports={"80/tcp": 3000},
            labels={"app": "github.com/test/app", "managed_by": MANAGED_BY},
        )

    def test_run_container_failure(self, engine):
        engine.client.containers.run.side_effect = APIError("port is already allocated")

        with pytest.raises(LaunchError) as exc_info:
            engine.run_container(IMAGE, 3000)

        assert exc_info.value.stage == "launch"
        assert "already allocated" in exc_info.value.output


class TestGetBoundPort:
    def test_bound_port(self, engine):
        engine.client.containers.get.return_value = _container("abc123", 3004)

        assert engine.get_bound_port("abc123") == 3004

    def test_bound_port_missing(self, engine):
        c = _container("abc123", 3000)
        c.ports = {"80/tcp": None}
        engine.client.containers.get.return_value = c

        with pytest.raises(RuntimeQueryError, match="no bound host port"):
            engine.get_bound_port("abc123")

    def test_bound_port_lookup_failure(self, engine):
        engine.client.containers.get.side_effect = NotFound("No such container")

        with pytest.raises(RuntimeQueryError):
            engine.get_bound_port("abc123")
