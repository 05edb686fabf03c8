import pytest
from unittest.mock import MagicMock

from bctop.stats import StatsSample


class FakeTarget:
    """In-memory ContainerManagement recording every call."""

    def __init__(self, ids=()):
        self.containers = {cid: None for cid in ids}
        self.calls = []
        self.logs = []
        self.watermark = None

    def upsert_container(self, container):
        self.calls.append(("upsert", container.id))
        self.containers[container.id] = container

    def remove_container(self, container_id):
        self.calls.append(("remove", container_id))
        self.containers.pop(container_id, None)

    def add_logs(self, lines, watermark):
        self.calls.append(("logs", len(lines)))
        self.logs.extend(lines)
        self.watermark = watermark

    def log_watermark(self):
        return self.watermark

    def container_ids(self):
        return list(self.containers)


def make_summary(cid, name=None, state="running", labels=None, image="nginx:latest"):
    return {
        'Id': cid,
        'Names': [f"/{name or cid}"],
        'Image': image,
        'State': state,
        'Labels': labels,
    }


def make_sample(cpu=200, precpu=100, system=2000, presystem=1000, cpus=2,
                usage=50 * 1024 * 1024, limit=100 * 1024 * 1024):
    return StatsSample(cpu, precpu, system, presystem, cpus, usage, limit)


@pytest.fixture
def fake_target():
    return FakeTarget()


@pytest.fixture
def backend():
    """DockerBackend stand-in whose blocking calls succeed by default."""
    mock = MagicMock()
    mock.list_containers.return_value = []
    mock.container_stats.return_value = make_sample()
    mock.container_logs.return_value = []
    mock.inspect_container.return_value = {'Id': 'abc', 'State': {'Status': 'running'}}
    return mock
