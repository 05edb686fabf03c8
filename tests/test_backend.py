import socket
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, DockerException, NotFound

from bctop.backend import DockerBackend, ExecChannel, docker_safe
from bctop.stats import StatsSample


@pytest.fixture
def mock_docker(mocker):
    mock_client = MagicMock()
    mocker.patch("bctop.backend.docker.from_env", return_value=mock_client)
    return mock_client


def stats_payload():
    return {
        'cpu_stats': {'cpu_usage': {'total_usage': 300}, 'system_cpu_usage': 2000, 'online_cpus': 1},
        'precpu_stats': {'cpu_usage': {'total_usage': 100}, 'system_cpu_usage': 1000},
        'memory_stats': {'usage': 10, 'limit': 100},
    }


def test_docker_safe_returns_default_on_transient_errors():
    @docker_safe(default_return="fallback")
    def failing(exc):
        raise exc

    assert failing(DockerException("down")) == "fallback"
    assert failing(ConnectionError("refused")) == "fallback"
    assert failing(ValueError("bad json")) == "fallback"


def test_docker_safe_propagates_genuine_faults():
    @docker_safe(default_return=None)
    def failing():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        failing()


def test_unreachable_daemon(mocker):
    mocker.patch("bctop.backend.docker.from_env", side_effect=DockerException("no socket"))
    backend = DockerBackend()
    assert not backend.connected
    assert backend.list_containers() is None
    assert backend.container_stats("abc") is None
    assert backend.open_exec("abc") is None
    backend.close()


def test_explicit_host_uses_docker_client(mocker):
    client_cls = mocker.patch("bctop.backend.docker.DockerClient")
    from_env = mocker.patch("bctop.backend.docker.from_env")
    backend = DockerBackend(base_url="tcp://10.0.0.1:2375", timeout=5)
    client_cls.assert_called_once_with(base_url="tcp://10.0.0.1:2375", timeout=5)
    from_env.assert_not_called()
    assert backend.connected


def test_list_containers(mock_docker):
    mock_docker.api.containers.return_value = [{'Id': 'abc'}]
    assert DockerBackend().list_containers() == [{'Id': 'abc'}]
    mock_docker.api.containers.assert_called_once_with(all=True)


def test_list_containers_failure_is_none(mock_docker):
    mock_docker.api.containers.side_effect = APIError("500")
    assert DockerBackend().list_containers() is None


def test_container_stats(mock_docker):
    mock_docker.api.stats.return_value = stats_payload()
    sample = DockerBackend().container_stats("abc")
    assert sample == StatsSample(300, 100, 2000, 1000, 1, 10, 100)
    mock_docker.api.stats.assert_called_once_with("abc", stream=False)


def test_malformed_stats_is_none(mock_docker):
    mock_docker.api.stats.return_value = {'memory_stats': {}}
    assert DockerBackend().container_stats("abc") is None


def test_container_logs_since(mock_docker):
    mock_docker.api.logs.return_value = b"first\nsecond \xff\n"
    since = datetime(2024, 5, 1, tzinfo=timezone.utc)

    lines = DockerBackend().container_logs("abc", since)

    assert lines == ["first", "second \ufffd"]
    kwargs = mock_docker.api.logs.call_args.kwargs
    assert kwargs['since'] == since
    assert kwargs['stdout'] and kwargs['stderr']
    assert kwargs['follow'] is False


def test_stop_running_container(mock_docker):
    container = MagicMock(status="running")
    mock_docker.containers.get.return_value = container
    DockerBackend(stop_timeout=3).stop_container("abc")
    container.stop.assert_called_once_with(timeout=3)
    container.remove.assert_not_called()


@pytest.mark.parametrize("status", ["exited", "created"])
def test_stop_removes_finished_container(mock_docker, status):
    container = MagicMock(status=status)
    mock_docker.containers.get.return_value = container
    DockerBackend().stop_container("abc")
    container.remove.assert_called_once_with(force=True)
    container.stop.assert_not_called()


def test_stop_ignores_other_states(mock_docker):
    container = MagicMock(status="restarting")
    mock_docker.containers.get.return_value = container
    DockerBackend().stop_container("abc")
    container.stop.assert_not_called()
    container.remove.assert_not_called()


def test_stop_missing_container_is_handled(mock_docker):
    mock_docker.containers.get.side_effect = NotFound("gone")
    assert DockerBackend().stop_container("abc") is None


def test_pause_toggles(mock_docker):
    running = MagicMock(status="running")
    paused = MagicMock(status="paused")
    exited = MagicMock(status="exited")
    mock_docker.containers.get.side_effect = [running, paused, exited]
    backend = DockerBackend()

    backend.pause_container("a")
    backend.pause_container("b")
    backend.pause_container("c")

    running.pause.assert_called_once()
    paused.unpause.assert_called_once()
    exited.pause.assert_not_called()
    exited.unpause.assert_not_called()


def test_open_exec(mock_docker):
    raw = MagicMock()
    mock_docker.api.exec_create.return_value = {'Id': 'exec1234567890'}
    mock_docker.api.exec_start.return_value = raw

    channel = DockerBackend().open_exec("abc", ("/bin/bash",))

    assert isinstance(channel, ExecChannel)
    assert channel.exec_id == 'exec1234567890'
    args, kwargs = mock_docker.api.exec_create.call_args
    assert args == ("abc", ["/bin/bash"])
    assert kwargs['stdin'] and kwargs['tty']
    mock_docker.api.exec_start.assert_called_once_with('exec1234567890', tty=True, socket=True)


def test_exec_channel_round_trip():
    sock = MagicMock()
    wrapper = MagicMock(_sock=sock)
    sock.recv.side_effect = [b"hello\r\n", b""]
    channel = ExecChannel(wrapper)

    channel.send("ls\n")
    assert channel.recv() == "hello\r\n"
    assert channel.recv() == ""

    sock.sendall.assert_called_once_with(b"ls\n")


def test_exec_channel_close_is_idempotent():
    sock = MagicMock(spec=socket.socket)
    sock.shutdown.side_effect = OSError("not connected")
    channel = ExecChannel(sock)

    channel.close()
    channel.close()

    assert channel.closed
    sock.shutdown.assert_called_once_with(socket.SHUT_RDWR)
    assert sock.close.call_count == 2  # wrapper and socket are the same object here


def test_close_closes_client(mock_docker):
    backend = DockerBackend()
    backend.close()
    mock_docker.close.assert_called_once()
    assert not backend.connected
