from bctop.model import (
    COMPOSE_PROJECT_LABEL, COMPOSE_SERVICE_LABEL, SWARM_SERVICE_LABEL, SWARM_STACK_LABEL,
    Container, ContainerStatus, Mode, ModeState,
)
from bctop.stats import StatsSample

from conftest import make_sample, make_summary


def test_status_parse_is_case_insensitive():
    assert ContainerStatus.parse("Exited") is ContainerStatus.EXITED
    assert ContainerStatus.parse("paused") is ContainerStatus.PAUSED


def test_status_parse_falls_back_to_running():
    assert ContainerStatus.parse("weird") is ContainerStatus.RUNNING
    assert ContainerStatus.parse(None) is ContainerStatus.RUNNING


def test_from_summary_strips_one_leading_slash():
    container = Container.from_summary(make_summary("abc123", name="web"), make_sample())
    assert container.name == "web"

    summary = make_summary("abc123")
    summary['Names'] = ["//odd"]
    assert Container.from_summary(summary, make_sample()).name == "/odd"


def test_from_summary_without_names_uses_short_id():
    summary = make_summary("0123456789abcdef")
    summary['Names'] = []
    container = Container.from_summary(summary, StatsSample.idle())
    assert container.name == "0123456789ab"


def test_from_summary_maps_stats_and_status():
    container = Container.from_summary(make_summary("abc", state="running"), make_sample())
    assert container.status is ContainerStatus.RUNNING
    assert container.cpu_usage_percent == 20.0
    assert container.memory_usage_bytes == 50 * 1024 * 1024
    assert container.memory_percent == 50.0


def test_from_summary_without_labels():
    container = Container.from_summary(make_summary("abc", labels=None), make_sample())
    assert container.swarm_service is None
    assert container.swarm_stack is None
    assert container.compose_service is None
    assert container.compose_project is None
    assert container.stack == ""
    assert container.service == ""


def test_swarm_labels_win_and_stack_prefix_is_removed():
    labels = {
        SWARM_STACK_LABEL: "shop",
        SWARM_SERVICE_LABEL: "shop_api",
        COMPOSE_PROJECT_LABEL: "ignored",
        COMPOSE_SERVICE_LABEL: "ignored",
    }
    container = Container.from_summary(make_summary("abc", labels=labels), make_sample())
    assert container.stack == "shop"
    assert container.service == "api"


def test_compose_labels_used_when_no_swarm():
    labels = {COMPOSE_PROJECT_LABEL: "blog", COMPOSE_SERVICE_LABEL: "db"}
    container = Container.from_summary(make_summary("abc", labels=labels), make_sample())
    assert container.stack == "blog"
    assert container.service == "db"


def test_memory_percent_without_limit():
    assert Container("a", "a", "img").memory_percent == 0.0


def test_mode_state_constructors():
    assert ModeState.monitoring().is_monitoring
    state = ModeState.logging("abc")
    assert state.is_logging and state.container_id == "abc"
    assert ModeState.exec_command("abc").mode is Mode.EXEC_COMMAND
    assert ModeState.inspecting("abc").is_inspecting
    assert ModeState.logging("abc") == ModeState.logging("abc")
