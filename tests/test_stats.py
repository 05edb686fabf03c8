import pytest

from bctop.model import Container, ContainerStatus
from bctop.stats import MalformedStatsError, StatsSample, cpu_percent, format_bytes, parse_stats, summarize


def payload(**overrides):
    data = {
        'cpu_stats': {
            'cpu_usage': {'total_usage': 400, 'percpu_usage': [200, 200]},
            'system_cpu_usage': 4000,
        },
        'precpu_stats': {
            'cpu_usage': {'total_usage': 200},
            'system_cpu_usage': 2000,
        },
        'memory_stats': {'usage': 1024, 'limit': 4096},
    }
    data.update(overrides)
    return data


def test_parse_stats():
    sample = parse_stats(payload())
    assert sample == StatsSample(400, 200, 4000, 2000, 2, 1024, 4096)


def test_online_cpus_preferred_over_percpu_list():
    data = payload()
    data['cpu_stats']['online_cpus'] = 8
    assert parse_stats(data).online_cpus == 8


def test_online_cpus_default_to_one():
    data = payload()
    del data['cpu_stats']['cpu_usage']['percpu_usage']
    assert parse_stats(data).online_cpus == 1


@pytest.mark.parametrize("section, key", [
    ('cpu_stats', 'system_cpu_usage'),
    ('precpu_stats', 'system_cpu_usage'),
    ('memory_stats', 'usage'),
    ('memory_stats', 'limit'),
])
def test_missing_counter_is_malformed(section, key):
    data = payload()
    del data[section][key]
    with pytest.raises(MalformedStatsError, match=key):
        parse_stats(data)


def test_missing_previous_cpu_total_is_malformed():
    data = payload()
    data['precpu_stats']['cpu_usage'] = {}
    with pytest.raises(MalformedStatsError):
        parse_stats(data)


@pytest.mark.parametrize("broken", [
    {'cpu_stats': None},
    {'memory_stats': None},
    {'precpu_stats': None},
    {'cpu_stats': {'cpu_usage': {}}},
])
def test_malformed_payload(broken):
    with pytest.raises(MalformedStatsError):
        parse_stats(payload(**broken))


def test_malformed_stats_is_a_value_error():
    assert issubclass(MalformedStatsError, ValueError)


def test_cpu_percent():
    assert cpu_percent(parse_stats(payload())) == 20.0


def test_cpu_percent_without_system_progress_is_zero():
    assert cpu_percent(StatsSample(500, 100, 1000, 1000, 4)) == 0.0
    assert cpu_percent(StatsSample(500, 100, 900, 1000, 4)) == 0.0
    assert cpu_percent(StatsSample.idle()) == 0.0


def test_cpu_percent_never_negative():
    assert cpu_percent(StatsSample(100, 500, 2000, 1000, 1)) == 0.0


def test_format_bytes():
    assert format_bytes(512) == "512B"
    assert format_bytes(1536) == "1.5KiB"
    assert format_bytes(12 * 1024 * 1024) == "12.0MiB"
    assert format_bytes(int(1.25 * 1024 ** 3)) == "1.2GiB"
    assert format_bytes(3 * 1024 ** 4) == "3072.0GiB"


def test_summarize():
    containers = [
        Container("a", "a", "img", ContainerStatus.RUNNING, 10.0, 100),
        Container("b", "b", "img", ContainerStatus.EXITED, 0.0, 0),
        Container("c", "c", "img", ContainerStatus.RUNNING, 5.5, 50),
    ]
    assert summarize(containers) == {
        'total': 3,
        'running': 2,
        'total_cpu': 15.5,
        'total_memory': 150,
    }
