"""
Container resource statistics.

This module turns the daemon's one-shot stats payload into a StatsSample
and derives the values shown in the container list.

CPU usage:
  The daemon reports cumulative tick counters for the container and for the
  whole host, both for the current read (cpu_stats) and the previous one
  (precpu_stats). The percentage is

      container_delta / system_delta * online_cpus * 100

  where container_delta saturates at 0 and a non-positive system_delta
  yields 0.0, so the result is never negative, NaN or a division by zero.

Memory usage:
  Taken as-is from memory_stats (usage and limit, in bytes).

A payload missing any of these counters aborts the refresh of that one
container; the caller sees MalformedStatsError.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable

logger = logging.getLogger(__name__)


class MalformedStatsError(ValueError):
    """Stats payload lacks a section the refresh cannot do without."""


@dataclass(frozen=True)
class StatsSample:
    cpu_total: int = 0
    precpu_total: int = 0
    system_total: int = 0
    presystem_total: int = 0
    online_cpus: int = 1
    memory_usage: int = 0
    memory_limit: int = 0

    @classmethod
    def idle(cls) -> 'StatsSample':
        """Sample used for containers that are not running."""
        return cls()


def _require(section: Dict[str, Any], key: str, where: str) -> int:
    value = section.get(key)
    if value is None:
        raise MalformedStatsError(f"Stats payload missing {where}.{key}")
    return int(value)


def parse_stats(payload: Dict[str, Any]) -> StatsSample:
    """Build a sample, raising MalformedStatsError when a counter is absent.

    Only online_cpus is optional: it falls back to the length of
    percpu_usage, then to 1.
    """
    if not isinstance(payload, dict):
        raise MalformedStatsError(f"Unexpected stats payload type: {type(payload).__name__}")

    cpu_stats = payload.get('cpu_stats')
    precpu_stats = payload.get('precpu_stats')
    memory_stats = payload.get('memory_stats')
    if cpu_stats is None or precpu_stats is None or memory_stats is None:
        raise MalformedStatsError("Stats payload missing cpu_stats, precpu_stats or memory_stats")
    cpu_usage = cpu_stats.get('cpu_usage') or {}
    precpu_usage = precpu_stats.get('cpu_usage') or {}
    online_cpus = cpu_stats.get('online_cpus') or len(cpu_usage.get('percpu_usage') or []) or 1

    return StatsSample(
        cpu_total=_require(cpu_usage, 'total_usage', 'cpu_stats.cpu_usage'),
        precpu_total=_require(precpu_usage, 'total_usage', 'precpu_stats.cpu_usage'),
        system_total=_require(cpu_stats, 'system_cpu_usage', 'cpu_stats'),
        presystem_total=_require(precpu_stats, 'system_cpu_usage', 'precpu_stats'),
        online_cpus=int(online_cpus),
        memory_usage=_require(memory_stats, 'usage', 'memory_stats'),
        memory_limit=_require(memory_stats, 'limit', 'memory_stats'),
    )


def cpu_percent(sample: StatsSample) -> float:
    container_delta = max(sample.cpu_total - sample.precpu_total, 0)
    system_delta = sample.system_total - sample.presystem_total
    if system_delta <= 0:
        return 0.0
    return container_delta / system_delta * sample.online_cpus * 100.0


def format_bytes(num_bytes: float) -> str:
    value = float(num_bytes)
    if value < 1024:
        return f"{int(value)}B"
    for unit in ("KiB", "MiB", "GiB"):
        value /= 1024
        if value < 1024 or unit == "GiB":
            return f"{value:.1f}{unit}"
    return f"{value:.1f}GiB"


def summarize(containers: Iterable[Any]) -> Dict[str, Any]:
    """Totals for the header line."""
    total = 0
    running = 0
    total_cpu = 0.0
    total_memory = 0
    for container in containers:
        total += 1
        if container.status.value == "running":
            running += 1
        total_cpu += container.cpu_usage_percent
        total_memory += container.memory_usage_bytes
    return {
        'total': total,
        'running': running,
        'total_cpu': total_cpu,
        'total_memory': total_memory,
    }
