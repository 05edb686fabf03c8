"""
Data models for bctop application state.

Data Classes:
  - Container: snapshot of one container (metadata + last stats sample)
  - ModeState: the active UI mode and the container it is bound to
  - AppSnapshot: read-only copy of the application state for rendering

Key Fields:
  - Container identity is its id; records are replaced wholesale on refresh
  - Grouping labels (swarm/compose) are optional, None when absent
  - Memory values are raw bytes, CPU is a percentage of one core * 100
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .stats import StatsSample, cpu_percent

SWARM_SERVICE_LABEL = 'com.docker.swarm.service.name'
SWARM_STACK_LABEL = 'com.docker.stack.namespace'
COMPOSE_SERVICE_LABEL = 'com.docker.compose.service'
COMPOSE_PROJECT_LABEL = 'com.docker.compose.project'


class ContainerStatus(Enum):
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    RESTARTING = "restarting"
    REMOVING = "removing"
    EXITED = "exited"
    DEAD = "dead"

    @classmethod
    def parse(cls, text: Optional[str]) -> 'ContainerStatus':
        """Map the daemon's state string; unknown values count as running."""
        try:
            return cls((text or "").strip().lower())
        except ValueError:
            return cls.RUNNING


@dataclass
class Container:
    id: str
    name: str
    image: str
    status: ContainerStatus = ContainerStatus.RUNNING
    cpu_usage_percent: float = 0.0
    memory_usage_bytes: int = 0
    memory_limit_bytes: int = 0
    swarm_service: Optional[str] = None
    swarm_stack: Optional[str] = None
    compose_service: Optional[str] = None
    compose_project: Optional[str] = None

    @property
    def short_id(self) -> str:
        return self.id[:12]

    @property
    def stack(self) -> str:
        return self.swarm_stack or self.compose_project or ""

    @property
    def service(self) -> str:
        service = self.swarm_service or self.compose_service or ""
        stack = self.stack
        if stack and service.startswith(f"{stack}_"):
            service = service[len(stack) + 1:]
        return service

    @property
    def memory_percent(self) -> float:
        if self.memory_limit_bytes <= 0:
            return 0.0
        return self.memory_usage_bytes / self.memory_limit_bytes * 100.0

    @classmethod
    def from_summary(cls, summary: Dict[str, Any], sample: StatsSample) -> 'Container':
        """Build a record from a container list entry and a stats sample."""
        container_id = summary['Id']
        names = summary.get('Names') or []
        if names:
            name = names[0]
            if name.startswith('/'):
                name = name[1:]
        else:
            name = container_id[:12]
        labels = summary.get('Labels') or {}

        return cls(
            id=container_id,
            name=name,
            image=summary.get('Image') or "",
            status=ContainerStatus.parse(summary.get('State')),
            cpu_usage_percent=cpu_percent(sample),
            memory_usage_bytes=sample.memory_usage,
            memory_limit_bytes=sample.memory_limit,
            swarm_service=labels.get(SWARM_SERVICE_LABEL),
            swarm_stack=labels.get(SWARM_STACK_LABEL),
            compose_service=labels.get(COMPOSE_SERVICE_LABEL),
            compose_project=labels.get(COMPOSE_PROJECT_LABEL),
        )


class Mode(Enum):
    MONITORING = "monitoring"
    LOGGING = "logging"
    EXEC_COMMAND = "exec_command"
    INSPECTING = "inspecting"


@dataclass(frozen=True)
class ModeState:
    mode: Mode = Mode.MONITORING
    container_id: Optional[str] = None

    @classmethod
    def monitoring(cls) -> 'ModeState':
        return cls(Mode.MONITORING)

    @classmethod
    def logging(cls, container_id: str) -> 'ModeState':
        return cls(Mode.LOGGING, container_id)

    @classmethod
    def exec_command(cls, container_id: str) -> 'ModeState':
        return cls(Mode.EXEC_COMMAND, container_id)

    @classmethod
    def inspecting(cls, container_id: str) -> 'ModeState':
        return cls(Mode.INSPECTING, container_id)

    @property
    def is_monitoring(self) -> bool:
        return self.mode is Mode.MONITORING

    @property
    def is_logging(self) -> bool:
        return self.mode is Mode.LOGGING

    @property
    def is_exec_command(self) -> bool:
        return self.mode is Mode.EXEC_COMMAND

    @property
    def is_inspecting(self) -> bool:
        return self.mode is Mode.INSPECTING


class AppReturn(Enum):
    EXIT = "exit"
    CONTINUE = "continue"


@dataclass
class AppSnapshot:
    mode: ModeState = field(default_factory=ModeState)
    containers: List[Container] = field(default_factory=list)
    selected_id: Optional[str] = None
    selected_index: Optional[int] = None
    help_text: str = ""
    logs: List[str] = field(default_factory=list)
    log_position: int = 0
    search: Optional[str] = None
    exec_command: str = ""
    message: str = ""
    version: int = 0
