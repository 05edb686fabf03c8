"""
Container reconciliation engine.

One reconciliation cycle:
  1. List all containers (running or not) from the daemon
  2. Remove every previously known id that is no longer listed
  3. Concurrently refresh each listed container: one stats sample for the
     running ones, merged with the list entry into a fresh Container record
     that is upserted into the target
  4. Join every refresh before sleeping

Removals of a cycle are applied before any of its refreshes starts, so a
container can never be both removed and updated in the same cycle.
Refreshes are independent and land in whatever order they finish.

Where updates land is abstracted by the ContainerManagement protocol, so the
engine works against any state holder (the Application in practice, simple
fakes in tests).
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set, TYPE_CHECKING

from .model import Container, ContainerStatus
from .stats import StatsSample

if TYPE_CHECKING:
    from .backend import DockerBackend

logger = logging.getLogger(__name__)


class ContainerManagement(Protocol):
    def upsert_container(self, container: Container) -> None: ...

    def remove_container(self, container_id: str) -> None: ...

    def add_logs(self, lines: List[str], watermark: datetime) -> None: ...

    def log_watermark(self) -> datetime: ...

    def container_ids(self) -> Iterable[str]: ...


class ReconciliationEngine:
    def __init__(self, backend: 'DockerBackend', target: ContainerManagement,
                 poll_interval: float = 1.0, max_concurrency: int = 16):
        self.backend = backend
        self.target = target
        self.poll_interval = poll_interval
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._alive_ids: Set[str] = set()

    async def run(self) -> None:
        logger.info("Container reconciliation started")
        while True:
            await self.reconcile_once()
            await asyncio.sleep(self.poll_interval)

    async def reconcile_once(self) -> None:
        summaries = await asyncio.to_thread(self.backend.list_containers, True)
        if summaries is None:
            logger.warning("Could not list containers, skipping cycle")
            return

        summaries = [s for s in summaries if s.get('Id')]
        listed_ids = {s['Id'] for s in summaries}

        stale = (self._alive_ids | set(self.target.container_ids())) - listed_ids
        if stale:
            logger.info(f"Containers to remove: {sorted(cid[:12] for cid in stale)}")
        for container_id in stale:
            self.target.remove_container(container_id)
        self._alive_ids = listed_ids

        # cancelling the gather cancels every pending refresh
        results = await asyncio.gather(
            *(self._refresh(summary) for summary in summaries),
            return_exceptions=True,
        )

        faults = [r for r in results if isinstance(r, Exception)]
        for fault in faults:
            logger.error("Error updating container", exc_info=fault)
        if faults:
            raise faults[0]

    async def _refresh(self, summary: Dict[str, Any]) -> Optional[Container]:
        container_id = summary['Id']
        async with self._semaphore:
            if ContainerStatus.parse(summary.get('State')) is ContainerStatus.RUNNING:
                sample = await asyncio.to_thread(self.backend.container_stats, container_id)
                if sample is None:
                    logger.error(f"Error getting stats for container: {container_id[:12]}")
                    return None
            else:
                sample = StatsSample.idle()

        container = Container.from_summary(summary, sample)
        self.target.upsert_container(container)
        return container
