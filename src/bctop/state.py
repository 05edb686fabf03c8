"""
Application state and the mode state machine.

This module owns everything the dashboard shows and every transition the user
can trigger, and keeps the single background task in step with the mode.

Architecture:
  - Application: thread-safe holder of the container list, selection, mode,
    log buffer and exec session, guarded by one RLock
  - Background tasks (one at a time, owned by a TaskSupervisor):
    - reconcile: ReconciliationEngine loop (Monitoring, Inspecting)
    - logs: LogTailEngine loop for the bound container (Logging)
    - exec: run_exec_session reader for the open shell (ExecCommand)
  - Side tasks: stop / pause requests run in worker threads so daemon I/O
    never blocks input handling

Thread Safety:
  - All mutation happens in synchronous methods under self._lock
  - The lock is never held across an await
  - Every mutation bumps a version counter; the UI re-renders on change

Mode Transitions:
  Monitoring --ShowLogs--> Logging --Quit--> Monitoring
  Monitoring --ExecCommand--> ExecCommand --Quit / remote exit--> Monitoring
  Monitoring --Inspect--> Inspecting --Quit--> Monitoring
"""

import asyncio
import json
import logging
import shlex
import threading
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from . import __version__
from .actions import Action, ActionRegistry, is_char, registry_for_mode
from .backend import DockerBackend, ExecChannel
from .config import EngineConfig
from .exec_session import ExecSession, InboundKind, run_exec_session
from .logs import EPOCH, LogBuffer, LogTailEngine, utcnow
from .model import AppReturn, AppSnapshot, Container, Mode, ModeState
from .reconcile import ReconciliationEngine
from .supervisor import TaskFactory, TaskSupervisor

logger = logging.getLogger(__name__)

RECONCILE_TASK = "reconcile"
LOGS_TASK = "logs"
EXEC_TASK = "exec"

EXIT_SEQUENCE = "exit\n"


class Application:
    """Shared dashboard state, updated by background tasks and user input."""

    def __init__(self, backend: DockerBackend, config: Optional[EngineConfig] = None,
                 bindings: Optional[Mapping[Action, Tuple[str, ...]]] = None):
        self.backend = backend
        self.config = config or EngineConfig()
        self.version_string = __version__

        # building every registry up front surfaces key conflicts at startup
        self._registries: Dict[Mode, ActionRegistry] = {
            mode: registry_for_mode(mode, bindings) for mode in Mode
        }
        bindings = bindings or {}
        self._erase_keys = tuple(bindings.get(Action.REMOVE, Action.REMOVE.keys))

        self._lock = threading.RLock()
        self._version = 0
        self._containers: List[Container] = []
        self._selected_id: Optional[str] = None
        self._mode = ModeState.monitoring()
        self._registry = self._registries[Mode.MONITORING]
        self._logs = LogBuffer()
        self._exec: Optional[ExecSession] = None
        self._message = ""

        self._supervisor = TaskSupervisor()
        self._engine = ReconciliationEngine(
            backend, self,
            poll_interval=self.config.poll_interval,
            max_concurrency=self.config.max_concurrent_refreshes,
        )
        self._side_tasks: Set[asyncio.Task] = set()
        self._closing = False

    # -- read access -------------------------------------------------------

    def get_version(self) -> int:
        with self._lock: return self._version

    def _inc_version(self) -> None:
        # Assumes lock is held
        self._version += 1

    @property
    def mode(self) -> ModeState:
        with self._lock: return self._mode

    @property
    def actions(self) -> ActionRegistry:
        with self._lock: return self._registry

    @property
    def help_text(self) -> str:
        with self._lock: return str(self._registry)

    @property
    def supervisor(self) -> TaskSupervisor:
        return self._supervisor

    def snapshot(self) -> AppSnapshot:
        """Consistent copy of the state for one render pass."""
        with self._lock:
            index = next(
                (i for i, c in enumerate(self._containers) if c.id == self._selected_id),
                None,
            )
            return AppSnapshot(
                mode=self._mode,
                containers=list(self._containers),
                selected_id=self._selected_id if index is not None else None,
                selected_index=index,
                help_text=str(self._registry),
                logs=list(self._logs.lines),
                log_position=self._logs.position,
                search=self._logs.search,
                exec_command=self._exec.pending if self._exec else "",
                message=self._message,
                version=self._version,
            )

    def set_message(self, message: str) -> None:
        with self._lock:
            self._message = message
            self._inc_version()

    # -- ContainerManagement -----------------------------------------------

    def upsert_container(self, container: Container) -> None:
        with self._lock:
            containers = [c for c in self._containers if c.id != container.id]
            containers.append(container)
            containers.sort(key=lambda c: c.name)
            self._containers = containers
            self._inc_version()

    def remove_container(self, container_id: str) -> None:
        with self._lock:
            remaining = [c for c in self._containers if c.id != container_id]
            if len(remaining) == len(self._containers):
                return
            self._containers = remaining
            if self._selected_id == container_id:
                self._selected_id = None
            self._inc_version()

    def add_logs(self, lines: List[str], watermark: datetime) -> None:
        with self._lock:
            # late results of a cancelled tail are dropped
            if not self._mode.is_logging:
                return
            if self._logs.append(lines):
                self._inc_version()
            self._logs.advance_watermark(watermark)

    def log_watermark(self) -> datetime:
        with self._lock: return self._logs.watermark

    def container_ids(self) -> Iterable[str]:
        with self._lock: return [c.id for c in self._containers]

    # -- exec session callbacks --------------------------------------------

    def attach_exec_channel(self, session: ExecSession, channel: ExecChannel) -> bool:
        with self._lock:
            if session is not self._exec:
                return False
            session.channel = channel
            self._message = f"Shell opened in {session.container_id[:12]}"
            self._inc_version()
            return True

    def receive_exec_output(self, session: ExecSession, text: str) -> bool:
        """Route shell output; False once the session is over."""
        with self._lock:
            if session is not self._exec or not self._mode.is_exec_command:
                return False
            kind = session.classify(text)
            if kind is InboundKind.ECHO:
                return True
            if kind is InboundKind.EXIT:
                self._leave_exec_locked("Shell exited")
                self._hand_off_to_reconcile()
                return False
            self._logs.append_stream(text)
            self._inc_version()
            return True

    def exec_ended(self, session: ExecSession, message: Optional[str] = None) -> None:
        with self._lock:
            if session is not self._exec:
                return
            self._leave_exec_locked(message or "Shell exited")
            self._hand_off_to_reconcile()

    def _leave_exec_locked(self, message: str) -> None:
        # Assumes lock is held; the exec task closes its own channel
        self._exec = None
        self._logs.clear()
        self._message = message
        self._set_mode_locked(ModeState.monitoring())

    def _hand_off_to_reconcile(self) -> None:
        """Replace the finished exec task with reconciliation."""
        task = asyncio.create_task(
            self._supervisor.ensure(self._task_for_mode), name="bctop-exec-handoff",
        )
        self._side_tasks.add(task)
        task.add_done_callback(self._on_side_task_done)

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        logger.info("Starting bctop application")
        await self._supervisor.switch_to(RECONCILE_TASK, self._engine.run)

    async def update_on_tick(self) -> AppReturn:
        """Restart the mode's background task if it is no longer running."""
        if await self._supervisor.ensure(self._task_for_mode):
            logger.info(f"Background task {self._supervisor.current_name} (re)started")
        return AppReturn.CONTINUE

    async def shutdown(self) -> None:
        logger.info("Shutting down bctop application")
        with self._lock:
            self._closing = True
            session = self._exec
            self._exec = None
        # closing first unblocks a reader thread stuck in recv
        if session is not None:
            session.close()
        await self._supervisor.stop()
        if self._side_tasks:
            await asyncio.gather(*self._side_tasks, return_exceptions=True)
        self.backend.close()

    def _task_for_mode(self) -> Optional[Tuple[str, TaskFactory]]:
        # runs under the supervisor's switch lock
        with self._lock:
            if self._closing:
                return None
            mode = self._mode
            session = self._exec
        if mode.is_exec_command:
            if self._supervisor.is_running(EXEC_TASK):
                return None
            if session is None:
                return None
            logger.warning("Exec task is gone, leaving the shell")
            with self._lock:
                if session is self._exec:
                    self._leave_exec_locked("Shell session ended")
            mode = ModeState.monitoring()
        if mode.is_monitoring or mode.is_inspecting:
            return RECONCILE_TASK, self._engine.run
        if mode.is_logging:
            return LOGS_TASK, self._log_tail_factory(mode.container_id)
        return None

    def _log_tail_factory(self, container_id: str) -> TaskFactory:
        engine = LogTailEngine(self.backend, self, container_id, self.config.log_poll_interval)
        return engine.run

    def _set_mode_locked(self, mode: ModeState) -> None:
        # Assumes lock is held
        self._mode = mode
        self._registry = self._registries[mode.mode]
        self._inc_version()

    # -- input -------------------------------------------------------------

    async def do_action(self, key: str) -> AppReturn:
        """Handle one decoded key press."""
        with self._lock:
            if self._logs.is_searching and is_char(key):
                self._logs.type_search(key)
                self._inc_version()
                return AppReturn.CONTINUE
            if self._mode.is_exec_command and self._exec is not None:
                if is_char(key):
                    self._exec.type_char(key)
                    self._inc_version()
                    return AppReturn.CONTINUE
                if key in self._erase_keys:
                    self._exec.erase()
                    self._inc_version()
                    return AppReturn.CONTINUE
            mode = self._mode.mode
            action = self._registry.find(key)

        if action is None:
            return AppReturn.CONTINUE
        logger.debug(f"Key {key!r} -> {action.name} in {mode.value}")

        if mode is Mode.MONITORING:
            return await self._on_monitoring(action)
        if mode is Mode.LOGGING:
            return await self._on_logging(action)
        if mode is Mode.EXEC_COMMAND:
            return await self._on_exec(action)
        return await self._on_inspecting(action)

    async def _on_monitoring(self, action: Action) -> AppReturn:
        if action is Action.QUIT:
            return AppReturn.EXIT
        if action is Action.NEXT:
            self._move_selection(1)
        elif action is Action.PREVIOUS:
            self._move_selection(-1)
        elif action is Action.SHOW_LOGS:
            await self._enter_logging()
        elif action is Action.EXEC_COMMAND:
            await self._enter_exec()
        elif action is Action.INSPECT:
            await self._enter_inspecting()
        elif action is Action.STOP_CONTAINER:
            self._dispatch_selected("stop", self.backend.stop_container, "Stopping")
        elif action is Action.PAUSE_CONTAINER:
            self._dispatch_selected("pause", self.backend.pause_container, "Pausing/unpausing")
        return AppReturn.CONTINUE

    async def _on_logging(self, action: Action) -> AppReturn:
        if action is Action.QUIT:
            with self._lock:
                searching = self._logs.is_searching
                if searching:
                    self._logs.clear_search()
                    self._inc_version()
            if not searching:
                await self._return_to_monitoring()
            return AppReturn.CONTINUE

        with self._lock:
            if action is Action.SCROLL_UP:
                self._logs.scroll_up()
            elif action is Action.SCROLL_DOWN:
                self._logs.scroll_down()
            elif action is Action.SEARCH:
                if not self._logs.is_searching:
                    self._logs.start_search()
                elif self._logs.search and not self._logs.find_next():
                    self._message = f"No older match for '{self._logs.search}'"
            elif action is Action.REMOVE:
                self._logs.erase_search()
            self._inc_version()
        return AppReturn.CONTINUE

    async def _on_exec(self, action: Action) -> AppReturn:
        if action is Action.SEND_COMMAND:
            await self._send_command()
        elif action is Action.QUIT:
            await self._quit_exec()
        return AppReturn.CONTINUE

    async def _on_inspecting(self, action: Action) -> AppReturn:
        if action is Action.QUIT:
            await self._return_to_monitoring()
            return AppReturn.CONTINUE
        with self._lock:
            if action is Action.SCROLL_UP:
                self._logs.scroll_up()
            elif action is Action.SCROLL_DOWN:
                self._logs.scroll_down()
            self._inc_version()
        return AppReturn.CONTINUE

    # -- monitoring helpers ------------------------------------------------

    def _move_selection(self, delta: int) -> None:
        with self._lock:
            if not self._containers:
                return
            ids = [c.id for c in self._containers]
            if self._selected_id not in ids:
                self._selected_id = ids[0]
            else:
                index = ids.index(self._selected_id) + delta
                self._selected_id = ids[min(max(index, 0), len(ids) - 1)]
            self._inc_version()

    def _selected_for_transition(self) -> Optional[str]:
        # Assumes lock is held
        if not self._mode.is_monitoring:
            return None
        if self._selected_id not in {c.id for c in self._containers}:
            return None
        return self._selected_id

    async def _enter_logging(self) -> None:
        with self._lock:
            container_id = self._selected_for_transition()
            if container_id is None:
                return
            self._logs.clear()
            backlog = self.config.log_backlog_seconds
            self._logs.watermark = EPOCH if backlog is None else utcnow() - timedelta(seconds=backlog)
            self._message = ""
            self._set_mode_locked(ModeState.logging(container_id))
        logger.info(f"Showing logs of {container_id[:12]}")
        await self._supervisor.switch_to(LOGS_TASK, self._log_tail_factory(container_id))

    async def _enter_exec(self) -> None:
        with self._lock:
            container_id = self._selected_for_transition()
            if container_id is None:
                return
            session = ExecSession(container_id)
            self._exec = session
            self._logs.clear()
            self._message = "Opening shell..."
            self._set_mode_locked(ModeState.exec_command(container_id))
        shell = tuple(shlex.split(self.config.exec_shell)) or ("/bin/sh",)
        logger.info(f"Opening {' '.join(shell)} in {container_id[:12]}")
        await self._supervisor.switch_to(
            EXEC_TASK, lambda: run_exec_session(self.backend, self, session, shell)
        )

    async def _enter_inspecting(self) -> None:
        with self._lock:
            container_id = self._selected_for_transition()
        if container_id is None:
            return
        document = await asyncio.to_thread(self.backend.inspect_container, container_id)
        with self._lock:
            if document is None:
                self._message = f"Could not inspect {container_id[:12]}"
                self._inc_version()
                return
            if not self._mode.is_monitoring:
                return
            self._logs.clear()
            self._logs.append(json.dumps(document, indent=2, default=str).splitlines())
            self._message = ""
            self._set_mode_locked(ModeState.inspecting(container_id))

    def _dispatch_selected(self, name: str, operation, verb: str) -> None:
        with self._lock:
            container = next((c for c in self._containers if c.id == self._selected_id), None)
            if container is None:
                return
            self._message = f"{verb} {container.name}..."
            self._inc_version()
        task = asyncio.create_task(
            asyncio.to_thread(operation, container.id),
            name=f"bctop-{name}-{container.short_id}",
        )
        self._side_tasks.add(task)
        task.add_done_callback(self._on_side_task_done)

    def _on_side_task_done(self, task: asyncio.Task) -> None:
        self._side_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Side task {task.get_name()} failed", exc_info=exc)
            self.set_message(f"Operation failed: {exc}")

    # -- leaving a mode ----------------------------------------------------

    async def _return_to_monitoring(self) -> None:
        with self._lock:
            self._logs.clear()
            self._message = ""
            self._set_mode_locked(ModeState.monitoring())
        await self._supervisor.switch_to(RECONCILE_TASK, self._engine.run)

    async def _send_command(self) -> None:
        with self._lock:
            session = self._exec
            if session is None:
                return
            if session.channel is None:
                self._message = "Shell is not ready yet"
                self._inc_version()
                return
            command = session.take_command()
            self._logs.echo(command)
            self._inc_version()
        try:
            await asyncio.to_thread(session.channel.send, command)
        except OSError as e:
            logger.error(f"Could not send command to {session.container_id[:12]}: {e}", exc_info=True)
            self.exec_ended(session, f"Shell connection lost: {e}")

    async def _quit_exec(self) -> None:
        with self._lock:
            session = self._exec
            self._exec = None
        if session is not None and session.channel is not None and not session.channel.closed:
            try:
                await asyncio.to_thread(session.channel.send, EXIT_SEQUENCE)
            except OSError as e:
                logger.warning(f"Could not send exit to {session.container_id[:12]}: {e}")
        if session is not None:
            session.close()
        await self._return_to_monitoring()
