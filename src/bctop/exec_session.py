"""
Interactive shell session inside a container.

The user types a command into a pending buffer; sending it echoes the
command into the log buffer and writes it to the remote shell. Everything
the shell prints is appended to the same buffer, except the shell's own
echo of the command just sent, which is dropped once.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .backend import DockerBackend, ExecChannel
    from .state import Application

logger = logging.getLogger(__name__)

EXIT_COMMAND = "exit"


class InboundKind(Enum):
    OUTPUT = "output"
    ECHO = "echo"
    EXIT = "exit"


@dataclass
class ExecSession:
    container_id: str
    channel: Optional['ExecChannel'] = None
    pending: str = ""
    last_sent: Optional[str] = None

    def type_char(self, char: str) -> None:
        self.pending += char

    def erase(self) -> None:
        self.pending = self.pending[:-1]

    def take_command(self) -> str:
        command = self.pending + "\n"
        self.last_sent = command
        self.pending = ""
        return command

    def classify(self, text: str) -> InboundKind:
        if self.last_sent is not None and text.strip() == self.last_sent.strip():
            self.last_sent = None
            return InboundKind.ECHO
        if text == EXIT_COMMAND:
            return InboundKind.EXIT
        return InboundKind.OUTPUT

    def close(self) -> None:
        if self.channel is not None:
            self.channel.close()


async def run_exec_session(backend: 'DockerBackend', target: 'Application',
                           session: ExecSession, shell: Sequence[str] = ("/bin/sh",)) -> None:
    """Background task of the ExecCommand mode."""
    channel = await asyncio.to_thread(backend.open_exec, session.container_id, shell)
    if channel is None:
        target.exec_ended(session, "Could not start a shell in the container")
        return
    if not target.attach_exec_channel(session, channel):
        channel.close()
        return
    try:
        while True:
            text = await asyncio.to_thread(channel.recv)
            if not text:
                logger.info(f"Exec session in {session.container_id[:12]} closed by remote")
                target.exec_ended(session)
                return
            if not target.receive_exec_output(session, text):
                return
    except OSError as e:
        logger.error(f"Exec session in {session.container_id[:12]} failed: {e}", exc_info=True)
        target.exec_ended(session, f"Shell connection lost: {e}")
    finally:
        channel.close()
