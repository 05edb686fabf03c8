"""
Scroll-back log buffer and incremental log tailing.

LogBuffer holds the lines shown in the Logging, ExecCommand and Inspecting
views. Its scroll position is a reverse offset from the newest line: 0 means
the view follows the tail, n means the newest visible line is the n-th from
the end. New lines never move the view while the user is scrolled away from
the bottom.

LogTailEngine is the background task of the Logging mode: it repeatedly asks
the daemon for the lines produced since the buffer's watermark and hands
them to the application.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, List, Optional

if TYPE_CHECKING:
    from .backend import DockerBackend
    from .reconcile import ContainerManagement

logger = logging.getLogger(__name__)

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LogBuffer:
    lines: List[str] = field(default_factory=list)
    watermark: datetime = EPOCH
    position: int = 0
    search: Optional[str] = None
    # last line is still being written by a streamed source
    _open_line: bool = field(default=False, repr=False)

    def __len__(self) -> int:
        return len(self.lines)

    def append(self, new_lines: Iterable[str]) -> int:
        new_lines = list(new_lines)
        if not new_lines:
            return 0
        self.lines.extend(new_lines)
        self._open_line = False
        if self.position != 0:
            self.position += len(new_lines)
        return len(new_lines)

    def append_stream(self, text: str) -> int:
        """Append raw output, continuing an unterminated last line."""
        if not text:
            return 0
        pieces = text.splitlines(keepends=True)
        added = 0
        if self._open_line and self.lines:
            first = pieces.pop(0)
            self.lines[-1] += first.rstrip('\r\n')
            self._open_line = not first.endswith(('\n', '\r'))
        for piece in pieces:
            self.lines.append(piece.rstrip('\r\n'))
            self._open_line = not piece.endswith(('\n', '\r'))
            added += 1
        if self.position != 0:
            self.position += added
        return added

    def echo(self, text: str) -> None:
        """Show typed input inline after the last line (usually a prompt)."""
        stripped = text.rstrip('\r\n')
        if self.lines:
            self.lines[-1] += stripped
        else:
            self.lines.append(stripped)
        self._open_line = stripped == text

    def advance_watermark(self, ts: datetime) -> None:
        if ts > self.watermark:
            self.watermark = ts

    def scroll_up(self) -> None:
        if self.position + 1 < len(self.lines):
            self.position += 1

    def scroll_down(self) -> None:
        if self.position > 0:
            self.position -= 1

    @property
    def is_searching(self) -> bool:
        return self.search is not None

    def start_search(self) -> None:
        self.search = ""

    def type_search(self, char: str) -> None:
        if self.search is not None:
            self.search += char

    def erase_search(self) -> None:
        if self.search:
            self.search = self.search[:-1]

    def clear_search(self) -> None:
        self.search = None

    def find_next(self) -> bool:
        """Move to the next older line containing the needle (case-insensitive)."""
        if not self.search or not self.lines:
            return False
        needle = self.search.lower()
        older = list(reversed(self.lines))[self.position + 1:]
        for offset, line in enumerate(older):
            if needle in line.lower():
                self.position += offset + 1
                return True
        return False

    def visible(self, height: int) -> List[str]:
        """Lines of a viewport of the given height at the current position."""
        if height <= 0 or not self.lines:
            return []
        end = len(self.lines) - self.position
        start = max(0, end - height)
        return self.lines[start:end]

    def clear(self) -> None:
        self.lines = []
        self.position = 0
        self.search = None
        self.watermark = EPOCH
        self._open_line = False


class LogTailEngine:
    """Polls the daemon for log lines newer than the buffer watermark."""

    def __init__(self, backend: 'DockerBackend', target: 'ContainerManagement',
                 container_id: str, poll_interval: float = 1.0):
        self.backend = backend
        self.target = target
        self.container_id = container_id
        self.poll_interval = poll_interval

    async def tail_once(self) -> int:
        since = self.target.log_watermark()
        fetched_at = utcnow()
        lines = await asyncio.to_thread(self.backend.container_logs, self.container_id, since)
        if lines is None:
            logger.warning(f"Skipping log fetch for {self.container_id[:12]}")
            return 0
        self.target.add_logs(lines, fetched_at)
        return len(lines)

    async def run(self) -> None:
        logger.info(f"Tailing logs of {self.container_id[:12]}")
        while True:
            await self.tail_once()
            await asyncio.sleep(self.poll_interval)
