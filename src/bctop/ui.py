"""
Text rendering for the Textual front-end.

Every function here is pure: it turns an AppSnapshot (plus the viewport
height where it matters) into a rich Text, so rendering is testable without a
terminal and the Textual app stays a thin shell.

Views:
  - render_containers(): monitoring table (status, id, service, cpu, mem, stack)
  - render_logs(): log / inspect viewport honouring the reverse scroll position,
    search matches highlighted
  - render_exec(): shell output with the pending command on the last line
  - render_status(): search prompt, status message and key help
  - render_title(): panel title for the active mode

Colors:
  - Status glyph: green running, yellow paused, red stopped/exited,
    grey created, bright green restarting, bright red removing
  - Memory column: usage bar proportional to the limit
"""

from typing import List, Optional

from rich.text import Text

from .logs import LogBuffer
from .model import AppSnapshot, Container, ContainerStatus
from .stats import format_bytes, summarize

STATUS_STYLES = {
    ContainerStatus.CREATED: "grey50",
    ContainerStatus.RUNNING: "green",
    ContainerStatus.PAUSED: "yellow",
    ContainerStatus.STOPPED: "red",
    ContainerStatus.EXITED: "red",
    ContainerStatus.RESTARTING: "bright_green",
    ContainerStatus.REMOVING: "bright_red",
    ContainerStatus.DEAD: "grey23",
}

HEADER = f"  {'ID':12}  {'SERVICE':20}  {'CPU%':>6}  {'MEM':24}  STACK"
MEM_WIDTH = 24
SEARCH_STYLE = "bold black on yellow"


def status_glyph(status: ContainerStatus) -> Text:
    return Text("●", style=STATUS_STYLES.get(status, "white"))


def _memory_cell(container: Container) -> Text:
    label = f"{format_bytes(container.memory_usage_bytes)} / {format_bytes(container.memory_limit_bytes)}"
    label = f"{label[:MEM_WIDTH]:{MEM_WIDTH}}"
    filled = int(min(container.memory_percent, 100.0) / 100.0 * MEM_WIDTH)
    cell = Text(label)
    if filled:
        cell.stylize("on dark_green", 0, filled)
    cell.stylize("on grey19", filled, MEM_WIDTH)
    return cell


def _container_row(container: Container, selected: bool) -> Text:
    name = container.service or container.name
    row = Text.assemble(
        status_glyph(container.status),
        " ",
        f"{container.short_id:12}  ",
        f"{name[:20]:20}  ",
        f"{container.cpu_usage_percent:6.1f}  ",
        _memory_cell(container),
        f"  {container.stack}",
    )
    if selected:
        row.stylize("reverse")
    return row


def render_summary(snapshot: AppSnapshot) -> str:
    totals = summarize(snapshot.containers)
    return (
        f"{totals['total']} containers, {totals['running']} running  "
        f"CPU {totals['total_cpu']:.1f}%  MEM {format_bytes(totals['total_memory'])}"
    )


def render_containers(snapshot: AppSnapshot, height: Optional[int] = None) -> Text:
    """Monitoring table; scrolls so that the selected row stays visible."""
    lines: List[Text] = [Text(HEADER, style="bold cyan"), Text(render_summary(snapshot), style="dim")]
    containers = snapshot.containers
    if not containers:
        lines.append(Text("(no containers)", style="dim"))
        return Text("\n").join(lines)

    rows = len(containers)
    start = 0
    if height is not None:
        rows = max(1, height - len(lines))
        if snapshot.selected_index is not None and snapshot.selected_index >= rows:
            start = snapshot.selected_index - rows + 1
    for index, container in enumerate(containers[start:start + rows], start=start):
        lines.append(_container_row(container, index == snapshot.selected_index))
    return Text("\n").join(lines)


def _viewport(snapshot: AppSnapshot, height: int) -> List[str]:
    return LogBuffer(lines=snapshot.logs, position=snapshot.log_position).visible(height)


def render_logs(snapshot: AppSnapshot, height: int) -> Text:
    """Log lines of the viewport, newest at the bottom unless scrolled."""
    lines = _viewport(snapshot, height)
    if not lines:
        return Text("(no logs yet)", style="dim")
    text = Text("\n".join(lines))
    if snapshot.search:
        text.highlight_words([snapshot.search], style=SEARCH_STYLE, case_sensitive=False)
    return text


def render_exec(snapshot: AppSnapshot, height: int) -> Text:
    """Shell transcript; the command being typed continues the last line."""
    lines = _viewport(snapshot, height) if height > 1 else []
    text = Text("\n".join(lines))
    if not lines:
        text = Text("")
    text.append(snapshot.exec_command, style="bold")
    text.append("█", style="blink")
    return text


def render_title(snapshot: AppSnapshot) -> str:
    mode = snapshot.mode
    target = (mode.container_id or "")[:12]
    if mode.is_logging:
        return f"Logs for {target}"
    if mode.is_exec_command:
        return f"Shell in {target}"
    if mode.is_inspecting:
        return f"Inspect {target}"
    return "Container Monitoring"


def render_status(snapshot: AppSnapshot, show_help: bool = True) -> Text:
    if snapshot.search is not None:
        return Text.assemble(("Search: ", "bold yellow"), snapshot.search, ("█", "blink"))
    parts = []
    if snapshot.message:
        parts.append((snapshot.message, "bold"))
    if show_help and snapshot.help_text:
        if parts:
            parts.append("  ")
        parts.append((snapshot.help_text, "dim"))
    return Text.assemble(*parts)
