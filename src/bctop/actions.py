"""
Logical user actions and the per-mode key registry.

Every key press coming from the front-end is a decoded key name, using the
same vocabulary as Textual: a printable character is the character itself
("q", "/", "G") and special keys are names ("enter", "escape", "backspace",
"up", "ctrl+c").

An ActionRegistry is the set of actions valid in one mode. Building one
verifies that no key triggers two actions; a conflict is a startup error.
"""

from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .model import Mode


class KeyConflictError(Exception):
    """Raised when two actions of one registry share a trigger key."""


class Action(Enum):
    QUIT = ("Quit", ("q", "ctrl+c", "escape"))
    SHOW_LOGS = ("Show Logs", ("l", "enter"))
    EXEC_COMMAND = ("Exec CMD", ("e",))
    SEND_COMMAND = ("Send CMD", ("enter",))
    NEXT = ("Next", ("down", "n", "right"))
    PREVIOUS = ("Previous", ("up", "left"))
    SCROLL_UP = ("Scroll Up", ("up",))
    SCROLL_DOWN = ("Scroll Down", ("down",))
    SEARCH = ("Search", ("/", "enter"))
    REMOVE = ("Remove", ("backspace",))
    STOP_CONTAINER = ("Stop Container", ("s",))
    PAUSE_CONTAINER = ("Pause Container", ("p",))
    INSPECT = ("Inspect", ("i",))

    def __init__(self, label: str, keys: Tuple[str, ...]):
        self.label = label
        self.keys = keys

    @property
    def config_name(self) -> str:
        """Name used for this action in the keybindings config section."""
        return self.name.lower()

    @classmethod
    def from_config_name(cls, name: str) -> Optional['Action']:
        try:
            return cls[name.strip().upper()]
        except KeyError:
            return None


MODE_ACTIONS: Dict[Mode, Tuple[Action, ...]] = {
    Mode.MONITORING: (
        Action.QUIT,
        Action.SHOW_LOGS,
        Action.EXEC_COMMAND,
        Action.NEXT,
        Action.PREVIOUS,
        Action.STOP_CONTAINER,
        Action.PAUSE_CONTAINER,
        Action.INSPECT,
    ),
    Mode.LOGGING: (
        Action.QUIT,
        Action.SCROLL_UP,
        Action.SCROLL_DOWN,
        Action.SEARCH,
        Action.REMOVE,
    ),
    Mode.EXEC_COMMAND: (
        Action.QUIT,
        Action.SEND_COMMAND,
    ),
    Mode.INSPECTING: (
        Action.QUIT,
        Action.SCROLL_UP,
        Action.SCROLL_DOWN,
    ),
}

_KEY_NAMES = {
    "enter": "Enter",
    "escape": "Esc",
    "backspace": "Backspace",
    "up": "Up",
    "down": "Down",
    "left": "Left",
    "right": "Right",
    "tab": "Tab",
    "space": "Space",
}


def is_char(key: str) -> bool:
    """True for keys that carry a single printable character."""
    return len(key) == 1 and key.isprintable()


def key_label(key: str) -> str:
    """Short label for the help bar: 'q', '<Enter>', '<Ctrl+C>'."""
    if is_char(key):
        return key
    if key.startswith("ctrl+"):
        return f"<Ctrl+{key[5:].upper()}>"
    return f"<{_KEY_NAMES.get(key, key.title())}>"


class ActionRegistry:
    """Ordered set of the actions valid in one mode."""

    def __init__(self, actions: Iterable[Action],
                 bindings: Optional[Mapping[Action, Tuple[str, ...]]] = None):
        self._actions: Tuple[Action, ...] = tuple(actions)
        bindings = bindings or {}
        self._keys: Dict[Action, Tuple[str, ...]] = {
            action: tuple(bindings.get(action, action.keys)) for action in self._actions
        }

        by_key: Dict[str, List[Action]] = {}
        for action in self._actions:
            for key in self._keys[action]:
                by_key.setdefault(key, []).append(action)

        conflicts = [
            f"Conflict key {key_label(key)} with actions "
            + ", ".join(action.label for action in actions)
            for key, actions in by_key.items()
            if len(actions) > 1
        ]
        if conflicts:
            raise KeyConflictError("; ".join(conflicts))

    @property
    def actions(self) -> Tuple[Action, ...]:
        return self._actions

    def keys_for(self, action: Action) -> Tuple[str, ...]:
        return self._keys.get(action, ())

    def find(self, key: str) -> Optional[Action]:
        """First action, in construction order, triggered by key."""
        for action in self._actions:
            if key in self._keys[action]:
                return action
        return None

    def __contains__(self, action: object) -> bool:
        return action in self._keys

    def __str__(self) -> str:
        parts = []
        for action in self._actions:
            keys = self._keys[action]
            primary = key_label(keys[0]) if keys else "-"
            parts.append(f"{primary} {action.label}")
        return " | ".join(parts)

    def __repr__(self) -> str:
        return f"ActionRegistry({[a.name for a in self._actions]})"


def registry_for_mode(mode: Mode,
                      bindings: Optional[Mapping[Action, Tuple[str, ...]]] = None) -> ActionRegistry:
    return ActionRegistry(MODE_ACTIONS[mode], bindings)


def validate_bindings(bindings: Optional[Mapping[Action, Tuple[str, ...]]] = None) -> None:
    """Build every mode's registry once so conflicts surface at startup."""
    for mode in Mode:
        registry_for_mode(mode, bindings)
