"""Lexical environments stored in an arena.

Frames live in a flat list and refer to their parent by index, so closures
over a defining scope are plain integers and no parent/child object cycles
exist. Variables, user functions and user modules are separate namespaces,
as in OpenSCAD.

Example:
    >>> arena = EnvironmentArena()
    >>> root = arena.root
    >>> arena.assign(root, "a", 1.0)
    >>> child = arena.push(root)
    >>> arena.lookup(child, "a")
    1.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

_MISSING = object()


@dataclass
class Frame:
    """One scope: bindings plus the index of the enclosing frame."""

    parent: int | None
    variables: dict[str, Any] = field(default_factory=dict)
    functions: dict[str, Any] = field(default_factory=dict)
    modules: dict[str, Any] = field(default_factory=dict)


class EnvironmentArena:
    """Owns every frame created during one evaluation."""

    def __init__(self) -> None:
        self.frames: list[Frame] = [Frame(parent=None)]

    @property
    def root(self) -> int:
        return 0

    def push(self, parent: int) -> int:
        """Create a child frame of ``parent`` and return its index."""
        self.frames.append(Frame(parent=parent))
        return len(self.frames) - 1

    def assign(self, env: int, name: str, value: Any) -> None:
        """Bind ``name`` in ``env`` only; never writes to an enclosing frame."""
        self.frames[env].variables[name] = value

    def lookup(self, env: int, name: str, default: Any = _MISSING) -> Any:
        """Resolve a variable innermost-first.

        Raises:
            KeyError: If the name is unbound and no default is given.
        """
        index: int | None = env
        while index is not None:
            frame = self.frames[index]
            if name in frame.variables:
                return frame.variables[name]
            index = frame.parent
        if default is _MISSING:
            raise KeyError(name)
        return default

    def define_function(self, env: int, name: str, definition: Any) -> None:
        self.frames[env].functions[name] = definition

    def define_module(self, env: int, name: str, definition: Any) -> None:
        self.frames[env].modules[name] = definition

    def find_function(self, env: int, name: str) -> Any | None:
        return self._find(env, name, "functions")

    def find_module(self, env: int, name: str) -> Any | None:
        return self._find(env, name, "modules")

    def _find(self, env: int, name: str, namespace: str) -> Any | None:
        index: int | None = env
        while index is not None:
            frame = self.frames[index]
            table = getattr(frame, namespace)
            if name in table:
                return table[name]
            index = frame.parent
        return None
