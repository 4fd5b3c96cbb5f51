"""Block kinds stored in a program arena.

Blocks refer to sub-blocks by arena index, never by object reference, so a
body may be shared and no ownership cycles can form.
"""

from dataclasses import dataclass
from typing import Tuple, Union

from program.opcodes import Instruction


@dataclass(frozen=True)
class Span:
    """Straight-line run of user instructions."""
    ops: Tuple[Instruction, ...]


@dataclass(frozen=True)
class Group:
    """Ordered sequence of sub-blocks, hashed and executed inline."""
    children: Tuple[int, ...]


@dataclass(frozen=True)
class Switch:
    """Two-way branch on the top of the stack: branches = (true, false)."""
    branches: Tuple[int, ...]

    @property
    def true_branch(self) -> int:
        return self.branches[0]

    @property
    def false_branch(self) -> int:
        return self.branches[1]


@dataclass(frozen=True)
class Loop:
    """Runs body while the top of the stack is 1; the body must push the next condition."""
    body: int


@dataclass(frozen=True)
class Repeat:
    """Runs body exactly count times; equivalent to count inline copies."""
    body: int
    count: int


Block = Union[Span, Group, Switch, Loop, Repeat]

CONTROL_BLOCKS = (Switch, Loop)
