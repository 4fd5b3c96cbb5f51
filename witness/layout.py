"""Fixed column layout of the execution trace.

Columns are addressed by (group name, index), the same keys the constraint
modules use through ConstraintContext.
"""

from typing import Dict, List, Tuple

from primitives.permutation import DIGEST_ELEMENTS
from program.graph import MAX_NESTING_DEPTH, STACK_WIDTH
from program.opcodes import NUM_OPCODES

# Context registers per control nesting level: parent accumulator + one digest
CTX_LEVEL_WIDTH = 2 * DIGEST_ELEMENTS
CTX_WIDTH = CTX_LEVEL_WIDTH * MAX_NESTING_DEPTH
AUX_WIDTH = 3

ColumnKey = Tuple[str, int]

COLUMN_GROUPS: List[Tuple[str, int]] = [
    ("op", NUM_OPCODES),            # one-hot opcode selectors
    ("stack", STACK_WIDTH),         # operand stack, index 0 is the top
    ("sponge", DIGEST_ELEMENTS),    # program-hash accumulator
    ("ctr", 1),                     # round counter of the accumulator
    ("imm", 1),                     # immediate / absorbed value
    ("ctx", CTX_WIDTH),             # saved accumulators and sibling digests
    ("sponge_aux", AUX_WIDTH),      # a0^2, a0^3, a0^4 of the accumulator round
    ("stack_aux", AUX_WIDTH),       # RESCR round helpers, EQ inverse
]


class TraceLayout:
    """Maps (group, index) keys to trace column numbers."""

    def __init__(self, groups: List[Tuple[str, int]] = COLUMN_GROUPS) -> None:
        self.groups = list(groups)
        self.offsets: Dict[str, int] = {}
        self.sizes: Dict[str, int] = {}
        offset = 0
        for name, size in self.groups:
            self.offsets[name] = offset
            self.sizes[name] = size
            offset += size
        self.width = offset

    def index(self, name: str, i: int = 0) -> int:
        if not 0 <= i < self.sizes[name]:
            raise IndexError(f"column {name}[{i}] out of range")
        return self.offsets[name] + i

    def keys(self) -> List[ColumnKey]:
        return [(name, i) for name, size in self.groups for i in range(size)]


LAYOUT = TraceLayout()
TRACE_WIDTH = LAYOUT.width
