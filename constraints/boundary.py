"""Boundary assertions binding the trace to the public statement."""

from dataclasses import dataclass
from typing import List, Sequence

from primitives.permutation import DIGEST_ELEMENTS
from program.graph import STACK_WIDTH
from witness.layout import CTX_WIDTH

FIRST_ROW = 0
LAST_ROW = -1


@dataclass(frozen=True)
class Assertion:
    """Column (name, index) must equal value at row (FIRST_ROW or LAST_ROW)."""
    name: str
    index: int
    row: int
    value: int


def boundary_assertions(
    public_inputs: Sequence[int],
    outputs: Sequence[int],
    program_digest: Sequence[int],
) -> List[Assertion]:
    """First row: inputs on the stack, cleared decoder. Last row: outputs and program hash."""
    stack = list(public_inputs) + [0] * (STACK_WIDTH - len(public_inputs))
    out = [Assertion("stack", i, FIRST_ROW, v) for i, v in enumerate(stack)]
    out += [Assertion("sponge", j, FIRST_ROW, 0) for j in range(DIGEST_ELEMENTS)]
    out.append(Assertion("ctr", 0, FIRST_ROW, 0))
    out += [Assertion("ctx", i, FIRST_ROW, 0) for i in range(CTX_WIDTH)]

    out += [Assertion("stack", i, LAST_ROW, v) for i, v in enumerate(outputs)]
    out += [Assertion("sponge", j, LAST_ROW, v) for j, v in enumerate(program_digest)]
    return out
