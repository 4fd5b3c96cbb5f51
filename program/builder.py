"""Programmatic construction of a block arena.

    builder = ProgramBuilder()
    body = builder.span("swap dup2 drop add")
    builder.repeat(body, 49)
    program = builder.build()
"""

from typing import Iterable, List, Optional, Union

from program.blocks import Block, Group, Loop, Repeat, Span, Switch
from program.graph import Program, build
from program.opcodes import Instruction, OpCode, parse_instruction

InstructionLike = Union[Instruction, OpCode, str]


def to_instructions(ops: Union[str, Iterable[InstructionLike]]) -> List[Instruction]:
    """Accept a whitespace-separated mnemonic string or a mix of Instructions, OpCodes and mnemonics."""
    if isinstance(ops, str):
        ops = ops.split()
    result = []
    for op in ops:
        if isinstance(op, Instruction):
            result.append(op)
        elif isinstance(op, OpCode):
            result.append(Instruction(op))
        else:
            result.append(parse_instruction(op))
    return result


class ProgramBuilder:
    """Appends blocks to an arena and returns their indices."""

    def __init__(self) -> None:
        self.blocks: List[Block] = []

    def _add(self, block: Block) -> int:
        self.blocks.append(block)
        return len(self.blocks) - 1

    def span(self, ops: Union[str, Iterable[InstructionLike]]) -> int:
        return self._add(Span(tuple(to_instructions(ops))))

    def group(self, *children: int) -> int:
        return self._add(Group(tuple(children)))

    def switch(self, true_branch: int, false_branch: int) -> int:
        return self._add(Switch((true_branch, false_branch)))

    def loop(self, body: int) -> int:
        return self._add(Loop(body))

    def repeat(self, body: int, count: int) -> int:
        return self._add(Repeat(body, count))

    def build(self, root: Optional[int] = None) -> Program:
        return build(self.blocks, root)
