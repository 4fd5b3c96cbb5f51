"""Instruction set of the VM.

The opcode enum is closed: every member owns one selector column in the
execution trace, one absorption code for the program hash, and an entry in
the stack-effect table. Flow opcodes are emitted by the trace generator only
and never appear inside a span.
"""

from enum import IntEnum
from typing import Dict, NamedTuple, Tuple

from primitives.field import GOLDILOCKS_PRIME


class OpCode(IntEnum):
    # --- user instructions ---
    NOOP = 0
    ASSERT = 1
    ASSERTEQ = 2
    PUSH = 3
    READ = 4
    READ2 = 5
    DUP = 6
    DUP2 = 7
    DUP4 = 8
    PAD2 = 9
    DROP = 10
    DROP4 = 11
    SWAP = 12
    SWAP2 = 13
    ROLL4 = 14
    CHOOSE = 15
    ADD = 16
    MUL = 17
    INV = 18
    NEG = 19
    NOT = 20
    AND = 21
    OR = 22
    EQ = 23
    RESCR = 24
    # --- flow instructions ---
    BEGIN = 25
    TEND = 26
    FEND = 27
    LOOP = 28
    WRAP = 29
    BREAK = 30
    SKIP = 31
    HACC = 32
    VOID = 33

    @property
    def is_user(self) -> bool:
        return self < OpCode.BEGIN

    @property
    def absorbs(self) -> bool:
        """True if the step feeds the program-hash accumulator."""
        return self.is_user or self is OpCode.HACC

    @property
    def code(self) -> int:
        """Absorption code bound into the program hash."""
        return int(self) + 1


NUM_OPCODES = len(OpCode)

USER_OPS: Tuple[OpCode, ...] = tuple(op for op in OpCode if op.is_user)
FLOW_OPS: Tuple[OpCode, ...] = tuple(op for op in OpCode if not op.is_user)
ABSORBING_OPS: Tuple[OpCode, ...] = tuple(op for op in OpCode if op.absorbs)

# Added to the accumulator before the child digests are merged in
SWITCH_TAG = (1 << 32) + 3
LOOP_TAG = (1 << 32) + 5

# Stack depth an op needs, and the change it makes to the depth
STACK_EFFECTS: Dict[OpCode, Tuple[int, int]] = {
    OpCode.NOOP: (0, 0),
    OpCode.ASSERT: (1, -1),
    OpCode.ASSERTEQ: (2, -2),
    OpCode.PUSH: (0, 1),
    OpCode.READ: (0, 1),
    OpCode.READ2: (0, 2),
    OpCode.DUP: (1, 1),
    OpCode.DUP2: (2, 2),
    OpCode.DUP4: (4, 4),
    OpCode.PAD2: (0, 2),
    OpCode.DROP: (1, -1),
    OpCode.DROP4: (4, -4),
    OpCode.SWAP: (2, 0),
    OpCode.SWAP2: (4, 0),
    OpCode.ROLL4: (4, 0),
    OpCode.CHOOSE: (3, -2),
    OpCode.ADD: (2, -1),
    OpCode.MUL: (2, -1),
    OpCode.INV: (1, 0),
    OpCode.NEG: (1, 0),
    OpCode.NOT: (1, 0),
    OpCode.AND: (2, -1),
    OpCode.OR: (2, -1),
    OpCode.EQ: (2, -1),
    OpCode.RESCR: (4, 0),
    OpCode.BEGIN: (1, 0),
    OpCode.TEND: (0, 0),
    OpCode.FEND: (0, 0),
    OpCode.LOOP: (1, 0),
    OpCode.WRAP: (1, 0),
    OpCode.BREAK: (1, -1),
    OpCode.SKIP: (1, -1),
    OpCode.HACC: (0, 0),
    OpCode.VOID: (0, 0),
}

assert set(STACK_EFFECTS) == set(OpCode)


class Instruction(NamedTuple):
    """One span entry. Only PUSH carries a non-zero immediate."""
    op: OpCode
    imm: int = 0

    def __str__(self) -> str:
        if self.op is OpCode.PUSH:
            return f"push.{self.imm}"
        return self.op.name.lower()


def parse_instruction(token: str) -> Instruction:
    """Parse a mnemonic such as 'add' or 'push.5' into an Instruction."""
    name, _, arg = token.strip().lower().partition(".")
    try:
        op = OpCode[name.upper()]
    except KeyError:
        raise ValueError(f"unknown instruction '{token}'") from None
    if op is OpCode.PUSH:
        if not arg:
            raise ValueError("push needs an immediate, e.g. push.5")
        return Instruction(op, int(arg, 0) % GOLDILOCKS_PRIME)
    if arg:
        raise ValueError(f"'{name}' takes no immediate")
    return Instruction(op)


TRUE_BRANCH_PREFIX: Tuple[Instruction, ...] = (Instruction(OpCode.ASSERT),)
FALSE_BRANCH_PREFIX: Tuple[Instruction, ...] = (Instruction(OpCode.NOT), Instruction(OpCode.ASSERT))
LOOP_BODY_PREFIX: Tuple[Instruction, ...] = (Instruction(OpCode.ASSERT),)
