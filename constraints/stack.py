"""Operand stack constraints.

For each stack slot i the next value must match what the active opcode
produces:

    sum_op sel_op * (next_i - f_op,i) == 0

where f_op,i is a polynomial of degree at most 2 in the current row. Slots an
opcode fills from the secret tapes (READ, READ2) or with a value checked by a
side condition (INV) are left unconstrained by the sum. Side conditions
(assertions, binary operands, inverses, helper registers) are separate
constraints gated by their selector.
"""

from typing import Dict, List, Optional

from primitives.field import FF
from primitives.permutation import DIGEST_ELEMENTS, ROUND_CONSTANTS, matmul_m4
from program.graph import STACK_WIDTH
from program.opcodes import OpCode

from .base import ONE, ZERO, Constraint, ConstraintContext, ConstraintModule, FFPoly, fsum
from .decoder import selectors

_RC = [FF(c) for c in ROUND_CONSTANTS]

# Stack image per opcode; None marks an unconstrained slot
StackImage = List[Optional[FFPoly]]


def stack_images(s: List[FFPoly], imm: FFPoly, ctr: FFPoly, g: List[FFPoly]) -> Dict[OpCode, StackImage]:
    """Expected next-row stack for every opcode, given the current row."""

    def shift_left(n: int) -> StackImage:
        return s[n:] + [ZERO] * n

    def push(*values) -> StackImage:
        return list(values) + s[:STACK_WIDTH - len(values)]

    def binary_result(value: FFPoly) -> StackImage:
        return [value] + s[2:] + [ZERO]

    # RESCR round with helpers g = (b0^2, b0^3, b0^4)
    b = [s[0] + ctr + _RC[0], s[1] + _RC[1], s[2] + _RC[2], s[3] + _RC[3]]
    rescr = matmul_m4([g[1] * g[2], b[1], b[2], b[3]])

    same = list(s)
    return {
        OpCode.NOOP: same,
        OpCode.ASSERT: shift_left(1),
        OpCode.ASSERTEQ: shift_left(2),
        OpCode.PUSH: push(imm),
        OpCode.READ: push(None),
        OpCode.READ2: push(None, None),
        OpCode.DUP: push(s[0]),
        OpCode.DUP2: push(s[0], s[1]),
        OpCode.DUP4: push(s[0], s[1], s[2], s[3]),
        OpCode.PAD2: push(ZERO, ZERO),
        OpCode.DROP: shift_left(1),
        OpCode.DROP4: shift_left(4),
        OpCode.SWAP: [s[1], s[0]] + s[2:],
        OpCode.SWAP2: [s[2], s[3], s[0], s[1]] + s[4:],
        OpCode.ROLL4: [s[3], s[0], s[1], s[2]] + s[4:],
        OpCode.CHOOSE: [s[2] * s[0] + (ONE - s[2]) * s[1]] + s[3:] + [ZERO, ZERO],
        OpCode.ADD: binary_result(s[0] + s[1]),
        OpCode.MUL: binary_result(s[0] * s[1]),
        OpCode.INV: [None] + s[1:],
        OpCode.NEG: [-s[0]] + s[1:],
        OpCode.NOT: [ONE - s[0]] + s[1:],
        OpCode.AND: binary_result(s[0] * s[1]),
        OpCode.OR: binary_result(s[0] + s[1] - s[0] * s[1]),
        OpCode.EQ: binary_result(ONE - (s[0] - s[1]) * g[0]),
        OpCode.RESCR: rescr + s[DIGEST_ELEMENTS:],
        OpCode.BEGIN: same,
        OpCode.TEND: same,
        OpCode.FEND: same,
        OpCode.LOOP: same,
        OpCode.WRAP: same,
        OpCode.BREAK: shift_left(1),
        OpCode.SKIP: shift_left(1),
        OpCode.HACC: same,
        OpCode.VOID: same,
    }


class StackConstraints(ConstraintModule):
    """Stack slot transitions and per-opcode side conditions."""

    def evaluate(self, ctx: ConstraintContext) -> List[Constraint]:
        sel = selectors(ctx)
        s = ctx.cols("stack", STACK_WIDTH)
        t = ctx.next_cols("stack", STACK_WIDTH)
        g = ctx.cols("stack_aux", 3)
        ctr = ctx.col("ctr")
        images = stack_images(s, ctx.col("imm"), ctr, g)

        out: List[Constraint] = []
        for i in range(STACK_WIDTH):
            terms = [sel[op] * (t[i] - image[i]) for op, image in images.items() if image[i] is not None]
            out.append(Constraint(f"stack_{i}", 3, fsum(terms)))

        def gated(name: str, degree: int, op: OpCode, value: FFPoly) -> Constraint:
            return Constraint(name, degree, sel[op] * value)

        logic = sel[OpCode.AND] + sel[OpCode.OR]
        out.extend([
            gated("assert_one", 2, OpCode.ASSERT, s[0] - ONE),
            gated("asserteq", 2, OpCode.ASSERTEQ, s[0] - s[1]),
            gated("choose_binary", 3, OpCode.CHOOSE, s[2] * s[2] - s[2]),
            gated("inv", 3, OpCode.INV, t[0] * s[0] - ONE),
            gated("not_binary", 3, OpCode.NOT, s[0] * s[0] - s[0]),
            Constraint("logic_binary_0", 3, logic * (s[0] * s[0] - s[0])),
            Constraint("logic_binary_1", 3, logic * (s[1] * s[1] - s[1])),
            gated("eq_zero", 3, OpCode.EQ, (s[0] - s[1]) * t[0]),
        ])

        b0 = s[0] + ctr + _RC[0]
        out.extend([
            gated("rescr_sq", 3, OpCode.RESCR, g[0] - b0 * b0),
            gated("rescr_cube", 3, OpCode.RESCR, g[1] - g[0] * b0),
            gated("rescr_quad", 3, OpCode.RESCR, g[2] - g[0] * g[0]),
        ])

        # BREAK and SKIP consume a zero loop condition
        exits = sel[OpCode.BREAK] + sel[OpCode.SKIP]
        out.append(Constraint("loop_exit_zero", 2, exits * s[0]))
        return out
