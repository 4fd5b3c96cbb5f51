"""Decoder constraints: opcode selectors, program-hash accumulator, context registers.

Every row carries one active selector. Absorbing opcodes (user instructions
and HACC) advance the accumulator by one algebraic round over
(sponge + (code, imm, 0, 0)); flow opcodes move digests between the
accumulator and the context registers as the trace generator does.

Notation in this module: s = sponge, x = ctx, h = sponge_aux, primes denote
the next row.
"""

from typing import Dict, List

from primitives.field import FF
from primitives.permutation import DIGEST_ELEMENTS, ROUND_CONSTANTS, matmul_m4
from program.opcodes import ABSORBING_OPS, LOOP_TAG, SWITCH_TAG, OpCode
from witness.layout import CTX_LEVEL_WIDTH, CTX_WIDTH

from .base import ONE, ZERO, Constraint, ConstraintContext, ConstraintModule, FFPoly, fsum

_RC = [FF(c) for c in ROUND_CONSTANTS]
_SWITCH_TAG = FF(SWITCH_TAG)
_LOOP_TAG = FF(LOOP_TAG)


def selectors(ctx: ConstraintContext) -> Dict[OpCode, FFPoly]:
    return {op: ctx.col("op", int(op)) for op in OpCode}


class DecoderConstraints(ConstraintModule):
    """Selector, accumulator, counter and context-register transitions."""

    def evaluate(self, ctx: ConstraintContext) -> List[Constraint]:
        sel = selectors(ctx)
        out: List[Constraint] = []
        out.extend(self._selector_constraints(sel))

        s = ctx.cols("sponge", DIGEST_ELEMENTS)
        s_next = ctx.next_cols("sponge", DIGEST_ELEMENTS)
        x = ctx.cols("ctx", CTX_WIDTH)
        x_next = ctx.next_cols("ctx", CTX_WIDTH)
        ctr = ctx.col("ctr")
        ctr_next = ctx.next_col("ctr")
        imm = ctx.col("imm")
        h = ctx.cols("sponge_aux", 3)

        absorbing = fsum([sel[op] for op in ABSORBING_OPS])
        code = fsum([sel[op] * op.code for op in ABSORBING_OPS])

        # Round input and S-box helpers: h = (a0^2, a0^3, a0^4)
        a0 = s[0] + code + ctr + _RC[0]
        a1 = s[1] + imm + _RC[1]
        a2 = s[2] + _RC[2]
        a3 = s[3] + _RC[3]
        out.append(Constraint("sponge_sq", 3, absorbing * (h[0] - a0 * a0)))
        out.append(Constraint("sponge_cube", 3, absorbing * (h[1] - h[0] * a0)))
        out.append(Constraint("sponge_quad", 3, absorbing * (h[2] - h[0] * h[0])))
        rounded = matmul_m4([h[1] * h[2], a1, a2, a3])

        out.extend(self._sponge_constraints(sel, absorbing, s, s_next, x, rounded))
        out.append(self._counter_constraint(sel, absorbing, ctr, ctr_next))

        # Loop body image must match the digest saved when the loop was entered
        closing = sel[OpCode.WRAP] + sel[OpCode.BREAK]
        for j in range(DIGEST_ELEMENTS):
            out.append(Constraint(f"loop_image_{j}", 2, closing * (s[j] - x[j])))

        out.append(Constraint("hacc_imm", 2, sel[OpCode.HACC] * (imm - x[0])))
        out.extend(self._context_constraints(sel, s, x, x_next))
        return out

    @staticmethod
    def _selector_constraints(sel: Dict[OpCode, FFPoly]) -> List[Constraint]:
        out = [Constraint(f"sel_{op.name.lower()}_binary", 2, sel[op] * sel[op] - sel[op]) for op in OpCode]
        out.append(Constraint("sel_one_hot", 1, fsum(list(sel.values())) - ONE))
        return out

    @staticmethod
    def _sponge_constraints(sel, absorbing, s, s_next, x, rounded) -> List[Constraint]:
        half = DIGEST_ELEMENTS
        restart = sel[OpCode.BEGIN] + sel[OpCode.LOOP] + sel[OpCode.WRAP]
        switch_end = sel[OpCode.TEND] + sel[OpCode.FEND]
        out = []
        for j in range(DIGEST_ELEMENTS):
            switch_tag = _SWITCH_TAG if j == 0 else ZERO
            loop_tag = _LOOP_TAG if j == 0 else ZERO
            parent = x[half + j]
            value = fsum([
                absorbing * (s_next[j] - rounded[j]),
                restart * s_next[j],
                switch_end * (s_next[j] - parent - switch_tag),
                sel[OpCode.BREAK] * (s_next[j] - parent - loop_tag),
                sel[OpCode.SKIP] * (s_next[j] - s[j] - loop_tag),
                sel[OpCode.VOID] * (s_next[j] - s[j]),
            ])
            out.append(Constraint(f"sponge_{j}", 3, value))
        return out

    @staticmethod
    def _counter_constraint(sel, absorbing, ctr, ctr_next) -> Constraint:
        reset = fsum([sel[op] for op in (OpCode.BEGIN, OpCode.LOOP, OpCode.WRAP, OpCode.TEND,
                                         OpCode.FEND, OpCode.BREAK, OpCode.SKIP)])
        value = fsum([
            absorbing * (ctr_next - ctr - ONE),
            reset * ctr_next,
            sel[OpCode.VOID] * (ctr_next - ctr),
        ])
        return Constraint("ctr", 2, value)

    @staticmethod
    def _context_constraints(sel, s, x, x_next) -> List[Constraint]:
        """Context register moves; entries left free are loaded with advice."""
        half = DIGEST_ELEMENTS
        level = CTX_LEVEL_WIDTH
        keep = fsum([sel[op] for op in OpCode if op.is_user] + [sel[OpCode.WRAP], sel[OpCode.VOID]])
        enter = sel[OpCode.BEGIN] + sel[OpCode.LOOP]

        out = []
        for i in range(CTX_WIDTH):
            nxt = x_next[i]
            terms = [keep * (nxt - x[i])]

            # BEGIN / LOOP: advice, then the accumulator, then push one level down
            if half <= i < level:
                terms.append(enter * (nxt - s[i - half]))
            elif i >= level:
                terms.append(enter * (nxt - x[i - level]))

            # TEND saves the taken digest first, FEND second
            if i < half:
                terms.append(sel[OpCode.TEND] * (nxt - s[i]))
                terms.append(sel[OpCode.FEND] * (nxt - x[i]))
            elif i < level:
                terms.append(sel[OpCode.TEND] * (nxt - x[i - half]))
                terms.append(sel[OpCode.FEND] * (nxt - s[i - half]))
            else:
                terms.append((sel[OpCode.TEND] + sel[OpCode.FEND]) * (nxt - x[i]))

            # BREAK keeps the body digest and pops the parent accumulator
            if i < half:
                terms.append(sel[OpCode.BREAK] * (nxt - x[i]))
            elif i < CTX_WIDTH - half:
                terms.append(sel[OpCode.BREAK] * (nxt - x[i + half]))
            else:
                terms.append(sel[OpCode.BREAK] * nxt)

            if i >= half:
                terms.append(sel[OpCode.SKIP] * (nxt - x[i - half]))

            if i < CTX_WIDTH - 1:
                terms.append(sel[OpCode.HACC] * (nxt - x[i + 1]))
            else:
                terms.append(sel[OpCode.HACC] * nxt)

            out.append(Constraint(f"ctx_{i}", 2, fsum(terms)))
        return out
