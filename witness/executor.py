"""Trace generator: runs a program and records one trace row per step.

Row i holds the machine state before step i together with that step's
opcode selector, immediate and helper values; the row after the last step
holds the final state and is repeated as VOID padding up to a power of two.

Control flow is driven by an explicit work stack over the block arena.
Entering a Switch or Loop emits a flow step that saves the accumulator and a
sibling digest into the context registers; leaving it emits TEND/FEND/BREAK
plus HACC steps that merge the digests back, so the accumulator ends equal
to the static program hash whatever path was taken.
"""

import logging
from collections import deque
from typing import List, Optional, Sequence, Tuple

from primitives.field import GOLDILOCKS_PRIME
from primitives.permutation import (
    DIGEST_ELEMENTS,
    ROUND_CONSTANTS,
    absorb,
    hash_round,
    round_input,
    sbox_helpers,
)
from program.blocks import Group, Loop, Repeat, Span, Switch
from program.errors import (
    DivisionByZero,
    FailedAssertion,
    StackOverflow,
    StackUnderflow,
    StepLimitExceeded,
    TapeExhausted,
)
from program.graph import STACK_WIDTH, Program
from program.inputs import ProgramInputs, check_num_outputs
from program.opcodes import (
    FALSE_BRANCH_PREFIX,
    LOOP_BODY_PREFIX,
    LOOP_TAG,
    STACK_EFFECTS,
    SWITCH_TAG,
    TRUE_BRANCH_PREFIX,
    Instruction,
    OpCode,
)
from witness.layout import AUX_WIDTH, CTX_LEVEL_WIDTH, CTX_WIDTH, LAYOUT, TRACE_WIDTH
from witness.trace import MIN_TRACE_LENGTH, ExecutionTrace, rows_to_matrix

logger = logging.getLogger(__name__)

P = GOLDILOCKS_PRIME
DEFAULT_MAX_TRACE_LENGTH = 1 << 20

_OP = LAYOUT.offsets["op"]
_STACK = LAYOUT.offsets["stack"]
_SPONGE = LAYOUT.offsets["sponge"]
_CTR = LAYOUT.offsets["ctr"]
_IMM = LAYOUT.offsets["imm"]
_CTX = LAYOUT.offsets["ctx"]
_SPONGE_AUX = LAYOUT.offsets["sponge_aux"]
_STACK_AUX = LAYOUT.offsets["stack_aux"]


def run(
    program: Program,
    inputs: ProgramInputs,
    num_outputs: int = 1,
    max_trace_length: int = DEFAULT_MAX_TRACE_LENGTH,
) -> Tuple[ExecutionTrace, Tuple[int, ...]]:
    """Execute program on inputs.

    Returns:
        (trace, outputs) where outputs are the top num_outputs stack values

    Raises:
        ConfigurationError: num_outputs out of range
        ExecutionError: any runtime failure; no partial trace is returned
    """
    check_num_outputs(num_outputs)
    processor = Processor(inputs, max_trace_length)
    processor.execute(program)
    trace = processor.finish(num_outputs)
    logger.info("executed %d steps, trace length %d", trace.num_steps, trace.length)
    return trace, trace.outputs


class Processor:
    """Stack machine plus decoder state, recording trace rows."""

    def __init__(self, inputs: ProgramInputs, max_trace_length: int = DEFAULT_MAX_TRACE_LENGTH) -> None:
        self.public_inputs = inputs.public
        self.stack: List[int] = list(inputs.public) + [0] * (STACK_WIDTH - len(inputs.public))
        self.depth = len(inputs.public)
        self.tape_a = deque(inputs.secret_a)
        self.tape_b = deque(inputs.secret_b)

        self.sponge: List[int] = [0] * DIGEST_ELEMENTS
        self.ctr = 0
        self.ctx: List[int] = [0] * CTX_WIDTH

        self.max_trace_length = max_trace_length
        self.rows: List[List[int]] = []

    @property
    def num_steps(self) -> int:
        return len(self.rows)

    # --- Traversal ---

    def execute(self, program: Program) -> None:
        """Walk the block arena from the root, one step per instruction."""
        blocks = program.blocks
        work: List[tuple] = [("block", program.root)]

        while work:
            item = work.pop()
            kind = item[0]

            if kind == "block":
                idx = item[1]
                block = blocks[idx]
                if isinstance(block, Span):
                    self.run_ops(block.ops)
                elif isinstance(block, Group):
                    work.extend(("block", c) for c in reversed(block.children))
                elif isinstance(block, Repeat):
                    work.append(("repeat", block.body, block.count))
                elif isinstance(block, Switch):
                    true_digest, false_digest = program.switch_digests[idx]
                    if self._condition("switch"):
                        self.step(OpCode.BEGIN, advice=false_digest)
                        self.run_ops(TRUE_BRANCH_PREFIX)
                        work.append(("end_switch", True))
                        work.append(("block", block.true_branch))
                    else:
                        self.step(OpCode.BEGIN, advice=true_digest)
                        self.run_ops(FALSE_BRANCH_PREFIX)
                        work.append(("end_switch", False))
                        work.append(("block", block.false_branch))
                elif isinstance(block, Loop):
                    body_digest = program.loop_digests[idx]
                    if self._condition("loop"):
                        self.step(OpCode.LOOP, advice=body_digest)
                        self.run_ops(LOOP_BODY_PREFIX)
                        work.append(("loop_check", idx))
                        work.append(("block", block.body))
                    else:
                        self.step(OpCode.SKIP, advice=body_digest)
                        self._merge_digests(DIGEST_ELEMENTS)

            elif kind == "repeat":
                _, body, remaining = item
                if remaining > 1:
                    work.append(("repeat", body, remaining - 1))
                work.append(("block", body))

            elif kind == "end_switch":
                self.step(OpCode.TEND if item[1] else OpCode.FEND)
                self._merge_digests(2 * DIGEST_ELEMENTS)

            elif kind == "loop_check":
                idx = item[1]
                if self._condition("loop"):
                    self.step(OpCode.WRAP)
                    self.run_ops(LOOP_BODY_PREFIX)
                    work.append(("loop_check", idx))
                    work.append(("block", blocks[idx].body))
                else:
                    self.step(OpCode.BREAK)
                    self._merge_digests(DIGEST_ELEMENTS)

        assert tuple(self.sponge) == program.digest, "accumulator diverged from the program hash"

    def run_ops(self, ops: Sequence[Instruction]) -> None:
        for ins in ops:
            self.step(ins.op, ins.imm)

    def _condition(self, what: str) -> bool:
        if self.depth < 1:
            raise StackUnderflow(f"{what} needs a condition on the stack", self.num_steps)
        cond = self.stack[0]
        if cond not in (0, 1):
            raise FailedAssertion(f"{what} condition must be 0 or 1, got {cond}", self.num_steps)
        return cond == 1

    def _merge_digests(self, count: int) -> None:
        for _ in range(count):
            self.step(OpCode.HACC)

    # --- Single step ---

    def step(self, op: OpCode, imm: int = 0, advice: Optional[Sequence[int]] = None) -> None:
        """Record the row for one instruction and apply it."""
        if self.num_steps + 2 > self.max_trace_length:
            raise StepLimitExceeded(
                f"execution needs more than {self.max_trace_length} trace rows", self.num_steps)

        required, net = STACK_EFFECTS[op]
        if self.depth < required:
            raise StackUnderflow(
                f"{op.name} needs {required} operands, stack holds {self.depth}", self.num_steps)
        if self.depth + net > STACK_WIDTH:
            raise StackOverflow(f"{op.name} would exceed {STACK_WIDTH} stack slots", self.num_steps)

        if op is OpCode.HACC:
            imm = self.ctx[0]

        row = self._state_row()
        row[_OP + int(op)] = 1
        row[_IMM] = imm
        row[_SPONGE_AUX:_SPONGE_AUX + AUX_WIDTH] = self._sponge_helpers(op, imm)
        row[_STACK_AUX:_STACK_AUX + AUX_WIDTH] = self._stack_helpers(op)

        new_stack = self._apply_stack(op, imm)
        self._apply_decoder(op, imm, advice)
        self.stack = new_stack
        self.depth += net
        self.rows.append(row)

    def _state_row(self) -> List[int]:
        row = [0] * TRACE_WIDTH
        row[_STACK:_STACK + STACK_WIDTH] = self.stack
        row[_SPONGE:_SPONGE + DIGEST_ELEMENTS] = self.sponge
        row[_CTR] = self.ctr
        row[_CTX:_CTX + CTX_WIDTH] = self.ctx
        return row

    def _sponge_helpers(self, op: OpCode, imm: int) -> List[int]:
        if not op.absorbs:
            return [0] * AUX_WIDTH
        a0 = (self.sponge[0] + op.code + self.ctr + ROUND_CONSTANTS[0]) % P
        return list(sbox_helpers(a0))

    def _stack_helpers(self, op: OpCode) -> List[int]:
        s = self.stack
        if op is OpCode.RESCR:
            a0 = round_input(s[:DIGEST_ELEMENTS], self.ctr)[0]
            return list(sbox_helpers(a0))
        if op is OpCode.EQ:
            diff = (s[0] - s[1]) % P
            return [pow(diff, P - 2, P) if diff else 0, 0, 0]
        return [0] * AUX_WIDTH

    # --- Operand stack ---

    def _apply_stack(self, op: OpCode, imm: int) -> List[int]:
        s = self.stack
        step = self.num_steps

        def shift_left(n: int) -> List[int]:
            return s[n:] + [0] * n

        def push(*values: int) -> List[int]:
            return list(values) + s[:STACK_WIDTH - len(values)]

        def binary(*values: int) -> None:
            for v in values:
                if v not in (0, 1):
                    raise FailedAssertion(f"{op.name} needs binary operands, got {v}", step)

        if op in (OpCode.NOOP, OpCode.BEGIN, OpCode.TEND, OpCode.FEND, OpCode.LOOP,
                  OpCode.WRAP, OpCode.HACC, OpCode.VOID):
            return list(s)
        if op is OpCode.ASSERT:
            if s[0] != 1:
                raise FailedAssertion(f"ASSERT expected 1, got {s[0]}", step)
            return shift_left(1)
        if op is OpCode.ASSERTEQ:
            if s[0] != s[1]:
                raise FailedAssertion(f"ASSERTEQ failed: {s[0]} != {s[1]}", step)
            return shift_left(2)
        if op is OpCode.PUSH:
            return push(imm)
        if op is OpCode.READ:
            return push(self._read(self.tape_a, "A"))
        if op is OpCode.READ2:
            a = self._read(self.tape_a, "A")
            b = self._read(self.tape_b, "B")
            return push(b, a)
        if op is OpCode.DUP:
            return push(s[0])
        if op is OpCode.DUP2:
            return push(s[0], s[1])
        if op is OpCode.DUP4:
            return push(s[0], s[1], s[2], s[3])
        if op is OpCode.PAD2:
            return push(0, 0)
        if op is OpCode.DROP:
            return shift_left(1)
        if op is OpCode.DROP4:
            return shift_left(4)
        if op is OpCode.SWAP:
            return [s[1], s[0]] + s[2:]
        if op is OpCode.SWAP2:
            return [s[2], s[3], s[0], s[1]] + s[4:]
        if op is OpCode.ROLL4:
            return [s[3], s[0], s[1], s[2]] + s[4:]
        if op is OpCode.CHOOSE:
            binary(s[2])
            return [s[0] if s[2] == 1 else s[1]] + s[3:] + [0, 0]
        if op is OpCode.ADD:
            return [(s[0] + s[1]) % P] + shift_left(2)[:STACK_WIDTH - 1]
        if op is OpCode.MUL:
            return [s[0] * s[1] % P] + shift_left(2)[:STACK_WIDTH - 1]
        if op is OpCode.INV:
            if s[0] == 0:
                raise DivisionByZero("INV of zero", step)
            return [pow(s[0], P - 2, P)] + s[1:]
        if op is OpCode.NEG:
            return [(-s[0]) % P] + s[1:]
        if op is OpCode.NOT:
            binary(s[0])
            return [1 - s[0]] + s[1:]
        if op is OpCode.AND:
            binary(s[0], s[1])
            return [s[0] * s[1]] + shift_left(2)[:STACK_WIDTH - 1]
        if op is OpCode.OR:
            binary(s[0], s[1])
            return [s[0] | s[1]] + shift_left(2)[:STACK_WIDTH - 1]
        if op is OpCode.EQ:
            return [int(s[0] == s[1])] + shift_left(2)[:STACK_WIDTH - 1]
        if op is OpCode.RESCR:
            return hash_round(s[:DIGEST_ELEMENTS], self.ctr) + s[DIGEST_ELEMENTS:]
        if op in (OpCode.BREAK, OpCode.SKIP):
            assert s[0] == 0
            return shift_left(1)
        raise AssertionError(f"unhandled opcode {op!r}")

    def _read(self, tape: deque, name: str) -> int:
        if not tape:
            raise TapeExhausted(f"secret tape {name} is empty", self.num_steps)
        return tape.popleft()

    # --- Decoder ---

    def _apply_decoder(self, op: OpCode, imm: int, advice: Optional[Sequence[int]]) -> None:
        ctx = self.ctx
        level = CTX_LEVEL_WIDTH
        half = DIGEST_ELEMENTS

        if op.absorbs:
            self.sponge = absorb(self.sponge, op.code, imm, self.ctr)
            self.ctr += 1
            if op is OpCode.HACC:
                self.ctx = ctx[1:] + [0]
        elif op in (OpCode.BEGIN, OpCode.LOOP):
            assert advice is not None and len(advice) == half
            assert not any(ctx[CTX_WIDTH - level:]), "context registers overflow"
            self.ctx = list(advice) + self.sponge + ctx[:CTX_WIDTH - level]
            self.sponge = [0] * half
            self.ctr = 0
        elif op is OpCode.TEND:
            self.ctx = self.sponge + ctx[:half] + ctx[level:]
            self.sponge = self._tagged(ctx[half:level], SWITCH_TAG)
            self.ctr = 0
        elif op is OpCode.FEND:
            self.ctx = ctx[:half] + self.sponge + ctx[level:]
            self.sponge = self._tagged(ctx[half:level], SWITCH_TAG)
            self.ctr = 0
        elif op is OpCode.WRAP:
            assert self.sponge == ctx[:half], "loop body digest mismatch"
            self.sponge = [0] * half
            self.ctr = 0
        elif op is OpCode.BREAK:
            assert self.sponge == ctx[:half], "loop body digest mismatch"
            self.sponge = self._tagged(ctx[half:level], LOOP_TAG)
            self.ctx = ctx[:half] + ctx[level:] + [0] * half
            self.ctr = 0
        elif op is OpCode.SKIP:
            assert advice is not None and len(advice) == half
            assert not any(ctx[CTX_WIDTH - half:]), "context registers overflow"
            self.sponge = self._tagged(self.sponge, LOOP_TAG)
            self.ctx = list(advice) + ctx[:CTX_WIDTH - half]
            self.ctr = 0
        # VOID leaves the decoder untouched

    @staticmethod
    def _tagged(state: Sequence[int], tag: int) -> List[int]:
        return [(state[0] + tag) % P] + list(state[1:])

    # --- Finalization ---

    def finish(self, num_outputs: int) -> ExecutionTrace:
        """Append the final-state row and VOID padding."""
        num_steps = self.num_steps
        final = self._state_row()
        final[_OP + int(OpCode.VOID)] = 1

        rows_needed = num_steps + 1
        length = max(MIN_TRACE_LENGTH, 1 << (rows_needed - 1).bit_length())
        if length > self.max_trace_length:
            raise StepLimitExceeded(
                f"padded trace length {length} exceeds {self.max_trace_length}", num_steps)

        rows = self.rows + [list(final) for _ in range(length - num_steps)]
        outputs = tuple(self.stack[:num_outputs])
        return ExecutionTrace(
            columns=rows_to_matrix(rows),
            num_steps=num_steps,
            public_inputs=tuple(self.public_inputs),
            outputs=outputs,
            program_digest=tuple(self.sponge),
        )
