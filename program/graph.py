"""Program graph: validated block arena plus its path-independent hash.

Hash construction. A sequence of blocks is hashed by a 4-element sponge that
starts at zero with round counter 0:

- every instruction absorbs (code, imm) and advances the counter;
- a Switch adds SWITCH_TAG to the first element, resets the counter and
  absorbs the digests of ([ASSERT] + true) and ([NOT, ASSERT] + false), in
  that order;
- a Loop adds LOOP_TAG, resets the counter and absorbs the digest of
  ([ASSERT] + body);
- Group and Repeat are inlined.

Both branch digests enter the parent whichever branch runs, which is what
lets the trace generator reproduce the same value from any execution path.
All traversals below are iterative; nesting depth never grows the Python
call stack.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from primitives.field import GOLDILOCKS_PRIME
from primitives.hashing import bytes_to_elements, elements_to_bytes
from primitives.permutation import DIGEST_ELEMENTS, absorb
from program.blocks import CONTROL_BLOCKS, Block, Group, Loop, Repeat, Span, Switch
from program.errors import MalformedGraph
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

logger = logging.getLogger(__name__)

STACK_WIDTH = 16
MAX_NESTING_DEPTH = 3

Digest4 = Tuple[int, int, int, int]


# --- Stack effects ---

@dataclass(frozen=True)
class StackEffect:
    """Static stack behaviour of a code fragment, relative to its entry depth.

    Attributes:
        required: Minimum depth on entry
        net: Depth change from entry to exit
        peak: Highest depth reached above the entry depth
    """
    required: int = 0
    net: int = 0
    peak: int = 0

    @classmethod
    def of_op(cls, op: OpCode) -> "StackEffect":
        required, net = STACK_EFFECTS[op]
        return cls(required, net, max(0, net))

    @classmethod
    def of_ops(cls, ops: Sequence[Instruction]) -> "StackEffect":
        effect = cls()
        for ins in ops:
            effect = effect.then(cls.of_op(ins.op))
        return effect

    def then(self, other: "StackEffect") -> "StackEffect":
        """Effect of running self followed by other."""
        return StackEffect(
            required=max(self.required, other.required - self.net),
            net=self.net + other.net,
            peak=max(self.peak, self.net + other.peak),
        )

    def repeated(self, count: int) -> "StackEffect":
        """Effect of count back-to-back copies."""
        if self.net >= 0:
            return StackEffect(self.required, self.net * count, self.peak + self.net * (count - 1))
        return StackEffect(self.required - self.net * (count - 1), self.net * count, self.peak)


# --- Accumulator ---

class SequenceHasher:
    """Running program-hash accumulator for one sequence."""

    def __init__(self) -> None:
        self.state: List[int] = [0] * DIGEST_ELEMENTS
        self.ctr = 0

    def absorb(self, code: int, value: int) -> None:
        self.state = absorb(self.state, code, value, self.ctr)
        self.ctr += 1

    def absorb_op(self, ins: Instruction) -> None:
        self.absorb(ins.op.code, ins.imm)

    def merge_switch(self, true_digest: Sequence[int], false_digest: Sequence[int]) -> None:
        self.state[0] = (self.state[0] + SWITCH_TAG) % GOLDILOCKS_PRIME
        self.ctr = 0
        for value in list(true_digest) + list(false_digest):
            self.absorb(OpCode.HACC.code, value)

    def merge_loop(self, body_digest: Sequence[int]) -> None:
        self.state[0] = (self.state[0] + LOOP_TAG) % GOLDILOCKS_PRIME
        self.ctr = 0
        for value in body_digest:
            self.absorb(OpCode.HACC.code, value)

    def digest(self) -> Digest4:
        return tuple(self.state)


# --- Program ---

class Program:
    """Validated program graph. Construct with build() or ProgramBuilder."""

    def __init__(
        self,
        blocks: Tuple[Block, ...],
        root: int,
        digest: Digest4,
        switch_digests: Dict[int, Tuple[Digest4, Digest4]],
        loop_digests: Dict[int, Digest4],
        stack_effect: StackEffect,
        nesting_depth: int,
    ) -> None:
        self.blocks = blocks
        self.root = root
        self.digest = digest
        self.switch_digests = switch_digests
        self.loop_digests = loop_digests
        self.stack_effect = stack_effect
        self.nesting_depth = nesting_depth

    def hash(self) -> bytes:
        """32-byte program hash: the four digest elements, 8-byte little-endian each."""
        return elements_to_bytes(self.digest)

    def __len__(self) -> int:
        return len(self.blocks)

    def __repr__(self) -> str:
        return f"Program(blocks={len(self.blocks)}, root={self.root}, hash={self.hash().hex()})"


def digest_from_bytes(program_hash: bytes) -> Digest4:
    """Inverse of Program.hash(); raises ValueError for non-canonical input."""
    if len(program_hash) != 8 * DIGEST_ELEMENTS:
        raise ValueError(f"program hash must be {8 * DIGEST_ELEMENTS} bytes, got {len(program_hash)}")
    values = bytes_to_elements(program_hash)
    if any(v >= GOLDILOCKS_PRIME for v in values):
        raise ValueError("program hash contains a non-canonical field element")
    return tuple(values)


def build(blocks: Sequence[Block], root: Optional[int] = None) -> Program:
    """Validate an arena of blocks and compute the program hash.

    Args:
        blocks: Arena; sub-blocks are referenced by index
        root: Index of the entry block (default: last block)

    Raises:
        MalformedGraph: On any structural or static stack-depth violation
    """
    if len(blocks) == 0:
        raise MalformedGraph("program has no blocks")
    if root is None:
        root = len(blocks) - 1
    if not 0 <= root < len(blocks):
        raise MalformedGraph(f"root index {root} out of range")

    arena = tuple(_normalize_block(i, b, len(blocks)) for i, b in enumerate(blocks))
    order = _post_order(arena, root)

    nesting: Dict[int, int] = {}
    effects: Dict[int, StackEffect] = {}
    switch_digests: Dict[int, Tuple[Digest4, Digest4]] = {}
    loop_digests: Dict[int, Digest4] = {}

    for idx in order:
        block = arena[idx]
        children = _children(block)
        depth = max((nesting[c] for c in children), default=0)
        if isinstance(block, CONTROL_BLOCKS):
            depth += 1
            if depth > MAX_NESTING_DEPTH:
                raise MalformedGraph(
                    f"block {idx}: control nesting depth {depth} exceeds {MAX_NESTING_DEPTH}")
        nesting[idx] = depth
        effects[idx] = _stack_effect(idx, block, effects)

        if isinstance(block, Switch):
            switch_digests[idx] = (
                _sequence_digest(arena, TRUE_BRANCH_PREFIX, block.true_branch, switch_digests, loop_digests),
                _sequence_digest(arena, FALSE_BRANCH_PREFIX, block.false_branch, switch_digests, loop_digests),
            )
        elif isinstance(block, Loop):
            loop_digests[idx] = _sequence_digest(
                arena, LOOP_BODY_PREFIX, block.body, switch_digests, loop_digests)

    root_effect = effects[root]
    if root_effect.peak > STACK_WIDTH:
        raise MalformedGraph(
            f"program needs {root_effect.peak} stack slots above its inputs, at most {STACK_WIDTH} exist")

    digest = _sequence_digest(arena, (), root, switch_digests, loop_digests)
    program = Program(arena, root, digest, switch_digests, loop_digests, root_effect, nesting[root])
    logger.debug("built %r", program)
    return program


# --- Validation helpers ---

def _normalize_block(idx: int, block: Block, n_blocks: int) -> Block:
    """Check one arena entry in isolation and return a canonical copy."""
    def check_index(ref) -> int:
        if not isinstance(ref, int) or not 0 <= ref < n_blocks:
            raise MalformedGraph(f"block {idx}: reference {ref!r} is not a valid block index")
        return ref

    if isinstance(block, Span):
        return Span(tuple(_normalize_instruction(idx, ins) for ins in block.ops))
    if isinstance(block, Group):
        return Group(tuple(check_index(c) for c in block.children))
    if isinstance(block, Switch):
        if len(block.branches) != 2:
            raise MalformedGraph(f"block {idx}: switch needs exactly 2 branches, got {len(block.branches)}")
        return Switch(tuple(check_index(c) for c in block.branches))
    if isinstance(block, Loop):
        return Loop(check_index(block.body))
    if isinstance(block, Repeat):
        if not isinstance(block.count, int) or block.count < 1:
            raise MalformedGraph(f"block {idx}: repeat count must be a positive integer, got {block.count!r}")
        return Repeat(check_index(block.body), block.count)
    raise MalformedGraph(f"block {idx}: unknown block type {type(block).__name__}")


def _normalize_instruction(idx: int, ins) -> Instruction:
    try:
        op = OpCode(ins[0])
    except (ValueError, TypeError, IndexError):
        raise MalformedGraph(f"block {idx}: invalid instruction {ins!r}") from None
    imm = ins[1] if len(ins) > 1 else 0
    if not op.is_user:
        raise MalformedGraph(f"block {idx}: flow instruction {op.name} cannot appear in a span")
    if not isinstance(imm, int) or not 0 <= imm < GOLDILOCKS_PRIME:
        raise MalformedGraph(f"block {idx}: immediate {imm!r} is not a canonical field element")
    if op is not OpCode.PUSH and imm != 0:
        raise MalformedGraph(f"block {idx}: {op.name} takes no immediate")
    return Instruction(op, imm)


def _children(block: Block) -> Tuple[int, ...]:
    if isinstance(block, Group):
        return block.children
    if isinstance(block, Switch):
        return block.branches
    if isinstance(block, (Loop, Repeat)):
        return (block.body,)
    return ()


def _post_order(arena: Tuple[Block, ...], root: int) -> List[int]:
    """Blocks reachable from root, children before parents; rejects cycles."""
    IN_PROGRESS, DONE = 1, 2
    state: Dict[int, int] = {}
    order: List[int] = []
    stack: List[Tuple[int, bool]] = [(root, False)]

    while stack:
        idx, expanded = stack.pop()
        if expanded:
            state[idx] = DONE
            order.append(idx)
            continue
        if state.get(idx) == DONE:
            continue
        state[idx] = IN_PROGRESS
        stack.append((idx, True))
        for child in reversed(_children(arena[idx])):
            mark = state.get(child)
            if mark == IN_PROGRESS:
                raise MalformedGraph(f"cycle: block {idx} refers back to block {child}")
            if mark != DONE:
                stack.append((child, False))

    return order


def _stack_effect(idx: int, block: Block, effects: Dict[int, StackEffect]) -> StackEffect:
    if isinstance(block, Span):
        return StackEffect.of_ops(block.ops)
    if isinstance(block, Group):
        effect = StackEffect()
        for child in block.children:
            effect = effect.then(effects[child])
        return effect
    if isinstance(block, Repeat):
        return effects[block.body].repeated(block.count)
    if isinstance(block, Switch):
        t = StackEffect.of_ops(TRUE_BRANCH_PREFIX).then(effects[block.true_branch])
        f = StackEffect.of_ops(FALSE_BRANCH_PREFIX).then(effects[block.false_branch])
        if t.net != f.net:
            raise MalformedGraph(
                f"block {idx}: switch branches change the stack depth differently ({t.net} vs {f.net})")
        return StackEffect(max(t.required, f.required), t.net, max(t.peak, f.peak))
    # Loop
    body = StackEffect.of_ops(LOOP_BODY_PREFIX).then(effects[block.body])
    if body.net != 0:
        raise MalformedGraph(
            f"block {idx}: loop body must leave exactly one new condition on the stack "
            f"(net effect {body.net + 1}, expected +1)")
    return StackEffect(max(1, body.required), -1, max(0, body.peak))


def _sequence_digest(
    arena: Tuple[Block, ...],
    prefix: Sequence[Instruction],
    start: int,
    switch_digests: Dict[int, Tuple[Digest4, Digest4]],
    loop_digests: Dict[int, Digest4],
) -> Digest4:
    """Hash prefix followed by the inline expansion of block start."""
    hasher = SequenceHasher()
    for ins in prefix:
        hasher.absorb_op(ins)

    # Work items: a block index, or (body, remaining) for a repeat in progress
    work: List = [start]
    while work:
        item = work.pop()
        if isinstance(item, tuple):
            body, remaining = item
            if remaining > 1:
                work.append((body, remaining - 1))
            work.append(body)
            continue

        block = arena[item]
        if isinstance(block, Span):
            for ins in block.ops:
                hasher.absorb_op(ins)
        elif isinstance(block, Group):
            work.extend(reversed(block.children))
        elif isinstance(block, Repeat):
            work.append((block.body, block.count))
        elif isinstance(block, Switch):
            hasher.merge_switch(*switch_digests[item])
        else:
            hasher.merge_loop(loop_digests[item])

    return hasher.digest()
