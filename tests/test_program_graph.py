"""Tests for program graph validation and the program hash."""

import pytest

from primitives.field import GOLDILOCKS_PRIME
from primitives.permutation import absorb
from program.blocks import Group, Loop, Repeat, Span, Switch
from program.builder import ProgramBuilder, to_instructions
from program.errors import MalformedGraph
from program.graph import StackEffect, build, digest_from_bytes
from program.opcodes import OpCode, parse_instruction

from tests.conftest import make_add_program, make_fib_program, make_switch_program


def _span(text: str) -> Span:
    return Span(tuple(to_instructions(text)))


class TestInstructions:

    def test_parse_push(self) -> None:
        ins = parse_instruction("push.5")
        assert ins.op is OpCode.PUSH
        assert ins.imm == 5
        assert str(ins) == "push.5"

    def test_parse_hex_immediate(self) -> None:
        assert parse_instruction("push.0x10").imm == 16

    def test_parse_negative_immediate_reduced(self) -> None:
        assert parse_instruction("push.-1").imm == GOLDILOCKS_PRIME - 1

    @pytest.mark.parametrize("token", ["frobnicate", "push", "add.3", "begin.1"])
    def test_parse_rejects(self, token: str) -> None:
        with pytest.raises(ValueError):
            parse_instruction(token)

    def test_opcode_partition(self) -> None:
        """User ops come first, then flow ops; absorption codes are distinct and non-zero."""
        users = [op for op in OpCode if op.is_user]
        assert users == list(OpCode)[:len(users)]
        assert OpCode.HACC.absorbs and not OpCode.BEGIN.absorbs
        codes = [op.code for op in OpCode]
        assert len(set(codes)) == len(codes) and 0 not in codes


class TestProgramHash:
    """The hash depends on program structure only."""

    def test_hash_is_32_bytes_and_stable(self) -> None:
        a = make_add_program()
        b = make_add_program()
        assert len(a.hash()) == 32
        assert a.hash() == b.hash()

    def test_hash_roundtrips_through_digest(self) -> None:
        program = make_fib_program()
        assert digest_from_bytes(program.hash()) == program.digest

    def test_span_hash_matches_manual_absorption(self) -> None:
        program = make_add_program()

        state = [0, 0, 0, 0]
        for k, (op, imm) in enumerate([(OpCode.PUSH, 3), (OpCode.PUSH, 5), (OpCode.ADD, 0)]):
            state = absorb(state, op.code, imm, k)

        assert program.digest == tuple(state)

    def test_hash_changes_with_immediate(self) -> None:
        a = ProgramBuilder()
        a.span("push.3 push.5 add")
        b = ProgramBuilder()
        b.span("push.3 push.6 add")
        assert a.build().hash() != b.build().hash()

    def test_hash_changes_with_order(self) -> None:
        a = ProgramBuilder()
        a.span("push.3 push.5 swap")
        b = ProgramBuilder()
        b.span("push.5 push.3 swap")
        assert a.build().hash() != b.build().hash()

    def test_switch_branch_order_matters(self) -> None:
        program = make_switch_program()

        swapped = ProgramBuilder()
        t = swapped.span("push.20 add")
        f = swapped.span("push.10 add")
        swapped.switch(t, f)

        assert program.hash() != swapped.build().hash()

    def test_group_and_repeat_are_inlined(self) -> None:
        """Group(span, span) and Repeat(span, 2) hash like one longer span."""
        flat = build([_span("dup add dup add")])
        grouped = build([_span("dup add"), _span("dup add"), Group((0, 1))])
        repeated = build([_span("dup add"), Repeat(0, 2)])

        assert flat.hash() == grouped.hash() == repeated.hash()

    def test_shared_body_hashes_like_copies(self) -> None:
        shared = build([_span("push.1"), _span("push.2 add"), Switch((1, 1)), Group((0, 2))])
        copied = build([_span("push.1"), _span("push.2 add"), _span("push.2 add"),
                        Switch((1, 2)), Group((0, 3))])
        assert shared.hash() == copied.hash()

    def test_loop_differs_from_body(self) -> None:
        body = _span("push.1 neg add dup push.0 eq not")
        looped = build([body, Loop(0)])
        inline = build([body])
        assert looped.hash() != inline.hash()


class TestValidation:
    """Malformed graphs are rejected before execution."""

    def test_empty_program(self) -> None:
        with pytest.raises(MalformedGraph):
            build([])

    def test_root_out_of_range(self) -> None:
        with pytest.raises(MalformedGraph):
            build([_span("noop")], root=1)

    def test_dangling_reference(self) -> None:
        with pytest.raises(MalformedGraph, match="not a valid block index"):
            build([_span("noop"), Group((0, 5))])

    def test_self_cycle(self) -> None:
        with pytest.raises(MalformedGraph, match="cycle"):
            build([Group((0,))])

    def test_indirect_cycle(self) -> None:
        with pytest.raises(MalformedGraph, match="cycle"):
            build([_span("noop"), Group((0, 2)), Repeat(1, 2)], root=1)

    def test_flow_op_in_span(self) -> None:
        with pytest.raises(MalformedGraph, match="flow instruction"):
            build([Span((parse_instruction("noop"), (OpCode.BEGIN, 0)))])

    def test_immediate_on_non_push(self) -> None:
        with pytest.raises(MalformedGraph, match="takes no immediate"):
            build([Span(((OpCode.ADD, 3),))])

    def test_non_canonical_immediate(self) -> None:
        with pytest.raises(MalformedGraph):
            build([Span(((OpCode.PUSH, GOLDILOCKS_PRIME),))])

    def test_repeat_count_must_be_positive(self) -> None:
        with pytest.raises(MalformedGraph, match="repeat count"):
            build([_span("noop"), Repeat(0, 0)])

    def test_switch_needs_two_branches(self) -> None:
        with pytest.raises(MalformedGraph, match="exactly 2 branches"):
            build([_span("noop"), Switch((0,))])

    def test_switch_branches_must_agree_on_depth(self) -> None:
        with pytest.raises(MalformedGraph, match="switch branches"):
            build([_span("push.1"), _span("noop"), Switch((0, 1))])

    def test_loop_body_must_push_condition(self) -> None:
        with pytest.raises(MalformedGraph, match="loop body"):
            build([_span("push.1 add"), Loop(0)])

    def test_nesting_depth_three_allowed(self) -> None:
        builder = ProgramBuilder()
        inner = builder.span("noop")
        for _ in range(3):
            inner = builder.switch(inner, inner)
        assert builder.build().nesting_depth == 3

    def test_nesting_depth_four_rejected(self) -> None:
        builder = ProgramBuilder()
        inner = builder.span("noop")
        for _ in range(4):
            inner = builder.switch(inner, inner)
        with pytest.raises(MalformedGraph, match="nesting depth"):
            builder.build()

    def test_stack_overflow_detected_statically(self) -> None:
        with pytest.raises(MalformedGraph, match="stack slots"):
            build([_span(" ".join(["push.1"] * 17))])

    def test_sixteen_slots_allowed(self) -> None:
        program = build([_span(" ".join(["push.1"] * 16))])
        assert program.stack_effect.peak == 16


class TestStackEffect:

    def test_sequence(self) -> None:
        effect = StackEffect.of_ops(to_instructions("push.1 push.2 add drop"))
        assert effect == StackEffect(required=0, net=0, peak=2)

    def test_required_depth(self) -> None:
        effect = StackEffect.of_ops(to_instructions("add add"))
        assert effect.required == 3
        assert effect.net == -2

    @pytest.mark.parametrize("ops,count", [("push.1", 5), ("drop", 3), ("dup add", 4), ("swap", 2)])
    def test_repeated_matches_unrolled(self, ops: str, count: int) -> None:
        single = StackEffect.of_ops(to_instructions(ops))
        unrolled = StackEffect.of_ops(to_instructions(" ".join([ops] * count)))
        assert single.repeated(count) == unrolled
