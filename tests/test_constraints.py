"""Tests for the processor AIR.

Honest traces of every test program must satisfy every transition constraint
and boundary assertion on the trace domain; single-cell tampering must be
caught.
"""

import numpy as np
import pytest

from constraints.air import MAX_CONSTRAINT_DEGREE, ProcessorAir
from constraints.base import (
    ProverConstraintContext,
    ShapeConstraintContext,
    VerifierConstraintContext,
)
from constraints.boundary import FIRST_ROW, LAST_ROW, boundary_assertions
from primitives.field import FF
from program.builder import ProgramBuilder
from program.inputs import ProgramInputs
from protocol.data import ProverData, VerifierData
from protocol.stages import check_constraints
from witness.executor import run
from witness.layout import LAYOUT
from witness.trace import ExecutionTrace

from tests.conftest import (
    make_add_program,
    make_countdown_program,
    make_fib_program,
    make_switch_program,
)

CASES = {
    "add": (make_add_program, []),
    "fib": (make_fib_program, [1, 0]),
    "switch_true": (make_switch_program, [1, 5]),
    "switch_false": (make_switch_program, [0, 5]),
    "countdown": (make_countdown_program, [1, 3]),
    "loop_skipped": (make_countdown_program, [0, 3]),
}


def _trace(case: str) -> ExecutionTrace:
    make, public = CASES[case]
    trace, _ = run(make(), ProgramInputs.from_public(public))
    return trace


def _tampered(trace: ExecutionTrace, name: str, index: int, row: int, delta: int = 1) -> ExecutionTrace:
    columns = trace.columns.copy()
    col = LAYOUT.index(name, index)
    columns[row, col] = columns[row, col] + FF(delta)
    return ExecutionTrace(columns, trace.num_steps, trace.public_inputs, trace.outputs, trace.program_digest)


class TestHonestTraces:

    @pytest.mark.parametrize("case", list(CASES))
    def test_no_violations(self, case: str) -> None:
        trace = _trace(case)
        failures = check_constraints(trace, ProcessorAir.from_trace(trace))
        assert failures == [], f"{case}: {failures[:5]}"

    def test_rescr_and_read_program(self) -> None:
        """Instructions outside the shared programs satisfy their constraints too."""
        builder = ProgramBuilder()
        builder.span("read read2 rescr drop4 pad2 push.1 choose push.9 dup4 swap2 roll4 drop4 inv dup eq "
                     "push.0 eq not push.1 and or push.7 push.7 asserteq assert mul neg noop")
        trace, _ = run(builder.build(), ProgramInputs(public=(1, 2, 3), secret_a=(4, 5), secret_b=(6,)))
        assert check_constraints(trace, ProcessorAir.from_trace(trace)) == []


class TestTampering:

    @pytest.mark.parametrize("name,index,row", [
        ("stack", 0, 1),
        ("stack", 5, 2),
        ("sponge", 2, 2),
        ("ctr", 0, 1),
        ("imm", 0, 0),
        ("sponge_aux", 1, 0),
    ])
    def test_transition_violation_detected(self, name: str, index: int, row: int) -> None:
        trace = _tampered(_trace("add"), name, index, row)
        failures = check_constraints(trace, ProcessorAir.from_trace(trace))
        assert failures, f"tampering {name}[{index}] at row {row} went unnoticed"

    def test_context_register_tampering_detected(self) -> None:
        trace = _trace("switch_true")
        # The ASSERT in row 1 must carry the saved digests over to row 2
        trace = _tampered(trace, "ctx", 3, 2)
        failures = check_constraints(trace, ProcessorAir.from_trace(trace))
        assert any(name.startswith("ctx_") for name, _ in failures)

    def test_selector_tampering_detected(self) -> None:
        trace = _tampered(_trace("add"), "op", 0, 1)
        names = [name for name, _ in check_constraints(trace, ProcessorAir.from_trace(trace))]
        assert "sel_one_hot" in names

    def test_wrong_output_violates_assertion(self) -> None:
        trace = _trace("add")
        air = ProcessorAir(trace.length, trace.public_inputs, [9], trace.program_digest)
        failures = check_constraints(trace, air)
        assert failures == [("stack[0]", trace.length - 1)]

    def test_wrong_program_digest_violates_assertion(self) -> None:
        trace = _trace("fib")
        digest = list(trace.program_digest)
        digest[1] = (digest[1] + 1) % int(FF.order)
        air = ProcessorAir(trace.length, trace.public_inputs, trace.outputs, digest)
        assert check_constraints(trace, air) == [("sponge[1]", trace.length - 1)]

    def test_wrong_inputs_violate_assertion(self) -> None:
        trace = _trace("switch_true")
        air = ProcessorAir(trace.length, [1, 6], trace.outputs, trace.program_digest)
        assert ("stack[1]", 0) in check_constraints(trace, air)


class TestProcessorAir:

    def test_constraint_names_unique(self) -> None:
        air = ProcessorAir(16, [], [], [0, 0, 0, 0])
        assert len(set(air.transition_names)) == air.num_transitions
        for name in ("sel_one_hot", "sponge_0", "ctr", "hacc_imm", "ctx_23", "stack_15",
                     "eq_zero", "rescr_quad", "loop_exit_zero"):
            assert name in air.transition_names

    def test_degrees_within_bound(self) -> None:
        air = ProcessorAir(16, [], [], [0, 0, 0, 0])
        assert 1 <= min(air.transition_degrees)
        assert max(air.transition_degrees) == MAX_CONSTRAINT_DEGREE

    @pytest.mark.parametrize("n", [16, 64, 1024])
    def test_quotient_degrees_below_composition_bound(self, n: int) -> None:
        air = ProcessorAir(n, [1], [2], [0, 0, 0, 0])
        assert air.composition_degree_bound == 2 * n
        assert max(air.quotient_degrees()) < air.composition_degree_bound
        assert len(air.quotient_degrees()) == air.num_constraints

    @pytest.mark.parametrize("blinding", [1, 10, 66])
    def test_blinding_raises_degrees(self, blinding: int) -> None:
        plain = ProcessorAir(16, [1], [2], [0, 0, 0, 0])
        blinded = ProcessorAir(16, [1], [2], [0, 0, 0, 0], blinding=blinding)
        assert blinded.composition_degree_bound == 2 * 16 + MAX_CONSTRAINT_DEGREE * blinding
        assert max(blinded.quotient_degrees()) == blinded.composition_degree_bound - 2
        assert all(b > p for b, p in zip(blinded.quotient_degrees(), plain.quotient_degrees()))
        assert blinded.quotient_degrees()[-1] == 16 + blinding - 2

    def test_constraint_count(self) -> None:
        air = ProcessorAir(16, [1, 2], [3], [0, 0, 0, 0])
        # 16 stack slots + 4 sponge + ctr + 24 ctx in the first row; 1 output + 4 sponge in the last
        assert len(air.assertions) == 45 + 1 + 4
        assert air.num_constraints == air.num_transitions + 50

    def test_boundary_assertions(self) -> None:
        assertions = boundary_assertions([7, 8], [9], [1, 2, 3, 4])
        first = [a for a in assertions if a.row == FIRST_ROW and a.name == "stack"]
        last = [a for a in assertions if a.row == LAST_ROW]
        assert [a.value for a in first] == [7, 8] + [0] * 14
        assert [(a.name, a.index, a.value) for a in last] == [
            ("stack", 0, 9), ("sponge", 0, 1), ("sponge", 1, 2), ("sponge", 2, 3), ("sponge", 3, 4)]


class TestConstraintContexts:

    def test_prover_next_col_rolls_by_extend(self) -> None:
        matrix = FF(np.arange(16 * LAYOUT.width).reshape(16, LAYOUT.width) % 1000)
        ctx = ProverConstraintContext(ProverData.from_matrix(matrix, extend=4))

        col = ctx.col("stack", 2)
        nxt = ctx.next_col("stack", 2)
        assert np.array_equal(nxt, np.roll(col, -4))
        assert nxt[0] == col[4]
        assert nxt[12] == col[0]

    def test_shape_context_is_scalar_zero(self) -> None:
        ctx = ShapeConstraintContext()
        assert ctx.col("stack", 3) == FF(0)
        assert ctx.next_col("ctx", 7) == FF(0)

    @pytest.mark.parametrize("case", ["fib", "switch_false", "countdown"])
    def test_verifier_context_matches_prover_rows(self, case: str) -> None:
        """Evaluating at opened row pairs gives the prover's per-row values."""
        trace = _trace(case)
        air = ProcessorAir.from_trace(trace)
        rows = [0, 3, 7, trace.num_steps - 1]

        prover = air.evaluate_transitions(
            ProverConstraintContext(ProverData.from_matrix(trace.columns, extend=1)))
        data = VerifierData.from_rows([trace.get_row(r) for r in rows],
                                      [trace.get_row(r + 1) for r in rows])
        verifier = air.evaluate_transitions(VerifierConstraintContext(data))

        for p, v in zip(prover, verifier):
            assert p.name == v.name
            for k, r in enumerate(rows):
                assert v.value[k] == p.value[r], f"{p.name} differs at row {r}"
