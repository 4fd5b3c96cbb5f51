"""End-to-end tests: execute a program, prove it, verify the proof.

Proofs use FAST_OPTIONS unless a test is about the options themselves. FAST_OPTIONS
sit below the default security floor, so verify here lowers the floor to zero;
the security policy tests call vm.verify directly.
"""

import copy

import pytest

from primitives.field import FF, GOLDILOCKS_PRIME
from primitives.hashing import HashFunction
from program.builder import ProgramBuilder
from program.errors import ConfigurationError, ExecutionError
from program.inputs import ProgramInputs
from protocol import vm
from protocol.options import DEFAULT_MIN_SECURITY_BITS, ProofOptions
from protocol.prover import gen_proof
from protocol.verifier import VerificationResult, stark_verify
from protocol.vm import execute
from witness.executor import run
from witness.layout import LAYOUT

from tests.conftest import (
    FAST_OPTIONS,
    FIB_RESULT,
    make_add_program,
    make_countdown_program,
    make_fib_program,
    make_switch_program,
)


def verify(program_hash, public_inputs, outputs, proof, min_security_bits: int = 0):
    return vm.verify(program_hash, public_inputs, outputs, proof, min_security_bits=min_security_bits)


@pytest.fixture(scope="module")
def add_run():
    program = make_add_program()
    outputs, proof = execute(program, options=FAST_OPTIONS)
    return program, outputs, proof


@pytest.fixture(scope="module")
def fib_run():
    program = make_fib_program()
    inputs = ProgramInputs.from_public([1, 0])
    outputs, proof = execute(program, inputs, options=FAST_OPTIONS)
    return program, inputs, outputs, proof


class TestHonestProofs:
    """Honest proofs verify."""

    def test_add(self, add_run) -> None:
        program, outputs, proof = add_run
        assert outputs == [8]
        result = verify(program.hash(), [], outputs, proof)
        assert result.valid, result.reason
        assert result

    def test_fibonacci(self, fib_run) -> None:
        program, inputs, outputs, proof = fib_run
        assert outputs == [FIB_RESULT]
        assert proof.trace_length == 256
        assert verify(program.hash(), inputs.public, outputs, proof).valid

    @pytest.mark.parametrize("cond,expected", [(1, 15), (0, 25)])
    def test_switch_both_branches(self, cond: int, expected: int) -> None:
        """Either branch proves against the same program hash."""
        program = make_switch_program()
        outputs, proof = execute(program, ProgramInputs.from_public([cond, 5]), options=FAST_OPTIONS)
        assert outputs == [expected]
        assert verify(program.hash(), [cond, 5], outputs, proof).valid

    def test_countdown_loop(self) -> None:
        program = make_countdown_program()
        outputs, proof = execute(program, ProgramInputs.from_public([1, 3]), options=FAST_OPTIONS)
        assert outputs == [0]
        assert verify(program.hash(), [1, 3], outputs, proof).valid

    def test_secret_inputs_stay_out_of_statement(self) -> None:
        builder = ProgramBuilder()
        builder.span("read read mul assert")
        program = builder.build()
        inputs = ProgramInputs(public=(1,), secret_a=(3, pow(3, -1, GOLDILOCKS_PRIME)))
        outputs, proof = execute(program, inputs, options=FAST_OPTIONS)
        assert outputs == [1]
        assert verify(program.hash(), [1], outputs, proof).valid

    def test_multiple_outputs(self) -> None:
        builder = ProgramBuilder()
        builder.span("dup2 add")
        program = builder.build()
        outputs, proof = execute(program, ProgramInputs.from_public([2, 3]), num_outputs=3,
                                 options=FAST_OPTIONS)
        assert outputs == [5, 2, 3]
        assert verify(program.hash(), [2, 3], outputs, proof).valid

    def test_default_options(self) -> None:
        program = make_add_program()
        outputs, proof = execute(program)
        assert proof.options == ProofOptions()
        assert vm.verify(program.hash(), [], outputs, proof).valid

    @pytest.mark.parametrize("options", [
        ProofOptions(num_queries=4, blowup_factor=4, grinding_factor=0, hash_fn=HashFunction.SHA3_256),
        ProofOptions(num_queries=4, blowup_factor=8, grinding_factor=0, folding_factor=2),
        ProofOptions(num_queries=4, blowup_factor=4, grinding_factor=0, folding_factor=8),
        ProofOptions(num_queries=3, blowup_factor=4, grinding_factor=6),
    ])
    def test_option_variants(self, options: ProofOptions) -> None:
        program = make_switch_program()
        outputs, proof = execute(program, ProgramInputs.from_public([0, 1]), options=options)
        assert verify(program.hash(), [0, 1], outputs, proof).valid

    def test_serialized_proof(self, add_run) -> None:
        program, outputs, proof = add_run
        assert verify(program.hash(), [], outputs, proof.to_bytes()).valid

    def test_constraint_check_before_proving(self) -> None:
        trace, outputs = run(make_fib_program(10), ProgramInputs.from_public([1, 0]))
        proof = gen_proof(trace, FAST_OPTIONS, check=True)
        assert stark_verify(make_fib_program(10).hash(), [1, 0], outputs, proof, min_security_bits=0).valid

    def test_deterministic_given_seed(self) -> None:
        program = make_add_program()
        outputs, first = execute(program, options=FAST_OPTIONS, seed=b"fixed seed")
        _, again = execute(program, options=FAST_OPTIONS, seed=b"fixed seed")
        assert again.to_bytes() == first.to_bytes()
        assert verify(program.hash(), [], outputs, first).valid

    def test_unseeded_proofs_differ(self, add_run) -> None:
        program, outputs, proof = add_run
        _, again = execute(program, options=FAST_OPTIONS)
        assert again.trace_root != proof.trace_root
        assert verify(program.hash(), [], outputs, again).valid


class TestExecuteErrors:

    def test_execution_error_yields_no_proof(self) -> None:
        with pytest.raises(ExecutionError):
            execute(make_switch_program(), ProgramInputs.from_public([3, 5]), options=FAST_OPTIONS)

    def test_too_many_outputs(self) -> None:
        with pytest.raises(ConfigurationError):
            execute(make_add_program(), num_outputs=9, options=FAST_OPTIONS)

    def test_trace_longer_than_options_allow(self) -> None:
        options = ProofOptions(num_queries=4, blowup_factor=4, grinding_factor=0, max_trace_length=128)
        with pytest.raises(ExecutionError):
            execute(make_fib_program(), ProgramInputs.from_public([1, 0]), options=options)


def _rejected(result: VerificationResult, reason: str = "") -> bool:
    return not result.valid and reason in result.reason


class TestStatementTampering:
    """A proof is bound to its program, inputs and outputs."""

    def test_wrong_output(self, fib_run) -> None:
        program, inputs, outputs, proof = fib_run
        assert _rejected(verify(program.hash(), inputs.public, [outputs[0] + 1], proof))

    def test_extra_output(self, fib_run) -> None:
        program, inputs, outputs, proof = fib_run
        assert _rejected(verify(program.hash(), inputs.public, outputs + [1], proof))

    def test_wrong_input(self, fib_run) -> None:
        program, _, outputs, proof = fib_run
        assert _rejected(verify(program.hash(), [1, 1], outputs, proof))

    def test_wrong_program(self, fib_run) -> None:
        _, inputs, outputs, proof = fib_run
        assert _rejected(verify(make_fib_program(48).hash(), inputs.public, outputs, proof))

    def test_switch_proof_does_not_transfer_between_branches(self) -> None:
        program = make_switch_program()
        outputs, proof = execute(program, ProgramInputs.from_public([1, 5]), options=FAST_OPTIONS)
        assert _rejected(verify(program.hash(), [0, 5], outputs, proof))
        assert _rejected(verify(program.hash(), [0, 5], [25], proof))

    def test_malformed_program_hash(self, add_run) -> None:
        _, outputs, proof = add_run
        assert _rejected(verify(b"\x00" * 31, [], outputs, proof), "invalid program hash")
        assert _rejected(verify(b"\xff" * 32, [], outputs, proof), "invalid program hash")

    def test_statement_bounds(self, add_run) -> None:
        program, outputs, proof = add_run
        assert _rejected(verify(program.hash(), list(range(9)), outputs, proof), "public inputs")
        assert _rejected(verify(program.hash(), [], [8] * 9, proof), "outputs")
        assert _rejected(verify(program.hash(), [], [GOLDILOCKS_PRIME], proof), "canonical")


class TestProofTampering:
    """Altered proofs are rejected with a reason, never an exception."""

    def test_trace_value(self, add_run) -> None:
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        col = LAYOUT.index("stack", 0)
        bad.trace_queries[0].current.v[col] = (bad.trace_queries[0].current.v[col] + 1) % GOLDILOCKS_PRIME
        assert _rejected(verify(program.hash(), [], outputs, bad), "trace opening")

    def test_trace_next_row(self, add_run) -> None:
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.trace_queries[1].next.v[0] = (bad.trace_queries[1].next.v[0] + 1) % GOLDILOCKS_PRIME
        assert _rejected(verify(program.hash(), [], outputs, bad), "trace opening")

    def test_trace_root(self, add_run) -> None:
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.trace_root = bytes(32)
        assert _rejected(verify(program.hash(), [], outputs, bad))

    def test_fri_value(self, fib_run) -> None:
        program, inputs, outputs, proof = fib_run
        bad = copy.deepcopy(proof)
        bad.fri_queries[1][0].v[0] = (bad.fri_queries[1][0].v[0] + 1) % GOLDILOCKS_PRIME
        assert _rejected(verify(program.hash(), inputs.public, outputs, bad), "FRI layer 1")

    def test_composition_value(self, fib_run) -> None:
        program, inputs, outputs, proof = fib_run
        bad = copy.deepcopy(proof)
        for v in range(len(bad.fri_queries[0][0].v)):
            bad.fri_queries[0][0].v[v] = (bad.fri_queries[0][0].v[v] + 1) % GOLDILOCKS_PRIME
        assert _rejected(verify(program.hash(), inputs.public, outputs, bad))

    def test_final_layer(self, fib_run) -> None:
        program, inputs, outputs, proof = fib_run
        bad = copy.deepcopy(proof)
        bad.final_pol[0] = (bad.final_pol[0] + 1) % GOLDILOCKS_PRIME
        assert _rejected(verify(program.hash(), inputs.public, outputs, bad))

    def test_nonce(self) -> None:
        options = ProofOptions(num_queries=4, blowup_factor=4, grinding_factor=8)
        program = make_add_program()
        outputs, proof = execute(program, options=options)
        assert verify(program.hash(), [], outputs, proof).valid

        bad = copy.deepcopy(proof)
        bad.nonce += 1
        assert _rejected(verify(program.hash(), [], outputs, bad))

    def test_missing_query(self, add_run) -> None:
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.trace_queries.pop()
        assert _rejected(verify(program.hash(), [], outputs, bad), "trace openings")

    def test_wrong_row_width(self, add_run) -> None:
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.trace_queries[0].current.v.append(0)
        assert _rejected(verify(program.hash(), [], outputs, bad), "must hold")

    @pytest.mark.parametrize("length", [8, 15, 48, 1 << 21])
    def test_trace_length(self, add_run, length: int) -> None:
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.trace_length = length
        assert _rejected(verify(program.hash(), [], outputs, bad), "invalid trace length")

    def test_longer_claimed_trace(self, add_run) -> None:
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.trace_length = 32
        assert _rejected(verify(program.hash(), [], outputs, bad))

    def test_malformed_bytes(self, add_run) -> None:
        program, outputs, proof = add_run
        assert _rejected(verify(program.hash(), [], outputs, proof.to_bytes()[:-3]), "malformed proof")
        assert _rejected(verify(program.hash(), [], outputs, b"not a proof"), "malformed proof")

    def test_cheating_trace_fails_low_degree_test(self) -> None:
        """A prover that commits to a trace violating a transition cannot pass FRI."""
        trace, outputs = run(make_add_program(), ProgramInputs.none())
        columns = trace.columns.copy()
        columns[1, LAYOUT.index("stack", 0)] = columns[1, LAYOUT.index("stack", 0)] + FF(1)
        trace.columns = columns

        proof = gen_proof(trace, FAST_OPTIONS)
        assert _rejected(verify(make_add_program().hash(), [], outputs, proof))

    def test_short_trace_path(self, add_run) -> None:
        """A path missing its top level cannot stand in for the full opening."""
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.trace_queries[0].current.mp = bad.trace_queries[0].current.mp[:-1]
        assert _rejected(verify(program.hash(), [], outputs, bad), "trace opening")

    def test_short_fri_path(self, fib_run) -> None:
        program, inputs, outputs, proof = fib_run
        bad = copy.deepcopy(proof)
        bad.fri_queries[0][0].mp = bad.fri_queries[0][0].mp[1:]
        assert _rejected(verify(program.hash(), inputs.public, outputs, bad), "FRI layer 0")

    def test_mask_value(self, add_run) -> None:
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.trace_queries[0].current.v[-1] = (bad.trace_queries[0].current.v[-1] + 1) % GOLDILOCKS_PRIME
        assert _rejected(verify(program.hash(), [], outputs, bad), "trace opening")

    @pytest.mark.parametrize("proof", [None, "proof", 42, {"trace_length": 16}])
    def test_not_a_proof(self, proof) -> None:
        result = verify(make_add_program().hash(), [], [8], proof)
        assert _rejected(result, "malformed proof")


WEAK_OPTIONS = ProofOptions(num_queries=1, blowup_factor=4, grinding_factor=0)


class TestSecurityPolicy:
    """The verifier, not the prover, decides how much security a proof must carry."""

    @pytest.fixture(scope="class")
    def weak_run(self):
        program = make_add_program()
        outputs, proof = execute(program, options=WEAK_OPTIONS)
        return program, outputs, proof

    def test_weak_options_rejected(self, weak_run) -> None:
        program, outputs, proof = weak_run
        assert outputs == [8]
        assert _rejected(vm.verify(program.hash(), [], outputs, proof), "bits of security")
        assert _rejected(vm.verify(program.hash(), [], [9], proof), "bits of security")

    def test_weak_options_rejected_before_checks(self, weak_run) -> None:
        """A weak proof is turned away on its options alone, body unread."""
        program, _, proof = weak_run
        bad = copy.deepcopy(proof)
        bad.trace_queries = []
        bad.fri_roots = []
        result = vm.verify(program.hash(), [], [9], bad)
        assert _rejected(result, "bits of security")

    def test_weak_options_accepted_by_explicit_floor(self, weak_run) -> None:
        program, outputs, proof = weak_run
        assert vm.verify(program.hash(), [], outputs, proof, min_security_bits=0).valid

    def test_floor_is_configurable(self, add_run) -> None:
        program, outputs, proof = add_run
        level = FAST_OPTIONS.security_level(proof.trace_length)
        assert vm.verify(program.hash(), [], outputs, proof, min_security_bits=level).valid
        assert _rejected(vm.verify(program.hash(), [], outputs, proof, min_security_bits=level + 1),
                         "bits of security")

    def test_default_floor(self, add_run) -> None:
        program, outputs, proof = add_run
        assert FAST_OPTIONS.security_level(proof.trace_length) < DEFAULT_MIN_SECURITY_BITS
        assert _rejected(vm.verify(program.hash(), [], outputs, proof), "bits of security")

    def test_relabelled_options_rejected(self, add_run) -> None:
        """Claiming stronger options than the proof was made with breaks the transcript."""
        program, outputs, proof = add_run
        bad = copy.deepcopy(proof)
        bad.options = ProofOptions(num_queries=FAST_OPTIONS.num_queries, blowup_factor=FAST_OPTIONS.blowup_factor,
                                   grinding_factor=FAST_OPTIONS.grinding_factor, hash_fn=HashFunction.SHA3_256)
        assert _rejected(verify(program.hash(), [], outputs, bad))
