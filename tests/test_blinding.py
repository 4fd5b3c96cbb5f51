"""
Tests for trace blinding.

A verifier who knows the program knows every trace cell except the ones the
secret tapes feed. On an unblinded extension one opened value is enough to
solve for such a cell; on the blinded extension the solution is noise.
"""

import numpy as np
import pytest

from primitives.field import FF, domain_points
from primitives.ntt import NTT
from primitives.polynomial import degree_of, evaluate_coefficients, extend_to_domain, to_coefficients
from program.builder import ProgramBuilder
from program.inputs import ProgramInputs
from protocol.prover import gen_proof
from protocol.stages import MASK_COLUMN, blinding_randomness, extend
from witness.executor import run
from witness.layout import LAYOUT

from tests.conftest import FAST_OPTIONS

SECRET = 123456789
TOP = LAYOUT.index("stack", 0)


def _secret_program():
    """Reads one secret, drops it, leaves 3."""
    builder = ProgramBuilder()
    builder.span("read drop push.3")
    return builder.build()


@pytest.fixture(scope="module")
def secret_traces():
    """Trace with the secret, and the same run with the secret set to zero."""
    program = _secret_program()
    trace, outputs = run(program, ProgramInputs(secret_a=(SECRET,)))
    baseline, _ = run(program, ProgramInputs(secret_a=(0,)))
    assert outputs == [3]
    return trace, baseline


def _recover(top: FF, baseline_top: FF, indicator: FF) -> FF:
    """Solve top = baseline + secret * indicator at every point."""
    return (top - baseline_top) / indicator


def _attack_inputs(trace, baseline, domain_size: int):
    n = trace.length
    diff = trace.columns[:, TOP] - baseline.columns[:, TOP]
    assert {int(v) for v in diff} == {0, SECRET}
    indicator = diff / FF(SECRET)
    return (extend_to_domain(baseline.columns[:, TOP].copy(), n, domain_size),
            extend_to_domain(indicator, n, domain_size))


def _coset_coefficients(values: FF, domain_size: int) -> FF:
    """Coefficients of the polynomial whose coset evaluations are values."""
    return to_coefficients(values, domain_size) / NTT(domain_size).shift_powers.flatten()


class TestSecretRecovery:
    """Interpolating opened values against the known rows of the trace."""

    def test_plain_extension_reveals_secret(self, secret_traces) -> None:
        trace, baseline = secret_traces
        size = FAST_OPTIONS.lde_domain_size(trace.length)
        baseline_ext, indicator_ext = _attack_inputs(trace, baseline, size)

        plain = extend(trace, size)
        recovered = _recover(plain.columns[:, TOP], baseline_ext, indicator_ext)
        assert all(int(v) == SECRET for v in recovered)

    def test_blinded_extension_hides_secret(self, secret_traces) -> None:
        trace, baseline = secret_traces
        size = FAST_OPTIONS.lde_domain_size(trace.length)
        baseline_ext, indicator_ext = _attack_inputs(trace, baseline, size)

        blinded = extend(trace, size, blinding=FAST_OPTIONS.blinding_factor,
                         randomness=blinding_randomness(FAST_OPTIONS.hash_fn, b"seed"))
        recovered = _recover(blinded.columns[:, TOP], baseline_ext, indicator_ext)
        assert not any(int(v) == SECRET for v in recovered)

    def test_proof_openings_are_not_trace_values(self, secret_traces) -> None:
        """No opened top-of-stack value lies on the unblinded extension."""
        trace, _ = secret_traces
        size = FAST_OPTIONS.lde_domain_size(trace.length)
        plain_values = {int(v) for v in extend(trace, size).columns[:, TOP]}

        proof = gen_proof(trace, FAST_OPTIONS)
        opened = {q.current.v[TOP] for q in proof.trace_queries} | {q.next.v[TOP] for q in proof.trace_queries}
        assert not opened & plain_values


class TestBlindedExtension:

    @pytest.fixture(scope="class")
    def blinded(self, secret_traces):
        trace, _ = secret_traces
        size = FAST_OPTIONS.lde_domain_size(trace.length)
        extended = extend(trace, size, blinding=FAST_OPTIONS.blinding_factor, mask_bound=40,
                          randomness=blinding_randomness(FAST_OPTIONS.hash_fn, b"seed"))
        return trace, extended

    def test_agrees_with_trace_on_rows(self, blinded) -> None:
        trace, extended = blinded
        coeffs = _coset_coefficients(extended.columns[:, TOP].copy(), extended.domain_size)
        rows = domain_points(trace.length.bit_length() - 1)
        for i in (0, 1, 2, trace.length - 1):
            assert evaluate_coefficients(coeffs, rows[i]) == trace.columns[i, TOP]

    def test_column_degree(self, blinded) -> None:
        trace, extended = blinded
        coeffs = _coset_coefficients(extended.columns[:, TOP].copy(), extended.domain_size)
        assert degree_of(coeffs) == trace.length + FAST_OPTIONS.blinding_factor - 1

    def test_mask_column(self, blinded) -> None:
        trace, extended = blinded
        assert extended.columns.shape[1] == MASK_COLUMN + 1
        assert np.array_equal(extended.mask, extended.columns[:, MASK_COLUMN])
        assert degree_of(_coset_coefficients(extended.mask.copy(), extended.domain_size)) < 40
        assert extended.stride == extended.domain_size // trace.length

    def test_plain_extension_has_no_mask(self, secret_traces) -> None:
        trace, _ = secret_traces
        assert extend(trace, 4 * trace.length).mask is None


class TestRandomnessSource:

    def test_seeded_source_repeats(self) -> None:
        a = blinding_randomness(FAST_OPTIONS.hash_fn, b"seed").get_fields(8)
        b = blinding_randomness(FAST_OPTIONS.hash_fn, b"seed").get_fields(8)
        assert a == b

    def test_sources_differ(self) -> None:
        seeded = blinding_randomness(FAST_OPTIONS.hash_fn, b"seed").get_fields(8)
        assert blinding_randomness(FAST_OPTIONS.hash_fn, b"other").get_fields(8) != seeded
        assert blinding_randomness(FAST_OPTIONS.hash_fn).get_fields(8) != \
            blinding_randomness(FAST_OPTIONS.hash_fn).get_fields(8)
