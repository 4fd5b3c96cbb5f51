"""Constraint composition.

Every constraint value is divided by its zerofier and degree-adjusted to a
common target D = composition_degree_bound - 1:

    C(x) = sum_i q_i(x) * (alpha_i + beta_i * x^(D - d_i))

Transition quotients use (x^n - 1) / (x - g^(n-1)), which vanishes on every
row but the last; boundary quotients use (x - 1) or (x - g^(n-1)). The same
function serves the prover (x = the whole LDE coset) and the verifier
(x = the queried points).
"""

from typing import Dict

from constraints.air import ProcessorAir
from constraints.base import ConstraintContext
from constraints.boundary import FIRST_ROW
from primitives.field import FF, SHIFT, batch_inverse, get_omega
from protocol.challenges import Coefficients

ONE = FF(1)


def last_row_point(trace_length: int) -> FF:
    """g^(n-1) for the trace domain generator g."""
    n_bits = trace_length.bit_length() - 1
    return FF(get_omega(n_bits)) ** (trace_length - 1)


def query_points(positions, domain_bits: int) -> FF:
    """Coset points SHIFT * w_N^p for the given LDE positions."""
    omega = FF(get_omega(domain_bits))
    return FF([int(SHIFT * omega ** p) for p in positions])


def composition_values(
    air: ProcessorAir,
    ctx: ConstraintContext,
    x: FF,
    coefficients: Coefficients,
) -> FF:
    """Evaluate the composition polynomial at the points x.

    Args:
        air: Constraint set of the statement
        ctx: Column values at x (and at x * g for next-row access)
        x: FF array of evaluation points, none of them on the trace domain
        coefficients: One (alpha, beta) pair per constraint, transitions first

    Returns:
        FF array of composition values, one per point
    """
    assert len(coefficients) == air.num_constraints
    n = air.trace_length
    g_last = last_row_point(n)
    target = air.composition_degree_bound - 1
    degrees = air.quotient_degrees()

    # Zerofier inverses
    transition_inv = (x - g_last) * batch_inverse(x ** n - ONE)
    first_inv = batch_inverse(x - ONE)
    last_inv = batch_inverse(x - g_last)

    adjustments: Dict[int, FF] = {}

    def adjust(i: int) -> FF:
        exp = target - degrees[i]
        if exp not in adjustments:
            adjustments[exp] = x ** exp
        alpha, beta = coefficients[i]
        return FF(alpha) + FF(beta) * adjustments[exp]

    acc = FF.Zeros(len(x))
    transitions = air.evaluate_transitions(ctx)
    for i, constraint in enumerate(transitions):
        acc = acc + constraint.value * transition_inv * adjust(i)

    offset = len(transitions)
    for j, assertion in enumerate(air.assertions):
        column = ctx.col(assertion.name, assertion.index)
        inv = first_inv if assertion.row == FIRST_ROW else last_inv
        acc = acc + (column - FF(assertion.value)) * inv * adjust(offset + j)

    return acc
