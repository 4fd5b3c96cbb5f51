"""Polynomial form conversions over power-of-two domains.

The prover and FRI work on evaluations; these helpers are the only places
that switch between evaluation and coefficient form, so callers never pick
roots of unity themselves.
"""

import numpy as np

from primitives.field import FF
from primitives.ntt import NTT


def to_coefficients(evaluations: np.ndarray, domain_size: int, n_cols: int = 1) -> np.ndarray:
    """Interpolate values on <w_N> (flat, or one column per polynomial)."""
    return NTT(domain_size).intt(evaluations, n_cols=n_cols)


def to_evaluations(coefficients: np.ndarray, domain_size: int, n_cols: int = 1) -> np.ndarray:
    return NTT(domain_size).ntt(coefficients, n_cols=n_cols)


def extend_to_domain(
    evaluations: np.ndarray,
    original_size: int,
    extended_size: int,
    n_cols: int = 1,
) -> np.ndarray:
    """Low-degree extension.

    Takes values on <w_n> and returns the same polynomials evaluated on the
    coset SHIFT * <w_N>, N = extended_size.
    """
    return NTT(original_size).extend_pol(evaluations, extended_size, n_cols)


def coset_evaluations(coefficients: np.ndarray, domain_size: int, n_cols: int = 1) -> np.ndarray:
    """Evaluate polynomials of degree < domain_size on the coset SHIFT * <w_N>.

    coefficients holds domain_size rows, zero-padded above each degree.
    """
    ntt = NTT(domain_size)
    coefficients = FF(coefficients)
    shift = ntt.shift_powers if coefficients.ndim == 2 else ntt.shift_powers.flatten()
    return ntt.ntt(coefficients * shift, n_cols=n_cols)


def evaluate_coefficients(coefficients: np.ndarray, x):
    """Horner evaluation; x may be a scalar or an FF array."""
    acc = FF.Zeros(np.shape(x)) if np.ndim(x) else FF(0)
    for c in FF(coefficients)[::-1]:
        acc = acc * x + c
    return acc


def degree_of(coefficients: np.ndarray) -> int:
    """Index of the highest non-zero coefficient, -1 for the zero polynomial."""
    nonzero = [i for i, c in enumerate(coefficients) if int(c) != 0]
    return nonzero[-1] if nonzero else -1
