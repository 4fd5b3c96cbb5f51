"""Number Theoretic Transform for Goldilocks field.

Radix-2 Cooley-Tukey over galois FieldArrays. Every butterfly stage works on
the whole (N, n_cols) batch at once, so extending a trace costs one pass per
stage rather than one pass per column.
"""

from functools import cached_property

import numpy as np

from primitives.field import FF, SHIFT, get_omega, get_omega_inv

# --- NTT Engine ---

class NTT:
    """Forward and inverse transforms over the subgroup <w_N>.

    Inputs are flat arrays (one polynomial) or (N, n_cols) matrices holding one
    polynomial per column; outputs keep the input's shape.
    """

    def __init__(self, domain_size: int) -> None:
        assert domain_size > 0 and domain_size & (domain_size - 1) == 0, \
            f"domain size {domain_size} is not a power of 2"

        self.n = domain_size
        self.n_bits = domain_size.bit_length() - 1

        half = max(1, domain_size // 2)
        self.roots = _powers(get_omega(self.n_bits), half)
        self.roots_inv = _powers(get_omega_inv(self.n_bits), half)
        self.n_inv = FF(domain_size) ** -1

    @cached_property
    def shift_powers(self) -> FF:
        """SHIFT^i for i < N, as a column vector."""
        return _powers(int(SHIFT), self.n).reshape(self.n, 1)

    def ntt(self, coeffs: np.ndarray, n_cols: int = 1) -> np.ndarray:
        """Coefficients -> evaluations at w^0 .. w^(N-1)."""
        if coeffs.size == 0:
            return coeffs
        matrix = self._columns(coeffs, n_cols)
        out = _butterflies(matrix, self.roots)
        return out.flatten() if coeffs.ndim == 1 else out

    def intt(self, evals: np.ndarray, n_cols: int = 1, extend: bool = False) -> np.ndarray:
        """Evaluations -> coefficients.

        With extend=True the coefficients are scaled by SHIFT^i, so a forward
        NTT of the (zero-padded) result evaluates the polynomial on the coset
        SHIFT * <w>.
        """
        if evals.size == 0:
            return evals
        matrix = self._columns(evals, n_cols)
        out = _butterflies(matrix, self.roots_inv) * self.n_inv
        if extend:
            out = out * self.shift_powers
        return out.flatten() if evals.ndim == 1 else out

    def extend_pol(self, src: np.ndarray, n_extended: int, n_cols: int = 1) -> np.ndarray:
        """Values on <w_n> -> values on SHIFT * <w_N>, N = n_extended."""
        if n_cols == 0:
            return src
        assert n_extended % self.n == 0, f"cannot extend {self.n} rows to {n_extended}"

        padded = FF.Zeros((n_extended, n_cols))
        padded[:self.n, :] = self.intt(self._columns(src, n_cols), n_cols=n_cols, extend=True)
        out = NTT(n_extended).ntt(padded, n_cols=n_cols)
        return out.flatten() if src.ndim == 1 else out

    def _columns(self, values: np.ndarray, n_cols: int) -> FF:
        values = FF(values)
        if values.ndim == 1:
            values = values.reshape(-1, n_cols)
        elif values.ndim != 2:
            raise ValueError(f"expected a flat array or a matrix, got {values.ndim} dimensions")
        assert values.shape == (self.n, n_cols), \
            f"expected ({self.n}, {n_cols}) values, got {values.shape}"
        return values


# --- Helpers ---

def _butterflies(values: np.ndarray, roots: np.ndarray) -> np.ndarray:
    """Iterative radix-2 transform of every column of values.

    roots holds w^k for k < N/2 where w is the (inverse) root matching N.
    """
    n, n_cols = values.shape
    if n == 1:
        return values.copy()

    a = values[_bit_reverse_indices(n)]
    m = 2
    while m <= n:
        half = m // 2
        twiddles = roots[::n // m][:half].reshape(1, half, 1)
        blocks = a.reshape(n // m, m, n_cols)
        even = blocks[:, :half, :]
        odd = blocks[:, half:, :] * twiddles
        a = np.concatenate((even + odd, even - odd), axis=1).reshape(n, n_cols)
        m *= 2
    return a


def _bit_reverse_indices(n: int) -> np.ndarray:
    """Permutation taking natural order to bit-reversed order."""
    indices = np.arange(n)
    rev = np.zeros(n, dtype=np.int64)
    for _ in range(n.bit_length() - 1):
        rev = (rev << 1) | (indices & 1)
        indices = indices >> 1
    return rev


def _powers(base: int, count: int) -> FF:
    out = FF.Zeros(count)
    out[0] = FF(1)
    b = FF(base)
    for i in range(1, count):
        out[i] = out[i - 1] * b
    return out
