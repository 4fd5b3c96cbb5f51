"""FRI folding protocol."""

from typing import List, Sequence

from primitives.field import FF, get_omega, get_omega_inv
from primitives.merkle_tree import MerkleRoot, MerkleTree, transpose_for_merkle
from primitives.ntt import NTT
from primitives.polynomial import degree_of, to_coefficients

# --- Type Aliases ---

EvalPoly = FF  # Polynomial in evaluation form over a coset


# --- Internal Helpers ---

def _log2(n: int) -> int:
    return n.bit_length() - 1


def _powers(base: FF, n: int) -> FF:
    out = FF.Zeros(n)
    acc = FF(1)
    for i in range(n):
        out[i] = acc
        acc = acc * base
    return out


def _horner(coeffs: Sequence, z):
    acc = coeffs[len(coeffs) - 1]
    for r in range(len(coeffs) - 2, -1, -1):
        acc = acc * z + coeffs[r]
    return acc


# --- FRI Protocol ---

class FRI:
    """FRI protocol: folding, commitment, and verification.

    A layer of size n lives on the coset shift * <w_n>. Folding by k groups the
    points y * w_k^i (i < k); group g sits at positions g + i * n/k. The folded
    layer lives on shift^k * <w_{n/k}> and its value at g is
    sum_r alpha^r P_r(y_g^k), where P(X) = sum_r X^r P_r(X^k).
    """

    @staticmethod
    def fold(pol: EvalPoly, challenge: int, shift: FF, folding_factor: int) -> EvalPoly:
        """Fold a layer by folding_factor using challenge."""
        n = len(pol)
        n_out = n // folding_factor

        # INTT of every group: c_r = y_g^r * P_r(y_g^k)
        coeffs = NTT(folding_factor).intt(pol.reshape(folding_factor, n_out), n_cols=n_out)

        # Evaluate at challenge / y_g (Horner over r)
        w_inv = FF(get_omega_inv(_log2(n)))
        y_inv = (shift ** -1) * _powers(w_inv, n_out)
        z = FF(challenge) * y_inv
        return _horner([coeffs[r] for r in range(folding_factor)], z)

    @staticmethod
    def merkelize(pol: EvalPoly, tree: MerkleTree, folding_factor: int) -> MerkleRoot:
        """Commit to FRI layer via Merkle tree, one folding group per leaf."""
        n_groups = len(pol) // folding_factor
        tree.merkelize(transpose_for_merkle(pol, n_groups))
        return tree.get_root()

    @staticmethod
    def verify_fold(
        siblings: Sequence[int],
        idx: int,
        challenge: int,
        layer_bits: int,
        shift: FF,
    ) -> int:
        """Verify fold step: recompute the folded value at idx from one opened group."""
        folding_factor = len(siblings)
        coeffs = NTT(folding_factor).intt(FF(list(siblings)))

        y = shift * FF(get_omega(layer_bits)) ** idx
        z = FF(challenge) * y ** -1
        return int(_horner(list(coeffs), z))

    @staticmethod
    def prove_queries(
        queries: List[int],
        trees: List[MerkleTree],
        layer_sizes: List[int],
        folding_factor: int,
    ):
        """Generate Merkle proofs for query indices, per layer."""
        return [
            [tree.get_query_proof(q % (size // folding_factor)) for q in queries]
            for tree, size in zip(trees, layer_sizes)
        ]

    @staticmethod
    def final_degree(values: EvalPoly) -> int:
        """Degree of the polynomial interpolating a final layer (-1 if zero).

        The coset shift only scales coefficients, so degree is read off the
        plain INTT.
        """
        coeffs = to_coefficients(values, len(values))
        return degree_of(coeffs)
