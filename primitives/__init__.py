"""Primitives - Low-level cryptographic and mathematical building blocks."""

from primitives.field import (
    FF,
    GOLDILOCKS_PRIME,
    SHIFT,
    SHIFT_INV,
    W,
    W_INV,
    batch_inverse,
    get_omega,
    get_omega_inv,
)
from primitives.hashing import (
    DIGEST_SIZE,
    Digest,
    HashFunction,
    hash_bytes,
    hash_elements,
)
from primitives.merkle_tree import (
    LeafData,
    MerkleRoot,
    MerkleTree,
    QueryProof,
    transpose_for_merkle,
)
from primitives.ntt import NTT
from primitives.permutation import absorb, hash_round
from primitives.transcript import Transcript

__all__ = [
    # Field
    "FF",
    "GOLDILOCKS_PRIME",
    "W",
    "W_INV",
    "SHIFT",
    "SHIFT_INV",
    "batch_inverse",
    "get_omega",
    "get_omega_inv",
    # Hashing
    "DIGEST_SIZE",
    "Digest",
    "HashFunction",
    "hash_bytes",
    "hash_elements",
    # NTT
    "NTT",
    # Merkle Tree
    "MerkleTree",
    "MerkleRoot",
    "QueryProof",
    "LeafData",
    "transpose_for_merkle",
    # Algebraic hash
    "hash_round",
    "absorb",
    # Transcript
    "Transcript",
]
