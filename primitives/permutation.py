"""Algebraic hash round over a 4-element Goldilocks state.

One round is used per VM step, both by the RESCR instruction (user hashing of
the top four stack slots) and by the program-hash accumulator:

    a = state + (k + RC0, RC1, RC2, RC3)
    a0 = a0^7
    out = M4 * a

The S-box touches only the first element so that one round needs three
auxiliary trace registers (a0^2, a0^3, a0^4) to keep constraints at degree 3.
"""

import hashlib
from typing import List, Sequence

from primitives.field import GOLDILOCKS_PRIME

STATE_WIDTH = 4
DIGEST_ELEMENTS = 4

_CONSTANTS_SEED = b"stark-vm/hash-round/constants"


def _derive_round_constants(n: int) -> List[int]:
    """Derive n canonical field elements from a fixed seed (SHAKE-128, rejection sampled)."""
    out: List[int] = []
    stream = hashlib.shake_128(_CONSTANTS_SEED).digest(8 * 4 * n)
    for i in range(0, len(stream), 8):
        value = int.from_bytes(stream[i:i + 8], "little")
        if value < GOLDILOCKS_PRIME:
            out.append(value)
        if len(out) == n:
            break
    assert len(out) == n
    return out


ROUND_CONSTANTS: List[int] = _derive_round_constants(STATE_WIDTH)

# Row-major form of matmul_m4, for reference and tests
MDS: List[List[int]] = [
    [5, 7, 1, 3],
    [4, 6, 1, 1],
    [1, 3, 5, 7],
    [1, 1, 4, 6],
]


def matmul_m4(x: Sequence):
    """Apply the 4x4 MDS matrix using additions only.

    Works for Python ints (caller reduces) and for FF arrays alike.
    """
    t0 = x[0] + x[1]
    t1 = x[2] + x[3]
    t2 = x[1] + x[1] + t1
    t3 = x[3] + x[3] + t0
    t1_2 = t1 + t1
    t0_2 = t0 + t0
    t4 = t1_2 + t1_2 + t3
    t5 = t0_2 + t0_2 + t2
    t6 = t3 + t5
    t7 = t2 + t4

    return [t6, t5, t7, t4]


def sbox_helpers(a0: int):
    """Return (a0^2, a0^3, a0^4); a0^7 is the product of the last two."""
    sq = a0 * a0 % GOLDILOCKS_PRIME
    cube = sq * a0 % GOLDILOCKS_PRIME
    quad = sq * sq % GOLDILOCKS_PRIME
    return sq, cube, quad


def round_input(state: Sequence[int], k: int) -> List[int]:
    """State after adding round constants and the round index k."""
    return [
        (state[0] + k + ROUND_CONSTANTS[0]) % GOLDILOCKS_PRIME,
        (state[1] + ROUND_CONSTANTS[1]) % GOLDILOCKS_PRIME,
        (state[2] + ROUND_CONSTANTS[2]) % GOLDILOCKS_PRIME,
        (state[3] + ROUND_CONSTANTS[3]) % GOLDILOCKS_PRIME,
    ]


def hash_round(state: Sequence[int], k: int) -> List[int]:
    """Apply one round of the permutation with round index k."""
    a = round_input(state, k)
    _, cube, quad = sbox_helpers(a[0])
    a[0] = cube * quad % GOLDILOCKS_PRIME
    return [v % GOLDILOCKS_PRIME for v in matmul_m4(a)]


def absorb(state: Sequence[int], code: int, value: int, k: int) -> List[int]:
    """Absorb (code, value) into the first two state elements, then apply a round."""
    mixed = [
        (state[0] + code) % GOLDILOCKS_PRIME,
        (state[1] + value) % GOLDILOCKS_PRIME,
        state[2],
        state[3],
    ]
    return hash_round(mixed, k)
