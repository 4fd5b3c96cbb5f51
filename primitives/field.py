"""Goldilocks field GF(p) and domain constants.

Uses galois library for all field arithmetic. FF is the field type used by
every register, hash and polynomial in the VM.
"""

from typing import List, Sequence

import galois
import numpy as np

# --- Field Construction ---

GOLDILOCKS_PRIME = 0xFFFFFFFF00000001

FF = galois.GF(GOLDILOCKS_PRIME)
"""GF(2^64 - 2^32 + 1)."""

ELEMENT_BYTES = 8

# Coset offset of every extended domain
SHIFT = FF(7)
SHIFT_INV = SHIFT ** -1

# W[k] generates the multiplicative subgroup of order 2^k
W: List[int] = [
    1,
    18446744069414584320,
    281474976710656,
    16777216,
    4096,
    64,
    8,
    2198989700608,
    4404853092538523347,
    6434636298004421797,
    4255134452441852017,
    9113133275150391358,
    4355325209153869931,
    4308460244895131701,
    7126024226993609386,
    1873558160482552414,
    8167150655112846419,
    5718075921287398682,
    3411401055030829696,
    8982441859486529725,
    1971462654193939361,
    6553637399136210105,
    8124823329697072476,
    5936499541590631774,
    2709866199236980323,
    8877499657461974390,
    3757607247483852735,
    4969973714567017225,
    2147253751702802259,
    2530564950562219707,
    1905180297017055339,
    3524815499551269279,
    7277203076849721926,
]

# W_INV[k] = 1 / W[k]
W_INV: List[int] = [
    1,
    18446744069414584320,
    18446462594437873665,
    18446742969902956801,
    18442240469788262401,
    18158513693329981441,
    16140901060737761281,
    274873712576,
    9171943329124577373,
    5464760906092500108,
    4088309022520035137,
    6141391951880571024,
    386651765402340522,
    11575992183625933494,
    2841727033376697931,
    8892493137794983311,
    9071788333329385449,
    15139302138664925958,
    14996013474702747840,
    5708508531096855759,
    6451340039662992847,
    5102364342718059185,
    10420286214021487819,
    13945510089405579673,
    17538441494603169704,
    16784649996768716373,
    8974194941257008806,
    16194875529212099076,
    5506647088734794298,
    7731871677141058814,
    16558868196663692994,
    9896756522253134970,
    1644488454024429189,
]

MAX_DOMAIN_BITS = len(W) - 1


def _check_bits(n_bits: int) -> None:
    if n_bits > MAX_DOMAIN_BITS:
        raise ValueError(f"no 2^{n_bits}-th root of unity in the Goldilocks field")


def get_omega(n_bits: int) -> int:
    """Generator of the order 2^n_bits subgroup."""
    _check_bits(n_bits)
    return W[n_bits]


def get_omega_inv(n_bits: int) -> int:
    _check_bits(n_bits)
    return W_INV[n_bits]


def domain_points(n_bits: int, shift: int = 1) -> FF:
    """Return [shift * w^i for i in 0..2^n_bits) as an FF array."""
    n = 1 << n_bits
    points = FF.Zeros(n)
    omega = FF(get_omega(n_bits))
    acc = FF(shift)
    for i in range(n):
        points[i] = acc
        acc = acc * omega
    return points


# --- Conversions ---

def to_ints(values: Sequence) -> List[int]:
    """Convert FF arrays / scalars / ints to a list of canonical Python ints."""
    return [int(v) % GOLDILOCKS_PRIME for v in values]


def is_canonical(value: int) -> bool:
    """True if value is an integer representative in [0, p)."""
    return isinstance(value, int) and 0 <= value < GOLDILOCKS_PRIME


# --- Batch Inversion ---

def batch_inverse(values: FF) -> FF:
    """Invert every element of values with a single field inversion.

    Prefix products a0, a0*a1, ... are inverted once at the end and unwound
    from the back, each step peeling off one factor.

    Raises:
        ZeroDivisionError: If any element is zero
    """
    n = len(values)
    if n == 0:
        return values
    if n == 1:
        return values ** -1

    prefix = np.multiply.accumulate(values)
    acc = prefix[-1] ** -1
    out = FF.Zeros(n)
    for i in range(n - 1, 0, -1):
        out[i] = acc * prefix[i - 1]
        acc = acc * values[i]
    out[0] = acc
    return out
