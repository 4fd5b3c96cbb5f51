"""Trace extension and commitment.

The committed matrix holds the blinded trace columns followed by one mask
column. Blinding adds (x^n - 1) * R(x) to every column polynomial, with R
random of degree < blinding; the sum agrees with the trace on every row, so
the constraints still hold, while any blinding opened points are uniformly
random. The mask is a random polynomial of degree below the composition
bound; FRI runs on composition + mask.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from constraints.air import ProcessorAir
from constraints.base import ProverConstraintContext
from constraints.boundary import LAST_ROW
from primitives.field import FF
from primitives.hashing import HashFunction
from primitives.merkle_tree import MerkleRoot, MerkleTree
from primitives.polynomial import coset_evaluations, to_coefficients
from primitives.transcript import Transcript
from protocol.data import ProverData
from witness.layout import TRACE_WIDTH
from witness.trace import ExecutionTrace

logger = logging.getLogger(__name__)

MERKLE_ARITY = 2

# Index of the mask column in a committed row
MASK_COLUMN = TRACE_WIDTH
COMMITTED_WIDTH = TRACE_WIDTH + 1

SEED_BYTES = 32
_BLINDING_TAG = b"stark-vm/blinding/v1"


@dataclass
class ExtendedTrace:
    """Committed columns evaluated over the coset SHIFT * <w_N>.

    Attributes:
        columns: FF array of shape (N, TRACE_WIDTH), plus the mask column when present
        trace_length: Rows of the original trace
    """
    columns: np.ndarray
    trace_length: int

    @property
    def domain_size(self) -> int:
        return self.columns.shape[0]

    @property
    def stride(self) -> int:
        """LDE rows between a point and its next-row point."""
        return self.domain_size // self.trace_length

    @property
    def mask(self) -> Optional[np.ndarray]:
        if self.columns.shape[1] <= MASK_COLUMN:
            return None
        return self.columns[:, MASK_COLUMN]

    def prover_data(self) -> ProverData:
        return ProverData.from_matrix(self.columns, extend=self.stride)

    def row(self, i: int) -> List[int]:
        return [int(v) for v in self.columns[i]]


def blinding_randomness(hash_fn: HashFunction, seed: Optional[bytes] = None) -> Transcript:
    """Prover-private field element source.

    A hash chain keyed by seed; fresh OS entropy when seed is None. Equal
    seeds give equal proofs.
    """
    if seed is None:
        seed = secrets.token_bytes(SEED_BYTES)
    return Transcript(hash_fn, seed=_BLINDING_TAG + bytes(seed))


def extend(
    trace: ExecutionTrace,
    domain_size: int,
    blinding: int = 0,
    mask_bound: int = 0,
    randomness: Optional[Transcript] = None,
) -> ExtendedTrace:
    """Low-degree extend every trace column onto the coset of size domain_size.

    Args:
        trace: Execution trace
        domain_size: LDE size, a power-of-two multiple of the trace length
        blinding: Random coefficients of R per column, 0 for a plain extension
        mask_bound: Degree bound of the appended mask column, 0 for none
        randomness: Source of R and the mask; required when either is used
    """
    n, width = trace.length, trace.width
    assert domain_size % n == 0 and n + blinding <= domain_size and mask_bound <= domain_size
    if blinding or mask_bound:
        assert randomness is not None, "blinding needs a randomness source"

    n_cols = width + (1 if mask_bound else 0)
    coefficients = FF.Zeros((domain_size, n_cols))
    coefficients[:n, :width] = to_coefficients(trace.columns, n, n_cols=width)

    if blinding:
        r = FF(randomness.get_fields(blinding * width)).reshape(blinding, width)
        coefficients[n:n + blinding, :width] = coefficients[n:n + blinding, :width] + r
        coefficients[:blinding, :width] = coefficients[:blinding, :width] - r
    if mask_bound:
        coefficients[:mask_bound, width] = FF(randomness.get_fields(mask_bound))

    columns = coset_evaluations(coefficients, domain_size, n_cols=n_cols)
    logger.debug("extended %d columns from %d to %d rows (blinding %d, mask bound %d)",
                 width, n, domain_size, blinding, mask_bound)
    return ExtendedTrace(columns=columns, trace_length=n)


def commit(extended: ExtendedTrace, hash_fn: HashFunction) -> Tuple[MerkleRoot, MerkleTree]:
    """Merkle-commit to the extended trace, one leaf per row."""
    tree = MerkleTree(arity=MERKLE_ARITY, hash_fn=hash_fn)
    tree.merkelize(extended.columns)
    return tree.get_root(), tree


def check_constraints(trace: ExecutionTrace, air: ProcessorAir) -> List[Tuple[str, int]]:
    """Evaluate the AIR on the trace domain itself.

    Returns:
        (constraint name, row) for every violated transition or assertion;
        an honest trace yields an empty list
    """
    n = trace.length
    ctx = ProverConstraintContext(ProverData.from_matrix(trace.columns, extend=1))
    failures: List[Tuple[str, int]] = []

    for constraint in air.evaluate_transitions(ctx):
        values = np.asarray(constraint.value)
        for row in np.nonzero(values[:n - 1])[0]:
            failures.append((constraint.name, int(row)))

    for a in air.assertions:
        row = n - 1 if a.row == LAST_ROW else a.row
        if trace.get(a.name, a.index, row) != a.value:
            failures.append((f"{a.name}[{a.index}]", row))
    return failures
