"""Clean data structures for constraint evaluation.

Architecture Overview:
    The prover and verifier hand named columns to the constraint modules:

    1. ProverData
       - Columns keyed by (name, index), each an FF array over a whole domain
       - extend is the row stride of the domain: 1 on the trace domain,
         LDE size over trace length on the LDE domain

    2. VerifierData
       - Values keyed by (name, index, offset), offset 0 for the opened row and
         1 for its successor; each value is an FF array with one entry per query

Usage:
    prover_data = ProverData.from_matrix(extended_columns, extend=stride)
    ctx = ProverConstraintContext(prover_data)
    constraints = air.evaluate_transitions(ctx)
"""

from dataclasses import dataclass, field
from typing import Dict, Sequence, Tuple

import numpy as np

from primitives.field import FF
from witness.layout import LAYOUT

FFPoly = FF  # Array of base field elements


@dataclass
class ProverData:
    """Polynomial data for constraint module evaluation.

    Attributes:
        columns: Polynomial columns keyed by (name, index)
        extend: Row stride of one trace step (N_ext / N), 1 for the base domain
    """
    columns: Dict[Tuple[str, int], FFPoly] = field(default_factory=dict)
    extend: int = 1

    @classmethod
    def from_matrix(cls, matrix: np.ndarray, extend: int = 1) -> "ProverData":
        """Split an (N, TRACE_WIDTH) matrix into named columns."""
        columns = {key: matrix[:, LAYOUT.index(*key)] for key in LAYOUT.keys()}
        return cls(columns=columns, extend=extend)


@dataclass
class VerifierData:
    """Evaluation data for constraint module verification.

    Attributes:
        evals: Values keyed by (name, index, offset)
    """
    evals: Dict[Tuple[str, int, int], FFPoly] = field(default_factory=dict)

    @classmethod
    def from_rows(cls, current: Sequence[Sequence[int]], following: Sequence[Sequence[int]]) -> "VerifierData":
        """Build from opened trace rows, one current/next pair per query."""
        cur = FF([list(row) for row in current])
        nxt = FF([list(row) for row in following])
        evals = {}
        for name, index in LAYOUT.keys():
            col = LAYOUT.index(name, index)
            evals[(name, index, 0)] = cur[:, col]
            evals[(name, index, 1)] = nxt[:, col]
        return cls(evals=evals)
