"""Execution trace container."""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from primitives.field import FF
from witness.layout import LAYOUT, TRACE_WIDTH

MIN_TRACE_LENGTH = 16


@dataclass
class ExecutionTrace:
    """Trace matrix plus the statement it was generated for.

    Attributes:
        columns: FF array of shape (length, TRACE_WIDTH)
        num_steps: Executed instructions, excluding the final-state and padding rows
        public_inputs: Public inputs the stack was initialized with
        outputs: Top-of-stack values read from the last row
        program_digest: Accumulator value in the last row
    """
    columns: np.ndarray
    num_steps: int
    public_inputs: Tuple[int, ...]
    outputs: Tuple[int, ...]
    program_digest: Tuple[int, ...]

    @property
    def length(self) -> int:
        return self.columns.shape[0]

    @property
    def width(self) -> int:
        return self.columns.shape[1]

    def column(self, name: str, index: int = 0) -> np.ndarray:
        return self.columns[:, LAYOUT.index(name, index)]

    def get_row(self, i: int) -> List[int]:
        return [int(v) for v in self.columns[i]]

    def get(self, name: str, index: int, row: int) -> int:
        return int(self.columns[row, LAYOUT.index(name, index)])


def rows_to_matrix(rows: List[List[int]]) -> np.ndarray:
    assert all(len(r) == TRACE_WIDTH for r in rows)
    return FF(rows)
