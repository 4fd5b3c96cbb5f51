"""Base classes for constraint evaluation.

A ConstraintContext hands out trace columns by (group, index), either as whole
LDE columns (prover) or as values at the queried rows (verifier). The
same constraint code serves both thanks to galois broadcasting.

Example:
    def eval_constraint(ctx: ConstraintContext):
        a = ctx.col('stack', 0)
        b = ctx.next_col('stack', 0)
        return b - a * a

    prover_result = eval_constraint(ProverConstraintContext(prover_data))
    verifier_result = eval_constraint(VerifierConstraintContext(verifier_data))
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence

import numpy as np

from primitives.field import FF

if TYPE_CHECKING:
    from protocol.data import ProverData, VerifierData

FFPoly = FF  # Array of base field elements

ONE = FF(1)
ZERO = FF(0)


def fsum(values: Sequence[FFPoly]) -> FFPoly:
    """Sum of field values; galois refuses to add a FieldArray to the int 0 that sum() starts from."""
    acc = values[0]
    for v in values[1:]:
        acc = acc + v
    return acc


@dataclass
class Constraint:
    """One evaluated transition constraint.

    Attributes:
        name: Human-readable identifier, used in failure reports
        degree: Upper bound on the constraint's degree in the trace registers
        value: Evaluations (array for prover, per-query array for verifier)
    """
    name: str
    degree: int
    value: FFPoly


class ConstraintContext(ABC):
    """Column access shared by every constraint module."""

    @abstractmethod
    def col(self, name: str, index: int = 0) -> FFPoly:
        """Values of column (name, index) at the current row.

        Returns:
            Prover: array of values at all domain points
            Verifier: values at the queried rows
        """

    @abstractmethod
    def next_col(self, name: str, index: int = 0) -> FFPoly:
        """Values of column (name, index) one trace row later.

        Returns:
            Prover: array shifted by -extend (circular)
            Verifier: values at the queried rows' successors
        """

    def cols(self, name: str, count: int) -> List[FFPoly]:
        return [self.col(name, i) for i in range(count)]

    def next_cols(self, name: str, count: int) -> List[FFPoly]:
        return [self.next_col(name, i) for i in range(count)]


class ProverConstraintContext(ConstraintContext):
    """Prover implementation - returns polynomial arrays over the LDE domain."""

    def __init__(self, data: "ProverData"):
        self._data = data

    def col(self, name: str, index: int = 0) -> FFPoly:
        return self._data.columns[(name, index)]

    def next_col(self, name: str, index: int = 0) -> FFPoly:
        # One trace step is extend rows of the LDE
        extend = self._data.extend
        return np.roll(self.col(name, index), -extend)


class VerifierConstraintContext(ConstraintContext):
    """Verifier implementation - returns values opened at the queried rows."""

    def __init__(self, data: "VerifierData"):
        self._data = data

    def col(self, name: str, index: int = 0) -> FFPoly:
        return self._data.evals[(name, index, 0)]

    def next_col(self, name: str, index: int = 0) -> FFPoly:
        return self._data.evals[(name, index, 1)]


class ShapeConstraintContext(ConstraintContext):
    """Zero-valued scalars; evaluating against it enumerates constraint names and degrees."""

    def col(self, name: str, index: int = 0) -> FFPoly:
        return ZERO

    def next_col(self, name: str, index: int = 0) -> FFPoly:
        return ZERO


class ConstraintModule(ABC):
    """Transition constraints of one part of the processor.

    The same module works for both prover and verifier contexts.
    """

    @abstractmethod
    def evaluate(self, ctx: ConstraintContext) -> List[Constraint]:
        """Evaluate every constraint of the module, in a fixed order."""
