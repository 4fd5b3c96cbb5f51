"""Processor AIR: the full constraint set for one execution statement."""

from typing import List, Sequence

from .base import Constraint, ConstraintContext, ConstraintModule, ShapeConstraintContext
from .boundary import Assertion, boundary_assertions
from .decoder import DecoderConstraints
from .stack import StackConstraints

MAX_CONSTRAINT_DEGREE = 3


def composition_bound(trace_length: int, blinding: int = 0) -> int:
    """Strict degree bound of the composition polynomial.

    Each trace column has degree below trace_length + blinding once blinded,
    so a degree-D transition quotient stays below this bound.
    """
    return (MAX_CONSTRAINT_DEGREE - 1) * trace_length + MAX_CONSTRAINT_DEGREE * blinding


class ProcessorAir:
    """Transition constraints of every processor module plus the boundary assertions.

    Constraint order is fixed: transitions in module order, then assertions.
    Prover and verifier draw one coefficient pair per constraint in that order.

    Args:
        trace_length: Rows in the trace (power of two)
        public_inputs: Values on the stack in the first row
        outputs: Values on top of the stack in the last row
        program_digest: Accumulator value in the last row
        blinding: Random coefficients added to every trace column polynomial
    """

    def __init__(
        self,
        trace_length: int,
        public_inputs: Sequence[int],
        outputs: Sequence[int],
        program_digest: Sequence[int],
        blinding: int = 0,
    ) -> None:
        self.trace_length = trace_length
        self.blinding = blinding
        self.modules: List[ConstraintModule] = [DecoderConstraints(), StackConstraints()]
        self.assertions: List[Assertion] = boundary_assertions(public_inputs, outputs, program_digest)

        shape = self.evaluate_transitions(ShapeConstraintContext())
        self.transition_names = [c.name for c in shape]
        self.transition_degrees = [c.degree for c in shape]
        assert max(self.transition_degrees) <= MAX_CONSTRAINT_DEGREE

    @classmethod
    def from_trace(cls, trace, blinding: int = 0) -> "ProcessorAir":
        return cls(trace.length, trace.public_inputs, trace.outputs, trace.program_digest, blinding)

    @property
    def num_transitions(self) -> int:
        return len(self.transition_degrees)

    @property
    def num_constraints(self) -> int:
        return self.num_transitions + len(self.assertions)

    @property
    def composition_degree_bound(self) -> int:
        """Strict upper bound on the degree of the composition polynomial."""
        return composition_bound(self.trace_length, self.blinding)

    def evaluate_transitions(self, ctx: ConstraintContext) -> List[Constraint]:
        out: List[Constraint] = []
        for module in self.modules:
            out.extend(module.evaluate(ctx))
        return out

    def quotient_degrees(self) -> List[int]:
        """Degree of each constraint quotient, transitions first."""
        n = self.trace_length
        column_degree = n + self.blinding - 1
        transitions = [d * column_degree - (n - 1) for d in self.transition_degrees]
        return transitions + [column_degree - 1] * len(self.assertions)
