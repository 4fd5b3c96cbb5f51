"""Constraint evaluation modules.

Each part of the processor has its own ConstraintModule that evaluates its
transition constraints directly in readable Python code. The same code runs
on whole LDE columns (prover) and on opened rows (verifier).
"""

from .air import MAX_CONSTRAINT_DEGREE, ProcessorAir
from .base import (
    Constraint,
    ConstraintContext,
    ConstraintModule,
    ProverConstraintContext,
    ShapeConstraintContext,
    VerifierConstraintContext,
)
from .boundary import FIRST_ROW, LAST_ROW, Assertion, boundary_assertions
from .decoder import DecoderConstraints
from .stack import StackConstraints

__all__ = [
    "ProcessorAir",
    "MAX_CONSTRAINT_DEGREE",
    "Constraint",
    "ConstraintContext",
    "ConstraintModule",
    "ProverConstraintContext",
    "VerifierConstraintContext",
    "ShapeConstraintContext",
    "Assertion",
    "boundary_assertions",
    "FIRST_ROW",
    "LAST_ROW",
    "DecoderConstraints",
    "StackConstraints",
]
