"""Program - instruction set, block arena, program hash and inputs."""

from program.blocks import Block, Group, Loop, Repeat, Span, Switch
from program.builder import ProgramBuilder
from program.errors import (
    ConfigurationError,
    DivisionByZero,
    ExecutionError,
    FailedAssertion,
    MalformedGraph,
    ProofFormatError,
    StackOverflow,
    StackUnderflow,
    StepLimitExceeded,
    TapeExhausted,
    VMError,
)
from program.graph import MAX_NESTING_DEPTH, STACK_WIDTH, Program, build
from program.inputs import MAX_OUTPUTS, MAX_PUBLIC_INPUTS, ProgramInputs
from program.opcodes import Instruction, OpCode

__all__ = [
    # Blocks
    "Block",
    "Span",
    "Group",
    "Switch",
    "Loop",
    "Repeat",
    # Graph
    "Program",
    "ProgramBuilder",
    "build",
    "STACK_WIDTH",
    "MAX_NESTING_DEPTH",
    # Instructions
    "OpCode",
    "Instruction",
    # Inputs
    "ProgramInputs",
    "MAX_PUBLIC_INPUTS",
    "MAX_OUTPUTS",
    # Errors
    "VMError",
    "ConfigurationError",
    "MalformedGraph",
    "ExecutionError",
    "StackUnderflow",
    "StackOverflow",
    "TapeExhausted",
    "StepLimitExceeded",
    "FailedAssertion",
    "DivisionByZero",
    "ProofFormatError",
]
