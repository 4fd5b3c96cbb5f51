"""Error taxonomy shared across the VM.

Construction errors are raised before anything executes, execution errors
abort trace generation, and proof format errors come out of deserialization.
Verification failures are not exceptions; see protocol.verifier.
"""


class VMError(Exception):
    """Base class for every error raised by the VM."""


# --- Construction ---

class ConfigurationError(VMError, ValueError):
    """Invalid options or statement bounds (e.g. more than 8 outputs)."""


class MalformedGraph(VMError, ValueError):
    """Program graph failed validation."""


# --- Execution ---

class ExecutionError(VMError):
    """Trace generation aborted."""

    def __init__(self, message: str, step: int = -1):
        if step >= 0:
            message = f"step {step}: {message}"
        super().__init__(message)
        self.step = step


class StackUnderflow(ExecutionError):
    """Instruction needs more operands than the stack holds."""


class StackOverflow(ExecutionError):
    """Instruction would grow the stack past its fixed width."""


class TapeExhausted(ExecutionError):
    """READ/READ2 on an empty secret tape."""


class StepLimitExceeded(ExecutionError):
    """Trace would exceed the configured maximum length."""


class FailedAssertion(ExecutionError):
    """ASSERT/ASSERTEQ failed or a boolean operand was not 0 or 1."""


class DivisionByZero(ExecutionError):
    """INV of zero."""


# --- Proof encoding ---

class ProofFormatError(VMError, ValueError):
    """Serialized proof could not be decoded."""
