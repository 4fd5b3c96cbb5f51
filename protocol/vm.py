"""Public entry points: run a program and prove it, verify a proof."""

import logging
from typing import List, Optional, Sequence, Tuple, Union

from program.errors import ProofFormatError
from program.graph import Program
from program.inputs import ProgramInputs
from protocol.options import DEFAULT_MIN_SECURITY_BITS, ProofOptions
from protocol.proof import StarkProof
from protocol.prover import gen_proof
from protocol.verifier import VerificationResult, stark_verify
from witness.executor import run

logger = logging.getLogger(__name__)


def execute(
    program: Program,
    inputs: Optional[ProgramInputs] = None,
    num_outputs: int = 1,
    options: Optional[ProofOptions] = None,
    seed: Optional[bytes] = None,
) -> Tuple[List[int], StarkProof]:
    """Execute program on inputs and prove the execution.

    seed fixes the prover's blinding randomness; two calls with the same
    program, inputs, options and seed return identical proofs.

    Returns:
        (outputs, proof) where outputs are the top num_outputs stack values

    Raises:
        ConfigurationError: too many outputs requested
        ExecutionError: the program failed; no proof is produced
    """
    if inputs is None:
        inputs = ProgramInputs.none()
    if options is None:
        options = ProofOptions()
    trace, outputs = run(program, inputs, num_outputs, options.max_trace_length)
    proof = gen_proof(trace, options, seed=seed)
    return list(outputs), proof


def verify(
    program_hash: bytes,
    public_inputs: Sequence[int],
    outputs: Sequence[int],
    proof: Union[StarkProof, bytes],
    min_security_bits: int = DEFAULT_MIN_SECURITY_BITS,
) -> VerificationResult:
    """Check that proof attests running program_hash on public_inputs yields outputs.

    proof may be a StarkProof or its serialized bytes. Never raises for a bad
    proof; the result carries the reason instead. Proofs made with options
    below min_security_bits are rejected whatever else they contain.
    """
    if isinstance(proof, (bytes, bytearray)):
        try:
            proof = StarkProof.from_bytes(bytes(proof))
        except ProofFormatError as e:
            logger.warning("proof rejected: %s", e)
            return VerificationResult(False, f"malformed proof: {e}")
    return stark_verify(program_hash, public_inputs, outputs, proof, min_security_bits)
