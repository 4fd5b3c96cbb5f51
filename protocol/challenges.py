"""Fiat-Shamir schedule shared by prover and verifier.

The transcript is seeded with everything the verifier knows before reading
the proof body, so a proof cannot be replayed against a different statement:

    options || trace_length || program digest || #inputs || inputs || #outputs || outputs
"""

from typing import List, Sequence, Tuple

from primitives.transcript import Transcript
from protocol.options import ProofOptions

Coefficients = List[Tuple[int, int]]


def statement_transcript(
    options: ProofOptions,
    trace_length: int,
    program_digest: Sequence[int],
    public_inputs: Sequence[int],
    outputs: Sequence[int],
) -> Transcript:
    transcript = Transcript(options.hash_fn)
    transcript.put(options.to_elements())
    transcript.put([trace_length])
    transcript.put(list(program_digest))
    transcript.put([len(public_inputs)] + list(public_inputs))
    transcript.put([len(outputs)] + list(outputs))
    return transcript


def composition_coefficients(transcript: Transcript, num_constraints: int) -> Coefficients:
    """Draw (alpha_i, beta_i) for every constraint, in constraint order."""
    values = transcript.get_fields(2 * num_constraints)
    return [(values[2 * i], values[2 * i + 1]) for i in range(num_constraints)]
