"""Top-level STARK proof generation."""

import logging
from typing import Optional

from constraints.air import ProcessorAir
from constraints.base import ProverConstraintContext
from primitives.field import SHIFT, domain_points
from protocol.challenges import composition_coefficients, statement_transcript
from protocol.composition import composition_values
from protocol.options import ProofOptions
from protocol.pcs import FriPcs, FriPcsConfig
from protocol.proof import StarkProof, TraceQuery
from protocol.stages import blinding_randomness, check_constraints, commit, extend
from witness.trace import ExecutionTrace

logger = logging.getLogger(__name__)


# --- Main Entry Point ---

def gen_proof(
    trace: ExecutionTrace,
    options: ProofOptions,
    air: Optional[ProcessorAir] = None,
    check: bool = False,
    seed: Optional[bytes] = None,
) -> StarkProof:
    """Generate a STARK proof that trace satisfies the processor AIR.

    Args:
        trace: Execution trace from the trace generator
        options: Proof parameters
        air: Constraint set; built from the trace statement when omitted
        check: Evaluate the constraints on the trace before proving
        seed: Blinding randomness; OS entropy when omitted. Equal seeds give
            bit-identical proofs

    Returns:
        StarkProof for (program digest, public inputs, outputs)
    """
    if air is None:
        air = ProcessorAir.from_trace(trace, blinding=options.blinding_factor)
    assert air.blinding == options.blinding_factor, "AIR blinding does not match the options"
    n = trace.length
    n_ext = options.lde_domain_size(n)
    n_bits_ext = n_ext.bit_length() - 1

    if check:
        failures = check_constraints(trace, air)
        assert not failures, f"trace violates constraints: {failures[:5]}"

    # === STAGE 0: Seed Fiat-Shamir Transcript ===
    # The statement (options, length, program hash, inputs, outputs) is bound
    # before any commitment.
    transcript = statement_transcript(
        options, n, trace.program_digest, trace.public_inputs, trace.outputs)

    # === STAGE 1: Trace Commitment ===
    # Blinded columns and the composition mask share one tree.
    extended = extend(
        trace,
        n_ext,
        blinding=options.blinding_factor,
        mask_bound=air.composition_degree_bound,
        randomness=blinding_randomness(options.hash_fn, seed),
    )
    trace_root, trace_tree = commit(extended, options.hash_fn)
    transcript.put_digest(trace_root)
    logger.debug("trace committed: %d x %d extended rows", extended.domain_size, trace.width)

    # === STAGE 2: Composition Polynomial ===
    coefficients = composition_coefficients(transcript, air.num_constraints)
    ctx = ProverConstraintContext(extended.prover_data())
    x = domain_points(n_bits_ext, shift=SHIFT)
    composition = composition_values(air, ctx, x, coefficients)
    logger.debug("composition evaluated over %d points (%d constraints)",
                 len(composition), air.num_constraints)

    # === STAGE 3: FRI ===
    # Layer 0 is the masked composition; its root is the composition commitment.
    config = FriPcsConfig.for_domain(
        n_bits_ext,
        options.folding_factor,
        n_queries=options.num_queries,
        degree_bound=air.composition_degree_bound,
        pow_bits=options.grinding_factor,
        hash_fn=options.hash_fn,
    )
    fri_proof = FriPcs(config).prove(composition + extended.mask, transcript)

    # === STAGE 4: Trace Openings ===
    stride = extended.stride
    trace_queries = [
        TraceQuery(
            current=trace_tree.get_query_proof(p),
            next=trace_tree.get_query_proof((p + stride) % n_ext),
        )
        for p in fri_proof.query_indices
    ]

    proof = StarkProof(
        trace_length=n,
        options=options,
        trace_root=trace_root,
        fri_roots=fri_proof.fri_roots,
        final_pol=fri_proof.final_pol,
        nonce=fri_proof.nonce,
        trace_queries=trace_queries,
        fri_queries=fri_proof.query_proofs,
    )
    logger.info("proof generated: trace length %d, %d FRI layers, %d queries",
                n, len(proof.fri_roots), len(trace_queries))
    return proof
