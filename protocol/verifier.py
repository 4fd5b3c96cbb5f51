"""STARK proof verification.

This module implements the verifier for the processor STARK. The verifier
checks that a proof demonstrates knowledge of an execution trace that
satisfies the processor AIR for the claimed (program hash, inputs, outputs).

Verification consists of several phases:
1. Statement and proof shape checks - bounds, sizes, canonical values, and a
   floor on the security level the proof options promise
2. Fiat-Shamir transcript reconstruction - re-derive every coefficient and
   folding challenge from the statement and the committed roots
3. Proof-of-work verification and query position derivation
4. Trace openings - Merkle paths of the opened rows against the trace root
5. Composition check - recompute the composition value at each query from
   the opened rows, add the opened mask value and compare with the committed
   FRI layer 0
6. FRI verification - Merkle paths, folding consistency, final layer degree

The verifier never raises for a bad proof: any failed check yields a
VerificationResult with valid=False and the reason.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from constraints.air import ProcessorAir
from constraints.base import VerifierConstraintContext
from primitives.field import FF, is_canonical
from primitives.hashing import verify_grinding
from primitives.merkle_tree import MerkleTree, QueryProof
from program.graph import digest_from_bytes
from program.inputs import MAX_OUTPUTS, MAX_PUBLIC_INPUTS
from protocol.challenges import composition_coefficients, statement_transcript
from protocol.composition import composition_values, query_points
from protocol.data import VerifierData
from protocol.fri import FRI
from protocol.options import DEFAULT_MIN_SECURITY_BITS, ProofOptions
from protocol.pcs import FriPcs, FriPcsConfig
from protocol.proof import StarkProof
from protocol.stages import COMMITTED_WIDTH, MASK_COLUMN, MERKLE_ARITY
from witness.trace import MIN_TRACE_LENGTH

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verification; truthy exactly when the proof is accepted."""
    valid: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.valid


ACCEPTED = VerificationResult(True)


def _reject(reason: str) -> VerificationResult:
    logger.warning("proof rejected: %s", reason)
    return VerificationResult(False, reason)


# --- Main Entry Point ---

def stark_verify(
    program_hash: bytes,
    public_inputs: Sequence[int],
    outputs: Sequence[int],
    proof: StarkProof,
    min_security_bits: int = DEFAULT_MIN_SECURITY_BITS,
) -> VerificationResult:
    """Verify a STARK proof.

    Args:
        program_hash: 32-byte program hash
        public_inputs: Values the stack was initialized with
        outputs: Claimed top-of-stack values at the end of execution
        proof: Proof produced by gen_proof
        min_security_bits: Proofs whose options give fewer conjectured bits
            of security at their trace length are rejected

    Returns:
        VerificationResult; valid only if every check passes
    """
    if not isinstance(proof, StarkProof) or not isinstance(proof.options, ProofOptions):
        return _reject(f"malformed proof: expected a StarkProof, got {type(proof).__name__}")

    # --- Statement ---
    try:
        program_digest = digest_from_bytes(program_hash)
    except (TypeError, ValueError) as e:
        return _reject(f"invalid program hash: {e}")
    public_inputs = list(public_inputs)
    outputs = list(outputs)
    if len(public_inputs) > MAX_PUBLIC_INPUTS:
        return _reject(f"{len(public_inputs)} public inputs exceed the limit of {MAX_PUBLIC_INPUTS}")
    if len(outputs) > MAX_OUTPUTS:
        return _reject(f"{len(outputs)} outputs exceed the limit of {MAX_OUTPUTS}")
    if not all(is_canonical(v) for v in public_inputs + outputs):
        return _reject("public inputs and outputs must be canonical field elements")

    # --- Proof shape ---
    options = proof.options
    n = proof.trace_length
    if not isinstance(n, int) or n < MIN_TRACE_LENGTH or n & (n - 1) or n > options.max_trace_length:
        return _reject(f"invalid trace length {n}")

    # --- Security policy ---
    # Options come from the prover; the floor is the verifier's own.
    level = options.security_level(n)
    if level < min_security_bits:
        return _reject(f"proof options give {level} bits of security, below the required {min_security_bits}")

    n_ext = options.lde_domain_size(n)
    n_bits_ext = n_ext.bit_length() - 1
    stride = n_ext // n

    air = ProcessorAir(n, public_inputs, outputs, program_digest, blinding=options.blinding_factor)
    config = FriPcsConfig.for_domain(
        n_bits_ext,
        options.folding_factor,
        n_queries=options.num_queries,
        degree_bound=air.composition_degree_bound,
        pow_bits=options.grinding_factor,
        hash_fn=options.hash_fn,
    )
    shape_error = _check_shape(proof, config)
    if shape_error:
        return _reject(shape_error)

    # --- Reconstruct Fiat-Shamir transcript ---
    # Same absorption order as the prover: statement, trace root, coefficients,
    # then one root and one folding challenge per FRI layer.
    transcript = statement_transcript(options, n, program_digest, public_inputs, outputs)
    transcript.put_digest(proof.trace_root)
    coefficients = composition_coefficients(transcript, air.num_constraints)
    challenges: List[int] = []
    for root in proof.fri_roots:
        transcript.put_digest(root)
        challenges.append(transcript.get_field())
    transcript.put(proof.final_pol)

    # --- Verify proof-of-work ---
    grinding_challenge = transcript.get_state()
    if not verify_grinding(grinding_challenge, proof.nonce, options.grinding_factor, options.hash_fn):
        return _reject("proof-of-work nonce does not meet the grinding requirement")

    # --- Derive query positions ---
    positions = FriPcs.derive_query_indices(config, grinding_challenge, proof.nonce)

    # CHECK 1: Trace openings against the trace root
    tree = MerkleTree(arity=MERKLE_ARITY, hash_fn=options.hash_fn)
    for p, query in zip(positions, proof.trace_queries):
        if not tree.verify_group_proof(proof.trace_root, query.current.mp, p, query.current.v, height=n_ext):
            return _reject(f"trace opening at position {p} does not match the trace root")
        nxt = (p + stride) % n_ext
        if not tree.verify_group_proof(proof.trace_root, query.next.mp, nxt, query.next.v, height=n_ext):
            return _reject(f"trace opening at position {nxt} does not match the trace root")

    # CHECK 2: Composition consistency at every query
    # Layer 0 commits to composition + mask; the mask value is the last opened column.
    data = VerifierData.from_rows(
        [q.current.v for q in proof.trace_queries],
        [q.next.v for q in proof.trace_queries],
    )
    mask = FF([q.current.v[MASK_COLUMN] for q in proof.trace_queries])
    expected = composition_values(air, VerifierConstraintContext(data), query_points(positions, n_bits_ext),
                                  coefficients) + mask
    layer0 = [_layer_value(proof.fri_queries[0][i], p, n_ext, options.folding_factor)
              for i, p in enumerate(positions)]
    for i, p in enumerate(positions):
        if int(expected[i]) != layer0[i]:
            return _reject(f"composition value at position {p} does not match the constraint evaluation")

    # CHECK 3: FRI layers
    fri_error = _verify_fri(proof, config, positions, challenges)
    if fri_error:
        return _reject(fri_error)

    logger.info("proof accepted: trace length %d, %d queries", n, len(positions))
    return ACCEPTED


# --- Shape ---

def _check_shape(proof: StarkProof, config: FriPcsConfig) -> Optional[str]:
    """Sizes the verifier relies on before indexing into the proof."""
    k = config.folding_factor
    if len(proof.fri_roots) != config.n_rounds:
        return f"expected {config.n_rounds} FRI roots, got {len(proof.fri_roots)}"
    if len(proof.final_pol) != 1 << config.fri_round_log_sizes[-1]:
        return f"final FRI layer has {len(proof.final_pol)} values"
    if len(proof.trace_queries) != config.n_queries:
        return f"expected {config.n_queries} trace openings, got {len(proof.trace_queries)}"
    if len(proof.fri_queries) != config.n_rounds:
        return f"expected openings for {config.n_rounds} FRI layers, got {len(proof.fri_queries)}"
    if any(len(layer) != config.n_queries for layer in proof.fri_queries):
        return "FRI layer openings do not match the number of queries"

    values: List[int] = list(proof.final_pol)
    for q in proof.trace_queries:
        if len(q.current.v) != COMMITTED_WIDTH or len(q.next.v) != COMMITTED_WIDTH:
            return f"trace openings must hold {COMMITTED_WIDTH} values"
        values += q.current.v + q.next.v
    for layer in proof.fri_queries:
        for q in layer:
            if len(q.v) != k:
                return f"FRI openings must hold {k} values"
            values += q.v
    if not all(is_canonical(v) for v in values):
        return "proof contains non-canonical field elements"
    return None


# --- FRI ---

def _layer_value(query: QueryProof, position: int, layer_size: int, folding_factor: int) -> int:
    """Value at position within an opened folding group."""
    return query.v[(position % layer_size) // (layer_size // folding_factor)]


def _verify_fri(
    proof: StarkProof,
    config: FriPcsConfig,
    positions: List[int],
    challenges: List[int],
) -> Optional[str]:
    k = config.folding_factor
    tree = MerkleTree(arity=config.merkle_arity, hash_fn=config.hash_fn)

    # Folded values carried from one layer to the next, one per query
    folded: Optional[List[int]] = None

    for fri_round in range(config.n_rounds):
        layer_bits = config.fri_round_log_sizes[fri_round]
        layer_size = 1 << layer_bits
        n_groups = layer_size // k
        root = proof.fri_roots[fri_round]
        shift = config.layer_shift(fri_round)
        next_folded = []

        for i, p in enumerate(positions):
            query = proof.fri_queries[fri_round][i]
            group = p % n_groups
            if not tree.verify_group_proof(root, query.mp, group, query.v, height=n_groups):
                return f"FRI layer {fri_round} opening at position {p % layer_size} does not match its root"
            if folded is not None and _layer_value(query, p, layer_size, k) != folded[i]:
                return f"FRI layer {fri_round} is inconsistent with the fold of layer {fri_round - 1}"
            next_folded.append(FRI.verify_fold(query.v, group, challenges[fri_round], layer_bits, shift))

        folded = next_folded

    # --- Final layer ---
    final_size = len(proof.final_pol)
    for i, p in enumerate(positions):
        if proof.final_pol[p % final_size] != folded[i]:
            return "final FRI layer is inconsistent with the last fold"

    bound = config.degree_bounds()[-1]
    if FRI.final_degree(FF(proof.final_pol)) >= bound:
        return f"final FRI layer exceeds degree bound {bound}"
    return None
