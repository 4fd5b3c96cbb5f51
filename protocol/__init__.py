"""Protocol - Core STARK protocol algorithms."""

from protocol.fri import FRI, EvalPoly
from protocol.pcs import FriPcs, FriPcsConfig, FriProof, Nonce, QueryIndex

from protocol.options import ProofOptions
from protocol.stages import ExtendedTrace, check_constraints, commit, extend

from protocol.prover import gen_proof
from protocol.verifier import VerificationResult, stark_verify

from protocol.proof import StarkProof, TraceQuery, proof_from_json, proof_to_json
from protocol.vm import execute, verify

__all__ = [
    # FRI
    "FRI",
    "EvalPoly",
    # FRI PCS
    "FriPcs",
    "FriPcsConfig",
    "FriProof",
    "Nonce",
    "QueryIndex",
    # STARK
    "ProofOptions",
    "ExtendedTrace",
    "extend",
    "commit",
    "check_constraints",
    "gen_proof",
    "stark_verify",
    "VerificationResult",
    # Proof format
    "StarkProof",
    "TraceQuery",
    "proof_to_json",
    "proof_from_json",
    # Entry points
    "execute",
    "verify",
]
