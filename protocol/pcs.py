"""FRI polynomial commitment: layer sizes, folding rounds, grinding and queries."""

import logging
import struct
from dataclasses import dataclass, field
from typing import List

from primitives.field import FF, SHIFT, to_ints
from primitives.hashing import HashFunction, grind
from primitives.merkle_tree import MerkleRoot, MerkleTree, QueryProof
from primitives.transcript import Transcript
from protocol.fri import FRI, EvalPoly

logger = logging.getLogger(__name__)

# --- Type Aliases ---

Nonce = int
QueryIndex = int

# Folding stops once a layer holds at most 2^MAX_REMAINDER_BITS values
MAX_REMAINDER_BITS = 4


# --- Configuration ---

@dataclass
class FriPcsConfig:
    """FRI PCS parameters."""
    n_bits_ext: int
    fri_round_log_sizes: List[int]
    n_queries: int
    folding_factor: int = 4
    degree_bound: int = 0
    merkle_arity: int = 2
    pow_bits: int = 16
    hash_fn: HashFunction = HashFunction.BLAKE2S

    @classmethod
    def for_domain(cls, n_bits_ext: int, folding_factor: int, **kwargs) -> "FriPcsConfig":
        """Layer sizes for folding a 2^n_bits_ext layer down to the remainder."""
        fold_bits = folding_factor.bit_length() - 1
        sizes = [n_bits_ext]
        while sizes[-1] > MAX_REMAINDER_BITS:
            sizes.append(sizes[-1] - fold_bits)
        return cls(n_bits_ext=n_bits_ext, fri_round_log_sizes=sizes,
                   folding_factor=folding_factor, **kwargs)

    @property
    def n_rounds(self) -> int:
        return len(self.fri_round_log_sizes) - 1

    def layer_shift(self, fri_round: int) -> FF:
        """Coset offset of the given layer: SHIFT^(k^round)."""
        return SHIFT ** (self.folding_factor ** fri_round)

    def degree_bounds(self) -> List[int]:
        """Strict degree bound of every layer, final layer included."""
        bounds = [self.degree_bound]
        for _ in range(self.n_rounds):
            bounds.append(-(-bounds[-1] // self.folding_factor))
        return bounds


@dataclass
class FriProof:
    """Layer roots, final layer, grinding nonce and per-layer openings."""
    fri_roots: List[MerkleRoot] = field(default_factory=list)
    final_pol: List[int] = field(default_factory=list)
    nonce: Nonce = 0
    query_proofs: List[List[QueryProof]] = field(default_factory=list)
    query_indices: List[QueryIndex] = field(default_factory=list)


# --- FRI PCS ---

class FriPcs:
    """Commit to one polynomial over the extended domain and prove it is low degree."""

    def __init__(self, config: FriPcsConfig):
        self.config = config
        self.fri_trees = [
            MerkleTree(arity=config.merkle_arity, hash_fn=config.hash_fn)
            for _ in range(config.n_rounds)
        ]

    def prove(self, polynomial: EvalPoly, transcript: Transcript) -> FriProof:
        """Fold pol down to the final layer, grind, then open every layer at the query positions."""
        cfg = self.config

        # --- Folding Rounds ---
        # Commit the layer, absorb its root, then fold with a fresh challenge
        fri_roots: List[MerkleRoot] = []
        current_pol = polynomial

        for fri_round in range(cfg.n_rounds):
            root = FRI.merkelize(current_pol, self.fri_trees[fri_round], cfg.folding_factor)
            fri_roots.append(root)
            transcript.put_digest(root)

            challenge = transcript.get_field()
            current_pol = FRI.fold(current_pol, challenge, cfg.layer_shift(fri_round), cfg.folding_factor)
            logger.debug("FRI round %d: folded %d -> %d values", fri_round,
                         1 << cfg.fri_round_log_sizes[fri_round], len(current_pol))

        # --- Finalize ---
        final_pol = to_ints(current_pol)
        transcript.put(final_pol)

        # --- Grinding ---
        grinding_challenge = transcript.get_state()
        nonce = grind(grinding_challenge, cfg.pow_bits, cfg.hash_fn)

        # --- Query Phase ---
        query_indices = self.derive_query_indices(cfg, grinding_challenge, nonce)
        layer_sizes = [1 << bits for bits in cfg.fri_round_log_sizes[:-1]]
        query_proofs = FRI.prove_queries(query_indices, self.fri_trees, layer_sizes, cfg.folding_factor)

        return FriProof(
            fri_roots=fri_roots,
            final_pol=final_pol,
            nonce=nonce,
            query_proofs=query_proofs,
            query_indices=query_indices,
        )

    @staticmethod
    def derive_query_indices(cfg: FriPcsConfig, challenge: bytes, nonce: Nonce) -> List[QueryIndex]:
        """Query positions drawn from the grinding challenge and nonce."""
        query_transcript = Transcript(cfg.hash_fn, seed=challenge + struct.pack("<Q", nonce))
        return query_transcript.get_permutations(cfg.n_queries, cfg.n_bits_ext)

    def get_fri_tree(self, fri_round: int) -> MerkleTree:
        """Merkle tree committed in round fri_round."""
        return self.fri_trees[fri_round]
