"""Merkle tree commitment over rows of field elements."""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from primitives.field import to_ints
from primitives.hashing import DIGEST_SIZE, Digest, HashFunction, hash_elements, merge

# --- Type Aliases ---

MerkleRoot = Digest
LeafData = List[int]

ZERO_DIGEST = bytes(DIGEST_SIZE)


# --- Data Classes ---

@dataclass
class QueryProof:
    """Opened leaf values and their authentication path.

    Attributes:
        v: Leaf values at query index (one row of the committed matrix)
        mp: Merkle path - sibling digests per level, from leaf to root.
            Each level has (arity - 1) digests.
    """
    v: List[int] = field(default_factory=list)
    mp: List[List[Digest]] = field(default_factory=list)


# --- Data Layout ---

def transpose_for_merkle(values: np.ndarray, n_groups: int) -> np.ndarray:
    """Regroup a layer so that elements folded together share one leaf.

    Leaf g holds values[g + i * n_groups] for every i, the points of one
    folding coset.
    """
    height = len(values)
    fold_factor = height // n_groups
    return values.reshape(fold_factor, n_groups).T


# --- Merkle Tree ---

class MerkleTree:
    """Variable-arity Merkle tree hashing each leaf row with a byte hash."""

    def __init__(self, arity: int = 2, hash_fn: HashFunction = HashFunction.BLAKE2S):
        if arity not in [2, 4]:
            raise ValueError(f"arity must be 2 or 4, got {arity}")

        self.arity = arity
        self.hash_fn = HashFunction(hash_fn)

        self.height = 0
        self.width = 0
        self.nodes: List[Digest] = []
        self.num_nodes = 0

        # Leaf rows kept for query proof value extraction
        self.source_data: Optional[List[LeafData]] = None

    # --- Core Operations ---

    def merkelize(self, source: np.ndarray) -> None:
        """Build Merkle tree from a (height, width) matrix, one leaf per row."""
        rows = [to_ints(row) for row in source]
        self.height = len(rows)
        self.width = len(rows[0]) if rows else 0
        self.num_nodes = self._compute_num_nodes(self.height)
        self.nodes = [ZERO_DIGEST] * self.num_nodes
        self.source_data = rows

        if self.height == 0:
            return

        # Hash each leaf row
        for i, row in enumerate(rows):
            self.nodes[i] = hash_elements(row, self.hash_fn)

        # Hash each level into the next until one node remains
        pending = self.height
        next_index = 0

        while pending > 1:
            extra_zeros = (self.arity - (pending % self.arity)) % self.arity
            next_n = (pending + (self.arity - 1)) // self.arity

            for i in range(next_n):
                start = next_index + i * self.arity
                children = self.nodes[start:start + self.arity]
                self.nodes[next_index + pending + extra_zeros + i] = merge(children, self.hash_fn)

            next_index += pending + extra_zeros
            pending = next_n

    def get_root(self) -> MerkleRoot:
        """Return the Merkle root."""
        if self.num_nodes == 0:
            raise ValueError("tree has not been built")
        return self.nodes[self.num_nodes - 1]

    # --- Proof Generation ---

    def get_group_proof(self, idx: int) -> List[List[Digest]]:
        """Get sibling digests for the path from leaf idx to the root."""
        if not 0 <= idx < self.height:
            raise IndexError(f"leaf index {idx} out of range [0, {self.height})")
        proof: List[List[Digest]] = []
        self._collect_proof_siblings(proof, idx, 0, self.height)
        return proof

    def get_query_proof(self, idx: int) -> QueryProof:
        """Get leaf values plus authentication path for leaf idx."""
        proof = self.get_group_proof(idx)
        return QueryProof(v=list(self.source_data[idx]), mp=proof)

    # --- Verification ---

    def verify_group_proof(
        self,
        root: MerkleRoot,
        proof: List[List[Digest]],
        idx: int,
        leaf_data: LeafData,
        height: Optional[int] = None,
    ) -> bool:
        """Check that values hash up to root through proof.

        With height given, idx must address one of height leaves and proof
        must have exactly one level per tree level.
        """
        if height is not None:
            if not 0 <= idx < height or len(proof) != self.get_merkle_proof_length(height):
                return False
        computed = hash_elements(leaf_data, self.hash_fn)

        for level_siblings in proof:
            if len(level_siblings) != self.arity - 1:
                return False
            curr_idx = idx % self.arity
            idx = idx // self.arity

            children = list(level_siblings)
            children.insert(curr_idx, computed)
            computed = merge(children, self.hash_fn)

        return idx == 0 and computed == root

    # --- Proof Size Utilities ---

    def get_merkle_proof_length(self, height: Optional[int] = None) -> int:
        """Sibling levels in an opening path."""
        pending = self.height if height is None else height
        levels = 0
        while pending > 1:
            pending = (pending + (self.arity - 1)) // self.arity
            levels += 1
        return levels

    # --- Internal Helpers ---

    def _compute_num_nodes(self, height: int) -> int:
        """Digest slots for every level of a tree over height leaves."""
        num_nodes = height
        nodes_level = height

        while nodes_level > 1:
            extra_zeros = (self.arity - (nodes_level % self.arity)) % self.arity
            num_nodes += extra_zeros
            next_n = (nodes_level + (self.arity - 1)) // self.arity
            num_nodes += next_n
            nodes_level = next_n

        return num_nodes

    def _collect_proof_siblings(
        self,
        proof: List[List[Digest]],
        idx: int,
        offset: int,
        n: int,
    ) -> None:
        """Collect sibling digests level by level."""
        while n > 1:
            curr_idx = idx % self.arity
            si = idx - curr_idx

            proof.append([
                self.nodes[offset + si + i]
                for i in range(self.arity)
                if i != curr_idx
            ])

            extra_zeros = (self.arity - (n % self.arity)) % self.arity
            offset += n + extra_zeros
            idx //= self.arity
            n = (n + (self.arity - 1)) // self.arity
