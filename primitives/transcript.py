"""
Fiat-Shamir transcript implementation using a hash chain.

This module implements challenge generation for non-interactive proofs.
Absorbed data is buffered until the next squeeze; a squeeze first folds the
buffer into the running state, then expands the state in counter mode into
field elements by rejection sampling.
"""
import struct
from typing import List

from primitives.field import GOLDILOCKS_PRIME
from primitives.hashing import Digest, HashFunction, elements_to_bytes, hash_bytes

DOMAIN_TAG = b"stark-vm/transcript/v1"

# Bits consumed per squeezed field element by get_permutations
PERMUTATION_BITS_PER_FIELD = 63


class Transcript:
    """
    Fiat-Shamir transcript.

    The transcript absorbs field elements and digests and produces random
    challenges in a deterministic, pseudorandom manner. One instance belongs
    to one proof or verification attempt.

    Attributes:
        hash_fn: Hash primitive driving the chain
        state: Current chained digest
        pending: Bytes absorbed since the last state update
        out: Squeezed field elements not yet handed out
    """

    def __init__(self, hash_fn: HashFunction = HashFunction.BLAKE2S, seed: bytes = b""):
        self.hash_fn = HashFunction(hash_fn)
        self.state: Digest = hash_bytes(DOMAIN_TAG + seed, self.hash_fn)
        self.pending = bytearray()
        self.out: List[int] = []
        self.counter = 0

    def put(self, input_data: List[int]) -> None:
        """Add field elements to the transcript."""
        self.pending += elements_to_bytes(input_data)
        self.out = []

    def put_digest(self, digest: Digest) -> None:
        """Add a raw digest (e.g. a Merkle root) to the transcript."""
        self.pending += struct.pack("<I", len(digest)) + digest
        self.out = []

    def _update_state(self) -> None:
        """Fold pending input into the chained state."""
        self.state = hash_bytes(self.state + bytes(self.pending), self.hash_fn)
        self.pending = bytearray()
        self.out = []
        self.counter = 0

    def _refill(self) -> None:
        block = hash_bytes(self.state + struct.pack("<Q", self.counter), self.hash_fn)
        self.counter += 1
        for i in range(0, len(block), 8):
            value = int.from_bytes(block[i:i + 8], "little")
            if value < GOLDILOCKS_PRIME:
                self.out.append(value)

    def _get_fields1(self) -> int:
        """Squeeze one field element."""
        if self.pending:
            self._update_state()
        while not self.out:
            self._refill()
        return self.out.pop(0)

    def get_field(self) -> int:
        """Get one field element challenge."""
        return self._get_fields1()

    def get_fields(self, n: int) -> List[int]:
        """Get n field element challenges."""
        return [self._get_fields1() for _ in range(n)]

    def get_state(self) -> Digest:
        """Get current chained state, flushing pending input first."""
        if self.pending:
            self._update_state()
        return self.state

    def get_permutations(self, n: int, n_bits: int) -> List[int]:
        """
        Generate n values, each using n_bits bits.

        This is used to derive query indices in FRI.

        Returns:
            List of n values, each in range [0, 2^n_bits)
        """
        if n == 0 or n_bits == 0:
            return [0] * n

        n_fields = ((n * n_bits - 1) // PERMUTATION_BITS_PER_FIELD) + 1
        fields = [self._get_fields1() for _ in range(n_fields)]

        result = []
        cur_bit = 0
        cur_field = 0

        for _ in range(n):
            a = 0
            for j in range(n_bits):
                bit = (fields[cur_field] >> cur_bit) & 1
                a += bit << j

                cur_bit += 1
                if cur_bit == PERMUTATION_BITS_PER_FIELD:
                    cur_bit = 0
                    cur_field += 1

            result.append(a)

        return result
