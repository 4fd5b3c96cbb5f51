"""Byte-oriented hash functions used by commitments, the transcript and grinding.

All digests are 32 bytes. Field elements are serialized as 8-byte
little-endian words before hashing.
"""

import hashlib
import struct
from enum import Enum
from typing import Iterable, List

from primitives.field import ELEMENT_BYTES, GOLDILOCKS_PRIME

# --- Constants ---

DIGEST_SIZE = 32

Digest = bytes

# Prefixes keeping Merkle leaf preimages apart from internal node preimages
LEAF_TAG = b"\x00"
NODE_TAG = b"\x01"


class HashFunction(str, Enum):
    """Hash primitive selectable through proof options."""
    BLAKE2S = "blake2s"
    SHA3_256 = "sha3_256"

    @classmethod
    def from_id(cls, ident: int) -> "HashFunction":
        members = list(cls)
        if not 0 <= ident < len(members):
            raise ValueError(f"unknown hash function id {ident}")
        return members[ident]

    @property
    def id(self) -> int:
        return list(type(self)).index(self)


# --- Hashing ---

def hash_bytes(data: bytes, hash_fn: HashFunction = HashFunction.BLAKE2S) -> Digest:
    """Digest of an arbitrary byte string."""
    if HashFunction(hash_fn) is HashFunction.BLAKE2S:
        return hashlib.blake2s(data).digest()
    return hashlib.sha3_256(data).digest()


def elements_to_bytes(values: Iterable) -> bytes:
    """Serialize field elements as consecutive 8-byte little-endian words."""
    ints = [int(v) % GOLDILOCKS_PRIME for v in values]
    return struct.pack(f"<{len(ints)}Q", *ints)


def bytes_to_elements(data: bytes) -> List[int]:
    """Inverse of elements_to_bytes. Values are not reduced."""
    if len(data) % ELEMENT_BYTES != 0:
        raise ValueError(f"expected a multiple of {ELEMENT_BYTES} bytes, got {len(data)}")
    return list(struct.unpack(f"<{len(data) // ELEMENT_BYTES}Q", data))


def hash_elements(values: Iterable, hash_fn: HashFunction = HashFunction.BLAKE2S) -> Digest:
    """Digest of a sequence of field elements (a Merkle leaf)."""
    return hash_bytes(LEAF_TAG + elements_to_bytes(values), hash_fn)


def merge(children: List[Digest], hash_fn: HashFunction = HashFunction.BLAKE2S) -> Digest:
    """Digest of concatenated child digests (a Merkle internal node)."""
    return hash_bytes(NODE_TAG + b"".join(children), hash_fn)


# --- Proof of Work ---

def _leading_zeros(digest: Digest) -> int:
    value = int.from_bytes(digest[:8], "big")
    return 64 - value.bit_length()


def _pow_digest(seed: bytes, nonce: int, hash_fn: HashFunction) -> Digest:
    return hash_bytes(seed + struct.pack("<Q", nonce), hash_fn)


def grind(seed: bytes, pow_bits: int, hash_fn: HashFunction = HashFunction.BLAKE2S) -> int:
    """Find the smallest nonce whose digest with seed has pow_bits leading zero bits."""
    if pow_bits == 0:
        return 0
    nonce = 0
    while _leading_zeros(_pow_digest(seed, nonce, hash_fn)) < pow_bits:
        nonce += 1
    return nonce


def verify_grinding(seed: bytes, nonce: int, pow_bits: int,
                    hash_fn: HashFunction = HashFunction.BLAKE2S) -> bool:
    """Check a grinding nonce."""
    if not 0 <= nonce < 1 << 64:
        return False
    if pow_bits == 0:
        return True
    return _leading_zeros(_pow_digest(seed, nonce, hash_fn)) >= pow_bits
