"""Proof generation parameters."""

import math
import struct
from dataclasses import dataclass

from constraints.air import MAX_CONSTRAINT_DEGREE, composition_bound
from primitives.field import MAX_DOMAIN_BITS
from primitives.hashing import HashFunction
from program.errors import ConfigurationError, ProofFormatError
from witness.executor import DEFAULT_MAX_TRACE_LENGTH
from witness.trace import MIN_TRACE_LENGTH

FOLDING_FACTORS = (2, 4, 8)
MIN_BLOWUP = 2 * (MAX_CONSTRAINT_DEGREE - 1)
MAX_BLOWUP = 128
MAX_QUERIES = 128
MAX_GRINDING_BITS = 32
FIELD_BITS = 64

# Verifiers reject proofs whose options promise less than this
DEFAULT_MIN_SECURITY_BITS = 32

# num_queries, blowup_factor, grinding_factor, hash id, folding_factor, log2(max_trace_length)
_OPTIONS_FORMAT = "<BBBBBB"
OPTIONS_SIZE = struct.calcsize(_OPTIONS_FORMAT)


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def _next_power_of_two(value: int) -> int:
    return 1 << max(value - 1, 0).bit_length()


@dataclass(frozen=True)
class ProofOptions:
    """STARK parameters.

    Attributes:
        num_queries: Query positions opened by the prover
        blowup_factor: LDE domain size over trace length (power of two)
        grinding_factor: Proof-of-work bits required before queries are drawn
        hash_fn: Hash used by commitments, the transcript and grinding
        folding_factor: FRI folding factor (2, 4 or 8)
        max_trace_length: Upper bound on executed steps, rounded trace length included
    """
    num_queries: int = 32
    blowup_factor: int = 8
    grinding_factor: int = 16
    hash_fn: HashFunction = HashFunction.BLAKE2S
    folding_factor: int = 4
    max_trace_length: int = DEFAULT_MAX_TRACE_LENGTH

    def __post_init__(self) -> None:
        if not 1 <= self.num_queries <= MAX_QUERIES:
            raise ConfigurationError(f"num_queries must be in [1, {MAX_QUERIES}], got {self.num_queries}")
        if not _is_power_of_two(self.blowup_factor) or not MIN_BLOWUP <= self.blowup_factor <= MAX_BLOWUP:
            raise ConfigurationError(
                f"blowup_factor must be a power of two in [{MIN_BLOWUP}, {MAX_BLOWUP}], got {self.blowup_factor}")
        if not 0 <= self.grinding_factor <= MAX_GRINDING_BITS:
            raise ConfigurationError(
                f"grinding_factor must be in [0, {MAX_GRINDING_BITS}], got {self.grinding_factor}")
        if self.folding_factor not in FOLDING_FACTORS:
            raise ConfigurationError(f"folding_factor must be one of {FOLDING_FACTORS}, got {self.folding_factor}")
        if (not _is_power_of_two(self.max_trace_length)
                or self.max_trace_length < MIN_TRACE_LENGTH
                or self.lde_domain_size(self.max_trace_length) > 1 << MAX_DOMAIN_BITS):
            raise ConfigurationError(f"invalid max_trace_length {self.max_trace_length}")
        try:
            object.__setattr__(self, "hash_fn", HashFunction(self.hash_fn))
        except ValueError:
            raise ConfigurationError(f"unknown hash function {self.hash_fn!r}") from None

    @classmethod
    def with_security_level(
        cls,
        bits: int,
        blowup_factor: int = 8,
        grinding_factor: int = 16,
        **kwargs,
    ) -> "ProofOptions":
        """Smallest query count reaching the requested conjectured security."""
        if blowup_factor < MIN_BLOWUP:
            raise ConfigurationError(f"blowup_factor must be at least {MIN_BLOWUP}, got {blowup_factor}")
        per_query = _bits_per_query(blowup_factor)
        needed = max(bits - grinding_factor, 0)
        num_queries = max(1, math.ceil(needed / per_query))
        return cls(num_queries=num_queries, blowup_factor=blowup_factor,
                   grinding_factor=grinding_factor, **kwargs)

    @property
    def blinding_factor(self) -> int:
        """Random coefficients added to each trace column.

        Every column is opened at two points per query; one more coefficient
        than there are openings keeps the opened values uniformly random.
        """
        return 2 * self.num_queries + 2

    def lde_domain_size(self, trace_length: int) -> int:
        """Size of the coset the blinded trace and the composition are evaluated on.

        The composition bound is rounded up to (D - 1) times a power of two,
        so the FRI rate never exceeds (D - 1) / blowup_factor.
        """
        bound = composition_bound(trace_length, self.blinding_factor)
        rows = -(-bound // (MAX_CONSTRAINT_DEGREE - 1))
        return self.blowup_factor * _next_power_of_two(rows)

    def security_level(self, trace_length: int = 0) -> int:
        """Conjectured security in bits, capped by the field size."""
        query_bits = self.num_queries * _bits_per_query(self.blowup_factor) + self.grinding_factor
        cap = FIELD_BITS
        if trace_length:
            cap -= int(math.log2(self.lde_domain_size(trace_length))) + 1
        return int(min(query_bits, cap))

    # --- Serialization ---

    def to_elements(self):
        """Options as field elements, for seeding the transcript."""
        return [self.num_queries, self.blowup_factor, self.grinding_factor,
                self.hash_fn.id, self.folding_factor, self.max_trace_length]

    def to_bytes(self) -> bytes:
        return struct.pack(
            _OPTIONS_FORMAT,
            self.num_queries,
            self.blowup_factor,
            self.grinding_factor,
            self.hash_fn.id,
            self.folding_factor,
            self.max_trace_length.bit_length() - 1,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "ProofOptions":
        if len(data) != OPTIONS_SIZE:
            raise ProofFormatError(f"options need {OPTIONS_SIZE} bytes, got {len(data)}")
        queries, blowup, grinding, hash_id, folding, max_bits = struct.unpack(_OPTIONS_FORMAT, data)
        try:
            return cls(
                num_queries=queries,
                blowup_factor=blowup,
                grinding_factor=grinding,
                hash_fn=HashFunction.from_id(hash_id),
                folding_factor=folding,
                max_trace_length=1 << max_bits,
            )
        except ValueError as e:
            raise ProofFormatError(f"invalid proof options: {e}") from e

    def to_json(self) -> dict:
        return {
            "num_queries": self.num_queries,
            "blowup_factor": self.blowup_factor,
            "grinding_factor": self.grinding_factor,
            "hash_fn": self.hash_fn.value,
            "folding_factor": self.folding_factor,
            "max_trace_length": self.max_trace_length,
        }

    @classmethod
    def from_json(cls, data: dict) -> "ProofOptions":
        return cls(**{**data, "hash_fn": HashFunction(data["hash_fn"])})


def _bits_per_query(blowup_factor: int) -> float:
    return math.log2(blowup_factor / (MAX_CONSTRAINT_DEGREE - 1))
