"""STARK proof data structures and serialization.

Binary layout (all integers little-endian):

    magic "SVMP" | version u8 | options (6 bytes) | trace_length u32
    trace_root (32) | n_fri_roots u8 | fri_roots (32 each)
    n_final u16 | final values u64 each | nonce u64
    n_queries u16 | per query: current row proof, next row proof
    n_layers u8 | per layer, per query: layer proof

A query proof is n_values u16 | values u64 each | n_levels u8 |
per level: n_siblings u8 | siblings (32 each).
"""

import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List

from primitives.field import is_canonical
from primitives.hashing import DIGEST_SIZE, Digest
from primitives.merkle_tree import QueryProof
from program.errors import ProofFormatError
from protocol.options import OPTIONS_SIZE, ProofOptions

MAGIC = b"SVMP"
VERSION = 1


# --- Proof Data Structures ---

@dataclass
class TraceQuery:
    """Openings of the committed rows at a query position p and at the next-row position."""
    current: QueryProof
    next: QueryProof


@dataclass
class StarkProof:
    """Complete STARK proof of one program execution.

    Attributes:
        trace_length: Rows in the execution trace (power of two)
        options: Parameters the proof was generated with
        trace_root: Merkle root of the extended trace
        fri_roots: Merkle roots of the FRI layers; fri_roots[0] commits to
                   the composition polynomial evaluations
        final_pol: Last FRI layer, sent in full
        nonce: Proof-of-work nonce satisfying the grinding constraint
        trace_queries: Trace openings, one per query position
        fri_queries: Per FRI layer, one opened folding group per query position
    """
    trace_length: int
    options: ProofOptions
    trace_root: Digest
    fri_roots: List[Digest] = field(default_factory=list)
    final_pol: List[int] = field(default_factory=list)
    nonce: int = 0
    trace_queries: List[TraceQuery] = field(default_factory=list)
    fri_queries: List[List[QueryProof]] = field(default_factory=list)

    @property
    def composition_root(self) -> Digest:
        return self.fri_roots[0]

    def to_bytes(self) -> bytes:
        out = bytearray(MAGIC)
        out += struct.pack("<B", VERSION)
        out += self.options.to_bytes()
        out += struct.pack("<I", self.trace_length)
        out += self.trace_root
        out += struct.pack("<B", len(self.fri_roots))
        for root in self.fri_roots:
            out += root
        out += struct.pack(f"<H{len(self.final_pol)}Q", len(self.final_pol), *self.final_pol)
        out += struct.pack("<Q", self.nonce)
        out += struct.pack("<H", len(self.trace_queries))
        for q in self.trace_queries:
            _write_query_proof(out, q.current)
            _write_query_proof(out, q.next)
        out += struct.pack("<B", len(self.fri_queries))
        for layer in self.fri_queries:
            for proof in layer:
                _write_query_proof(out, proof)
        return bytes(out)

    @classmethod
    def from_bytes(cls, data: bytes) -> "StarkProof":
        """Parse a serialized proof.

        Raises:
            ProofFormatError: truncated or trailing data, bad magic/version,
                non-canonical field elements, invalid options
        """
        r = _Reader(data)
        if r.take(len(MAGIC)) != MAGIC:
            raise ProofFormatError("bad magic")
        version = r.u8()
        if version != VERSION:
            raise ProofFormatError(f"unsupported proof version {version}")
        options = ProofOptions.from_bytes(r.take(OPTIONS_SIZE))
        trace_length = r.u32()
        trace_root = r.digest()
        fri_roots = [r.digest() for _ in range(r.u8())]
        final_pol = [r.element() for _ in range(r.u16())]
        nonce = r.u64()
        n_queries = r.u16()
        trace_queries = [TraceQuery(_read_query_proof(r), _read_query_proof(r)) for _ in range(n_queries)]
        n_layers = r.u8()
        fri_queries = [[_read_query_proof(r) for _ in range(n_queries)] for _ in range(n_layers)]
        r.finish()
        return cls(
            trace_length=trace_length,
            options=options,
            trace_root=trace_root,
            fri_roots=fri_roots,
            final_pol=final_pol,
            nonce=nonce,
            trace_queries=trace_queries,
            fri_queries=fri_queries,
        )


# --- Binary Helpers ---

def _write_query_proof(out: bytearray, proof: QueryProof) -> None:
    out += struct.pack(f"<H{len(proof.v)}Q", len(proof.v), *proof.v)
    out += struct.pack("<B", len(proof.mp))
    for level in proof.mp:
        out += struct.pack("<B", len(level))
        for sibling in level:
            out += sibling


def _read_query_proof(r: "_Reader") -> QueryProof:
    values = [r.element() for _ in range(r.u16())]
    path = [[r.digest() for _ in range(r.u8())] for _ in range(r.u8())]
    return QueryProof(v=values, mp=path)


class _Reader:
    """Cursor over proof bytes; every short read is a format error."""

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.pos = 0

    def take(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self.data):
            raise ProofFormatError(f"proof truncated at byte {self.pos}")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def _unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))[0]

    def u8(self) -> int:
        return self._unpack("<B")

    def u16(self) -> int:
        return self._unpack("<H")

    def u32(self) -> int:
        return self._unpack("<I")

    def u64(self) -> int:
        return self._unpack("<Q")

    def element(self) -> int:
        value = self.u64()
        if not is_canonical(value):
            raise ProofFormatError(f"non-canonical field element at byte {self.pos - 8}")
        return value

    def digest(self) -> Digest:
        return self.take(DIGEST_SIZE)

    def finish(self) -> None:
        if self.pos != len(self.data):
            raise ProofFormatError(f"{len(self.data) - self.pos} trailing bytes")


# --- JSON Serialization ---

def _query_proof_to_json(proof: QueryProof) -> Dict[str, Any]:
    return {"v": [str(v) for v in proof.v], "mp": [[s.hex() for s in level] for level in proof.mp]}


def _query_proof_from_json(j: Dict[str, Any]) -> QueryProof:
    return QueryProof(v=[int(v) for v in j["v"]], mp=[[bytes.fromhex(s) for s in level] for level in j["mp"]])


def proof_to_json(proof: StarkProof) -> Dict[str, Any]:
    """Convert STARK proof to JSON-serializable dictionary.

    Field elements are written as decimal strings, digests as hex.
    """
    return {
        "version": VERSION,
        "trace_length": proof.trace_length,
        "options": proof.options.to_json(),
        "trace_root": proof.trace_root.hex(),
        "fri_roots": [root.hex() for root in proof.fri_roots],
        "final_pol": [str(v) for v in proof.final_pol],
        "nonce": proof.nonce,
        "trace_queries": [
            {"current": _query_proof_to_json(q.current), "next": _query_proof_to_json(q.next)}
            for q in proof.trace_queries
        ],
        "fri_queries": [[_query_proof_to_json(p) for p in layer] for layer in proof.fri_queries],
    }


def proof_from_json(j: Dict[str, Any]) -> StarkProof:
    """Inverse of proof_to_json.

    Raises:
        ProofFormatError: missing keys or malformed values
    """
    if j.get("version") != VERSION:
        raise ProofFormatError(f"unsupported proof version {j.get('version')}")
    try:
        return StarkProof(
            trace_length=int(j["trace_length"]),
            options=ProofOptions.from_json(j["options"]),
            trace_root=bytes.fromhex(j["trace_root"]),
            fri_roots=[bytes.fromhex(r) for r in j["fri_roots"]],
            final_pol=[int(v) for v in j["final_pol"]],
            nonce=int(j["nonce"]),
            trace_queries=[
                TraceQuery(_query_proof_from_json(q["current"]), _query_proof_from_json(q["next"]))
                for q in j["trace_queries"]
            ],
            fri_queries=[[_query_proof_from_json(p) for p in layer] for layer in j["fri_queries"]],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ProofFormatError(f"malformed proof JSON: {e}") from e
