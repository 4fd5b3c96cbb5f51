"""Public inputs and secret tapes for one execution."""

from dataclasses import dataclass
from typing import Sequence, Tuple

from primitives.field import GOLDILOCKS_PRIME
from program.errors import ConfigurationError

MAX_PUBLIC_INPUTS = 8
MAX_OUTPUTS = 8


def _canonical(values: Sequence[int], what: str) -> Tuple[int, ...]:
    out = []
    for v in values:
        if isinstance(v, bool) or not isinstance(v, int):
            v = int(v)
        if not 0 <= v < GOLDILOCKS_PRIME:
            raise ConfigurationError(f"{what} value {v} is not a canonical field element")
        out.append(v)
    return tuple(out)


@dataclass(frozen=True)
class ProgramInputs:
    """Public inputs (first one ends up on top of the stack) and secret tapes A and B."""
    public: Tuple[int, ...] = ()
    secret_a: Tuple[int, ...] = ()
    secret_b: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "public", _canonical(self.public, "public input"))
        object.__setattr__(self, "secret_a", _canonical(self.secret_a, "secret tape A"))
        object.__setattr__(self, "secret_b", _canonical(self.secret_b, "secret tape B"))
        if len(self.public) > MAX_PUBLIC_INPUTS:
            raise ConfigurationError(
                f"at most {MAX_PUBLIC_INPUTS} public inputs are allowed, got {len(self.public)}")

    @classmethod
    def from_public(cls, public: Sequence[int]) -> "ProgramInputs":
        return cls(public=tuple(public))

    @classmethod
    def none(cls) -> "ProgramInputs":
        return cls()


def check_num_outputs(num_outputs: int) -> None:
    if not 0 <= num_outputs <= MAX_OUTPUTS:
        raise ConfigurationError(f"between 0 and {MAX_OUTPUTS} outputs may be requested, got {num_outputs}")
