"""
Pytest configuration for the stack VM tests.

Shared programs and fast proof options. Proofs made with FAST_OPTIONS are
not secure; they exist to keep end-to-end tests quick.
"""

import sys
from pathlib import Path

import pytest

# Add the repository root to the path so absolute imports work
# (tests/ sits next to the packages)
root_dir = Path(__file__).parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from program.builder import ProgramBuilder  # noqa: E402
from protocol.options import ProofOptions  # noqa: E402

FAST_OPTIONS = ProofOptions(num_queries=4, blowup_factor=4, grinding_factor=0)

FIB_RESULT = 12586269025


def make_add_program():
    """push.3 push.5 add -> [8]"""
    builder = ProgramBuilder()
    builder.span("push.3 push.5 add")
    return builder.build()


def make_fib_program(iterations: int = 49):
    """Fibonacci step repeated; inputs [1, 0] give F(iterations + 1) on top."""
    builder = ProgramBuilder()
    body = builder.span("swap dup2 drop add")
    builder.repeat(body, iterations)
    return builder.build()


def make_switch_program():
    """Inputs [cond, x]: x + 10 if cond else x + 20."""
    builder = ProgramBuilder()
    t = builder.span("push.10 add")
    f = builder.span("push.20 add")
    builder.switch(t, f)
    return builder.build()


def make_countdown_program():
    """Inputs [1, c]: decrements c until it reaches zero."""
    builder = ProgramBuilder()
    body = builder.span("push.1 neg add dup push.0 eq not")
    builder.loop(body)
    return builder.build()


@pytest.fixture
def fast_options() -> ProofOptions:
    return FAST_OPTIONS


@pytest.fixture
def add_program():
    return make_add_program()


@pytest.fixture
def fib_program():
    return make_fib_program()


@pytest.fixture
def switch_program():
    return make_switch_program()


@pytest.fixture
def countdown_program():
    return make_countdown_program()
