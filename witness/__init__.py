"""Witness - trace generation for the stack VM."""

from witness.executor import DEFAULT_MAX_TRACE_LENGTH, Processor, run
from witness.layout import COLUMN_GROUPS, CTX_WIDTH, LAYOUT, TRACE_WIDTH, TraceLayout
from witness.trace import MIN_TRACE_LENGTH, ExecutionTrace

__all__ = [
    "run",
    "Processor",
    "DEFAULT_MAX_TRACE_LENGTH",
    "ExecutionTrace",
    "MIN_TRACE_LENGTH",
    "TraceLayout",
    "LAYOUT",
    "COLUMN_GROUPS",
    "CTX_WIDTH",
    "TRACE_WIDTH",
]
