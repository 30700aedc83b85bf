"""PipeCanvas — Engine (core)."""

from .engine import Engine, ExecutionFailure, ExecutionResult, OperationTrace, execute  # noqa: F401
from .operations import OPERATIONS  # noqa: F401
