"""PipeCanvas — Validator (core)."""

from .validator import SemanticChecks, ValidationOutcome, Validator  # noqa: F401
