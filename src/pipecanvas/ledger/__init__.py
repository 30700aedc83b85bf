"""PipeCanvas — Ledger de runs (append-only por run_id)."""

from .run_ledger import FileRunLedger, InMemoryRunLedger, RunLedger  # noqa: F401
