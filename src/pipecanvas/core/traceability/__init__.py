"""PipeCanvas — Traceability (core).

Manifest de run: metadados, hashes de entrada, tentativas e Event Log.
"""
