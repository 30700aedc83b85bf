"""
src/pipecanvas/report/report_md.py

Gerador canônico de `report.md` (v1) — PipeCanvas

Regras:
- O report.md é derivado EXCLUSIVAMENTE do Manifest final (dict) e do
  registro da run (`RunRecord.to_dict()`).
- Não infere, não recalcula, não acessa filesystem.
- Mesmo Manifest + mesmo registro => mesmo report.md (ordenação estável).

Estrutura mínima obrigatória:
# Synthesis Report

## Summary
## Attempts
## Final Specification
## Validation Errors
## Traceability
## Run Metadata
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional


REQUIRED_SECTIONS: List[str] = [
    "# Synthesis Report",
    "## Summary",
    "## Attempts",
    "## Final Specification",
    "## Validation Errors",
    "## Traceability",
    "## Run Metadata",
]


def _as_pretty_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, indent=2, default=str)


def _require_manifest(manifest: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(manifest, dict) or not manifest:
        raise ValueError("Manifest is required to generate report.md")
    return manifest


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _attempt_order(attempts: Dict[str, Any]) -> List[str]:
    # chaves são str(iteration); ordenar numericamente
    return sorted(attempts, key=lambda k: int(k) if str(k).isdigit() else -1)


def generate_report_md(manifest: Dict[str, Any], record: Optional[Dict[str, Any]] = None) -> str:
    """Gera o conteúdo completo do report.md a partir do Manifest final."""
    manifest = _require_manifest(manifest)
    record = record if isinstance(record, dict) else {}

    run = _section(manifest, "run")
    inputs = _section(manifest, "inputs")
    attempts = _section(manifest, "attempts")
    events = manifest.get("events") if isinstance(manifest.get("events"), list) else []

    lines: List[str] = []
    lines.append("# Synthesis Report\n")

    # Summary
    lines.append("## Summary")
    lines.append(f"- **Run ID**: `{run.get('run_id', '<unknown>')}`")
    lines.append(f"- **Final Status**: `{run.get('final_status', '<unknown>')}`")
    category = run.get("failure_category")
    if category:
        lines.append(f"- **Failure Category**: `{category}`")
    lines.append(f"- **Iterations Used**: `{run.get('iterations_used', '<unknown>')}`")
    if "max_iterations" in record:
        lines.append(f"- **Max Iterations**: `{record['max_iterations']}`")
    if record.get("prompt"):
        lines.append(f"- **Prompt**: {record['prompt']}")
    lines.append("")

    # Attempts
    lines.append("## Attempts")
    if attempts:
        lines.append("| iteration | status | spec version | errors | changed operations | duration (ms) |")
        lines.append("|---|---|---|---|---|---|")
        for key in _attempt_order(attempts):
            a = attempts[key] if isinstance(attempts[key], dict) else {}
            changed = ", ".join(str(i) for i in a.get("changed_operations") or []) or "-"
            version = a.get("spec_version")
            lines.append(
                f"| {key} | `{a.get('status', 'unknown')}` | {version if version is not None else '-'} "
                f"| {len(a.get('errors') or [])} | {changed} | {a.get('duration_ms', '-')} |"
            )
    else:
        lines.append("No attempts recorded in the Manifest.")
    lines.append("")

    # Final Specification
    lines.append("## Final Specification")
    spec = record.get("specification")
    if isinstance(spec, dict):
        for i, op in enumerate(spec.get("operations") or []):
            lines.append(f"{i}. `{op.get('kind')}` {json.dumps(op.get('params') or {}, sort_keys=True, ensure_ascii=False)}")
        lines.append("")
        lines.append("```json")
        lines.append(_as_pretty_json(spec))
        lines.append("```")
    else:
        lines.append("No accepted specification.")
    lines.append("")

    # Validation Errors
    lines.append("## Validation Errors")
    errors = record.get("validation_errors") or []
    if errors:
        for e in errors:
            idx = e.get("operation_index")
            where = f"operation {idx}" if idx is not None else "pipeline"
            lines.append(f"- `{e.get('category')}` at {where}: {e.get('message')}")
    else:
        lines.append("No validation errors in the final attempt.")
    lines.append("")

    # Traceability
    lines.append("## Traceability")
    lines.append("- Source of truth: `Manifest` (final) and the run record only.")
    for k in ("config_hash", "dataset_hash", "prompt_hash"):
        lines.append(f"- **{k}**: `{inputs.get(k, '<unknown>')}`")
    lines.append(f"- Events recorded: `{len(events)}`\n")

    # Run Metadata
    lines.append("## Run Metadata")
    lines.append("### run")
    lines.append("```json")
    lines.append(_as_pretty_json(run))
    lines.append("```")
    if record.get("phase_trace"):
        lines.append("### phase_trace")
        lines.append("`" + " → ".join(record["phase_trace"]) + "`")

    content = "\n".join(lines)

    for sec in REQUIRED_SECTIONS:
        if sec not in content:
            raise RuntimeError(f"Report generation failed: missing required section: {sec}")

    return content
