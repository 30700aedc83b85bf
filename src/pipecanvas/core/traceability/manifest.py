# src/pipecanvas/core/traceability/manifest.py
"""
Manifest v1 — rastreabilidade forense de runs de síntese do PipeCanvas.

O Manifest consolida, de forma determinística e auditável:
    - metadados da run (run_id, started_at, pipecanvas_version)
    - hashes semânticos das entradas (config, dataset, prompt)
    - estado incremental de cada tentativa (indexado pela iteração)
    - Event Log ordenado de eventos explícitos (fases, tentativas, término)

Princípios fundamentais:
    - Nenhum evento é emitido implicitamente
    - Toda mutação ocorre por chamadas explícitas da API
    - A ordem do Event Log reflete a ordem real da run
    - O Manifest é serializável e reconstruível (round-trip)

Decisões arquiteturais:
    - UTC é o timezone canônico para todos os timestamps
    - O formato de persistência é JSON determinístico (`sort_keys=True`)
    - Tentativas são indexadas por `str(iteration)` (chaves JSON são strings)
    - A API aceita o Manifest como objeto ou como dict serializado

Limites explícitos:
    - Não decide transições de fase (o Orchestrator decide)
    - Não persiste automaticamente (o Ledger persiste)
    - Não realiza migração de versões de schema
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """Timestamps naive são assumidos como UTC; aware são convertidos."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


@dataclass
class RunManifest:
    """
    Manifest v1 — registro forense de uma run de síntese.

    Campos principais:
        - run: metadados da run (run_id, started_at, pipecanvas_version,
          e ao término final_status/failure_category/finished_at)
        - inputs: hashes de config, dataset e prompt
        - attempts: estado de cada tentativa, por iteração
        - events: Event Log ordenado

    Invariantes:
        - `attempts` é sempre um dicionário indexado por `str(iteration)`
        - `events` é sempre uma lista ordenada
        - A estrutura completa é serializável em JSON
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    attempts: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "attempts": {k: dict(v) for k, v in self.attempts.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunManifest":
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            attempts={str(k): dict(v) for k, v in (data.get("attempts", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )

    def attempt(self, iteration: int) -> Dict[str, Any]:
        return self.attempts[str(iteration)]


ManifestLike = Union[RunManifest, Dict[str, Any]]


def _get_manifest(manifest: ManifestLike) -> Tuple[RunManifest, bool]:
    """Normaliza para `RunManifest`; o bool indica se a entrada era dict."""
    if isinstance(manifest, RunManifest):
        return manifest, False
    return RunManifest.from_dict(manifest), True


def _sync(manifest: ManifestLike, m: RunManifest, is_dict: bool) -> None:
    if is_dict:
        assert isinstance(manifest, dict)
        manifest.clear()
        manifest.update(m.to_dict())


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    pipecanvas_version: str,
    config_hash: str,
    dataset_hash: str,
    prompt_hash: str,
) -> RunManifest:
    """
    Cria o Manifest inicial de uma run.

    ⚠️ Importante: esta função **não emite eventos implicitamente**.
    O Event Log inicia vazio e só é preenchido por chamadas explícitas.
    """
    started_at = _ensure_tzaware_utc(started_at)
    return RunManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "pipecanvas_version": pipecanvas_version,
        },
        inputs={
            "config_hash": config_hash,
            "dataset_hash": dataset_hash,
            "prompt_hash": prompt_hash,
        },
        attempts={},
        events=[],
    )


def add_event(
    manifest: ManifestLike,
    *,
    event_type: str,
    ts: datetime,
    iteration: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """Adiciona exatamente um evento ao Event Log, na ordem de chamada."""
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if iteration is not None:
        ev["iteration"] = iteration
    if payload is not None:
        ev["payload"] = payload

    m.events.append(ev)
    _sync(manifest, m, is_dict)


def phase_entered(manifest: ManifestLike, *, phase: str, ts: datetime, iteration: int) -> None:
    add_event(manifest, event_type="phase_entered", ts=ts, iteration=iteration, payload={"phase": phase})


def attempt_started(
    manifest: ManifestLike,
    *,
    iteration: int,
    ts: datetime,
    prior_error_count: int = 0,
) -> None:
    """Registra o início de uma tentativa (uma chamada ao gerador)."""
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    a = m.attempts.setdefault(str(iteration), {})
    a.update(
        {
            "iteration": iteration,
            "status": "running",
            "started_at": _iso(ts),
            "prior_error_count": prior_error_count,
        }
    )
    add_event(m, event_type="attempt_started", ts=ts, iteration=iteration)
    _sync(manifest, m, is_dict)


def attempt_finished(
    manifest: ManifestLike,
    *,
    iteration: int,
    ts: datetime,
    status: str,
    spec_version: Optional[int] = None,
    spec_fingerprint: Optional[str] = None,
    changed_operations: Optional[List[int]] = None,
    errors: Optional[List[Dict[str, Any]]] = None,
    traces: Optional[List[Dict[str, Any]]] = None,
) -> None:
    """
    Registra a conclusão de uma tentativa.

    `status` é `accepted`, `rejected` ou `aborted` (gerador indisponível ou
    cancelamento). A duração é calculada a partir de `started_at`.
    """
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)

    a = m.attempts.setdefault(str(iteration), {"iteration": iteration})
    started_iso = a.get("started_at")
    started_dt = datetime.fromisoformat(started_iso) if started_iso else ts
    a.update(
        {
            "status": status,
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(started_dt, ts),
            "spec_version": spec_version,
            "spec_fingerprint": spec_fingerprint,
            "changed_operations": list(changed_operations or []),
            "errors": [dict(e) for e in (errors or [])],
            "traces": [dict(t) for t in (traces or [])],
        }
    )
    add_event(
        m,
        event_type="attempt_finished",
        ts=ts,
        iteration=iteration,
        payload={"status": status, "errors": len(errors or []), "duration_ms": a["duration_ms"]},
    )
    _sync(manifest, m, is_dict)


def run_finished(
    manifest: ManifestLike,
    *,
    ts: datetime,
    final_status: str,
    failure_category: Optional[str],
    iterations_used: int,
) -> None:
    ts = _ensure_tzaware_utc(ts)
    m, is_dict = _get_manifest(manifest)
    m.run.update(
        {
            "finished_at": _iso(ts),
            "final_status": final_status,
            "failure_category": failure_category,
            "iterations_used": iterations_used,
        }
    )
    add_event(
        m,
        event_type="run_finished",
        ts=ts,
        payload={"final_status": final_status, "failure_category": failure_category},
    )
    _sync(manifest, m, is_dict)


def save_manifest(manifest: ManifestLike, path: Path) -> None:
    """Persiste o Manifest em JSON determinístico (cria diretórios)."""
    data = manifest.to_dict() if isinstance(manifest, RunManifest) else manifest
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True, default=str), encoding="utf-8")


def load_manifest(path: Path) -> RunManifest:
    data = json.loads(path.read_text(encoding="utf-8"))
    return RunManifest.from_dict(data)
