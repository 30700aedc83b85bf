"""Ledger canônico de runs de síntese (v1).

O Orchestrator entrega ao Ledger, exatamente uma vez por run, o `RunRecord`
imutável da run terminal. O Ledger é append-only e indexado por `run_id`:
runs concorrentes nunca disputam a mesma chave, e uma segunda gravação da
mesma chave é rejeitada com `LedgerKeyExistsError`.

Implementações (v1):
- InMemoryRunLedger: dicionário protegido por lock (testes, uso embutido)
- FileRunLedger: um diretório por run com artefatos determinísticos

Layout do FileRunLedger (relativo a `root/<run_id>/`):
- run.json       → registro da run + created_at/expires_at + artefatos
- output.csv     → saída completa (apenas runs com sucesso)
- manifest.json  → Manifest final (com evento explícito `artifacts_saved`)
- report.md      → relatório derivado do Manifest

Limites explícitos:
- NÃO aplica a expiração: apenas registra `expires_at` para o job de limpeza
- NÃO reescreve nem remove registros
- Gravação atômica por run: artefatos são escritos em `root/.staging-*` e
  publicados com um único rename
"""

from __future__ import annotations

import copy
import os
import shutil
import tempfile
import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from pipecanvas.core.exceptions import LedgerKeyExistsError
from pipecanvas.core.spec.model import PipelineSpecification
from pipecanvas.core.synthesis.run import RunRecord
from pipecanvas.core.tabular.csv_io import read_csv_path, write_csv_text
from pipecanvas.core.tabular.value import TabularValue
from pipecanvas.core.traceability.manifest import add_event, save_manifest
from pipecanvas.report.report_md import generate_report_md


RUN_FILE = "run.json"
OUTPUT_FILE = "output.csv"
MANIFEST_FILE = "manifest.json"
REPORT_FILE = "report.md"
STAGING_PREFIX = ".staging-"


@runtime_checkable
class RunLedger(Protocol):
    def record(self, record: RunRecord) -> None:
        ...


def _key_exists(run_id: str) -> LedgerKeyExistsError:
    return LedgerKeyExistsError(
        message=f"run {run_id} is already recorded",
        details={"run_id": run_id},
        hint="Run ids are unique; the ledger never overwrites a record",
    )


class InMemoryRunLedger:
    """Ledger em memória, thread-safe por chave."""

    def __init__(self) -> None:
        self._records: Dict[str, RunRecord] = {}
        self._lock = threading.Lock()

    def record(self, record: RunRecord) -> None:
        with self._lock:
            if record.run_id in self._records:
                raise _key_exists(record.run_id)
            self._records[record.run_id] = record

    def get(self, run_id: str) -> RunRecord:
        with self._lock:
            return self._records[run_id]

    def run_ids(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __contains__(self, run_id: object) -> bool:
        with self._lock:
            return run_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class FileRunLedger:
    """Ledger em filesystem: um diretório imutável por run."""

    def __init__(
        self,
        root: Union[str, Path],
        *,
        retention_hours: float = 24.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if retention_hours <= 0:
            raise ValueError("retention_hours must be positive")
        self.root = Path(root)
        self.retention_hours = retention_hours
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def run_dir(self, run_id: str) -> Path:
        return self.root / run_id

    # ------------------------------------------------------------------
    # Persist
    # ------------------------------------------------------------------
    def record(self, record: RunRecord) -> None:
        """Grava a run em diretório temporário e o publica com um rename.

        Uma falha no meio da escrita não deixa diretório parcial em
        `root/<run_id>/`: o temporário é removido e o mesmo `run_id` pode
        ser gravado de novo.

        Raises:
            LedgerKeyExistsError: `run_id` já gravado.
        """
        run_dir = self.run_dir(record.run_id)
        if run_dir.exists():
            raise _key_exists(record.run_id)
        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f"{STAGING_PREFIX}{record.run_id}-", dir=self.root))
        try:
            self._write_artifacts(record, staging)
            try:
                # rename de diretório falha se o destino já existe e não está vazio
                os.rename(staging, run_dir)
            except OSError:
                if run_dir.exists():
                    raise _key_exists(record.run_id) from None
                raise
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

    def _write_artifacts(self, record: RunRecord, run_dir: Path) -> None:
        created_at = self._clock()
        expires_at = created_at + timedelta(hours=self.retention_hours)
        artifacts: List[str] = [RUN_FILE, MANIFEST_FILE, REPORT_FILE]

        if record.output is not None:
            (run_dir / OUTPUT_FILE).write_text(write_csv_text(record.output), encoding="utf-8")
            artifacts.append(OUTPUT_FILE)

        manifest = copy.deepcopy(record.manifest) if record.manifest else {}
        record_dict = record.to_dict()
        if manifest:
            add_event(
                manifest,
                event_type="artifacts_saved",
                ts=created_at,
                payload={"artifacts": sorted(artifacts), "expires_at": expires_at.isoformat()},
            )
            save_manifest(manifest, run_dir / MANIFEST_FILE)
            (run_dir / REPORT_FILE).write_text(generate_report_md(manifest, record_dict), encoding="utf-8")
        else:
            artifacts = [a for a in artifacts if a not in (MANIFEST_FILE, REPORT_FILE)]

        payload: Dict[str, Any] = dict(record_dict)
        payload["created_at"] = created_at.isoformat()
        payload["expires_at"] = expires_at.isoformat()
        payload["artifacts"] = sorted(artifacts)
        (run_dir / RUN_FILE).write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True, default=str),
            encoding="utf-8",
        )

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------
    def get(self, run_id: str) -> Dict[str, Any]:
        path = self.run_dir(run_id) / RUN_FILE
        if not path.exists():
            raise KeyError(run_id)
        return json.loads(path.read_text(encoding="utf-8"))

    def load_specification(self, run_id: str) -> Optional[PipelineSpecification]:
        spec = self.get(run_id).get("specification")
        return PipelineSpecification.from_dict(spec) if isinstance(spec, dict) else None

    def load_output(self, run_id: str) -> Optional[TabularValue]:
        path = self.run_dir(run_id) / OUTPUT_FILE
        return read_csv_path(path) if path.exists() else None

    def run_ids(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(
            p.name for p in self.root.iterdir() if not p.name.startswith(STAGING_PREFIX) and (p / RUN_FILE).exists()
        )

    def __contains__(self, run_id: object) -> bool:
        return isinstance(run_id, str) and (self.run_dir(run_id) / RUN_FILE).exists()
