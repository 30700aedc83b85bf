# src/pipecanvas/core/synthesis/run.py
"""
Estado de uma run de síntese (SynthesisRun) e seu registro final (RunRecord).

A `SynthesisRun` é o único estado mutável do loop de síntese e é mutada
EXCLUSIVAMENTE pelo Orchestrator, através dos métodos abaixo. Cada método
valida a transição antes de aplicá-la.

Invariantes:
    - `final_status` passa de None para exatamente um de {success, failed},
      uma única vez
    - após o término, qualquer mutação levanta `RunFinalizedError`
    - `iteration` nunca excede `max_iterations`
    - `max_iterations` é fixado na criação e imutável durante a run
    - `validation_errors` contém apenas os erros da tentativa mais recente

O `RunRecord` é o snapshot imutável entregue ao Ledger (uma vez por run).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pipecanvas.core.errors import ValidationError
from pipecanvas.core.exceptions import RunFinalizedError
from pipecanvas.core.spec.model import PipelineSpecification
from pipecanvas.core.tabular.value import TabularValue


class Phase(str, Enum):
    ANALYZING = "analyzing"
    GENERATING = "generating"
    VALIDATING = "validating"
    EXECUTING = "executing"
    EVALUATING = "evaluating"
    COMPLETE = "complete"
    FAILED = "failed"


TERMINAL_PHASES = frozenset({Phase.COMPLETE, Phase.FAILED})


class FinalStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class FailureCategory(str, Enum):
    VALIDATION_EXHAUSTED = "validation_exhausted"
    GENERATOR_UNAVAILABLE = "generator_unavailable"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SpecVersion:
    """Rastro de uma versão candidata (observabilidade)."""

    version: int
    fingerprint: str
    changed_operations: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "fingerprint": self.fingerprint,
            "changed_operations": list(self.changed_operations),
        }


@dataclass(frozen=True)
class RunRecord:
    """Snapshot imutável e completo de uma run terminal."""

    run_id: str
    prompt: str
    input_dataset_ref: str
    final_status: FinalStatus
    failure_category: Optional[FailureCategory]
    iterations_used: int
    max_iterations: int
    specification: Optional[PipelineSpecification]
    validation_errors: Tuple[ValidationError, ...]
    output: Optional[TabularValue]
    output_sample: Optional[TabularValue]
    phase_trace: Tuple[str, ...]
    spec_versions: Tuple[SpecVersion, ...]
    started_at: str
    finished_at: str
    manifest: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Representação serializável (sem a saída completa; só a amostra)."""
        return {
            "run_id": self.run_id,
            "prompt": self.prompt,
            "input_dataset_ref": self.input_dataset_ref,
            "final_status": self.final_status.value,
            "failure_category": self.failure_category.value if self.failure_category else None,
            "iterations_used": self.iterations_used,
            "max_iterations": self.max_iterations,
            "specification": self.specification.to_dict() if self.specification else None,
            "validation_errors": [e.to_dict() for e in self.validation_errors],
            "output_sample": self.output_sample.to_dict() if self.output_sample is not None else None,
            "phase_trace": list(self.phase_trace),
            "spec_versions": [v.to_dict() for v in self.spec_versions],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


@dataclass
class SynthesisRun:
    run_id: str
    prompt: str
    input_dataset_ref: str
    max_iterations: int
    phase: Phase = Phase.ANALYZING
    iteration: int = 0
    current_spec: Optional[PipelineSpecification] = None
    previous_spec: Optional[PipelineSpecification] = None
    validation_errors: List[ValidationError] = field(default_factory=list)
    final_status: Optional[FinalStatus] = None
    failure_category: Optional[FailureCategory] = None
    phase_trace: List[Phase] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    finished_at: Optional[str] = None

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        self.phase_trace.append(self.phase)

    @property
    def is_terminal(self) -> bool:
        return self.final_status is not None

    def _guard(self) -> None:
        if self.is_terminal:
            raise RunFinalizedError(
                message=f"run {self.run_id} is already {self.final_status.value}",
                details={"run_id": self.run_id, "phase": self.phase.value},
            )

    def enter(self, phase: Phase) -> None:
        self._guard()
        if phase in TERMINAL_PHASES:
            raise ValueError("terminal phases are entered through complete()/fail()")
        self.phase = phase
        self.phase_trace.append(phase)

    def set_candidate(self, spec: PipelineSpecification) -> None:
        self._guard()
        self.current_spec = spec

    def record_errors(self, errors: List[ValidationError]) -> None:
        self._guard()
        self.validation_errors = list(errors)

    def begin_repair(self) -> None:
        """Avança a iteração; `previous_spec` guarda o candidato rejeitado."""
        self._guard()
        if self.iteration >= self.max_iterations:
            raise ValueError("iteration ceiling reached; the run must fail instead")
        self.iteration += 1
        self.previous_spec = self.current_spec

    def _finish(self, status: FinalStatus, phase: Phase) -> None:
        self._guard()
        self.final_status = status
        self.phase = phase
        self.phase_trace.append(phase)
        self.finished_at = datetime.now(timezone.utc).isoformat()

    def complete(self) -> None:
        self._guard()
        self.validation_errors = []
        self._finish(FinalStatus.SUCCESS, Phase.COMPLETE)

    def fail(self, category: FailureCategory) -> None:
        self._guard()
        self.failure_category = category
        self._finish(FinalStatus.FAILED, Phase.FAILED)

    def to_record(
        self,
        *,
        output: Optional[TabularValue] = None,
        output_sample_rows: int = 20,
        spec_versions: Tuple[SpecVersion, ...] = (),
        manifest: Optional[Dict[str, Any]] = None,
    ) -> RunRecord:
        if not self.is_terminal:
            raise ValueError(f"run {self.run_id} is not terminal (phase={self.phase.value})")
        assert self.final_status is not None and self.finished_at is not None
        success = self.final_status == FinalStatus.SUCCESS
        return RunRecord(
            run_id=self.run_id,
            prompt=self.prompt,
            input_dataset_ref=self.input_dataset_ref,
            final_status=self.final_status,
            failure_category=self.failure_category,
            iterations_used=self.iteration,
            max_iterations=self.max_iterations,
            specification=self.current_spec if success else None,
            validation_errors=tuple(self.validation_errors),
            output=output if success else None,
            output_sample=output.head(output_sample_rows) if (success and output is not None) else None,
            phase_trace=tuple(p.value for p in self.phase_trace),
            spec_versions=tuple(spec_versions),
            started_at=self.started_at,
            finished_at=self.finished_at,
            manifest=dict(manifest or {}),
        )
