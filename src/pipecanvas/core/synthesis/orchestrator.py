# src/pipecanvas/core/synthesis/orchestrator.py
"""
Orchestrator de síntese do PipeCanvas (loop gerar → validar → reparar).

Máquina de estados:

    analyzing → generating → validating → executing → evaluating → {complete | failed}

Regras de transição:
    - analyzing → generating: imediata; prepara a amostra do dataset
    - generating → validating: ao receber um candidato do gerador.
      Falha do gerador (exceção, timeout, resposta malformada) NÃO é
      repetida: a run termina em `failed` / `generator_unavailable`
    - validating → executing → evaluating: passagens do Validator;
      `executing` existe apenas para observabilidade
    - evaluating sem erros → complete / success
    - evaluating com erros e `iteration < max_iterations` → iteration += 1,
      previous_spec = current_spec, volta a generating com os erros da
      tentativa imediatamente anterior
    - evaluating com erros e `iteration >= max_iterations` → failed /
      validation_exhausted, preservando os últimos erros

Decisões arquiteturais:
    - Loop explícito sobre o estado (sem recursão): iteração, cancelamento e
      timeout são checados em um único ponto por ciclo
    - Dois pontos de suspensão por iteração (gerador e execução), ambos com
      timeout de parede e canceláveis; timeout = gerador indisponível
    - A execução roda em thread (`asyncio.to_thread`) para não bloquear o loop;
      ao abandonar a espera, o Orchestrator aciona o sinal de parada do Engine
    - Toda run termina com um `SynthesisReport` estruturado; especificações
      ruins nunca viram exceção para o chamador
    - Se a task que aguarda `synthesize` for cancelada, a run é finalizada
      como `cancelled` e registrada no Ledger ANTES de propagar o cancelamento

Limites explícitos:
    - Não implementa geração (ver `PipelineGenerator`)
    - Não implementa expiração de artefatos (responsabilidade do Ledger)
"""

from __future__ import annotations

import asyncio
import hashlib
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from pipecanvas import __version__
from pipecanvas.core.config.errors import InvalidSettingError
from pipecanvas.core.config.hashing import compute_config_hash
from pipecanvas.core.config.settings import SynthesisSettings
from pipecanvas.core.errors import ValidationError
from pipecanvas.core.exceptions import GeneratorUnavailableError, SynthesisCancelledError
from pipecanvas.core.run_context import RunContext
from pipecanvas.core.spec.model import Operation, PipelineSpecification, diff
from pipecanvas.core.tabular.value import TabularValue
from pipecanvas.core.traceability.manifest import (
    RunManifest,
    attempt_finished,
    attempt_started,
    create_manifest,
    phase_entered,
    run_finished,
)
from pipecanvas.core.validation.validator import ValidationOutcome, Validator, validator_from_settings

from .cancellation import CancellationToken
from .generator import GenerationRequest, PipelineGenerator
from .run import FailureCategory, FinalStatus, Phase, RunRecord, SpecVersion, SynthesisRun


T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SynthesisRequest:
    prompt: str
    dataset: TabularValue
    max_iterations: Optional[int] = None


@dataclass(frozen=True)
class SynthesisReport:
    """Resultado estruturado de uma síntese (sempre retornado)."""

    run_id: str
    final_status: FinalStatus
    iterations_used: int
    specification: Optional[PipelineSpecification]
    validation_errors: Tuple[ValidationError, ...]
    output_sample: Optional[TabularValue]
    failure_category: Optional[FailureCategory] = None
    phase_trace: Tuple[str, ...] = ()
    spec_versions: Tuple[SpecVersion, ...] = ()
    events: Tuple[Dict[str, Any], ...] = field(default_factory=tuple, compare=False)
    warnings: Dict[str, Tuple[str, ...]] = field(default_factory=dict, compare=False)

    @property
    def ok(self) -> bool:
        return self.final_status == FinalStatus.SUCCESS

    @classmethod
    def from_record(
        cls,
        record: RunRecord,
        *,
        events: Tuple[Dict[str, Any], ...] = (),
        warnings: Optional[Dict[str, Tuple[str, ...]]] = None,
    ) -> "SynthesisReport":
        return cls(
            run_id=record.run_id,
            final_status=record.final_status,
            iterations_used=record.iterations_used,
            specification=record.specification,
            validation_errors=record.validation_errors,
            output_sample=record.output_sample,
            failure_category=record.failure_category,
            phase_trace=record.phase_trace,
            spec_versions=record.spec_versions,
            events=events,
            warnings=dict(warnings or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "final_status": self.final_status.value,
            "iterations_used": self.iterations_used,
            "specification": self.specification.to_dict() if self.specification else None,
            "validation_errors": [e.to_dict() for e in self.validation_errors],
            "output_sample": self.output_sample.to_dict() if self.output_sample is not None else None,
            "failure_category": self.failure_category.value if self.failure_category else None,
            "phase_trace": list(self.phase_trace),
            "spec_versions": [v.to_dict() for v in self.spec_versions],
            "warnings": {scope: list(msgs) for scope, msgs in self.warnings.items()},
        }


async def _bounded(
    aw: Awaitable[T],
    *,
    timeout: float,
    cancel: CancellationToken,
    what: str,
    on_abort: Optional[Callable[[], None]] = None,
) -> T:
    """Aguarda `aw` limitado por timeout de parede e pelo token de cancelamento.

    `on_abort` é chamado sempre que a espera é abandonada (timeout, token ou
    cancelamento da task) para que trabalho fora do event loop, como a
    execução em thread, também pare.

    Raises:
        SynthesisCancelledError: token acionado antes do término.
        GeneratorUnavailableError: timeout excedido.
    """
    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        if on_abort is not None:
            on_abort()
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    if on_abort is not None:
        on_abort()
    task.cancel()
    if cancel.cancelled:
        raise SynthesisCancelledError(
            message=f"run cancelled during {what}",
            details={"reason": cancel.reason},
        )
    raise GeneratorUnavailableError(
        message=f"{what} timed out after {timeout}s",
        details={"timeout_s": timeout, "stage": what},
        hint="Increase the timeout in the synthesis configuration",
    )


class SynthesisOrchestrator:
    """Dono exclusivo da `SynthesisRun`; executa uma run por chamada."""

    def __init__(
        self,
        generator: PipelineGenerator,
        *,
        settings: Optional[SynthesisSettings] = None,
        ledger: Any = None,
        validator: Optional[Validator] = None,
    ):
        self.generator = generator
        self.settings = settings or SynthesisSettings.from_config()
        self.ledger = ledger
        self.validator = validator or validator_from_settings(self.settings)

    # ------------------------------------------------------------------
    # Helpers de observabilidade
    # ------------------------------------------------------------------
    def _enter(self, run: SynthesisRun, phase: Phase, *, manifest: RunManifest, ctx: RunContext) -> None:
        run.enter(phase)
        phase_entered(manifest, phase=phase.value, ts=_now(), iteration=run.iteration)
        ctx.log(scope="orchestrator", level="info", message=f"phase {phase.value}", iteration=run.iteration)

    def _stamp(self, run: SynthesisRun, raw: PipelineSpecification, spec_id: str) -> PipelineSpecification:
        """Re-carimba o candidato: id da run, versão monotônica e prompt."""
        if run.current_spec is None:
            return PipelineSpecification(
                id=spec_id,
                version=1,
                operations=tuple(raw.operations),
                created_from_prompt=run.prompt,
                output_columns=raw.output_columns,
            )
        return run.current_spec.revise(raw.operations, output_columns=raw.output_columns)

    def _resolve_max_iterations(self, request: SynthesisRequest) -> int:
        value = request.max_iterations if request.max_iterations is not None else self.settings.max_iterations
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidSettingError(f"'max_iterations' must be an integer >= 1, got {value!r}")
        return value

    # ------------------------------------------------------------------
    # Loop principal
    # ------------------------------------------------------------------
    async def synthesize(
        self,
        request: SynthesisRequest,
        *,
        cancel: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
    ) -> SynthesisReport:
        settings = self.settings
        cancel = cancel or CancellationToken()
        run_id = run_id or uuid.uuid4().hex
        dataset = request.dataset

        run = SynthesisRun(
            run_id=run_id,
            prompt=request.prompt,
            input_dataset_ref=dataset.fingerprint(),
            max_iterations=self._resolve_max_iterations(request),
        )
        ctx = RunContext.new(run_id, settings.raw)
        manifest = create_manifest(
            run_id=run_id,
            started_at=_now(),
            pipecanvas_version=__version__,
            config_hash=compute_config_hash(settings.raw),
            dataset_hash=run.input_dataset_ref,
            prompt_hash=hashlib.sha256(request.prompt.encode("utf-8")).hexdigest(),
        )
        phase_entered(manifest, phase=Phase.ANALYZING.value, ts=_now(), iteration=0)
        ctx.log(scope="orchestrator", level="info", message="run started", max_iterations=run.max_iterations)

        spec_id = f"spec-{run_id}"
        versions: List[SpecVersion] = []
        output: Optional[TabularValue] = None

        try:
            sample = dataset.head(settings.dataset_sample_rows)
            self._enter(run, Phase.GENERATING, manifest=manifest, ctx=ctx)

            while not run.is_terminal:
                if cancel.cancelled:
                    raise SynthesisCancelledError(message="run cancelled", details={"reason": cancel.reason})

                # generating
                attempt_started(
                    manifest,
                    iteration=run.iteration,
                    ts=_now(),
                    prior_error_count=len(run.validation_errors),
                )
                gen_request = GenerationRequest(
                    prompt=run.prompt,
                    dataset_sample=sample,
                    prior_errors=tuple(run.validation_errors),
                    previous_specification=run.current_spec,
                    iteration=run.iteration,
                )
                try:
                    raw = await _bounded(
                        self.generator.generate(gen_request),
                        timeout=settings.generator_timeout_s,
                        cancel=cancel,
                        what="generator",
                    )
                    if not isinstance(raw, PipelineSpecification):
                        raise GeneratorUnavailableError(
                            message=f"generator returned {type(raw).__name__}, expected PipelineSpecification",
                            details={"type": type(raw).__name__},
                        )
                    if not raw.is_well_formed:
                        bad = sorted({type(op).__name__ for op in raw.operations if not isinstance(op, Operation)})
                        raise GeneratorUnavailableError(
                            message=f"generator returned operations that are not Operation: {bad}",
                            details={"types": bad},
                        )
                    candidate = self._stamp(run, raw, spec_id)
                    version = SpecVersion(
                        version=candidate.version,
                        fingerprint=candidate.fingerprint(),
                        changed_operations=tuple(diff(run.current_spec, candidate)),
                    )
                except (SynthesisCancelledError, asyncio.CancelledError):
                    raise
                except Exception as e:
                    self._abort_attempt(run, manifest, ctx, FailureCategory.GENERATOR_UNAVAILABLE, e)
                    break

                versions.append(version)
                run.set_candidate(candidate)

                # validating (estrutural) → executing (semântica)
                self._enter(run, Phase.VALIDATING, manifest=manifest, ctx=ctx)
                structural = self.validator.structural_pass(candidate)
                if structural:
                    outcome = ValidationOutcome(errors=structural, execution=None)
                else:
                    self._enter(run, Phase.EXECUTING, manifest=manifest, ctx=ctx)
                    stop = threading.Event()
                    try:
                        outcome = await _bounded(
                            asyncio.to_thread(self.validator.semantic_pass, candidate, dataset, ctx=ctx, stop=stop),
                            timeout=settings.execution_timeout_s,
                            cancel=cancel,
                            what="execution",
                            on_abort=stop.set,
                        )
                    except GeneratorUnavailableError as e:
                        self._abort_attempt(run, manifest, ctx, FailureCategory.GENERATOR_UNAVAILABLE, e)
                        break

                # evaluating
                self._enter(run, Phase.EVALUATING, manifest=manifest, ctx=ctx)
                attempt_finished(
                    manifest,
                    iteration=run.iteration,
                    ts=_now(),
                    status="accepted" if outcome.ok else "rejected",
                    spec_version=candidate.version,
                    spec_fingerprint=versions[-1].fingerprint,
                    changed_operations=list(versions[-1].changed_operations),
                    errors=[e.to_dict() for e in outcome.errors],
                    traces=[t.to_dict() for t in outcome.execution.traces] if outcome.execution else [],
                )

                if outcome.ok:
                    output = outcome.output
                    run.complete()
                    ctx.log(scope="orchestrator", level="info", message="specification accepted", version=candidate.version)
                    break

                run.record_errors(outcome.errors)
                if run.iteration < run.max_iterations:
                    run.begin_repair()
                    ctx.log(
                        scope="orchestrator",
                        level="warning",
                        message="specification rejected; requesting repair",
                        errors=len(outcome.errors),
                        next_iteration=run.iteration,
                    )
                    ctx.add_warning(
                        scope="orchestrator",
                        message=f"iteration {run.iteration - 1} rejected with {len(outcome.errors)} error(s)",
                    )
                    self._enter(run, Phase.GENERATING, manifest=manifest, ctx=ctx)
                    continue

                run.fail(FailureCategory.VALIDATION_EXHAUSTED)
                ctx.log(scope="orchestrator", level="error", message="iteration ceiling reached", errors=len(outcome.errors))

        except SynthesisCancelledError as e:
            self._abort_attempt(run, manifest, ctx, FailureCategory.CANCELLED, e)
        except asyncio.CancelledError as e:
            if not run.is_terminal:
                self._abort_attempt(run, manifest, ctx, FailureCategory.CANCELLED, e)
            record = self._close(run, manifest, output, versions)
            # a task já foi cancelada: grava de forma síncrona antes de propagar
            if self.ledger is not None:
                self.ledger.record(record)
            self._report(record, ctx)
            raise

        record = self._close(run, manifest, output, versions)
        if self.ledger is not None:
            await asyncio.to_thread(self.ledger.record, record)
        return self._report(record, ctx)

    def _abort_attempt(
        self,
        run: SynthesisRun,
        manifest: RunManifest,
        ctx: RunContext,
        category: FailureCategory,
        exc: BaseException,
    ) -> None:
        message = str(exc) or exc.__class__.__name__
        if str(run.iteration) in manifest.attempts and manifest.attempt(run.iteration).get("status") == "running":
            attempt_finished(manifest, iteration=run.iteration, ts=_now(), status="aborted")
        ctx.log(
            scope="orchestrator",
            level="error",
            message=f"run aborted: {category.value}",
            error_type=exc.__class__.__name__,
            error=message,
        )
        run.fail(category)

    def _close(
        self,
        run: SynthesisRun,
        manifest: RunManifest,
        output: Optional[TabularValue],
        versions: List[SpecVersion],
    ) -> RunRecord:
        """Fecha o manifesto e monta o registro final (ainda não persistido)."""
        assert run.final_status is not None
        run_finished(
            manifest,
            ts=_now(),
            final_status=run.final_status.value,
            failure_category=run.failure_category.value if run.failure_category else None,
            iterations_used=run.iteration,
        )
        record = run.to_record(
            output=output,
            output_sample_rows=self.settings.output_sample_rows,
            spec_versions=tuple(versions),
            manifest=manifest.to_dict(),
        )
        return record

    @staticmethod
    def _report(record: RunRecord, ctx: RunContext) -> SynthesisReport:
        ctx.log(scope="orchestrator", level="info", message="run finalized", final_status=record.final_status.value)
        warnings = {scope: tuple(msgs) for scope, msgs in ctx.warnings.items()}
        return SynthesisReport.from_record(record, events=tuple(ctx.events), warnings=warnings)
