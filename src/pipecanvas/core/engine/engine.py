# src/pipecanvas/core/engine/engine.py
"""
Engine de execução de especificações do PipeCanvas.

O Engine aplica as operações de uma `PipelineSpecification` a um
`TabularValue`, em ordem, alimentando a saída de cada passo como entrada
do próximo.

Princípios fundamentais:
    - Determinismo: mesma especificação + mesmo dataset ⇒ mesma saída
    - Fail-fast: a primeira falha interrompe a execução
    - Atribuição: toda falha indica o índice da operação que falhou
    - Nenhuma exceção cruza a fronteira do Engine; falhas viram dados

Guardrails:
    - `RuntimeExecutionError` (falha de dados) → `ExecutionFailure` com amostra
    - Outras exceções → `ExecutionFailure` genérica, sem stack trace no payload
    - Amostras são sempre limitadas (linhas e tamanho serializado)

Limites explícitos:
    - Não valida estrutura (o Validator o faz antes)
    - Não decide reparo nem conhece o gerador
    - Não possui timeout próprio: o Orchestrator limita a chamada e, ao
      desistir dela, aciona o sinal de parada (`stop`)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pipecanvas.core.errors import (
    DEFAULT_SAMPLE_MAX_CHARS,
    DEFAULT_SAMPLE_ROWS,
    SampleContext,
    ValidationError,
    bound_sample,
    runtime_error,
)
from pipecanvas.core.exceptions import ExecutionAbortedError, PipeCanvasException, RuntimeExecutionError
from pipecanvas.core.run_context import RunContext
from pipecanvas.core.spec.model import PipelineSpecification
from pipecanvas.core.tabular.value import TabularValue

from .operations import OPERATIONS


@dataclass(frozen=True)
class OperationTrace:
    """Rastro leve de um passo executado com sucesso."""

    index: int
    kind: str
    rows_before: int
    rows_after: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "kind": self.kind,
            "rows_before": self.rows_before,
            "rows_after": self.rows_after,
        }


@dataclass(frozen=True)
class ExecutionFailure:
    operation_index: int
    kind: str
    message: str
    sample: SampleContext
    error_type: str

    def to_validation_error(self) -> ValidationError:
        return runtime_error(
            f"operation {self.operation_index} ({self.kind}) failed: {self.message}",
            operation_index=self.operation_index,
            sample=self.sample,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_index": self.operation_index,
            "kind": self.kind,
            "message": self.message,
            "sample": self.sample.to_dict(),
            "error_type": self.error_type,
        }


@dataclass(frozen=True)
class ExecutionResult:
    """Resultado de uma execução: saída final OU falha atribuída."""

    output: Optional[TabularValue]
    failure: Optional[ExecutionFailure] = None
    traces: List[OperationTrace] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failure is None


class Engine:
    """Executor sequencial e determinístico de especificações."""

    def __init__(
        self,
        *,
        ctx: Optional[RunContext] = None,
        sample_rows: int = DEFAULT_SAMPLE_ROWS,
        sample_max_chars: int = DEFAULT_SAMPLE_MAX_CHARS,
    ):
        self.ctx = ctx
        self.sample_rows = sample_rows
        self.sample_max_chars = sample_max_chars

    def _log(self, level: str, message: str, **extra: Any) -> None:
        if self.ctx is not None:
            self.ctx.log(scope="engine", level=level, message=message, **extra)

    def _failure(self, index: int, kind: str, current: TabularValue, exc: Exception) -> ExecutionFailure:
        if isinstance(exc, PipeCanvasException):
            raw_sample = (exc.details or {}).get("sample")
            message = exc.message or exc.__class__.__name__
        else:
            raw_sample = None
            message = str(exc) or exc.__class__.__name__
        if raw_sample is None:
            raw_sample = current.head(self.sample_rows).rows
        return ExecutionFailure(
            operation_index=index,
            kind=kind,
            message=message,
            sample=bound_sample(raw_sample, max_rows=self.sample_rows, max_chars=self.sample_max_chars),
            error_type=exc.__class__.__name__,
        )

    def _aborted(self, index: int, kind: str, current: TabularValue, traces: List[OperationTrace]) -> ExecutionResult:
        # nada é registrado no ctx: a run já seguiu adiante (timeout/cancelamento)
        failure = ExecutionFailure(
            operation_index=index,
            kind=kind,
            message=f"execution aborted before operation {index} ({kind}) finished",
            sample=bound_sample(current.head(self.sample_rows).rows, max_rows=self.sample_rows, max_chars=self.sample_max_chars),
            error_type=ExecutionAbortedError.__name__,
        )
        return ExecutionResult(output=None, failure=failure, traces=traces)

    def execute(
        self,
        spec: PipelineSpecification,
        table: TabularValue,
        *,
        stop: Optional[threading.Event] = None,
    ) -> ExecutionResult:
        """Executa `spec` sobre `table`.

        `stop` é o sinal de parada cooperativa: consultado antes de cada
        operação e durante as varreduras de linhas. Quando acionado, a
        execução termina com uma falha `ExecutionAbortedError`.
        """
        current = table
        traces: List[OperationTrace] = []
        self._log("info", "execution started", operations=len(spec.operations), rows=table.row_count)

        for index, op in enumerate(spec.operations):
            if stop is not None and stop.is_set():
                return self._aborted(index, op.kind, current, traces)
            fn = OPERATIONS.get(op.kind)
            try:
                if fn is None:
                    raise RuntimeExecutionError(
                        message=f"no implementation for operation kind {op.kind!r}",
                        details={},
                    )
                result = fn(current, op.plain_params(), stop=stop)
            except ExecutionAbortedError:
                return self._aborted(index, op.kind, current, traces)
            except Exception as e:
                failure = self._failure(index, op.kind, current, e)
                self._log(
                    "error",
                    "operation failed",
                    operation_index=index,
                    kind=op.kind,
                    error_type=failure.error_type,
                    error=failure.message,
                )
                return ExecutionResult(output=None, failure=failure, traces=traces)

            traces.append(
                OperationTrace(index=index, kind=op.kind, rows_before=current.row_count, rows_after=result.row_count)
            )
            current = result

        if stop is not None and stop.is_set() and spec.operations:
            return self._aborted(len(spec.operations) - 1, spec.operations[-1].kind, current, traces)
        self._log("info", "execution finished", rows=current.row_count, columns=len(current.headers))
        return ExecutionResult(output=current, failure=None, traces=traces)


def execute(spec: PipelineSpecification, table: TabularValue, **kwargs: Any) -> ExecutionResult:
    """Atalho funcional para `Engine(**kwargs).execute(spec, table)`."""
    stop = kwargs.pop("stop", None)
    return Engine(**kwargs).execute(spec, table, stop=stop)
