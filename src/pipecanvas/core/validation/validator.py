# src/pipecanvas/core/validation/validator.py
"""
Validator de especificações do PipeCanvas.

O Validator decide se uma especificação candidata é aceitável para um
dataset. Ele executa DUAS passagens, sempre nesta ordem:

    1. Estrutural: `validate_structure` contra o vocabulário fechado.
       Qualquer erro ⇒ retorna imediatamente; a especificação NÃO é executada.
    2. Semântica: executa a especificação no Engine.
       - falha de execução ⇒ exatamente um erro `runtime` (índice, mensagem
         e amostra vindos do Engine)
       - execução ok ⇒ checagens de aceitação configuráveis sobre a saída

Checagens de aceitação (v1, todas configuráveis):
    - colunas declaradas (spec.output_columns ∪ required_output_columns) presentes
    - saída vazia para entrada não vazia (`forbid_empty_output`)
    - limite absoluto de linhas (`max_output_rows`)
    - limite de crescimento de linhas (`max_row_growth_ratio`, saída/entrada)

Limites explícitos:
    - Não chama o gerador e não decide reparo
    - Não possui timeout próprio (o Orchestrator limita a chamada)
    - Lista vazia de erros significa "aceita"
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

from pipecanvas.core.engine.engine import Engine, ExecutionResult
from pipecanvas.core.errors import (
    DEFAULT_SAMPLE_MAX_CHARS,
    DEFAULT_SAMPLE_ROWS,
    ErrorCategory,
    ValidationError,
    bound_sample,
    semantic_error,
)
from pipecanvas.core.exceptions import (
    PipeCanvasException,
    RuntimeExecutionError,
    SemanticValidationError,
    StructuralSpecError,
)
from pipecanvas.core.run_context import RunContext
from pipecanvas.core.spec.model import PipelineSpecification
from pipecanvas.core.spec.schema import validate_structure
from pipecanvas.core.tabular.value import TabularValue


_EXCEPTION_BY_CATEGORY: Dict[ErrorCategory, Type[PipeCanvasException]] = {
    ErrorCategory.STRUCTURAL: StructuralSpecError,
    ErrorCategory.RUNTIME: RuntimeExecutionError,
    ErrorCategory.SEMANTIC: SemanticValidationError,
}


@dataclass(frozen=True)
class SemanticChecks:
    required_output_columns: Tuple[str, ...] = ()
    forbid_empty_output: bool = True
    max_output_rows: Optional[int] = None
    max_row_growth_ratio: Optional[float] = None


@dataclass(frozen=True)
class ValidationOutcome:
    """Erros da tentativa + execução (quando houve)."""

    errors: List[ValidationError] = field(default_factory=list)
    execution: Optional[ExecutionResult] = None

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def executed(self) -> bool:
        return self.execution is not None

    @property
    def output(self) -> Optional[TabularValue]:
        return self.execution.output if self.execution is not None else None

    def raise_for_errors(self) -> None:
        """Levanta a exceção tipada da categoria do primeiro erro (se houver).

        Raises:
            StructuralSpecError / RuntimeExecutionError / SemanticValidationError
        """
        if not self.errors:
            return
        first = self.errors[0]
        exc_type = _EXCEPTION_BY_CATEGORY[first.category]
        raise exc_type(
            message=f"{first.message} ({len(self.errors)} error(s))" if len(self.errors) > 1 else first.message,
            details={"errors": [e.to_dict() for e in self.errors]},
        )


class Validator:
    def __init__(
        self,
        *,
        checks: Optional[SemanticChecks] = None,
        sample_rows: int = DEFAULT_SAMPLE_ROWS,
        sample_max_chars: int = DEFAULT_SAMPLE_MAX_CHARS,
    ):
        self.checks = checks or SemanticChecks()
        self.sample_rows = sample_rows
        self.sample_max_chars = sample_max_chars

    def structural_pass(self, spec: PipelineSpecification) -> List[ValidationError]:
        return validate_structure(spec)

    def _sample(self, table: TabularValue):
        return bound_sample(
            table.head(self.sample_rows).rows,
            max_rows=self.sample_rows,
            max_chars=self.sample_max_chars,
        )

    def _acceptance(
        self,
        spec: PipelineSpecification,
        input_table: TabularValue,
        output: TabularValue,
    ) -> List[ValidationError]:
        errors: List[ValidationError] = []
        checks = self.checks

        declared: List[str] = list(spec.output_columns or ())
        for c in checks.required_output_columns:
            if c not in declared:
                declared.append(c)
        missing = [c for c in declared if not output.has_column(c)]
        if missing:
            errors.append(
                semantic_error(
                    f"output is missing expected column(s) {missing}; output columns: {list(output.headers)}",
                    sample=self._sample(output),
                )
            )

        if checks.forbid_empty_output and input_table.row_count > 0 and output.row_count == 0:
            errors.append(
                semantic_error(
                    f"output is empty although the input has {input_table.row_count} row(s)",
                    sample=self._sample(input_table),
                )
            )

        if checks.max_output_rows is not None and output.row_count > checks.max_output_rows:
            errors.append(
                semantic_error(
                    f"output has {output.row_count} rows, more than the allowed {checks.max_output_rows}",
                    sample=self._sample(output),
                )
            )

        if checks.max_row_growth_ratio is not None and input_table.row_count > 0:
            ratio = output.row_count / input_table.row_count
            if ratio > checks.max_row_growth_ratio:
                errors.append(
                    semantic_error(
                        f"output grew to {ratio:.2f}x the input rows (limit {checks.max_row_growth_ratio})",
                        sample=self._sample(output),
                    )
                )
        return errors

    def semantic_pass(
        self,
        spec: PipelineSpecification,
        table: TabularValue,
        *,
        ctx: Optional[RunContext] = None,
        stop: Optional[threading.Event] = None,
    ) -> ValidationOutcome:
        engine = Engine(ctx=ctx, sample_rows=self.sample_rows, sample_max_chars=self.sample_max_chars)
        execution = engine.execute(spec, table, stop=stop)
        if execution.failure is not None:
            return ValidationOutcome(errors=[execution.failure.to_validation_error()], execution=execution)
        assert execution.output is not None
        return ValidationOutcome(errors=self._acceptance(spec, table, execution.output), execution=execution)

    def validate(
        self,
        spec: PipelineSpecification,
        table: TabularValue,
        *,
        ctx: Optional[RunContext] = None,
    ) -> ValidationOutcome:
        structural = self.structural_pass(spec)
        if structural:
            if ctx is not None:
                ctx.log(scope="validator", level="warning", message="structural pass rejected specification", errors=len(structural))
            return ValidationOutcome(errors=structural, execution=None)
        outcome = self.semantic_pass(spec, table, ctx=ctx)
        if ctx is not None:
            ctx.log(
                scope="validator",
                level="info" if outcome.ok else "warning",
                message="semantic pass finished",
                errors=len(outcome.errors),
                categories=sorted({e.category.value for e in outcome.errors}),
            )
        return outcome


def validator_from_settings(settings: Any) -> Validator:
    """Validator configurado a partir de `SynthesisSettings`."""
    return Validator(
        checks=SemanticChecks(
            required_output_columns=tuple(settings.required_output_columns),
            forbid_empty_output=settings.forbid_empty_output,
            max_output_rows=settings.max_output_rows,
            max_row_growth_ratio=settings.max_row_growth_ratio,
        ),
        sample_rows=settings.error_sample_rows,
        sample_max_chars=settings.error_sample_max_chars,
    )
