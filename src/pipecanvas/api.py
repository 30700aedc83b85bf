# src/pipecanvas/api.py
"""
Fachada pública do PipeCanvas.

Operações:
    - synthesize / synthesize_sync: prompt + dataset → SynthesisReport
    - replay: especificação aceita + novo dataset → ExecutionResult
    - replay_checked: replay + checagens de aceitação (exceções tipadas)
    - export_specification / load_specification: forma canônica exportável

Garantia de reuso:
    A especificação sozinha (sem qualquer referência à amostra original) é
    suficiente para reproduzir a execução. `replay` com a mesma
    especificação e o mesmo dataset produz exatamente a saída da síntese.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

from pipecanvas.core.config.settings import SynthesisSettings
from pipecanvas.core.engine.engine import Engine, ExecutionResult
from pipecanvas.core.exceptions import StructuralSpecError
from pipecanvas.core.spec.model import PipelineSpecification
from pipecanvas.core.spec.schema import validate_structure
from pipecanvas.core.synthesis.cancellation import CancellationToken
from pipecanvas.core.synthesis.generator import PipelineGenerator
from pipecanvas.core.synthesis.orchestrator import SynthesisOrchestrator, SynthesisReport, SynthesisRequest
from pipecanvas.core.tabular.value import TabularValue
from pipecanvas.core.validation.validator import validator_from_settings


EXPORT_FORMAT = "pipecanvas.specification/v1"


async def synthesize(
    prompt: str,
    dataset: TabularValue,
    generator: PipelineGenerator,
    *,
    max_iterations: Optional[int] = None,
    settings: Optional[SynthesisSettings] = None,
    config: Optional[Mapping[str, Any]] = None,
    ledger: Any = None,
    cancel: Optional[CancellationToken] = None,
    run_id: Optional[str] = None,
) -> SynthesisReport:
    """Executa uma run completa de síntese.

    `settings` tem precedência sobre `config`; sem nenhum dos dois, usa os
    defaults do pacote.
    """
    if settings is None:
        settings = SynthesisSettings.from_config(dict(config) if config is not None else None)
    orchestrator = SynthesisOrchestrator(generator, settings=settings, ledger=ledger)
    return await orchestrator.synthesize(
        SynthesisRequest(prompt=prompt, dataset=dataset, max_iterations=max_iterations),
        cancel=cancel,
        run_id=run_id,
    )


def synthesize_sync(prompt: str, dataset: TabularValue, generator: PipelineGenerator, **kwargs: Any) -> SynthesisReport:
    """Versão síncrona de `synthesize` (cria seu próprio event loop)."""
    return asyncio.run(synthesize(prompt, dataset, generator, **kwargs))


def replay(specification: PipelineSpecification, dataset: TabularValue, **engine_kwargs: Any) -> ExecutionResult:
    """Reexecuta uma especificação contra um (novo) dataset.

    Raises:
        StructuralSpecError: a especificação é estruturalmente inválida
            (nunca é executada).
    """
    errors = validate_structure(specification)
    if errors:
        raise StructuralSpecError(
            message=f"specification is structurally invalid ({len(errors)} error(s))",
            details={"errors": [e.to_dict() for e in errors]},
            hint="Only accepted specifications can be replayed",
        )
    return Engine(**engine_kwargs).execute(specification, dataset)


def replay_checked(
    specification: PipelineSpecification,
    dataset: TabularValue,
    *,
    settings: Optional[SynthesisSettings] = None,
    config: Optional[Mapping[str, Any]] = None,
) -> TabularValue:
    """Replay com as mesmas checagens de aceitação usadas na síntese.

    Útil para reaplicar uma especificação salva a dados novos e saber se a
    saída ainda é aceitável (ex.: colunas obrigatórias, saída não vazia).

    Raises:
        StructuralSpecError: especificação estruturalmente inválida.
        RuntimeExecutionError: uma operação falhou sobre o dataset.
        SemanticValidationError: a saída viola uma checagem de aceitação.
    """
    if settings is None:
        settings = SynthesisSettings.from_config(dict(config) if config is not None else None)
    outcome = validator_from_settings(settings).validate(specification, dataset)
    outcome.raise_for_errors()
    assert outcome.output is not None
    return outcome.output


def export_specification(specification: PipelineSpecification) -> Dict[str, Any]:
    """Forma canônica exportável (sem dados de amostra) + fingerprint."""
    return {
        "format": EXPORT_FORMAT,
        "fingerprint": specification.fingerprint(),
        "specification": specification.to_dict(),
    }


def load_specification(data: Mapping[str, Any]) -> PipelineSpecification:
    """Inverso de `export_specification` (aceita também o dict cru da spec).

    Raises:
        StructuralSpecError: fingerprint não confere com o conteúdo.
    """
    body = data.get("specification") if "specification" in data else data
    if not isinstance(body, Mapping):
        raise StructuralSpecError(message="exported specification body must be a mapping", details={})
    spec = PipelineSpecification.from_dict(body)
    expected = data.get("fingerprint")
    if expected is not None and expected != spec.fingerprint():
        raise StructuralSpecError(
            message="specification fingerprint mismatch",
            details={"expected": expected, "actual": spec.fingerprint()},
        )
    return spec
