# src/pipecanvas/core/synthesis/generator.py
"""
Contrato do gerador externo de especificações.

O Orchestrator é agnóstico ao backend de geração: qualquer objeto com um
método assíncrono `generate(request) -> PipelineSpecification` serve
(duck typing via `@runtime_checkable`). Isso permite substituir o modelo de
linguagem por um gerador determinístico em testes.

Contrato:
    - sucesso ⇒ uma `PipelineSpecification` (o Orchestrator re-carimba
      id/versão/prompt; o gerador não precisa geri-los)
    - qualquer exceção ⇒ falha de infraestrutura (generator_unavailable),
      sem retry nesta camada
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from pipecanvas.core.errors import ValidationError
from pipecanvas.core.spec.model import PipelineSpecification
from pipecanvas.core.tabular.value import TabularValue


@dataclass(frozen=True)
class GenerationRequest:
    """
    Pedido de geração (inicial ou de reparo).

    Campos:
        - prompt: objetivo em linguagem natural
        - dataset_sample: trecho do dataset (headers + primeiras linhas)
        - prior_errors: erros da tentativa IMEDIATAMENTE anterior (vazio na
          primeira tentativa); nunca o histórico completo
        - previous_specification: candidato rejeitado (None na primeira)
        - iteration: 0 para a geração inicial, n para o n-ésimo reparo
    """

    prompt: str
    dataset_sample: TabularValue
    prior_errors: Tuple[ValidationError, ...] = ()
    previous_specification: Optional[PipelineSpecification] = None
    iteration: int = 0

    @property
    def is_repair(self) -> bool:
        return bool(self.prior_errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "dataset_sample": self.dataset_sample.to_dict(),
            "column_types": {k: v.value for k, v in self.dataset_sample.column_types().items()},
            "prior_errors": [e.to_dict() for e in self.prior_errors],
            "previous_specification": (
                self.previous_specification.to_dict() if self.previous_specification is not None else None
            ),
            "iteration": self.iteration,
        }


@runtime_checkable
class PipelineGenerator(Protocol):
    async def generate(self, request: GenerationRequest) -> PipelineSpecification:
        ...
