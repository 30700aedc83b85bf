"""
PipeCanvas — Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do PipeCanvas.

Objetivo:
- Permitir que Engine, Validator e Orchestrator levantem exceções semânticas tipadas
- Facilitar o mapeamento determinístico para `ValidationError` (ver `core.errors`)
- Evitar ValueError/RuntimeError genéricos nas fronteiras críticas

Taxonomia (v1):
- StructuralSpecError      → especificação malformada (nunca executada)
- RuntimeExecutionError    → falha ao aplicar uma operação aos dados
- ExecutionAbortedError    → execução interrompida pelo sinal de parada
- SemanticValidationError  → execução ok, mas saída reprovada em checagem de aceitação
- GeneratorUnavailableError → chamada ao gerador externo falhou / expirou
- SynthesisCancelledError  → abortado pelo iniciador da run

Regras:
- Exceções carregam apenas dados estruturados (serializáveis) em `details`.
- Nenhuma exceção carrega stack trace em payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class PipeCanvasException(Exception):
    """Base class para exceções internas do PipeCanvas.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Dados tabulares
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ShapeError(PipeCanvasException):
    """Headers e linhas não formam um TabularValue consistente."""


# ---------------------------------------------------------------------------
# Especificação / Execução / Validação
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StructuralSpecError(PipeCanvasException):
    """Especificação estruturalmente inválida (não pode ser executada)."""


@dataclass(frozen=True)
class RuntimeExecutionError(PipeCanvasException):
    """Falha ao aplicar uma operação ao dataset.

    `details` carrega, quando disponível, `sample` (linhas que provocaram a falha).
    O índice da operação é atribuído pelo Engine, não pela operação.
    """


@dataclass(frozen=True)
class ExecutionAbortedError(PipeCanvasException):
    """Execução interrompida por timeout ou cancelamento (sinal de parada do Engine)."""


@dataclass(frozen=True)
class SemanticValidationError(PipeCanvasException):
    """Execução concluída, mas a saída viola uma checagem de aceitação."""


# ---------------------------------------------------------------------------
# Infraestrutura / Controle da run
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GeneratorUnavailableError(PipeCanvasException):
    """Chamada ao gerador externo falhou, expirou ou retornou resposta malformada."""


@dataclass(frozen=True)
class SynthesisCancelledError(PipeCanvasException):
    """Run cancelada pelo iniciador antes de atingir estado terminal."""


@dataclass(frozen=True)
class RunFinalizedError(PipeCanvasException):
    """Tentativa de mutar uma SynthesisRun já terminal."""


@dataclass(frozen=True)
class LedgerKeyExistsError(PipeCanvasException):
    """O ledger já possui um registro para o mesmo run_id (append-only)."""
