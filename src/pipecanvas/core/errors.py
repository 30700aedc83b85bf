"""
PipeCanvas — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros de validação do PipeCanvas.
Erros são artefatos de domínio: eles alimentam o loop de reparo (são
enviados de volta ao gerador externo), o relatório final da run e o ledger.
Por isso devem ser:

- explícitos
- serializáveis
- limitados em tamanho (amostras de dados nunca crescem sem limite)
- atribuídos à operação que falhou, quando aplicável

Nenhuma decisão implícita é permitida.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional


DEFAULT_SAMPLE_ROWS = 5
DEFAULT_SAMPLE_MAX_CHARS = 2000


class ErrorCategory(str, Enum):
    """
    Categorias canônicas de erro.

    As três primeiras são recuperáveis pelo loop de reparo; as duas últimas
    são terminais para a run e nunca aparecem em `ValidationError`.
    """
    STRUCTURAL = "structural"
    RUNTIME = "runtime"
    SEMANTIC = "semantic"
    GENERATOR_UNAVAILABLE = "generator_unavailable"
    CANCELLED = "cancelled"


_VALIDATION_CATEGORIES = (ErrorCategory.STRUCTURAL, ErrorCategory.RUNTIME, ErrorCategory.SEMANTIC)


@dataclass(frozen=True)
class SampleContext:
    """Trecho limitado de dados que provocaram um erro."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"rows": [dict(r) for r in self.rows], "truncated": self.truncated}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SampleContext":
        return cls(
            rows=[dict(r) for r in (data.get("rows") or [])],
            truncated=bool(data.get("truncated", False)),
        )


@dataclass(frozen=True)
class ValidationError:
    """
    Erro de validação canônico do PipeCanvas.

    Campos:
    - operation_index: passo que falhou (None para erros do pipeline inteiro)
    - category: structural | runtime | semantic
    - message: mensagem curta, humana e objetiva
    - sample_context: amostra limitada dos dados envolvidos (opcional)
    """

    operation_index: Optional[int]
    category: ErrorCategory
    message: str
    sample_context: Optional[SampleContext] = None

    def __post_init__(self) -> None:
        if self.category not in _VALIDATION_CATEGORIES:
            raise ValueError(f"invalid validation error category: {self.category!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_index": self.operation_index,
            "category": self.category.value,
            "message": self.message,
            "sample_context": self.sample_context.to_dict() if self.sample_context else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ValidationError":
        sample = data.get("sample_context")
        return cls(
            operation_index=data.get("operation_index"),
            category=ErrorCategory(data["category"]),
            message=str(data.get("message", "")),
            sample_context=SampleContext.from_dict(sample) if isinstance(sample, Mapping) else None,
        )


# ---------------------------------------------------------------------------
# Amostras limitadas
# ---------------------------------------------------------------------------

def bound_sample(
    rows: Iterable[Mapping[str, Any]],
    *,
    max_rows: int = DEFAULT_SAMPLE_ROWS,
    max_chars: int = DEFAULT_SAMPLE_MAX_CHARS,
) -> SampleContext:
    """Reduz um conjunto de linhas a uma amostra de tamanho limitado.

    Política (v1):
    - no máximo `max_rows` linhas, na ordem original
    - linhas são descartadas do fim enquanto o JSON serializado exceder `max_chars`
    - `truncated` indica se algo foi descartado
    """
    all_rows = [dict(r) for r in rows]
    kept = all_rows[: max(0, max_rows)]
    truncated = len(kept) < len(all_rows)

    while kept and len(json.dumps(kept, ensure_ascii=False, sort_keys=True, default=str)) > max_chars:
        kept.pop()
        truncated = True

    return SampleContext(rows=kept, truncated=truncated)


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def structural_error(message: str, *, operation_index: Optional[int] = None) -> ValidationError:
    return ValidationError(
        operation_index=operation_index,
        category=ErrorCategory.STRUCTURAL,
        message=message,
    )


def runtime_error(
    message: str,
    *,
    operation_index: Optional[int],
    sample: Optional[SampleContext] = None,
) -> ValidationError:
    return ValidationError(
        operation_index=operation_index,
        category=ErrorCategory.RUNTIME,
        message=message,
        sample_context=sample,
    )


def semantic_error(message: str, *, sample: Optional[SampleContext] = None) -> ValidationError:
    return ValidationError(
        operation_index=None,
        category=ErrorCategory.SEMANTIC,
        message=message,
        sample_context=sample,
    )
