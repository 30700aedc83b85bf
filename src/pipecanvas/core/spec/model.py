# src/pipecanvas/core/spec/model.py
"""
Modelo canônico de especificação de pipeline do PipeCanvas.

Uma `PipelineSpecification` é a unidade que é gerada, validada, executada,
armazenada e exportada. Ela descreve uma transformação de dados como uma
lista ordenada de operações tipadas.

Princípios fundamentais:
    - A ordem das operações é semanticamente significativa (esquerda → direita)
    - Especificações são imutáveis: reparo produz um novo valor
    - A versão é monotônica e incrementa a cada reparo
    - A especificação sozinha é suficiente para reproduzir a execução

Invariantes:
    - `operations` é uma tupla (ordem preservada, sem mutação)
    - `params` de cada operação é somente leitura (cópia profunda congelada)
    - Especificações são hashable (podem ser chaves de dict/set)
    - Uma especificação "completa" possui ao menos uma operação
    - `fingerprint()` depende apenas de operações e colunas declaradas

Limites explícitos:
    - Não valida parâmetros (ver `spec.schema`)
    - Não executa operações (ver `engine`)
"""

from __future__ import annotations

import copy
import hashlib
import json
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


_OPERATION_ENVELOPE_KEYS = ("params", "parameters")


def _freeze(value: Any) -> Any:
    """Cópia profunda imutável: dict → MappingProxyType, list/tuple → tuple."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return copy.deepcopy(value)


def _thaw(value: Any) -> Any:
    """Inverso de `_freeze` (forma JSON: dicts e listas novos)."""
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return copy.deepcopy(value)


@dataclass(frozen=True)
class Operation:
    """
    Um passo tipado da especificação.

    `kind` é mantido como string crua para que kinds desconhecidos (produzidos
    por um gerador não determinístico) possam ser representados e reportados
    como erro estrutural, em vez de falharem no parsing.

    `params` é congelado na construção (cópia profunda somente leitura):
    nem o gerador nem o chamador conseguem alterar uma operação já criada.
    Para a forma editável use `plain_params()`.
    """
    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", _freeze(self.params))

    def __hash__(self) -> int:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), default=str)
        return hash(canonical)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Operation":
        """Aceita a forma aninhada (`params`/`parameters`) e a forma plana.

        Exemplos equivalentes:
            {"kind": "deduplicate", "params": {"key": "email"}}
            {"kind": "deduplicate", "key": "email"}
        """
        if not isinstance(data, Mapping):
            raise TypeError(f"operation must be a mapping, got {type(data).__name__}")
        kind = data.get("kind")
        kind_str = kind if isinstance(kind, str) else ("" if kind is None else str(kind))

        for envelope in _OPERATION_ENVELOPE_KEYS:
            if envelope in data and isinstance(data[envelope], Mapping):
                return cls(kind=kind_str, params=data[envelope])

        return cls(kind=kind_str, params={k: v for k, v in data.items() if k != "kind"})

    def plain_params(self) -> Any:
        """Cópia editável dos parâmetros (dicts e listas, como no JSON de origem)."""
        return _thaw(self.params)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "params": self.plain_params()}


@dataclass(frozen=True)
class PipelineSpecification:
    """
    Especificação de pipeline imutável e versionada.

    Campos:
        - id: identidade estável da especificação (igual ao longo dos reparos)
        - version: inteiro monotônico (1 para o primeiro candidato)
        - operations: operações em ordem de execução
        - created_from_prompt: objetivo em linguagem natural de origem
        - output_columns: colunas de saída declaradas (opcional; usadas na
          checagem semântica)
    """
    id: str
    version: int
    operations: Tuple[Operation, ...]
    created_from_prompt: str = ""
    output_columns: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "operations", tuple(self.operations))
        if self.output_columns is not None:
            object.__setattr__(self, "output_columns", tuple(self.output_columns))

    @property
    def is_well_formed(self) -> bool:
        """Todas as operações são `Operation` (candidatos vindos de fora podem não ser)."""
        return all(isinstance(op, Operation) for op in self.operations)

    @property
    def is_complete(self) -> bool:
        return len(self.operations) > 0

    def revise(
        self,
        operations: Sequence[Operation],
        *,
        output_columns: Optional[Sequence[str]] = None,
    ) -> "PipelineSpecification":
        """Retorna uma NOVA especificação com `version + 1`."""
        return replace(
            self,
            version=self.version + 1,
            operations=tuple(operations),
            output_columns=tuple(output_columns) if output_columns is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "created_from_prompt": self.created_from_prompt,
            "output_columns": list(self.output_columns) if self.output_columns is not None else None,
            "operations": [op.to_dict() for op in self.operations],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineSpecification":
        ops_raw = data.get("operations")
        if ops_raw is None:
            ops_raw = []
        if not isinstance(ops_raw, list):
            raise TypeError("operations must be a list")
        out_cols = data.get("output_columns")
        return cls(
            id=str(data.get("id") or ""),
            version=int(data.get("version") or 1),
            operations=tuple(Operation.from_dict(o) for o in ops_raw),
            created_from_prompt=str(data.get("created_from_prompt") or ""),
            output_columns=tuple(str(c) for c in out_cols) if isinstance(out_cols, list) else None,
        )

    def fingerprint(self) -> str:
        """SHA-256 canônico das operações + colunas declaradas.

        id, versão e prompt não participam: duas especificações com as mesmas
        operações produzem a mesma execução e, portanto, o mesmo fingerprint.
        """
        body = {
            "operations": [op.to_dict() for op in self.operations],
            "output_columns": list(self.output_columns) if self.output_columns is not None else None,
        }
        canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def diff(previous: Optional[PipelineSpecification], current: PipelineSpecification) -> List[int]:
    """Índices de operações adicionadas, removidas ou alteradas.

    Uso exclusivo de observabilidade; nenhuma decisão do Orchestrator depende disto.
    """
    if previous is None:
        return list(range(len(current.operations)))
    prev_ops = previous.operations
    cur_ops = current.operations
    changed: List[int] = []
    for i in range(max(len(prev_ops), len(cur_ops))):
        if i >= len(prev_ops) or i >= len(cur_ops) or prev_ops[i] != cur_ops[i]:
            changed.append(i)
    return changed
