# src/pipecanvas/core/tabular/value.py
"""
Modelo de valor tabular do PipeCanvas.

Este módulo define o `TabularValue`, a representação canônica de um
dataset já parseado (headers + linhas) que circula entre o Orchestrator,
o Validator e o Engine.

Princípios fundamentais:
    - Imutabilidade: nenhuma operação altera um TabularValue existente
    - Cada passo do pipeline produz um novo TabularValue
    - Forma consistente: toda linha possui exatamente as chaves de `headers`
    - Inferência de tipo explícita e determinística (voto majoritário)

Decisões arquiteturais:
    - As células são guardadas como tuplas alinhadas aos headers
    - `rows` devolve cópias (dict) para que o chamador nunca mute o valor
    - A conversão para pandas usa `dtype=object` para preservar valores crus

Limites explícitos:
    - Não faz parsing de CSV (ver `csv_io`)
    - Não coage tipos (inferência é apenas leitura)
    - Não conhece especificações nem operações
"""

from __future__ import annotations

import hashlib
import json
import re
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from pipecanvas.core.exceptions import ShapeError


class ColumnType(str, Enum):
    """Tipos inferidos de coluna (valores textuais estáveis)."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    EMPTY = "empty"


_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_BOOLEAN_LITERALS = frozenset({"true", "false", "yes", "no"})
_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
)


def is_empty_value(value: Any) -> bool:
    """None, NaN e strings em branco são considerados vazios."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float) and value != value:
        return True
    return False


def parse_date_literal(text: str) -> Optional[datetime]:
    s = text.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def classify_value(value: Any) -> ColumnType:
    """Classifica um único valor segundo a taxonomia de `ColumnType`."""
    if is_empty_value(value):
        return ColumnType.EMPTY
    if isinstance(value, bool):
        return ColumnType.BOOLEAN
    if isinstance(value, (int, float)):
        return ColumnType.NUMBER
    if isinstance(value, (date, datetime)):
        return ColumnType.DATE
    s = str(value).strip()
    if s.lower() in _BOOLEAN_LITERALS:
        return ColumnType.BOOLEAN
    if _NUMBER_RE.match(s):
        return ColumnType.NUMBER
    if parse_date_literal(s) is not None:
        return ColumnType.DATE
    return ColumnType.STRING


def _plain(value: Any) -> Any:
    # numpy/pandas scalars -> tipos Python puros
    if value is pd.NA or value is pd.NaT:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and value != value:
        return None
    return value


@dataclass(frozen=True)
class TabularValue:
    """
    Dataset tabular imutável.

    Campos:
        - headers: nomes de coluna, únicos e ordenados
        - cells: linhas como tuplas alinhadas a `headers`

    Use `TabularValue.from_rows` para construir a partir de registros
    (mapping coluna → valor); o construtor direto não revalida a forma.
    """
    headers: Tuple[str, ...]
    cells: Tuple[Tuple[Any, ...], ...]

    # -----------------------------
    # Construção
    # -----------------------------
    @classmethod
    def from_rows(cls, headers: Sequence[str], rows: Iterable[Mapping[str, Any]]) -> "TabularValue":
        """Constrói e valida a consistência headers/linhas.

        Raises:
            ShapeError: headers inválidos/duplicados ou linha com conjunto de
                chaves diferente de `headers`.
        """
        hdrs = tuple(headers)
        for h in hdrs:
            if not isinstance(h, str) or not h.strip():
                raise ShapeError(
                    message="headers must be non-empty strings",
                    details={"header": repr(h)},
                )
        dupes = sorted(h for h, n in Counter(hdrs).items() if n > 1)
        if dupes:
            raise ShapeError(message=f"duplicate headers: {dupes}", details={"duplicates": dupes})

        expected = set(hdrs)
        out: List[Tuple[Any, ...]] = []
        for i, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise ShapeError(
                    message=f"row {i} is not a mapping",
                    details={"row_index": i, "type": type(row).__name__},
                )
            keys = set(row.keys())
            if keys != expected:
                missing = sorted(expected - keys)
                extra = sorted(str(k) for k in keys - expected)
                raise ShapeError(
                    message=f"row {i} keys differ from headers (missing={missing}, extra={extra})",
                    details={"row_index": i, "missing": missing, "extra": extra},
                )
            out.append(tuple(row[h] for h in hdrs))
        return cls(headers=hdrs, cells=tuple(out))

    @classmethod
    def empty(cls, headers: Sequence[str]) -> "TabularValue":
        return cls.from_rows(headers, [])

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TabularValue":
        return cls.from_rows(list(data.get("headers") or []), list(data.get("rows") or []))

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "TabularValue":
        headers = [str(c) for c in df.columns]
        cells = tuple(tuple(_plain(v) for v in rec) for rec in df.itertuples(index=False, name=None))
        if len(set(headers)) != len(headers):
            raise ShapeError(message="duplicate headers in frame", details={"headers": headers})
        return cls(headers=tuple(headers), cells=cells)

    # -----------------------------
    # Leitura
    # -----------------------------
    @property
    def rows(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.headers, c)) for c in self.cells]

    def records(self) -> List[Dict[str, Any]]:
        return self.rows

    @property
    def row_count(self) -> int:
        return len(self.cells)

    def __len__(self) -> int:
        return len(self.cells)

    def has_column(self, name: str) -> bool:
        return name in self.headers

    def column_index(self, name: str) -> int:
        try:
            return self.headers.index(name)
        except ValueError:
            raise KeyError(name) from None

    def column(self, name: str) -> List[Any]:
        idx = self.column_index(name)
        return [c[idx] for c in self.cells]

    def column_type(self, name: str) -> ColumnType:
        """Infere o tipo da coluna por voto majoritário sobre valores não vazios.

        Empates são resolvidos a favor de `string` (o tipo mais permissivo).
        Coluna sem valores não vazios resulta em `empty`.
        """
        votes = Counter(classify_value(v) for v in self.column(name))
        votes.pop(ColumnType.EMPTY, None)
        if not votes:
            return ColumnType.EMPTY
        ranked = votes.most_common()
        top_count = ranked[0][1]
        leaders = [t for t, n in ranked if n == top_count]
        if len(leaders) > 1:
            return ColumnType.STRING
        return leaders[0]

    def column_types(self) -> Dict[str, ColumnType]:
        return {h: self.column_type(h) for h in self.headers}

    def head(self, n: int) -> "TabularValue":
        return TabularValue(headers=self.headers, cells=self.cells[: max(0, n)])

    def with_cells(self, headers: Sequence[str], cells: Iterable[Sequence[Any]]) -> "TabularValue":
        """Novo valor a partir de células já alinhadas (uso interno do Engine)."""
        hdrs = tuple(headers)
        out = tuple(tuple(c) for c in cells)
        for i, c in enumerate(out):
            if len(c) != len(hdrs):
                raise ShapeError(
                    message=f"row {i} has {len(c)} cells for {len(hdrs)} headers",
                    details={"row_index": i},
                )
        return TabularValue(headers=hdrs, cells=out)

    # -----------------------------
    # Serialização
    # -----------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {"headers": list(self.headers), "rows": self.rows}

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(list(self.cells), columns=list(self.headers), dtype=object)

    def fingerprint(self) -> str:
        """SHA-256 do JSON canônico (headers + linhas)."""
        canonical = json.dumps(
            {"headers": list(self.headers), "cells": [list(c) for c in self.cells]},
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
