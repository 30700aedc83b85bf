"""Adapter CSV ⇄ TabularValue (v1).

Responsabilidades:
- ler CSV (texto, base64 ou arquivo) de forma determinística
- escrever um TabularValue como CSV (exportação de amostras e artefatos)

Limites explícitos (v1):
- NÃO infere schema
- NÃO coage tipos: `csv` devolve tudo como string, e isso é intencional
- NÃO normaliza valores
"""

from __future__ import annotations

import base64
import binascii
import csv
import io
from pathlib import Path
from typing import Any, Dict, List, Union

from pipecanvas.core.exceptions import ShapeError

from .value import TabularValue


def read_csv_text(text: str) -> TabularValue:
    """Parseia CSV com header na primeira linha.

    Linhas curtas são completadas com "" (restval); células excedentes
    tornam o dataset inconsistente e geram ShapeError.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.DictReader(io.StringIO(text, newline=""), restval="")
    headers = [h.strip() if isinstance(h, str) else h for h in (reader.fieldnames or [])]
    if not headers:
        raise ShapeError(message="CSV has no header row", details={})

    rows: List[Dict[str, Any]] = []
    for i, raw in enumerate(reader):
        if None in raw:
            raise ShapeError(
                message=f"CSV row {i} has more cells than headers",
                details={"row_index": i, "extra_cells": len(raw[None])},
            )
        values = list(raw.values())
        rows.append(dict(zip(headers, values)))

    return TabularValue.from_rows(headers, rows)


def read_csv_base64(content_base64: str) -> TabularValue:
    try:
        raw = base64.b64decode(content_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ShapeError(message="content_base64 is not valid base64", details={"error": str(e)}) from e
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ShapeError(message="CSV content is not valid UTF-8", details={"error": str(e)}) from e
    return read_csv_text(text)


def read_csv_path(path: Union[str, Path]) -> TabularValue:
    p = Path(path).expanduser()
    if not p.exists():
        raise FileNotFoundError(f"File not found: {p}")
    return read_csv_text(p.read_text(encoding="utf-8"))


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def write_csv_text(table: TabularValue) -> str:
    """Serializa headers + linhas em CSV (terminador `\\n`, ordem preservada)."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(list(table.headers))
    for row in table.cells:
        writer.writerow([_cell(v) for v in row])
    return buf.getvalue()
