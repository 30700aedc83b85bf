"""Coerções escalares usadas pelas operações do Engine.

Todas as funções são puras e levantam `ValueError` quando o valor não pode
ser convertido; a operação chamadora decide entre falhar ou anular.
Valores vazios (ver `is_empty_value`) sempre viram `None`.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Optional, Union

from pipecanvas.core.tabular.value import is_empty_value, parse_date_literal


_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
# 1,234,567 (separador de milhar); vírgula decimal não é aceita
_GROUPED_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")
_TRUE = frozenset({"true", "yes", "y", "1"})
_FALSE = frozenset({"false", "no", "n", "0"})

Number = Union[int, float]


def to_number(value: Any) -> Optional[Number]:
    """Converte para int/float.

    Literais sem ponto decimal nem expoente viram `int`; booleanos são
    rejeitados (True não é 1 no vocabulário de dados).
    """
    if is_empty_value(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"boolean {value!r} is not a number")
    if isinstance(value, (int, float)):
        return value
    s = str(value).strip()
    if _GROUPED_RE.match(s):
        s = s.replace(",", "")
    if not _NUMBER_RE.match(s):
        raise ValueError(f"{value!r} is not a number")
    if "." in s or "e" in s.lower():
        return float(s)
    return int(s)


def to_integer(value: Any) -> Optional[int]:
    n = to_number(value)
    if n is None:
        return None
    if isinstance(n, float):
        if not n.is_integer():
            raise ValueError(f"{value!r} is not an integer")
        return int(n)
    return n


def to_bool(value: Any) -> Optional[bool]:
    if is_empty_value(value):
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValueError(f"{value!r} is not a boolean")


def parse_date(value: Any, fmt: Optional[str] = None) -> Optional[datetime]:
    if is_empty_value(value):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    s = str(value).strip()
    if fmt is not None:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            raise ValueError(f"{value!r} does not match date format {fmt!r}") from None
    parsed = parse_date_literal(s)
    if parsed is None:
        raise ValueError(f"{value!r} is not a recognizable date")
    return parsed


def to_date(value: Any, fmt: Optional[str] = None) -> Optional[str]:
    """Normaliza para ISO-8601 (`YYYY-MM-DD`, ou com hora quando houver)."""
    dt = parse_date(value, fmt)
    if dt is None:
        return None
    if (dt.hour, dt.minute, dt.second, dt.microsecond) == (0, 0, 0, 0):
        return dt.date().isoformat()
    return dt.isoformat()


def to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
