# src/pipecanvas/core/engine/operations.py
"""
Implementações do vocabulário fechado de operações (v1).

Cada operação é uma função pura `(TabularValue, params) -> TabularValue`:
recebe o dataset corrente e devolve um NOVO dataset. Nenhuma operação
muta sua entrada, acessa estado global ou depende de relógio/aleatoriedade.

Contrato de falha:
    - Falhas de dados levantam `RuntimeExecutionError`
    - `stop` (threading.Event) é consultado durante as varreduras de linhas;
      quando acionado, a operação levanta `ExecutionAbortedError`
    - `details["sample"]` carrega as linhas que provocaram a falha (sem
      limite aqui; o Engine aplica o limite configurado)
    - O índice da operação NÃO é conhecido aqui; o Engine o atribui

Decisões arquiteturais:
    - `deduplicate` e `aggregate` usam pandas (drop_duplicates/groupby) com
      `dtype=object`, preservando os valores crus
    - Ordenação é sempre estável e valores vazios vão para o fim,
      independentemente da direção
    - Os parâmetros já foram validados estruturalmente; aqui só se checa o
      que depende dos dados (colunas existentes, tipos dos valores)
"""

from __future__ import annotations

import re
import threading
import unicodedata
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, TypeVar

import pandas as pd

from pipecanvas.core.exceptions import ExecutionAbortedError, RuntimeExecutionError
from pipecanvas.core.spec.schema import aggregate_alias
from pipecanvas.core.tabular.value import ColumnType, TabularValue, is_empty_value

from .coercion import parse_date, to_bool, to_date, to_integer, to_number, to_text


OperationFn = Callable[..., TabularValue]
StopSignal = Optional[threading.Event]

T = TypeVar("T")

# Linhas de amostra coletadas antes do corte do Engine
_SAMPLE_COLLECT = 20

# Intervalo (em linhas) entre consultas ao sinal de parada
_STOP_CHECK_EVERY = 1024


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fail(message: str, *, sample: Sequence[Mapping[str, Any]] = (), **details: Any) -> RuntimeExecutionError:
    payload: Dict[str, Any] = dict(details)
    payload["sample"] = [dict(r) for r in list(sample)[:_SAMPLE_COLLECT]]
    return RuntimeExecutionError(message=message, details=payload)


def _scan(items: Iterable[T], stop: StopSignal) -> Iterator[T]:
    """Itera `items` consultando `stop` a cada `_STOP_CHECK_EVERY` itens."""
    for i, item in enumerate(items):
        if stop is not None and i % _STOP_CHECK_EVERY == 0 and stop.is_set():
            raise ExecutionAbortedError(message="execution aborted", details={"position": i})
        yield item


def _require_columns(table: TabularValue, columns: Sequence[str]) -> None:
    missing = [c for c in columns if not table.has_column(c)]
    if missing:
        raise _fail(
            f"column(s) not found: {missing}; available columns: {list(table.headers)}",
            sample=table.head(3).rows,
            missing_columns=missing,
        )


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return list(value) if isinstance(value, (list, tuple)) else [value]


def _row(table: TabularValue, cells: Sequence[Any]) -> Dict[str, Any]:
    return dict(zip(table.headers, cells))


def _fold(s: str, case_sensitive: bool) -> str:
    return s if case_sensitive else s.casefold()


# ---------------------------------------------------------------------------
# filter
# ---------------------------------------------------------------------------

def _equals(cell: Any, value: Any, case_sensitive: bool) -> bool:
    if is_empty_value(cell):
        return is_empty_value(value)
    if value is None:
        return False
    if isinstance(value, bool):
        try:
            return to_bool(cell) is value
        except ValueError:
            return False
    if isinstance(value, (int, float)):
        try:
            return to_number(cell) == value
        except ValueError:
            return False
    return _fold(to_text(cell) or "", case_sensitive) == _fold(str(value), case_sensitive)


def _comparison_mode(table: TabularValue, column: str, value: Any) -> str:
    if isinstance(value, (int, float)):
        return "number"
    col_type = table.column_type(column)
    if col_type == ColumnType.NUMBER:
        try:
            to_number(value)
            return "number"
        except ValueError:
            return "text"
    if col_type == ColumnType.DATE:
        try:
            parse_date(value)
            return "date"
        except ValueError:
            return "text"
    return "text"


_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
}


def op_filter(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    column = params["column"]
    op = params["op"]
    value = params.get("value")
    case_sensitive = bool(params.get("case_sensitive", True))
    _require_columns(table, [column])
    idx = table.column_index(column)

    predicate: Callable[[Any], bool]
    if op == "is_empty":
        predicate = is_empty_value
    elif op == "not_empty":
        predicate = lambda c: not is_empty_value(c)  # noqa: E731
    elif op == "eq":
        predicate = lambda c: _equals(c, value, case_sensitive)  # noqa: E731
    elif op == "ne":
        predicate = lambda c: not _equals(c, value, case_sensitive)  # noqa: E731
    elif op == "in":
        predicate = lambda c: any(_equals(c, v, case_sensitive) for v in value)  # noqa: E731
    elif op == "not_in":
        predicate = lambda c: not any(_equals(c, v, case_sensitive) for v in value)  # noqa: E731
    elif op in ("contains", "starts_with", "ends_with"):
        needle = _fold(value, case_sensitive)
        test = {
            "contains": lambda s: needle in s,
            "starts_with": lambda s: s.startswith(needle),
            "ends_with": lambda s: s.endswith(needle),
        }[op]
        predicate = lambda c: (not is_empty_value(c)) and test(_fold(to_text(c) or "", case_sensitive))  # noqa: E731
    elif op == "matches":
        pattern = re.compile(value, 0 if case_sensitive else re.IGNORECASE)
        predicate = lambda c: (not is_empty_value(c)) and pattern.search(to_text(c) or "") is not None  # noqa: E731
    elif op in _COMPARATORS:
        predicate = _ordered_predicate(table, column, op, value, stop)
    else:
        raise _fail(f"unsupported filter op {op!r}")

    kept = [c for c in _scan(table.cells, stop) if predicate(c[idx])]
    return table.with_cells(table.headers, kept)


def _ordered_predicate(table: TabularValue, column: str, op: str, value: Any, stop: StopSignal) -> Callable[[Any], bool]:
    compare = _COMPARATORS[op]
    mode = _comparison_mode(table, column, value)
    idx = table.column_index(column)

    if mode == "number":
        target = to_number(value)
        bad = []
        for c in _scan(table.cells, stop):
            if is_empty_value(c[idx]):
                continue
            try:
                to_number(c[idx])
            except ValueError:
                bad.append(_row(table, c))
        if bad:
            raise _fail(
                f"filter {op} on '{column}': non-numeric value(s) compared with number {value!r}",
                sample=bad,
                column=column,
            )
        return lambda c: (not is_empty_value(c)) and compare(to_number(c), target)

    if mode == "date":
        target_dt = parse_date(value)

        def _date_pred(c: Any) -> bool:
            if is_empty_value(c):
                return False
            try:
                return compare(parse_date(c), target_dt)
            except ValueError:
                return False

        return _date_pred

    text_target = str(value)
    return lambda c: (not is_empty_value(c)) and compare(to_text(c) or "", text_target)


# ---------------------------------------------------------------------------
# normalize-field
# ---------------------------------------------------------------------------

def _remove_punctuation(s: str) -> str:
    return "".join(ch for ch in s if not unicodedata.category(ch).startswith("P"))


_NORMALIZERS: Dict[str, Callable[[str], str]] = {
    "lowercase": str.lower,
    "uppercase": str.upper,
    "trim": str.strip,
    "titlecase": str.title,
    "collapse_whitespace": lambda s: re.sub(r"\s+", " ", s).strip(),
    "digits_only": lambda s: re.sub(r"\D", "", s),
    "remove_punctuation": _remove_punctuation,
}


def op_normalize_field(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    column = params["field"]
    steps = [_NORMALIZERS[o] for o in _as_list(params["op"])]
    _require_columns(table, [column])
    idx = table.column_index(column)

    def _apply(v: Any) -> Any:
        if v is None:
            return None
        s = to_text(v) or ""
        for fn in steps:
            s = fn(s)
        return s

    cells = [c[:idx] + (_apply(c[idx]),) + c[idx + 1:] for c in _scan(table.cells, stop)]
    return table.with_cells(table.headers, cells)


# ---------------------------------------------------------------------------
# sort (também usado por deduplicate.order_by)
# ---------------------------------------------------------------------------

def _sort_value(col_type: ColumnType, v: Any) -> Tuple[int, Any]:
    """(grupo, chave): 0 = comparável no tipo da coluna, 1 = texto, 2 = vazio."""
    if is_empty_value(v):
        return (2, None)
    try:
        if col_type == ColumnType.NUMBER:
            return (0, to_number(v))
        if col_type == ColumnType.DATE:
            return (0, parse_date(v))
        if col_type == ColumnType.BOOLEAN:
            return (0, to_bool(v))
    except ValueError:
        pass
    return (1, to_text(v) or "")


def _stable_order(table: TabularValue, keys: Sequence[Tuple[str, bool]], stop: StopSignal = None) -> List[int]:
    """Posições das linhas ordenadas de forma estável por `keys` (coluna, desc).

    Cada chave é aplicada da menos para a mais significativa; vazios
    sempre ao fim, qualquer que seja a direção.
    """
    order = list(range(table.row_count))
    for column, descending in reversed(list(keys)):
        idx = table.column_index(column)
        col_type = table.column_type(column)
        buckets: Dict[int, List[Tuple[Any, int]]] = {0: [], 1: [], 2: []}
        for pos in _scan(order, stop):
            group, key = _sort_value(col_type, table.cells[pos][idx])
            buckets[group].append((key, pos))
        merged: List[int] = []
        for group in (0, 1):
            ranked = sorted(buckets[group], key=lambda kp: kp[0], reverse=descending)
            merged.extend(pos for _, pos in ranked)
        merged.extend(pos for _, pos in buckets[2])
        order = merged
    return order


def _sort_keys(params: Mapping[str, Any]) -> List[Tuple[str, bool]]:
    default_desc = params.get("direction", "asc") == "desc"
    keys: List[Tuple[str, bool]] = []
    for k in _as_list(params["by"]):
        if isinstance(k, str):
            keys.append((k, default_desc))
        else:
            keys.append((k["column"], k.get("direction", params.get("direction", "asc")) == "desc"))
    return keys


def op_sort(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    keys = _sort_keys(params)
    _require_columns(table, [c for c, _ in keys])
    order = _stable_order(table, keys, stop)
    return table.with_cells(table.headers, [table.cells[p] for p in order])


# ---------------------------------------------------------------------------
# deduplicate
# ---------------------------------------------------------------------------

def _free_name(headers: Sequence[str], base: str) -> str:
    name = base
    while name in headers:
        name = f"_{name}"
    return name


def _key_frame(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Chaves de agrupamento como texto; vazios (None, "", brancos) viram a mesma chave "".

    Usado por `deduplicate` e `aggregate`, que precisam concordar sobre o que
    é "o mesmo valor". Sem NaN, o groupby não depende de `dropna`.
    """
    return df[list(columns)].apply(lambda s: s.map(lambda v: "" if is_empty_value(v) else (to_text(v) or "")))


def op_deduplicate(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    """Remove duplicados por chave.

    Política de retenção (determinística):
        - sem `order_by`: mantém a primeira (ou última, `keep=last`) ocorrência
          na ordem de entrada
        - com `order_by`: a linha retida é a primeira (ou última) segundo a
          ordenação estável por `order_by`/`descending`
        - as linhas retidas permanecem na ordem original de entrada
    """
    key = _as_list(params.get("key")) or list(table.headers)
    keep = params.get("keep", "first")
    order_by: Optional[str] = params.get("order_by")
    _require_columns(table, key + ([order_by] if order_by else []))
    if table.row_count == 0:
        return table

    pos_col = _free_name(table.headers, "__pos")
    df = table.to_frame()
    df[pos_col] = range(table.row_count)
    if order_by:
        order = _stable_order(table, [(order_by, bool(params.get("descending", False)))], stop)
        df = df.iloc[order]

    key_frame = _key_frame(df, key)
    mask = ~key_frame.duplicated(keep=keep)
    retained = sorted(int(p) for p in df.loc[mask, pos_col])
    return table.with_cells(table.headers, [table.cells[p] for p in retained])


# ---------------------------------------------------------------------------
# derive-column
# ---------------------------------------------------------------------------

def _numeric_args(values: Sequence[Any], row: Mapping[str, Any], target: str) -> Optional[List[Any]]:
    out = []
    for v in values:
        if is_empty_value(v):
            return None
        try:
            out.append(to_number(v))
        except ValueError:
            raise _fail(
                f"derive-column '{target}': value {v!r} is not numeric",
                sample=[row],
                target=target,
            ) from None
    return out


def op_derive_column(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    target = params["target"]
    op = params["op"]
    args = list(params["args"])
    separator = to_text(params.get("separator")) or ""
    columns = [a for a in args if isinstance(a, str)]
    _require_columns(table, columns)

    def _resolve(cells: Sequence[Any]) -> List[Any]:
        return [cells[table.column_index(a)] if isinstance(a, str) else a["value"] for a in args]

    def _compute(cells: Sequence[Any]) -> Any:
        values = _resolve(cells)
        row = _row(table, cells)
        if op in ("add", "multiply", "subtract", "divide"):
            nums = _numeric_args(values, row, target)
            if nums is None:
                return None
            if op == "add":
                return sum(nums)
            if op == "multiply":
                result = 1
                for n in nums:
                    result *= n
                return result
            if op == "subtract":
                return nums[0] - nums[1]
            if nums[1] == 0:
                raise _fail(f"derive-column '{target}': division by zero", sample=[row], target=target)
            return nums[0] / nums[1]
        if op == "concat":
            return separator.join("" if is_empty_value(v) else (to_text(v) or "") for v in values)
        if op == "coalesce":
            return next((v for v in values if not is_empty_value(v)), None)
        # copy / constant
        return values[0]

    computed = [_compute(c) for c in _scan(table.cells, stop)]
    if table.has_column(target):
        idx = table.column_index(target)
        cells = [c[:idx] + (v,) + c[idx + 1:] for c, v in zip(table.cells, computed)]
        return table.with_cells(table.headers, cells)
    cells = [c + (v,) for c, v in zip(table.cells, computed)]
    return table.with_cells(table.headers + (target,), cells)


# ---------------------------------------------------------------------------
# select / rename / fill
# ---------------------------------------------------------------------------

def op_select_columns(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    columns = list(params["columns"])
    _require_columns(table, columns)
    idxs = [table.column_index(c) for c in columns]
    return table.with_cells(columns, [tuple(c[i] for i in idxs) for c in _scan(table.cells, stop)])


def op_rename_columns(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    mapping = dict(params["mapping"])
    _require_columns(table, list(mapping))
    headers = [mapping.get(h, h) for h in table.headers]
    dupes = sorted({h for h in headers if headers.count(h) > 1})
    if dupes:
        raise _fail(
            f"rename-columns would produce duplicate columns: {dupes}",
            sample=table.head(3).rows,
            duplicates=dupes,
        )
    return table.with_cells(headers, table.cells)


def op_fill_missing(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    column = params["column"]
    value = params["value"]
    _require_columns(table, [column])
    idx = table.column_index(column)
    cells = [
        c[:idx] + ((value if is_empty_value(c[idx]) else c[idx]),) + c[idx + 1:]
        for c in _scan(table.cells, stop)
    ]
    return table.with_cells(table.headers, cells)


# ---------------------------------------------------------------------------
# cast-type
# ---------------------------------------------------------------------------

def op_cast_type(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    column = params["column"]
    to = params["to"]
    on_error = params.get("on_error", "fail")
    fmt = params.get("format")
    _require_columns(table, [column])
    idx = table.column_index(column)

    convert: Callable[[Any], Any] = {
        "number": to_number,
        "integer": to_integer,
        "boolean": to_bool,
        "string": to_text,
        "date": lambda v: to_date(v, fmt),
    }[to]

    out: List[Tuple[Any, ...]] = []
    failed: List[Dict[str, Any]] = []
    for c in _scan(table.cells, stop):
        try:
            v = convert(c[idx])
        except ValueError:
            failed.append(_row(table, c))
            v = None
        out.append(c[:idx] + (v,) + c[idx + 1:])

    if failed and on_error == "fail":
        raise _fail(
            f"cast-type: {len(failed)} value(s) in '{column}' cannot be cast to {to}",
            sample=failed,
            column=column,
            failed_count=len(failed),
        )
    return table.with_cells(table.headers, out)


# ---------------------------------------------------------------------------
# aggregate
# ---------------------------------------------------------------------------

def _numbers(values: Sequence[Any], column: str, func: str, rows: Sequence[Mapping[str, Any]]) -> List[Any]:
    out = []
    bad = []
    for v, r in zip(values, rows):
        if is_empty_value(v):
            continue
        try:
            out.append(to_number(v))
        except ValueError:
            bad.append(r)
    if bad:
        raise _fail(f"aggregate {func}({column}): non-numeric value(s)", sample=bad, column=column)
    return out


def _extreme(values: Sequence[Any], pick: Callable[..., Any]) -> Any:
    present = [v for v in values if not is_empty_value(v)]
    if not present:
        return None
    try:
        nums = [to_number(v) for v in present]
    except ValueError:
        nums = None
    if nums is not None:
        return pick(nums)
    try:
        dated = [(parse_date(v), v) for v in present]
        return pick(dated, key=lambda dv: dv[0])[1]
    except ValueError:
        return pick(present, key=lambda v: to_text(v) or "")


def _aggregate_one(func: str, column: Optional[str], values: List[Any], rows: List[Dict[str, Any]]) -> Any:
    if func == "count":
        if column is None:
            return len(rows)
        return sum(1 for v in values if not is_empty_value(v))
    if func == "count_distinct":
        return len({to_text(v) for v in values if not is_empty_value(v)})
    if func in ("sum", "mean"):
        nums = _numbers(values, column or "", func, rows)
        if not nums:
            return None
        total = sum(nums)
        return total if func == "sum" else total / len(nums)
    if func == "min":
        return _extreme(values, min)
    if func == "max":
        return _extreme(values, max)
    if func == "first":
        return values[0] if values else None
    if func == "last":
        return values[-1] if values else None
    raise _fail(f"unsupported aggregate func {func!r}")


def op_aggregate(table: TabularValue, params: Mapping[str, Any], *, stop: StopSignal = None) -> TabularValue:
    """Agrupa preservando a ordem de primeira aparição dos grupos."""
    group_by = list(params.get("group_by") or [])
    aggregations = list(params["aggregations"])
    needed = group_by + [a["column"] for a in aggregations if a.get("column") is not None]
    _require_columns(table, needed)

    headers = group_by + [a.get("as") or aggregate_alias(a["func"], a.get("column")) for a in aggregations]

    if group_by and table.row_count:
        key_frame = _key_frame(table.to_frame(), group_by)
        groups = [list(sub.index) for _, sub in key_frame.groupby(group_by, sort=False)]
    else:
        groups = [list(range(table.row_count))] if (table.row_count or not group_by) else []

    out: List[Tuple[Any, ...]] = []
    for positions in _scan(groups, stop):
        group_cells = [table.cells[p] for p in positions]
        rows = [_row(table, c) for c in group_cells]
        key_values = [group_cells[0][table.column_index(g)] for g in group_by] if group_cells else []
        agg_values = []
        for a in aggregations:
            column = a.get("column")
            values = [c[table.column_index(column)] for c in group_cells] if column else [None] * len(group_cells)
            agg_values.append(_aggregate_one(a["func"], column, values, rows))
        out.append(tuple(key_values) + tuple(agg_values))
    return table.with_cells(headers, out)


# ---------------------------------------------------------------------------
# Registro
# ---------------------------------------------------------------------------

OPERATIONS: Dict[str, OperationFn] = {
    "filter": op_filter,
    "normalize-field": op_normalize_field,
    "deduplicate": op_deduplicate,
    "derive-column": op_derive_column,
    "sort": op_sort,
    "select-columns": op_select_columns,
    "rename-columns": op_rename_columns,
    "aggregate": op_aggregate,
    "fill-missing": op_fill_missing,
    "cast-type": op_cast_type,
}
