# src/pipecanvas/core/config/settings.py
"""
Settings tipados de uma run de síntese.

`SynthesisSettings` é a visão validada e imutável da configuração efetiva
(dict) consumida pelo Orchestrator, Validator e Ledger. Todo valor fora do
domínio é rejeitado aqui, antes de qualquer chamada ao gerador.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import InvalidSettingError
from .loader import load_default_config


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name) or {}
    if not isinstance(value, Mapping):
        raise InvalidSettingError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _int(section: Mapping[str, Any], prefix: str, key: str, default: int, *, minimum: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise InvalidSettingError(f"'{prefix}.{key}' must be an integer >= {minimum}, got {value!r}")
    return value


def _positive(section: Mapping[str, Any], prefix: str, key: str, default: Optional[float], *, optional: bool = False) -> Optional[float]:
    value = section.get(key, default)
    if value is None and optional:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise InvalidSettingError(f"'{prefix}.{key}' must be a positive number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class SynthesisSettings:
    max_iterations: int = 3
    generator_timeout_s: float = 60.0
    execution_timeout_s: float = 30.0
    dataset_sample_rows: int = 20
    output_sample_rows: int = 20
    error_sample_rows: int = 5
    error_sample_max_chars: int = 2000
    required_output_columns: Tuple[str, ...] = ()
    forbid_empty_output: bool = True
    max_output_rows: Optional[int] = None
    max_row_growth_ratio: Optional[float] = None
    retention_hours: float = 24.0
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]] = None) -> "SynthesisSettings":
        """Constrói e valida settings a partir da configuração efetiva.

        `None` usa os defaults do pacote. Chaves ausentes caem nos defaults
        da dataclass.

        Raises:
            InvalidSettingError: valor fora do domínio.
        """
        cfg = dict(config) if config is not None else load_default_config()
        syn = _section(cfg, "synthesis")
        err = _section(cfg, "errors")
        sem = _section(cfg, "semantic")
        led = _section(cfg, "ledger")

        required = sem.get("required_output_columns") or []
        if not isinstance(required, list) or not all(isinstance(c, str) and c for c in required):
            raise InvalidSettingError(
                f"'semantic.required_output_columns' must be a list of non-empty strings, got {required!r}"
            )
        forbid_empty = sem.get("forbid_empty_output", True)
        if not isinstance(forbid_empty, bool):
            raise InvalidSettingError(f"'semantic.forbid_empty_output' must be a boolean, got {forbid_empty!r}")

        max_rows = sem.get("max_output_rows")
        if max_rows is not None:
            max_rows = _int(sem, "semantic", "max_output_rows", 0, minimum=0)

        return cls(
            max_iterations=_int(syn, "synthesis", "max_iterations", 3, minimum=1),
            generator_timeout_s=_positive(syn, "synthesis", "generator_timeout_s", 60.0),
            execution_timeout_s=_positive(syn, "synthesis", "execution_timeout_s", 30.0),
            dataset_sample_rows=_int(syn, "synthesis", "dataset_sample_rows", 20, minimum=0),
            output_sample_rows=_int(syn, "synthesis", "output_sample_rows", 20, minimum=0),
            error_sample_rows=_int(err, "errors", "sample_rows", 5, minimum=0),
            error_sample_max_chars=_int(err, "errors", "sample_max_chars", 2000, minimum=0),
            required_output_columns=tuple(required),
            forbid_empty_output=forbid_empty,
            max_output_rows=max_rows,
            max_row_growth_ratio=_positive(sem, "semantic", "max_row_growth_ratio", None, optional=True),
            retention_hours=_positive(led, "ledger", "retention_hours", 24.0),
            raw=cfg,
        )
