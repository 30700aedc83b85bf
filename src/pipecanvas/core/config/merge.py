# src/pipecanvas/core/config/merge.py
"""
Utilitário canônico de deep-merge de configuração.

Política de merge (v1):
    - dict → merge recursivo por chave
    - list → sobrescrita total (sem merge elemento a elemento)
    - escalar → sobrescrita direta
    - null em qualquer lado → sobrescrita direta (limites opcionais)
    - int ⇄ float → compatíveis (ex.: timeout 60 → 2.5)
    - qualquer outro conflito de tipos → erro estrutural explícito

Invariantes:
    - A mesma entrada sempre produz a mesma saída
    - Nenhum input é mutado
    - Conflitos estruturais interrompem o merge
"""

from copy import deepcopy
from typing import Any, Dict

from .errors import ConfigTypeConflictError


def _compatible(base_value: Any, override_value: Any) -> bool:
    if base_value is None or override_value is None:
        return True
    numeric = (int, float)
    if (
        isinstance(base_value, numeric)
        and isinstance(override_value, numeric)
        and not isinstance(base_value, bool)
        and not isinstance(override_value, bool)
    ):
        return True
    return type(base_value) is type(override_value)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Realiza um deep-merge determinístico entre dois dicionários.

    Args:
        base: Configuração base (ex.: defaults).
        override: Overrides explícitos.

    Returns:
        Nova configuração resultante (inputs nunca são mutados).

    Raises:
        ConfigTypeConflictError: Se ocorrer conflito de tipo entre base e override.
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"Deep-merge requer dicts no nível raiz, recebido: "
            f"{type(base).__name__} vs {type(override).__name__}"
        )

    result: Dict[str, Any] = deepcopy(base)

    for key, override_value in override.items():
        if key not in result:
            result[key] = deepcopy(override_value)
            continue

        base_value = result[key]

        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
            continue

        if isinstance(override_value, list) and (base_value is None or isinstance(base_value, list)):
            result[key] = deepcopy(override_value)
            continue

        if not _compatible(base_value, override_value):
            raise ConfigTypeConflictError(
                f"Conflito de tipo na chave '{key}': "
                f"{type(base_value).__name__} vs {type(override_value).__name__}"
            )

        result[key] = deepcopy(override_value)

    return result
