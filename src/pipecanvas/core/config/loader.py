# src/pipecanvas/core/config/loader.py
"""
Loader canônico de configuração do PipeCanvas.

A configuração efetiva é resolvida a partir de:
    - um arquivo de defaults (obrigatório; por padrão o `defaults.yaml`
      distribuído com o pacote)
    - um arquivo local de overrides (opcional)
    - um dicionário de overrides em memória (opcional, ex.: testes/API)

Princípios fundamentais:
    - Configuração é declarativa e explícita
    - Erros estruturais são tratados como falhas fatais
    - A mesma entrada sempre produz a mesma configuração final

Limites explícitos:
    - Não valida semântica (ver `settings.SynthesisSettings`)
    - Não persiste configuração nem hash (o manifest registra o hash)
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml  # PyYAML

from .errors import (
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)
from .merge import deep_merge


DEFAULTS_PATH = Path(__file__).with_name("defaults.yaml")


def _load_file(path: Path) -> Dict[str, Any]:
    """
    Carrega um arquivo de configuração e valida sua estrutura básica.

    Decisões arquiteturais:
        - O arquivo deve existir no momento do carregamento
        - Arquivos vazios são interpretados como dicionários vazios
        - O conteúdo raiz deve ser um dicionário (`dict`)

    Raises:
        DefaultsNotFoundError: Se o arquivo não existir.
        UnsupportedConfigFormatError: Se o formato do arquivo não for suportado.
        InvalidConfigRootTypeError: Se o conteúdo raiz não for um dicionário.
    """
    if not path.exists():
        raise DefaultsNotFoundError(f"Arquivo de configuração não encontrado: {path}")

    suffix = path.suffix.lower()

    if suffix in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

    elif suffix == ".json":
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)

    else:
        raise UnsupportedConfigFormatError(f"Formato não suportado: {path.suffix}")

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}"
        )

    return data


def load_config(
    *,
    defaults_path: Optional[str] = None,
    local_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Carrega e resolve a configuração efetiva de uma run.

    Política de resolução (precedência crescente):
        defaults → arquivo local (se existir) → overrides em memória

    Args:
        defaults_path: Caminho para o arquivo base (None ⇒ defaults do pacote).
        local_path: Caminho opcional para overrides locais; ignorado se ausente.
        overrides: Dicionário opcional aplicado por último.

    Returns:
        Configuração final resolvida (dict puro).

    Raises:
        DefaultsNotFoundError, UnsupportedConfigFormatError,
        InvalidConfigRootTypeError, ConfigTypeConflictError.
    """
    effective = _load_file(Path(defaults_path) if defaults_path is not None else DEFAULTS_PATH)

    if local_path is not None:
        local_file = Path(local_path)
        if local_file.exists():
            effective = deep_merge(effective, _load_file(local_file))

    if overrides:
        if not isinstance(overrides, dict):
            raise InvalidConfigRootTypeError(
                f"Overrides devem ser dict, recebido: {type(overrides).__name__}"
            )
        effective = deep_merge(effective, overrides)

    return effective


def load_default_config() -> Dict[str, Any]:
    """Configuração padrão distribuída com o pacote."""
    return _load_file(DEFAULTS_PATH)
