# src/pipecanvas/core/config/__init__.py

"""
Camada de configuração do PipeCanvas.

Este pacote carrega, mescla, valida e identifica (hash) a configuração de
uma run de síntese: limites do loop de reparo, timeouts, tamanho das
amostras e checagens semânticas de aceitação.

Princípios fundamentais:
    - Configuração é declarativa e determinística
    - Nenhuma heurística implícita durante merge
    - Overrides são sempre explícitos
    - Valores inválidos são rejeitados antes de qualquer run

Limites explícitos:
    - Não executa especificações
    - Não conversa com o gerador externo
"""

from .errors import (  # noqa: F401
    ConfigError,
    ConfigTypeConflictError,
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    InvalidSettingError,
    UnsupportedConfigFormatError,
)
from .hashing import compute_config_hash  # noqa: F401
from .loader import DEFAULTS_PATH, load_config, load_default_config  # noqa: F401
from .merge import deep_merge  # noqa: F401
from .settings import SynthesisSettings  # noqa: F401
