# src/pipecanvas/core/config/errors.py
"""
Exceções canônicas da camada de configuração do PipeCanvas.

As exceções aqui definidas representam **violações estruturais explícitas**
da configuração (arquivo ausente, formato desconhecido, tipos conflitantes,
valores fora do domínio), e não erros da síntese.

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção de configuração é recuperada pelo loop de reparo
"""


class ConfigError(Exception):
    """Exceção base para erros de configuração do PipeCanvas."""


class DefaultsNotFoundError(ConfigError):
    """
    O arquivo de configuração base (defaults) não foi encontrado.

    Sem defaults não existe configuração efetiva válida; o loader não tenta
    inferir nem criar defaults automaticamente.
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Formato de arquivo não suportado.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """O conteúdo raiz da configuração não é um dicionário."""


class ConfigTypeConflictError(ConfigError):
    """
    Conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"synthesis": {"max_iterations": 3}}
        - override: {"synthesis": "fast"}
    """


class InvalidSettingError(ConfigError):
    """
    Valor de configuração fora do domínio aceito.

    Exemplo: `synthesis.max_iterations: 0` ou `errors.sample_rows: -1`.
    A mensagem sempre nomeia a chave completa (ex.: `semantic.max_output_rows`).
    """
