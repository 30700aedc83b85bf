# tests/core/config/test_loader.py
"""
Testes do carregador de configuração (load_config).

Os testes asseguram que:
- o arquivo de defaults é obrigatório
- o arquivo local é opcional (ignorado quando ausente)
- overrides em memória têm a maior precedência
- formatos não suportados e raízes não-dict são rejeitados
- o `defaults.yaml` distribuído com o pacote é carregável

Limites explícitos:
    - Não valida semântica dos valores (ver test_settings)
"""

import json

import pytest

try:
    from pipecanvas.core.config.loader import DEFAULTS_PATH, load_config, load_default_config
    from pipecanvas.core.config.errors import (
        DefaultsNotFoundError,
        InvalidConfigRootTypeError,
        UnsupportedConfigFormatError,
    )
except Exception as e:  # noqa: BLE001
    load_config = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing loader/errors modules. Implement:\n"
            "- src/pipecanvas/core/config/loader.py (load_config)\n"
            "- src/pipecanvas/core/config/errors.py (typed exceptions)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_packaged_defaults_are_loadable():
    """
    O `defaults.yaml` distribuído contém as quatro seções canônicas.
    """
    _require_imports()
    assert DEFAULTS_PATH.exists()
    cfg = load_default_config()
    assert set(cfg) >= {"synthesis", "errors", "semantic", "ledger"}
    assert cfg["synthesis"]["max_iterations"] == 3
    assert cfg["semantic"]["forbid_empty_output"] is True
    assert cfg["semantic"]["max_output_rows"] is None


def test_load_config_without_arguments_uses_packaged_defaults():
    _require_imports()
    assert load_config() == load_default_config()


def test_defaults_missing_raises(tmp_path):
    _require_imports()
    with pytest.raises(DefaultsNotFoundError):
        load_config(defaults_path=str(tmp_path / "nope.yaml"))


def test_local_override_is_optional(tmp_path):
    _require_imports()
    defaults = _write(tmp_path / "defaults.yaml", "synthesis:\n  max_iterations: 3\n")
    cfg = load_config(defaults_path=defaults, local_path=str(tmp_path / "local.yaml"))
    assert cfg == {"synthesis": {"max_iterations": 3}}


def test_precedence_defaults_local_overrides(tmp_path):
    """
    Política de resolução: defaults → arquivo local → overrides em memória.
    """
    _require_imports()
    defaults = _write(
        tmp_path / "defaults.yaml",
        "synthesis:\n  max_iterations: 3\n  generator_timeout_s: 60\nerrors:\n  sample_rows: 5\n",
    )
    local = _write(tmp_path / "local.json", json.dumps({"synthesis": {"max_iterations": 4}}))
    cfg = load_config(
        defaults_path=defaults,
        local_path=local,
        overrides={"synthesis": {"generator_timeout_s": 1.5}},
    )
    assert cfg == {
        "synthesis": {"max_iterations": 4, "generator_timeout_s": 1.5},
        "errors": {"sample_rows": 5},
    }


def test_empty_defaults_file_is_empty_dict(tmp_path):
    _require_imports()
    assert load_config(defaults_path=_write(tmp_path / "defaults.yaml", "")) == {}


def test_unsupported_format_raises(tmp_path):
    _require_imports()
    with pytest.raises(UnsupportedConfigFormatError):
        load_config(defaults_path=_write(tmp_path / "defaults.toml", "a = 1\n"))


def test_non_dict_root_raises(tmp_path):
    _require_imports()
    with pytest.raises(InvalidConfigRootTypeError):
        load_config(defaults_path=_write(tmp_path / "defaults.yaml", "- a\n- b\n"))
