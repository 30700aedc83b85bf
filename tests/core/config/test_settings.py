# tests/core/config/test_settings.py
"""
Testes de `SynthesisSettings.from_config`.

Valores fora do domínio devem ser rejeitados ANTES de qualquer chamada
ao gerador, com mensagem que nomeia a chave (ex.: 'synthesis.max_iterations').
"""

import pytest

from pipecanvas.core.config.errors import InvalidSettingError
from pipecanvas.core.config.loader import load_config
from pipecanvas.core.config.settings import SynthesisSettings


def test_defaults_produce_documented_values():
    s = SynthesisSettings.from_config()
    assert s.max_iterations == 3
    assert s.generator_timeout_s == 60.0
    assert s.execution_timeout_s == 30.0
    assert s.error_sample_rows == 5
    assert s.error_sample_max_chars == 2000
    assert s.required_output_columns == ()
    assert s.forbid_empty_output is True
    assert s.max_output_rows is None
    assert s.max_row_growth_ratio is None
    assert s.retention_hours == 24.0
    assert s.raw["synthesis"]["max_iterations"] == 3


def test_overrides_flow_through_loader():
    cfg = load_config(
        overrides={
            "synthesis": {"max_iterations": 1, "generator_timeout_s": 0.25},
            "semantic": {"required_output_columns": ["email"], "max_output_rows": 10},
        }
    )
    s = SynthesisSettings.from_config(cfg)
    assert s.max_iterations == 1
    assert s.generator_timeout_s == 0.25
    assert s.required_output_columns == ("email",)
    assert s.max_output_rows == 10


def test_missing_sections_fall_back_to_dataclass_defaults():
    s = SynthesisSettings.from_config({})
    assert s.max_iterations == 3
    assert s.raw == {}


@pytest.mark.parametrize("value", [0, -1, 2.5, True, "3"])
def test_invalid_max_iterations_is_rejected(value):
    with pytest.raises(InvalidSettingError) as exc:
        SynthesisSettings.from_config({"synthesis": {"max_iterations": value}})
    assert "synthesis.max_iterations" in str(exc.value)


def test_non_positive_timeout_is_rejected():
    with pytest.raises(InvalidSettingError):
        SynthesisSettings.from_config({"synthesis": {"generator_timeout_s": 0}})


def test_required_columns_must_be_strings():
    with pytest.raises(InvalidSettingError):
        SynthesisSettings.from_config({"semantic": {"required_output_columns": ["ok", ""]}})


def test_section_must_be_mapping():
    with pytest.raises(InvalidSettingError):
        SynthesisSettings.from_config({"synthesis": ["max_iterations"]})
